"""Logging configuration for the harness and the servers it starts.

Bootstrapped uvicorn servers are created with ``log_config=None`` so their
``uvicorn``/``uvicorn.access`` loggers are configured here rather than by
uvicorn itself.
"""

import logging
import sys
from typing import Any

from pythonjsonlogger import jsonlogger

from .config import LoggingConfig


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that names the logger, level and timestamp explicitly.

    Fields passed with ``extra=`` (``strategy``, ``plugin``, ``url``) and
    ``exc_info`` are merged by ``JsonFormatter`` itself.
    """

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["logger"] = record.name
        log_record["level"] = record.levelname
        log_record["timestamp"] = self.formatTime(record, self.datefmt)


def build_formatter(config: LoggingConfig) -> logging.Formatter:
    """Return the formatter matching ``config.json_logs``."""
    if config.json_logs:
        return CustomJsonFormatter(
            "%(timestamp)s %(level)s %(logger)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    return logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def setup_logging(config: LoggingConfig) -> None:
    """Configure the harness and uvicorn loggers.

    Only the ``docs_harness`` and ``uvicorn`` logger trees are touched so that
    the test runner's own log capture keeps working.

    Args:
        config: Logging configuration settings
    """
    formatter = build_formatter(config)

    harness_logger = logging.getLogger("docs_harness")
    harness_logger.setLevel(config.log_level)
    harness_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(config.log_level)
    handler.setFormatter(formatter)
    harness_logger.addHandler(handler)

    # Uvicorn server logger (startup, shutdown messages)
    server_logger = logging.getLogger("uvicorn")
    server_logger.setLevel(config.log_level)

    access_logger = logging.getLogger("uvicorn.access")
    access_logger.setLevel(config.access_log_level)
    access_logger.propagate = False
    access_logger.handlers.clear()

    access_handler = logging.StreamHandler(sys.stdout)
    access_handler.setLevel(config.access_log_level)
    access_handler.setFormatter(formatter)
    access_logger.addHandler(access_handler)

    # Suppress overly verbose third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    harness_logger.debug(
        f"Logging configured: level={config.log_level}, json={config.json_logs}"
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)
