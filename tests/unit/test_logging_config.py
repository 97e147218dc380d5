import json
import logging

import pytest

from docs_harness.config import LoggingConfig
from docs_harness.logging_config import CustomJsonFormatter, build_formatter


def make_record(**attrs):
    return logging.makeLogRecord(
        {"name": "docs_harness.auth", "levelname": "INFO", "levelno": logging.INFO, "msg": "Installed", **attrs}
    )


@pytest.mark.unit
class TestJsonFormatter:
    def test_json_logs_select_the_json_formatter(self, env_clean):
        assert isinstance(build_formatter(LoggingConfig(json_logs=True)), CustomJsonFormatter)
        assert not isinstance(build_formatter(LoggingConfig(json_logs=False)), CustomJsonFormatter)

    def test_named_fields(self, env_clean):
        formatter = build_formatter(LoggingConfig(json_logs=True))
        payload = json.loads(formatter.format(make_record()))

        assert payload["message"] == "Installed"
        assert payload["logger"] == "docs_harness.auth"
        assert payload["level"] == "INFO"
        assert "timestamp" in payload

    def test_extra_fields_are_included(self, env_clean):
        formatter = build_formatter(LoggingConfig(json_logs=True))
        payload = json.loads(formatter.format(make_record(strategy="jwt")))

        assert payload["strategy"] == "jwt"
        assert "levelno" not in payload
        assert "pathname" not in payload
