"""Centralized configuration management using Pydantic Settings.

This module provides the harness settings (read from the environment), the
listen options passed through to uvicorn for each bootstrapped server, and the
fixed credential tables used by the authentication validators.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseSettings):
    """Defaults for servers started by the bootstrap functions."""

    # Loopback only: harness servers are never meant to be reachable from outside
    host: str = Field(
        default="127.0.0.1",
        description="Default interface to bind bootstrapped servers to"
    )
    startup_timeout: float = Field(
        default=10.0,
        ge=0.5,
        le=120.0,
        description="Seconds to wait for a server to report it has started"
    )
    shutdown_timeout: float = Field(
        default=5.0,
        ge=0.5,
        le=60.0,
        description="Seconds to wait for a server task to finish on stop()"
    )
    log_level: Literal["critical", "error", "warning", "info", "debug", "trace"] = Field(
        default="warning",
        description="uvicorn log level"
    )

    model_config = SettingsConfigDict(env_prefix="SERVER_")


class LoggingConfig(BaseSettings):
    """Logging configuration with structured logging support."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Harness log level"
    )

    access_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Uvicorn access log level"
    )

    json_logs: bool = Field(
        default=False,
        description="Enable JSON formatted logs"
    )

    model_config = SettingsConfigDict(env_prefix="LOG_")


class HarnessSettings(BaseSettings):
    """Main harness settings combining all configuration sections."""

    app_name: str = Field(
        default="docs-harness",
        description="Name reported by bootstrapped servers"
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="DOCS_HARNESS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# uvicorn.Config arguments that start() always passes
UVICORN_MANAGED_KEYS = frozenset(
    {"app", "host", "port", "log_config", "log_level", "lifespan", "ssl_keyfile", "ssl_certfile", "root_path"}
)


class ServerOptions(BaseModel):
    """Listen options for a single bootstrapped server.

    Anything uvicorn accepts that is not modelled here can go in ``extra``,
    which is passed verbatim to ``uvicorn.Config``.
    """

    host: str | None = Field(None, description="Interface to bind (defaults to settings)")
    port: int = Field(0, ge=0, le=65535, description="Port to bind, 0 picks a free one")
    ssl_keyfile: str | None = Field(None, description="TLS private key file")
    ssl_certfile: str | None = Field(None, description="TLS certificate file")
    root_path: str = Field("", description="ASGI root_path for servers behind a proxy")
    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator("extra")
    @classmethod
    def validate_extra(cls, v: dict[str, Any]) -> dict[str, Any]:
        """Keys the harness sets itself cannot be overridden through ``extra``."""
        clashes = sorted(set(v) & UVICORN_MANAGED_KEYS)
        if clashes:
            raise ValueError(f"extra cannot set {', '.join(clashes)}; use the dedicated options")
        return v

    @property
    def tls(self) -> bool:
        return bool(self.ssl_certfile)


@dataclass(frozen=True)
class CredentialFixtures:
    """Read-only credential tables used by the strategy validators.

    Built once per harness setup and passed to validators explicitly.
    """

    bearer_token: str
    bearer_user: Mapping[str, Any]
    jwt_key: str
    jwt_algorithms: tuple[str, ...]
    people: Mapping[int, Mapping[str, Any]] = field(default_factory=dict)


def default_fixtures() -> CredentialFixtures:
    """Build the fixed credentials the harness servers accept."""
    return CredentialFixtures(
        bearer_token="12345",
        bearer_user=MappingProxyType(
            {
                "username": "glennjones",
                "name": "Glenn Jones",
                "groups": ("admin", "user"),
            }
        ),
        jwt_key="hapi hapi joi joi",
        jwt_algorithms=("HS256",),
        people=MappingProxyType(
            {
                56732: MappingProxyType(
                    {"id": 56732, "name": "Jen Jones", "scope": ("a", "b")}
                ),
            }
        ),
    )


class SwaggerInfo(BaseModel):
    """Document-level metadata for the generated OpenAPI document."""

    title: str = "API documentation"
    version: str = "0.0.1"
    description: str | None = None


class SwaggerOptions(BaseModel):
    """Options bag for the documentation plugin."""

    info: SwaggerInfo = Field(default_factory=SwaggerInfo)
    json_path: str = Field("/swagger.json", description="Path of the OpenAPI document")
    documentation_path: str = Field("/documentation", description="Path of the docs page")
    swagger_ui_path: str = Field("/swaggerui/", description="Path the UI assets are served from")
    documentation_page: bool = Field(True, description="Serve the documentation page")
    swagger_ui: bool = Field(True, description="Serve the Swagger UI assets")
    route_tag: str | None = Field(
        None, description="Tag selecting documented routes, also used as mount prefix"
    )
    assets_dir: str | None = Field(
        None, description="Directory holding swagger-ui.css and swagger-ui-bundle.js"
    )
    auth: str | bool = Field(False, description="Strategy protecting the plugin routes")

    @field_validator("json_path", "documentation_path", "swagger_ui_path")
    @classmethod
    def validate_path(cls, v):
        """Plugin paths are absolute within their mount."""
        if not v.startswith("/"):
            raise ValueError(f"path must start with '/': {v!r}")
        return v

    @property
    def effective_tag(self) -> str:
        return self.route_tag or "api"


# Global settings instance
_settings: HarnessSettings | None = None


def get_settings() -> HarnessSettings:
    """Get the global settings instance (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = HarnessSettings()
    return _settings


def reload_settings() -> HarnessSettings:
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = HarnessSettings()
    return _settings
