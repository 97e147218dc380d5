"""Shared test fixtures and configuration."""

import os
from unittest.mock import patch

import jwt
import pytest

from docs_harness import RouteDefinition, SwaggerOptions, default_auth_handler, default_fixtures, default_handler
from docs_harness.config import reload_settings


@pytest.fixture
def fixtures():
    """Fixture providing the fixed credential tables."""
    return default_fixtures()


@pytest.fixture
def swagger_options():
    """Fixture providing documentation plugin options."""
    return SwaggerOptions(info={"title": "Test API", "version": "1.2.3"})


@pytest.fixture
def assets_dir(tmp_path):
    """Directory with stand-in Swagger UI assets."""
    directory = tmp_path / "swaggerui"
    directory.mkdir()
    (directory / "swagger-ui.css").write_text("body { margin: 0; }")
    (directory / "swagger-ui-bundle.js").write_text("window.SwaggerUIBundle = function () {};")
    return directory


@pytest.fixture
def api_routes():
    """A small route table; only the tagged routes are documented."""
    return [
        RouteDefinition(
            method="GET",
            path="/store/",
            handler=default_handler,
            tags=["api"],
            summary="List the store",
        ),
        RouteDefinition(
            method="POST",
            path="/store/",
            handler=default_handler,
            tags=["api"],
        ),
        RouteDefinition(method="GET", path="/hidden", handler=default_handler),
    ]


@pytest.fixture
def bearer_routes():
    """Routes for the bearer auth server: one protected, one open."""
    return [
        {
            "method": "GET",
            "path": "/bookmarks/",
            "options": {
                "handler": default_auth_handler,
                "auth": "bearer",
                "tags": ["api"],
            },
        },
        {"method": "GET", "path": "/open", "handler": default_handler, "tags": ["api"]},
    ]


@pytest.fixture
def jwt_token(fixtures):
    """A token signed with the fixture key for a known identity."""
    return jwt.encode({"id": 56732}, fixtures.jwt_key, algorithm="HS256")


@pytest.fixture
def auth_headers():
    """Fixture to provide valid Bearer token authentication headers."""
    return {"Authorization": "Bearer 12345"}


@pytest.fixture
def env_clean():
    """Fixture to clear harness environment variables and reload settings."""
    with patch.dict(os.environ, {}, clear=True):
        reload_settings()
        yield
    reload_settings()
