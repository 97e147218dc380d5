import dataclasses
import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from docs_harness.config import ServerOptions, SwaggerOptions, default_fixtures, reload_settings


@pytest.mark.unit
class TestSwaggerOptions:
    def test_defaults(self):
        options = SwaggerOptions()
        assert options.json_path == "/swagger.json"
        assert options.documentation_path == "/documentation"
        assert options.swagger_ui_path == "/swaggerui/"
        assert options.route_tag is None
        assert options.effective_tag == "api"
        assert options.auth is False

    def test_route_tag_is_the_effective_tag(self):
        assert SwaggerOptions(route_tag="a").effective_tag == "a"

    @pytest.mark.parametrize("field", ["json_path", "documentation_path", "swagger_ui_path"])
    def test_relative_paths_are_rejected(self, field):
        with pytest.raises(ValidationError, match="must start with"):
            SwaggerOptions(**{field: "docs"})


@pytest.mark.unit
class TestServerOptions:
    def test_defaults_pick_a_free_port(self):
        options = ServerOptions()
        assert options.port == 0
        assert options.host is None
        assert options.tls is False

    def test_tls_follows_certificate(self):
        assert ServerOptions(ssl_certfile="cert.pem", ssl_keyfile="key.pem").tls is True

    def test_port_range(self):
        with pytest.raises(ValidationError):
            ServerOptions(port=70000)

    @pytest.mark.parametrize("key", ["host", "port", "log_config", "lifespan"])
    def test_extra_cannot_override_managed_keys(self, key):
        with pytest.raises(ValidationError, match="extra cannot set"):
            ServerOptions(extra={key: "x"})

    def test_extra_passes_other_uvicorn_options(self):
        assert ServerOptions(extra={"timeout_keep_alive": 1}).extra == {"timeout_keep_alive": 1}


@pytest.mark.unit
class TestSettings:
    def test_defaults(self, env_clean):
        settings = reload_settings()
        assert settings.server.host == "127.0.0.1"
        assert settings.logging.json_logs is False

    def test_environment_overrides(self, env_clean):
        with patch.dict(os.environ, {"SERVER_STARTUP_TIMEOUT": "3", "LOG_JSON_LOGS": "true"}):
            settings = reload_settings()
        assert settings.server.startup_timeout == 3.0
        assert settings.logging.json_logs is True


@pytest.mark.unit
class TestCredentialFixtures:
    def test_known_values(self):
        fixtures = default_fixtures()
        assert fixtures.bearer_token == "12345"
        assert fixtures.jwt_key == "hapi hapi joi joi"
        assert fixtures.jwt_algorithms == ("HS256",)
        assert fixtures.people[56732]["name"] == "Jen Jones"

    def test_tables_are_read_only(self):
        fixtures = default_fixtures()
        with pytest.raises(dataclasses.FrozenInstanceError):
            fixtures.bearer_token = "other"
        with pytest.raises(TypeError):
            fixtures.people[1] = {"id": 1}
