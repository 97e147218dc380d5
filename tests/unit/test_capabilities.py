"""Tests for plugin registration."""

import pytest
from fastapi import FastAPI

from docs_harness.capabilities import (
    BASE_PLUGINS,
    Plugin,
    handler_types,
    register,
    register_all,
    registered_plugins,
    templating_plugin,
)
from docs_harness.errors import BootstrapError
from docs_harness.swagger import swagger_plugin


@pytest.mark.unit
class TestRegister:
    @pytest.mark.asyncio
    async def test_base_plugins_provide_handler_types(self):
        app = FastAPI()
        await register_all(app, BASE_PLUGINS)

        assert set(handler_types(app)) == {"file", "directory", "view", "proxy"}
        assert ("templating", "") in registered_plugins(app)
        assert app.state.proxy_client is not None
        await app.state.proxy_client.aclose()

    @pytest.mark.asyncio
    async def test_same_prefix_twice(self):
        app = FastAPI()
        await register(app, templating_plugin)
        with pytest.raises(BootstrapError, match="already registered"):
            await register(app, templating_plugin)

    @pytest.mark.asyncio
    async def test_swagger_needs_templating(self, swagger_options):
        app = FastAPI()
        with pytest.raises(BootstrapError, match="requires 'templating'"):
            await register(app, swagger_plugin, swagger_options)

    @pytest.mark.asyncio
    async def test_swagger_at_two_prefixes(self):
        app = FastAPI()
        await register(app, templating_plugin)
        await register(app, swagger_plugin, {"route_tag": "a"}, "/a")
        await register(app, swagger_plugin, {"route_tag": "b"}, "/b")

        paths = {route.path for route in app.routes}
        assert {"/a/swagger.json", "/b/swagger.json", "/a/documentation", "/b/documentation"} <= paths

    @pytest.mark.asyncio
    async def test_setup_failure_is_wrapped(self):
        async def broken(app, options, prefix):
            raise RuntimeError("boom")

        with pytest.raises(BootstrapError, match="boom") as exc_info:
            await register(FastAPI(), Plugin("broken", broken))
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_failed_plugin_is_not_recorded(self):
        async def broken(app, options, prefix):
            raise RuntimeError("boom")

        app = FastAPI()
        with pytest.raises(BootstrapError):
            await register(app, Plugin("broken", broken))
        assert ("broken", "") not in registered_plugins(app)
