"""Registrable server capabilities.

Each capability is a ``Plugin`` registered on a FastAPI app with
``await register(app, plugin, options, prefix)``. Plugins record themselves
in ``app.state.plugins`` and may contribute handler types, which let route
definitions use declarative handlers such as ``{"proxy": {...}}`` or
``{"directory": {"path": ...}}`` instead of a callable.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import FileResponse
from fastapi.templating import Jinja2Templates
from jinja2 import ChoiceLoader, Environment, FileSystemLoader, select_autoescape
from starlette.staticfiles import StaticFiles

from .auth import BearerAccessTokenScheme, JWTScheme, get_auth_registry
from .errors import BootstrapError
from .proxy import proxy_handler

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"


@dataclass(frozen=True)
class Plugin:
    """A named capability and the coroutine that installs it."""

    name: str
    setup: Callable[[FastAPI, Any, str], Awaitable[None]]
    dependencies: tuple[str, ...] = ()


def registered_plugins(app: FastAPI) -> dict[tuple[str, str], Any]:
    plugins = getattr(app.state, "plugins", None)
    if plugins is None:
        plugins = {}
        app.state.plugins = plugins
    return plugins


def handler_types(app: FastAPI) -> dict[str, Callable[[Any], Callable]]:
    types = getattr(app.state, "handler_types", None)
    if types is None:
        types = {}
        app.state.handler_types = types
    return types


def add_handler_type(app: FastAPI, name: str, factory: Callable[[Any], Callable]) -> None:
    types = handler_types(app)
    if name in types:
        raise BootstrapError(f"Handler type '{name}' already provided by another plugin")
    types[name] = factory


async def register(app: FastAPI, plugin: Plugin, options: Any = None, prefix: str = "") -> None:
    """
    Register a plugin on ``app`` under ``prefix``.

    Raises:
        BootstrapError: If the plugin is already registered at that prefix,
            a plugin it depends on is missing, or its setup fails
    """
    plugins = registered_plugins(app)
    key = (plugin.name, prefix)
    if key in plugins:
        raise BootstrapError(f"Plugin '{plugin.name}' already registered at '{prefix or '/'}'")

    names = {name for name, _ in plugins}
    for dependency in plugin.dependencies:
        if dependency not in names:
            raise BootstrapError(f"Plugin '{plugin.name}' requires '{dependency}'")

    try:
        await plugin.setup(app, options, prefix)
    except BootstrapError:
        raise
    except Exception as e:
        logger.error(f"Failed to register plugin '{plugin.name}': {e}")
        raise BootstrapError(f"Failed to register plugin '{plugin.name}': {e}") from e

    plugins[key] = options
    logger.debug(f"Registered plugin '{plugin.name}' at '{prefix or '/'}'", extra={"plugin": plugin.name})


async def register_all(app: FastAPI, plugins: list) -> None:
    """Register plugins in order; entries are a Plugin or ``(plugin, options)``."""
    for entry in plugins:
        if isinstance(entry, Plugin):
            await register(app, entry)
        else:
            plugin, options = entry
            await register(app, plugin, options)


# Static files

def _file_handler(value) -> Callable:
    path = Path(value["path"] if isinstance(value, dict) else value)
    if not path.is_file():
        raise BootstrapError(f"File handler target does not exist: {path}")

    async def handler() -> FileResponse:
        return FileResponse(path)

    return handler


def _directory_handler(value) -> Callable:
    if isinstance(value, dict):
        directory = value["path"]
        html = value.get("index", True)
    else:
        directory, html = value, True
    try:
        static = StaticFiles(directory=directory, html=html)
    except RuntimeError as e:
        raise BootstrapError(str(e)) from e

    async def handler(request: Request):
        # Route paths look like /public/{path:path}; serve whatever the tail matched
        path = next(iter(request.path_params.values()), "")
        return await static.get_response(path or ".", request.scope)

    return handler


async def _setup_static_files(app: FastAPI, options, prefix: str) -> None:
    add_handler_type(app, "file", _file_handler)
    add_handler_type(app, "directory", _directory_handler)


static_files_plugin = Plugin("static_files", _setup_static_files)


# Templating

def build_templates(templates_dir: str | None = None) -> Jinja2Templates:
    """Jinja2 templates searching ``templates_dir`` before the packaged templates."""
    search = [str(templates_dir)] if templates_dir else []
    search.append(str(TEMPLATES_DIR))
    env = Environment(
        loader=ChoiceLoader([FileSystemLoader(path) for path in search]),
        autoescape=select_autoescape(["html", "xml"]),
    )
    return Jinja2Templates(env=env)


def _view_handler(value) -> Callable:
    if isinstance(value, str):
        template, context = value, {}
    else:
        template, context = value["template"], value.get("context", {})

    async def handler(request: Request):
        return request.app.state.templates.TemplateResponse(request, template, dict(context))

    return handler


async def _setup_templating(app: FastAPI, options, prefix: str) -> None:
    options = options or {}
    app.state.templates = build_templates(options.get("templates_dir"))
    add_handler_type(app, "view", _view_handler)


templating_plugin = Plugin("templating", _setup_templating)


# Proxy

async def _setup_proxy(app: FastAPI, options, prefix: str) -> None:
    options = options or {}
    app.state.proxy_client = httpx.AsyncClient(
        timeout=options.get("timeout", 10.0),
        follow_redirects=options.get("follow_redirects", False),
    )
    add_handler_type(app, "proxy", proxy_handler)


proxy_plugin = Plugin("proxy", _setup_proxy)


# Authentication schemes

async def _setup_bearer_token(app: FastAPI, options, prefix: str) -> None:
    get_auth_registry(app).register_scheme(BearerAccessTokenScheme.name, BearerAccessTokenScheme)


async def _setup_jwt(app: FastAPI, options, prefix: str) -> None:
    get_auth_registry(app).register_scheme(JWTScheme.name, JWTScheme)


bearer_token_plugin = Plugin("bearer_token", _setup_bearer_token)
jwt_plugin = Plugin("jwt", _setup_jwt)


BASE_PLUGINS = [static_files_plugin, templating_plugin, proxy_plugin]
