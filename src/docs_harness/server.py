"""Bootstrap functions assembling live servers for documentation plugin tests.

Every bootstrap builds a fresh FastAPI app, registers the base capabilities
(static files, templating, proxy), the documentation plugin and, depending on
the variant, an authentication strategy. It then registers the given routes,
binds a socket and starts uvicorn in the running event loop. The returned
``ServerHandle`` belongs to the caller, who must ``stop()`` it.
"""

import asyncio
import socket
import time
from contextlib import asynccontextmanager
from functools import partial
from typing import Any, Iterable, Mapping

import httpx
import uvicorn
from fastapi import FastAPI

from . import __version__
from .auth import get_auth_registry, validate_bearer, validate_jwt
from .capabilities import BASE_PLUGINS, bearer_token_plugin, jwt_plugin, register, register_all
from .config import (
    CredentialFixtures,
    HarnessSettings,
    ServerOptions,
    SwaggerOptions,
    default_fixtures,
    get_settings,
)
from .errors import BootstrapError
from .logging_config import get_logger, setup_logging
from .routes import RouteDefinition, register_routes
from .swagger import swagger_plugin

# Load settings and configure logging
settings = get_settings()
setup_logging(settings.logging)
logger = get_logger(__name__)

RouteTable = Iterable[RouteDefinition | Mapping[str, Any]]
OptionsLike = SwaggerOptions | Mapping[str, Any] | None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Close resources that capabilities attached to the app state."""
    yield
    client: httpx.AsyncClient | None = getattr(app.state, "proxy_client", None)
    if client is not None:
        await client.aclose()


def create_app(settings: HarnessSettings | None = None) -> FastAPI:
    """Bare app; documentation comes from the plugin, not FastAPI's built-in pages."""
    settings = settings or get_settings()
    return FastAPI(
        title=settings.app_name,
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )


class ServerHandle:
    """A running harness server."""

    def __init__(
        self,
        app: FastAPI,
        server: uvicorn.Server,
        task: asyncio.Task,
        sock: socket.socket,
        options: ServerOptions,
        shutdown_timeout: float,
    ):
        self.app = app
        self._server = server
        self._task = task
        self._socket = sock
        self._options = options
        self._shutdown_timeout = shutdown_timeout
        self._host, self._port = sock.getsockname()[:2]

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def protocol(self) -> str:
        return "https" if self._options.tls else "http"

    @property
    def url(self) -> str:
        host = f"[{self._host}]" if ":" in self._host else self._host
        return f"{self.protocol}://{host}:{self._port}"

    @property
    def started(self) -> bool:
        return self._server.started and not self._task.done()

    @property
    def info(self) -> dict[str, Any]:
        return {
            "uri": self.url,
            "host": self.host,
            "port": self.port,
            "protocol": self.protocol,
            "started": self.started,
        }

    def client(self, **kwargs) -> httpx.AsyncClient:
        """An httpx client pointed at this server."""
        kwargs.setdefault("base_url", self.url)
        if self._options.tls:
            kwargs.setdefault("verify", False)
        return httpx.AsyncClient(**kwargs)

    async def inject(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send one request to the server and return the full response."""
        async with self.client() as client:
            return await client.request(method, url, **kwargs)

    async def stop(self) -> None:
        """Ask uvicorn to exit and wait for it; safe to call more than once."""
        if self._task.done():
            self._socket.close()
            return

        self._server.should_exit = True
        try:
            await asyncio.wait_for(self._task, timeout=self._shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Server {self.url} did not stop within {self._shutdown_timeout}s")
        finally:
            self._socket.close()
        logger.info(f"Server {self.url} stopped", extra={"url": self.url})

    async def __aenter__(self) -> "ServerHandle":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind a listening-ready TCP socket; port 0 picks a free one."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


async def start(app: FastAPI, server_options: ServerOptions | Mapping[str, Any] | None = None) -> ServerHandle:
    """
    Bind and start ``app`` with uvicorn in the running event loop.

    Raises:
        BootstrapError: If the socket cannot be bound or the server does not
            finish starting
    """
    if server_options is None:
        server_options = ServerOptions()
    elif not isinstance(server_options, ServerOptions):
        server_options = ServerOptions(**server_options)

    current_settings = get_settings()
    host = server_options.host or current_settings.server.host

    try:
        sock = bind_socket(host, server_options.port)
    except OSError as e:
        logger.error(f"Could not bind {host}:{server_options.port}: {e}")
        raise BootstrapError(f"Could not bind {host}:{server_options.port}: {e}") from e

    try:
        config = uvicorn.Config(
            app,
            host=host,
            port=sock.getsockname()[1],
            log_config=None,
            log_level=current_settings.server.log_level,
            lifespan="on",
            ssl_keyfile=server_options.ssl_keyfile,
            ssl_certfile=server_options.ssl_certfile,
            root_path=server_options.root_path,
            **server_options.extra,
        )
    except TypeError as e:
        sock.close()
        logger.error(f"Invalid uvicorn options {sorted(server_options.extra)}: {e}")
        raise BootstrapError(f"Invalid uvicorn options: {e}") from e
    server = uvicorn.Server(config)
    task = asyncio.create_task(server.serve(sockets=[sock]))

    deadline = time.monotonic() + current_settings.server.startup_timeout
    while not server.started:
        if task.done():
            sock.close()
            cause = None if task.cancelled() else task.exception()
            raise BootstrapError(f"Server on {host} exited during startup") from cause
        if time.monotonic() > deadline:
            server.should_exit = True
            await asyncio.gather(task, return_exceptions=True)
            sock.close()
            raise BootstrapError(f"Server on {host} did not start within {current_settings.server.startup_timeout}s")
        await asyncio.sleep(0.01)

    handle = ServerHandle(
        app, server, task, sock, server_options, current_settings.server.shutdown_timeout
    )
    logger.info(f"Server started at {handle.url}", extra={"url": handle.url})
    return handle


def _swagger_options(options: OptionsLike) -> SwaggerOptions:
    if options is None:
        return SwaggerOptions()
    if isinstance(options, SwaggerOptions):
        return options
    return SwaggerOptions(**options)


def mount_prefix(options: SwaggerOptions, fallback: str) -> str:
    """Mount prefix for a dual-mount registration: ``/<route_tag>`` or ``/<fallback>``."""
    return "/" + (options.route_tag or fallback)


async def create_server(
    swagger_options: OptionsLike,
    routes: RouteTable | None = None,
    server_options: ServerOptions | Mapping[str, Any] | None = None,
) -> ServerHandle:
    """Server with the documentation plugin at the root and no authentication."""
    app = create_app()
    await register_all(app, [*BASE_PLUGINS, (swagger_plugin, _swagger_options(swagger_options))])

    if routes:
        register_routes(app, routes)

    return await start(app, server_options)


async def create_server_multiple(
    swagger_options1: OptionsLike,
    swagger_options2: OptionsLike,
    routes: RouteTable | None = None,
    server_options: ServerOptions | Mapping[str, Any] | None = None,
) -> ServerHandle:
    """
    Server with two documentation plugin instances, each under its own prefix.

    The prefixes come from each options' ``route_tag``, falling back to
    ``/api1`` and ``/api2``. Routes are registered at the server root.

    Raises:
        BootstrapError: If both instances resolve to the same prefix
    """
    mounts = {}
    for options, fallback in ((swagger_options1, "api1"), (swagger_options2, "api2")):
        options = _swagger_options(options)
        prefix = mount_prefix(options, fallback)
        if prefix in mounts:
            raise BootstrapError(f"Documentation plugins collide on mount prefix '{prefix}'")
        mounts[prefix] = options

    app = create_app()
    await register_all(app, BASE_PLUGINS)
    for prefix, options in mounts.items():
        await register(app, swagger_plugin, options, prefix)

    if routes:
        register_routes(app, routes)

    return await start(app, server_options)


async def create_auth_server(
    swagger_options: OptionsLike,
    routes: RouteTable,
    server_options: ServerOptions | Mapping[str, Any] | None = None,
    *,
    fixtures: CredentialFixtures | None = None,
) -> ServerHandle:
    """
    Server with a ``bearer`` access token strategy.

    The strategy is not the server default: routes opt in with ``auth="bearer"``.
    """
    if routes is None:
        raise BootstrapError("create_auth_server requires a route table")
    fixtures = fixtures or default_fixtures()

    app = create_app()
    await register_all(app, [*BASE_PLUGINS, bearer_token_plugin])
    get_auth_registry(app).strategy(
        "bearer",
        "bearer-access-token",
        access_token_name="access_token",
        validate=partial(validate_bearer, fixtures=fixtures),
    )
    await register(app, swagger_plugin, _swagger_options(swagger_options))

    register_routes(app, routes)
    return await start(app, server_options)


async def create_jwt_auth_server(
    swagger_options: OptionsLike,
    routes: RouteTable,
    server_options: ServerOptions | Mapping[str, Any] | None = None,
    *,
    fixtures: CredentialFixtures | None = None,
) -> ServerHandle:
    """
    Server whose default strategy is ``jwt`` (HS256 with the fixture key).

    Every route requires a valid token unless it sets ``auth=False``.
    """
    if routes is None:
        raise BootstrapError("create_jwt_auth_server requires a route table")
    fixtures = fixtures or default_fixtures()

    app = create_app()
    await register_all(app, [*BASE_PLUGINS, jwt_plugin])
    registry = get_auth_registry(app)
    registry.strategy(
        "jwt",
        "jwt",
        key=fixtures.jwt_key,
        algorithms=fixtures.jwt_algorithms,
        validate=partial(validate_jwt, fixtures=fixtures),
    )
    registry.default("jwt")
    await register(app, swagger_plugin, _swagger_options(swagger_options))

    register_routes(app, routes)
    return await start(app, server_options)
