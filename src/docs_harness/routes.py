"""Route definitions and their registration on harness servers."""

import logging
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Iterable, Mapping

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from .auth import get_auth_registry
from .capabilities import handler_types
from .errors import BootstrapError

logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


@dataclass
class RouteDefinition:
    """
    One entry of a server's route table.

    ``handler`` is either a FastAPI endpoint or a single-key handler mapping
    provided by a registered capability, e.g. ``{"proxy": {"uri": ...}}``.
    ``auth`` is ``None`` for the server default, ``False`` for no
    authentication, or a strategy name.
    """

    method: str | list[str]
    path: str
    handler: Callable | Mapping[str, Any]
    auth: str | bool | None = None
    tags: list[str] = field(default_factory=list)
    summary: str | None = None
    description: str | None = None
    name: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RouteDefinition":
        """Build a definition from a mapping; keys in ``options`` are merged in."""
        merged = {k: v for k, v in data.items() if k != "options"}
        merged.update(data.get("options") or {})
        known = {f.name for f in fields(cls)}
        unknown = set(merged) - known
        if unknown:
            raise BootstrapError(f"Unknown route keys for {merged.get('path')!r}: {sorted(unknown)}")
        return cls(**merged)

    @property
    def methods(self) -> list[str]:
        methods = [self.method] if isinstance(self.method, str) else list(self.method)
        if "*" in methods:
            return list(ALL_METHODS)
        return [m.upper() for m in methods]


def default_handler() -> PlainTextResponse:
    """Mock handler answering every request with ``ok``."""
    return PlainTextResponse("ok")


def resolve_handler(app: FastAPI, handler) -> Callable:
    """Turn a route handler or handler mapping into a FastAPI endpoint."""
    if callable(handler):
        return handler
    if isinstance(handler, Mapping) and len(handler) == 1:
        (kind, value), = handler.items()
        factories = handler_types(app)
        if kind not in factories:
            raise BootstrapError(f"No registered plugin provides the '{kind}' handler type")
        return factories[kind](value)
    raise BootstrapError(f"Route handler must be callable or a single-key mapping, got {handler!r}")


def register_routes(
    app: FastAPI,
    routes: Iterable[RouteDefinition | Mapping[str, Any]],
    prefix: str = "",
) -> None:
    """
    Add ``routes`` to ``app`` in order.

    Raises:
        BootstrapError: If a route cannot be built or uses an unknown
            handler type or auth strategy
    """
    registry = get_auth_registry(app)
    for route in routes:
        if not isinstance(route, RouteDefinition):
            route = RouteDefinition.from_mapping(route)

        try:
            endpoint = resolve_handler(app, route.handler)
            app.add_api_route(
                f"{prefix}{route.path}",
                endpoint,
                methods=route.methods,
                tags=list(route.tags) or None,
                summary=route.summary,
                description=route.description,
                name=route.name,
                dependencies=registry.dependencies_for(route.auth),
            )
        except BootstrapError:
            raise
        except Exception as e:
            logger.error(f"Failed to register route {route.methods} {route.path}: {e}")
            raise BootstrapError(f"Failed to register route {route.path}: {e}") from e

        logger.debug(f"Registered route {route.methods} {prefix}{route.path}")
