"""docs-harness - Live test servers for exercising an API documentation plugin."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("docs-harness")
except PackageNotFoundError:
    __version__ = "0.0.0"  # Fallback for development

from .assets import get_assets_paths
from .auth import ValidationOutcome, default_auth_handler, validate_bearer, validate_jwt
from .config import CredentialFixtures, ServerOptions, SwaggerOptions, default_fixtures
from .errors import BootstrapError, HarnessError
from .objects import LayeredMapping, obj_with_no_own_property
from .proxy import reply_with_json
from .routes import RouteDefinition, default_handler
from .server import (
    ServerHandle,
    create_auth_server,
    create_jwt_auth_server,
    create_server,
    create_server_multiple,
)

__all__ = [
    "BootstrapError",
    "CredentialFixtures",
    "HarnessError",
    "LayeredMapping",
    "RouteDefinition",
    "ServerHandle",
    "ServerOptions",
    "SwaggerOptions",
    "ValidationOutcome",
    "create_auth_server",
    "create_jwt_auth_server",
    "create_server",
    "create_server_multiple",
    "default_auth_handler",
    "default_fixtures",
    "default_handler",
    "get_assets_paths",
    "obj_with_no_own_property",
    "reply_with_json",
    "validate_bearer",
    "validate_jwt",
]
