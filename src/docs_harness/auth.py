"""Authentication schemes, strategies and the validators backing them.

A *scheme* is an authentication mechanism (bearer access token, JWT). A
*strategy* is a named, configured instance of a scheme installed on a server.
Routes opt into a strategy by name, or inherit the server default.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyQuery, HTTPAuthorizationCredentials, HTTPBearer

from .config import CredentialFixtures
from .errors import BootstrapError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of a strategy validator."""

    is_valid: bool
    credentials: dict[str, Any] | None = None


@dataclass
class AuthInfo:
    """Resolved authentication state, stored on ``request.state.auth``."""

    strategy: str | None
    credentials: dict[str, Any] | None = None
    is_authenticated: bool = False


def validate_bearer(request: Request | None, token: str, fixtures: CredentialFixtures) -> ValidationOutcome:
    """
    Validate a bearer access token.

    Only ``fixtures.bearer_token`` is accepted; it always maps to the same
    fixed identity.

    Args:
        request: The incoming request (not used for the decision)
        token: Token presented by the client
        fixtures: Credential tables

    Returns:
        ValidationOutcome with the token and user identity when valid
    """
    if token != fixtures.bearer_token:
        return ValidationOutcome(is_valid=False)

    user = dict(fixtures.bearer_user)
    user["groups"] = list(user.get("groups", ()))
    return ValidationOutcome(is_valid=True, credentials={"token": token, "user": user})


def validate_jwt(decoded: dict[str, Any], fixtures: CredentialFixtures) -> ValidationOutcome:
    """
    Validate decoded JWT claims against the identity directory.

    Args:
        decoded: Claims from a token whose signature already checked out
        fixtures: Credential tables holding the identity directory

    Returns:
        ValidationOutcome, valid iff the claimed ``id`` is a known identity
    """
    identity_id = decoded.get("id")
    if isinstance(identity_id, str) and identity_id.isascii() and identity_id.isdigit():
        identity_id = int(identity_id)

    # bool is an int subclass; True would match id 1
    if isinstance(identity_id, bool) or not isinstance(identity_id, int):
        return ValidationOutcome(is_valid=False)

    if identity_id not in fixtures.people:
        return ValidationOutcome(is_valid=False)

    return ValidationOutcome(is_valid=True, credentials=dict(decoded))


async def _run_validator(validate: Callable, *args) -> ValidationOutcome:
    outcome = validate(*args)
    if inspect.isawaitable(outcome):
        outcome = await outcome
    return outcome


def _unauthorized(message: str, error_type: str, strategy: str | None, scheme_label: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "success": False,
            "error": message,
            "error_type": error_type,
            "strategy": strategy,
        },
        headers={"WWW-Authenticate": scheme_label},
    )


class BearerAccessTokenScheme:
    """Bearer token from the Authorization header or an access token query parameter."""

    name = "bearer-access-token"

    def __init__(
        self,
        strategy: str,
        *,
        validate: Callable,
        access_token_name: str = "access_token",
        allow_query_token: bool = True,
    ):
        self.strategy = strategy
        self.validate = validate
        self.access_token_name = access_token_name
        self.allow_query_token = allow_query_token
        self.header = HTTPBearer(auto_error=False, scheme_name=strategy)
        self.query = APIKeyQuery(
            name=access_token_name, auto_error=False, scheme_name=f"{strategy}_query"
        )

    def dependency(self) -> Callable:
        """Build the FastAPI dependency authenticating a request."""
        scheme = self

        async def authenticate(
            request: Request,
            bearer: HTTPAuthorizationCredentials | None = Depends(self.header),
            query_token: str | None = Depends(self.query),
        ) -> AuthInfo:
            token = None
            if bearer and bearer.credentials:
                token = bearer.credentials
            elif scheme.allow_query_token and query_token:
                token = query_token

            if not token:
                logger.debug(f"No bearer token presented for strategy '{scheme.strategy}'")
                raise _unauthorized(
                    "Missing authentication", "authentication_required", scheme.strategy, "Bearer"
                )

            outcome = await _run_validator(scheme.validate, request, token)
            if not outcome.is_valid:
                logger.debug(f"Bearer token rejected by strategy '{scheme.strategy}'")
                raise _unauthorized(
                    "Bad token", "authentication_failed", scheme.strategy, "Bearer"
                )

            auth = AuthInfo(scheme.strategy, outcome.credentials, is_authenticated=True)
            request.state.auth = auth
            return auth

        return authenticate


class JWTScheme:
    """JSON Web Tokens from the Authorization header or a ``token`` query parameter."""

    name = "jwt"

    def __init__(
        self,
        strategy: str,
        *,
        key: str,
        validate: Callable,
        algorithms: list[str] | tuple[str, ...] = ("HS256",),
        url_key: str = "token",
    ):
        if not algorithms:
            raise BootstrapError(f"JWT strategy '{strategy}' needs at least one algorithm")
        self.strategy = strategy
        self.key = key
        self.validate = validate
        self.algorithms = list(algorithms)
        self.header = HTTPBearer(auto_error=False, bearerFormat="JWT", scheme_name=strategy)
        self.query = APIKeyQuery(name=url_key, auto_error=False, scheme_name=f"{strategy}_query")

    def _extract(self, request: Request, bearer, query_token) -> str | None:
        if bearer and bearer.credentials:
            return bearer.credentials
        # Raw token without the "Bearer" prefix
        raw = request.headers.get("authorization", "").strip()
        if raw and " " not in raw:
            return raw
        return query_token or None

    def dependency(self) -> Callable:
        """Build the FastAPI dependency authenticating a request."""
        scheme = self

        async def authenticate(
            request: Request,
            bearer: HTTPAuthorizationCredentials | None = Depends(self.header),
            query_token: str | None = Depends(self.query),
        ) -> AuthInfo:
            token = scheme._extract(request, bearer, query_token)
            if not token:
                raise _unauthorized(
                    "Missing authentication", "authentication_required", scheme.strategy, "Bearer"
                )

            try:
                decoded = jwt.decode(token, scheme.key, algorithms=scheme.algorithms)
            except jwt.InvalidTokenError as e:
                logger.debug(f"JWT rejected by strategy '{scheme.strategy}': {e}")
                raise _unauthorized(
                    "Invalid token", "authentication_failed", scheme.strategy, "Bearer"
                )

            outcome = await _run_validator(scheme.validate, decoded)
            if not outcome.is_valid:
                raise _unauthorized(
                    "Invalid credentials", "authentication_failed", scheme.strategy, "Bearer"
                )

            credentials = outcome.credentials if outcome.credentials is not None else decoded
            auth = AuthInfo(scheme.strategy, credentials, is_authenticated=True)
            request.state.auth = auth
            return auth

        return authenticate


class AuthRegistry:
    """Schemes and strategies installed on one server (``app.state.auth``)."""

    def __init__(self):
        self.schemes: dict[str, type] = {}
        self.strategies: dict[str, Any] = {}
        self.default_strategy: str | None = None
        self._dependencies: dict[str, Callable] = {}

    def register_scheme(self, name: str, factory: type) -> None:
        if name in self.schemes:
            raise BootstrapError(f"Authentication scheme '{name}' already registered")
        self.schemes[name] = factory

    def strategy(self, name: str, scheme: str, **options) -> None:
        """Install a named strategy backed by a registered scheme."""
        if scheme not in self.schemes:
            raise BootstrapError(f"Authentication strategy '{name}' uses unknown scheme '{scheme}'")
        if name in self.strategies:
            raise BootstrapError(f"Authentication strategy '{name}' already defined")
        self.strategies[name] = self.schemes[scheme](name, **options)
        logger.info(f"Installed auth strategy '{name}' (scheme={scheme})", extra={"strategy": name})

    def default(self, name: str) -> None:
        """Make ``name`` the strategy for routes that do not set their own."""
        if name not in self.strategies:
            raise BootstrapError(f"Unknown authentication strategy '{name}'")
        self.default_strategy = name
        logger.info(f"Default auth strategy set to '{name}'", extra={"strategy": name})

    def resolve(self, route_auth: str | bool | None) -> str | None:
        """Return the strategy name a route with ``route_auth`` uses, if any."""
        if route_auth is False:
            return None
        if route_auth is None or route_auth is True:
            return self.default_strategy
        if route_auth not in self.strategies:
            raise BootstrapError(f"Unknown authentication strategy '{route_auth}'")
        return route_auth

    def dependencies_for(self, route_auth: str | bool | None) -> list:
        """FastAPI dependencies enforcing the route's auth requirement."""
        name = self.resolve(route_auth)
        if name is None:
            return []
        if name not in self._dependencies:
            self._dependencies[name] = self.strategies[name].dependency()
        return [Depends(self._dependencies[name])]


def get_auth_registry(app) -> AuthRegistry:
    """Return the app's registry, creating it on first use."""
    registry = getattr(app.state, "auth", None)
    if registry is None:
        registry = AuthRegistry()
        app.state.auth = registry
    return registry


def default_auth_handler(request: Request):
    """
    Echo the authenticated user back to the client.

    Raises:
        HTTPException: 401 naming the attempted strategy when the resolved
            credentials carry no ``user``
    """
    auth = getattr(request.state, "auth", None)
    credentials = auth.credentials if auth else None
    if credentials and credentials.get("user"):
        return credentials["user"]

    strategy = auth.strategy if auth else None
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "success": False,
            "error": "unauthorized access",
            "error_type": "authentication_failed",
            "strategy": strategy,
        },
        headers={"WWW-Authenticate": strategy or "Bearer"},
    )
