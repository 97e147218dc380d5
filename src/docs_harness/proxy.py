"""Upstream proxying for harness routes and the JSON relay adapter."""

import inspect
import json
import logging
from typing import Any, Callable

import httpx
from fastapi import HTTPException, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)

# Hop-by-hop headers never forwarded in either direction
HOP_BY_HOP_HEADERS = frozenset(
    [
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "host",
        "content-length",
    ]
)


class ProxyOptions(BaseModel):
    """Options of a ``{"proxy": {...}}`` route handler."""

    uri: str | None = Field(None, description="Upstream URI, may contain {path}")
    host: str | None = Field(None, description="Upstream host when uri is not given")
    port: int | None = Field(None, ge=1, le=65535)
    protocol: str = Field("http", pattern="^https?$")
    pass_through: bool = Field(False, description="Forward request headers upstream")
    on_response: Callable | None = Field(
        None, description="async (error, response) -> value sent back as JSON"
    )

    @model_validator(mode="after")
    def check_target(self):
        if not self.uri and not self.host:
            raise ValueError("proxy handler needs either 'uri' or 'host'")
        return self

    def upstream_url(self, request: Request) -> str:
        """Resolve the upstream URL for an incoming request."""
        path = request.url.path
        if self.uri:
            url = self.uri.replace("{path}", path)
        else:
            port = f":{self.port}" if self.port else ""
            url = f"{self.protocol}://{self.host}{port}{path}"
        if request.url.query:
            url = f"{url}?{request.url.query}"
        return url


async def reply_with_json(error: Exception | None, response: httpx.Response) -> Any:
    """
    Read a proxied upstream response and return its parsed JSON body.

    Args:
        error: Transport error from the upstream call, if any
        response: The upstream response

    Returns:
        Parsed JSON value

    Raises:
        The transport error when one is given, ``json.JSONDecodeError``
        when the body is not JSON
    """
    if error is not None:
        raise error
    body = await response.aread()
    return json.loads(body)


def _forward_headers(headers) -> dict[str, str]:
    return {k: v for k, v in headers.items() if k.lower() not in HOP_BY_HOP_HEADERS}


def _response_headers(headers) -> dict[str, str]:
    # httpx has already decoded the body
    forwarded = _forward_headers(headers)
    return {k: v for k, v in forwarded.items() if k.lower() not in ("content-encoding", "content-type")}


def proxy_handler(options: ProxyOptions | dict) -> Callable:
    """Build a route endpoint relaying requests to the configured upstream."""
    if not isinstance(options, ProxyOptions):
        options = ProxyOptions(**options)

    async def handler(request: Request) -> Response:
        client: httpx.AsyncClient = request.app.state.proxy_client
        url = options.upstream_url(request)
        headers = _forward_headers(request.headers) if options.pass_through else {}

        error = None
        upstream = None
        try:
            upstream = await client.request(
                request.method, url, headers=headers, content=await request.body()
            )
            logger.debug(f"Proxied {request.method} {request.url.path} -> {url} ({upstream.status_code})")
        except httpx.HTTPError as e:
            logger.warning(f"Upstream request to {url} failed: {e}")
            error = e

        if options.on_response is not None:
            try:
                payload = options.on_response(error, upstream)
                if inspect.isawaitable(payload):
                    payload = await payload
            except httpx.HTTPError as e:
                raise HTTPException(
                    status_code=status.HTTP_502_BAD_GATEWAY,
                    detail=f"Upstream request failed: {e}",
                )
            return JSONResponse(jsonable_encoder(payload))

        if error is not None:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Upstream request failed: {error}",
            )

        return Response(
            content=upstream.content,
            status_code=upstream.status_code,
            headers=_response_headers(upstream.headers) if options.pass_through else None,
            media_type=upstream.headers.get("content-type"),
        )

    return handler
