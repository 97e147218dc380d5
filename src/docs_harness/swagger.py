"""Documentation plugin: OpenAPI document, documentation page and Swagger UI assets.

The plugin documents the routes tagged with its route tag (``"api"`` unless
``route_tag`` is set). It can be registered several times on one server as
long as each registration uses its own prefix.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.openapi.utils import get_openapi
from fastapi.routing import APIRoute
from starlette.staticfiles import StaticFiles

from .auth import get_auth_registry
from .capabilities import Plugin
from .config import SwaggerOptions

logger = logging.getLogger(__name__)

SWAGGER_JS_CDN = "https://cdn.jsdelivr.net/npm/swagger-ui-dist@5/swagger-ui-bundle.js"
SWAGGER_CSS_CDN = "https://cdn.jsdelivr.net/npm/swagger-ui-dist@5/swagger-ui.css"

DOCUMENTATION_TEMPLATE = "documentation.html"


def documented_routes(app: FastAPI, tag: str) -> list[APIRoute]:
    """Routes visible in the schema and tagged with ``tag``."""
    return [
        route
        for route in app.routes
        if isinstance(route, APIRoute) and route.include_in_schema and tag in (route.tags or [])
    ]


def build_openapi(app: FastAPI, options: SwaggerOptions) -> dict[str, Any]:
    """Generate the OpenAPI document for one plugin registration."""
    return get_openapi(
        title=options.info.title,
        version=options.info.version,
        description=options.info.description,
        routes=documented_routes(app, options.effective_tag),
    )


def asset_urls(options: SwaggerOptions, base: str) -> dict[str, str]:
    """URLs of the stylesheet and script bundle the documentation page loads."""
    if options.swagger_ui and options.assets_dir:
        ui_path = f"{base}{options.swagger_ui_path.rstrip('/')}"
        return {
            "css_url": f"{ui_path}/swagger-ui.css",
            "js_url": f"{ui_path}/swagger-ui-bundle.js",
        }
    return {"css_url": SWAGGER_CSS_CDN, "js_url": SWAGGER_JS_CDN}


async def _setup_swagger(app: FastAPI, options: SwaggerOptions | dict | None, prefix: str) -> None:
    if options is None:
        options = SwaggerOptions()
    elif not isinstance(options, SwaggerOptions):
        options = SwaggerOptions(**options)

    dependencies = get_auth_registry(app).dependencies_for(options.auth)
    name_suffix = prefix.strip("/") or "root"

    async def swagger_json() -> dict[str, Any]:
        return build_openapi(app, options)

    app.add_api_route(
        f"{prefix}{options.json_path}",
        swagger_json,
        methods=["GET"],
        include_in_schema=False,
        dependencies=dependencies,
        name=f"swagger_json_{name_suffix}",
    )

    if options.documentation_page:
        async def documentation(request: Request):
            base = f"{request.scope.get('root_path', '')}{prefix}"
            context = {
                "title": options.info.title,
                "json_url": f"{base}{options.json_path}",
                **asset_urls(options, base),
            }
            return request.app.state.templates.TemplateResponse(
                request, DOCUMENTATION_TEMPLATE, context
            )

        app.add_api_route(
            f"{prefix}{options.documentation_path}",
            documentation,
            methods=["GET"],
            include_in_schema=False,
            dependencies=dependencies,
            name=f"swagger_documentation_{name_suffix}",
        )

    if options.swagger_ui and options.assets_dir:
        ui_path = f"{prefix}{options.swagger_ui_path.rstrip('/')}"
        app.mount(ui_path, StaticFiles(directory=options.assets_dir), name=f"swaggerui_{name_suffix}")

    logger.info(
        f"Documentation plugin mounted at '{prefix or '/'}' "
        f"(tag={options.effective_tag}, json={prefix}{options.json_path})"
    )


swagger_plugin = Plugin("swagger", _setup_swagger, dependencies=("templating",))
