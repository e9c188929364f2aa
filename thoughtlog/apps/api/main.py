from __future__ import annotations

from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from thoughtlog.apps.api.errors import (
    http_exception_handler,
    not_found_exception_handler,
    owner_predicate_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from thoughtlog.apps.api.response import API_VERSION
from thoughtlog.apps.api.routes.health import router as health_router
from thoughtlog.apps.api.routes.me import router as me_router
from thoughtlog.apps.api.routes.tags import router as tags_router
from thoughtlog.apps.api.routes.thoughts import router as thoughts_router
from thoughtlog.core.config import get_settings
from thoughtlog.core.errors import NotFoundError
from thoughtlog.core.logging import configure_logging
from thoughtlog.persistence.guards import OwnerPredicateError
from thoughtlog.services.auth.firebase import FirebaseTokenVerifier, RemoteKeySet


def build_token_verifier() -> FirebaseTokenVerifier:
    settings = get_settings()
    key_set = RemoteKeySet(settings.firebase_jwks_url, cache_ttl_s=settings.firebase_jwks_cache_ttl_s)
    return FirebaseTokenVerifier(
        project_id=settings.firebase_project_id,
        key_set=key_set,
        clock_skew_s=settings.firebase_clock_skew_s,
    )


def create_app(*, token_verifier: FirebaseTokenVerifier | None = None) -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title=settings.app_name)
    app.state.token_verifier = token_verifier or build_token_verifier()

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers.setdefault("X-Request-Id", request_id)
        response.headers.setdefault("Cache-Control", "no-store")
        return response

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(NotFoundError, not_found_exception_handler)
    app.add_exception_handler(OwnerPredicateError, owner_predicate_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(me_router, prefix=f"/{API_VERSION}")
    app.include_router(thoughts_router, prefix=f"/{API_VERSION}")
    app.include_router(tags_router, prefix=f"/{API_VERSION}")

    @app.get("/v1/openapi.json", include_in_schema=False)
    async def openapi_json() -> JSONResponse:
        return JSONResponse(app.openapi())

    @app.get("/v1/docs", include_in_schema=False)
    async def v1_docs() -> HTMLResponse:
        return get_swagger_ui_html(openapi_url="/v1/openapi.json", title=f"{settings.app_name} v1")

    def custom_openapi() -> dict:
        # Inject bearer auth into every route except the liveness probe.
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(title=settings.app_name, version=API_VERSION, routes=app.routes)
        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes["BearerAuth"] = {"type": "http", "scheme": "bearer"}
        for path, operations in schema.get("paths", {}).items():
            if path == "/v1/health":
                continue
            for operation in operations.values():
                operation.setdefault("security", [{"BearerAuth": []}])
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
