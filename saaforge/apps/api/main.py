from __future__ import annotations

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from starlette.exceptions import HTTPException as StarletteHTTPException

from saaforge.apps.api.errors import (
    http_exception_handler,
    saaforge_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from saaforge.apps.api.response import API_VERSION
from saaforge.apps.api.routes.access import router as access_router
from saaforge.apps.api.routes.audit import router as audit_router
from saaforge.apps.api.routes.auth import router as auth_router
from saaforge.apps.api.routes.content import router as content_router
from saaforge.apps.api.routes.feedback import router as feedback_router
from saaforge.apps.api.routes.health import router as health_router
from saaforge.apps.api.routes.invites import router as invites_router
from saaforge.apps.api.routes.notifications import router as notifications_router
from saaforge.apps.api.routes.projects import router as projects_router
from saaforge.apps.api.routes.tasks import router as tasks_router
from saaforge.apps.api.routes.team import router as team_router
from saaforge.apps.api.routes.workflows import router as workflows_router
from saaforge.core.config import get_settings
from saaforge.core.errors import SaaforgeError
from saaforge.core.logging import configure_logging


logger = logging.getLogger(__name__)

_PUBLIC_PATHS = {
    "/v1/health",
    "/v1/auth/register",
    "/v1/auth/login",
    "/v1/invites/{code}",
    "/v1/access/check",
    "/v1/join-requests",
    "/v1/orders",
    "/v1/team",
    "/v1/content",
    "/v1/content/{section}",
}


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title=f"{settings.app_name} API")

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        logger.info(
            "request_completed method=%s path=%s status=%s latency_ms=%.1f request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            latency_ms,
            request_id,
        )
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    @app.exception_handler(SaaforgeError)
    async def _saaforge_exception_handler(request: Request, exc: SaaforgeError):
        return await saaforge_exception_handler(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    # Mount versioned v1 API routes.
    for router in (
        health_router,
        auth_router,
        access_router,
        invites_router,
        workflows_router,
        projects_router,
        feedback_router,
        tasks_router,
        team_router,
        content_router,
        audit_router,
        notifications_router,
    ):
        app.include_router(router, prefix=f"/{API_VERSION}")

    def custom_openapi() -> dict:
        # Inject bearer auth into the schema for every non-public route.
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(title=f"{settings.app_name} API", version=API_VERSION, routes=app.routes)
        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes["BearerAuth"] = {"type": "http", "scheme": "bearer"}
        for path, operations in schema.get("paths", {}).items():
            if path in _PUBLIC_PATHS:
                continue
            for operation in operations.values():
                operation.setdefault("security", [{"BearerAuth": []}])
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
