from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from saaforge.apps.api.response import error_response
from saaforge.core.config import get_settings
from saaforge.core.errors import Forbidden, SaaforgeError, Unauthenticated


logger = logging.getLogger(__name__)

# Framework-raised errors (unknown route, wrong method) still get a stable code.
_HTTP_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "AUTH_UNAUTHORIZED",
    403: "AUTH_FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


async def saaforge_exception_handler(request: Request, exc: SaaforgeError) -> JSONResponse:
    # Auth failures carry the single navigation target the client should follow.
    settings = get_settings()
    details = dict(exc.details)
    headers: dict[str, str] | None = None
    if isinstance(exc, Unauthenticated):
        details.setdefault("redirect_to", settings.login_redirect_path)
        headers = {"WWW-Authenticate": "Bearer"}
    elif isinstance(exc, Forbidden):
        details.setdefault("redirect_to", settings.home_redirect_path)
    if exc.status_code >= 500:
        logger.warning("request_failed code=%s path=%s", exc.code, request.url.path, exc_info=exc.__cause__)
    payload = error_response(request=request, code=exc.code, message=exc.message, details=details or None)
    return JSONResponse(content=payload, status_code=exc.status_code, headers=headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Covers fastapi.HTTPException too, which subclasses Starlette's.
    code = _HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    payload = error_response(request=request, code=code, message=message)
    return JSONResponse(content=payload, status_code=exc.status_code, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: list[dict[str, Any]] = [
        {"loc": list(item.get("loc", ())), "msg": item.get("msg", ""), "type": item.get("type", "")}
        for item in exc.errors()
    ]
    payload = error_response(
        request=request,
        code="REQUEST_VALIDATION_ERROR",
        message="Validation error",
        details={"errors": errors},
    )
    return JSONResponse(content=payload, status_code=422)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Never leak stack traces to clients.
    logger.exception("unhandled_exception path=%s", request.url.path, exc_info=exc)
    payload = error_response(request=request, code="INTERNAL_ERROR", message="Internal server error")
    return JSONResponse(content=payload, status_code=500)
