from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from saaforge.apps.api.response import Meta


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    error: ErrorBody
    meta: Meta


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _response(description: str, example: dict[str, Any]) -> dict[str, Any]:
    return {
        "model": ErrorResponse,
        "description": description,
        "content": {"application/json": {"example": example}},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: _response("Bad request", _error_example(code="VALIDATION_FAILED", message="Unknown notification feed: inbox")),
    401: _response(
        "Unauthorized",
        _error_example(
            code="AUTH_UNAUTHORIZED",
            message="Sign in to continue",
            details={"redirect_to": "/login"},
        ),
    ),
    403: _response(
        "Forbidden",
        _error_example(
            code="AUTH_FORBIDDEN",
            message="Insufficient role for this page",
            details={"redirect_to": "/"},
        ),
    ),
    404: _response("Not found", _error_example(code="NOT_FOUND", message="Resource not found")),
    409: _response(
        "Conflict",
        _error_example(
            code="INVALID_TRANSITION",
            message="Cannot move application from approved to pending",
            details={"from_status": "approved", "to_status": "pending"},
        ),
    ),
    422: _response("Validation error", _error_example(code="REQUEST_VALIDATION_ERROR", message="Validation error")),
    500: _response("Internal server error", _error_example(code="INTERNAL_ERROR", message="Internal server error")),
    503: _response("Store unavailable", _error_example(code="STORE_UNAVAILABLE", message="Authentication unavailable")),
}

INVITE_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    **DEFAULT_ERROR_RESPONSES,
    410: _response("Invite expired", _error_example(code="INVITE_EXPIRED", message="Invite code has expired")),
}
