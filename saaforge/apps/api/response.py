from __future__ import annotations

from typing import Any, Generic, TypeVar
from uuid import uuid4

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel


API_VERSION = "v1"

T = TypeVar("T")


class Meta(BaseModel):
    request_id: str
    api_version: str = API_VERSION


class Envelope(BaseModel, Generic[T]):
    """Body of every successful portal response."""

    data: T
    meta: Meta


def _meta(request: Request) -> dict[str, Any]:
    # The middleware stamps request.state first; handlers that run outside it fall back to the header.
    request_id = getattr(request.state, "request_id", None) or request.headers.get("X-Request-Id")
    if not request_id:
        request_id = str(uuid4())
        request.state.request_id = request_id
    return Meta(request_id=request_id).model_dump()


def success_response(*, request: Request, data: Any) -> dict[str, Any]:
    return {"data": jsonable_encoder(data), "meta": _meta(request)}


def error_response(
    *,
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = jsonable_encoder(details)
    return {"error": error, "meta": _meta(request)}
