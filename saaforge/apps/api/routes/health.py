from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from saaforge.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from saaforge.apps.api.response import Envelope, success_response

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str


@router.get("/health", response_model=Envelope[HealthResponse])
async def health(request: Request) -> dict:
    return success_response(request=request, data=HealthResponse(status="ok"))
