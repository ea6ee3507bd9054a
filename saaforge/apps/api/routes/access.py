from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from saaforge.apps.api.deps import get_optional_principal
from saaforge.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from saaforge.apps.api.response import Envelope, success_response
from saaforge.services.access import PrincipalContext, Role, authorize


router = APIRouter(prefix="/access", tags=["access"], responses=DEFAULT_ERROR_RESPONSES)


class AccessDecisionResponse(BaseModel):
    allowed: bool
    redirect_to: str | None
    role: str | None
    is_approved: bool


@router.get("/check", response_model=Envelope[AccessDecisionResponse])
async def check_access(
    request: Request,
    required_role: Role | None = None,
    path: str | None = None,
    principal: PrincipalContext | None = Depends(get_optional_principal),
) -> dict:
    # The client performs the returned redirect itself; None means stay put.
    decision = authorize(principal, required_role)
    return success_response(
        request=request,
        data=AccessDecisionResponse(
            allowed=decision.allowed,
            redirect_to=decision.redirect_for(path),
            role=principal.role.value if principal else None,
            is_approved=principal.is_approved if principal else False,
        ),
    )
