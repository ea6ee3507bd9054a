from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.apps.api.deps import get_db, get_raw_token, require_principal
from saaforge.apps.api.openapi import INVITE_ERROR_RESPONSES
from saaforge.apps.api.response import Envelope, success_response
from saaforge.services import identity, invites
from saaforge.services.access import PrincipalContext


router = APIRouter(prefix="/auth", tags=["auth"], responses=INVITE_ERROR_RESPONSES)


class RegisterRequest(BaseModel):
    code: str = Field(min_length=1, max_length=128)
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=1024)


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=1024)


class PrincipalResponse(BaseModel):
    principal_id: str
    email: str
    role: str
    is_approved: bool


class SessionResponse(BaseModel):
    token: str
    principal: PrincipalResponse


class LogoutResponse(BaseModel):
    revoked: bool


def _principal_payload(principal: PrincipalContext) -> PrincipalResponse:
    return PrincipalResponse(
        principal_id=principal.principal_id,
        email=principal.email,
        role=principal.role.value,
        is_approved=principal.is_approved,
    )


@router.post("/register", status_code=201, response_model=Envelope[SessionResponse])
async def register(
    payload: RegisterRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Invite-only onboarding: the code is consumed, then the new member is signed in.
    await invites.redeem(db, code=payload.code.strip(), email=payload.email, password=payload.password)
    token, principal = await identity.login(db, email=payload.email, password=payload.password)
    return success_response(
        request=request,
        data=SessionResponse(token=token, principal=_principal_payload(principal)),
    )


@router.post("/login", response_model=Envelope[SessionResponse])
async def login(
    payload: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict:
    token, principal = await identity.login(db, email=payload.email, password=payload.password)
    return success_response(
        request=request,
        data=SessionResponse(token=token, principal=_principal_payload(principal)),
    )


@router.post("/logout", response_model=Envelope[LogoutResponse])
async def logout(
    request: Request,
    principal: PrincipalContext = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    raw_token = get_raw_token(request)
    revoked = await identity.logout(db, raw_token=raw_token) if raw_token else False
    return success_response(request=request, data=LogoutResponse(revoked=revoked))


@router.get("/me", response_model=Envelope[PrincipalResponse])
async def me(
    request: Request,
    principal: PrincipalContext = Depends(require_principal),
) -> dict:
    return success_response(request=request, data=_principal_payload(principal))
