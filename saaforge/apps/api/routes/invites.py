from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.apps.api.deps import get_db, get_optional_principal, require_role
from saaforge.apps.api.openapi import INVITE_ERROR_RESPONSES
from saaforge.apps.api.response import Envelope, success_response
from saaforge.core.errors import TransientStoreFailure
from saaforge.domain.models import InviteCode
from saaforge.persistence.repos import invites as invites_repo
from saaforge.services import invites
from saaforge.services.access import PrincipalContext, Role


router = APIRouter(prefix="/invites", tags=["invites"], responses=INVITE_ERROR_RESPONSES)


class InviteCreateRequest(BaseModel):
    email: str | None = Field(default=None, max_length=320)
    request_id: str | None = None
    ignore_email: bool = False
    ttl_hours: int | None = Field(default=None, ge=1, le=24 * 366)
    code: str | None = Field(default=None, min_length=4, max_length=128)


class InviteStatusResponse(BaseModel):
    code: str
    # Only owners see the bound address; onboarding just needs to know one exists.
    email: str | None = None
    email_bound: bool
    expires_at: datetime


class InviteResponse(BaseModel):
    code: str
    email: str
    ignore_email: bool
    request_id: str | None
    is_used: bool
    used_by: str | None
    used_at: datetime | None
    created_by: str
    created_at: datetime
    expires_at: datetime


class InvitesPage(BaseModel):
    items: list[InviteResponse]
    next_offset: int | None


def _to_response(invite: InviteCode) -> InviteResponse:
    return InviteResponse(
        code=invite.code,
        email=invite.email,
        ignore_email=invite.ignore_email,
        request_id=invite.request_id,
        is_used=invite.is_used,
        used_by=invite.used_by,
        used_at=invite.used_at,
        created_by=invite.created_by,
        created_at=invite.created_at,
        expires_at=invite.expires_at,
    )


@router.get("/{code}", response_model=Envelope[InviteStatusResponse])
async def check_invite_code(
    code: str,
    request: Request,
    principal: PrincipalContext | None = Depends(get_optional_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Onboarding pre-check; the code is only consumed by registration.
    invite = await invites.lookup_invite(db, code=code.strip())
    is_owner = principal is not None and principal.is_owner
    return success_response(
        request=request,
        data=InviteStatusResponse(
            code=invite.code,
            email=invite.email if is_owner else None,
            email_bound=bool(invite.email) and not invite.ignore_email,
            expires_at=invite.expires_at,
        ),
    )


@router.post("", status_code=201, response_model=Envelope[InviteResponse])
async def create_invite_code(
    payload: InviteCreateRequest,
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    invite = await invites.create_invite(
        db,
        actor=principal,
        email=payload.email,
        request_id=payload.request_id,
        ignore_email=payload.ignore_email,
        ttl_hours=payload.ttl_hours,
        code=payload.code,
    )
    return success_response(request=request, data=_to_response(invite))


@router.get("", response_model=Envelope[InvitesPage])
async def list_invite_codes(
    request: Request,
    include_used: bool = True,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    try:
        rows = await invites_repo.list_invites(db, include_used=include_used, offset=offset, limit=limit + 1)
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Invite codes unavailable") from exc
    next_offset = None
    if len(rows) > limit:
        rows = rows[:limit]
        next_offset = offset + limit
    return success_response(
        request=request,
        data=InvitesPage(items=[_to_response(row) for row in rows], next_offset=next_offset),
    )
