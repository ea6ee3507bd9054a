from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.apps.api.deps import get_db, require_principal, require_role
from saaforge.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from saaforge.apps.api.response import success_response
from saaforge.services import team
from saaforge.services.access import PrincipalContext, Role


router = APIRouter(prefix="/team", tags=["team"], responses=DEFAULT_ERROR_RESPONSES)


class ProfileUpdate(BaseModel):
    name: str | None = None
    title: str | None = None
    bio: str | None = None
    profile_picture: str | None = None
    skills: list[str] | None = None
    interests: list[str] | None = None
    achievements: list[str] | None = None
    portfolio_links: list[str] | None = None
    social_links: dict[str, Any] | None = None
    visibility: dict[str, bool] | None = None
    is_publicly_visible: bool | None = None


class MemberStatusUpdate(BaseModel):
    is_approved: bool | None = None
    role: str | None = None


@router.get("")
async def team_directory(request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    return success_response(request=request, data=await team.public_directory(db))


@router.get("/me")
async def get_my_profile(
    request: Request,
    principal: PrincipalContext = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    profile = await team.get_own_profile(db, actor=principal)
    return success_response(request=request, data=team.profile_payload(profile))


@router.patch("/me")
async def update_my_profile(
    payload: ProfileUpdate,
    request: Request,
    principal: PrincipalContext = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    fields = payload.model_dump(exclude_unset=True, exclude_none=True)
    profile = await team.update_own_profile(db, actor=principal, **fields)
    return success_response(request=request, data=team.profile_payload(profile))


@router.get("/members")
async def list_team_members(
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    profiles = await team.list_members(db, actor=principal)
    return success_response(request=request, data=[team.profile_payload(profile) for profile in profiles])


@router.patch("/members/{principal_id}")
async def update_member_status(
    principal_id: str,
    payload: MemberStatusUpdate,
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    member = await team.set_member_status(
        db,
        actor=principal,
        principal_id=principal_id,
        is_approved=payload.is_approved,
        role=payload.role,
    )
    return success_response(
        request=request,
        data={"principal_id": member.id, "email": member.email, "role": member.role},
    )
