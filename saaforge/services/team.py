from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.core.errors import Forbidden, NotFound, TransientStoreFailure, ValidationFailed
from saaforge.domain.models import Principal, TeamProfile
from saaforge.persistence.repos import principals as principals_repo
from saaforge.services.access import PrincipalContext, Role, normalize_role
from saaforge.services.audit import record_audit
from saaforge.services.identity import resolve_team_profile


logger = logging.getLogger(__name__)

# Fields a member may edit on their own profile.
PROFILE_FIELDS = (
    "name",
    "title",
    "bio",
    "profile_picture",
    "skills",
    "interests",
    "achievements",
    "portfolio_links",
    "social_links",
    "visibility",
    "is_publicly_visible",
)

# Directory fields gated by the visibility map; name is always shown.
_GATED_FIELDS = ("title", "bio", "profile_picture", "skills", "interests", "achievements", "portfolio_links", "social_links")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def profile_payload(profile: TeamProfile) -> dict[str, Any]:
    return {
        "id": profile.id,
        "user_id": profile.user_id,
        "email": profile.email,
        "name": profile.name,
        "title": profile.title,
        "bio": profile.bio,
        "profile_picture": profile.profile_picture,
        "skills": list(profile.skills or []),
        "interests": list(profile.interests or []),
        "achievements": list(profile.achievements or []),
        "portfolio_links": list(profile.portfolio_links or []),
        "social_links": dict(profile.social_links or {}),
        "visibility": dict(profile.visibility or {}),
        "is_publicly_visible": profile.is_publicly_visible,
        "is_approved": profile.is_approved,
    }


def public_view(profile: TeamProfile) -> dict[str, Any]:
    # Strip every field the member has not marked visible; email never leaves the directory.
    visibility = profile.visibility or {}
    payload = profile_payload(profile)
    view: dict[str, Any] = {"id": profile.id, "name": payload["name"]}
    for field in _GATED_FIELDS:
        if visibility.get(field, False):
            view[field] = payload[field]
    return view


async def _load_principal(session: AsyncSession, principal_id: str) -> Principal:
    try:
        principal = await session.get(Principal, principal_id)
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Principal lookup unavailable") from exc
    if principal is None:
        raise NotFound("Principal not found", principal_id=principal_id)
    return principal


async def get_own_profile(session: AsyncSession, *, actor: PrincipalContext) -> TeamProfile:
    principal = await _load_principal(session, actor.principal_id)
    try:
        profile = await resolve_team_profile(session, principal)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure("Profile unavailable") from exc
    if profile is None:
        raise NotFound("Team profile not found")
    return profile


async def update_own_profile(session: AsyncSession, *, actor: PrincipalContext, **fields: Any) -> TeamProfile:
    unknown = set(fields) - set(PROFILE_FIELDS)
    if unknown:
        raise ValidationFailed("Unknown profile fields", fields=sorted(unknown))
    profile = await get_own_profile(session, actor=actor)
    for key, value in fields.items():
        setattr(profile, key, value)
    profile.updated_at = _utc_now()
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure("Profile could not be saved") from exc
    return profile


async def public_directory(session: AsyncSession) -> list[dict[str, Any]]:
    try:
        profiles = await principals_repo.list_profiles(session, approved_only=True, public_only=True)
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Team directory unavailable") from exc
    return [public_view(profile) for profile in profiles]


async def list_members(session: AsyncSession, *, actor: PrincipalContext | None) -> list[TeamProfile]:
    if actor is None or not actor.is_owner:
        raise Forbidden("Only owners can list all members")
    try:
        return await principals_repo.list_profiles(session)
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Team members unavailable") from exc


async def set_member_status(
    session: AsyncSession,
    *,
    actor: PrincipalContext | None,
    principal_id: str,
    is_approved: bool | None = None,
    role: str | None = None,
) -> Principal:
    """Owner-only change of a member's approval flag or stored role.

    This is the only path that changes a principal's role after
    registration.
    """
    if actor is None or not actor.is_owner:
        raise Forbidden("Only owners can change member status")
    new_role: Role | None = None
    if role is not None:
        try:
            new_role = normalize_role(role)
        except ValueError as exc:
            raise ValidationFailed(str(exc), role=role) from exc

    principal = await _load_principal(session, principal_id)
    changes: dict[str, Any] = {}
    try:
        if new_role is not None and principal.role != new_role.value:
            changes["role"] = {"from": principal.role, "to": new_role.value}
            principal.role = new_role.value
            principal.updated_at = _utc_now()
        if is_approved is not None:
            profile = await resolve_team_profile(session, principal)
            if profile is None:
                raise NotFound("Team profile not found", principal_id=principal_id)
            if profile.is_approved != is_approved:
                changes["is_approved"] = {"from": profile.is_approved, "to": is_approved}
                profile.is_approved = is_approved
                profile.updated_at = _utc_now()
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure("Member status could not be saved") from exc

    if changes:
        logger.info("member_status_changed principal_id=%s fields=%s", principal_id, ",".join(sorted(changes)))
        await record_audit(
            action="user.updated",
            performed_by=actor.principal_id,
            target_id=principal_id,
            target_type="principal",
            details={"email": principal.email, "changes": changes},
        )
    return principal
