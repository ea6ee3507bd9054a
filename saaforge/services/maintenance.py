from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.domain.models import InviteCode, Principal, TeamProfile
from saaforge.persistence.repos import principals as principals_repo
from saaforge.services.access import Role, normalize_role
from saaforge.services.auth.passwords import hash_password
from saaforge.services.invites import DEFAULT_VISIBILITY


DEFAULT_WILDCARD_CODE = "join@sasforge_02"
WILDCARD_TTL_DAYS = 365


async def cleanup_duplicate_profiles(session: AsyncSession, *, dry_run: bool = False) -> list[str]:
    # Remove legacy email-keyed profiles once a principal-keyed profile exists for the same email.
    duplicates = await principals_repo.list_legacy_duplicates(session)
    ids = [profile.id for profile in duplicates]
    if ids and not dry_run:
        await session.execute(delete(TeamProfile).where(TeamProfile.id.in_(ids)))
    return ids


async def upsert_wildcard_invite(
    session: AsyncSession,
    *,
    code: str = DEFAULT_WILDCARD_CODE,
    ttl_days: int = WILDCARD_TTL_DAYS,
    created_by: str = "script",
    now: datetime | None = None,
) -> InviteCode:
    # Re-running resets the code to unused with a fresh expiry.
    current = now or datetime.now(timezone.utc)
    invite = await session.get(InviteCode, code)
    if invite is None:
        invite = InviteCode(code=code)
        session.add(invite)
    invite.email = ""
    invite.request_id = None
    invite.ignore_email = True
    invite.is_used = False
    invite.used_by = None
    invite.used_at = None
    invite.created_by = created_by
    invite.created_at = current
    invite.expires_at = current + timedelta(days=ttl_days)
    await session.flush()
    return invite


async def create_principal(
    session: AsyncSession,
    *,
    email: str,
    password: str,
    role: str = Role.OWNER.value,
    approved: bool = True,
) -> Principal:
    """Create or update a principal with the given password and role.

    Team principals also get a profile so they pass the approval gate when
    ``approved`` is set.
    """
    normalized_role = normalize_role(role)
    normalized_email = principals_repo.normalize_email(email)
    password_hash, password_salt = hash_password(password)
    principal = await principals_repo.get_by_email(session, normalized_email)
    if principal is None:
        principal = Principal(email=normalized_email)
        session.add(principal)
    principal.password_hash = password_hash
    principal.password_salt = password_salt
    principal.role = normalized_role.value
    await session.flush()

    if normalized_role is Role.TEAM:
        profile = await principals_repo.get_profile_for_user(session, principal.id)
        if profile is None:
            session.add(
                TeamProfile(
                    user_id=principal.id,
                    email=normalized_email,
                    visibility=dict(DEFAULT_VISIBILITY),
                    is_approved=approved,
                )
            )
        else:
            profile.is_approved = approved
        await session.flush()
    return principal
