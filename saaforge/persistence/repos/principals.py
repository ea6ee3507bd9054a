from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from saaforge.domain.models import Principal, TeamProfile


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_by_email(session: AsyncSession, email: str) -> Principal | None:
    result = await session.execute(
        select(Principal).where(func.lower(Principal.email) == normalize_email(email))
    )
    return result.scalar_one_or_none()


async def get_profile_for_user(session: AsyncSession, user_id: str) -> TeamProfile | None:
    result = await session.execute(select(TeamProfile).where(TeamProfile.user_id == user_id))
    return result.scalar_one_or_none()


async def get_legacy_profile(session: AsyncSession, email: str) -> TeamProfile | None:
    # Legacy profiles were keyed by email and carry no user id.
    result = await session.execute(
        select(TeamProfile)
        .where(
            TeamProfile.user_id.is_(None),
            func.lower(TeamProfile.email) == normalize_email(email),
        )
        .order_by(TeamProfile.created_at.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_profiles(
    session: AsyncSession,
    *,
    approved_only: bool = False,
    public_only: bool = False,
) -> list[TeamProfile]:
    stmt = select(TeamProfile).where(TeamProfile.user_id.is_not(None))
    if approved_only:
        stmt = stmt.where(TeamProfile.is_approved.is_(True))
    if public_only:
        stmt = stmt.where(TeamProfile.is_publicly_visible.is_(True))
    result = await session.execute(stmt.order_by(TeamProfile.created_at.asc()))
    return list(result.scalars().all())


async def list_legacy_duplicates(session: AsyncSession) -> list[TeamProfile]:
    # Email-keyed rows whose email already has a principal-keyed profile.
    keyed = aliased(TeamProfile)
    keyed_emails = select(func.lower(keyed.email)).where(keyed.user_id.is_not(None))
    result = await session.execute(
        select(TeamProfile).where(
            TeamProfile.user_id.is_(None),
            func.lower(TeamProfile.email).in_(keyed_emails),
        )
    )
    return list(result.scalars().all())
