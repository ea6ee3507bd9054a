from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.domain.models import InviteCode


async def get_invite(session: AsyncSession, code: str) -> InviteCode | None:
    result = await session.execute(select(InviteCode).where(InviteCode.code == code))
    return result.scalar_one_or_none()


async def list_invites(
    session: AsyncSession,
    *,
    include_used: bool = True,
    offset: int = 0,
    limit: int = 50,
) -> list[InviteCode]:
    stmt = select(InviteCode)
    if not include_used:
        stmt = stmt.where(InviteCode.is_used.is_(False))
    stmt = stmt.order_by(InviteCode.created_at.desc()).offset(offset).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def claim_invite(
    session: AsyncSession,
    *,
    code: str,
    used_by: str,
    used_at: datetime,
) -> bool:
    # Compare-and-set on is_used: exactly one concurrent claimant sees an affected row.
    result = await session.execute(
        update(InviteCode)
        .where(InviteCode.code == code, InviteCode.is_used.is_(False))
        .values(is_used=True, used_by=used_by, used_at=used_at)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0) == 1
