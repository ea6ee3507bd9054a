from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.domain.models import UserNotification


async def get_watermarks(session: AsyncSession, user_id: str) -> dict[str, datetime]:
    # populate_existing: watermark rows are advanced with bulk UPDATEs that bypass the identity map.
    result = await session.execute(
        select(UserNotification)
        .where(UserNotification.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return {row.feed: row.last_viewed_at for row in result.scalars().all()}


async def get_watermark(session: AsyncSession, *, user_id: str, feed: str) -> datetime | None:
    result = await session.execute(
        select(UserNotification.last_viewed_at).where(
            UserNotification.user_id == user_id,
            UserNotification.feed == feed,
        )
    )
    return result.scalar_one_or_none()


async def advance_watermark(
    session: AsyncSession,
    *,
    user_id: str,
    feed: str,
    viewed_at: datetime,
) -> bool:
    # Only move forward; an older timestamp leaves the stored value untouched.
    result = await session.execute(
        update(UserNotification)
        .where(
            UserNotification.user_id == user_id,
            UserNotification.feed == feed,
            UserNotification.last_viewed_at < viewed_at,
        )
        .values(last_viewed_at=viewed_at, updated_at=viewed_at)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0) == 1
