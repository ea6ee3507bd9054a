from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.core.errors import TransientStoreFailure, ValidationFailed
from saaforge.domain.models import (
    JoinRequest,
    Order,
    Project,
    ProjectApplication,
    ProjectFeedback,
    ProjectIdea,
    SiteContent,
    Task,
    TeamProfile,
    UserNotification,
)
from saaforge.persistence.repos import audit as audit_repo
from saaforge.persistence.repos import notifications as notifications_repo
from saaforge.services.access import PrincipalContext, Role


logger = logging.getLogger(__name__)

FEEDS = (
    "requests",
    "applications",
    "ideas",
    "orders",
    "feedback",
    "projects",
    "tasks",
    "team",
    "content",
    "audit",
)

# Feeds each role sees badges for; users have none.
ROLE_FEEDS: dict[Role, tuple[str, ...]] = {
    Role.OWNER: ("requests", "applications", "ideas", "orders", "feedback", "team", "content", "audit"),
    Role.TEAM: ("projects", "tasks", "feedback"),
    Role.USER: (),
}

# Feeds that map straight onto one timestamp column.
_FEED_COLUMNS = {
    "requests": JoinRequest.created_at,
    "applications": ProjectApplication.created_at,
    "ideas": ProjectIdea.created_at,
    "orders": Order.created_at,
    "feedback": ProjectFeedback.created_at,
    "content": SiteContent.updated_at,
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def validate_feed(feed: str) -> str:
    if feed not in FEEDS:
        raise ValidationFailed(f"Unknown notification feed: {feed}", feed=feed)
    return feed


def count_unread(watermark: datetime | None, timestamps: Iterable[datetime | None]) -> int:
    # Items without a timestamp, and everything before the first view, count as unread.
    if watermark is None:
        return sum(1 for _ in timestamps)
    return sum(1 for ts in timestamps if ts is None or ts > watermark)


async def mark_viewed(
    session: AsyncSession,
    *,
    user_id: str,
    feed: str,
    now: datetime | None = None,
) -> bool:
    """Advance the user's watermark for ``feed`` to ``now``.

    The stored value only moves forward. Store failures are logged and
    reported through the return value, never raised.
    """
    validate_feed(feed)
    viewed_at = now or _utc_now()
    try:
        advanced = await notifications_repo.advance_watermark(
            session, user_id=user_id, feed=feed, viewed_at=viewed_at
        )
        if not advanced:
            existing = await notifications_repo.get_watermark(session, user_id=user_id, feed=feed)
            if existing is None:
                try:
                    session.add(
                        UserNotification(
                            user_id=user_id,
                            feed=feed,
                            last_viewed_at=viewed_at,
                            updated_at=viewed_at,
                        )
                    )
                    await session.flush()
                except IntegrityError:
                    # Another request created the row first; advance that one instead.
                    await session.rollback()
                    await notifications_repo.advance_watermark(
                        session, user_id=user_id, feed=feed, viewed_at=viewed_at
                    )
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.warning("notification_mark_viewed_failed user_id=%s feed=%s", user_id, feed, exc_info=exc)
        return False
    return True


async def unread_count(
    session: AsyncSession,
    *,
    user_id: str,
    feed: str,
    timestamps: Iterable[datetime | None],
) -> int:
    validate_feed(feed)
    watermark = await notifications_repo.get_watermark(session, user_id=user_id, feed=feed)
    return count_unread(watermark, timestamps)


async def _feed_timestamps(session: AsyncSession, feed: str, principal: PrincipalContext) -> list[datetime | None]:
    if feed == "team":
        result = await session.execute(select(TeamProfile.created_at).where(TeamProfile.user_id.is_not(None)))
        return list(result.scalars().all())
    if feed == "audit":
        return await audit_repo.list_timestamps(session)
    if feed == "projects":
        # New projects the member is assigned to; later edits do not re-badge.
        result = await session.execute(select(Project.assigned_members, Project.created_at))
        return [created_at for members, created_at in result.all() if principal.principal_id in (members or [])]
    if feed == "tasks":
        result = await session.execute(select(Task.created_at).where(Task.assigned_to == principal.principal_id))
        return list(result.scalars().all())
    result = await session.execute(select(_FEED_COLUMNS[feed]))
    return list(result.scalars().all())


async def notification_counts(session: AsyncSession, principal: PrincipalContext) -> dict[str, int]:
    feeds = ROLE_FEEDS.get(principal.role, ())
    try:
        watermarks = await notifications_repo.get_watermarks(session, principal.principal_id)
        counts: dict[str, int] = {}
        for feed in feeds:
            timestamps = await _feed_timestamps(session, feed, principal)
            counts[feed] = count_unread(watermarks.get(feed), timestamps)
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Notification counts unavailable") from exc
    return counts
