from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from saaforge.core.errors import ValidationFailed
from saaforge.domain.models import Order, Project, ProjectFeedback, Task, UserNotification
from saaforge.persistence.db import SessionLocal, engine
from saaforge.persistence.repos import notifications as notifications_repo
from saaforge.services import notifications
from saaforge.services.access import PrincipalContext, Role
from saaforge.tests.utils.auth import owner_context, team_context


T0 = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)


async def _seed_orders(*created: datetime) -> None:
    async with SessionLocal() as session:
        for index, created_at in enumerate(created):
            session.add(
                Order(
                    name=f"Client {index}",
                    email=f"client{index}@example.com",
                    service_type="website",
                    created_at=created_at,
                )
            )
        await session.commit()


@pytest.mark.asyncio
async def test_viewing_a_feed_clears_its_unread_count() -> None:
    timestamps = [T0, T0 + timedelta(minutes=5)]
    async with SessionLocal() as session:
        assert await notifications.unread_count(session, user_id="u-1", feed="orders", timestamps=timestamps) == 2
        assert await notifications.mark_viewed(session, user_id="u-1", feed="orders", now=T0 + timedelta(hours=1))
        assert await notifications.unread_count(session, user_id="u-1", feed="orders", timestamps=timestamps) == 0


@pytest.mark.asyncio
async def test_watermark_never_moves_backwards() -> None:
    later = T0 + timedelta(days=2)
    async with SessionLocal() as session:
        await notifications.mark_viewed(session, user_id="u-1", feed="ideas", now=later)
        await notifications.mark_viewed(session, user_id="u-1", feed="ideas", now=T0)
        stored = await notifications_repo.get_watermark(session, user_id="u-1", feed="ideas")
    assert stored == later


@pytest.mark.asyncio
async def test_watermarks_are_per_user_and_feed() -> None:
    async with SessionLocal() as session:
        await notifications.mark_viewed(session, user_id="u-1", feed="orders", now=T0)
        await notifications.mark_viewed(session, user_id="u-2", feed="orders", now=T0 + timedelta(hours=1))
        await notifications.mark_viewed(session, user_id="u-1", feed="ideas", now=T0 + timedelta(hours=2))
        u1 = await notifications_repo.get_watermarks(session, "u-1")
        u2 = await notifications_repo.get_watermarks(session, "u-2")
    assert u1 == {"orders": T0, "ideas": T0 + timedelta(hours=2)}
    assert u2 == {"orders": T0 + timedelta(hours=1)}


@pytest.mark.asyncio
async def test_unknown_feed_is_rejected() -> None:
    async with SessionLocal() as session:
        with pytest.raises(ValidationFailed):
            await notifications.mark_viewed(session, user_id="u-1", feed="inbox")


@pytest.mark.asyncio
async def test_owner_counts_follow_stored_records() -> None:
    await _seed_orders(T0, T0 + timedelta(hours=1))
    owner = owner_context()
    async with SessionLocal() as session:
        counts = await notifications.notification_counts(session, owner)
    assert counts["orders"] == 2
    assert set(counts) == {"requests", "applications", "ideas", "orders", "feedback", "team", "content", "audit"}

    async with SessionLocal() as session:
        await notifications.mark_viewed(session, user_id=owner.principal_id, feed="orders", now=T0 + timedelta(minutes=30))
        counts = await notifications.notification_counts(session, owner)
    assert counts["orders"] == 1


@pytest.mark.asyncio
async def test_member_counts_cover_assigned_projects_only() -> None:
    member = team_context(principal_id="member-7")
    edited = T0 + timedelta(days=1)
    async with SessionLocal() as session:
        session.add(
            Project(name="Mine", created_by="owner-1", assigned_members=["member-7"], created_at=T0, updated_at=edited)
        )
        session.add(
            Project(name="Other", created_by="owner-1", assigned_members=["member-8"], created_at=T0, updated_at=T0)
        )
        await session.commit()

    async with SessionLocal() as session:
        assert await notifications.notification_counts(session, member) == {"projects": 1, "tasks": 0, "feedback": 0}
        # Viewed after creation: the later edit does not bring the badge back.
        await notifications.mark_viewed(session, user_id="member-7", feed="projects", now=T0 + timedelta(seconds=1))
        counts = await notifications.notification_counts(session, member)
    assert counts["projects"] == 0

    user = PrincipalContext(principal_id="user-1", email="u@example.com", role=Role.USER)
    async with SessionLocal() as session:
        assert await notifications.notification_counts(session, user) == {}


@pytest.mark.asyncio
async def test_member_task_and_feedback_badges() -> None:
    member = team_context(principal_id="member-7")
    async with SessionLocal() as session:
        project = Project(name="Site", created_by="owner-1", project_type="company")
        session.add(project)
        await session.flush()
        session.add(Task(title="Mine", assigned_to="member-7", assigned_by="owner-1", created_at=T0))
        session.add(Task(title="Theirs", assigned_to="member-8", assigned_by="owner-1", created_at=T0))
        session.add(
            ProjectFeedback(
                project_id=project.id,
                project_type="company",
                user_id="user-1",
                user_email="u@example.com",
                feedback="Nice",
                created_at=T0 + timedelta(hours=1),
            )
        )
        await session.commit()

    async with SessionLocal() as session:
        counts = await notifications.notification_counts(session, member)
        assert counts["tasks"] == 1
        assert counts["feedback"] == 1
        await notifications.mark_viewed(session, user_id="member-7", feed="feedback", now=T0 + timedelta(hours=2))
        counts = await notifications.notification_counts(session, member)
    assert counts["feedback"] == 0
    assert counts["tasks"] == 1


@pytest.mark.asyncio
async def test_watermark_store_failure_is_reported_not_raised() -> None:
    async with engine.begin() as connection:
        await connection.run_sync(UserNotification.__table__.drop)

    async with SessionLocal() as session:
        assert await notifications.mark_viewed(session, user_id="u-1", feed="orders", now=T0) is False
