from __future__ import annotations

import pytest
from sqlalchemy import select

from saaforge.core.errors import Forbidden, InvalidTransition, NotFound, Unauthenticated, ValidationFailed
from saaforge.domain.models import AuditLog, Project, ProjectFeedback, Task
from saaforge.persistence.db import SessionLocal
from saaforge.services import feedback, projects, tasks
from saaforge.tests.utils.auth import create_test_principal, owner_context, team_context


async def _audit_actions(target_id: str) -> list[str]:
    async with SessionLocal() as session:
        result = await session.execute(
            select(AuditLog.action).where(AuditLog.target_id == target_id).order_by(AuditLog.id.asc())
        )
        return list(result.scalars().all())


async def _seed_project(*, project_type: str = "company", client_id: str | None = None) -> str:
    async with SessionLocal() as session:
        project = await projects.create_project(
            session,
            actor=owner_context(),
            name="Portal rebuild",
            project_type=project_type,
            client_id=client_id,
        )
        return project.id


@pytest.mark.asyncio
async def test_task_lifecycle_is_audited() -> None:
    member, _headers = await create_test_principal(role="team", email="dev@example.com")
    project_id = await _seed_project()
    owner = owner_context()

    async with SessionLocal() as session:
        task = await tasks.create_task(
            session,
            actor=owner,
            title="Wire up login",
            assigned_to=member.principal_id,
            project_id=project_id,
            priority="high",
        )
    assert task.status == "todo"
    assert task.assigned_to_name == "dev"
    assert task.project_name == "Portal rebuild"

    async with SessionLocal() as session:
        await tasks.update_task(session, actor=owner, task_id=task.id, description="Use the session API")
    async with SessionLocal() as session:
        await tasks.set_task_status(session, actor=member, task_id=task.id, new_status="in-progress")
        done = await tasks.set_task_status(session, actor=member, task_id=task.id, new_status="completed")
    assert done.completed_at is not None

    async with SessionLocal() as session:
        graded = await tasks.grade_task(session, actor=owner, task_id=task.id, grade=92, feedback=" Solid work ")
    assert graded.grade == 92
    assert graded.feedback == "Solid work"
    assert graded.graded_by == owner.principal_id

    async with SessionLocal() as session:
        await tasks.delete_task(session, actor=owner, task_id=task.id)
        assert await session.get(Task, task.id) is None

    assert await _audit_actions(task.id) == ["task.created", "task.updated", "task.graded", "task.deleted"]


@pytest.mark.asyncio
async def test_task_assignment_rules() -> None:
    pending, _ = await create_test_principal(role="team", approved=False)
    async with SessionLocal() as session:
        with pytest.raises(Forbidden):
            await tasks.create_task(session, actor=team_context(), title="X", assigned_to="member-1")
        with pytest.raises(NotFound):
            await tasks.create_task(session, actor=owner_context(), title="X", assigned_to="ghost")
        with pytest.raises(ValidationFailed):
            await tasks.create_task(session, actor=owner_context(), title="X", assigned_to=pending.principal_id)
        with pytest.raises(ValidationFailed):
            await tasks.create_task(session, actor=owner_context(), title="X", assigned_to="a", priority="urgent")
        with pytest.raises(ValidationFailed):
            await tasks.create_task(session, actor=owner_context(), title="No assignee")


@pytest.mark.asyncio
async def test_members_only_move_their_own_tasks_forward() -> None:
    member, _ = await create_test_principal(role="team")
    other, _ = await create_test_principal(role="team")
    async with SessionLocal() as session:
        task = await tasks.create_task(session, actor=owner_context(), title="Docs", assigned_to=member.principal_id)

    async with SessionLocal() as session:
        with pytest.raises(Forbidden):
            await tasks.set_task_status(session, actor=other, task_id=task.id, new_status="in-progress")
        with pytest.raises(ValidationFailed):
            await tasks.set_task_status(session, actor=member, task_id=task.id, new_status="blocked")
        with pytest.raises(InvalidTransition):
            await tasks.grade_task(session, actor=owner_context(), task_id=task.id, grade=80)
        await tasks.set_task_status(session, actor=member, task_id=task.id, new_status="completed")
        with pytest.raises(InvalidTransition):
            await tasks.set_task_status(session, actor=member, task_id=task.id, new_status="in-progress")
        with pytest.raises(ValidationFailed):
            await tasks.grade_task(session, actor=owner_context(), task_id=task.id, grade=101)

    async with SessionLocal() as session:
        mine = await tasks.list_tasks(session, actor=member)
        theirs = await tasks.list_tasks(session, actor=other)
        every = await tasks.list_tasks(session, actor=owner_context(), status="completed")
    assert [row.id for row in mine] == [task.id]
    assert theirs == []
    assert [row.id for row in every] == [task.id]


@pytest.mark.asyncio
async def test_interleaved_status_change_loses() -> None:
    member, _ = await create_test_principal(role="team")
    async with SessionLocal() as session:
        task = await tasks.create_task(session, actor=owner_context(), title="Race", assigned_to=member.principal_id)

    async with SessionLocal() as loser, SessionLocal() as winner:
        stale = await loser.get(Task, task.id)
        assert stale.status == "todo"
        await tasks.set_task_status(winner, actor=member, task_id=task.id, new_status="in-progress")
        with pytest.raises(InvalidTransition):
            await tasks.set_task_status(loser, actor=member, task_id=task.id, new_status="completed")


@pytest.mark.asyncio
async def test_company_feedback_is_published_immediately() -> None:
    user, _ = await create_test_principal(role="user", email="fan@example.com")
    project_id = await _seed_project()

    async with SessionLocal() as session:
        entry = await feedback.submit_feedback(
            session, actor=user, project_id=project_id, feedback="Great launch", rating=4
        )
        idea = await feedback.submit_feedback(
            session,
            actor=user,
            project_id=project_id,
            feedback="Add dark mode",
            feedback_type="improvement",
            rating=2,
        )
    assert entry.is_approved is True
    assert entry.rating == 4
    assert entry.user_name == "fan@example.com"
    assert idea.rating is None

    async with SessionLocal() as session:
        public = await feedback.list_for_project(session, project_id=project_id, feedback_type="feedback")
    assert [row.id for row in public] == [entry.id]


@pytest.mark.asyncio
async def test_client_feedback_waits_for_owner_approval() -> None:
    user, _ = await create_test_principal(role="user")
    project_id = await _seed_project(project_type="client", client_id="ACME-42")

    async with SessionLocal() as session:
        with pytest.raises(ValidationFailed):
            await feedback.submit_feedback(session, actor=user, project_id=project_id, feedback="Fine")
        entry = await feedback.submit_feedback(
            session, actor=user, project_id=project_id, feedback="Fine", client_id="ACME-42"
        )
        # Improvement ideas never need the client id.
        idea = await feedback.submit_feedback(
            session, actor=user, project_id=project_id, feedback="Faster", feedback_type="improvement"
        )
    assert entry.is_approved is False
    assert idea.client_id is None

    async with SessionLocal() as session:
        assert await feedback.list_for_project(session, project_id=project_id) == []
        pending = await feedback.list_feedback(session, actor=owner_context(), status="pending")
        assert {row.id for row in pending} == {entry.id, idea.id}
        assert await feedback.client_id_matches(session, entry) is True
        assert await feedback.client_id_matches(session, idea) is False

    async with SessionLocal() as session:
        approved = await feedback.approve_feedback(session, actor=owner_context(), feedback_id=entry.id)
        # Approving twice records nothing new.
        await feedback.approve_feedback(session, actor=owner_context(), feedback_id=entry.id)
    assert approved.is_approved is True

    async with SessionLocal() as session:
        await feedback.delete_feedback(session, actor=owner_context(), feedback_id=idea.id)
        assert await session.get(ProjectFeedback, idea.id) is None
        public = await feedback.list_for_project(session, project_id=project_id)
    assert [row.id for row in public] == [entry.id]
    assert await _audit_actions(entry.id) == ["feedback.approved"]
    assert await _audit_actions(idea.id) == ["feedback.deleted"]


@pytest.mark.asyncio
async def test_feedback_rules() -> None:
    project_id = await _seed_project()
    user, _ = await create_test_principal(role="user")
    async with SessionLocal() as session:
        with pytest.raises(Unauthenticated):
            await feedback.submit_feedback(session, actor=None, project_id=project_id, feedback="Hi")
        with pytest.raises(NotFound):
            await feedback.submit_feedback(session, actor=user, project_id="missing", feedback="Hi")
        with pytest.raises(ValidationFailed):
            await feedback.submit_feedback(session, actor=user, project_id=project_id, feedback="Hi", rating=6)
        with pytest.raises(ValidationFailed):
            await feedback.submit_feedback(
                session, actor=user, project_id=project_id, feedback="Hi", feedback_type="rant"
            )
        with pytest.raises(Forbidden):
            await feedback.list_feedback(session, actor=user)
        with pytest.raises(Forbidden):
            await feedback.list_feedback(session, actor=team_context(approved=False))
        with pytest.raises(Forbidden):
            await feedback.approve_feedback(session, actor=team_context(), feedback_id="x")
        assert await feedback.list_feedback(session, actor=team_context(), feedback_type="improvement") == []


@pytest.mark.asyncio
async def test_deleting_a_project_removes_its_feedback() -> None:
    user, _ = await create_test_principal(role="user")
    project_id = await _seed_project()
    async with SessionLocal() as session:
        await feedback.submit_feedback(session, actor=user, project_id=project_id, feedback="Bye")
    async with SessionLocal() as session:
        await projects.delete_project(session, actor=owner_context(), project_id=project_id)
        assert await session.get(Project, project_id) is None
        remaining = (await session.execute(select(ProjectFeedback))).scalars().all()
    assert remaining == []
