from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.core.errors import (
    Forbidden,
    InvalidTransition,
    NotFound,
    TransientStoreFailure,
    ValidationFailed,
)
from saaforge.domain.models import Principal, Project, Task, TeamProfile
from saaforge.services.access import PrincipalContext, Role
from saaforge.services.audit import record_audit


logger = logging.getLogger(__name__)

TASK_PRIORITIES = {"low", "medium", "high"}
TASK_STATUSES = {"todo", "in-progress", "completed"}
# Members move their own tasks forward only.
TASK_TRANSITIONS: dict[str, set[str]] = {
    "todo": {"in-progress", "completed"},
    "in-progress": {"completed"},
    "completed": set(),
}
GRADE_RANGE = (0, 100)

# Fields an owner may set through create/update.
EDITABLE_FIELDS = ("title", "description", "priority", "assigned_to", "project_id", "due_date")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _require_owner(actor: PrincipalContext | None) -> PrincipalContext:
    if actor is None or not actor.is_owner:
        raise Forbidden("Only owners can manage tasks")
    return actor


def _validate_fields(fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationFailed("Unknown task fields", fields=sorted(unknown))
    if "priority" in fields and fields["priority"] not in TASK_PRIORITIES:
        raise ValidationFailed(f"Unknown task priority: {fields['priority']}")
    if "title" in fields and not str(fields["title"] or "").strip():
        raise ValidationFailed("Task title is required")
    return fields


async def _assignee_name(session: AsyncSession, member_id: str) -> str:
    # Tasks go to approved team members only; the name is copied from their profile.
    result = await session.execute(
        select(Principal, TeamProfile)
        .join(TeamProfile, TeamProfile.user_id == Principal.id)
        .where(Principal.id == member_id)
    )
    row = result.first()
    if row is None:
        raise NotFound("Team member not found", member_id=member_id)
    principal, profile = row
    if principal.role != Role.TEAM.value or not profile.is_approved:
        raise ValidationFailed("Tasks can only be assigned to approved team members", member_id=member_id)
    return profile.name or principal.email


async def _project_name(session: AsyncSession, project_id: str) -> str:
    project = await session.get(Project, project_id)
    if project is None:
        raise NotFound("Project not found", project_id=project_id)
    return project.name


async def _load(session: AsyncSession, task_id: str) -> Task:
    try:
        task = await session.get(Task, task_id)
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Task lookup unavailable") from exc
    if task is None:
        raise NotFound("Task not found", task_id=task_id)
    return task


async def _commit(session: AsyncSession, what: str) -> None:
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure(f"Task could not be {what}") from exc


async def create_task(
    session: AsyncSession,
    *,
    actor: PrincipalContext | None,
    **fields: Any,
) -> Task:
    owner = _require_owner(actor)
    _validate_fields(fields)
    if "title" not in fields or "assigned_to" not in fields:
        raise ValidationFailed("Task title and assignee are required")
    now = _utc_now()
    try:
        assigned_to_name = await _assignee_name(session, fields["assigned_to"])
        project_name = None
        if fields.get("project_id"):
            project_name = await _project_name(session, fields["project_id"])
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Task could not be created") from exc
    task = Task(
        assigned_to_name=assigned_to_name,
        project_name=project_name,
        assigned_by=owner.principal_id,
        status="todo",
        created_at=now,
        updated_at=now,
        **fields,
    )
    session.add(task)
    await _commit(session, "created")
    logger.info("task_created task_id=%s assigned_to=%s", task.id, task.assigned_to)
    await record_audit(
        action="task.created",
        performed_by=owner.principal_id,
        target_id=task.id,
        target_type="task",
        details={"title": task.title, "assigned_to": task.assigned_to, "project_id": task.project_id},
    )
    return task


async def update_task(
    session: AsyncSession,
    *,
    actor: PrincipalContext | None,
    task_id: str,
    **fields: Any,
) -> Task:
    owner = _require_owner(actor)
    _validate_fields(fields)
    task = await _load(session, task_id)
    changes = {key: value for key, value in fields.items() if getattr(task, key) != value}
    # Resolve the copied names before touching the row.
    try:
        if "assigned_to" in changes:
            task.assigned_to_name = await _assignee_name(session, changes["assigned_to"])
        if "project_id" in changes:
            project_id = changes["project_id"]
            task.project_name = await _project_name(session, project_id) if project_id else None
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Task could not be updated") from exc
    for key, value in changes.items():
        setattr(task, key, value)
    task.updated_at = _utc_now()
    await _commit(session, "updated")
    await record_audit(
        action="task.updated",
        performed_by=owner.principal_id,
        target_id=task.id,
        target_type="task",
        details={"changes": sorted(changes)},
    )
    return task


async def delete_task(session: AsyncSession, *, actor: PrincipalContext | None, task_id: str) -> None:
    owner = _require_owner(actor)
    task = await _load(session, task_id)
    title = task.title
    try:
        await session.delete(task)
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure("Task could not be deleted") from exc
    await _commit(session, "deleted")
    logger.info("task_deleted task_id=%s", task_id)
    await record_audit(
        action="task.deleted",
        performed_by=owner.principal_id,
        target_id=task_id,
        target_type="task",
        details={"title": title},
    )


async def set_task_status(
    session: AsyncSession,
    *,
    actor: PrincipalContext | None,
    task_id: str,
    new_status: str,
    now: datetime | None = None,
) -> Task:
    """Move a task along todo -> in-progress -> completed.

    Only the assignee (or an owner) may do this. The update is conditional
    on the status that was read, like the review workflows, so two tabs
    racing on the same task cannot both apply.
    """
    if actor is None:
        raise Forbidden("Sign in to continue")
    if new_status not in TASK_STATUSES:
        raise ValidationFailed(f"Unknown task status: {new_status}", status=new_status)
    task = await _load(session, task_id)
    if not actor.is_owner and task.assigned_to != actor.principal_id:
        raise Forbidden("Only the assignee can update this task", task_id=task_id)
    current = task.status
    if new_status not in TASK_TRANSITIONS.get(current, set()):
        raise InvalidTransition(
            f"Cannot move task from {current} to {new_status}",
            from_status=current,
            to_status=new_status,
        )
    changed_at = now or _utc_now()
    values: dict[str, Any] = {"status": new_status, "updated_at": changed_at}
    if new_status == "completed":
        values["completed_at"] = changed_at
    try:
        result = await session.execute(
            update(Task)
            .where(Task.id == task_id, Task.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if int(result.rowcount or 0) != 1:
            await session.rollback()
            raise InvalidTransition(
                "Task changed concurrently; reload and retry",
                from_status=current,
                to_status=new_status,
            )
        await session.commit()
        await session.refresh(task)
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure("Task status could not be saved") from exc
    logger.info("task_status_changed task_id=%s from=%s to=%s", task_id, current, new_status)
    return task


async def grade_task(
    session: AsyncSession,
    *,
    actor: PrincipalContext | None,
    task_id: str,
    grade: int,
    feedback: str | None = None,
    now: datetime | None = None,
) -> Task:
    owner = _require_owner(actor)
    low, high = GRADE_RANGE
    if not low <= grade <= high:
        raise ValidationFailed(f"Grade must be between {low} and {high}", grade=grade)
    task = await _load(session, task_id)
    if task.status != "completed":
        raise InvalidTransition("Only completed tasks can be graded", from_status=task.status)
    previous = task.grade
    graded_at = now or _utc_now()
    task.grade = grade
    task.feedback = feedback.strip() if feedback and feedback.strip() else None
    task.graded_by = owner.principal_id
    task.graded_at = graded_at
    task.updated_at = graded_at
    await _commit(session, "graded")
    await record_audit(
        action="task.graded",
        performed_by=owner.principal_id,
        target_id=task.id,
        target_type="task",
        details={"grade": grade, "previous_grade": previous, "assigned_to": task.assigned_to},
    )
    return task


async def list_tasks(
    session: AsyncSession,
    *,
    actor: PrincipalContext | None,
    status: str | None = None,
    assigned_to: str | None = None,
) -> list[Task]:
    # Owners see every task; members only their own.
    if actor is None:
        raise Forbidden("Sign in to continue")
    if status is not None and status not in TASK_STATUSES:
        raise ValidationFailed(f"Unknown task status: {status}", status=status)
    stmt = select(Task)
    if not actor.is_owner:
        stmt = stmt.where(Task.assigned_to == actor.principal_id)
    elif assigned_to:
        stmt = stmt.where(Task.assigned_to == assigned_to)
    if status:
        stmt = stmt.where(Task.status == status)
    try:
        result = await session.execute(stmt.order_by(Task.created_at.desc()))
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Tasks unavailable") from exc
    return list(result.scalars().all())


def task_payload(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "project_id": task.project_id,
        "project_name": task.project_name,
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "priority": task.priority,
        "assigned_to": task.assigned_to,
        "assigned_to_name": task.assigned_to_name,
        "assigned_by": task.assigned_by,
        "due_date": task.due_date,
        "completed_at": task.completed_at,
        "grade": task.grade,
        "feedback": task.feedback,
        "graded_by": task.graded_by,
        "graded_at": task.graded_at,
        "created_at": task.created_at,
        "updated_at": task.updated_at,
    }
