from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.core.errors import Forbidden, NotFound, TransientStoreFailure, ValidationFailed
from saaforge.domain.models import Principal, Project, ProjectApplication, ProjectFeedback
from saaforge.services.access import PrincipalContext
from saaforge.services.audit import record_audit


logger = logging.getLogger(__name__)

PROJECT_STATUSES = {"planned", "active", "completed"}
PROJECT_TYPES = {"client", "company"}

# Fields an owner may set through create/update.
EDITABLE_FIELDS = (
    "name",
    "description",
    "category",
    "tech_stack",
    "status",
    "is_featured",
    "is_published",
    "case_study",
    "image_url",
    "demo_url",
    "github_url",
    "project_type",
    "client_id",
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _require_owner(actor: PrincipalContext | None) -> PrincipalContext:
    if actor is None or not actor.is_owner:
        raise Forbidden("Only owners can manage projects")
    return actor


def _validate_fields(fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationFailed("Unknown project fields", fields=sorted(unknown))
    if "status" in fields and fields["status"] not in PROJECT_STATUSES:
        raise ValidationFailed(f"Unknown project status: {fields['status']}")
    if "project_type" in fields and fields["project_type"] not in PROJECT_TYPES:
        raise ValidationFailed(f"Unknown project type: {fields['project_type']}")
    if "name" in fields and not str(fields["name"] or "").strip():
        raise ValidationFailed("Project name is required")
    return fields


async def _load(session: AsyncSession, project_id: str) -> Project:
    try:
        project = await session.get(Project, project_id)
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Project lookup unavailable") from exc
    if project is None:
        raise NotFound("Project not found", project_id=project_id)
    return project


async def _commit(session: AsyncSession, what: str) -> None:
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure(f"Project could not be {what}") from exc


async def create_project(session: AsyncSession, *, actor: PrincipalContext | None, **fields: Any) -> Project:
    owner = _require_owner(actor)
    _validate_fields(fields)
    if "name" not in fields:
        raise ValidationFailed("Project name is required")
    now = _utc_now()
    project = Project(created_by=owner.principal_id, created_at=now, updated_at=now, assigned_members=[], **fields)
    session.add(project)
    await _commit(session, "created")
    logger.info("project_created project_id=%s", project.id)
    await record_audit(
        action="project.created",
        performed_by=owner.principal_id,
        target_id=project.id,
        target_type="project",
        details={"name": project.name, "project_type": project.project_type},
    )
    return project


async def update_project(
    session: AsyncSession,
    *,
    actor: PrincipalContext | None,
    project_id: str,
    **fields: Any,
) -> Project:
    owner = _require_owner(actor)
    _validate_fields(fields)
    project = await _load(session, project_id)
    changes: dict[str, Any] = {}
    for key, value in fields.items():
        if getattr(project, key) != value:
            changes[key] = value
            setattr(project, key, value)
    project.updated_at = _utc_now()
    await _commit(session, "updated")
    await record_audit(
        action="project.updated",
        performed_by=owner.principal_id,
        target_id=project.id,
        target_type="project",
        details={"changes": sorted(changes)},
    )
    return project


async def delete_project(session: AsyncSession, *, actor: PrincipalContext | None, project_id: str) -> None:
    owner = _require_owner(actor)
    project = await _load(session, project_id)
    name = project.name
    try:
        # Applications and feedback reference the project by foreign key.
        await session.execute(delete(ProjectApplication).where(ProjectApplication.project_id == project_id))
        await session.execute(delete(ProjectFeedback).where(ProjectFeedback.project_id == project_id))
        await session.delete(project)
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure("Project could not be deleted") from exc
    await _commit(session, "deleted")
    logger.info("project_deleted project_id=%s", project_id)
    await record_audit(
        action="project.deleted",
        performed_by=owner.principal_id,
        target_id=project_id,
        target_type="project",
        details={"name": name},
    )


async def assign_member(
    session: AsyncSession,
    *,
    actor: PrincipalContext | None,
    project_id: str,
    member_id: str,
    assigned: bool = True,
) -> Project:
    """Add or remove a member from a project's roster.

    This is the explicit follow-up to approving an application; approval on
    its own never touches ``assigned_members``.
    """
    owner = _require_owner(actor)
    project = await _load(session, project_id)
    try:
        member = await session.get(Principal, member_id)
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Member lookup unavailable") from exc
    if member is None:
        raise NotFound("Member not found", member_id=member_id)

    members = list(project.assigned_members or [])
    if assigned and member_id not in members:
        members.append(member_id)
    elif not assigned and member_id in members:
        members.remove(member_id)
    # Reassign so the JSON column is flagged dirty.
    project.assigned_members = members
    project.updated_at = _utc_now()
    await _commit(session, "updated")
    await record_audit(
        action="project.updated",
        performed_by=owner.principal_id,
        target_id=project_id,
        target_type="project",
        details={"member_id": member_id, "assigned": assigned},
    )
    return project


async def list_published(session: AsyncSession, *, featured_only: bool = False) -> list[Project]:
    stmt = select(Project).where(Project.is_published.is_(True))
    if featured_only:
        stmt = stmt.where(Project.is_featured.is_(True))
    try:
        result = await session.execute(stmt.order_by(Project.created_at.desc()))
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Projects unavailable") from exc
    return list(result.scalars().all())


async def list_all(session: AsyncSession, *, actor: PrincipalContext | None) -> list[Project]:
    _require_owner(actor)
    try:
        result = await session.execute(select(Project).order_by(Project.created_at.desc()))
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Projects unavailable") from exc
    return list(result.scalars().all())


async def list_assigned(session: AsyncSession, *, member_id: str) -> list[Project]:
    # JSON containment differs across backends; filter the roster in Python.
    try:
        result = await session.execute(select(Project).order_by(Project.updated_at.desc()))
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Projects unavailable") from exc
    return [project for project in result.scalars().all() if member_id in (project.assigned_members or [])]


def project_payload(project: Project, *, include_client_id: bool = False) -> dict[str, Any]:
    payload = {
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "category": project.category,
        "tech_stack": list(project.tech_stack or []),
        "status": project.status,
        "is_featured": project.is_featured,
        "is_published": project.is_published,
        "case_study": project.case_study,
        "image_url": project.image_url,
        "demo_url": project.demo_url,
        "github_url": project.github_url,
        "assigned_members": list(project.assigned_members or []),
        "project_type": project.project_type,
        "created_by": project.created_by,
        "created_at": project.created_at.isoformat() if project.created_at else None,
        "updated_at": project.updated_at.isoformat() if project.updated_at else None,
    }
    # The client id gates client feedback, so only owners get to read it.
    if include_client_id:
        payload["client_id"] = project.client_id
    return payload
