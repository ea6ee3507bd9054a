from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.core.errors import Forbidden, NotFound, TransientStoreFailure, Unauthenticated, ValidationFailed
from saaforge.domain.models import Project, ProjectFeedback
from saaforge.services.access import PrincipalContext, Role
from saaforge.services.audit import record_audit


logger = logging.getLogger(__name__)

FEEDBACK_TYPES = {"feedback", "improvement"}
# Owner review filters.
FEEDBACK_FILTERS = {"all", "pending", "approved"}
RATING_RANGE = (1, 5)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def _load_project(session: AsyncSession, project_id: str) -> Project:
    try:
        project = await session.get(Project, project_id)
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Project lookup unavailable") from exc
    if project is None:
        raise NotFound("Project not found", project_id=project_id)
    return project


async def submit_feedback(
    session: AsyncSession,
    *,
    actor: PrincipalContext | None,
    project_id: str,
    feedback: str,
    feedback_type: str = "feedback",
    suggestions: str = "",
    rating: int | None = None,
    client_id: str | None = None,
    user_name: str = "",
) -> ProjectFeedback:
    """Record feedback or an improvement idea against a project.

    Company-project entries are published immediately. Client-project
    entries wait for an owner, and client feedback (not ideas) must carry
    the project's client id so the owner can check who sent it.
    """
    if actor is None:
        raise Unauthenticated("Sign in to leave feedback")
    if feedback_type not in FEEDBACK_TYPES:
        raise ValidationFailed(f"Unknown feedback type: {feedback_type}", type=feedback_type)
    if not feedback.strip():
        raise ValidationFailed("Feedback text is required")
    if feedback_type == "feedback":
        rating = 5 if rating is None else rating
        low, high = RATING_RANGE
        if not low <= rating <= high:
            raise ValidationFailed(f"Rating must be between {low} and {high}", rating=rating)
    else:
        rating = None

    project = await _load_project(session, project_id)
    needs_client_id = project.project_type == "client" and feedback_type == "feedback"
    client_id = (client_id or "").strip() or None
    if needs_client_id and client_id is None:
        raise ValidationFailed("Client id is required for client project feedback", project_id=project_id)

    entry = ProjectFeedback(
        project_id=project_id,
        project_type=project.project_type,
        user_id=actor.principal_id,
        user_name=user_name.strip() or actor.email,
        user_email=actor.email,
        type=feedback_type,
        feedback=feedback.strip(),
        suggestions=suggestions,
        rating=rating,
        client_id=client_id if needs_client_id else None,
        is_approved=project.project_type == "company",
        created_at=_utc_now(),
    )
    try:
        session.add(entry)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure("Feedback could not be submitted") from exc
    logger.info("feedback_submitted feedback_id=%s project_id=%s approved=%s", entry.id, project_id, entry.is_approved)
    return entry


async def list_for_project(
    session: AsyncSession,
    *,
    project_id: str,
    feedback_type: str | None = None,
) -> list[ProjectFeedback]:
    # Public project pages show approved entries only.
    stmt = select(ProjectFeedback).where(
        ProjectFeedback.project_id == project_id,
        ProjectFeedback.is_approved.is_(True),
    )
    if feedback_type is not None:
        stmt = stmt.where(ProjectFeedback.type == feedback_type)
    try:
        result = await session.execute(stmt.order_by(ProjectFeedback.created_at.desc()))
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Feedback unavailable") from exc
    return list(result.scalars().all())


async def list_feedback(
    session: AsyncSession,
    *,
    actor: PrincipalContext | None,
    status: str = "all",
    feedback_type: str | None = None,
) -> list[ProjectFeedback]:
    # Owners review everything; approved members read it for planning.
    if actor is None or actor.role not in (Role.OWNER, Role.TEAM):
        raise Forbidden("Only the team can read all feedback")
    if actor.role is Role.TEAM and not actor.is_approved:
        raise Forbidden("Approved team membership required")
    if status not in FEEDBACK_FILTERS:
        raise ValidationFailed(f"Unknown feedback filter: {status}", status=status)
    if feedback_type is not None and feedback_type not in FEEDBACK_TYPES:
        raise ValidationFailed(f"Unknown feedback type: {feedback_type}", type=feedback_type)
    stmt = select(ProjectFeedback)
    if status == "pending":
        stmt = stmt.where(ProjectFeedback.is_approved.is_(False))
    elif status == "approved":
        stmt = stmt.where(ProjectFeedback.is_approved.is_(True))
    if feedback_type is not None:
        stmt = stmt.where(ProjectFeedback.type == feedback_type)
    try:
        result = await session.execute(stmt.order_by(ProjectFeedback.created_at.desc()))
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Feedback unavailable") from exc
    return list(result.scalars().all())


async def client_id_matches(session: AsyncSession, entry: ProjectFeedback) -> bool:
    if entry.project_type != "client":
        return True
    project = await session.get(Project, entry.project_id)
    if project is None or not project.client_id:
        return False
    return entry.client_id == project.client_id


async def approve_feedback(
    session: AsyncSession,
    *,
    actor: PrincipalContext | None,
    feedback_id: str,
) -> ProjectFeedback:
    if actor is None or not actor.is_owner:
        raise Forbidden("Only owners can approve feedback")
    try:
        entry = await session.get(ProjectFeedback, feedback_id)
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Feedback lookup unavailable") from exc
    if entry is None:
        raise NotFound("Feedback not found", feedback_id=feedback_id)
    if entry.is_approved:
        return entry
    try:
        verified = await client_id_matches(session, entry)
        entry.is_approved = True
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure("Feedback could not be approved") from exc
    await record_audit(
        action="feedback.approved",
        performed_by=actor.principal_id,
        target_id=feedback_id,
        target_type="project_feedback",
        details={"project_id": entry.project_id, "type": entry.type, "client_id_verified": verified},
    )
    return entry


async def delete_feedback(session: AsyncSession, *, actor: PrincipalContext | None, feedback_id: str) -> None:
    if actor is None or not actor.is_owner:
        raise Forbidden("Only owners can delete feedback")
    try:
        entry = await session.get(ProjectFeedback, feedback_id)
        if entry is None:
            raise NotFound("Feedback not found", feedback_id=feedback_id)
        details = {"project_id": entry.project_id, "type": entry.type, "user_email": entry.user_email}
        await session.delete(entry)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure("Feedback could not be deleted") from exc
    logger.info("feedback_deleted feedback_id=%s", feedback_id)
    await record_audit(
        action="feedback.deleted",
        performed_by=actor.principal_id,
        target_id=feedback_id,
        target_type="project_feedback",
        details=details,
    )


def feedback_payload(entry: ProjectFeedback, *, include_contact: bool = False) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": entry.id,
        "project_id": entry.project_id,
        "project_type": entry.project_type,
        "type": entry.type,
        "user_name": entry.user_name,
        "feedback": entry.feedback,
        "suggestions": entry.suggestions,
        "rating": entry.rating,
        "is_approved": entry.is_approved,
        "created_at": entry.created_at,
    }
    if include_contact:
        payload["user_email"] = entry.user_email
        payload["client_id"] = entry.client_id
    return payload
