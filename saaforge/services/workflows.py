from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any

from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.core.errors import (
    Conflict,
    Forbidden,
    InvalidTransition,
    NotFound,
    TransientStoreFailure,
    ValidationFailed,
)
from saaforge.domain.models import JoinRequest, Order, Project, ProjectApplication, ProjectIdea
from saaforge.services.access import PrincipalContext, Role
from saaforge.services.audit import record_audit


logger = logging.getLogger(__name__)

KIND_APPLICATION = "application"
KIND_JOIN_REQUEST = "join_request"
KIND_IDEA = "idea"
KIND_ORDER = "order"

_REVIEW_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"approved", "rejected"},
}
_ORDER_TRANSITIONS: dict[str, set[str]] = {
    "new": {"reviewing", "converted", "rejected"},
    "reviewing": {"converted", "rejected"},
}

ORDER_SERVICE_TYPES = {"automation", "website", "custom-software", "consulting", "other"}


@dataclass(frozen=True)
class WorkflowKind:
    name: str
    model: type
    transitions: dict[str, set[str]]
    statuses: frozenset[str]
    # new status -> audit action
    audit_actions: dict[str, str]


WORKFLOW_KINDS: dict[str, WorkflowKind] = {
    KIND_APPLICATION: WorkflowKind(
        name=KIND_APPLICATION,
        model=ProjectApplication,
        transitions=_REVIEW_TRANSITIONS,
        statuses=frozenset({"pending", "approved", "rejected"}),
        audit_actions={"approved": "team.approved", "rejected": "team.rejected"},
    ),
    KIND_JOIN_REQUEST: WorkflowKind(
        name=KIND_JOIN_REQUEST,
        model=JoinRequest,
        transitions=_REVIEW_TRANSITIONS,
        statuses=frozenset({"pending", "approved", "rejected"}),
        audit_actions={"approved": "team.approved", "rejected": "team.rejected"},
    ),
    KIND_IDEA: WorkflowKind(
        name=KIND_IDEA,
        model=ProjectIdea,
        transitions=_REVIEW_TRANSITIONS,
        statuses=frozenset({"pending", "approved", "rejected"}),
        audit_actions={"approved": "idea.approved", "rejected": "idea.rejected"},
    ),
    KIND_ORDER: WorkflowKind(
        name=KIND_ORDER,
        model=Order,
        transitions=_ORDER_TRANSITIONS,
        statuses=frozenset({"new", "reviewing", "converted", "rejected"}),
        audit_actions={
            "reviewing": "order.reviewed",
            "converted": "order.reviewed",
            "rejected": "order.reviewed",
        },
    ),
}


@dataclass(frozen=True)
class TransitionResult:
    kind: str
    record_id: str
    from_status: str
    to_status: str
    reviewed_by: str
    reviewed_at: datetime
    audit_recorded: bool


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_kind(kind: str) -> WorkflowKind:
    workflow = WORKFLOW_KINDS.get(kind)
    if workflow is None:
        raise ValidationFailed(f"Unknown record kind: {kind}", kind=kind)
    return workflow


def transition_allowed(kind: str, current: str, target: str) -> bool:
    # Transitions are monotonic: terminal states have no outgoing edges.
    return target in get_kind(kind).transitions.get(current, set())


def _audit_details(kind: str, record: Any, from_status: str, to_status: str, notes: str | None) -> dict[str, Any]:
    details: dict[str, Any] = {"kind": kind, "from_status": from_status, "status": to_status}
    if kind == KIND_APPLICATION:
        details.update({"project_id": record.project_id, "user_id": record.user_id, "email": record.user_email})
    elif kind == KIND_JOIN_REQUEST:
        details.update({"request_id": record.id, "email": record.email, "name": record.name})
    elif kind == KIND_IDEA:
        details.update({"title": record.title, "submitted_by": record.submitted_by})
    elif kind == KIND_ORDER:
        details.update({"order_id": record.id, "email": record.email})
    if notes:
        details["review_notes"] = notes
    return details


async def transition(
    session: AsyncSession,
    *,
    kind: str,
    record_id: str,
    new_status: str,
    actor: PrincipalContext | None,
    notes: str | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    """Move a record along its kind's transition table.

    Only owners may review. The update is conditional on the status that was
    read, so a concurrent reviewer who got there first turns this call into
    ``InvalidTransition`` instead of silently overwriting the outcome. The
    audit entry is written after the status change commits.
    """
    workflow = get_kind(kind)
    if actor is None or actor.role is not Role.OWNER:
        raise Forbidden("Only owners can review records", kind=kind)
    if new_status not in workflow.statuses:
        raise ValidationFailed(f"Unknown status for {kind}: {new_status}", status=new_status)

    reviewed_at = now or _utc_now()
    model = workflow.model
    try:
        record = await session.get(model, record_id)
        if record is None:
            raise NotFound(f"{kind} not found", record_id=record_id)
        current = record.status
        if not transition_allowed(kind, current, new_status):
            raise InvalidTransition(
                f"Cannot move {kind} from {current} to {new_status}",
                from_status=current,
                to_status=new_status,
            )
        values: dict[str, Any] = {
            "status": new_status,
            "reviewed_by": actor.principal_id,
            "reviewed_at": reviewed_at,
        }
        if kind == KIND_IDEA:
            values["updated_at"] = reviewed_at
            if notes and notes.strip():
                values["review_notes"] = notes.strip()
        result = await session.execute(
            update(model)
            .where(and_(model.id == record_id, model.status == current))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if int(result.rowcount or 0) != 1:
            await session.rollback()
            raise InvalidTransition(
                f"{kind} changed concurrently; reload and retry",
                from_status=current,
                to_status=new_status,
            )
        await session.commit()
        await session.refresh(record)
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure(f"{kind} review could not be saved") from exc

    logger.info("workflow_transition kind=%s record_id=%s from=%s to=%s", kind, record_id, current, new_status)
    audit_recorded = await record_audit(
        action=workflow.audit_actions[new_status],
        performed_by=actor.principal_id,
        target_id=record_id,
        target_type=kind,
        details=_audit_details(kind, record, current, new_status, notes),
    )
    return TransitionResult(
        kind=kind,
        record_id=record_id,
        from_status=current,
        to_status=new_status,
        reviewed_by=actor.principal_id,
        reviewed_at=reviewed_at,
        audit_recorded=audit_recorded,
    )


async def _commit_new(session: AsyncSession, row: Any, what: str) -> Any:
    try:
        session.add(row)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure(f"{what} could not be submitted") from exc
    return row


def _require_approved_member(actor: PrincipalContext | None) -> PrincipalContext:
    if actor is None:
        raise Forbidden("Sign in to continue")
    if actor.role is Role.OWNER:
        return actor
    if actor.role is not Role.TEAM or not actor.is_approved:
        raise Forbidden("Approved team membership required")
    return actor


async def submit_join_request(
    session: AsyncSession,
    *,
    name: str,
    email: str,
    reason: str = "",
    skills: list[str] | None = None,
    interests: list[str] | None = None,
    achievements: list[str] | None = None,
    portfolio_links: list[str] | None = None,
    user_id: str | None = None,
) -> JoinRequest:
    request = JoinRequest(
        user_id=user_id,
        name=name.strip(),
        email=email.strip().lower(),
        reason=reason,
        skills=list(skills or []),
        interests=list(interests or []),
        achievements=list(achievements or []),
        portfolio_links=list(portfolio_links or []),
        status="pending",
        created_at=_utc_now(),
    )
    return await _commit_new(session, request, "Join request")


async def submit_application(
    session: AsyncSession,
    *,
    actor: PrincipalContext | None,
    project_id: str,
    message: str = "",
    user_name: str = "",
) -> ProjectApplication:
    member = _require_approved_member(actor)
    try:
        project = await session.get(Project, project_id)
        if project is None:
            raise NotFound("Project not found", project_id=project_id)
        existing = await session.execute(
            select(ProjectApplication.id).where(
                ProjectApplication.project_id == project_id,
                ProjectApplication.user_id == member.principal_id,
                ProjectApplication.status == "pending",
            )
        )
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Application could not be submitted") from exc
    if existing.first() is not None:
        raise Conflict("An application for this project is already pending", project_id=project_id)
    application = ProjectApplication(
        project_id=project_id,
        user_id=member.principal_id,
        user_name=user_name,
        user_email=member.email,
        message=message,
        status="pending",
        created_at=_utc_now(),
    )
    return await _commit_new(session, application, "Application")


async def submit_idea(
    session: AsyncSession,
    *,
    actor: PrincipalContext | None,
    title: str,
    description: str = "",
    project_id: str | None = None,
    proposed_tech_stack: list[str] | None = None,
    estimated_duration: str | None = None,
    submitter_name: str = "",
) -> ProjectIdea:
    member = _require_approved_member(actor)
    if not title.strip():
        raise ValidationFailed("Idea title is required")
    now = _utc_now()
    idea = ProjectIdea(
        project_id=project_id,
        title=title.strip(),
        description=description,
        submitted_by=member.principal_id,
        submitter_name=submitter_name,
        submitter_email=member.email,
        proposed_tech_stack=list(proposed_tech_stack or []),
        estimated_duration=estimated_duration,
        status="pending",
        created_at=now,
        updated_at=now,
    )
    return await _commit_new(session, idea, "Idea")


async def submit_order(
    session: AsyncSession,
    *,
    name: str,
    email: str,
    service_type: str,
    description: str = "",
    budget: str = "",
    timeline: str = "",
) -> Order:
    if service_type not in ORDER_SERVICE_TYPES:
        raise ValidationFailed(f"Unknown service type: {service_type}", service_type=service_type)
    order = Order(
        name=name.strip(),
        email=email.strip().lower(),
        service_type=service_type,
        description=description,
        budget=budget,
        timeline=timeline,
        status="new",
        created_at=_utc_now(),
    )
    return await _commit_new(session, order, "Order")


async def list_records(
    session: AsyncSession,
    *,
    kind: str,
    status: str | None = None,
    submitted_by: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[Any]:
    workflow = get_kind(kind)
    model = workflow.model
    stmt = select(model)
    if status:
        stmt = stmt.where(model.status == status)
    if submitted_by:
        owner_column = {
            KIND_APPLICATION: ProjectApplication.user_id,
            KIND_IDEA: ProjectIdea.submitted_by,
        }.get(kind)
        if owner_column is None:
            raise ValidationFailed(f"{kind} records cannot be filtered by submitter")
        stmt = stmt.where(owner_column == submitted_by)
    stmt = stmt.order_by(model.created_at.desc()).offset(offset).limit(limit)
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as exc:
        raise TransientStoreFailure(f"Could not list {kind} records") from exc
    return list(result.scalars().all())
