from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.apps.api.deps import get_db, get_optional_principal, require_role
from saaforge.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from saaforge.apps.api.response import Envelope, success_response
from saaforge.domain.models import JoinRequest, Order, ProjectApplication, ProjectIdea
from saaforge.services import workflows
from saaforge.services.access import PrincipalContext, Role


router = APIRouter(tags=["workflows"], responses=DEFAULT_ERROR_RESPONSES)


class JoinRequestCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=320)
    reason: str = Field(default="", max_length=5000)
    skills: list[str] = Field(default_factory=list)
    interests: list[str] = Field(default_factory=list)
    achievements: list[str] = Field(default_factory=list)
    portfolio_links: list[str] = Field(default_factory=list)


class ApplicationCreate(BaseModel):
    message: str = Field(default="", max_length=5000)
    user_name: str = Field(default="", max_length=200)


class IdeaCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    description: str = Field(default="", max_length=10000)
    project_id: str | None = None
    proposed_tech_stack: list[str] = Field(default_factory=list)
    estimated_duration: str | None = None
    submitter_name: str = Field(default="", max_length=200)


class OrderCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=320)
    service_type: str
    description: str = Field(default="", max_length=10000)
    budget: str = ""
    timeline: str = ""


class TransitionRequest(BaseModel):
    status: str
    notes: str | None = Field(default=None, max_length=5000)


class TransitionResponse(BaseModel):
    kind: str
    record_id: str
    from_status: str
    to_status: str
    reviewed_by: str
    reviewed_at: datetime
    audit_recorded: bool


class RecordResponse(BaseModel):
    id: str
    kind: str
    status: str
    created_at: datetime
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    fields: dict


class RecordsPage(BaseModel):
    items: list[RecordResponse]
    next_offset: int | None


def _fields(kind: str, record) -> dict:
    if kind == workflows.KIND_JOIN_REQUEST:
        return {
            "name": record.name,
            "email": record.email,
            "reason": record.reason,
            "skills": list(record.skills or []),
            "interests": list(record.interests or []),
            "achievements": list(record.achievements or []),
            "portfolio_links": list(record.portfolio_links or []),
        }
    if kind == workflows.KIND_APPLICATION:
        return {
            "project_id": record.project_id,
            "user_id": record.user_id,
            "user_name": record.user_name,
            "user_email": record.user_email,
            "message": record.message,
        }
    if kind == workflows.KIND_IDEA:
        return {
            "project_id": record.project_id,
            "title": record.title,
            "description": record.description,
            "submitted_by": record.submitted_by,
            "submitter_name": record.submitter_name,
            "submitter_email": record.submitter_email,
            "proposed_tech_stack": list(record.proposed_tech_stack or []),
            "estimated_duration": record.estimated_duration,
            "review_notes": record.review_notes,
        }
    return {
        "name": record.name,
        "email": record.email,
        "service_type": record.service_type,
        "description": record.description,
        "budget": record.budget,
        "timeline": record.timeline,
        "converted_to_project_id": record.converted_to_project_id,
    }


def _to_response(kind: str, record: JoinRequest | ProjectApplication | ProjectIdea | Order) -> RecordResponse:
    return RecordResponse(
        id=record.id,
        kind=kind,
        status=record.status,
        created_at=record.created_at,
        reviewed_by=record.reviewed_by,
        reviewed_at=record.reviewed_at,
        fields=_fields(kind, record),
    )


def _page(kind: str, rows: list, offset: int, limit: int) -> RecordsPage:
    next_offset = None
    if len(rows) > limit:
        rows = rows[:limit]
        next_offset = offset + limit
    return RecordsPage(items=[_to_response(kind, row) for row in rows], next_offset=next_offset)


@router.post("/join-requests", status_code=201, response_model=Envelope[RecordResponse])
async def create_join_request(
    payload: JoinRequestCreate,
    request: Request,
    principal: PrincipalContext | None = Depends(get_optional_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    record = await workflows.submit_join_request(
        db,
        name=payload.name,
        email=payload.email,
        reason=payload.reason,
        skills=payload.skills,
        interests=payload.interests,
        achievements=payload.achievements,
        portfolio_links=payload.portfolio_links,
        user_id=principal.principal_id if principal else None,
    )
    return success_response(request=request, data=_to_response(workflows.KIND_JOIN_REQUEST, record))


@router.post("/projects/{project_id}/applications", status_code=201, response_model=Envelope[RecordResponse])
async def create_application(
    project_id: str,
    payload: ApplicationCreate,
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.TEAM)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    record = await workflows.submit_application(
        db,
        actor=principal,
        project_id=project_id,
        message=payload.message,
        user_name=payload.user_name,
    )
    return success_response(request=request, data=_to_response(workflows.KIND_APPLICATION, record))


@router.post("/ideas", status_code=201, response_model=Envelope[RecordResponse])
async def create_idea(
    payload: IdeaCreate,
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.TEAM)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    record = await workflows.submit_idea(
        db,
        actor=principal,
        title=payload.title,
        description=payload.description,
        project_id=payload.project_id,
        proposed_tech_stack=payload.proposed_tech_stack,
        estimated_duration=payload.estimated_duration,
        submitter_name=payload.submitter_name,
    )
    return success_response(request=request, data=_to_response(workflows.KIND_IDEA, record))


@router.post("/orders", status_code=201, response_model=Envelope[RecordResponse])
async def create_order(
    payload: OrderCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict:
    record = await workflows.submit_order(
        db,
        name=payload.name,
        email=payload.email,
        service_type=payload.service_type,
        description=payload.description,
        budget=payload.budget,
        timeline=payload.timeline,
    )
    return success_response(request=request, data=_to_response(workflows.KIND_ORDER, record))


@router.get("/workflows/mine/{kind}", response_model=Envelope[RecordsPage])
async def list_my_records(
    kind: str,
    request: Request,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    principal: PrincipalContext = Depends(require_role(Role.TEAM)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Members see their own applications and ideas.
    rows = await workflows.list_records(
        db,
        kind=kind,
        submitted_by=principal.principal_id,
        offset=offset,
        limit=limit + 1,
    )
    return success_response(request=request, data=_page(kind, rows, offset, limit))


@router.get("/workflows/{kind}", response_model=Envelope[RecordsPage])
async def list_records(
    kind: str,
    request: Request,
    status: str | None = None,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    rows = await workflows.list_records(db, kind=kind, status=status, offset=offset, limit=limit + 1)
    return success_response(request=request, data=_page(kind, rows, offset, limit))


@router.post("/workflows/{kind}/{record_id}/transition", response_model=Envelope[TransitionResponse])
async def transition_record(
    kind: str,
    record_id: str,
    payload: TransitionRequest,
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await workflows.transition(
        db,
        kind=kind,
        record_id=record_id,
        new_status=payload.status,
        actor=principal,
        notes=payload.notes,
    )
    return success_response(
        request=request,
        data=TransitionResponse(
            kind=result.kind,
            record_id=result.record_id,
            from_status=result.from_status,
            to_status=result.to_status,
            reviewed_by=result.reviewed_by,
            reviewed_at=result.reviewed_at,
            audit_recorded=result.audit_recorded,
        ),
    )
