from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.apps.api.deps import get_db, require_principal, require_role
from saaforge.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from saaforge.apps.api.response import success_response
from saaforge.services import feedback
from saaforge.services.access import PrincipalContext, Role


router = APIRouter(tags=["feedback"], responses=DEFAULT_ERROR_RESPONSES)


class FeedbackCreate(BaseModel):
    type: str = "feedback"
    feedback: str = Field(min_length=1, max_length=4000)
    suggestions: str = Field(default="", max_length=4000)
    rating: int | None = None
    client_id: str | None = Field(default=None, max_length=128)
    user_name: str = Field(default="", max_length=200)


@router.get("/projects/{project_id}/feedback")
async def list_project_feedback(
    project_id: str,
    request: Request,
    type: str | None = None,
    db: AsyncSession = Depends(get_db),
) -> dict:
    rows = await feedback.list_for_project(db, project_id=project_id, feedback_type=type)
    return success_response(request=request, data=[feedback.feedback_payload(row) for row in rows])


@router.post("/projects/{project_id}/feedback", status_code=201)
async def submit_project_feedback(
    project_id: str,
    payload: FeedbackCreate,
    request: Request,
    principal: PrincipalContext = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    entry = await feedback.submit_feedback(
        db,
        actor=principal,
        project_id=project_id,
        feedback=payload.feedback,
        feedback_type=payload.type,
        suggestions=payload.suggestions,
        rating=payload.rating,
        client_id=payload.client_id,
        user_name=payload.user_name,
    )
    return success_response(request=request, data=feedback.feedback_payload(entry))


@router.get("/feedback")
async def list_all_feedback(
    request: Request,
    status: str = "all",
    type: str | None = None,
    principal: PrincipalContext = Depends(require_role(Role.TEAM)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    rows = await feedback.list_feedback(db, actor=principal, status=status, feedback_type=type)
    items = []
    for row in rows:
        item = feedback.feedback_payload(row, include_contact=principal.is_owner)
        if principal.is_owner:
            item["client_id_valid"] = await feedback.client_id_matches(db, row)
        items.append(item)
    return success_response(request=request, data=items)


@router.post("/feedback/{feedback_id}/approve")
async def approve_feedback(
    feedback_id: str,
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    entry = await feedback.approve_feedback(db, actor=principal, feedback_id=feedback_id)
    return success_response(request=request, data=feedback.feedback_payload(entry, include_contact=True))


@router.delete("/feedback/{feedback_id}")
async def delete_feedback(
    feedback_id: str,
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await feedback.delete_feedback(db, actor=principal, feedback_id=feedback_id)
    return success_response(request=request, data={"id": feedback_id, "deleted": True})
