from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.apps.api.deps import get_db, require_role
from saaforge.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from saaforge.apps.api.response import success_response
from saaforge.services import tasks
from saaforge.services.access import PrincipalContext, Role


router = APIRouter(prefix="/tasks", tags=["tasks"], responses=DEFAULT_ERROR_RESPONSES)


class TaskFields(BaseModel):
    description: str | None = None
    priority: str | None = None
    project_id: str | None = None
    due_date: datetime | None = None


class TaskCreate(TaskFields):
    title: str = Field(min_length=1, max_length=200)
    assigned_to: str


class TaskUpdate(TaskFields):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    assigned_to: str | None = None


class TaskStatusUpdate(BaseModel):
    status: str


class TaskGrade(BaseModel):
    grade: int
    feedback: str | None = Field(default=None, max_length=4000)


@router.get("")
async def list_tasks(
    request: Request,
    status: str | None = None,
    assigned_to: str | None = None,
    principal: PrincipalContext = Depends(require_role(Role.TEAM)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    rows = await tasks.list_tasks(db, actor=principal, status=status, assigned_to=assigned_to)
    return success_response(request=request, data=[tasks.task_payload(row) for row in rows])


@router.post("", status_code=201)
async def create_task(
    payload: TaskCreate,
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    task = await tasks.create_task(db, actor=principal, **payload.model_dump(exclude_none=True))
    return success_response(request=request, data=tasks.task_payload(task))


@router.patch("/{task_id}")
async def update_task(
    task_id: str,
    payload: TaskUpdate,
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    fields = payload.model_dump(exclude_unset=True, exclude_none=True)
    task = await tasks.update_task(db, actor=principal, task_id=task_id, **fields)
    return success_response(request=request, data=tasks.task_payload(task))


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await tasks.delete_task(db, actor=principal, task_id=task_id)
    return success_response(request=request, data={"id": task_id, "deleted": True})


@router.post("/{task_id}/status")
async def update_task_status(
    task_id: str,
    payload: TaskStatusUpdate,
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.TEAM)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    task = await tasks.set_task_status(db, actor=principal, task_id=task_id, new_status=payload.status)
    return success_response(request=request, data=tasks.task_payload(task))


@router.post("/{task_id}/grade")
async def grade_task(
    task_id: str,
    payload: TaskGrade,
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    task = await tasks.grade_task(db, actor=principal, task_id=task_id, grade=payload.grade, feedback=payload.feedback)
    return success_response(request=request, data=tasks.task_payload(task))
