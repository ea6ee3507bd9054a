from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.apps.api.deps import get_db, require_role
from saaforge.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from saaforge.apps.api.response import success_response
from saaforge.services import projects
from saaforge.services.access import PrincipalContext, Role


router = APIRouter(prefix="/projects", tags=["projects"], responses=DEFAULT_ERROR_RESPONSES)


class ProjectFields(BaseModel):
    description: str | None = None
    category: str | None = None
    tech_stack: list[str] | None = None
    status: str | None = None
    is_featured: bool | None = None
    is_published: bool | None = None
    case_study: str | None = None
    image_url: str | None = None
    demo_url: str | None = None
    github_url: str | None = None
    project_type: str | None = None
    client_id: str | None = Field(default=None, max_length=128)


class ProjectCreate(ProjectFields):
    name: str = Field(min_length=1, max_length=200)


class ProjectUpdate(ProjectFields):
    name: str | None = Field(default=None, min_length=1, max_length=200)


class MemberAssignment(BaseModel):
    member_id: str
    assigned: bool = True


def _set_fields(payload: BaseModel) -> dict[str, Any]:
    return payload.model_dump(exclude_unset=True, exclude_none=True)


@router.get("")
async def list_published_projects(
    request: Request,
    featured: bool = False,
    db: AsyncSession = Depends(get_db),
) -> dict:
    rows = await projects.list_published(db, featured_only=featured)
    return success_response(request=request, data=[projects.project_payload(row) for row in rows])


@router.get("/assigned")
async def list_assigned_projects(
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.TEAM)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    rows = await projects.list_assigned(db, member_id=principal.principal_id)
    return success_response(request=request, data=[projects.project_payload(row) for row in rows])


@router.get("/all")
async def list_all_projects(
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    rows = await projects.list_all(db, actor=principal)
    return success_response(
        request=request,
        data=[projects.project_payload(row, include_client_id=True) for row in rows],
    )


@router.post("", status_code=201)
async def create_project(
    payload: ProjectCreate,
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    project = await projects.create_project(db, actor=principal, **_set_fields(payload))
    return success_response(request=request, data=projects.project_payload(project, include_client_id=True))


@router.patch("/{project_id}")
async def update_project(
    project_id: str,
    payload: ProjectUpdate,
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    project = await projects.update_project(db, actor=principal, project_id=project_id, **_set_fields(payload))
    return success_response(request=request, data=projects.project_payload(project, include_client_id=True))


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await projects.delete_project(db, actor=principal, project_id=project_id)
    return success_response(request=request, data={"id": project_id, "deleted": True})


@router.post("/{project_id}/members")
async def assign_project_member(
    project_id: str,
    payload: MemberAssignment,
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    project = await projects.assign_member(
        db,
        actor=principal,
        project_id=project_id,
        member_id=payload.member_id,
        assigned=payload.assigned,
    )
    return success_response(request=request, data=projects.project_payload(project, include_client_id=True))
