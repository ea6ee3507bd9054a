from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.apps.api.deps import get_db, require_role
from saaforge.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from saaforge.apps.api.response import Envelope, success_response
from saaforge.domain.models import SiteContent
from saaforge.services import content
from saaforge.services.access import PrincipalContext, Role


router = APIRouter(prefix="/content", tags=["content"], responses=DEFAULT_ERROR_RESPONSES)


class ContentUpdate(BaseModel):
    content: str = Field(max_length=20000)
    title: str | None = Field(default=None, max_length=300)
    order: int | None = None


class ContentResponse(BaseModel):
    section: str
    title: str | None
    content: str
    order: int | None
    updated_by: str
    updated_at: datetime


def _to_response(row: SiteContent) -> ContentResponse:
    return ContentResponse(
        section=row.section,
        title=row.title,
        content=row.content,
        order=row.order,
        updated_by=row.updated_by,
        updated_at=row.updated_at,
    )


@router.get("", response_model=Envelope[list[ContentResponse]])
async def list_content(request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    rows = await content.list_sections(db)
    return success_response(request=request, data=[_to_response(row) for row in rows])


@router.get("/{section}", response_model=Envelope[ContentResponse])
async def get_content(section: str, request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    return success_response(request=request, data=_to_response(await content.get_section(db, section)))


@router.put("/{section}", response_model=Envelope[ContentResponse])
async def put_content(
    section: str,
    payload: ContentUpdate,
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    row = await content.upsert_section(
        db,
        actor=principal,
        section=section,
        content=payload.content,
        title=payload.title,
        order=payload.order,
    )
    return success_response(request=request, data=_to_response(row))
