from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.apps.api.deps import get_db, require_role
from saaforge.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from saaforge.apps.api.response import Envelope, success_response
from saaforge.core.config import get_settings
from saaforge.core.errors import NotFound, TransientStoreFailure
from saaforge.domain.models import AuditLog
from saaforge.persistence.repos import audit as audit_repo
from saaforge.services.access import PrincipalContext, Role


router = APIRouter(prefix="/audit", tags=["audit"], responses=DEFAULT_ERROR_RESPONSES)


class AuditLogResponse(BaseModel):
    id: int
    action: str
    performed_by: str
    target_id: str | None
    target_type: str | None
    details: dict[str, Any]
    timestamp: datetime


class AuditLogsPage(BaseModel):
    items: list[AuditLogResponse]
    next_offset: int | None


def _to_response(entry: AuditLog) -> AuditLogResponse:
    return AuditLogResponse(
        id=entry.id,
        action=entry.action,
        performed_by=entry.performed_by,
        target_id=entry.target_id,
        target_type=entry.target_type,
        details=entry.details or {},
        timestamp=entry.timestamp,
    )


@router.get("/logs", response_model=Envelope[AuditLogsPage])
async def list_audit_logs(
    request: Request,
    action: str | None = None,
    performed_by: str | None = None,
    target_type: str | None = None,
    target_id: str | None = None,
    occurred_from: datetime | None = Query(default=None, alias="from"),
    occurred_to: datetime | None = Query(default=None, alias="to"),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1),
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    limit = min(limit, get_settings().audit_page_max)
    try:
        entries = await audit_repo.list_logs(
            db,
            action=action,
            performed_by=performed_by,
            target_type=target_type,
            target_id=target_id,
            occurred_from=occurred_from,
            occurred_to=occurred_to,
            offset=offset,
            limit=limit + 1,
        )
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Audit log unavailable") from exc

    next_offset = None
    if len(entries) > limit:
        entries = entries[:limit]
        next_offset = offset + limit
    return success_response(
        request=request,
        data=AuditLogsPage(items=[_to_response(entry) for entry in entries], next_offset=next_offset),
    )


@router.get("/logs/{log_id}", response_model=Envelope[AuditLogResponse])
async def get_audit_log(
    log_id: int,
    request: Request,
    principal: PrincipalContext = Depends(require_role(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    try:
        entry = await audit_repo.get_log_by_id(db, log_id=log_id)
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Audit log unavailable") from exc
    if entry is None:
        raise NotFound("Audit entry not found", log_id=log_id)
    return success_response(request=request, data=_to_response(entry))
