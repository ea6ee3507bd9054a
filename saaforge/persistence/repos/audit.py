from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.domain.models import AuditLog


async def list_logs(
    session: AsyncSession,
    *,
    action: str | None = None,
    performed_by: str | None = None,
    target_type: str | None = None,
    target_id: str | None = None,
    occurred_from: datetime | None = None,
    occurred_to: datetime | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[AuditLog]:
    # Newest first; id breaks ties between entries written in the same instant.
    stmt = select(AuditLog)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if performed_by:
        stmt = stmt.where(AuditLog.performed_by == performed_by)
    if target_type:
        stmt = stmt.where(AuditLog.target_type == target_type)
    if target_id:
        stmt = stmt.where(AuditLog.target_id == target_id)
    if occurred_from:
        stmt = stmt.where(AuditLog.timestamp >= occurred_from)
    if occurred_to:
        stmt = stmt.where(AuditLog.timestamp <= occurred_to)

    stmt = stmt.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
    stmt = stmt.offset(offset).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_log_by_id(session: AsyncSession, *, log_id: int) -> AuditLog | None:
    result = await session.execute(select(AuditLog).where(AuditLog.id == log_id))
    return result.scalar_one_or_none()


async def list_timestamps(session: AsyncSession) -> list[datetime | None]:
    # Feed the audit notification counter without loading detail payloads.
    result = await session.execute(select(AuditLog.timestamp))
    return list(result.scalars().all())
