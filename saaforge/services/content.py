from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.core.errors import Forbidden, NotFound, TransientStoreFailure, ValidationFailed
from saaforge.domain.models import SiteContent
from saaforge.services.access import PrincipalContext
from saaforge.services.audit import record_audit


SECTIONS = ("hero", "about", "vision", "mission", "services")


def _validate_section(section: str) -> str:
    if section not in SECTIONS:
        raise ValidationFailed(f"Unknown content section: {section}", section=section)
    return section


async def get_section(session: AsyncSession, section: str) -> SiteContent:
    _validate_section(section)
    try:
        row = await session.get(SiteContent, section)
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Site content unavailable") from exc
    if row is None:
        raise NotFound("Content section not found", section=section)
    return row


async def list_sections(session: AsyncSession) -> list[SiteContent]:
    try:
        result = await session.execute(select(SiteContent).order_by(SiteContent.order.asc(), SiteContent.section.asc()))
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Site content unavailable") from exc
    return list(result.scalars().all())


async def upsert_section(
    session: AsyncSession,
    *,
    actor: PrincipalContext | None,
    section: str,
    content: str,
    title: str | None = None,
    order: int | None = None,
) -> SiteContent:
    if actor is None or not actor.is_owner:
        raise Forbidden("Only owners can edit site content")
    _validate_section(section)
    now = datetime.now(timezone.utc)
    try:
        row = await session.get(SiteContent, section)
        created = row is None
        if row is None:
            row = SiteContent(section=section)
            session.add(row)
        row.content = content
        row.title = title
        row.order = order
        row.updated_by = actor.principal_id
        row.updated_at = now
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure("Site content could not be saved") from exc

    await record_audit(
        action="content.updated",
        performed_by=actor.principal_id,
        target_id=section,
        target_type="site_content",
        details={"section": section, "created": created},
    )
    return row
