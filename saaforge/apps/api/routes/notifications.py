from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.apps.api.deps import get_db, require_principal
from saaforge.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from saaforge.apps.api.response import Envelope, success_response
from saaforge.services import notifications
from saaforge.services.access import PrincipalContext


router = APIRouter(prefix="/notifications", tags=["notifications"], responses=DEFAULT_ERROR_RESPONSES)


class NotificationCountsResponse(BaseModel):
    counts: dict[str, int]
    total: int


class MarkViewedResponse(BaseModel):
    feed: str
    recorded: bool


@router.get("", response_model=Envelope[NotificationCountsResponse])
async def get_notification_counts(
    request: Request,
    principal: PrincipalContext = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    counts = await notifications.notification_counts(db, principal)
    return success_response(
        request=request,
        data=NotificationCountsResponse(counts=counts, total=sum(counts.values())),
    )


@router.post("/{feed}/viewed", response_model=Envelope[MarkViewedResponse])
async def mark_feed_viewed(
    feed: str,
    request: Request,
    principal: PrincipalContext = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Watermark writes are best effort; a failed write still answers 200 with recorded=false.
    recorded = await notifications.mark_viewed(db, user_id=principal.principal_id, feed=feed)
    return success_response(request=request, data=MarkViewedResponse(feed=feed, recorded=recorded))
