from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.api.deps import get_context
from cardflow.api.v1.serializers import notification_read
from cardflow.core.context import RequestContext
from cardflow.database import get_db
from cardflow.schemas.event import NotificationList
from cardflow.services import notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationList)
async def list_notifications(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
    unread: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
):
    """List notifications for the calling actor."""
    rows, total = await notification_service.list_notifications(
        db, ctx, unread_only=unread, limit=page_size, offset=(page - 1) * page_size
    )
    return NotificationList(
        items=[notification_read(n, e) for n, e in rows],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/unread-count")
async def unread_count(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
):
    return {"count": await notification_service.get_unread_count(db, ctx)}


@router.patch("/{notification_id}/read")
async def mark_read(
    notification_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
):
    ok = await notification_service.mark_as_read(db, ctx, notification_id)
    if not ok:
        raise HTTPException(404, "Notification not found")
    await db.commit()
    return {"ok": True}


@router.post("/mark-all-read")
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
):
    count = await notification_service.mark_all_as_read(db, ctx)
    await db.commit()
    return {"marked": count}
