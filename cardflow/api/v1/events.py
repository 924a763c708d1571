from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.api.deps import get_context
from cardflow.api.v1.serializers import event_read
from cardflow.core.context import RequestContext
from cardflow.database import get_db
from cardflow.models.event import EventAction, Target, TargetType
from cardflow.schemas.event import EventList
from cardflow.services import event_service

router = APIRouter(prefix="/events", tags=["events"])


@router.get("", response_model=EventList)
async def list_events(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
    target_type: TargetType | None = Query(None),
    target_id: uuid.UUID | None = Query(None),
    action: EventAction | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
):
    if (target_type is None) != (target_id is None):
        raise HTTPException(422, "target_type and target_id must be given together")
    target = Target(target_type, target_id) if target_type is not None else None
    events, total = await event_service.get_events(
        db,
        ctx,
        target=target,
        action=action,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return EventList(items=[event_read(e) for e in events], total=total)
