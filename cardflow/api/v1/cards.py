from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.api.deps import get_context
from cardflow.api.v1.serializers import card_read, comment_read, event_read
from cardflow.core.context import RequestContext
from cardflow.database import get_db
from cardflow.models.event import Target
from cardflow.schemas.card import (
    CardCreate,
    CardRead,
    CommentCreate,
    CommentRead,
    ExpiryWarningRead,
    GoldenUpdate,
    TransitionRequest,
)
from cardflow.schemas.event import EventRead
from cardflow.services import (
    card_service,
    comment_service,
    entity_store,
    entropy_scheduler,
    event_service,
    lifecycle_engine,
    notification_service,
)

router = APIRouter(prefix="/cards", tags=["cards"])


@router.post("", status_code=201, response_model=CardRead)
async def create_card(
    body: CardCreate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
):
    card = await card_service.create_card(
        db, ctx, body.board_id, title=body.title, column_id=body.column_id, due_on=body.due_on
    )
    await db.commit()
    return card_read(card)


@router.get("/approaching-expiry", response_model=list[ExpiryWarningRead])
async def approaching_expiry(
    board_id: uuid.UUID | None = Query(None),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
):
    """Cards the next entropy sweeps will postpone unless someone touches them."""
    warnings = await entropy_scheduler.list_approaching_expiry(db, ctx, board_id=board_id)
    return [
        ExpiryWarningRead(
            card=card_read(w.card),
            period_seconds=int(w.period.total_seconds()),
            expires_at=w.expires_at,
            progress=round(w.progress, 4),
        )
        for w in warnings
    ]


@router.get("/{card_id}", response_model=CardRead)
async def get_card(
    card_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
):
    return card_read(await entity_store.get_card(db, ctx.tenant_id, card_id))


@router.delete("/{card_id}", status_code=204)
async def delete_card(
    card_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
):
    await card_service.delete_card(db, ctx, card_id)
    await db.commit()


@router.post("/{card_id}/transitions/{action}", response_model=CardRead)
async def transition_card(
    card_id: uuid.UUID,
    action: str,
    body: TransitionRequest | None = None,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
):
    card = await lifecycle_engine.transition(
        db, ctx, card_id, action, body.params if body else None
    )
    await db.commit()
    return card_read(card)


@router.put("/{card_id}/golden", response_model=CardRead)
async def set_golden(
    card_id: uuid.UUID,
    body: GoldenUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
):
    card = await lifecycle_engine.set_golden(db, ctx, card_id, body.golden)
    await db.commit()
    return card_read(card)


@router.get("/{card_id}/events", response_model=list[EventRead])
async def card_events(
    card_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
):
    events = await event_service.events_for_target(db, ctx, Target.card(card_id))
    return [event_read(e) for e in events]


@router.post("/{card_id}/comments", status_code=201, response_model=CommentRead)
async def create_comment(
    card_id: uuid.UUID,
    body: CommentCreate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
):
    comment = await comment_service.add_comment(db, ctx, card_id, body.body)
    await db.commit()
    return comment_read(comment)


@router.post("/{card_id}/watch")
async def watch_card(
    card_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
):
    added = await notification_service.watch(db, ctx, card_id)
    await db.commit()
    return {"watching": True, "added": added}


@router.delete("/{card_id}/watch")
async def unwatch_card(
    card_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
):
    removed = await notification_service.unwatch(db, ctx, card_id)
    await db.commit()
    return {"watching": False, "removed": removed}
