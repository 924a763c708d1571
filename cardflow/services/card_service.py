from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.core.context import RequestContext
from cardflow.core.errors import InvalidReference
from cardflow.models.base import utcnow
from cardflow.models.card import Card, CardStatus, Watch
from cardflow.models.event import EventAction, Target
from cardflow.services import entity_store, event_service


async def create_card(
    db: AsyncSession,
    ctx: RequestContext,
    board_id: uuid.UUID,
    *,
    title: str = "",
    column_id: uuid.UUID | None = None,
    due_on: date | None = None,
    now: datetime | None = None,
) -> Card:
    """Create a drafted card; the creator starts out watching it."""
    board = await entity_store.get_board(db, ctx.tenant_id, board_id)
    if column_id is not None:
        column = await entity_store.get_column(db, ctx.tenant_id, column_id)
        if column.board_id != board.id:
            raise InvalidReference(f"Column {column_id} is not on board {board.id}")

    now = now or utcnow()
    card = await entity_store.insert(
        db,
        Card(
            tenant_id=ctx.tenant_id,
            board_id=board.id,
            column_id=column_id,
            number=await entity_store.next_card_number(db, board.id),
            title=title.strip(),
            due_on=due_on,
            creator_id=ctx.actor_id,
            status=CardStatus.DRAFTED.value,
            last_active_at=now,
            created_at=now,
            updated_at=now,
        ),
    )
    db.add(Watch(tenant_id=ctx.tenant_id, card_id=card.id, user_id=ctx.actor_id))
    await event_service.append_event(
        db, ctx, EventAction.CARD_CREATED, Target.card(card.id), board_id=board.id, now=now
    )
    return card


async def delete_card(db: AsyncSession, ctx: RequestContext, card_id: uuid.UUID) -> None:
    """Delete a card. Events and notifications pointing at it are kept."""
    card = await entity_store.get_card(db, ctx.tenant_id, card_id)
    await event_service.append_event(
        db,
        ctx,
        EventAction.CARD_DELETED,
        Target.card(card.id),
        board_id=card.board_id,
        payload={"number": card.number, "title": card.title},
    )
    await entity_store.delete(db, card)
