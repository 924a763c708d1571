"""Comments, the collaboration action that feeds notifications.

A comment counts as activity on its card (it resets the entropy clock), and
a burst of comments flags the card with an activity spike.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.config import settings
from cardflow.core.context import RequestContext
from cardflow.core.errors import InvalidTransition, ValidationError
from cardflow.models.base import utcnow
from cardflow.models.card import EffectiveState
from cardflow.models.comment import Comment
from cardflow.models.event import EventAction, Target
from cardflow.services import (
    entity_store,
    event_service,
    lifecycle_engine,
    notification_bundler,
    notification_service,
)


async def _is_spike(db: AsyncSession, card_id: uuid.UUID, now: datetime) -> bool:
    since = now - timedelta(hours=settings.ACTIVITY_SPIKE_WINDOW_HOURS)
    recent = (
        await db.execute(
            select(func.count(Comment.id)).where(
                Comment.card_id == card_id, Comment.created_at >= since
            )
        )
    ).scalar() or 0
    return recent >= settings.ACTIVITY_SPIKE_THRESHOLD


async def add_comment(
    db: AsyncSession,
    ctx: RequestContext,
    card_id: uuid.UUID,
    body: str,
    *,
    now: datetime | None = None,
) -> Comment:
    body = (body or "").strip()
    if not body:
        raise ValidationError("Comment body must not be empty")

    card = await entity_store.get_card(db, ctx.tenant_id, card_id)
    if lifecycle_engine.effective_state(card) == EffectiveState.DRAFTED:
        raise InvalidTransition(f"Card {card.number} is drafted; publish it before commenting")

    now = now or utcnow()
    comment = await entity_store.insert(
        db,
        Comment(
            tenant_id=ctx.tenant_id,
            card_id=card.id,
            author_id=ctx.actor_id,
            body=body,
            created_at=now,
            updated_at=now,
        ),
    )
    await notification_service.watch(db, ctx, card.id)
    await lifecycle_engine.touch(
        db, ctx, card.id, now=now, spike=await _is_spike(db, card.id, now)
    )

    event = await event_service.append_event(
        db,
        ctx,
        EventAction.COMMENT_CREATED,
        Target.comment(comment.id),
        board_id=card.board_id,
        payload={"card_id": str(card.id), "excerpt": body[:140]},
        now=now,
    )
    recipients = await notification_service.watcher_ids(db, ctx.tenant_id, card.id)
    await notification_bundler.record(db, ctx, event, recipients, now=now)
    return comment
