"""Card watchers and per-recipient notification records."""
from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.core.context import RequestContext
from cardflow.models.base import utcnow
from cardflow.models.card import Watch
from cardflow.models.event import Event
from cardflow.models.notification import Notification
from cardflow.services import entity_store


async def watcher_ids(db: AsyncSession, tenant_id: uuid.UUID, card_id: uuid.UUID) -> list[uuid.UUID]:
    result = await db.execute(
        select(Watch.user_id)
        .where(Watch.tenant_id == tenant_id, Watch.card_id == card_id)
        .order_by(Watch.created_at)
    )
    return list(result.scalars().all())


async def watch(
    db: AsyncSession, ctx: RequestContext, card_id: uuid.UUID, user_id: uuid.UUID | None = None
) -> bool:
    """Subscribe a user (default: the actor) to a card. Returns False if already watching."""
    card = await entity_store.get_card(db, ctx.tenant_id, card_id)
    user_id = user_id or ctx.actor_id
    existing = await db.execute(
        select(Watch.id).where(Watch.card_id == card.id, Watch.user_id == user_id)
    )
    if existing.scalar_one_or_none() is not None:
        return False
    db.add(Watch(tenant_id=ctx.tenant_id, card_id=card.id, user_id=user_id))
    await db.flush()
    return True


async def unwatch(
    db: AsyncSession, ctx: RequestContext, card_id: uuid.UUID, user_id: uuid.UUID | None = None
) -> bool:
    result = await db.execute(
        select(Watch).where(
            Watch.tenant_id == ctx.tenant_id,
            Watch.card_id == card_id,
            Watch.user_id == (user_id or ctx.actor_id),
        )
    )
    found = result.scalar_one_or_none()
    if not found:
        return False
    await db.delete(found)
    await db.flush()
    return True


async def create_notifications(
    db: AsyncSession,
    ctx: RequestContext,
    event: Event,
    recipient_ids: list[uuid.UUID],
    *,
    now: datetime | None = None,
) -> list[Notification]:
    """One notification per distinct recipient; the actor never notifies themself."""
    now = now or utcnow()
    created = []
    seen: set[uuid.UUID] = set()
    for recipient_id in recipient_ids:
        if recipient_id == event.actor_id or recipient_id in seen:
            continue
        seen.add(recipient_id)
        notif = Notification(
            tenant_id=ctx.tenant_id,
            recipient_id=recipient_id,
            event_id=event.id,
            source_type=event.target_type,
            source_id=event.target_id,
            created_at=now,
        )
        db.add(notif)
        created.append(notif)
    if created:
        await db.flush()
    return created


async def list_notifications(
    db: AsyncSession,
    ctx: RequestContext,
    *,
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[tuple[Notification, Event | None]], int]:
    """The actor's notifications, newest first, with their source events.

    Events are outer-joined; the event may be ``None``.
    """
    filters = [Notification.tenant_id == ctx.tenant_id, Notification.recipient_id == ctx.actor_id]
    if unread_only:
        filters.append(Notification.read_at.is_(None))

    total = (
        await db.execute(select(func.count(Notification.id)).where(*filters))
    ).scalar() or 0

    result = await db.execute(
        select(Notification, Event)
        .outerjoin(Event, Event.id == Notification.event_id)
        .where(*filters)
        .order_by(Notification.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return [(row[0], row[1]) for row in result.all()], total


async def get_unread_count(db: AsyncSession, ctx: RequestContext) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.tenant_id == ctx.tenant_id,
            Notification.recipient_id == ctx.actor_id,
            Notification.read_at.is_(None),
        )
    )
    return result.scalar() or 0


async def mark_as_read(db: AsyncSession, ctx: RequestContext, notification_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.tenant_id == ctx.tenant_id,
            Notification.recipient_id == ctx.actor_id,
        )
    )
    notif = result.scalar_one_or_none()
    if not notif:
        return False
    if notif.read_at is None:
        notif.read_at = utcnow()
        await db.flush()
    return True


async def mark_all_as_read(db: AsyncSession, ctx: RequestContext) -> int:
    result = await db.execute(
        update(Notification)
        .where(
            Notification.tenant_id == ctx.tenant_id,
            Notification.recipient_id == ctx.actor_id,
            Notification.read_at.is_(None),
        )
        .values(read_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0
