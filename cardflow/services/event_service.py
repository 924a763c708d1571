import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.core.context import RequestContext
from cardflow.models.base import utcnow
from cardflow.models.event import Event, EventAction, Target


async def append_event(
    db: AsyncSession,
    ctx: RequestContext,
    action: EventAction | str,
    target: Target,
    *,
    board_id: uuid.UUID | None,
    payload: dict | None = None,
    now: datetime | None = None,
) -> Event:
    event = Event(
        tenant_id=ctx.tenant_id,
        board_id=board_id,
        actor_id=ctx.actor_id,
        action=EventAction(action).value,
        target_type=target.type.value,
        target_id=target.id,
        payload=payload or {},
        created_at=now or utcnow(),
    )
    db.add(event)
    await db.flush()
    return event


async def events_for_target(
    db: AsyncSession, ctx: RequestContext, target: Target
) -> list[Event]:
    """Audit trail / comment thread for one target, oldest first."""
    result = await db.execute(
        select(Event)
        .where(
            Event.tenant_id == ctx.tenant_id,
            Event.target_type == target.type.value,
            Event.target_id == target.id,
        )
        .order_by(Event.created_at, Event.id)
    )
    return list(result.scalars().all())


async def events_for_action(
    db: AsyncSession,
    ctx: RequestContext,
    action: EventAction | str,
    *,
    since: datetime | None = None,
    until: datetime | None = None,
) -> list[Event]:
    query = select(Event).where(
        Event.tenant_id == ctx.tenant_id,
        Event.action == EventAction(action).value,
    )
    if since is not None:
        query = query.where(Event.created_at >= since)
    if until is not None:
        query = query.where(Event.created_at <= until)
    result = await db.execute(query.order_by(Event.created_at, Event.id))
    return list(result.scalars().all())


async def get_events(
    db: AsyncSession,
    ctx: RequestContext,
    target: Target | None = None,
    action: EventAction | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Event], int]:
    query = select(Event).where(Event.tenant_id == ctx.tenant_id)
    count_query = select(func.count(Event.id)).where(Event.tenant_id == ctx.tenant_id)

    if target:
        query = query.where(Event.target_type == target.type.value, Event.target_id == target.id)
        count_query = count_query.where(
            Event.target_type == target.type.value, Event.target_id == target.id
        )
    if action:
        query = query.where(Event.action == action.value)
        count_query = count_query.where(Event.action == action.value)

    total = (await db.execute(count_query)).scalar_one()

    query = query.order_by(Event.created_at.desc()).offset(offset).limit(limit)
    result = await db.execute(query)
    events = list(result.scalars().all())

    return events, total
