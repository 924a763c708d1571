"""Entropy configuration: how long a published card may sit idle.

A board-level setting wins over the tenant-level one, which wins over the
system default.
"""
from __future__ import annotations

import uuid
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.config import settings
from cardflow.core.context import RequestContext
from cardflow.core.errors import ValidationError
from cardflow.models.entropy_config import EntropyConfig, EntropyScope
from cardflow.services import entity_store


def default_period() -> timedelta:
    return timedelta(days=settings.ENTROPY_DEFAULT_PERIOD_DAYS)


def _scope_id(ctx: RequestContext, scope: EntropyScope, board_id: uuid.UUID | None) -> uuid.UUID:
    if scope == EntropyScope.TENANT:
        return ctx.tenant_id
    if board_id is None:
        raise ValidationError("board_id is required for board-scoped entropy configuration")
    return board_id


async def get_config(
    db: AsyncSession,
    ctx: RequestContext,
    scope: EntropyScope,
    board_id: uuid.UUID | None = None,
) -> EntropyConfig | None:
    scope_id = _scope_id(ctx, scope, board_id)
    result = await db.execute(
        select(EntropyConfig).where(
            EntropyConfig.tenant_id == ctx.tenant_id,
            EntropyConfig.scope == scope.value,
            EntropyConfig.scope_id == scope_id,
        )
    )
    return result.scalar_one_or_none()


async def set_config(
    db: AsyncSession,
    ctx: RequestContext,
    scope: EntropyScope,
    period: timedelta,
    board_id: uuid.UUID | None = None,
) -> EntropyConfig:
    """Create or update the auto-postpone period for a tenant or board."""
    ctx.require_admin()
    seconds = int(period.total_seconds())
    if seconds <= 0:
        raise ValidationError("auto_postpone_period must be a positive duration")
    if scope == EntropyScope.BOARD:
        # Cross-tenant boards surface as NotFound
        await entity_store.get_board(db, ctx.tenant_id, _scope_id(ctx, scope, board_id))

    config = await get_config(db, ctx, scope, board_id)
    if config is None:
        config = EntropyConfig(
            tenant_id=ctx.tenant_id,
            scope=scope.value,
            scope_id=_scope_id(ctx, scope, board_id),
            auto_postpone_period_seconds=seconds,
        )
        db.add(config)
    else:
        config.auto_postpone_period_seconds = seconds
    await db.flush()
    return config


async def load_periods(db: AsyncSession, tenant_id: uuid.UUID) -> dict[tuple[str, uuid.UUID], timedelta]:
    """All configured periods of a tenant keyed by ``(scope, scope_id)``."""
    result = await db.execute(select(EntropyConfig).where(EntropyConfig.tenant_id == tenant_id))
    return {
        (c.scope, c.scope_id): timedelta(seconds=c.auto_postpone_period_seconds)
        for c in result.scalars().all()
    }


def pick_period(
    periods: dict[tuple[str, uuid.UUID], timedelta],
    tenant_id: uuid.UUID,
    board_id: uuid.UUID,
) -> timedelta:
    board = periods.get((EntropyScope.BOARD.value, board_id))
    if board is not None:
        return board
    tenant = periods.get((EntropyScope.TENANT.value, tenant_id))
    if tenant is not None:
        return tenant
    return default_period()


async def resolve_period(
    db: AsyncSession, tenant_id: uuid.UUID, board_id: uuid.UUID
) -> timedelta:
    """Effective auto-postpone period for cards on ``board_id``."""
    return pick_period(await load_periods(db, tenant_id), tenant_id, board_id)
