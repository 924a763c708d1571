from __future__ import annotations

import uuid
from datetime import timedelta

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.api.deps import get_context
from cardflow.core.context import RequestContext
from cardflow.database import get_db
from cardflow.models.entropy_config import EntropyScope
from cardflow.schemas.entropy import EntropyConfigRead, EntropyConfigUpdate
from cardflow.services import entity_store, entropy_service

router = APIRouter(prefix="/entropy", tags=["entropy"])


@router.get("/tenant", response_model=EntropyConfigRead)
async def get_tenant_config(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
):
    config = await entropy_service.get_config(db, ctx, EntropyScope.TENANT)
    if config:
        seconds = config.auto_postpone_period_seconds
    else:
        seconds = int(entropy_service.default_period().total_seconds())
    return EntropyConfigRead(
        scope=EntropyScope.TENANT.value,
        scope_id=ctx.tenant_id,
        auto_postpone_period_seconds=seconds,
        configured=config is not None,
    )


@router.put("/tenant", response_model=EntropyConfigRead)
async def put_tenant_config(
    body: EntropyConfigUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
):
    config = await entropy_service.set_config(
        db, ctx, EntropyScope.TENANT, timedelta(seconds=body.auto_postpone_period_seconds)
    )
    await db.commit()
    return EntropyConfigRead(
        scope=config.scope,
        scope_id=config.scope_id,
        auto_postpone_period_seconds=config.auto_postpone_period_seconds,
        configured=True,
    )


@router.get("/boards/{board_id}", response_model=EntropyConfigRead)
async def get_board_config(
    board_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
):
    """Effective period for a board, inherited from the tenant if unset."""
    await entity_store.get_board(db, ctx.tenant_id, board_id)
    config = await entropy_service.get_config(db, ctx, EntropyScope.BOARD, board_id)
    period = await entropy_service.resolve_period(db, ctx.tenant_id, board_id)
    return EntropyConfigRead(
        scope=EntropyScope.BOARD.value,
        scope_id=board_id,
        auto_postpone_period_seconds=int(period.total_seconds()),
        configured=config is not None,
    )


@router.put("/boards/{board_id}", response_model=EntropyConfigRead)
async def put_board_config(
    board_id: uuid.UUID,
    body: EntropyConfigUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
):
    config = await entropy_service.set_config(
        db,
        ctx,
        EntropyScope.BOARD,
        timedelta(seconds=body.auto_postpone_period_seconds),
        board_id=board_id,
    )
    await db.commit()
    return EntropyConfigRead(
        scope=config.scope,
        scope_id=config.scope_id,
        auto_postpone_period_seconds=config.auto_postpone_period_seconds,
        configured=True,
    )
