"""Tenant-scoped access to cards, boards and columns.

The database itself is tenant-unaware; every lookup here filters on the
caller's tenant so that a row owned by another tenant is indistinguishable
from a missing one.
"""
from __future__ import annotations

import uuid
from typing import Any, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cardflow.core.errors import NotFound
from cardflow.models.base import Base
from cardflow.models.card import Card
from cardflow.models.tenant import Board, BoardColumn, Tenant

ModelT = TypeVar("ModelT", bound=Base)


async def _get_scoped(
    db: AsyncSession,
    model: type[ModelT],
    tenant_id: uuid.UUID,
    entity_id: uuid.UUID,
    *,
    refresh: bool = False,
) -> ModelT:
    stmt = select(model).where(model.id == entity_id, model.tenant_id == tenant_id)
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    result = await db.execute(stmt)
    entity = result.scalar_one_or_none()
    if entity is None:
        raise NotFound(f"{model.__name__} {entity_id} not found")
    return entity


async def get_card(
    db: AsyncSession, tenant_id: uuid.UUID, card_id: uuid.UUID, *, refresh: bool = False
) -> Card:
    """Load a card owned by ``tenant_id``.

    ``refresh`` re-reads the row even if the session already holds it, so
    guards evaluated afterwards see the committed state.
    """
    return await _get_scoped(db, Card, tenant_id, card_id, refresh=refresh)


async def get_board(db: AsyncSession, tenant_id: uuid.UUID, board_id: uuid.UUID) -> Board:
    return await _get_scoped(db, Board, tenant_id, board_id)


async def get_column(
    db: AsyncSession, tenant_id: uuid.UUID, column_id: uuid.UUID
) -> BoardColumn:
    return await _get_scoped(db, BoardColumn, tenant_id, column_id)


async def list_tenant_ids(db: AsyncSession) -> list[uuid.UUID]:
    result = await db.execute(select(Tenant.id).order_by(Tenant.created_at))
    return list(result.scalars().all())


async def list_boards(db: AsyncSession, tenant_id: uuid.UUID) -> list[Board]:
    result = await db.execute(
        select(Board).where(Board.tenant_id == tenant_id).order_by(Board.created_at)
    )
    return list(result.scalars().all())


async def query_cards(db: AsyncSession, tenant_id: uuid.UUID, *criteria: Any) -> list[Card]:
    """Return the tenant's cards matching extra SQLAlchemy ``criteria``."""
    result = await db.execute(
        select(Card).where(Card.tenant_id == tenant_id, *criteria).order_by(Card.number)
    )
    return list(result.scalars().all())


async def next_card_number(db: AsyncSession, board_id: uuid.UUID) -> int:
    result = await db.execute(select(func.max(Card.number)).where(Card.board_id == board_id))
    return (result.scalar() or 0) + 1


async def insert(db: AsyncSession, entity: ModelT) -> ModelT:
    db.add(entity)
    await db.flush()
    return entity


async def patch(db: AsyncSession, entity: ModelT, **changes: Any) -> ModelT:
    for key, value in changes.items():
        if not hasattr(entity, key):
            raise AttributeError(f"{type(entity).__name__} has no attribute {key!r}")
        setattr(entity, key, value)
    await db.flush()
    return entity


async def delete(db: AsyncSession, entity: Base) -> None:
    await db.delete(entity)
    await db.flush()
