"""Shared test fixtures for the Cardflow backend.

Provides:
- A throwaway SQLite database per test (file-based, so that several sessions
  see each other's commits the way they would on PostgreSQL)
- A session factory for code that opens its own sessions (sweeps, delivery)
- FastAPI test client with overridden DB dependency
- Factory helpers for tenants, boards, columns and cards
"""

from __future__ import annotations

import os
import uuid
from datetime import datetime, timedelta, timezone

# Set test environment BEFORE any cardflow imports so Settings() picks them up.
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("RUN_BACKGROUND_TASKS", "false")
os.environ.setdefault("SMTP_HOST", "")
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cardflow.core.context import RequestContext
from cardflow.models import Base

T0 = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)


def at(days: float = 0, **kwargs) -> datetime:
    """A fixed instant relative to ``T0``; keeps time-based tests deterministic."""
    return T0 + timedelta(days=days, **kwargs)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine(tmp_path):
    url = os.getenv("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'cardflow.db'}"
    eng = create_async_engine(url, echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    """Factory for independent sessions, as used by sweeps and scheduled jobs."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    """Session used by the test body.

    Code under test that opens its own sessions only sees what this session
    has committed, so tests commit before running a sweep or a delivery.
    """
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# FastAPI test app + HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
async def app(db):
    """Minimal FastAPI test app with ``get_db`` overridden to use the test session."""
    from fastapi import FastAPI

    from cardflow.api.errors import add_exception_handlers
    from cardflow.api.v1.router import api_router
    from cardflow.config import settings
    from cardflow.database import get_db

    test_app = FastAPI()
    add_exception_handlers(test_app)
    test_app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    async def _override_get_db():
        yield db

    test_app.dependency_overrides[get_db] = _override_get_db
    yield test_app
    test_app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    """HTTP test client for the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c


# ---------------------------------------------------------------------------
# Scheduler cleanup (autouse)
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _clear_scheduler():
    """Reset the global scheduler between tests."""
    from cardflow.services.scheduler import scheduler

    scheduler.clear()
    yield
    scheduler.clear()


# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------


def ctx_for(tenant, actor_id=None, role="member") -> RequestContext:
    """Context for ``tenant`` acting as ``actor_id`` (a fresh user by default)."""
    return RequestContext(
        tenant_id=tenant.id, actor_id=actor_id or uuid.uuid4(), role=role
    )


def headers_for(ctx: RequestContext) -> dict[str, str]:
    return {
        "X-Tenant-Id": str(ctx.tenant_id),
        "X-Actor-Id": str(ctx.actor_id),
        "X-Actor-Role": ctx.role,
    }


async def create_tenant(db, *, name="Acme"):
    from cardflow.models.tenant import Tenant

    tenant = Tenant(name=name)
    db.add(tenant)
    await db.flush()
    return tenant


async def create_board(db, tenant, *, name="Roadmap"):
    from cardflow.models.tenant import Board

    board = Board(tenant_id=tenant.id, name=name)
    db.add(board)
    await db.flush()
    return board


async def create_column(db, board, *, name="Doing", position=0):
    from cardflow.models.tenant import BoardColumn

    column = BoardColumn(tenant_id=board.tenant_id, board_id=board.id, name=name, position=position)
    db.add(column)
    await db.flush()
    return column


_STATES = ("drafted", "active", "triage", "closed", "not_now")


async def create_card(
    db,
    board,
    *,
    state="active",
    column=None,
    title="Test Card",
    last_active_at=None,
    is_golden=False,
    creator_id=None,
    watchers=(),
):
    """Insert a card directly in the given effective ``state``.

    ``active`` and ``closed`` cards need a column; one is created on the
    board if none is given.
    """
    from cardflow.models.card import Card, CardStatus, Watch
    from cardflow.services.entity_store import next_card_number

    assert state in _STATES, state
    if state in ("active", "closed") and column is None:
        column = await create_column(db, board)

    when = last_active_at or T0
    card = Card(
        tenant_id=board.tenant_id,
        board_id=board.id,
        column_id=column.id if column is not None and state in ("active", "closed") else None,
        number=await next_card_number(db, board.id),
        title=title,
        creator_id=creator_id,
        status=CardStatus.DRAFTED.value if state == "drafted" else CardStatus.PUBLISHED.value,
        closed_at=when if state == "closed" else None,
        postponed_at=when if state == "not_now" else None,
        last_active_at=when,
        is_golden=is_golden,
    )
    db.add(card)
    await db.flush()
    for user_id in watchers:
        db.add(Watch(tenant_id=board.tenant_id, card_id=card.id, user_id=user_id))
    if watchers:
        await db.flush()
    return card


# ---------------------------------------------------------------------------
# Convenience fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def tenant(db):
    return await create_tenant(db)


@pytest.fixture
async def board(db, tenant):
    return await create_board(db, tenant)


@pytest.fixture
async def column(db, board):
    return await create_column(db, board)


@pytest.fixture
def member(tenant):
    return ctx_for(tenant)


@pytest.fixture
def admin(tenant):
    return ctx_for(tenant, role="admin")


class RecordingDeliverer:
    """Collects digests instead of sending them; can be told to fail."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[uuid.UUID, list]] = []

    async def deliver(self, recipient_id, items):
        if self.fail:
            raise ConnectionError("smtp unavailable")
        self.sent.append((recipient_id, list(items)))


@pytest.fixture
def deliverer():
    return RecordingDeliverer()
