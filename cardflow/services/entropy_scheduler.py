"""Entropy: idle published cards drift to "not now" on their own.

``sweep`` runs on a fixed interval. It reads candidates per board in one
session, then postpones each card in its own transaction through the regular
lifecycle engine, guarded by the cutoff it computed. If a user touched the
card after the scan, the guard fails and the card is skipped: the user's
write always wins over the sweep.

Re-running the sweep is harmless; a card that was postponed is no longer
``active`` and is not picked up again.
"""
from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardflow.config import settings
from cardflow.core.context import RequestContext
from cardflow.core.errors import ConcurrencyConflict, InvalidTransition, NotFound
from cardflow.core.metrics import entropy_cards_total
from cardflow.models.base import utcnow
from cardflow.models.card import Card, CardStatus
from cardflow.services import entity_store, entropy_service, lifecycle_engine

logger = logging.getLogger(__name__)


class PostponeOutcome(str, enum.Enum):
    POSTPONED = "postponed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class SweepReport:
    started_at: datetime
    finished_at: datetime | None = None
    tenants: int = 0
    boards: int = 0
    scanned: int = 0
    postponed: int = 0
    skipped: int = 0
    failed: int = 0
    postponed_ids: list[uuid.UUID] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Candidate:
    tenant_id: uuid.UUID
    card_id: uuid.UUID
    cutoff: datetime


@dataclass(frozen=True)
class ExpiryWarning:
    card: Card
    period: timedelta
    expires_at: datetime
    progress: float


def _active_filters() -> tuple:
    """Criteria matching effective state ``active``; golden cards never expire."""
    return (
        Card.status == CardStatus.PUBLISHED.value,
        Card.closed_at.is_(None),
        Card.postponed_at.is_(None),
        Card.column_id.is_not(None),
        Card.is_golden == False,  # noqa: E712
    )


async def find_expired_cards(
    db: AsyncSession, tenant_id: uuid.UUID, now: datetime
) -> tuple[int, list[Candidate]]:
    """Return ``(boards_scanned, candidates)`` for one tenant."""
    periods = await entropy_service.load_periods(db, tenant_id)
    boards = await entity_store.list_boards(db, tenant_id)
    candidates = []
    for board in boards:
        cutoff = now - entropy_service.pick_period(periods, tenant_id, board.id)
        result = await db.execute(
            select(Card.id)
            .where(
                Card.tenant_id == tenant_id,
                Card.board_id == board.id,
                Card.last_active_at < cutoff,
                *_active_filters(),
            )
            .order_by(Card.last_active_at)
        )
        candidates.extend(Candidate(tenant_id, card_id, cutoff) for card_id in result.scalars())
    return len(boards), candidates


async def postpone_if_inactive(
    session_factory: async_sessionmaker[AsyncSession],
    candidate: Candidate,
    now: datetime,
) -> PostponeOutcome:
    """Postpone one card unless it changed since it was scanned."""
    log_extra = {"tenant_id": str(candidate.tenant_id), "card_id": str(candidate.card_id)}
    async with session_factory() as db:
        try:
            await lifecycle_engine.transition(
                db,
                RequestContext.system(candidate.tenant_id),
                candidate.card_id,
                "postpone",
                now=now,
                inactive_since=candidate.cutoff,
            )
            await db.commit()
        except (ConcurrencyConflict, InvalidTransition, NotFound) as exc:
            await db.rollback()
            logger.debug("Entropy skipped card %s: %s", candidate.card_id, exc, extra=log_extra)
            entropy_cards_total.labels(outcome=PostponeOutcome.SKIPPED.value).inc()
            return PostponeOutcome.SKIPPED
        except Exception:
            await db.rollback()
            logger.exception("Entropy failed to postpone card %s", candidate.card_id, extra=log_extra)
            entropy_cards_total.labels(outcome=PostponeOutcome.FAILED.value).inc()
            return PostponeOutcome.FAILED
    entropy_cards_total.labels(outcome=PostponeOutcome.POSTPONED.value).inc()
    return PostponeOutcome.POSTPONED


async def sweep(
    session_factory: async_sessionmaker[AsyncSession], now: datetime | None = None
) -> SweepReport:
    """Postpone every active card whose inactivity exceeds its entropy period."""
    now = now or utcnow()
    report = SweepReport(started_at=now)

    async with session_factory() as db:
        tenant_ids = await entity_store.list_tenant_ids(db)

    for tenant_id in tenant_ids:
        report.tenants += 1
        try:
            async with session_factory() as db:
                boards, candidates = await find_expired_cards(db, tenant_id, now)
        except Exception as exc:
            logger.exception("Entropy scan failed for tenant %s", tenant_id,
                             extra={"tenant_id": str(tenant_id)})
            report.errors.append(f"tenant {tenant_id}: {exc}")
            continue
        report.boards += boards
        report.scanned += len(candidates)

        for candidate in candidates:
            outcome = await postpone_if_inactive(session_factory, candidate, now)
            if outcome == PostponeOutcome.POSTPONED:
                report.postponed += 1
                report.postponed_ids.append(candidate.card_id)
            elif outcome == PostponeOutcome.SKIPPED:
                report.skipped += 1
            else:
                report.failed += 1
                report.errors.append(f"card {candidate.card_id}")

    report.finished_at = utcnow()
    logger.info(
        "Entropy sweep: %d tenant(s), %d candidate(s), %d postponed, %d skipped, %d failed",
        report.tenants, report.scanned, report.postponed, report.skipped, report.failed,
    )
    return report


async def list_approaching_expiry(
    db: AsyncSession,
    ctx: RequestContext,
    now: datetime | None = None,
    *,
    threshold: float | None = None,
    board_id: uuid.UUID | None = None,
) -> list[ExpiryWarning]:
    """Active cards past ``threshold`` (default 75%) of their entropy period.

    Read-only; includes cards already past their period that the next sweep
    will postpone.
    """
    now = now or utcnow()
    threshold = settings.ENTROPY_WARNING_THRESHOLD if threshold is None else threshold
    periods = await entropy_service.load_periods(db, ctx.tenant_id)
    if board_id is not None:
        boards = [await entity_store.get_board(db, ctx.tenant_id, board_id)]
    else:
        boards = await entity_store.list_boards(db, ctx.tenant_id)

    warnings = []
    for board in boards:
        period = entropy_service.pick_period(periods, ctx.tenant_id, board.id)
        cards = await entity_store.query_cards(
            db,
            ctx.tenant_id,
            Card.board_id == board.id,
            Card.last_active_at <= now - period * threshold,
            *_active_filters(),
        )
        for card in cards:
            idle = now - card.last_active_at
            warnings.append(
                ExpiryWarning(
                    card=card,
                    period=period,
                    expires_at=card.last_active_at + period,
                    progress=idle / period,
                )
            )
    warnings.sort(key=lambda w: w.expires_at)
    return warnings
