"""Card lifecycle state machine.

This module is the only writer of card state and the only producer of
lifecycle events. Users and the entropy sweep go through the same
``transition`` entry point; the sweep just passes a system context and an
``inactive_since`` guard.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from cardflow.core.context import RequestContext
from cardflow.core.errors import (
    ConcurrencyConflict,
    InvalidReference,
    InvalidTransition,
    ValidationError,
)
from cardflow.core.metrics import card_transitions_total
from cardflow.models.base import utcnow
from cardflow.models.card import Card, CardStatus, EffectiveState
from cardflow.models.event import Event, EventAction, Target
from cardflow.services import entity_store, event_service

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled"


def effective_state(card: Card) -> EffectiveState:
    """The single lifecycle state a card is in."""
    return card.effective_state


# ---------------------------------------------------------------------------
# Transition effects
# ---------------------------------------------------------------------------

Effect = Callable[[AsyncSession, RequestContext, Card, dict, datetime], Awaitable[dict]]


async def _publish(db, ctx, card, params, now) -> dict:
    card.status = CardStatus.PUBLISHED.value
    if not (card.title or "").strip():
        card.title = DEFAULT_TITLE
    return {"title": card.title}


async def _close(db, ctx, card, params, now) -> dict:
    card.closed_at = now
    card.closed_by = ctx.actor_id
    card.postponed_at = None
    card.postponed_by = None
    return {}


async def _postpone(db, ctx, card, params, now) -> dict:
    payload = {"from_column_id": str(card.column_id) if card.column_id else None}
    card.postponed_at = now
    card.postponed_by = ctx.actor_id
    card.column_id = None
    card.closed_at = None
    card.closed_by = None
    card.activity_spike_at = None
    if ctx.is_system:
        payload["reason"] = "inactive"
    return payload


async def _reopen(db, ctx, card, params, now) -> dict:
    card.closed_at = None
    card.closed_by = None
    return {}


async def _resume(db, ctx, card, params, now) -> dict:
    card.postponed_at = None
    card.postponed_by = None
    card.activity_spike_at = None
    return {}


def _parse_column_id(params: dict) -> uuid.UUID:
    raw = params.get("column_id")
    if raw is None:
        raise ValidationError("triage_into requires a column_id")
    if isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(str(raw))
    except ValueError as exc:
        raise ValidationError(f"column_id {raw!r} is not a valid id") from exc


async def _triage_into(db, ctx, card, params, now) -> dict:
    column_id = _parse_column_id(params)
    column = await entity_store.get_column(db, ctx.tenant_id, column_id)
    if column.board_id != card.board_id:
        raise InvalidReference(
            f"Column {column_id} belongs to another board than card {card.number}"
        )
    payload = {
        "from_column_id": str(card.column_id) if card.column_id else None,
        "to_column_id": str(column_id),
    }
    card.column_id = column_id
    card.postponed_at = None
    card.postponed_by = None
    return payload


@dataclass(frozen=True)
class _Rule:
    valid_from: frozenset[EffectiveState]
    event: EventAction
    effect: Effect


_ACTIVE_ONLY = frozenset({EffectiveState.ACTIVE})

_RULES: dict[str, _Rule] = {
    "publish": _Rule(frozenset({EffectiveState.DRAFTED}), EventAction.CARD_PUBLISHED, _publish),
    "close": _Rule(_ACTIVE_ONLY, EventAction.CARD_CLOSED, _close),
    "postpone": _Rule(_ACTIVE_ONLY, EventAction.CARD_POSTPONED, _postpone),
    "reopen": _Rule(frozenset({EffectiveState.CLOSED}), EventAction.CARD_REOPENED, _reopen),
    "resume": _Rule(frozenset({EffectiveState.NOT_NOW}), EventAction.CARD_RESUMED, _resume),
    "triage_into": _Rule(
        frozenset(EffectiveState) - {EffectiveState.DRAFTED},
        EventAction.CARD_TRIAGED,
        _triage_into,
    ),
}

_ALIASES = {"triageInto": "triage_into", "triage": "triage_into"}

ACTIONS = tuple(_RULES)


def _rule_for(action: str) -> tuple[str, _Rule]:
    name = _ALIASES.get(action, action)
    rule = _RULES.get(name)
    if rule is None:
        raise ValidationError(
            f"Unknown action {action!r}; expected one of {', '.join(ACTIONS)}"
        )
    return name, rule


def can_transition(card: Card, action: str) -> bool:
    _, rule = _rule_for(action)
    return effective_state(card) in rule.valid_from


def allowed_actions(card: Card) -> list[str]:
    """Actions that are legal from the card's current state."""
    return [name for name in ACTIONS if can_transition(card, name)]


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


async def _flush(db: AsyncSession, card: Card) -> None:
    # A failed flush expires the instance, so read the id first
    card_id = card.id
    try:
        await db.flush()
    except StaleDataError as exc:
        raise ConcurrencyConflict(
            f"Card {card_id} was modified concurrently; reload and retry"
        ) from exc


async def _notify_watchers(
    db: AsyncSession, ctx: RequestContext, card: Card, event: Event, now: datetime
) -> None:
    from cardflow.services import notification_bundler, notification_service

    recipients = await notification_service.watcher_ids(db, ctx.tenant_id, card.id)
    await notification_bundler.record(db, ctx, event, recipients, now=now)


async def transition(
    db: AsyncSession,
    ctx: RequestContext,
    card_id: uuid.UUID,
    action: str,
    params: dict[str, Any] | None = None,
    *,
    now: datetime | None = None,
    inactive_since: datetime | None = None,
) -> Card:
    """Apply ``action`` to a card and record it in the event log.

    ``inactive_since`` makes the write conditional: the card is re-read and
    must not have been active after that instant, otherwise
    ``ConcurrencyConflict`` is raised and nothing is written.
    """
    name, rule = _rule_for(action)
    now = now or utcnow()

    card = await entity_store.get_card(
        db, ctx.tenant_id, card_id, refresh=inactive_since is not None
    )
    if inactive_since is not None and card.last_active_at > inactive_since:
        raise ConcurrencyConflict(
            f"Card {card.id} was active at {card.last_active_at.isoformat()}, "
            f"after {inactive_since.isoformat()}"
        )

    state = effective_state(card)
    if state not in rule.valid_from:
        allowed = ", ".join(sorted(s.value for s in rule.valid_from))
        raise InvalidTransition(
            f"Cannot {name} card {card.number}: it is {state.value}, must be {allowed}"
        )

    payload = await rule.effect(db, ctx, card, params or {}, now)
    card.last_active_at = now
    await _flush(db, card)

    event = await event_service.append_event(
        db,
        ctx,
        rule.event,
        Target.card(card.id),
        board_id=card.board_id,
        payload=payload,
        now=now,
    )
    await _notify_watchers(db, ctx, card, event, now)

    card_transitions_total.labels(
        action=name, trigger="system" if ctx.is_system else "user"
    ).inc()
    logger.info(
        "Card %s %s -> %s via %s",
        card.id,
        state.value,
        effective_state(card).value,
        name,
        extra={"tenant_id": str(ctx.tenant_id), "card_id": str(card.id)},
    )
    return card


async def touch(
    db: AsyncSession,
    ctx: RequestContext,
    card_id: uuid.UUID,
    *,
    now: datetime | None = None,
    spike: bool = False,
) -> Card:
    """Record activity on a card without changing its lifecycle state."""
    card = await entity_store.get_card(db, ctx.tenant_id, card_id)
    now = now or utcnow()
    card.last_active_at = now
    if spike and effective_state(card) != EffectiveState.NOT_NOW:
        card.activity_spike_at = now
    await _flush(db, card)
    return card


async def set_golden(
    db: AsyncSession,
    ctx: RequestContext,
    card_id: uuid.UUID,
    golden: bool,
    *,
    now: datetime | None = None,
) -> Card:
    card = await entity_store.get_card(db, ctx.tenant_id, card_id)
    if card.is_golden == golden:
        raise InvalidTransition(
            f"Card {card.number} is already {'golden' if golden else 'not golden'}"
        )
    now = now or utcnow()
    card.is_golden = golden
    card.last_active_at = now
    await _flush(db, card)
    await event_service.append_event(
        db,
        ctx,
        EventAction.CARD_GILDED if golden else EventAction.CARD_UNGILDED,
        Target.card(card.id),
        board_id=card.board_id,
        now=now,
    )
    return card
