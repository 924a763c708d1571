"""Tests for card creation and deletion."""

from __future__ import annotations

import uuid
from datetime import date

import pytest
from sqlalchemy import select

from cardflow.core.errors import InvalidReference, NotFound
from cardflow.models.card import Card, EffectiveState, Watch
from cardflow.models.event import Event, EventAction, Target
from cardflow.services import card_service, event_service
from tests.conftest import at, create_board, create_column, create_tenant, ctx_for


class TestCreateCard:
    async def test_creates_drafted_card_with_creator_watching(self, db, board, member):
        card = await card_service.create_card(db, member, board.id, title="  Plan Q3 ", now=at(0))

        assert card.effective_state == EffectiveState.DRAFTED
        assert card.title == "Plan Q3"
        assert card.number == 1
        assert card.creator_id == member.actor_id
        assert card.last_active_at == at(0)

        watches = (await db.execute(select(Watch.user_id))).scalars().all()
        assert watches == [member.actor_id]
        (event,) = await event_service.events_for_target(db, member, Target.card(card.id))
        assert event.action == EventAction.CARD_CREATED.value

    async def test_numbers_are_per_board(self, db, tenant, board, member):
        other_board = await create_board(db, tenant, name="Other")
        a = await card_service.create_card(db, member, board.id)
        b = await card_service.create_card(db, member, board.id)
        c = await card_service.create_card(db, member, other_board.id)
        assert (a.number, b.number, c.number) == (1, 2, 1)

    async def test_due_date_is_stored(self, db, session_factory, board, member):
        card = await card_service.create_card(db, member, board.id, due_on=date(2026, 3, 1))
        await db.commit()

        async with session_factory() as s:
            stored = (await s.execute(select(Card).where(Card.id == card.id))).scalar_one()
        assert stored.due_on == date(2026, 3, 1)

    async def test_with_column(self, db, board, column, member):
        card = await card_service.create_card(db, member, board.id, column_id=column.id)
        assert card.column_id == column.id

    async def test_column_from_other_board(self, db, tenant, board, member):
        elsewhere = await create_column(db, await create_board(db, tenant, name="Other"))
        with pytest.raises(InvalidReference):
            await card_service.create_card(db, member, board.id, column_id=elsewhere.id)

    async def test_unknown_board(self, db, member):
        with pytest.raises(NotFound):
            await card_service.create_card(db, member, uuid.uuid4())

    async def test_board_of_other_tenant(self, db, board):
        other = await create_tenant(db, name="Other")
        with pytest.raises(NotFound):
            await card_service.create_card(db, ctx_for(other), board.id)


class TestDeleteCard:
    async def test_delete_keeps_history(self, db, board, member):
        card = await card_service.create_card(db, member, board.id, title="Doomed")
        card_id = card.id

        await card_service.delete_card(db, member, card_id)

        assert (await db.execute(select(Card))).scalars().all() == []
        events = (await db.execute(select(Event).order_by(Event.created_at))).scalars().all()
        assert [e.action for e in events] == ["card_created", "card_deleted"]
        assert events[-1].payload == {"number": 1, "title": "Doomed"}

    async def test_delete_missing(self, db, member):
        with pytest.raises(NotFound):
            await card_service.delete_card(db, member, uuid.uuid4())
