"""Tests for the append-only event log."""

from __future__ import annotations

import uuid

import pytest

from cardflow.models.event import EventAction, Target
from cardflow.services import event_service
from tests.conftest import at, create_tenant, ctx_for


class TestAppendAndQuery:
    async def test_events_for_target_in_order(self, db, board, member):
        card_id = uuid.uuid4()
        for i, action in enumerate(["card_created", "card_published", "card_closed"]):
            await event_service.append_event(
                db, member, action, Target.card(card_id), board_id=board.id, now=at(i)
            )
        await event_service.append_event(
            db, member, "card_closed", Target.card(uuid.uuid4()), board_id=board.id, now=at(9)
        )

        events = await event_service.events_for_target(db, member, Target.card(card_id))
        assert [e.action for e in events] == ["card_created", "card_published", "card_closed"]
        assert events[0].target == Target.card(card_id)

    async def test_events_for_action_window(self, db, board, member):
        for day in range(5):
            await event_service.append_event(
                db, member, EventAction.CARD_CLOSED, Target.card(uuid.uuid4()),
                board_id=board.id, now=at(day),
            )

        events = await event_service.events_for_action(
            db, member, EventAction.CARD_CLOSED, since=at(1), until=at(3)
        )
        assert [e.created_at for e in events] == [at(1), at(2), at(3)]

    async def test_unknown_action_rejected(self, db, board, member):
        with pytest.raises(ValueError):
            await event_service.append_event(
                db, member, "card_exploded", Target.card(uuid.uuid4()), board_id=board.id
            )

    async def test_tenant_isolation(self, db, board, member):
        card_id = uuid.uuid4()
        await event_service.append_event(
            db, member, "card_created", Target.card(card_id), board_id=board.id
        )
        other = ctx_for(await create_tenant(db, name="Other"))
        assert await event_service.events_for_target(db, other, Target.card(card_id)) == []

    async def test_get_events_paginates_newest_first(self, db, board, member):
        for day in range(4):
            await event_service.append_event(
                db, member, "card_created", Target.card(uuid.uuid4()), board_id=board.id, now=at(day)
            )
        events, total = await event_service.get_events(db, member, limit=2, offset=1)
        assert total == 4
        assert [e.created_at for e in events] == [at(2), at(1)]
