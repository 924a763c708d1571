"""Tests for watchers and the per-user notification inbox."""

from __future__ import annotations

import uuid

from cardflow.models.event import EventAction, Target
from cardflow.services import event_service, notification_service
from tests.conftest import at, create_card, ctx_for


async def _event(db, ctx, card):
    return await event_service.append_event(
        db, ctx, EventAction.CARD_CLOSED, Target.card(card.id), board_id=card.board_id, now=at(0)
    )


class TestWatch:
    async def test_watch_and_unwatch(self, db, board, member):
        card = await create_card(db, board)
        assert await notification_service.watch(db, member, card.id) is True
        assert await notification_service.watch(db, member, card.id) is False
        assert await notification_service.watcher_ids(db, member.tenant_id, card.id) == [
            member.actor_id
        ]

        assert await notification_service.unwatch(db, member, card.id) is True
        assert await notification_service.unwatch(db, member, card.id) is False
        assert await notification_service.watcher_ids(db, member.tenant_id, card.id) == []


class TestCreateNotifications:
    async def test_skips_actor_and_duplicates(self, db, board, member):
        card = await create_card(db, board)
        event = await _event(db, member, card)
        other = uuid.uuid4()

        created = await notification_service.create_notifications(
            db, member, event, [other, member.actor_id, other], now=at(0)
        )

        assert [n.recipient_id for n in created] == [other]
        assert created[0].event_id == event.id
        assert created[0].source == Target.card(card.id)


class TestInbox:
    async def test_list_unread_and_mark(self, db, tenant, board, member):
        card = await create_card(db, board)
        reader = ctx_for(tenant)
        for _ in range(3):
            event = await _event(db, member, card)
            await notification_service.create_notifications(
                db, member, event, [reader.actor_id], now=at(0)
            )

        rows, total = await notification_service.list_notifications(db, reader)
        assert total == 3
        assert all(e is not None and e.action == "card_closed" for _, e in rows)
        assert await notification_service.get_unread_count(db, reader) == 3

        assert await notification_service.mark_as_read(db, reader, rows[0][0].id) is True
        assert await notification_service.get_unread_count(db, reader) == 2
        _rows, unread_total = await notification_service.list_notifications(
            db, reader, unread_only=True
        )
        assert unread_total == 2

        assert await notification_service.mark_all_as_read(db, reader) == 2
        assert await notification_service.get_unread_count(db, reader) == 0

    async def test_cannot_read_someone_elses(self, db, tenant, board, member):
        card = await create_card(db, board)
        reader = ctx_for(tenant)
        event = await _event(db, member, card)
        (notif,) = await notification_service.create_notifications(
            db, member, event, [reader.actor_id], now=at(0)
        )
        assert await notification_service.mark_as_read(db, ctx_for(tenant), notif.id) is False

    async def test_notification_survives_missing_event(self, db, tenant, board, member):
        card = await create_card(db, board)
        reader = ctx_for(tenant)
        event = await _event(db, member, card)
        await notification_service.create_notifications(
            db, member, event, [reader.actor_id], now=at(0)
        )
        await db.delete(event)
        await db.flush()

        ((notif, missing),) = (await notification_service.list_notifications(db, reader))[0]
        assert missing is None
        assert notif.source_id == card.id
