"""Integration tests for the /events endpoint."""

from __future__ import annotations

from cardflow.services import lifecycle_engine
from tests.conftest import create_card, headers_for


class TestListEvents:
    async def test_filters_by_target_and_action(self, client, db, board, member):
        first = await create_card(db, board)
        second = await create_card(db, board)
        await lifecycle_engine.transition(db, member, first.id, "close")
        await lifecycle_engine.transition(db, member, second.id, "postpone")
        await db.commit()
        h = headers_for(member)

        resp = await client.get("/api/v1/events", headers=h)
        assert resp.json()["total"] == 2

        resp = await client.get(
            "/api/v1/events", params={"target_type": "card", "target_id": str(first.id)}, headers=h
        )
        (item,) = resp.json()["items"]
        assert item["action"] == "card_closed"
        assert item["target"] == {"type": "card", "id": str(first.id)}

        resp = await client.get("/api/v1/events", params={"action": "card_postponed"}, headers=h)
        (item,) = resp.json()["items"]
        assert item["target"]["id"] == str(second.id)

    async def test_target_filter_needs_both_parts(self, client, member):
        resp = await client.get(
            "/api/v1/events", params={"target_type": "card"}, headers=headers_for(member)
        )
        assert resp.status_code == 422

    async def test_unknown_action_filter(self, client, member):
        resp = await client.get(
            "/api/v1/events", params={"action": "nope"}, headers=headers_for(member)
        )
        assert resp.status_code == 422
