"""Integration tests for the /notifications endpoints."""

from __future__ import annotations

import uuid

from cardflow.services import lifecycle_engine
from tests.conftest import create_card, ctx_for, headers_for


class TestInbox:
    async def test_list_and_mark_read(self, client, db, tenant, board, member):
        reader = ctx_for(tenant)
        card = await create_card(db, board, watchers=[reader.actor_id])
        await lifecycle_engine.transition(db, member, card.id, "close")
        await lifecycle_engine.transition(db, member, card.id, "reopen")
        await db.commit()
        h = headers_for(reader)

        resp = await client.get("/api/v1/notifications", headers=h)
        body = resp.json()
        assert body["total"] == 2
        assert {i["event"]["action"] for i in body["items"]} == {"card_closed", "card_reopened"}
        assert all(i["source"] == {"type": "card", "id": str(card.id)} for i in body["items"])

        resp = await client.get("/api/v1/notifications/unread-count", headers=h)
        assert resp.json() == {"count": 2}

        first_id = body["items"][0]["id"]
        resp = await client.patch(f"/api/v1/notifications/{first_id}/read", headers=h)
        assert resp.json() == {"ok": True}

        resp = await client.get("/api/v1/notifications", params={"unread": True}, headers=h)
        assert resp.json()["total"] == 1

        resp = await client.post("/api/v1/notifications/mark-all-read", headers=h)
        assert resp.json() == {"marked": 1}

    async def test_mark_unknown_is_404(self, client, member):
        resp = await client.patch(
            f"/api/v1/notifications/{uuid.uuid4()}/read", headers=headers_for(member)
        )
        assert resp.status_code == 404

    async def test_actor_sees_nothing_of_own_actions(self, client, db, board, member):
        card = await create_card(db, board, watchers=[member.actor_id])
        await lifecycle_engine.transition(db, member, card.id, "close")
        await db.commit()

        resp = await client.get("/api/v1/notifications", headers=headers_for(member))
        assert resp.json()["total"] == 0
