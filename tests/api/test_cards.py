"""Integration tests for the /cards endpoints."""

from __future__ import annotations

import uuid

from tests.conftest import at, create_board, create_card, create_tenant, ctx_for, headers_for


async def _create(client, member, board, **body):
    resp = await client.post(
        "/api/v1/cards",
        json={"board_id": str(board.id), **body},
        headers=headers_for(member),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestCreateAndGet:
    async def test_create_returns_drafted_card(self, client, board, member):
        data = await _create(client, member, board, title="First")
        assert data["effective_state"] == "drafted"
        assert data["number"] == 1
        assert data["title"] == "First"
        assert data["due_on"] is None

    async def test_due_date_round_trips(self, client, board, member):
        created = await _create(client, member, board, title="Ship", due_on="2026-03-01")
        assert created["due_on"] == "2026-03-01"

        resp = await client.get(f"/api/v1/cards/{created['id']}", headers=headers_for(member))
        assert resp.json()["due_on"] == "2026-03-01"

    async def test_malformed_due_date_is_422(self, client, board, member):
        resp = await client.post(
            "/api/v1/cards",
            json={"board_id": str(board.id), "due_on": "next tuesday"},
            headers=headers_for(member),
        )
        assert resp.status_code == 422

    async def test_get_card(self, client, board, member):
        created = await _create(client, member, board)
        resp = await client.get(f"/api/v1/cards/{created['id']}", headers=headers_for(member))
        assert resp.status_code == 200
        assert resp.json()["id"] == created["id"]

    async def test_other_tenant_gets_404(self, client, db, board, member):
        created = await _create(client, member, board)
        other = ctx_for(await create_tenant(db, name="Other"))
        resp = await client.get(f"/api/v1/cards/{created['id']}", headers=headers_for(other))
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"

    async def test_missing_headers(self, client, board):
        resp = await client.post("/api/v1/cards", json={"board_id": str(board.id)})
        assert resp.status_code == 422

    async def test_malformed_tenant_header(self, client, board, member):
        headers = {**headers_for(member), "X-Tenant-Id": "nope"}
        resp = await client.post("/api/v1/cards", json={"board_id": str(board.id)}, headers=headers)
        assert resp.status_code == 400

    async def test_delete(self, client, board, member):
        created = await _create(client, member, board)
        resp = await client.delete(f"/api/v1/cards/{created['id']}", headers=headers_for(member))
        assert resp.status_code == 204
        resp = await client.get(f"/api/v1/cards/{created['id']}", headers=headers_for(member))
        assert resp.status_code == 404


class TestTransitions:
    async def test_full_lifecycle(self, client, board, column, member):
        card = await _create(client, member, board)
        url = f"/api/v1/cards/{card['id']}/transitions"
        h = headers_for(member)

        assert card["allowed_actions"] == ["publish"]

        resp = await client.post(f"{url}/publish", headers=h)
        assert resp.json()["effective_state"] == "triage"
        assert resp.json()["allowed_actions"] == ["triage_into"]

        resp = await client.post(
            f"{url}/triageInto", json={"params": {"column_id": str(column.id)}}, headers=h
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["allowed_actions"] == ["close", "postpone", "triage_into"]
        assert resp.json()["effective_state"] == "active"

        resp = await client.post(f"{url}/close", headers=h)
        assert resp.json()["effective_state"] == "closed"
        assert resp.json()["allowed_actions"] == ["reopen", "triage_into"]

        resp = await client.post(f"{url}/reopen", headers=h)
        assert resp.json()["effective_state"] == "active"

        resp = await client.post(f"{url}/postpone", headers=h)
        body = resp.json()
        assert body["effective_state"] == "not_now"
        assert body["column_id"] is None

        resp = await client.post(f"{url}/resume", headers=h)
        assert resp.json()["effective_state"] == "triage"

        events = await client.get(f"/api/v1/cards/{card['id']}/events", headers=h)
        assert [e["action"] for e in events.json()] == [
            "card_created",
            "card_published",
            "card_triaged",
            "card_closed",
            "card_reopened",
            "card_postponed",
            "card_resumed",
        ]

    async def test_illegal_transition_is_409(self, client, db, board, member):
        card = await create_card(db, board, state="closed")
        resp = await client.post(
            f"/api/v1/cards/{card.id}/transitions/close", headers=headers_for(member)
        )
        assert resp.status_code == 409
        assert resp.json()["code"] == "invalid_transition"

    async def test_unknown_action_is_422(self, client, db, board, member):
        card = await create_card(db, board)
        resp = await client.post(
            f"/api/v1/cards/{card.id}/transitions/explode", headers=headers_for(member)
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == "validation_error"

    async def test_column_on_other_board_is_422(self, client, db, tenant, board, member):
        from tests.conftest import create_column

        card = await create_card(db, board, state="triage")
        foreign = await create_column(db, await create_board(db, tenant, name="Other"))
        resp = await client.post(
            f"/api/v1/cards/{card.id}/transitions/triage_into",
            json={"params": {"column_id": str(foreign.id)}},
            headers=headers_for(member),
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == "invalid_reference"

    async def test_golden_toggle(self, client, db, board, member):
        card = await create_card(db, board)
        url = f"/api/v1/cards/{card.id}/golden"
        resp = await client.put(url, json={"golden": True}, headers=headers_for(member))
        assert resp.json()["is_golden"] is True
        resp = await client.put(url, json={"golden": True}, headers=headers_for(member))
        assert resp.status_code == 409


class TestCommentsAndWatch:
    async def test_comment_and_watch(self, client, db, board, member):
        card = await create_card(db, board)
        h = headers_for(member)

        resp = await client.post(f"/api/v1/cards/{card.id}/comments", json={"body": "hi"}, headers=h)
        assert resp.status_code == 201
        assert resp.json()["author_id"] == str(member.actor_id)

        resp = await client.post(f"/api/v1/cards/{card.id}/watch", headers=h)
        assert resp.json() == {"watching": True, "added": False}

        resp = await client.delete(f"/api/v1/cards/{card.id}/watch", headers=h)
        assert resp.json() == {"watching": False, "removed": True}

    async def test_blank_comment_is_422(self, client, db, board, member):
        card = await create_card(db, board)
        resp = await client.post(
            f"/api/v1/cards/{card.id}/comments", json={"body": "  "}, headers=headers_for(member)
        )
        assert resp.status_code == 422


class TestApproachingExpiry:
    async def test_lists_idle_cards(self, client, db, board, member):
        # Idle since 2026-01-01; today is long past 75% of the 30 day default
        card = await create_card(db, board, last_active_at=at(0))
        await create_card(db, board, last_active_at=at(0), is_golden=True)

        resp = await client.get("/api/v1/cards/approaching-expiry", headers=headers_for(member))

        assert resp.status_code == 200
        (warning,) = resp.json()
        assert warning["card"]["id"] == str(card.id)
        assert warning["period_seconds"] == 30 * 86400
        assert warning["progress"] > 1

    async def test_board_filter_unknown_board(self, client, member):
        resp = await client.get(
            "/api/v1/cards/approaching-expiry",
            params={"board_id": str(uuid.uuid4())},
            headers=headers_for(member),
        )
        assert resp.status_code == 404
