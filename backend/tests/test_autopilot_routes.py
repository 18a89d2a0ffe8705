import pytest

HEADERS = {"X-User-Id": "user-1"}
BASE = "/api/v1/autopilot"


async def create_proposal(client, payload) -> str:
    response = await client.post(f"{BASE}/propose", json=payload, headers=HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["blocked"] is False
    return body["proposal_id"]


class TestPropose:
    @pytest.mark.asyncio
    async def test_created(self, client, draft_payload):
        response = await client.post(f"{BASE}/propose", json=draft_payload, headers=HEADERS)

        body = response.json()
        assert response.status_code == 200
        assert body["blocked"] is False
        assert body["status"] == "pending"
        assert body["risk_metrics"]["position_size"] == 2
        assert body["expires_at"].startswith("2026-01-14T15:15:00")

    @pytest.mark.asyncio
    async def test_blocked_is_not_an_http_error(self, client, draft_payload):
        response = await client.post(f"{BASE}/propose", json={**draft_payload, "size": 6}, headers=HEADERS)

        body = response.json()
        assert response.status_code == 200
        assert body["blocked"] is True
        assert body["reason"] == "risk"
        assert body["detail"]

    @pytest.mark.asyncio
    async def test_malformed_draft_blocked(self, client, draft_payload):
        response = await client.post(f"{BASE}/propose", json={**draft_payload, "side": "sideways"}, headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["reason"] == "validation"

    @pytest.mark.asyncio
    async def test_threat_blocks(self, client, provider, draft_payload):
        provider.add_threat("critical")

        response = await client.post(f"{BASE}/propose", json=draft_payload, headers=HEADERS)

        assert response.json()["reason"] == "threat"

    @pytest.mark.asyncio
    async def test_user_header_required(self, client, draft_payload):
        response = await client.post(f"{BASE}/propose", json=draft_payload)

        assert response.status_code == 422


class TestAcknowledgeAndExecute:
    @pytest.mark.asyncio
    async def test_approve_then_execute(self, client, broker, draft_payload):
        proposal_id = await create_proposal(client, draft_payload)

        ack = await client.post(
            f"{BASE}/proposals/{proposal_id}/acknowledge", json={"decision": "approve"}, headers=HEADERS
        )
        assert ack.status_code == 200
        assert ack.json()["status"] == "approved"

        executed = await client.post(f"{BASE}/proposals/{proposal_id}/execute", headers=HEADERS)
        body = executed.json()

        assert executed.status_code == 200
        assert body["status"] == "executed"
        assert body["order_id"] == "1000"
        assert body["contract_id"] == "SIM.F.US.ES"
        assert len(broker.orders) == 1

    @pytest.mark.asyncio
    async def test_second_acknowledge_conflicts(self, client, draft_payload):
        proposal_id = await create_proposal(client, draft_payload)
        url = f"{BASE}/proposals/{proposal_id}/acknowledge"

        await client.post(url, json={"decision": "reject"}, headers=HEADERS)
        response = await client.post(url, json={"decision": "approve"}, headers=HEADERS)

        assert response.status_code == 409
        assert response.json()["detail"]["status"] == "rejected"

    @pytest.mark.asyncio
    async def test_expired_acknowledge_conflicts(self, client, clock, draft_payload):
        proposal_id = await create_proposal(client, draft_payload)
        clock.advance(minutes=16)

        response = await client.post(
            f"{BASE}/proposals/{proposal_id}/acknowledge", json={"decision": "approve"}, headers=HEADERS
        )

        assert response.status_code == 409
        assert response.json()["detail"]["status"] == "expired"

    @pytest.mark.asyncio
    async def test_unknown_decision_rejected(self, client, draft_payload):
        proposal_id = await create_proposal(client, draft_payload)

        response = await client.post(
            f"{BASE}/proposals/{proposal_id}/acknowledge", json={"decision": "maybe"}, headers=HEADERS
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_execute_requires_approval(self, client, draft_payload):
        proposal_id = await create_proposal(client, draft_payload)

        response = await client.post(f"{BASE}/proposals/{proposal_id}/execute", headers=HEADERS)

        assert response.status_code == 409
        assert response.json()["detail"]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_broker_rejection(self, client, broker, draft_payload):
        proposal_id = await create_proposal(client, draft_payload)
        await client.post(
            f"{BASE}/proposals/{proposal_id}/acknowledge", json={"decision": "approve"}, headers=HEADERS
        )
        broker.reject_reason = "Insufficient margin"

        response = await client.post(f"{BASE}/proposals/{proposal_id}/execute", headers=HEADERS)
        stored = await client.get(f"{BASE}/proposals/{proposal_id}", headers=HEADERS)

        assert response.status_code == 502
        assert "Insufficient margin" in response.json()["detail"]
        assert stored.json()["status"] == "failed"

    @pytest.mark.asyncio
    async def test_unknown_proposal(self, client):
        response = await client.post(f"{BASE}/proposals/missing/execute", headers=HEADERS)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_other_users_proposal_hidden(self, client, draft_payload):
        proposal_id = await create_proposal(client, draft_payload)

        response = await client.get(f"{BASE}/proposals/{proposal_id}", headers={"X-User-Id": "user-2"})

        assert response.status_code == 404


class TestQueries:
    @pytest.mark.asyncio
    async def test_list_and_filter(self, client, clock, draft_payload):
        first = await create_proposal(client, draft_payload)
        clock.advance(minutes=1)
        second = await create_proposal(client, draft_payload)
        await client.post(f"{BASE}/proposals/{first}/acknowledge", json={"decision": "reject"}, headers=HEADERS)

        everything = (await client.get(f"{BASE}/proposals", headers=HEADERS)).json()
        pending = (await client.get(f"{BASE}/proposals", params={"status": "pending"}, headers=HEADERS)).json()

        assert everything["total"] == 2
        assert [p["id"] for p in everything["proposals"]] == [second, first]
        assert [p["id"] for p in pending["proposals"]] == [second]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 101}, {"offset": -1}])
    async def test_list_bounds(self, client, params):
        response = await client.get(f"{BASE}/proposals", params=params, headers=HEADERS)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_pending_and_expire_sweep(self, client, clock, draft_payload):
        proposal_id = await create_proposal(client, draft_payload)

        pending = await client.get(f"{BASE}/proposals/pending", headers=HEADERS)
        assert [p["id"] for p in pending.json()] == [proposal_id]

        clock.advance(minutes=20)
        assert (await client.get(f"{BASE}/proposals/pending", headers=HEADERS)).json() == []

        swept = await client.post(f"{BASE}/proposals/expire")
        assert swept.json() == {"expired": 1}

        stored = await client.get(f"{BASE}/proposals/{proposal_id}", headers=HEADERS)
        assert stored.json()["status"] == "expired"

    @pytest.mark.asyncio
    async def test_expire_uses_server_clock(self, client, clock, draft_payload):
        await create_proposal(client, draft_payload)

        early = await client.post(f"{BASE}/proposals/expire")
        clock.advance(minutes=16)
        late = await client.post(f"{BASE}/proposals/expire")

        assert early.json() == {"expired": 0}
        assert late.json() == {"expired": 1}

    @pytest.mark.asyncio
    async def test_expire_ignores_client_supplied_time(self, client, draft_payload):
        proposal_id = await create_proposal(client, draft_payload)

        response = await client.post(f"{BASE}/proposals/expire", json={"now": "2026-01-15T15:00:00Z"})
        stored = await client.get(f"{BASE}/proposals/{proposal_id}", headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {"expired": 0}
        assert stored.json()["status"] == "pending"

    @pytest.mark.asyncio
    async def test_circuits(self, client):
        response = await client.get(f"{BASE}/circuits")

        states = response.json()
        assert response.status_code == 200
        assert len(states) == 3
        assert {s["state"] for s in states} == {"closed"}
