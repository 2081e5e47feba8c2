"""HTTP tests for the market creation API."""

import asyncio

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from dexrelay.core.chain.interfaces import CallReverted
from dexrelay.web.app import create_app


@pytest.fixture()
def client(service):
    with TestClient(create_app(service=service)) as test_client:
        yield test_client


class TestCreateMarket:
    def test_create_returns_identifiers(self, client, ledger, creation_payload):
        response = client.post("/api/markets/create", json=creation_payload)

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["orderBookAddress"] == ledger.order_book
        assert body["marketId"].startswith("0x")
        assert body["steps"][0]["step"] == "validating"

    def test_request_id_is_echoed(self, client, creation_payload):
        response = client.post("/api/markets/create", json=creation_payload, headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"

    def test_request_id_is_generated(self, client):
        response = client.get("/health")

        assert response.headers["X-Request-ID"]

    def test_validation_error(self, client, creation_payload, ledger):
        response = client.post(
            "/api/markets/create",
            json={**creation_payload, "settlementDate": 1},
            headers={"X-Request-ID": "req-7"},
        )

        assert response.status_code == 400
        assert response.json() == {
            "error": "Settlement date must be in the future",
            "code": "VALIDATION_ERROR",
            "step": "validating",
            "field": "settlementDate",
        }
        assert response.headers["X-Request-ID"] == "req-7"
        assert ledger.attempts == []

    def test_non_object_body(self, client):
        response = client.post("/api/markets/create", json=["alu-usd"])

        assert response.status_code == 400
        assert response.json()["field"] == "body"

    def test_malformed_json(self, client):
        response = client.post(
            "/api/markets/create",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert response.json()["step"] == "validating"

    def test_static_call_revert_carries_hint(self, client, ledger, creation_payload):
        ledger.static_revert = CallReverted(reason="execution reverted")

        response = client.post("/api/markets/create", json=creation_payload)

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "STATIC_CALL_REVERT"
        assert body["step"] == "building_cut"
        assert "Possible causes" in body["hint"]

    def test_grant_failure_returns_recovery_identifiers(self, client, ledger, creation_payload):
        ledger.failing_functions.add("grantRole")

        response = client.post("/api/markets/create", json=creation_payload)

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "ADMIN_GRANT_ERROR"
        assert body["step"] == "granting_roles"
        assert body["orderBookAddress"] == ledger.order_book
        assert body["transactionHash"] == ledger.sent[0][2]
        assert body["marketId"].startswith("0x")

    def test_client_disconnect_cancels_submission(self, client, ledger, repository, creation_payload, monkeypatch):
        async def disconnected(self) -> bool:
            return True

        lookup = repository.get

        async def slow_get(symbol):
            await asyncio.sleep(0.05)
            return await lookup(symbol)

        monkeypatch.setattr(Request, "is_disconnected", disconnected)
        monkeypatch.setattr(repository, "get", slow_get)

        response = client.post("/api/markets/create", json=creation_payload)

        assert response.status_code == 400
        assert response.json()["code"] == "PIPELINE_CANCELLED"
        assert ledger.sent == []

    def test_connected_client_is_not_cancelled(self, client, ledger, creation_payload, monkeypatch):
        async def connected(self) -> bool:
            return False

        monkeypatch.setattr(Request, "is_disconnected", connected)

        response = client.post("/api/markets/create", json=creation_payload)

        assert response.status_code == 200
        assert len(ledger.sent) == 3


class TestReadAndPersist:
    def test_get_created_market(self, client, ledger, creation_payload):
        client.post("/api/markets/create", json=creation_payload)

        response = client.get("/api/markets/alu-usd")

        assert response.status_code == 200
        body = response.json()
        assert body["marketIdentifier"] == "ALU-USD"
        assert body["marketAddress"] == ledger.order_book
        assert body["status"] == "deployed"
        assert body["startPriceFixedPoint"] == 1_000_000
        assert body["tags"] == ["COMMODITIES"]

    def test_get_missing_market(self, client):
        response = client.get("/api/markets/nope")

        assert response.status_code == 404
        assert response.json() == {"error": "Market NOPE not found", "code": "NOT_FOUND", "step": None}

    def test_persist_only(self, client, ledger, creation_payload):
        payload = {**creation_payload, "orderBookAddress": ledger.order_book, "marketId": "0x" + "aa" * 32}

        response = client.post("/api/markets/alu-usd/persist", json=payload)

        assert response.status_code == 200
        market = response.json()["market"]
        assert market["marketId"] == "0x" + "aa" * 32
        assert market["status"] == "deployed"
        assert ledger.sent == []

    def test_persist_only_requires_identifiers(self, client, creation_payload):
        response = client.post("/api/markets/alu-usd/persist", json=creation_payload)

        assert response.status_code == 400
        assert response.json()["step"] == "persisting"
        assert response.json()["field"] == "orderBookAddress"


class TestHealth:
    def test_liveness(self, client):
        body = client.get("/health").json()

        assert body["success"] is True
        assert body["data"]["status"] == "healthy"

    def test_ready_with_store(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["data"]["checks"] == {"config": True, "store": True}

    def test_not_ready_when_store_is_closed(self, client, repository):
        repository.close()

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["data"]["checks"]["store"] is False

    def test_not_ready_without_service(self):
        response = TestClient(create_app()).get("/health/ready")

        assert response.status_code == 503
        assert response.json()["data"]["checks"]["config"] is False
