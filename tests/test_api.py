"""
Conversation and history HTTP endpoints.
"""

from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from chainflow.api import main as api_main
from chainflow.api.dependencies import get_dispatcher, get_history_service

from fakes import ALICE, ALICE_ADDRESS, EXTERNAL_ADDRESS, Engine, native_asset


class StubHistoryService:
    def __init__(self, records):
        self.records = records
        self.calls = []

    def list_for_user(self, user_id, limit=20):
        self.calls.append((user_id, limit))
        return self.records[:limit]


@pytest.fixture
def engine():
    engine = Engine()
    engine.add_user(ALICE, ALICE_ADDRESS, "alice", assets=[native_asset("5.0")])
    return engine


@pytest.fixture
def history():
    return StubHistoryService([
        SimpleNamespace(
            kind="transfer",
            from_address=ALICE_ADDRESS,
            to_address=EXTERNAL_ADDRESS,
            recipient_user_id=None,
            asset_symbol="BNB",
            output_symbol=None,
            amount=Decimal("2.0"),
            reference_id="0xabc",
            created_at=datetime(2024, 5, 1, 12, 0, 0),
        )
    ])


@pytest.fixture
def client(monkeypatch, engine, history):
    # Startup would load config.yaml and connect to the database
    monkeypatch.setattr(api_main, "initialize_services", lambda: None)
    api_main.app.dependency_overrides[get_dispatcher] = lambda: engine.dispatcher
    api_main.app.dependency_overrides[get_history_service] = lambda: history
    with TestClient(api_main.app) as client:
        yield client
    api_main.app.dependency_overrides.clear()


def test_root_and_health(client):
    assert client.get("/health").json() == {"status": "healthy"}

    body = client.get("/").json()
    assert body["name"] == "Chainflow Conversation API"
    assert body["status"] == "running"


def test_transfer_over_http(client, engine):
    response = client.post(f"/conversations/{ALICE}/command", json={"command": "/send"})
    assert response.status_code == 200
    body = response.json()
    assert body["kind"] == "prompt"
    assert body["state"] == "transfer_selecting_asset"
    assert body["page"]["total_items"] == 1

    body = client.post(f"/conversations/{ALICE}/button", json={"token": "asset:0"}).json()
    assert body["state"] == "transfer_entering_recipient"

    body = client.post(f"/conversations/{ALICE}/text", json={"text": EXTERNAL_ADDRESS}).json()
    assert body["state"] == "transfer_entering_amount"

    body = client.post(f"/conversations/{ALICE}/text", json={"text": "2.0"}).json()
    assert body["state"] == "transfer_awaiting_confirm"
    confirm = next(
        action["token"] for row in body["actions"] for action in row if action["token"].startswith("confirm:")
    )

    body = client.post(f"/conversations/{ALICE}/button", json={"token": confirm}).json()
    assert body["kind"] == "outcome"
    assert body["success"] is True
    assert body["state"] == ""
    assert body["amount"] == "2.0"
    assert body["reference_id"] == "0xtransfer1"
    assert body["details"]["asset_symbol"] == "BNB"
    assert body["details"]["recipient_notified"] is False
    assert len(engine.wallet_backend.transfers) == 1


def test_validation_error_is_reported_in_body(client):
    client.post(f"/conversations/{ALICE}/command", json={"command": "/send"})
    client.post(f"/conversations/{ALICE}/button", json={"token": "asset:0"})

    body = client.post(f"/conversations/{ALICE}/text", json={"text": "not-an-address"}).json()

    assert body["error_kind"] == "validation"
    assert body["state"] == "transfer_entering_recipient"


def test_private_key_text_requests_deletion(client):
    body = client.post(f"/conversations/{ALICE}/text", json={"text": "0x" + "4c" * 32}).json()

    assert "delete_user_message" in body["effects"]


def test_blank_command_is_rejected(client):
    response = client.post(f"/conversations/{ALICE}/command", json={"command": "   "})

    assert response.status_code == 422


def test_missing_token_is_rejected(client):
    response = client.post(f"/conversations/{ALICE}/button", json={})

    assert response.status_code == 422


def test_history_endpoint(client, history):
    response = client.get(f"/history/{ALICE}", params={"limit": 5})

    assert response.status_code == 200
    records = response.json()
    assert len(records) == 1
    assert records[0]["kind"] == "transfer"
    assert records[0]["reference_id"] == "0xabc"
    assert Decimal(str(records[0]["amount"])) == Decimal("2.0")
    assert history.calls == [(ALICE, 5)]


@pytest.mark.parametrize("limit", [0, 101])
def test_history_limit_bounds(client, limit):
    response = client.get(f"/history/{ALICE}", params={"limit": limit})

    assert response.status_code == 422


def test_getters_require_initialization(monkeypatch):
    from chainflow.api import dependencies

    monkeypatch.setattr(dependencies, "_dispatcher", None)

    with pytest.raises(RuntimeError):
        dependencies.get_dispatcher()
