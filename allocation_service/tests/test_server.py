"""Tests for the Allocation Service HTTP API."""

import base64
from http import HTTPStatus
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from allocation_service import __version__
from allocation_service import server
from allocation_service.exceptions import SnapshotFetchError
from allocation_service.schemas import Snapshot, WaitlistConfig
from allocation_service.service import HubState


def test_version():
    """Testing package Version."""
    assert __version__ == "0.1.0"


@pytest.fixture
def state(items, beef_lines, monkeypatch):
    """Swap the module-level state for a fresh one loaded with sample data."""
    hub = HubState(waitlist=WaitlistConfig(max_size=5))
    hub.apply_snapshot(Snapshot(items=items, orders=beef_lines))
    monkeypatch.setattr(server, "state", hub)
    return hub


@pytest.fixture
def test_client(state):
    """Fixture for creating a test client."""
    return TestClient(server.app)


def test_health_check(test_client):
    response = test_client.get("/health")
    assert response.status_code == HTTPStatus.OK
    assert response.json() == {"status": "healthy"}


def test_readiness_without_kafka(test_client, monkeypatch):
    monkeypatch.setattr(server, "config", server.config.__class__(kafka_bootstrap_servers=None))

    response = test_client.get("/health/ready")

    assert response.json() == {"status": "ready", "kafka": "disabled"}


def test_readiness_with_kafka(test_client, monkeypatch, mocker):
    monkeypatch.setattr(server, "config", server.config.__class__(kafka_bootstrap_servers="kafka:9092"))
    admin = mocker.patch("allocation_service.server.AdminClient")
    admin.return_value.list_topics.return_value = {"topics": ["allocations.updated"]}

    response = test_client.get("/health/ready")

    assert response.json() == {"status": "ready", "kafka": "connected"}


def test_get_item_case_insensitive(test_client):
    response = test_client.get("/items/beef10")

    assert response.status_code == HTTPStatus.OK
    assert response.json()["mnemonic"] == "BEEF10"


def test_get_unknown_item_is_unavailable(test_client):
    response = test_client.get("/items/GHOST1")

    assert response.status_code == HTTPStatus.NOT_FOUND
    assert response.json()["detail"] == "Item unavailable"


def test_allocation_endpoint(test_client):
    body = test_client.get("/allocation").json()

    assert [line["status"] for line in body["lines"]] == ["confirmed", "confirmed", "waitlisted"]
    beef = next(item for item in body["items"] if item["mnemonic"] == "BEEF10")
    assert beef == {"mnemonic": "BEEF10", "initial_quantity": 5, "sold": 5, "remaining": 0, "waitlisted_demand": 1}


def test_orders_endpoint_filters(test_client):
    all_groups = test_client.get("/orders").json()
    waitlisted = test_client.get("/orders", params={"filter": "waitlisted"}).json()

    assert [group["group_id"] for group in all_groups] == ["ORD-L3", "ORD-L2", "ORD-L1"]
    assert [group["group_id"] for group in waitlisted] == ["ORD-L3"]
    assert waitlisted[0]["overall_status"] == "waitlisted"


def test_place_order(test_client, state):
    response = test_client.post(
        "/orders",
        json={"buyer_name": "Dee", "lines": [{"mnemonic": "sambal", "quantity": 2}]},
    )

    assert response.status_code == HTTPStatus.OK
    body = response.json()
    assert body["lines"][0]["status"] == "confirmed"
    assert len(state.log) == 4


def test_place_order_unknown_item(test_client):
    response = test_client.post("/orders", json={"buyer_name": "Dee", "lines": [{"mnemonic": "GHOST1", "quantity": 1}]})

    assert response.status_code == HTTPStatus.NOT_FOUND


def test_place_order_rejected_when_waitlist_closed(test_client):
    assert test_client.put("/waitlist", json={"max_size": 0}).json() == {"max_size": 0}

    response = test_client.post("/orders", json={"buyer_name": "Dee", "lines": [{"mnemonic": "BEEF10", "quantity": 1}]})

    assert response.status_code == HTTPStatus.CONFLICT


def test_place_order_validation(test_client):
    response = test_client.post("/orders", json={"buyer_name": "Dee", "lines": [{"mnemonic": "BEEF10", "quantity": 0}]})

    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY


def test_snapshot_endpoint_normalizes_payload(test_client, state):
    payload = {
        "Inventory": [{"Mnemonic": "new1", "InitialQuantity": "2", "AllowUpsell": "yes"}],
        "Orders": [{"OrderID": "ORD-X", "Mnemonic": "NEW1", "Quantity": 3, "Timestamp": "2024-06-01T10:00:00Z"}],
    }

    body = test_client.post("/snapshot", json=payload).json()

    assert body["lines"] == [{"line_id": "ORD-X-0", "status": "waitlisted"}]
    assert state.item("NEW1").allow_upsell is True


def test_sync_failure_returns_bad_gateway(test_client, state):
    state.fetcher = MagicMock()
    state.fetcher.fetch.side_effect = SnapshotFetchError("timed out")

    response = test_client.post("/sync")

    assert response.status_code == HTTPStatus.BAD_GATEWAY
    assert len(state.log) == 3


def test_stock_summary_and_upsell(test_client):
    stock = {level["mnemonic"]: level for level in test_client.get("/stock").json()}
    summary = test_client.get("/summary").json()
    upsell = test_client.get("/upsell/beef10").json()

    assert stock["BEEF10"]["health"] == "out"
    assert stock["SAMBAL"]["health"] == "ok"
    assert summary["order_count"] == 3
    assert summary["waitlisted_order_count"] == 1
    assert [item["mnemonic"] for item in upsell] == ["SAMBAL", "RICE"]


def test_delete_item(test_client, state):
    assert test_client.delete("/items/SAMBAL").status_code == HTTPStatus.OK
    assert test_client.delete("/items/SAMBAL").status_code == HTTPStatus.NOT_FOUND
    assert state.item("SAMBAL") is None


def test_replace_inventory(test_client):
    body = test_client.put("/inventory", json=[{"mnemonic": "beef10", "initial_quantity": 6}]).json()

    assert [line["status"] for line in body["lines"]] == ["confirmed", "confirmed", "confirmed"]


def test_order_link(test_client, state):
    state.set_webhook("https://script.example.com/exec")

    body = test_client.get("/links/beef10").json()

    assert body["mnemonic"] == "BEEF10"
    assert "?w=" in body["url"]
    assert body["url"].endswith("#/order/BEEF10")
    assert test_client.get("/links/GHOST1").status_code == HTTPStatus.NOT_FOUND


def test_clear_cache(test_client, state):
    assert test_client.delete("/cache").json() == {"status": "cleared"}
    assert test_client.get("/items").json() == []


def test_set_webhook_from_order_link_parameter(test_client, state):
    encoded = base64.b64encode(b"https://script.example.com/exec").decode("ascii")

    response = test_client.put("/sync/webhook", json={"w": encoded})

    assert response.json() == {"webhook": "https://script.example.com/exec"}
    assert state.fetcher.url == "https://script.example.com/exec"
    assert test_client.get("/sync").json()["webhook"] == "https://script.example.com/exec"


def test_set_webhook_rejects_bad_parameter(test_client, state):
    response = test_client.put("/sync/webhook", json={"w": "bm90IGEgdXJs"})

    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    assert state.fetcher is None


def test_snapshot_endpoint_ignores_malformed_sections(test_client):
    response = test_client.post("/snapshot", json={"Inventory": [{"Mnemonic": "ONLY", "InitialQuantity": 1}], "Orders": 5})

    assert response.status_code == HTTPStatus.OK
    assert response.json()["lines"] == []
