"""
Route tests for the FastAPI application.

Collaborators are replaced through `app.dependency_overrides`: the Supabase
fake stands in for the database and the in-process ledger for the chain.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_db, get_event_bus, get_gateway, get_mirror, get_reader, get_service
from api.main import app
from domain.errors import RemoteUnavailable
from fakes import BUYER, FARMER, HARVEST_DATE, FakeSupabase
from repositories.client import PRODUCTS_TABLE, STATUS_HISTORY_TABLE
from services.product_reader import ProductReader

HARVEST_BODY = {
    "product_name": "Tomatoes",
    "farmer_name": "J.Doe",
    "farm_location": "CA",
    "harvest_date": HARVEST_DATE,
}


@pytest.fixture
def client(service, mirror, gateway, fake_db):
    reader = ProductReader(gateway, mirror)
    app.dependency_overrides[get_db] = lambda: fake_db
    app.dependency_overrides[get_service] = lambda: service
    app.dependency_overrides[get_reader] = lambda: reader
    app.dependency_overrides[get_mirror] = lambda: mirror
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


# --- Service endpoints ---

def test_root_lists_tables(client: TestClient) -> None:
    body = client.get("/").json()

    assert "products" in body["database_tables"]
    assert body["health"] == "/health"


def test_health_reports_both_stores(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "OK"
    assert response.json()["blockchain"] == "Connected"


def test_health_fails_when_database_down(client: TestClient, fake_db: FakeSupabase) -> None:
    fake_db.raise_on_execute = httpx.ConnectError("connection refused")

    response = client.get("/health")

    assert response.status_code == 500
    assert response.json()["database"] == "Connection Failed"


def test_test_db_reports_each_table(client: TestClient, fake_db: FakeSupabase) -> None:
    fake_db.failing_tables = {STATUS_HISTORY_TABLE}
    fake_db.raise_on_execute = httpx.ConnectError("connection refused")

    body = client.get("/api/test-db").json()

    assert body["success"] is True
    assert body["database_status"][PRODUCTS_TABLE] is True
    assert body["database_status"][STATUS_HISTORY_TABLE] is False
    assert body["tables"][STATUS_HISTORY_TABLE] == "Error"


def test_schema_describes_mirror_tables(client: TestClient) -> None:
    schema = client.get("/api/schema").json()["schema"]

    assert schema["products"]["blockchain_product_id"] == "integer"
    assert "event_data" in schema["blockchain_events"]


# --- Mirror endpoints ---

def test_create_product_requires_name(client: TestClient) -> None:
    response = client.post("/api/products", json={"farmer_name": "J.Doe"})

    assert response.status_code == 400
    assert response.json()["message"] == "Missing required field: product_name"
    assert response.json()["popup"]["type"] == "error"


def test_create_product_assigns_next_id(client: TestClient) -> None:
    first = client.post("/api/products", json={"product_name": "Tomatoes"})
    second = client.post("/api/products", json={"product_name": "Mangoes"})
    explicit = client.post("/api/products", json={"product_name": "Papaya", "blockchain_product_id": 10})

    assert first.status_code == 200
    assert first.json()["productId"] == 1
    assert first.json()["popup"]["title"] == "Product Stored"
    assert second.json()["productId"] == 2
    assert explicit.json()["productId"] == 10


def test_list_and_get_products(client: TestClient) -> None:
    client.post("/api/products", json={"product_name": "Tomatoes"})
    client.post("/api/products", json={"product_name": "Mangoes"})

    listing = client.get("/api/products").json()
    assert listing["count"] == 2
    assert [row["product_name"] for row in listing["data"]] == ["Mangoes", "Tomatoes"]

    assert client.get("/api/products/1").json()["data"]["product_name"] == "Tomatoes"
    assert client.get("/api/products/99").status_code == 404


def test_update_product(client: TestClient, fake_db: FakeSupabase) -> None:
    client.post("/api/products", json={"product_name": "Tomatoes"})

    response = client.put("/api/products/1", json={"current_status": 2, "price_wei": 10**20})

    assert response.status_code == 200
    row = fake_db.rows(PRODUCTS_TABLE)[0]
    assert row["current_status"] == 2
    assert row["price_wei"] == str(10**20)
    assert row["product_name"] == "Tomatoes"
    assert client.put("/api/products/99", json={"current_status": 2}).status_code == 404


def test_store_error_returns_500(client: TestClient, fake_db: FakeSupabase) -> None:
    fake_db.response_error = {"message": "relation \"products\" does not exist"}

    response = client.post("/api/products", json={"product_name": "Tomatoes"})

    assert response.status_code == 500
    assert response.json()["popup"]["title"] == "Storage Failed"


def test_status_history_accepts_status_zero(client: TestClient, fake_db: FakeSupabase) -> None:
    response = client.post("/api/status-history", json={"product_id": 1, "old_status": 0, "new_status": 0})

    assert response.status_code == 200
    assert fake_db.rows(STATUS_HISTORY_TABLE)[0]["new_status"] == 0
    assert client.post("/api/status-history", json={"product_id": 1}).status_code == 400


def test_sales_and_events_validate_required_fields(client: TestClient) -> None:
    assert client.post("/api/sales", json={"product_id": 1}).status_code == 400
    assert client.post("/api/events", json={"product_id": 1}).status_code == 400

    sale = client.post("/api/sales", json={"product_id": 1, "seller_address": FARMER, "sale_price_wei": 900})
    event = client.post("/api/events", json={"event_type": "Harvested", "product_id": 1, "event_data": {"a": 1}})

    assert sale.status_code == 200
    assert sale.json()["data"]["sale_price_wei"] == "900"
    assert event.status_code == 200
    assert event.json()["popup"]["title"] == "Event Stored"


# --- Ledger endpoints ---

def test_harvest_and_list_reconciled_products(client: TestClient) -> None:
    response = client.post("/api/ledger/products", json=HARVEST_BODY)

    assert response.status_code == 200
    body = response.json()
    assert body["productId"] == 1
    assert body["data"]["event"]["type"] == "Harvested"
    assert body["popup"]["type"] == "success"

    listing = client.get("/api/ledger/products").json()
    assert listing["count"] == 1
    assert listing["data"][0]["source"] == "ledger"
    assert listing["sources"] == {"ledger": True, "mirror": True}


def test_full_lifecycle_through_api(client: TestClient, gateway) -> None:
    client.post("/api/ledger/products", json=HARVEST_BODY)

    assert client.post("/api/ledger/products/1/status", json={"status": "Packaged"}).status_code == 200
    assert client.post("/api/ledger/products/1/sale", json={"price": 500}).status_code == 200

    gateway.switch_account(BUYER)
    purchase = client.post("/api/ledger/products/1/purchase", json={})

    assert purchase.status_code == 200
    product = client.get("/api/ledger/products/1").json()["data"]
    assert product["currentOwner"] == BUYER
    assert product["statusLabel"] == "Sold"


def test_ledger_errors_map_to_status_codes(client: TestClient, gateway) -> None:
    client.post("/api/ledger/products", json=HARVEST_BODY)
    client.post("/api/ledger/products/1/sale", json={"price": 500})

    invalid = client.post("/api/ledger/products/1/status", json={"status": "Shipped"})
    assert invalid.status_code == 400
    assert invalid.json()["error"]["kind"] == "ValidationError"

    assert client.get("/api/ledger/products/99").status_code == 404

    gateway.switch_account(BUYER)
    wrong_payment = client.post("/api/ledger/products/1/purchase", json={"payment": 1})
    assert wrong_payment.status_code == 502
    assert wrong_payment.json()["error"]["failure_kind"] == "RevertedByContract"

    gateway.switch_account(FARMER)
    forbidden = client.post("/api/ledger/products", json=HARVEST_BODY)
    assert forbidden.status_code == 403
    assert forbidden.json()["popup"]["title"] == "Not Authorized"


def test_schema_errors_are_reported_as_400(client: TestClient) -> None:
    response = client.post("/api/ledger/products/1/sale", json={"price": "a lot"})

    assert response.status_code == 400
    assert "price" in response.json()["message"]


def test_mirror_down_harvest_succeeds_with_warning(client: TestClient, fake_db: FakeSupabase) -> None:
    fake_db.raise_on_execute = httpx.ConnectError("connection refused")

    response = client.post("/api/ledger/products", json=HARVEST_BODY)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["warnings"][0]["kind"] == "SyncDivergence"
    assert body["popup"]["type"] == "warning"


def test_ledger_unreachable_returns_503(client: TestClient) -> None:
    service = MagicMock()
    service.harvest.side_effect = RemoteUnavailable("Cannot reach the blockchain node.", detail="connection refused")
    app.dependency_overrides[get_service] = lambda: service

    response = client.post("/api/ledger/products", json=HARVEST_BODY)

    assert response.status_code == 503
    assert response.json()["message"] == "Cannot reach the blockchain node."
    assert "connection refused" not in response.text


def test_price_beyond_uint256_is_a_400(client: TestClient) -> None:
    client.post("/api/ledger/products", json=HARVEST_BODY)

    response = client.post("/api/ledger/products/1/sale", json={"price": 2**256})

    assert response.status_code == 400
    assert response.json()["error"]["kind"] == "ValidationError"


def test_app_shutdown_stops_the_lifecycle_service(monkeypatch) -> None:
    monkeypatch.delenv("CHAIN_RPC_URL", raising=False)
    cached = (get_gateway, get_event_bus, get_mirror, get_service)
    for dependency in cached:
        dependency.cache_clear()

    with TestClient(app):
        service = get_service()

    assert get_service.cache_info().currsize == 0
    with pytest.raises(RuntimeError):
        service._executor.submit(print)
    for dependency in cached:
        dependency.cache_clear()
