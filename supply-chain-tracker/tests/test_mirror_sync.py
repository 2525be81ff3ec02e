"""
Tests for `services/mirror_sync.py` against the in-memory Supabase fake.

Covers:
- Each confirmed event lands in its table(s) plus one change-log row.
- Listing and purchase keep the product row and the sale row in step.
- While the database is unreachable every write is skipped and nothing is
  queued; reachability is re-probed after the recheck interval.
- Store errors come back as failed SyncResults, never as exceptions.
- Each SyncResult covers exactly one row write.
"""

from __future__ import annotations

import httpx
import pytest

from domain.errors import RemoteUnavailable
from domain.events import ProductHarvested, ProductListedForSale, ProductPurchased, StatusUpdated
from domain.product import Product, ProductStatus
from domain.records import StatusChangeRecord
from fakes import BUYER, FARMER, HARVEST_DATE, FakeSupabase
from repositories.client import EVENTS_TABLE, PRODUCTS_TABLE, SALES_TABLE, STATUS_HISTORY_TABLE
from services.mirror_sync import MirrorSynchronizer, SyncState


def _harvested(product_id: int = 1) -> ProductHarvested:
    return ProductHarvested(
        product_id=product_id,
        product_name="Mango",
        farmer_name="Asha",
        farm_location="Ratnagiri",
        harvest_date=HARVEST_DATE,
        owner=FARMER,
        tx_reference="0x01",
        block_number=1,
    )


def test_harvest_creates_product_row_and_change_log(mirror: MirrorSynchronizer, fake_db: FakeSupabase) -> None:
    result = mirror.handle(_harvested())

    assert result.state is SyncState.SYNCED
    [row] = fake_db.rows(PRODUCTS_TABLE)
    assert row["blockchain_product_id"] == 1
    assert row["current_status"] == 0
    assert row["blockchain_owner_address"] == FARMER
    assert row["price_wei"] == "0"
    [event_row] = fake_db.rows(EVENTS_TABLE)
    assert event_row["event_type"] == "Harvested"
    assert event_row["transaction_hash"] == "0x01"
    assert event_row["event_data"]["product_name"] == "Mango"


def test_record_product_updates_existing_row(mirror: MirrorSynchronizer, fake_db: FakeSupabase) -> None:
    product = Product(1, "Mango", "Asha", "Ratnagiri", HARVEST_DATE, ProductStatus.HARVESTED, FARMER)
    mirror.record_product(product)

    mirror.record_product(product.with_status(ProductStatus.PACKAGED))

    [row] = fake_db.rows(PRODUCTS_TABLE)
    assert row["current_status"] == 2


def test_status_update_appends_history(mirror: MirrorSynchronizer, fake_db: FakeSupabase) -> None:
    mirror.handle(_harvested())

    result = mirror.handle(
        StatusUpdated(
            product_id=1,
            old_status=ProductStatus.HARVESTED,
            new_status=ProductStatus.PROCESSING,
            changed_by=FARMER,
            tx_reference="0x02",
        )
    )

    assert result.ok
    [history] = fake_db.rows(STATUS_HISTORY_TABLE)
    assert (history["old_status"], history["new_status"]) == (0, 1)
    assert history["transaction_hash"] == "0x02"
    assert fake_db.rows(PRODUCTS_TABLE)[0]["current_status"] == 1
    assert len(fake_db.rows(EVENTS_TABLE)) == 2


def test_listing_then_purchase_completes_the_sale(mirror: MirrorSynchronizer, fake_db: FakeSupabase) -> None:
    mirror.handle(_harvested())
    mirror.handle(
        ProductListedForSale(product_id=1, seller=FARMER, price=900, old_status=ProductStatus.PACKAGED, tx_reference="0x03")
    )

    [sale] = fake_db.rows(SALES_TABLE)
    assert sale["sale_status"] == "listed"
    assert sale["sale_price_wei"] == "900"
    product_row = fake_db.rows(PRODUCTS_TABLE)[0]
    assert product_row["is_for_sale"] is True
    assert product_row["price_wei"] == "900"

    result = mirror.handle(ProductPurchased(product_id=1, seller=FARMER, buyer=BUYER, price=900, tx_reference="0x04"))

    assert result.ok
    [sale] = fake_db.rows(SALES_TABLE)
    assert sale["sale_status"] == "completed"
    assert sale["buyer_address"] == BUYER
    assert sale["transaction_hash"] == "0x04"
    product_row = fake_db.rows(PRODUCTS_TABLE)[0]
    assert product_row["blockchain_owner_address"] == BUYER
    assert product_row["is_for_sale"] is False
    assert product_row["current_status"] == 4
    transitions = [(r["old_status"], r["new_status"]) for r in fake_db.rows(STATUS_HISTORY_TABLE)]
    assert transitions == [(2, 3), (3, 4)]


def test_purchase_without_mirrored_listing_inserts_completed_sale(
    mirror: MirrorSynchronizer, fake_db: FakeSupabase
) -> None:
    mirror.complete_sale(1, FARMER, BUYER, 900, "0x05")

    [sale] = fake_db.rows(SALES_TABLE)
    assert sale["sale_status"] == "completed"
    assert sale["buyer_address"] == BUYER


def test_unreachable_mirror_skips_writes_without_queueing(fake_db: FakeSupabase) -> None:
    fake_db.raise_on_execute = httpx.ConnectError("connection refused")
    mirror = MirrorSynchronizer(lambda: fake_db)

    result = mirror.handle(_harvested())

    assert result.state is SyncState.SKIPPED
    assert mirror.is_reachable is False
    # Only the liveness probe reached the client.
    assert fake_db.calls == [(PRODUCTS_TABLE, "select")]

    fake_db.raise_on_execute = None
    assert mirror.handle(_harvested(2)).state is SyncState.SKIPPED
    assert fake_db.rows(PRODUCTS_TABLE) == []


def test_reachability_is_rechecked_after_interval(fake_db: FakeSupabase) -> None:
    fake_db.raise_on_execute = httpx.ConnectError("connection refused")
    mirror = MirrorSynchronizer(lambda: fake_db, recheck_after=0)
    assert mirror.record_product(
        Product(1, "Mango", "Asha", "Ratnagiri", HARVEST_DATE, ProductStatus.HARVESTED, FARMER)
    ).state is SyncState.SKIPPED

    fake_db.raise_on_execute = None

    assert mirror.handle(_harvested()).state is SyncState.SYNCED
    assert len(fake_db.rows(PRODUCTS_TABLE)) == 1


def test_store_error_is_a_failed_result(mirror: MirrorSynchronizer, fake_db: FakeSupabase) -> None:
    assert mirror.probe() is True
    fake_db.response_error = {"message": "permission denied for table products"}

    result = mirror.handle(_harvested())

    assert result.state is SyncState.FAILED
    assert "permission denied" in result.reason
    assert mirror.is_reachable is True


def test_transport_error_mid_write_marks_mirror_unreachable(mirror: MirrorSynchronizer, fake_db: FakeSupabase) -> None:
    assert mirror.probe() is True
    fake_db.raise_on_execute = httpx.ReadTimeout("timed out")

    assert mirror.handle(_harvested()).state is SyncState.FAILED
    assert mirror.handle(_harvested(2)).state is SyncState.SKIPPED


def test_read_products_returns_mirror_products_newest_first(mirror: MirrorSynchronizer, fake_db: FakeSupabase) -> None:
    mirror.handle(_harvested(1))
    mirror.handle(_harvested(2))

    products = mirror.read_products()

    assert [p.id for p in products] == [2, 1]
    assert all(p.source == "mirror" for p in products)


def test_read_products_raises_when_unreachable(fake_db: FakeSupabase) -> None:
    fake_db.raise_on_execute = httpx.ConnectError("connection refused")
    mirror = MirrorSynchronizer(lambda: fake_db)

    with pytest.raises(RemoteUnavailable):
        mirror.read_products()


def _status_updated() -> StatusUpdated:
    return StatusUpdated(
        product_id=1,
        old_status=ProductStatus.HARVESTED,
        new_status=ProductStatus.PROCESSING,
        changed_by=FARMER,
        tx_reference="0x06",
    )


def test_status_change_is_a_single_history_write(mirror: MirrorSynchronizer, fake_db: FakeSupabase) -> None:
    mirror.handle(_harvested())
    fake_db.failing_tables = {PRODUCTS_TABLE}
    fake_db.raise_on_execute = httpx.ConnectError("connection refused")

    event = _status_updated()
    result = mirror.record_status_change(
        StatusChangeRecord(
            product_id=1,
            old_status=event.old_status,
            new_status=event.new_status,
            changed_by=event.changed_by,
            source_tx_reference=event.tx_reference,
        )
    )

    assert result.state is SyncState.SYNCED
    assert len(fake_db.rows(STATUS_HISTORY_TABLE)) == 1
    assert fake_db.calls[-1] == (STATUS_HISTORY_TABLE, "insert")


def test_failed_product_patch_is_reported_separately(mirror: MirrorSynchronizer, fake_db: FakeSupabase) -> None:
    mirror.handle(_harvested())
    fake_db.failing_tables = {PRODUCTS_TABLE}
    fake_db.raise_on_execute = httpx.ConnectError("connection refused")

    result = mirror.handle(_status_updated())

    assert result.operation == "patch_product"
    assert result.state is SyncState.FAILED
    [history] = fake_db.rows(STATUS_HISTORY_TABLE)
    assert history["transaction_hash"] == "0x06"
    assert fake_db.rows(PRODUCTS_TABLE)[0]["current_status"] == 0


def test_patch_without_mirrored_row_is_a_no_op(mirror: MirrorSynchronizer, fake_db: FakeSupabase) -> None:
    result = mirror.patch_product(9, {"current_status": 2})

    assert result.ok
    assert result.record is None
    assert fake_db.rows(PRODUCTS_TABLE) == []


def test_mapping_errors_are_not_turned_into_sync_results(mirror: MirrorSynchronizer, monkeypatch) -> None:
    def broken_row(product):
        raise KeyError("product_name")

    monkeypatch.setattr("repositories.product_repository.product_to_row", broken_row)

    with pytest.raises(KeyError):
        mirror.handle(_harvested())
