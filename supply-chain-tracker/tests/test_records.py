"""
Tests for `domain/records.py` and `domain/events.py`.

Covers contract rules:
- Record and event timestamps are timezone-aware UTC.
- A completed sale always names its buyer; completion happens once.
- A listing event carries a positive price.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from domain.events import EventType, ProductListedForSale, ProductPurchased, StatusUpdated, describe
from domain.product import ProductStatus
from domain.records import ChainEventRecord, SaleRecord, SaleStatus, StatusChangeRecord
from fakes import BUYER, FARMER

UTC_TS = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_status_change_record_requires_utc_timestamp() -> None:
    with pytest.raises(ValueError):
        StatusChangeRecord(1, ProductStatus.HARVESTED, ProductStatus.PROCESSING, FARMER, None, timestamp=datetime(2025, 1, 1))

    with pytest.raises(ValueError):
        StatusChangeRecord(
            1,
            ProductStatus.HARVESTED,
            ProductStatus.PROCESSING,
            FARMER,
            None,
            timestamp=datetime(2025, 1, 1, tzinfo=timezone(timedelta(hours=5))),
        )


def test_sale_record_completion_sets_buyer_once() -> None:
    listing = SaleRecord(product_id=1, seller=FARMER, price_amount=500, created_at=UTC_TS)

    completed = listing.completed(BUYER, UTC_TS + timedelta(minutes=5), "0xabc")

    assert completed.sale_status is SaleStatus.COMPLETED
    assert completed.buyer == BUYER
    assert completed.source_tx_reference == "0xabc"
    assert listing.buyer is None
    with pytest.raises(ValueError):
        completed.completed(BUYER, UTC_TS)


def test_completed_sale_without_buyer_is_rejected() -> None:
    with pytest.raises(ValueError):
        SaleRecord(product_id=1, seller=FARMER, price_amount=500, sale_status=SaleStatus.COMPLETED)


def test_chain_event_record_requires_type() -> None:
    with pytest.raises(ValueError):
        ChainEventRecord(event_type="", product_id=1, event_data={})


def test_listing_event_requires_positive_price() -> None:
    with pytest.raises(ValueError):
        ProductListedForSale(product_id=1, seller=FARMER, price=0, old_status=ProductStatus.PACKAGED)


def test_events_are_tagged_with_fixed_payloads() -> None:
    updated = StatusUpdated(
        product_id=1,
        old_status=ProductStatus.HARVESTED,
        new_status=ProductStatus.PROCESSING,
        changed_by=FARMER,
        tx_reference="0x01",
    )
    purchased = ProductPurchased(product_id=1, seller=FARMER, buyer=BUYER, price=10**18)

    assert updated.event_type is EventType.STATUS_UPDATED
    assert updated.payload() == {"old_status": 0, "new_status": 1, "changed_by": FARMER}
    assert purchased.event_type is EventType.PURCHASED
    assert purchased.payload()["price"] == "1000000000000000000"
    assert describe(updated) == "StatusUpdated(product_id=1, tx=0x01)"
