"""
Tests for `services/event_bus.py`.

Covers:
- Delivery in subscription order, catch-all subscribers last.
- A failing subscriber does not stop delivery to the others.
- Unsubscribed handlers receive nothing.
"""

from __future__ import annotations

from domain.events import EventType, ProductHarvested, StatusUpdated
from domain.product import ProductStatus
from fakes import FARMER, HARVEST_DATE
from services.event_bus import EventBus


def _harvested(product_id: int = 1) -> ProductHarvested:
    return ProductHarvested(
        product_id=product_id,
        product_name="Mango",
        farmer_name="Asha",
        farm_location="Ratnagiri",
        harvest_date=HARVEST_DATE,
        owner=FARMER,
    )


def test_subscribers_run_in_order_with_catch_all_last() -> None:
    bus = EventBus()
    seen = []
    bus.subscribe(None, lambda e: seen.append("all"), name="all")
    bus.subscribe(EventType.HARVESTED, lambda e: seen.append("first"), name="first")
    bus.subscribe(EventType.HARVESTED, lambda e: seen.append("second"), name="second")
    bus.subscribe(EventType.PURCHASED, lambda e: seen.append("other"), name="other")

    deliveries = bus.publish(_harvested())

    assert seen == ["first", "second", "all"]
    assert [d.subscriber for d in deliveries] == ["first", "second", "all"]


def test_failing_subscriber_is_isolated() -> None:
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(EventType.STATUS_UPDATED, broken, name="broken")
    bus.subscribe(EventType.STATUS_UPDATED, lambda e: received.append(e) or "done", name="ok")

    event = StatusUpdated(
        product_id=1,
        old_status=ProductStatus.HARVESTED,
        new_status=ProductStatus.PROCESSING,
        changed_by=FARMER,
    )
    deliveries = bus.publish(event)

    assert received == [event]
    assert deliveries[0].ok is False and deliveries[0].error == "boom"
    assert deliveries[1].ok is True and deliveries[1].result == "done"


def test_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    seen = []
    subscription = bus.subscribe(EventType.HARVESTED, seen.append)

    bus.unsubscribe(subscription)

    assert bus.publish(_harvested()) == []
    assert seen == []
