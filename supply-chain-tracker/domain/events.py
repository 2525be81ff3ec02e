"""
Domain: lifecycle events.

A DomainEvent is a tagged union over the four lifecycle event kinds. Each kind
is a frozen dataclass with a fixed payload; `event_type` is the tag the event
bus routes on. Events are transient: they are built after a ledger operation
confirms, delivered once to every subscriber, then dropped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional, Union

from .product import ProductStatus
from .time import require_utc_timestamp, utc_now


class EventType(str, Enum):
    HARVESTED = "Harvested"
    STATUS_UPDATED = "StatusUpdated"
    LISTED_FOR_SALE = "ListedForSale"
    PURCHASED = "Purchased"


@dataclass(frozen=True, slots=True, kw_only=True)
class _EventBase:
    product_id: int
    tx_reference: Optional[str] = None
    block_number: Optional[int] = None
    timestamp: datetime = field(default_factory=utc_now)

    def _check(self) -> None:
        if self.product_id <= 0:
            raise ValueError("product_id must be a positive integer")
        require_utc_timestamp("timestamp", self.timestamp)


@dataclass(frozen=True, slots=True, kw_only=True)
class ProductHarvested(_EventBase):
    event_type: ClassVar[EventType] = EventType.HARVESTED

    product_name: str
    farmer_name: str
    farm_location: str
    harvest_date: int
    owner: str

    def __post_init__(self) -> None:
        self._check()

    def payload(self) -> dict:
        return {
            "product_name": self.product_name,
            "farmer_name": self.farmer_name,
            "farm_location": self.farm_location,
            "harvest_date": self.harvest_date,
            "owner": self.owner,
        }


@dataclass(frozen=True, slots=True, kw_only=True)
class StatusUpdated(_EventBase):
    event_type: ClassVar[EventType] = EventType.STATUS_UPDATED

    old_status: ProductStatus
    new_status: ProductStatus
    changed_by: str

    def __post_init__(self) -> None:
        self._check()

    def payload(self) -> dict:
        return {
            "old_status": int(self.old_status),
            "new_status": int(self.new_status),
            "changed_by": self.changed_by,
        }


@dataclass(frozen=True, slots=True, kw_only=True)
class ProductListedForSale(_EventBase):
    event_type: ClassVar[EventType] = EventType.LISTED_FOR_SALE

    seller: str
    price: int
    old_status: ProductStatus

    def __post_init__(self) -> None:
        self._check()
        if self.price <= 0:
            raise ValueError("price must be > 0 for a listing")

    def payload(self) -> dict:
        return {
            "seller": self.seller,
            "price": str(self.price),
            "old_status": int(self.old_status),
        }


@dataclass(frozen=True, slots=True, kw_only=True)
class ProductPurchased(_EventBase):
    event_type: ClassVar[EventType] = EventType.PURCHASED

    seller: str
    buyer: str
    price: int
    old_status: ProductStatus = ProductStatus.FOR_SALE

    def __post_init__(self) -> None:
        self._check()

    def payload(self) -> dict:
        return {
            "seller": self.seller,
            "buyer": self.buyer,
            "price": str(self.price),
            "old_status": int(self.old_status),
        }


DomainEvent = Union[ProductHarvested, StatusUpdated, ProductListedForSale, ProductPurchased]


def describe(event: DomainEvent) -> str:
    return f"{event.event_type.value}(product_id={event.product_id}, tx={event.tx_reference})"
