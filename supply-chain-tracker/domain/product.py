"""
Domain: Product entity and lifecycle status.

Contract excerpts implemented here:
- A Product is identified by a positive integer id assigned by the ledger at
  harvest time. Ids increase monotonically and are never reused.
- Status follows a five-state linear lifecycle:
  Harvested(0) -> Processing(1) -> Packaged(2) -> ForSale(3) -> Sold(4).
- price is an integer amount in the smallest currency unit (wei) and is never
  negative.

This module contains only pure domain entities: no I/O, no database, no web3.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Optional

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class ProductStatus(IntEnum):
    HARVESTED = 0
    PROCESSING = 1
    PACKAGED = 2
    FOR_SALE = 3
    SOLD = 4  # "Sold/Delivered"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]

    @staticmethod
    def parse(value: object) -> "ProductStatus":
        """
        Resolve a status from an int, a numeric string or an enum name.

        Raises ValueError for anything outside the defined lifecycle.
        """

        if isinstance(value, ProductStatus):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid product status: {value!r}")
        if isinstance(value, int):
            return ProductStatus(value)
        if isinstance(value, str):
            text = value.strip()
            if text.lstrip("-").isdigit():
                return ProductStatus(int(text))
            try:
                return ProductStatus[text.upper().replace(" ", "_")]
            except KeyError:
                raise ValueError(f"Invalid product status: {value!r}") from None
        raise ValueError(f"Invalid product status: {value!r}")

    def can_advance_to(self, new_status: "ProductStatus") -> bool:
        """True iff new_status is strictly later in the lifecycle."""

        return new_status > self


_STATUS_LABELS = {
    ProductStatus.HARVESTED: "Harvested",
    ProductStatus.PROCESSING: "Processing",
    ProductStatus.PACKAGED: "Packaged",
    ProductStatus.FOR_SALE: "For Sale",
    ProductStatus.SOLD: "Sold",
}


@dataclass(frozen=True, slots=True)
class Product:
    """
    Snapshot of a product as read from one of the two stores.

    `source` is "ledger" for authoritative snapshots and "mirror" for rows read
    from the derived store. Mirror rows are advisory and are not re-validated
    against the for-sale invariant.
    """

    id: int
    product_name: str
    farmer_name: str
    farm_location: str
    harvest_date: int
    status: ProductStatus
    owner: str
    price: int = 0
    is_for_sale: bool = False
    source: str = "ledger"

    def __post_init__(self) -> None:
        if self.id <= 0:
            raise ValueError("id must be a positive integer")
        if self.price < 0:
            raise ValueError("price must be >= 0")
        if self.source not in ("ledger", "mirror"):
            raise ValueError(f"Unknown product source: {self.source!r}")

    @property
    def status_label(self) -> str:
        return self.status.label

    def with_status(self, status: ProductStatus) -> "Product":
        return replace(self, status=status)

    def listed(self, price: int) -> "Product":
        return replace(self, price=price, is_for_sale=True, status=ProductStatus.FOR_SALE)

    def sold_to(self, buyer: str) -> "Product":
        return replace(self, owner=buyer, is_for_sale=False, status=ProductStatus.SOLD)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productName": self.product_name,
            "farmerName": self.farmer_name,
            "farmLocation": self.farm_location,
            "harvestDate": self.harvest_date,
            "status": int(self.status),
            "statusLabel": self.status_label,
            "currentOwner": self.owner,
            "price": str(self.price),
            "isForSale": self.is_for_sale,
            "source": self.source,
        }


def product_from_details(details: tuple | list, *, expected_id: Optional[int] = None) -> Optional[Product]:
    """
    Build a Product from the contract's getProductDetails tuple.

    Tuple layout: (id, name, farmer, location, harvestDate, status, owner,
    price, isForSale). Returns None for unallocated slots, which the contract
    reports with an empty product name.
    """

    if not details or len(details) < 9:
        return None
    product_id, name, farmer, location, harvest_date, status, owner, price, for_sale = details[:9]
    if not name:
        return None
    pid = int(product_id) if int(product_id) > 0 else (expected_id or 0)
    return Product(
        id=pid,
        product_name=str(name),
        farmer_name=str(farmer),
        farm_location=str(location),
        harvest_date=int(harvest_date),
        status=ProductStatus(int(status)),
        owner=str(owner),
        price=int(price),
        is_for_sale=bool(for_sale),
    )
