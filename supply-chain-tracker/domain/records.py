"""
Domain: mirror-side records.

These records are owned by the mirror (the derived relational store). They are
written only after the corresponding ledger operation confirmed, and are never
treated as authoritative for current product state.

- StatusChangeRecord: append-only status history. Never mutated or deleted.
- SaleRecord: created on listing; buyer and sale_status are filled in when the
  purchase completes (best-effort).
- ChainEventRecord: generic change-log row, one per confirmed ledger event.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from .product import ProductStatus
from .time import require_utc_timestamp, utc_now


class SaleStatus(str, Enum):
    LISTED = "listed"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class StatusChangeRecord:
    """Immutable status-history entry for one confirmed status change."""

    product_id: int
    old_status: ProductStatus
    new_status: ProductStatus
    changed_by: str
    source_tx_reference: Optional[str]
    timestamp: datetime = field(default_factory=utc_now)
    record_id: Optional[int] = None

    def __post_init__(self) -> None:
        if self.product_id <= 0:
            raise ValueError("product_id must be a positive integer")
        require_utc_timestamp("timestamp", self.timestamp)


@dataclass(frozen=True, slots=True)
class SaleRecord:
    """
    Sale entry for a product listing.

    buyer stays None until the purchase completes.
    """

    product_id: int
    seller: str
    price_amount: int
    sale_status: SaleStatus = SaleStatus.LISTED
    buyer: Optional[str] = None
    source_tx_reference: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None
    record_id: Optional[int] = None

    def __post_init__(self) -> None:
        if self.product_id <= 0:
            raise ValueError("product_id must be a positive integer")
        if self.price_amount < 0:
            raise ValueError("price_amount must be >= 0")
        require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)
        if self.sale_status is SaleStatus.COMPLETED and not self.buyer:
            raise ValueError("a completed sale requires a buyer")

    def completed(self, buyer: str, completed_at: datetime, tx_reference: Optional[str] = None) -> "SaleRecord":
        """Return a new SaleRecord marked completed by `buyer`."""

        require_utc_timestamp("completed_at", completed_at)
        if self.sale_status is SaleStatus.COMPLETED:
            raise ValueError("SaleRecord is already completed")
        return replace(
            self,
            buyer=buyer,
            sale_status=SaleStatus.COMPLETED,
            updated_at=completed_at,
            source_tx_reference=tx_reference or self.source_tx_reference,
        )


@dataclass(frozen=True, slots=True)
class ChainEventRecord:
    """Generic ledger event row (mirror table `blockchain_events`)."""

    event_type: str
    product_id: int
    event_data: Mapping[str, Any]
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None
    created_at: datetime = field(default_factory=utc_now)
    record_id: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.event_type:
            raise ValueError("event_type is required")
        require_utc_timestamp("created_at", self.created_at)
