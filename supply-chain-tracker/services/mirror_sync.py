"""
Mirror synchronizer.

Writes confirmed ledger activity into the derived Supabase store:
- record_product: current-product row (advisory, last-write-wins)
- record_status_change: append-only status history
- record_sale / complete_sale: listing row, then buyer + completed status
- patch_product: current-product fields touched by a status change or sale
- record_event: generic change-log row

Each operation performs exactly one write, so a SyncResult always says
whether that single row landed.

Rules:
- Called only after the ledger operation confirmed (as an EventBus subscriber).
- One attempt per write. No retry, no queue, never touches the ledger.
- Reachability is tracked separately from the ledger. While the mirror is
  unreachable every write is skipped.
- Failures come back as SyncResult values. The caller reports them as a
  divergence warning; the ledger operation itself stays successful.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

import httpx
from postgrest.exceptions import APIError

from domain.events import (
    DomainEvent,
    ProductHarvested,
    ProductListedForSale,
    ProductPurchased,
    StatusUpdated,
    describe,
)
from domain.errors import RemoteUnavailable
from domain.product import Product, ProductStatus
from domain.records import ChainEventRecord, SaleRecord, SaleStatus, StatusChangeRecord
from domain.time import utc_now
from repositories import event_repository, product_repository, sale_repository, status_history_repository
from services.event_bus import EventBus, Subscription

logger = logging.getLogger(__name__)

MIRROR_ERRORS = (APIError, httpx.HTTPError, RuntimeError, OSError)
_TRANSPORT_ERRORS = (httpx.TransportError, OSError)

MIRROR_SUBSCRIBER = "mirror"


class SyncState(str, Enum):
    SYNCED = "synced"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class SyncResult:
    operation: str
    state: SyncState
    product_id: Optional[int] = None
    record: Any = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state is SyncState.SYNCED


class MirrorSynchronizer:
    def __init__(self, client_provider: Callable[[], Any], recheck_after: float = 30.0) -> None:
        self._client_provider = client_provider
        self._recheck_after = recheck_after
        self._reachable: Optional[bool] = None
        self._checked_at = 0.0
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Reachability
    # ------------------------------------------------------------------

    @property
    def is_reachable(self) -> bool:
        """
        Last known reachability. Probes on first use, and again once
        `recheck_after` seconds have passed since the mirror went unreachable.
        """

        if self._reachable is None:
            return self.probe()
        if not self._reachable and time.monotonic() - self._checked_at >= self._recheck_after:
            return self.probe()
        return self._reachable

    def _set_reachable(self, reachable: bool, reason: Optional[str] = None) -> None:
        with self._lock:
            previous = self._reachable
            self._reachable = reachable
            self._checked_at = time.monotonic()
        if previous is not reachable:
            if reachable:
                logger.info("Mirror database reachable")
            else:
                logger.warning("Mirror database unreachable: %s", reason)

    def probe(self) -> bool:
        """Liveness check against the products table."""

        try:
            product_repository.ping(self._client_provider())
        except MIRROR_ERRORS as e:
            self._set_reachable(False, str(e))
            return False
        self._set_reachable(True)
        return True

    def read_products(self) -> list[Product]:
        """
        Product-shaped view of the mirror, in the mirror's order.

        Raises:
            RemoteUnavailable: the mirror is offline or the query failed.
        """

        if not self.is_reachable:
            raise RemoteUnavailable("Database is unavailable.")
        try:
            rows = product_repository.list_product_rows(self._client_provider())
        except MIRROR_ERRORS as e:
            if isinstance(e, _TRANSPORT_ERRORS):
                self._set_reachable(False, str(e))
            raise RemoteUnavailable("Failed to load products from database.", detail=str(e)) from e

        products = []
        for row in rows:
            product = product_repository.row_to_product(row)
            if product is not None:
                products.append(product)
        return products

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _write(self, operation: str, product_id: Optional[int], write: Callable[[Any], Any]) -> SyncResult:
        if not self.is_reachable:
            logger.warning("Mirror offline, skipped %s for product %s", operation, product_id)
            return SyncResult(operation, SyncState.SKIPPED, product_id, reason="Mirror database unreachable")

        try:
            record = write(self._client_provider())
        except MIRROR_ERRORS as e:
            if isinstance(e, _TRANSPORT_ERRORS):
                self._set_reachable(False, str(e))
            logger.error("Mirror write %s failed for product %s: %s", operation, product_id, e)
            return SyncResult(operation, SyncState.FAILED, product_id, reason=str(e))

        return SyncResult(operation, SyncState.SYNCED, product_id, record=record)

    def record_product(self, product: Product) -> SyncResult:
        def write(client: Any) -> dict:
            row = product_repository.product_to_row(product)
            if product_repository.get_product_row(client, product.id) is None:
                return product_repository.insert_product(client, row)
            return product_repository.update_product(client, product.id, row)

        return self._write("record_product", product.id, write)

    def patch_product(self, product_id: int, fields: dict) -> SyncResult:
        """Update fields of an existing product row. A missing row is left alone."""

        def write(client: Any) -> Optional[dict]:
            row = product_repository.update_product(client, product_id, fields)
            if row is None:
                logger.info("No mirrored row for product %d, nothing to patch", product_id)
            return row

        return self._write("patch_product", product_id, write)

    def record_status_change(self, record: StatusChangeRecord) -> SyncResult:
        return self._write(
            "record_status_change",
            record.product_id,
            lambda client: status_history_repository.record_status_change(client, record),
        )

    def record_sale(self, sale: SaleRecord) -> SyncResult:
        return self._write(
            "record_sale",
            sale.product_id,
            lambda client: sale_repository.record_sale(client, sale),
        )

    def complete_sale(
        self,
        product_id: int,
        seller: str,
        buyer: str,
        price: int,
        tx_reference: Optional[str] = None,
    ) -> SyncResult:
        """
        Mark the open listing of `product_id` completed by `buyer`.

        If no listing row exists (the listing itself was never mirrored), a
        completed sale row is inserted instead.
        """

        def write(client: Any) -> SaleRecord:
            listing = sale_repository.get_open_listing(client, product_id)
            if listing is None:
                return sale_repository.record_sale(
                    client,
                    SaleRecord(
                        product_id=product_id,
                        seller=seller,
                        price_amount=price,
                        sale_status=SaleStatus.COMPLETED,
                        buyer=buyer,
                        source_tx_reference=tx_reference,
                    ),
                )
            completed = listing.completed(buyer, utc_now(), tx_reference)
            return sale_repository.complete_sale(client, completed)

        return self._write("complete_sale", product_id, write)

    def record_event(self, record: ChainEventRecord) -> SyncResult:
        return self._write(
            "record_event",
            record.product_id,
            lambda client: event_repository.record_event(client, record),
        )

    # ------------------------------------------------------------------
    # Event bus subscriber
    # ------------------------------------------------------------------

    def attach(self, bus: EventBus) -> Subscription:
        return bus.subscribe(None, self.handle, name=MIRROR_SUBSCRIBER)

    def handle(self, event: DomainEvent) -> SyncResult:
        """
        Mirror one confirmed event.

        Returns the first unsuccessful SyncResult, or the primary write's
        result when everything landed.
        """

        results = [*self._writes_for(event), self.record_event(_change_log_row(event))]
        for result in results:
            if not result.ok:
                logger.warning(
                    "Mirror diverged from ledger on %s: %s (%s)",
                    describe(event),
                    result.operation,
                    result.reason,
                )
                return result
        return results[0]

    def _writes_for(self, event: DomainEvent) -> list[SyncResult]:
        if isinstance(event, ProductHarvested):
            product = Product(
                id=event.product_id,
                product_name=event.product_name,
                farmer_name=event.farmer_name,
                farm_location=event.farm_location,
                harvest_date=event.harvest_date,
                status=ProductStatus.HARVESTED,
                owner=event.owner,
            )
            return [self.record_product(product)]

        if isinstance(event, StatusUpdated):
            return [
                self.record_status_change(
                    StatusChangeRecord(
                        product_id=event.product_id,
                        old_status=event.old_status,
                        new_status=event.new_status,
                        changed_by=event.changed_by,
                        source_tx_reference=event.tx_reference,
                        timestamp=event.timestamp,
                    )
                ),
                self.patch_product(event.product_id, {"current_status": int(event.new_status)}),
            ]

        if isinstance(event, ProductListedForSale):
            return [
                self.record_sale(
                    SaleRecord(
                        product_id=event.product_id,
                        seller=event.seller,
                        price_amount=event.price,
                        source_tx_reference=event.tx_reference,
                        created_at=event.timestamp,
                    )
                ),
                self.record_status_change(
                    StatusChangeRecord(
                        product_id=event.product_id,
                        old_status=event.old_status,
                        new_status=ProductStatus.FOR_SALE,
                        changed_by=event.seller,
                        source_tx_reference=event.tx_reference,
                        timestamp=event.timestamp,
                    )
                ),
                self.patch_product(
                    event.product_id,
                    {
                        "price_wei": str(event.price),
                        "is_for_sale": True,
                        "current_status": int(ProductStatus.FOR_SALE),
                    },
                ),
            ]

        if isinstance(event, ProductPurchased):
            return [
                self.complete_sale(
                    event.product_id, event.seller, event.buyer, event.price, event.tx_reference
                ),
                self.record_status_change(
                    StatusChangeRecord(
                        product_id=event.product_id,
                        old_status=event.old_status,
                        new_status=ProductStatus.SOLD,
                        changed_by=event.buyer,
                        source_tx_reference=event.tx_reference,
                        timestamp=event.timestamp,
                    )
                ),
                self.patch_product(
                    event.product_id,
                    {
                        "blockchain_owner_address": event.buyer,
                        "is_for_sale": False,
                        "current_status": int(ProductStatus.SOLD),
                    },
                ),
            ]

        raise TypeError(f"Unsupported event: {event!r}")


def _change_log_row(event: DomainEvent) -> ChainEventRecord:
    return ChainEventRecord(
        event_type=event.event_type.value,
        product_id=event.product_id,
        event_data=event.payload(),
        transaction_hash=event.tx_reference,
        block_number=event.block_number,
        created_at=event.timestamp,
    )


__all__ = ["MirrorSynchronizer", "SyncResult", "SyncState", "MIRROR_ERRORS", "MIRROR_SUBSCRIBER"]
