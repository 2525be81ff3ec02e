"""
Product reader: merges the ledger view with the mirror view.

- The ledger is read through its count accessor (ids 1..count). If the count
  accessor is unavailable, ids are probed sequentially: up to
  DISCOVERY_MAX_PROBES ids while nothing has been found, and after the first
  hit until DISCOVERY_MISS_LIMIT consecutive misses. Probing is a degraded
  heuristic and may miss products beyond a gap.
- The mirror contributes its product rows in the order it returns them.
- Merge: every id present in the ledger result is taken from the ledger;
  mirror rows whose id the ledger lacks are appended after the ledger entries.
- Either source being unavailable degrades to the other.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from domain.errors import NotFoundError, RemoteUnavailable
from domain.product import Product
from services.ledger_gateway import AccessorUnavailable, LedgerGateway
from services.mirror_sync import MirrorSynchronizer

logger = logging.getLogger(__name__)

DISCOVERY_MAX_PROBES = 20
DISCOVERY_MISS_LIMIT = 3


@dataclass(frozen=True, slots=True)
class ProductListing:
    products: List[Product] = field(default_factory=list)
    ledger_available: bool = True
    mirror_available: bool = True


def merge_products(ledger_products: List[Product], mirror_products: List[Product]) -> List[Product]:
    """Ledger entries in id order, then mirror-only entries in mirror order."""

    merged = sorted(ledger_products, key=lambda p: p.id)
    seen = {p.id for p in merged}
    for product in mirror_products:
        if product.id not in seen:
            merged.append(product)
            seen.add(product.id)
    return merged


class ProductReader:
    def __init__(self, ledger: Optional[LedgerGateway], mirror: Optional[MirrorSynchronizer] = None) -> None:
        self.ledger = ledger
        self.mirror = mirror

    def read_ledger(self) -> List[Product]:
        """
        All products the ledger can enumerate.

        Raises:
            RemoteUnavailable: the chain node could not be reached.
        """

        if self.ledger is None:
            raise RemoteUnavailable("No ledger configured.")

        try:
            count = self.ledger.get_product_count()
        except AccessorUnavailable as e:
            logger.warning("Product count unavailable, probing ids instead: %s", e)
            return self.discover()

        products: List[Product] = []
        for product_id in range(1, count + 1):
            try:
                products.append(self.ledger.get_product_details(product_id))
            except NotFoundError:
                logger.warning("Failed to load ledger product %d", product_id)
        return products

    def discover(self) -> List[Product]:
        found: List[Product] = []
        misses = 0
        product_id = 0
        while True:
            product_id += 1
            if not found and product_id > DISCOVERY_MAX_PROBES:
                break
            try:
                found.append(self.ledger.get_product_details(product_id))
                misses = 0
            except NotFoundError:
                misses += 1
                if found and misses >= DISCOVERY_MISS_LIMIT:
                    break
        logger.info("Discovered %d ledger products by probing", len(found))
        return found

    def read_mirror(self) -> List[Product]:
        if self.mirror is None:
            raise RemoteUnavailable("No mirror configured.")
        return self.mirror.read_products()

    def read(self) -> ProductListing:
        ledger_available = mirror_available = True

        try:
            ledger_products = self.read_ledger()
        except RemoteUnavailable as e:
            logger.warning("Ledger unavailable, listing mirror products only: %s", e.detail or e)
            ledger_products, ledger_available = [], False

        try:
            mirror_products = self.read_mirror()
        except RemoteUnavailable as e:
            logger.info("Mirror unavailable, listing ledger products only: %s", e.detail or e)
            mirror_products, mirror_available = [], False

        return ProductListing(
            products=merge_products(ledger_products, mirror_products),
            ledger_available=ledger_available,
            mirror_available=mirror_available,
        )

    def list_products(self) -> List[Product]:
        return self.read().products

    def get_product(self, product_id: int) -> Product:
        """
        One product: the ledger's record when the ledger has it, else the
        mirror's row.
        """

        if self.ledger is not None:
            try:
                return self.ledger.get_product_details(product_id)
            except NotFoundError:
                pass
            except RemoteUnavailable as e:
                logger.warning("Ledger unavailable, reading product %d from mirror: %s", product_id, e.detail or e)

        try:
            for product in self.read_mirror():
                if product.id == product_id:
                    return product
        except RemoteUnavailable:
            pass
        raise NotFoundError(f"Product {product_id} not found.")


__all__ = [
    "ProductReader",
    "ProductListing",
    "merge_products",
    "DISCOVERY_MAX_PROBES",
    "DISCOVERY_MISS_LIMIT",
]
