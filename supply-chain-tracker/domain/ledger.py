"""
Domain: Ledger record store (contract semantics).

This is the authoritative product record as the AgriculturalSupplyChain
contract defines it:
- Only authorized accounts may harvest or update status. The deployer is
  authorized by default and may authorize others.
- Ids are allocated by the ledger, starting at 1, strictly increasing, never
  reused.
- put_product_for_sale requires a positive price and moves the product to
  ForSale.
- purchase_product requires the product to be for sale and the payment to
  equal the stored price exactly; ownership moves to the buyer and the payment
  is credited to the previous owner.
- A failed operation leaves state unchanged.

Every mutation returns the contract logs it emitted, using the contract's event
names and argument names, so callers can treat this store and a deployed
contract the same way.

This module contains no I/O. It backs the in-process ledger gateway and the
test-suite.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .product import Product, ProductStatus


class LedgerError(Exception):
    """A contract-level revert. `reason` mirrors the contract's revert string."""

    reason: str = "Transaction reverted"

    def __init__(self, reason: Optional[str] = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class NotAuthorized(LedgerError):
    reason = "Not authorized"


class ProductNotFound(LedgerError):
    reason = "Product does not exist"


class NotForSale(LedgerError):
    reason = "Product is not for sale"


class WrongPayment(LedgerError):
    reason = "Incorrect payment amount"


class InvalidPrice(LedgerError):
    reason = "Price must be greater than 0"


class InvalidStatus(LedgerError):
    reason = "Invalid status"


class InvalidTransition(LedgerError):
    reason = "Status can only move forward"


@dataclass(frozen=True, slots=True)
class LedgerLog:
    """One emitted contract event: name plus its decoded arguments."""

    name: str
    args: Mapping[str, Any]


def _key(address: str) -> str:
    return address.lower()


@dataclass
class ProductLedger:
    """
    In-memory ledger with the contract's storage and rules.

    `strict_status` tightens update_status to forward-only transitions by the
    current owner. It is off by default, matching the deployed contract.
    """

    contract_owner: str
    strict_status: bool = False
    _products: Dict[int, Product] = field(default_factory=dict)
    _authorized: set = field(default_factory=set)
    _balances: Dict[str, int] = field(default_factory=dict)
    _last_id: int = 0

    def __post_init__(self) -> None:
        self._authorized.add(_key(self.contract_owner))

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def is_authorized(self, account: str) -> bool:
        return _key(account) in self._authorized

    def authorize_user(self, sender: str, user: str) -> List[LedgerLog]:
        if _key(sender) != _key(self.contract_owner):
            raise NotAuthorized("Only owner can authorize users")
        self._authorized.add(_key(user))
        return []

    def _require_authorized(self, sender: str) -> None:
        if not self.is_authorized(sender):
            raise NotAuthorized()

    def _require_product(self, product_id: int) -> Product:
        product = self._products.get(product_id)
        if product is None:
            raise ProductNotFound()
        return product

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def harvest_product(
        self,
        sender: str,
        product_name: str,
        farmer_name: str,
        farm_location: str,
        harvest_date: int,
    ) -> List[LedgerLog]:
        self._require_authorized(sender)

        product_id = self._last_id + 1
        self._products[product_id] = Product(
            id=product_id,
            product_name=product_name,
            farmer_name=farmer_name,
            farm_location=farm_location,
            harvest_date=int(harvest_date),
            status=ProductStatus.HARVESTED,
            owner=sender,
        )
        self._last_id = product_id

        return [
            LedgerLog(
                "ProductHarvested",
                {
                    "productId": product_id,
                    "productName": product_name,
                    "farmerName": farmer_name,
                    "owner": sender,
                },
            )
        ]

    def update_status(self, sender: str, product_id: int, new_status: int) -> List[LedgerLog]:
        self._require_authorized(sender)
        try:
            status = ProductStatus(int(new_status))
        except ValueError:
            raise InvalidStatus() from None
        product = self._require_product(product_id)

        if self.strict_status:
            if _key(product.owner) != _key(sender):
                raise NotAuthorized("Only the product owner can update status")
            if not product.status.can_advance_to(status):
                raise InvalidTransition()

        self._products[product_id] = product.with_status(status)
        return [
            LedgerLog(
                "StatusUpdated",
                {"productId": product_id, "newStatus": int(status), "updatedBy": sender},
            )
        ]

    def put_product_for_sale(self, sender: str, product_id: int, price: int) -> List[LedgerLog]:
        if int(price) <= 0:
            raise InvalidPrice()
        product = self._require_product(product_id)

        self._products[product_id] = product.listed(int(price))
        return [LedgerLog("ProductForSale", {"productId": product_id, "price": int(price)})]

    def purchase_product(self, sender: str, product_id: int, value: int) -> List[LedgerLog]:
        product = self._require_product(product_id)
        if not product.is_for_sale:
            raise NotForSale()
        if int(value) != product.price:
            raise WrongPayment()

        seller = product.owner
        self._products[product_id] = product.sold_to(sender)
        self._balances[_key(seller)] = self._balances.get(_key(seller), 0) + int(value)
        return []

    # ------------------------------------------------------------------
    # Reads (pure)
    # ------------------------------------------------------------------

    def get_product_details(self, product_id: int) -> Product:
        return self._require_product(product_id)

    def get_product_count(self) -> int:
        return len(self._products)

    def get_all_product_ids(self) -> List[int]:
        return sorted(self._products)

    def get_product_name(self, product_id: int) -> str:
        return self._require_product(product_id).product_name

    def get_product_status(self, product_id: int) -> ProductStatus:
        return self._require_product(product_id).status

    def get_product_owner(self, product_id: int) -> str:
        return self._require_product(product_id).owner

    def get_product_price(self, product_id: int) -> int:
        return self._require_product(product_id).price

    def get_product_for_sale_status(self, product_id: int) -> bool:
        return self._require_product(product_id).is_for_sale

    def balance_of(self, account: str) -> int:
        """Payments credited to `account` by purchases."""

        return self._balances.get(_key(account), 0)
