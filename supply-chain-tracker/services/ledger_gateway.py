"""
Ledger gateway interface.

A gateway submits contract operations and reads contract state. Two
implementations exist:
- ChainClient (services/chain_client.py): a deployed contract through web3.
- LocalLedgerGateway (services/local_ledger.py): an in-process ProductLedger.

Mutations never raise: they return a TxOutcome that is either confirmed (with
the decoded contract logs) or a typed failure. Reads raise NotFoundError,
RemoteUnavailable or AccessorUnavailable.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from domain.errors import TxFailureKind
from domain.ledger import LedgerLog
from domain.product import Product

# Contract operation names (ABI function names).
HARVEST_PRODUCT = "harvestProduct"
UPDATE_STATUS = "updateStatus"
PUT_PRODUCT_FOR_SALE = "putProductForSale"
PURCHASE_PRODUCT = "purchaseProduct"
AUTHORIZE_USER = "authorizeUser"

MUTATING_OPERATIONS = (
    HARVEST_PRODUCT,
    UPDATE_STATUS,
    PUT_PRODUCT_FOR_SALE,
    PURCHASE_PRODUCT,
    AUTHORIZE_USER,
)

# Largest value a uint256 contract argument can hold.
UINT256_MAX = 2**256 - 1


class AccessorUnavailable(Exception):
    """A read accessor exists in the interface but the ledger cannot serve it."""


class TxStatus(str, Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"
    TIMEOUT = "timeout"


@dataclass(frozen=True, slots=True)
class TxOutcome:
    """
    Terminal outcome of one submitted operation.

    For TIMEOUT the transaction may still confirm later; tx_hash is kept so the
    caller can keep watching it. `reason` is the low-level message and is only
    meant for logs.
    """

    operation: str
    status: TxStatus
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    gas_limit: Optional[int] = None
    gas_used: Optional[int] = None
    logs: Tuple[LedgerLog, ...] = ()
    failure_kind: Optional[TxFailureKind] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is TxStatus.CONFIRMED

    def logs_named(self, name: str) -> List[LedgerLog]:
        return [log for log in self.logs if log.name == name]


AccountListener = Callable[[Sequence[str]], None]


class AccountChangeSource(Protocol):
    """
    Host capability that pushes account changes (e.g. a wallet's
    accountsChanged notification).
    """

    def subscribe(self, listener: AccountListener) -> None: ...


class LedgerGateway(Protocol):
    @property
    def account(self) -> str: ...

    def switch_account(self, account: str) -> None: ...

    def is_connected(self) -> bool: ...

    def submit(self, operation: str, args: Sequence[object], value: int = 0) -> TxOutcome: ...

    def await_receipt(self, operation: str, tx_hash: str, timeout: Optional[float] = None) -> TxOutcome: ...

    def get_product_count(self) -> int: ...

    def get_product_details(self, product_id: int) -> Product: ...

    def get_all_product_ids(self) -> List[int]: ...


__all__ = [
    "HARVEST_PRODUCT",
    "UPDATE_STATUS",
    "PUT_PRODUCT_FOR_SALE",
    "PURCHASE_PRODUCT",
    "AUTHORIZE_USER",
    "MUTATING_OPERATIONS",
    "UINT256_MAX",
    "AccessorUnavailable",
    "TxStatus",
    "TxOutcome",
    "AccountChangeSource",
    "LedgerGateway",
]
