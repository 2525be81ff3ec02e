"""
In-process ledger gateway.

Presents a ProductLedger through the same gateway interface as ChainClient, so
the API can run without a chain node (CHAIN_RPC_URL unset) and the test-suite
can drive the full lifecycle. Operations confirm immediately; each gets a
synthetic transaction hash and block number.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Sequence
from uuid import uuid4

from domain.errors import NotFoundError, TxFailureKind
from domain.ledger import LedgerError, LedgerLog, ProductLedger
from domain.product import Product
from services.ledger_gateway import (
    AUTHORIZE_USER,
    HARVEST_PRODUCT,
    PURCHASE_PRODUCT,
    PUT_PRODUCT_FOR_SALE,
    UINT256_MAX,
    UPDATE_STATUS,
    TxOutcome,
    TxStatus,
)

logger = logging.getLogger(__name__)

# Receipts kept for await_receipt; the oldest are dropped first.
RECEIPT_HISTORY = 256


class LocalLedgerGateway:
    def __init__(self, ledger: ProductLedger, account: Optional[str] = None) -> None:
        self.ledger = ledger
        self._account = account or ledger.contract_owner
        self._blocks = itertools.count(1)
        self._receipts: "OrderedDict[str, TxOutcome]" = OrderedDict()
        # The ledger is not thread-safe; a node serializes transactions too.
        self._lock = threading.Lock()

    @property
    def account(self) -> str:
        return self._account

    def switch_account(self, account: str) -> None:
        self._account = account

    def is_connected(self) -> bool:
        return True

    def _operation(self, operation: str, args: Sequence[object], value: int) -> Callable[[], List[LedgerLog]]:
        sender = self._account
        ops: Dict[str, Callable[[], List[LedgerLog]]] = {
            HARVEST_PRODUCT: lambda: self.ledger.harvest_product(sender, *args),
            UPDATE_STATUS: lambda: self.ledger.update_status(sender, *args),
            PUT_PRODUCT_FOR_SALE: lambda: self.ledger.put_product_for_sale(sender, *args),
            PURCHASE_PRODUCT: lambda: self.ledger.purchase_product(sender, *args, value),
            AUTHORIZE_USER: lambda: self.ledger.authorize_user(sender, *args),
        }
        if operation not in ops:
            raise ValueError(f"Unknown ledger operation: {operation}")
        return ops[operation]

    def submit(self, operation: str, args: Sequence[object], value: int = 0) -> TxOutcome:
        out_of_range = [
            a for a in (*args, value)
            if isinstance(a, int) and not isinstance(a, bool) and not 0 <= a <= UINT256_MAX
        ]
        if out_of_range:
            # A node rejects these while encoding, before anything is sent.
            return TxOutcome(
                operation,
                TxStatus.FAILED,
                failure_kind=TxFailureKind.UNKNOWN,
                reason=f"{out_of_range[0]} is not compatible with type uint256",
            )

        apply = self._operation(operation, args, value)
        tx_hash = "0x" + uuid4().hex + uuid4().hex

        with self._lock:
            block_number = next(self._blocks)
            try:
                logs = apply()
            except LedgerError as e:
                logger.info("Local ledger reverted %s: %s", operation, e.reason)
                outcome = TxOutcome(
                    operation,
                    TxStatus.FAILED,
                    tx_hash=tx_hash,
                    block_number=block_number,
                    failure_kind=TxFailureKind.REVERTED_BY_CONTRACT,
                    reason=f"execution reverted: {e.reason}",
                )
            else:
                outcome = TxOutcome(
                    operation,
                    TxStatus.CONFIRMED,
                    tx_hash=tx_hash,
                    block_number=block_number,
                    logs=tuple(logs),
                )
            self._receipts[tx_hash] = outcome
            while len(self._receipts) > RECEIPT_HISTORY:
                self._receipts.popitem(last=False)
        return outcome

    def await_receipt(self, operation: str, tx_hash: str, timeout: Optional[float] = None) -> TxOutcome:
        outcome = self._receipts.get(tx_hash)
        if outcome is None:
            return TxOutcome(
                operation,
                TxStatus.FAILED,
                tx_hash=tx_hash,
                failure_kind=TxFailureKind.UNKNOWN,
                reason="Unknown transaction",
            )
        return outcome

    def get_product_count(self) -> int:
        return self.ledger.get_product_count()

    def get_all_product_ids(self) -> List[int]:
        return self.ledger.get_all_product_ids()

    def get_product_details(self, product_id: int) -> Product:
        try:
            return self.ledger.get_product_details(int(product_id))
        except LedgerError as e:
            raise NotFoundError(f"Product {product_id} not found.", detail=e.reason) from e


__all__ = ["LocalLedgerGateway"]
