"""
Chain client adapter (web3).

Wraps connection, account and contract-call plumbing for the deployed
AgriculturalSupplyChain contract:
- Gas: estimate, then pad by a fixed percentage (default +20%). If estimation
  fails, a conservative per-operation budget is used instead, padded the same
  way.
- Submission: transact from the current account, then wait for a terminal
  receipt for at most `tx_timeout` seconds (default 180). A timeout is reported
  as its own outcome and asserts nothing about ledger truth.
- Failures: translated into the closed TxFailureKind set. Every submission
  returns a TxOutcome; nothing is swallowed.

Signing is external: the node (or a wallet-backed provider) signs for the
configured account.

State lives in an explicit ChainConnection owned by the client. The only
mutation after construction is an account switch, which drops the cached
contract handle.

Environment variables (see ChainConnection.from_env):
- CHAIN_RPC_URL: JSON-RPC endpoint of the node
- CONTRACT_ADDRESS: deployed contract address
- CHAIN_ACCOUNT: sending account (defaults to the node's first account)
- TX_TIMEOUT_SECONDS: receipt wait bound (default 180)
- GAS_BUFFER_PERCENT: gas padding (default 20)
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception
from web3.logs import DISCARD

from domain.errors import NotFoundError, RemoteUnavailable, TxFailureKind
from domain.ledger import LedgerLog
from domain.product import Product, product_from_details
from services.contract_abi import CONTRACT_ABI, CONTRACT_EVENTS
from services.ledger_gateway import (
    AUTHORIZE_USER,
    HARVEST_PRODUCT,
    PURCHASE_PRODUCT,
    PUT_PRODUCT_FOR_SALE,
    UPDATE_STATUS,
    AccessorUnavailable,
    AccountChangeSource,
    TxOutcome,
    TxStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_TX_TIMEOUT_SECONDS = 180.0
DEFAULT_GAS_BUFFER_PERCENT = 20

# Budgets used when gas estimation itself fails.
FALLBACK_GAS: Dict[str, int] = {
    HARVEST_PRODUCT: 300_000,
    UPDATE_STATUS: 200_000,
    PUT_PRODUCT_FOR_SALE: 200_000,
    PURCHASE_PRODUCT: 250_000,
    AUTHORIZE_USER: 200_000,
}
DEFAULT_FALLBACK_GAS = 300_000

_TRANSPORT_ERRORS = (RequestException, OSError)


def pad_gas(estimate: int, buffer_percent: int = DEFAULT_GAS_BUFFER_PERCENT) -> int:
    """Apply the proportional safety margin using integer arithmetic."""

    return int(estimate) * (100 + buffer_percent) // 100


def classify_failure(exc: BaseException) -> TxFailureKind:
    """
    Map a low-level web3/provider exception to a TxFailureKind.

    Signer rejections and insufficient funds are checked before reverts because
    providers often wrap them in generic RPC errors.
    """

    if isinstance(exc, TimeExhausted):
        return TxFailureKind.TIMEOUT

    message = str(exc).lower()
    if "user denied" in message or "user rejected" in message:
        return TxFailureKind.USER_REJECTED
    if "insufficient funds" in message:
        return TxFailureKind.INSUFFICIENT_FUNDS
    if isinstance(exc, ContractLogicError) or "revert" in message:
        return TxFailureKind.REVERTED_BY_CONTRACT
    if "gas" in message:
        return TxFailureKind.GAS_FAILURE
    return TxFailureKind.UNKNOWN


def _hex(tx_hash: Any) -> str:
    if isinstance(tx_hash, str):
        return tx_hash
    return Web3.to_hex(tx_hash)


@dataclass
class ChainConnection:
    """Explicit connection context: one per process, shared by all callers."""

    w3: Any
    contract_address: str
    abi: List[dict] = field(default_factory=lambda: CONTRACT_ABI)
    account: Optional[str] = None
    tx_timeout: float = DEFAULT_TX_TIMEOUT_SECONDS
    gas_buffer_percent: int = DEFAULT_GAS_BUFFER_PERCENT
    poll_latency: float = 0.5

    @classmethod
    def from_env(cls) -> "ChainConnection":
        rpc_url = os.getenv("CHAIN_RPC_URL")
        contract_address = os.getenv("CONTRACT_ADDRESS")
        if not rpc_url:
            raise RuntimeError(
                "Missing environment variable: CHAIN_RPC_URL. "
                "Set CHAIN_RPC_URL to your node's JSON-RPC endpoint."
            )
        if not contract_address:
            raise RuntimeError(
                "Missing environment variable: CONTRACT_ADDRESS. "
                "Set CONTRACT_ADDRESS to the deployed contract address."
            )

        w3 = Web3(Web3.HTTPProvider(rpc_url))
        account = os.getenv("CHAIN_ACCOUNT")
        return cls(
            w3=w3,
            contract_address=Web3.to_checksum_address(contract_address),
            account=Web3.to_checksum_address(account) if account else None,
            tx_timeout=float(os.getenv("TX_TIMEOUT_SECONDS", DEFAULT_TX_TIMEOUT_SECONDS)),
            gas_buffer_percent=int(os.getenv("GAS_BUFFER_PERCENT", DEFAULT_GAS_BUFFER_PERCENT)),
        )


class ChainClient:
    def __init__(self, connection: ChainConnection) -> None:
        self.connection = connection
        self._contract: Any = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Connection and account
    # ------------------------------------------------------------------

    @property
    def account(self) -> str:
        if self.connection.account is None:
            try:
                accounts = self.connection.w3.eth.accounts
            except _TRANSPORT_ERRORS as e:
                raise RemoteUnavailable("Cannot reach the blockchain node.", detail=str(e)) from e
            if not accounts:
                raise RemoteUnavailable("The blockchain node exposes no accounts.")
            self.connection.account = accounts[0]
        return self.connection.account

    def switch_account(self, account: str) -> None:
        with self._lock:
            if account == self.connection.account:
                return
            logger.info("Chain account changed to %s", account)
            self.connection.account = account
            self._contract = None

    def watch_accounts(self, source: AccountChangeSource) -> None:
        """Follow account changes pushed by the host environment."""

        def _on_change(accounts: Sequence[str]) -> None:
            if accounts:
                self.switch_account(accounts[0])

        source.subscribe(_on_change)

    def is_connected(self) -> bool:
        try:
            return bool(self.connection.w3.is_connected())
        except Exception:
            logger.warning("Chain health check failed", exc_info=True)
            return False

    @property
    def contract(self) -> Any:
        with self._lock:
            if self._contract is None:
                self._contract = self.connection.w3.eth.contract(
                    address=self.connection.contract_address,
                    abi=self.connection.abi,
                )
            return self._contract

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def estimate_gas(self, operation: str, fn: Any, tx_params: Dict[str, Any]) -> int:
        try:
            estimate = int(fn.estimate_gas(tx_params))
        except Exception as e:
            estimate = FALLBACK_GAS.get(operation, DEFAULT_FALLBACK_GAS)
            logger.warning("Gas estimation failed for %s, using default %d: %s", operation, estimate, e)
        return pad_gas(estimate, self.connection.gas_buffer_percent)

    def submit(self, operation: str, args: Sequence[object], value: int = 0) -> TxOutcome:
        try:
            sender = self.account
        except RemoteUnavailable as e:
            return TxOutcome(operation, TxStatus.FAILED, failure_kind=TxFailureKind.UNKNOWN, reason=e.detail or str(e))

        # Argument encoding errors (e.g. MismatchedABI for out-of-range uints) surface here.
        try:
            fn = self.contract.functions[operation](*args)
        except Exception as e:
            kind = classify_failure(e)
            logger.error("Could not build %s%r (%s): %s", operation, tuple(args), kind.value, e)
            return TxOutcome(operation, TxStatus.FAILED, failure_kind=kind, reason=str(e))

        tx_params: Dict[str, Any] = {"from": sender}
        if value:
            tx_params["value"] = int(value)

        gas = self.estimate_gas(operation, fn, tx_params)
        logger.info("Sending %s%r from %s (gas=%d, value=%d)", operation, tuple(args), sender, gas, value)

        try:
            tx_hash = fn.transact({**tx_params, "gas": gas})
        except Exception as e:
            kind = classify_failure(e)
            logger.error("Transaction %s failed before broadcast (%s): %s", operation, kind.value, e)
            return TxOutcome(operation, TxStatus.FAILED, gas_limit=gas, failure_kind=kind, reason=str(e))

        return self.await_receipt(operation, _hex(tx_hash), gas_limit=gas)

    def await_receipt(
        self,
        operation: str,
        tx_hash: str,
        timeout: Optional[float] = None,
        gas_limit: Optional[int] = None,
    ) -> TxOutcome:
        """Block until `tx_hash` reaches a terminal state or the wait times out."""

        wait = self.connection.tx_timeout if timeout is None else timeout
        try:
            receipt = self.connection.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=wait, poll_latency=self.connection.poll_latency
            )
        except TimeExhausted:
            logger.warning("Transaction %s (%s) not confirmed after %.0fs", tx_hash, operation, wait)
            return TxOutcome(
                operation,
                TxStatus.TIMEOUT,
                tx_hash=tx_hash,
                gas_limit=gas_limit,
                failure_kind=TxFailureKind.TIMEOUT,
                reason=f"No receipt after {wait:.0f} seconds",
            )
        except Exception as e:
            kind = classify_failure(e)
            logger.error("Waiting for %s (%s) failed (%s): %s", tx_hash, operation, kind.value, e)
            return TxOutcome(operation, TxStatus.FAILED, tx_hash=tx_hash, gas_limit=gas_limit, failure_kind=kind, reason=str(e))

        block_number = receipt.get("blockNumber")
        gas_used = receipt.get("gasUsed")
        if receipt.get("status") == 0:
            logger.error("Transaction %s (%s) reverted in block %s", tx_hash, operation, block_number)
            return TxOutcome(
                operation,
                TxStatus.FAILED,
                tx_hash=tx_hash,
                block_number=block_number,
                gas_limit=gas_limit,
                gas_used=gas_used,
                failure_kind=TxFailureKind.REVERTED_BY_CONTRACT,
                reason="Transaction reverted",
            )

        logger.info("Transaction %s (%s) confirmed in block %s", tx_hash, operation, block_number)
        return TxOutcome(
            operation,
            TxStatus.CONFIRMED,
            tx_hash=tx_hash,
            block_number=block_number,
            gas_limit=gas_limit,
            gas_used=gas_used,
            logs=tuple(self._decode_logs(receipt)),
        )

    def _decode_logs(self, receipt: Any) -> List[LedgerLog]:
        logs: List[LedgerLog] = []
        for name in CONTRACT_EVENTS:
            event = getattr(self.contract.events, name)()
            for entry in event.process_receipt(receipt, errors=DISCARD):
                logs.append(LedgerLog(name, dict(entry["args"])))
        return logs

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _call(self, name: str, *args: object) -> Any:
        try:
            return self.contract.functions[name](*args).call()
        except _TRANSPORT_ERRORS as e:
            raise RemoteUnavailable("Cannot reach the blockchain node.", detail=str(e)) from e

    def get_product_count(self) -> int:
        try:
            return int(self._call("getProductCount"))
        except RemoteUnavailable:
            raise
        except Exception as e:
            raise AccessorUnavailable(f"getProductCount failed: {e}") from e

    def get_all_product_ids(self) -> List[int]:
        try:
            return [int(i) for i in self._call("getAllProductIds")]
        except RemoteUnavailable:
            raise
        except Exception as e:
            raise AccessorUnavailable(f"getAllProductIds failed: {e}") from e

    def get_product_details(self, product_id: int) -> Product:
        try:
            details = self._call("getProductDetails", int(product_id))
        except ContractLogicError as e:
            raise NotFoundError(f"Product {product_id} not found.", detail=str(e)) from e
        except (Web3Exception, ValueError) as e:
            # Undecodable output: wrong contract address or ABI, not a missing product.
            raise RemoteUnavailable("Cannot read products from the ledger contract.", detail=str(e)) from e

        product = product_from_details(details, expected_id=int(product_id))
        if product is None:
            raise NotFoundError(f"Product {product_id} not found.")
        return product


__all__ = [
    "ChainConnection",
    "ChainClient",
    "FALLBACK_GAS",
    "pad_gas",
    "classify_failure",
]
