"""
Domain: error taxonomy.

Every failure the system reports resolves to one of these kinds plus a short
user-facing message. The low-level message (node error text, Supabase
error payload) is kept in `detail` for logging only and is never shown to
users.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    VALIDATION = "ValidationError"
    AUTHORIZATION = "AuthorizationError"
    NOT_FOUND = "NotFoundError"
    REMOTE_UNAVAILABLE = "RemoteUnavailable"
    TRANSACTION_FAILURE = "TransactionFailure"
    SYNC_DIVERGENCE = "SyncDivergence"


class TxFailureKind(str, Enum):
    """Closed set of transaction failure classifications."""

    USER_REJECTED = "UserRejected"
    INSUFFICIENT_FUNDS = "InsufficientFunds"
    GAS_FAILURE = "GasFailure"
    REVERTED_BY_CONTRACT = "RevertedByContract"
    TIMEOUT = "Timeout"
    UNKNOWN = "Unknown"


_TX_MESSAGES = {
    TxFailureKind.USER_REJECTED: "Transaction was rejected by the signer.",
    TxFailureKind.INSUFFICIENT_FUNDS: "Insufficient funds for transaction.",
    TxFailureKind.GAS_FAILURE: "Gas estimation failed. Please try again.",
    TxFailureKind.REVERTED_BY_CONTRACT: "Transaction was reverted by the contract.",
    TxFailureKind.TIMEOUT: (
        "Transaction is taking longer than expected. It may still be processed."
    ),
    TxFailureKind.UNKNOWN: "Transaction failed.",
}


class SupplyChainError(Exception):
    """Base class for all reported failures."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, user_message: str, *, detail: Optional[str] = None) -> None:
        super().__init__(user_message)
        self.user_message = user_message
        self.detail = detail

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.user_message}


class ValidationError(SupplyChainError):
    """Missing or malformed caller input, resolved before any remote call."""

    kind = ErrorKind.VALIDATION


class AuthorizationError(SupplyChainError):
    """Caller is not permitted to perform the operation (ledger-enforced)."""

    kind = ErrorKind.AUTHORIZATION


class NotFoundError(SupplyChainError):
    kind = ErrorKind.NOT_FOUND


class RemoteUnavailable(SupplyChainError):
    """The chain node or the mirror store could not be reached."""

    kind = ErrorKind.REMOTE_UNAVAILABLE


class TransactionFailure(SupplyChainError):
    """A submitted transaction was reverted, rejected or timed out."""

    kind = ErrorKind.TRANSACTION_FAILURE

    def __init__(
        self,
        failure_kind: TxFailureKind,
        user_message: Optional[str] = None,
        *,
        detail: Optional[str] = None,
        tx_hash: Optional[str] = None,
    ) -> None:
        super().__init__(user_message or _TX_MESSAGES[failure_kind], detail=detail)
        self.failure_kind = failure_kind
        self.tx_hash = tx_hash

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["failure_kind"] = self.failure_kind.value
        if self.tx_hash:
            payload["tx_hash"] = self.tx_hash
        return payload


def tx_failure_message(kind: TxFailureKind) -> str:
    return _TX_MESSAGES[kind]


@dataclass(frozen=True, slots=True)
class SyncDivergence:
    """
    Warning: the ledger operation confirmed but the mirror write did not land.

    Not raised. Returned alongside a successful lifecycle result so the caller
    can surface it and an operator can reconcile manually.
    """

    operation: str
    product_id: Optional[int]
    reason: str
    tx_hash: Optional[str] = None
    kind: ErrorKind = ErrorKind.SYNC_DIVERGENCE

    @property
    def user_message(self) -> str:
        return "Blockchain transaction succeeded but database sync failed."

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "operation": self.operation,
            "product_id": self.product_id,
            "message": self.user_message,
            "tx_hash": self.tx_hash,
        }
