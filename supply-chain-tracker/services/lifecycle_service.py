"""
Lifecycle service: caller intents -> ledger -> events -> mirror.

For every mutating intent:
1. Validate input. ValidationError is raised before any remote call.
2. Submit through the ledger gateway and wait for a terminal outcome.
3. On failure raise AuthorizationError (revert reason "Not authorized") or
   TransactionFailure(kind). Failures are never retried.
4. On confirmation build the DomainEvent and publish it on the EventBus. The
   mirror subscriber's result is inspected: a failed or skipped write becomes a
   SyncDivergence warning on the returned LifecycleResult. The ledger result
   stands regardless.

A TIMEOUT outcome raises TransactionFailure(TIMEOUT) but the transaction hash
keeps being watched by a background worker. If it confirms later, the event is
published then, so the mirror still catches up.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from web3 import Web3

from domain.errors import (
    AuthorizationError,
    SyncDivergence,
    TransactionFailure,
    TxFailureKind,
    ValidationError,
)
from domain.events import (
    DomainEvent,
    ProductHarvested,
    ProductListedForSale,
    ProductPurchased,
    StatusUpdated,
    describe,
)
from domain.product import ProductStatus
from services.event_bus import EventBus
from services.ledger_gateway import (
    AUTHORIZE_USER,
    HARVEST_PRODUCT,
    PURCHASE_PRODUCT,
    PUT_PRODUCT_FOR_SALE,
    UINT256_MAX,
    UPDATE_STATUS,
    LedgerGateway,
    TxOutcome,
    TxStatus,
)
from services.mirror_sync import MIRROR_SUBSCRIBER, SyncResult

logger = logging.getLogger(__name__)

EventBuilder = Callable[[TxOutcome], DomainEvent]


@dataclass(frozen=True, slots=True)
class LifecycleResult:
    """
    Confirmed ledger operation.

    event: the published DomainEvent (None for operations without one)
    warnings: SyncDivergence values for mirror writes that did not land
    """

    operation: str
    product_id: Optional[int]
    tx_hash: Optional[str]
    block_number: Optional[int]
    event: Optional[DomainEvent] = None
    warnings: Tuple[SyncDivergence, ...] = ()

    @property
    def synced(self) -> bool:
        return not self.warnings


def _require_text(field: str, value: Optional[str]) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required.")
    return str(value).strip()


def _require_int(field: str, value: object, *, minimum: int, maximum: int = UINT256_MAX) -> int:
    if value is None:
        raise ValidationError(f"{field} is required.")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer.")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer.") from None
    if number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}.")
    if number > maximum:
        raise ValidationError(f"{field} is too large.")
    return number


def _require_address(field: str, value: Optional[str]) -> str:
    address = _require_text(field, value)
    if not Web3.is_address(address):
        raise ValidationError(f"{field} is not a valid account address.")
    return address


class SupplyChainService:
    def __init__(
        self,
        gateway: LedgerGateway,
        bus: EventBus,
        *,
        strict_status: bool = False,
        late_receipt_timeout: Optional[float] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self.gateway = gateway
        self.bus = bus
        self.strict_status = strict_status
        self.late_receipt_timeout = late_receipt_timeout
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="tx-watch")
        self._watching: Dict[str, Future] = {}

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    def harvest(
        self,
        product_name: Optional[str],
        farmer_name: Optional[str],
        farm_location: Optional[str],
        harvest_date: object,
    ) -> LifecycleResult:
        name = _require_text("product_name", product_name)
        farmer = _require_text("farmer_name", farmer_name)
        location = _require_text("farm_location", farm_location)
        harvested_at = _require_int("harvest_date", harvest_date, minimum=0)

        def build(outcome: TxOutcome) -> DomainEvent:
            logs = outcome.logs_named("ProductHarvested")
            if logs:
                product_id = int(logs[0].args["productId"])
                owner = str(logs[0].args.get("owner") or self.gateway.account)
            else:
                # No decodable log: the newest id is the one just allocated.
                product_id = self.gateway.get_product_count()
                owner = self.gateway.account
                logger.warning("No ProductHarvested log in %s, assuming product %d", outcome.tx_hash, product_id)
            return ProductHarvested(
                product_id=product_id,
                product_name=name,
                farmer_name=farmer,
                farm_location=location,
                harvest_date=harvested_at,
                owner=owner,
                tx_reference=outcome.tx_hash,
                block_number=outcome.block_number,
            )

        return self._execute(HARVEST_PRODUCT, [name, farmer, location, harvested_at], build)

    def update_status(self, product_id: object, new_status: object) -> LifecycleResult:
        pid = _require_int("product_id", product_id, minimum=1)
        if new_status is None:
            raise ValidationError("status is required.")
        try:
            status = ProductStatus.parse(new_status)
        except ValueError:
            raise ValidationError(f"Invalid status: {new_status!r}.") from None

        current = self.gateway.get_product_details(pid)
        sender = self.gateway.account
        if self.strict_status:
            if current.owner.lower() != sender.lower():
                raise AuthorizationError("Only the product owner can update its status.")
            if not current.status.can_advance_to(status):
                raise ValidationError(
                    f"Status can only move forward (currently {current.status.label})."
                )

        def build(outcome: TxOutcome) -> DomainEvent:
            return StatusUpdated(
                product_id=pid,
                old_status=current.status,
                new_status=status,
                changed_by=sender,
                tx_reference=outcome.tx_hash,
                block_number=outcome.block_number,
            )

        return self._execute(UPDATE_STATUS, [pid, int(status)], build, product_id=pid)

    def put_for_sale(self, product_id: object, price: object) -> LifecycleResult:
        pid = _require_int("product_id", product_id, minimum=1)
        amount = _require_int("price", price, minimum=1)
        current = self.gateway.get_product_details(pid)

        def build(outcome: TxOutcome) -> DomainEvent:
            return ProductListedForSale(
                product_id=pid,
                seller=current.owner,
                price=amount,
                old_status=current.status,
                tx_reference=outcome.tx_hash,
                block_number=outcome.block_number,
            )

        return self._execute(PUT_PRODUCT_FOR_SALE, [pid, amount], build, product_id=pid)

    def purchase(self, product_id: object, payment: object = None) -> LifecycleResult:
        """
        Buy a listed product. `payment` defaults to the listed price; the
        ledger rejects any other amount.

        Whether the product is for sale is ledger state, not caller input: an
        unlisted product is left to the ledger, which reverts the purchase
        (TransactionFailure, RevertedByContract).
        """

        pid = _require_int("product_id", product_id, minimum=1)
        current = self.gateway.get_product_details(pid)
        amount = current.price if payment is None else _require_int("payment", payment, minimum=0)
        buyer = self.gateway.account

        def build(outcome: TxOutcome) -> DomainEvent:
            return ProductPurchased(
                product_id=pid,
                seller=current.owner,
                buyer=buyer,
                price=amount,
                old_status=current.status,
                tx_reference=outcome.tx_hash,
                block_number=outcome.block_number,
            )

        return self._execute(PURCHASE_PRODUCT, [pid], build, product_id=pid, value=amount)

    def authorize_user(self, user: Optional[str]) -> LifecycleResult:
        address = _require_address("user", user)
        return self._execute(AUTHORIZE_USER, [address], None)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _execute(
        self,
        operation: str,
        args: Sequence[object],
        build: Optional[EventBuilder],
        *,
        product_id: Optional[int] = None,
        value: int = 0,
    ) -> LifecycleResult:
        outcome = self.gateway.submit(operation, args, value)

        if outcome.status is TxStatus.TIMEOUT and outcome.tx_hash and build is not None:
            self._watch(outcome, build)
        self._raise_for_outcome(outcome)

        event = build(outcome) if build is not None else None
        warnings = self._publish(event) if event is not None else ()
        return LifecycleResult(
            operation=operation,
            product_id=event.product_id if event is not None else product_id,
            tx_hash=outcome.tx_hash,
            block_number=outcome.block_number,
            event=event,
            warnings=warnings,
        )

    @staticmethod
    def _raise_for_outcome(outcome: TxOutcome) -> None:
        if outcome.ok:
            return

        reason = outcome.reason or ""
        kind = outcome.failure_kind or TxFailureKind.UNKNOWN
        if kind is TxFailureKind.REVERTED_BY_CONTRACT and "not authorized" in reason.lower():
            raise AuthorizationError(
                "You are not authorized to perform this action.", detail=reason
            )
        raise TransactionFailure(kind, detail=reason, tx_hash=outcome.tx_hash)

    def _publish(self, event: DomainEvent) -> Tuple[SyncDivergence, ...]:
        warnings: List[SyncDivergence] = []
        for delivery in self.bus.publish(event):
            if not delivery.ok:
                if delivery.subscriber == MIRROR_SUBSCRIBER:
                    warnings.append(
                        SyncDivergence("mirror", event.product_id, delivery.error or "error", event.tx_reference)
                    )
                continue
            result = delivery.result
            if isinstance(result, SyncResult) and not result.ok:
                warnings.append(
                    SyncDivergence(
                        result.operation,
                        event.product_id,
                        result.reason or result.state.value,
                        event.tx_reference,
                    )
                )

        for warning in warnings:
            logger.warning(
                "Sync divergence: %s for product %s (tx %s): %s",
                warning.operation,
                warning.product_id,
                warning.tx_hash,
                warning.reason,
            )
        return tuple(warnings)

    # ------------------------------------------------------------------
    # Late confirmations
    # ------------------------------------------------------------------

    def _watch(self, outcome: TxOutcome, build: EventBuilder) -> None:
        logger.info("Watching %s (%s) for a late confirmation", outcome.tx_hash, outcome.operation)
        future = self._executor.submit(self._await_late, outcome.operation, outcome.tx_hash, build)
        self._watching[outcome.tx_hash] = future
        future.add_done_callback(lambda _: self._watching.pop(outcome.tx_hash, None))

    def _await_late(self, operation: str, tx_hash: str, build: EventBuilder) -> Optional[LifecycleResult]:
        outcome = self.gateway.await_receipt(operation, tx_hash, timeout=self.late_receipt_timeout)
        if not outcome.ok:
            logger.warning(
                "Timed-out transaction %s (%s) did not confirm: %s",
                tx_hash,
                operation,
                outcome.reason,
            )
            return None

        event = build(outcome)
        logger.info("Late confirmation of %s", describe(event))
        return LifecycleResult(
            operation=operation,
            product_id=event.product_id,
            tx_hash=tx_hash,
            block_number=outcome.block_number,
            event=event,
            warnings=self._publish(event),
        )

    def pending(self) -> Dict[str, Future]:
        """Transactions still being watched after a timeout, by hash."""

        return dict(self._watching)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


__all__ = ["SupplyChainService", "LifecycleResult"]
