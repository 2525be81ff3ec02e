"""
Mirror Records API Endpoints.

Raw writes into the sales, status-history and blockchain-events tables. The
ledger intents write these through the mirror synchronizer; these endpoints
let a client record them directly.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends

from api.dependencies import get_db
from api.models import ApiResponse, EventCreate, SaleCreate, StatusHistoryCreate
from api.responses import failure, missing_fields, ok
from repositories import event_repository, sale_repository, status_history_repository
from services.mirror_sync import MIRROR_ERRORS

logger = logging.getLogger(__name__)

router = APIRouter()


def _storage_failed(what: str, e: Exception):
    logger.error("Error storing %s: %s", what, e)
    return failure(
        500,
        f"Failed to store {what}",
        error=str(e),
        title="Storage Failed",
        popup_message=f"Failed to store {what} in database.",
    )


@router.post(
    "/sales",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Record Product Sale",
)
def create_sale(request: SaleCreate, db: Any = Depends(get_db)):
    if request.product_id is None or not request.seller_address:
        return missing_fields("product_id", "seller_address")

    fields = request.model_dump(exclude_none=True)
    if "sale_price_wei" in fields:
        fields["sale_price_wei"] = str(fields["sale_price_wei"])
    try:
        row = sale_repository.insert_sale_row(db, fields)
    except MIRROR_ERRORS as e:
        return _storage_failed("product sale", e)

    return ok(
        "Product sale stored successfully in database!",
        row,
        title="Sale Recorded",
        popup_message="Product sale has been successfully recorded in the database.",
    )


@router.post(
    "/status-history",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Record Status Change",
)
def create_status_history(request: StatusHistoryCreate, db: Any = Depends(get_db)):
    # Status 0 (Harvested) is a valid value, so only absence counts as missing.
    if request.product_id is None or request.new_status is None:
        return missing_fields("product_id", "new_status")

    try:
        row = status_history_repository.insert_status_row(db, request.model_dump(exclude_none=True))
    except MIRROR_ERRORS as e:
        return _storage_failed("status history", e)

    return ok(
        "Status history stored successfully in database!",
        row,
        title="Status Updated",
        popup_message="Product status change has been recorded in the database.",
    )


@router.post(
    "/events",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Record Blockchain Event",
)
def create_event(request: EventCreate, db: Any = Depends(get_db)):
    if not request.event_type or request.product_id is None:
        return missing_fields("event_type", "product_id")

    try:
        row = event_repository.insert_event_row(db, request.model_dump(exclude_none=True))
    except MIRROR_ERRORS as e:
        return _storage_failed("blockchain event", e)

    return ok(
        "Blockchain event stored successfully in database!",
        row,
        title="Event Stored",
        popup_message="Blockchain event has been successfully recorded in the database.",
    )
