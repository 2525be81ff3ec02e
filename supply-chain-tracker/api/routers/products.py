"""
Mirror Products API Endpoints.

Direct read/write access to the mirrored `products` table. These endpoints do
not touch the ledger; ledger intents live under /api/ledger.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends

from api.dependencies import get_db
from api.models import ApiResponse, ProductCreate, ProductUpdate
from api.responses import failure, missing_fields, ok
from repositories import product_repository
from services.mirror_sync import MIRROR_ERRORS

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/products",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Store Product",
    description="Store a product row in the mirror database."
)
def create_product(request: ProductCreate, db: Any = Depends(get_db)):
    """
    Store a product in the mirror.

    `blockchain_product_id` should be the ledger id. When it is omitted the
    next free mirror id (max + 1) is used.
    """
    if request.product_name is None or not request.product_name.strip():
        return missing_fields("product_name")

    try:
        fields = request.model_dump()
        if fields.get("blockchain_product_id") is None:
            fields["blockchain_product_id"] = product_repository.next_product_id(db)
        fields["price_wei"] = str(fields.get("price_wei") or 0)
        row = product_repository.insert_product(db, fields)
    except MIRROR_ERRORS as e:
        logger.error("Error storing product: %s", e)
        return failure(
            500,
            "Failed to store product",
            error=str(e),
            title="Storage Failed",
            popup_message="Failed to store product in database.",
        )

    return ok(
        "Product stored successfully in database!",
        row,
        productId=fields["blockchain_product_id"],
        title="Product Stored",
        popup_message="Product information has been successfully saved in the database.",
    )


@router.get(
    "/products",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="List Mirrored Products",
)
def list_products(db: Any = Depends(get_db)):
    """All mirrored product rows, newest first."""
    try:
        rows = product_repository.list_product_rows(db)
    except MIRROR_ERRORS as e:
        logger.error("Error fetching products: %s", e)
        return failure(500, "Failed to fetch products", error=str(e), title="Load Failed")

    return ok(data=rows, count=len(rows))


@router.get(
    "/products/{product_id}",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Get Mirrored Product",
)
def get_product(product_id: int, db: Any = Depends(get_db)):
    try:
        row = product_repository.get_product_row(db, product_id)
    except MIRROR_ERRORS as e:
        logger.error("Error fetching product %d: %s", product_id, e)
        return failure(500, "Failed to fetch product", error=str(e), title="Load Failed")

    if row is None:
        return failure(404, "Product not found", title="Not Found")
    return ok(data=row)


@router.put(
    "/products/{product_id}",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Update Mirrored Product",
)
def update_product(product_id: int, request: ProductUpdate, db: Any = Depends(get_db)):
    """Patch the mirrored fields present in the body."""
    fields = request.model_dump(exclude_unset=True)
    if "price_wei" in fields and fields["price_wei"] is not None:
        fields["price_wei"] = str(fields["price_wei"])

    try:
        row = product_repository.update_product(db, product_id, fields)
    except MIRROR_ERRORS as e:
        logger.error("Error updating product %d: %s", product_id, e)
        return failure(
            500,
            "Failed to update product",
            error=str(e),
            title="Update Failed",
            popup_message="Failed to update product in database.",
        )

    if row is None:
        return failure(404, "Product not found", title="Not Found")
    return ok(
        "Product updated successfully in database!",
        row,
        title="Product Updated",
        popup_message="Product information has been successfully updated in the database.",
    )
