"""
Product repository (mirror persistence).

This module provides *only* persistence operations for the mirrored product
rows. The mirror row for a product is advisory: the ledger is authoritative,
and concurrent writers are last-write-wins.

Rows are keyed by `blockchain_product_id` (the ledger-assigned id).
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from domain.product import Product, ProductStatus, ZERO_ADDRESS
from domain.time import utc_now
from repositories.client import PRODUCTS_TABLE, check_response

logger = logging.getLogger(__name__)

# Columns a caller may set through insert/update. Anything else is dropped.
PRODUCT_COLUMNS = (
    "blockchain_product_id",
    "product_name",
    "farmer_name",
    "farm_location",
    "harvest_date",
    "blockchain_owner_address",
    "current_status",
    "price_wei",
    "is_for_sale",
)


def _clean(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if k in PRODUCT_COLUMNS}


def product_to_row(product: Product) -> dict[str, Any]:
    """Serialize a Product into mirror columns."""

    return {
        "blockchain_product_id": product.id,
        "product_name": product.product_name,
        "farmer_name": product.farmer_name,
        "farm_location": product.farm_location,
        "harvest_date": product.harvest_date,
        "blockchain_owner_address": product.owner,
        "current_status": int(product.status),
        "price_wei": str(product.price),
        "is_for_sale": product.is_for_sale,
    }


def row_to_product(row: Mapping[str, Any]) -> Optional[Product]:
    """
    Convert a mirror row into a mirror-sourced Product.

    Returns None for rows that cannot be tied to a ledger id.
    """

    raw_id = row.get("blockchain_product_id")
    if raw_id is None:
        return None
    try:
        product_id = int(raw_id)
        status = ProductStatus(int(row.get("current_status") or 0))
    except (TypeError, ValueError):
        logger.warning("Skipping malformed mirror product row: %r", row.get("id"))
        return None
    if product_id <= 0:
        return None

    return Product(
        id=product_id,
        product_name=str(row.get("product_name") or ""),
        farmer_name=str(row.get("farmer_name") or "Unknown Farmer"),
        farm_location=str(row.get("farm_location") or "Unknown Location"),
        harvest_date=int(row.get("harvest_date") or 0),
        status=status,
        owner=str(row.get("blockchain_owner_address") or ZERO_ADDRESS),
        price=int(row.get("price_wei") or 0),
        is_for_sale=bool(row.get("is_for_sale", False)),
        source="mirror",
    )


def insert_product(client: Any, fields: Mapping[str, Any]) -> dict[str, Any]:
    """
    Insert a product row.

    Args:
        client: Supabase client
        fields: Column values; unknown keys are ignored

    Returns:
        The stored row as returned by Supabase
    """

    now = utc_now().isoformat()
    payload = _clean(fields)
    payload["created_at"] = now
    payload["updated_at"] = now

    response = client.table(PRODUCTS_TABLE).insert(payload).execute()
    rows = check_response(response, "store product")
    return rows[0] if rows else payload


def update_product(client: Any, blockchain_product_id: int, fields: Mapping[str, Any]) -> Optional[dict[str, Any]]:
    """
    Patch mirrored fields of one product.

    Returns:
        The updated row, or None if no row matched
    """

    payload = _clean(fields)
    payload.pop("blockchain_product_id", None)
    payload["updated_at"] = utc_now().isoformat()

    response = (
        client.table(PRODUCTS_TABLE)
        .update(payload)
        .eq("blockchain_product_id", blockchain_product_id)
        .execute()
    )
    rows = check_response(response, "update product")
    return rows[0] if rows else None


def get_product_row(client: Any, blockchain_product_id: int) -> Optional[dict[str, Any]]:
    response = (
        client.table(PRODUCTS_TABLE)
        .select("*")
        .eq("blockchain_product_id", blockchain_product_id)
        .limit(1)
        .execute()
    )
    rows = check_response(response, "fetch product")
    return rows[0] if rows else None


def list_product_rows(client: Any) -> List[dict[str, Any]]:
    """All mirrored product rows, newest first."""

    response = (
        client.table(PRODUCTS_TABLE)
        .select("*")
        .order("created_at", desc=True)
        .execute()
    )
    return check_response(response, "fetch products")


def next_product_id(client: Any) -> int:
    """
    Next free blockchain_product_id in the mirror (max + 1, starting at 1).

    Only used when a caller stores a product without a ledger id.
    """

    response = (
        client.table(PRODUCTS_TABLE)
        .select("blockchain_product_id")
        .order("blockchain_product_id", desc=True)
        .limit(1)
        .execute()
    )
    rows = check_response(response, "get next product id")
    if rows and rows[0].get("blockchain_product_id") is not None:
        return int(rows[0]["blockchain_product_id"]) + 1
    return 1


def ping(client: Any, table: str = PRODUCTS_TABLE) -> None:
    """Cheapest possible query; raises if the table cannot be reached."""

    response = client.table(table).select("id").limit(1).execute()
    check_response(response, f"reach {table}")


__all__ = [
    "PRODUCT_COLUMNS",
    "product_to_row",
    "row_to_product",
    "insert_product",
    "update_product",
    "get_product_row",
    "list_product_rows",
    "next_product_id",
    "ping",
]
