"""
Sale repository (mirror persistence).

This module provides *only* persistence operations for SaleRecord. It does not
enforce business rules (price matching, single buyer); the ledger does. It
inserts listings, completes them on purchase, and fetches them.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from domain.records import SaleRecord, SaleStatus
from domain.time import parse_utc_datetime, utc_now
from repositories.client import SALES_TABLE, check_response

_SALE_COLUMNS = (
    "product_id",
    "blockchain_product_id",
    "seller_address",
    "buyer_address",
    "sale_price_wei",
    "sale_status",
    "transaction_hash",
)


def _row_to_sale(row: Mapping[str, Any]) -> SaleRecord:
    """Convert a Supabase row into a SaleRecord."""

    product_id = row.get("blockchain_product_id") or row["product_id"]
    return SaleRecord(
        product_id=int(product_id),
        seller=str(row.get("seller_address") or ""),
        price_amount=int(row.get("sale_price_wei") or 0),
        sale_status=SaleStatus(str(row.get("sale_status") or SaleStatus.LISTED.value)),
        buyer=row.get("buyer_address"),
        source_tx_reference=row.get("transaction_hash"),
        created_at=parse_utc_datetime(row["created_at"]) if row.get("created_at") else utc_now(),
        updated_at=parse_utc_datetime(row["updated_at"]) if row.get("updated_at") else None,
        record_id=row.get("id"),
    )


def insert_sale_row(client: Any, fields: Mapping[str, Any]) -> dict[str, Any]:
    """Insert a raw sale row (REST surface)."""

    now = utc_now().isoformat()
    payload = {k: v for k, v in fields.items() if k in _SALE_COLUMNS}
    payload.setdefault("blockchain_product_id", payload.get("product_id"))
    payload.setdefault("sale_status", SaleStatus.LISTED.value)
    payload["created_at"] = now
    payload["updated_at"] = now

    response = client.table(SALES_TABLE).insert(payload).execute()
    rows = check_response(response, "store product sale")
    return rows[0] if rows else payload


def record_sale(client: Any, sale: SaleRecord) -> SaleRecord:
    """
    Insert a new listing.

    Returns:
        SaleRecord as stored (record_id filled in when Supabase returns it)
    """

    row = insert_sale_row(
        client,
        {
            "product_id": sale.product_id,
            "blockchain_product_id": sale.product_id,
            "seller_address": sale.seller,
            "buyer_address": sale.buyer,
            "sale_price_wei": str(sale.price_amount),
            "sale_status": sale.sale_status.value,
            "transaction_hash": sale.source_tx_reference,
        },
    )
    return _row_to_sale({**row, "created_at": row.get("created_at") or sale.created_at})


def get_open_listing(client: Any, product_id: int) -> Optional[SaleRecord]:
    """Most recent 'listed' sale of a product, or None."""

    response = (
        client.table(SALES_TABLE)
        .select("*")
        .eq("blockchain_product_id", product_id)
        .eq("sale_status", SaleStatus.LISTED.value)
        .order("created_at", desc=True)
        .limit(1)
        .execute()
    )
    rows = check_response(response, "get open listing")
    if not rows:
        return None
    return _row_to_sale(rows[0])


def complete_sale(client: Any, sale: SaleRecord) -> SaleRecord:
    """
    Write buyer and completed status onto an existing listing row.

    The sale must already carry record_id (it was read from the mirror).
    """

    if sale.record_id is None:
        raise ValueError("complete_sale requires a stored SaleRecord")

    payload: dict[str, Any] = {
        "buyer_address": sale.buyer,
        "sale_status": sale.sale_status.value,
        "updated_at": (sale.updated_at or utc_now()).isoformat(),
    }
    if sale.source_tx_reference is not None:
        payload["transaction_hash"] = sale.source_tx_reference

    response = (
        client.table(SALES_TABLE)
        .update(payload)
        .eq("id", sale.record_id)
        .execute()
    )
    check_response(response, "complete sale")
    return sale


def list_sales_by_product(client: Any, product_id: int) -> List[SaleRecord]:
    """
    Retrieve all sale records for a given product.

    Returns:
        List[SaleRecord] (possibly empty), oldest first
    """

    response = (
        client.table(SALES_TABLE)
        .select("*")
        .eq("blockchain_product_id", product_id)
        .order("created_at")
        .execute()
    )
    rows = check_response(response, "list sales")
    return [_row_to_sale(row) for row in rows]


__all__ = [
    "insert_sale_row",
    "record_sale",
    "get_open_listing",
    "complete_sale",
    "list_sales_by_product",
]
