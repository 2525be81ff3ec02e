"""
Status history repository (mirror persistence).

Append-only: rows are inserted and read, never updated or deleted. Concurrent
appends from different confirmations are safe because each confirmed change is
its own row.
"""

from __future__ import annotations

from typing import Any, List, Mapping

from domain.product import ProductStatus
from domain.records import StatusChangeRecord
from domain.time import parse_utc_datetime, utc_now
from repositories.client import STATUS_HISTORY_TABLE, check_response

_STATUS_COLUMNS = (
    "product_id",
    "blockchain_product_id",
    "old_status",
    "new_status",
    "changed_by",
    "transaction_hash",
)


def _row_to_record(row: Mapping[str, Any]) -> StatusChangeRecord:
    product_id = row.get("blockchain_product_id") or row["product_id"]
    return StatusChangeRecord(
        product_id=int(product_id),
        old_status=ProductStatus(int(row.get("old_status") or 0)),
        new_status=ProductStatus(int(row["new_status"])),
        changed_by=str(row.get("changed_by") or ""),
        source_tx_reference=row.get("transaction_hash"),
        timestamp=parse_utc_datetime(row["created_at"]) if row.get("created_at") else utc_now(),
        record_id=row.get("id"),
    )


def insert_status_row(client: Any, fields: Mapping[str, Any]) -> dict[str, Any]:
    """Insert a raw status-history row (REST surface)."""

    payload = {k: v for k, v in fields.items() if k in _STATUS_COLUMNS}
    payload.setdefault("blockchain_product_id", payload.get("product_id"))
    payload["created_at"] = utc_now().isoformat()

    response = client.table(STATUS_HISTORY_TABLE).insert(payload).execute()
    rows = check_response(response, "store product status history")
    return rows[0] if rows else payload


def record_status_change(client: Any, record: StatusChangeRecord) -> StatusChangeRecord:
    """
    Append one status change.

    Returns:
        The stored StatusChangeRecord (with record_id when Supabase returns it)
    """

    row = insert_status_row(
        client,
        {
            "product_id": record.product_id,
            "blockchain_product_id": record.product_id,
            "old_status": int(record.old_status),
            "new_status": int(record.new_status),
            "changed_by": record.changed_by,
            "transaction_hash": record.source_tx_reference,
        },
    )
    return StatusChangeRecord(
        product_id=record.product_id,
        old_status=record.old_status,
        new_status=record.new_status,
        changed_by=record.changed_by,
        source_tx_reference=record.source_tx_reference,
        timestamp=record.timestamp,
        record_id=row.get("id"),
    )


def list_status_history(client: Any, product_id: int) -> List[StatusChangeRecord]:
    """Status history of one product, oldest first."""

    response = (
        client.table(STATUS_HISTORY_TABLE)
        .select("*")
        .eq("blockchain_product_id", product_id)
        .order("created_at")
        .execute()
    )
    rows = check_response(response, "list status history")
    return [_row_to_record(row) for row in rows]


__all__ = [
    "insert_status_row",
    "record_status_change",
    "list_status_history",
]
