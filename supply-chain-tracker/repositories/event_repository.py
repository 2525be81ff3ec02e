"""
Blockchain event repository (mirror change-log).

One row per confirmed ledger event, with the event payload stored as JSON.
"""

from __future__ import annotations

from typing import Any, Mapping

from domain.records import ChainEventRecord
from domain.time import utc_now
from repositories.client import EVENTS_TABLE, check_response

_EVENT_COLUMNS = (
    "event_type",
    "product_id",
    "blockchain_product_id",
    "event_data",
    "transaction_hash",
    "block_number",
)


def insert_event_row(client: Any, fields: Mapping[str, Any]) -> dict[str, Any]:
    """Insert a raw event row (REST surface)."""

    payload = {k: v for k, v in fields.items() if k in _EVENT_COLUMNS}
    payload.setdefault("blockchain_product_id", payload.get("product_id"))
    payload["created_at"] = utc_now().isoformat()

    response = client.table(EVENTS_TABLE).insert(payload).execute()
    rows = check_response(response, "store blockchain event")
    return rows[0] if rows else payload


def record_event(client: Any, event: ChainEventRecord) -> ChainEventRecord:
    row = insert_event_row(
        client,
        {
            "event_type": event.event_type,
            "product_id": event.product_id,
            "blockchain_product_id": event.product_id,
            "event_data": dict(event.event_data),
            "transaction_hash": event.transaction_hash,
            "block_number": event.block_number,
        },
    )
    return ChainEventRecord(
        event_type=event.event_type,
        product_id=event.product_id,
        event_data=event.event_data,
        transaction_hash=event.transaction_hash,
        block_number=event.block_number,
        created_at=event.created_at,
        record_id=row.get("id"),
    )


__all__ = ["insert_event_row", "record_event"]
