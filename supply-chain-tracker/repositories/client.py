"""
Supabase client initialization.

This module contains *only* the database connection setup for the mirror store
and exposes `get_supabase()` for the API and the mirror synchronizer.

The client is created lazily: the mirror is best-effort, so a missing or
unreachable database must not prevent the ledger side from starting.

Environment variables required:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from supabase import Client, create_client  # type: ignore[import-not-found]

# Load environment variables from the supply-chain-tracker/.env file
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Mirror table names. Keep these aligned with the database schema.
PRODUCTS_TABLE: str = "products"
STATUS_HISTORY_TABLE: str = "product_status_history"
SALES_TABLE: str = "product_sales"
EVENTS_TABLE: str = "blockchain_events"

MIRROR_TABLES = (EVENTS_TABLE, SALES_TABLE, PRODUCTS_TABLE, STATUS_HISTORY_TABLE)


class MirrorNotConfigured(RuntimeError):
    """SUPABASE_URL / SUPABASE_KEY are not set."""


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Return the process-wide Supabase client, creating it on first use.

    Raises:
        MirrorNotConfigured: if the credentials are missing.
    """

    # Read credentials from the environment to avoid hard-coding secrets in code.
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_KEY")

    if not url:
        raise MirrorNotConfigured(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )
    if not key:
        raise MirrorNotConfigured(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    return create_client(url, key)


def check_response(response: object, action: str) -> list:
    """
    Raise RuntimeError if a Supabase response carries an error, else return rows.
    """

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    return getattr(response, "data", None) or []


__all__ = [
    "get_supabase",
    "check_response",
    "MirrorNotConfigured",
    "PRODUCTS_TABLE",
    "STATUS_HISTORY_TABLE",
    "SALES_TABLE",
    "EVENTS_TABLE",
    "MIRROR_TABLES",
]
