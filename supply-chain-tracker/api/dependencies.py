"""
Process-wide collaborators, exposed as FastAPI dependencies.

One gateway, one event bus, one mirror synchronizer and one lifecycle service
per process. Tests replace them through `app.dependency_overrides`.

The ledger gateway is a ChainClient when CHAIN_RPC_URL is set, otherwise an
in-process ProductLedger owned by CHAIN_ACCOUNT (or a local development
account).
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any

from domain.errors import RemoteUnavailable
from domain.ledger import ProductLedger
from repositories.client import MirrorNotConfigured, get_supabase
from services.chain_client import DEFAULT_TX_TIMEOUT_SECONDS, ChainClient, ChainConnection
from services.event_bus import EventBus
from services.ledger_gateway import LedgerGateway
from services.lifecycle_service import SupplyChainService
from services.local_ledger import LocalLedgerGateway
from services.mirror_sync import MirrorSynchronizer
from services.product_reader import ProductReader

logger = logging.getLogger(__name__)

# First account of a local development node.
LOCAL_DEV_ACCOUNT = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


def env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def get_db() -> Any:
    """Supabase client for the mirror endpoints."""

    try:
        return get_supabase()
    except MirrorNotConfigured as e:
        raise RemoteUnavailable("Database is not configured.", detail=str(e)) from e


@lru_cache(maxsize=1)
def get_gateway() -> LedgerGateway:
    if os.getenv("CHAIN_RPC_URL"):
        connection = ChainConnection.from_env()
        logger.info("Using contract %s via %s", connection.contract_address, os.getenv("CHAIN_RPC_URL"))
        return ChainClient(connection)

    owner = os.getenv("CHAIN_ACCOUNT") or LOCAL_DEV_ACCOUNT
    logger.info("CHAIN_RPC_URL not set, using in-process ledger owned by %s", owner)
    return LocalLedgerGateway(ProductLedger(owner, strict_status=env_flag("STRICT_STATUS")))


@lru_cache(maxsize=1)
def get_event_bus() -> EventBus:
    return EventBus()


@lru_cache(maxsize=1)
def get_mirror() -> MirrorSynchronizer:
    mirror = MirrorSynchronizer(get_supabase)
    mirror.attach(get_event_bus())
    return mirror


@lru_cache(maxsize=1)
def get_service() -> SupplyChainService:
    get_mirror()
    return SupplyChainService(
        get_gateway(),
        get_event_bus(),
        strict_status=env_flag("STRICT_STATUS"),
        late_receipt_timeout=float(os.getenv("TX_TIMEOUT_SECONDS", DEFAULT_TX_TIMEOUT_SECONDS)),
    )


@lru_cache(maxsize=1)
def get_reader() -> ProductReader:
    return ProductReader(get_gateway(), get_mirror())


def shutdown_service() -> None:
    """Stop the late-confirmation watcher, if a service was ever created."""

    if get_service.cache_info().currsize:
        logger.info("Stopping lifecycle service")
        get_service().shutdown(wait=False)
        get_service.cache_clear()


__all__ = [
    "get_db",
    "get_gateway",
    "get_event_bus",
    "get_mirror",
    "get_service",
    "get_reader",
    "shutdown_service",
    "env_flag",
]
