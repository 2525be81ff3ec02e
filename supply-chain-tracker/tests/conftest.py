"""
Pytest configuration.

Adds the project directory to the Python path so tests can import domain,
repositories, services and api, and provides a wired-up in-process stack:
ProductLedger -> LocalLedgerGateway -> SupplyChainService -> EventBus ->
MirrorSynchronizer -> FakeSupabase.
"""

import sys
from pathlib import Path

import pytest

# Add the supply-chain-tracker directory to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent))

from domain.ledger import ProductLedger  # noqa: E402
from services.event_bus import EventBus  # noqa: E402
from services.lifecycle_service import SupplyChainService  # noqa: E402
from services.local_ledger import LocalLedgerGateway  # noqa: E402
from services.mirror_sync import MirrorSynchronizer  # noqa: E402

from fakes import OWNER, FakeSupabase  # noqa: E402


@pytest.fixture
def ledger() -> ProductLedger:
    return ProductLedger(OWNER)


@pytest.fixture
def gateway(ledger: ProductLedger) -> LocalLedgerGateway:
    return LocalLedgerGateway(ledger)


@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def mirror(fake_db: FakeSupabase) -> MirrorSynchronizer:
    return MirrorSynchronizer(lambda: fake_db)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def service(gateway: LocalLedgerGateway, bus: EventBus, mirror: MirrorSynchronizer):
    mirror.attach(bus)
    svc = SupplyChainService(gateway, bus)
    yield svc
    svc.shutdown()
