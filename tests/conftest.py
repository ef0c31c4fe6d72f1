"""Shared fixtures for StockSync tests.

Every async scenario runs inside a single asyncio.run() call; the queue
locks and remote subscriptions bind to the loop they are first used on.
"""
import itertools

import pytest

from stocksync.config import SyncConfig
from stocksync.core import receipt
from stocksync.inventory import InventoryService
from stocksync.offline import (
    ChangeQueue,
    ConnectivityMonitor,
    MemoryRemoteStore,
    MemoryStore,
    OfflineSession,
    SyncEngine,
)


@pytest.fixture(autouse=True)
def quiet_receipts(monkeypatch):
    """Keep receipts off stdout unless a test turns them back on."""
    monkeypatch.setattr(receipt, "EMIT_TO_STDOUT", False)


@pytest.fixture
def config(tmp_path) -> SyncConfig:
    return SyncConfig(
        data_dir=str(tmp_path),
        max_attempts=3,
        backoff_base_seconds=1.0,
        backoff_max_seconds=8.0,
        emit_receipts=False,
    )


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def queue(store) -> ChangeQueue:
    return ChangeQueue(store)


@pytest.fixture
def remote() -> MemoryRemoteStore:
    """Remote assigning predictable ids: remote-1, remote-2, ..."""
    counter = itertools.count(1)
    return MemoryRemoteStore(id_factory=lambda: f"remote-{next(counter)}")


@pytest.fixture
def engine(queue, remote, config) -> SyncEngine:
    return SyncEngine(queue, remote, config)


@pytest.fixture
def monitor() -> ConnectivityMonitor:
    return ConnectivityMonitor()


@pytest.fixture
def session(queue, engine, monitor, config) -> OfflineSession:
    """Unstarted session; tests start it inside their event loop."""
    return OfflineSession(queue, engine, monitor=monitor, config=config)


@pytest.fixture
def service(session, remote, config) -> InventoryService:
    return InventoryService(session, remote, config)


@pytest.fixture
def seed(queue, remote, config):
    """Coroutine that puts a confirmed record in both the remote and the cache."""
    async def _seed(item_id: str, **fields) -> dict:
        remote.seed(config.inventory_collection, item_id, fields)
        return await queue.upsert_cache_entry({"id": item_id, **fields})
    return _seed
