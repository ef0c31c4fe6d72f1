"""Offline-first sync for the inventory client.

Mutations made while disconnected are written to a local cache and a
durable pending queue. When connectivity returns the queue is drained
against the remote store in enqueue order.

Usage:
    from stocksync.offline import (
        ChangeQueue, FileStore, MemoryRemoteStore, OfflineSession, SyncEngine,
    )

    queue = ChangeQueue(FileStore("~/.stocksync/store"))
    engine = SyncEngine(queue, remote)
    session = OfflineSession(queue, engine)
    await session.start()

    # Feed network observations; a reconnect edge triggers a drain
    session.monitor.observe(NetworkState(is_connected=True, is_internet_reachable=True))

    # Or drain on demand
    result = await session.trigger_sync()
"""
from stocksync.offline.store import FileStore, KeyValueStore, MemoryStore, StorageFailure
from stocksync.offline.queue import ChangeQueue
from stocksync.offline.connectivity import (
    ConnectionStatus,
    ConnectivityMonitor,
    NetworkState,
    ReachabilityPoller,
    probe_reachability,
)
from stocksync.offline.remote import (
    JsonRemoteStore,
    MemoryRemoteStore,
    RemoteError,
    RemoteStore,
)
from stocksync.offline.sync import SyncEngine, SyncFailure, SyncResult
from stocksync.offline.session import OfflineSession, SessionState

__all__ = [
    # Storage
    "FileStore",
    "KeyValueStore",
    "MemoryStore",
    "StorageFailure",
    # Queue
    "ChangeQueue",
    # Connectivity
    "ConnectionStatus",
    "ConnectivityMonitor",
    "NetworkState",
    "ReachabilityPoller",
    "probe_reachability",
    # Remote
    "JsonRemoteStore",
    "MemoryRemoteStore",
    "RemoteError",
    "RemoteStore",
    # Sync
    "SyncEngine",
    "SyncFailure",
    "SyncResult",
    # Session
    "OfflineSession",
    "SessionState",
]
