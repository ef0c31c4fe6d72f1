"""Wiring shared by CLI commands.

Each command is one short-lived process: it builds a session over the
file-backed store under data_dir and the JSON development remote, runs
one coroutine through it and shuts it down again.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from stocksync.config import SyncConfig
from stocksync.core import receipt
from stocksync.inventory import InventoryService
from stocksync.offline import (
    ChangeQueue,
    ConnectivityMonitor,
    FileStore,
    JsonRemoteStore,
    OfflineSession,
    SyncEngine,
    probe_reachability,
)

T = TypeVar("T")


def load_config() -> SyncConfig:
    """Read config from the environment and apply the receipt toggle."""
    config = SyncConfig.from_env()
    receipt.EMIT_TO_STDOUT = config.emit_receipts
    return config


def is_reachable(config: SyncConfig) -> bool:
    """Probe the configured remote endpoint once.

    Without a probe host the remote is the JSON file under data_dir,
    which needs no network.
    """
    if not config.probe_host:
        return True
    state = asyncio.run(probe_reachability(
        config.probe_host, config.probe_port, config.probe_timeout,
    ))
    return state.online


def open_queue(config: SyncConfig) -> ChangeQueue:
    return ChangeQueue(FileStore(config.store_dir), tenant_id=config.tenant_id)


@asynccontextmanager
async def open_service(config: SyncConfig, online: bool) -> AsyncIterator[InventoryService]:
    """Started session + service with the monitor seeded from `online`."""
    queue = open_queue(config)
    remote = JsonRemoteStore(config.remote_path)
    monitor = ConnectivityMonitor(tenant_id=config.tenant_id)
    monitor.observe(online)
    session = OfflineSession(queue, SyncEngine(queue, remote, config), monitor=monitor, config=config)
    async with session:
        yield InventoryService(session, remote, config)


def run_with_service(
    config: SyncConfig,
    online: bool,
    action: Callable[[InventoryService], Awaitable[T]],
) -> T:
    async def _run() -> T:
        async with open_service(config, online) as service:
            return await action(service)
    return asyncio.run(_run())


def run_with_queue(config: SyncConfig, action: Callable[[ChangeQueue], Awaitable[T]]) -> T:
    return asyncio.run(action(open_queue(config)))
