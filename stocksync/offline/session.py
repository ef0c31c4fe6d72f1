"""Offline session controller.

Owns the process-wide sync state (online, syncing, pending count, last
sync time) as an explicit SessionState object and wires the
connectivity monitor to the sync engine:

- start(): subscribe to the monitor and load the pending count
- reconnect edge: schedule trigger_sync()
- trigger_sync(): at most one drain at a time; extra calls are dropped

Consumers receive the session by injection and may subscribe to state
changes; nothing here is a module-level global.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from stocksync.config import DEFAULT_CONFIG, SyncConfig

from .connectivity import ConnectivityMonitor, ReachabilityPoller
from .queue import ChangeQueue
from .store import StorageFailure
from .sync import SyncEngine, SyncResult

logger = logging.getLogger("stocksync.session")


@dataclass
class SessionState:
    """Sync status surfaced to the presentation layer."""
    is_online: bool = True
    is_syncing: bool = False
    pending_changes_count: int = 0
    exhausted_changes_count: int = 0
    last_sync_time: Optional[datetime] = None
    last_result: Optional[SyncResult] = None

    def to_dict(self) -> dict:
        return {
            "is_online": self.is_online,
            "is_syncing": self.is_syncing,
            "pending_changes_count": self.pending_changes_count,
            "exhausted_changes_count": self.exhausted_changes_count,
            "last_sync_time": (self.last_sync_time.isoformat().replace("+00:00", "Z")
                               if self.last_sync_time else None),
        }


class OfflineSession:
    """Coordinates connectivity, the pending queue and the sync engine."""

    def __init__(
        self,
        queue: ChangeQueue,
        engine: SyncEngine,
        monitor: Optional[ConnectivityMonitor] = None,
        config: Optional[SyncConfig] = None,
        poller: Optional[ReachabilityPoller] = None,
    ):
        self.queue = queue
        self.engine = engine
        self.config = config or DEFAULT_CONFIG
        self.monitor = monitor or ConnectivityMonitor(tenant_id=self.config.tenant_id)
        self.poller = poller
        self.state = SessionState(is_online=self.monitor.is_online)
        self.started = False
        self._unsubscribers: list[Callable[[], None]] = []
        self._listeners: list[Callable[[SessionState], None]] = []
        self._tasks: set[asyncio.Task] = set()

    # Read-only views for callers that only need one flag
    @property
    def is_online(self) -> bool:
        return self.state.is_online

    @property
    def is_syncing(self) -> bool:
        return self.state.is_syncing

    @property
    def pending_changes_count(self) -> int:
        return self.state.pending_changes_count

    @property
    def last_sync_time(self) -> Optional[datetime]:
        return self.state.last_sync_time

    async def start(self) -> None:
        if self.started:
            return
        self.state.is_online = self.monitor.is_online
        self._unsubscribers.append(self.monitor.on_status_change(self._on_status_change))
        self._unsubscribers.append(self.monitor.on_reconnected(self._on_reconnected))
        await self.refresh_pending_count()
        if self.poller is not None:
            self.poller.start()
        self.started = True
        logger.debug("Offline session started (online=%s)", self.state.is_online)

    async def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        if self.poller is not None:
            await self.poller.stop()
        await self.wait_for_sync()
        self.started = False

    async def __aenter__(self) -> "OfflineSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def subscribe(self, listener: Callable[[SessionState], None]) -> Callable[[], None]:
        """Receive the state object after every change.

        Returns:
            Callable that unsubscribes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    async def wait_for_sync(self) -> None:
        """Wait for automatically scheduled sync passes to finish."""
        while self._tasks:
            tasks = list(self._tasks)
            await asyncio.gather(*tasks, return_exceptions=True)
            self._tasks.difference_update(tasks)

    async def refresh_pending_count(self) -> int:
        """Re-read the queue length into the state."""
        try:
            changes = await self.queue.list_pending()
        except StorageFailure:
            logger.exception("Error refreshing pending count")
            return self.state.pending_changes_count
        self.state.pending_changes_count = len(changes)
        self.state.exhausted_changes_count = sum(1 for c in changes if c.exhausted)
        self._notify()
        return self.state.pending_changes_count

    async def trigger_sync(self, force: bool = False) -> Optional[SyncResult]:
        """Run one drain pass if online, idle and there is work.

        Args:
            force: Ignore retry backoff for this pass

        Returns:
            SyncResult, or None when the call was a no-op or the pass failed
        """
        if not self.monitor.is_online:
            logger.info("Cannot sync while offline")
            return None
        if self.state.is_syncing:
            logger.info("Sync already in progress")
            return None

        # Claimed before the first await so a concurrent call sees it
        self.state.is_syncing = True
        self._notify()
        try:
            if not await self.queue.has_pending():
                logger.info("No pending changes to sync")
                return None

            logger.info("Starting sync")
            result = await self.engine.drain_queue(force=force)

            if result.errors:
                logger.error("Sync errors: %s", [e.to_dict() for e in result.errors])

            self.state.last_sync_time = datetime.now(timezone.utc)
            self.state.last_result = result
            await self.refresh_pending_count()

            if result.failure_count == 0:
                self.monitor.clear_was_offline()
            return result
        except Exception:
            logger.exception("Error during sync")
            return None
        finally:
            self.state.is_syncing = False
            self._notify()

    def _on_status_change(self, online: bool) -> None:
        self.state.is_online = online
        self._notify()

    def _on_reconnected(self) -> None:
        logger.info("Connection restored, triggering auto-sync")
        task = asyncio.get_running_loop().create_task(self.trigger_sync())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.state)
            except Exception:
                logger.exception("Session listener %r failed", listener)
