"""Network reachability monitoring.

Wraps a platform network-state signal into one online/offline boolean
and an edge-triggered "reconnected" event fired once per OFFLINE ->
ONLINE transition.

State machine:
    ONLINE  --offline observation-->  OFFLINE   (sets was_offline)
    OFFLINE --online observation-->   ONLINE    (fires reconnected)

The monitor starts optimistically ONLINE so nothing waits on the first
probe. A reconnect that fires while nobody is subscribed is replayed to
the next reconnect subscriber.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from stocksync.core.constants import (
    POLL_INTERVAL_SECONDS,
    PROBE_HOST,
    PROBE_PORT,
    PROBE_TIMEOUT_SECONDS,
)
from stocksync.core.receipt import emit_receipt

logger = logging.getLogger("stocksync.connectivity")


class ConnectionStatus:
    """Monitor states."""
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass(frozen=True)
class NetworkState:
    """One observation from the platform network-state source."""
    is_connected: bool
    is_internet_reachable: Optional[bool] = None

    @property
    def online(self) -> bool:
        # Unknown reachability (None) counts as online
        return self.is_connected is True and self.is_internet_reachable is not False


class ConnectivityMonitor:
    """Two-state online/offline monitor with reconnect edge events."""

    def __init__(self, tenant_id: str = "default"):
        self.tenant_id = tenant_id
        self.status = ConnectionStatus.ONLINE
        self.was_offline = False
        self.observed = False
        self._missed_reconnect = False
        self._reconnect_listeners: list[Callable[[], None]] = []
        self._status_listeners: list[Callable[[bool], None]] = []

    @property
    def is_online(self) -> bool:
        return self.status == ConnectionStatus.ONLINE

    def observe(self, state: NetworkState | bool) -> bool:
        """Feed one network observation.

        Args:
            state: NetworkState, or a plain bool for sources that only
                know online/offline

        Returns:
            True if this observation fired a reconnected event
        """
        online = state if isinstance(state, bool) else state.online
        previous = self.status
        self.observed = True

        if not online:
            self.was_offline = True
            self.status = ConnectionStatus.OFFLINE
            if previous == ConnectionStatus.ONLINE:
                logger.info("Connection lost")
                self._notify_status(False)
            return False

        self.status = ConnectionStatus.ONLINE
        if previous == ConnectionStatus.ONLINE:
            return False

        self._notify_status(True)
        if not self.was_offline:
            return False

        logger.info("Connection restored")
        emit_receipt("reconnection", {
            "tenant_id": self.tenant_id,
            "status": "reconnected",
            "listeners": len(self._reconnect_listeners),
        })
        if not self._reconnect_listeners:
            self._missed_reconnect = True
            return True
        self._fire_reconnected()
        return True

    def clear_was_offline(self) -> None:
        """Consume the was-offline flag after a clean sync."""
        self.was_offline = False
        self._missed_reconnect = False

    def on_reconnected(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Subscribe to reconnect edges.

        Returns:
            Callable that unsubscribes the listener
        """
        self._reconnect_listeners.append(listener)
        if self._missed_reconnect and self.is_online:
            self._missed_reconnect = False
            self._call(listener)
        return lambda: self._discard(self._reconnect_listeners, listener)

    def on_status_change(self, listener: Callable[[bool], None]) -> Callable[[], None]:
        """Subscribe to every online/offline transition."""
        self._status_listeners.append(listener)
        return lambda: self._discard(self._status_listeners, listener)

    def _fire_reconnected(self) -> None:
        for listener in list(self._reconnect_listeners):
            self._call(listener)

    def _notify_status(self, online: bool) -> None:
        for listener in list(self._status_listeners):
            self._call(listener, online)

    @staticmethod
    def _call(listener, *args) -> None:
        try:
            listener(*args)
        except Exception:
            logger.exception("Connectivity listener %r failed", listener)

    @staticmethod
    def _discard(listeners: list, listener) -> None:
        if listener in listeners:
            listeners.remove(listener)


async def probe_reachability(
    host: str = PROBE_HOST,
    port: int = PROBE_PORT,
    timeout: float = PROBE_TIMEOUT_SECONDS,
) -> NetworkState:
    """Check whether the remote store host accepts TCP connections.

    Args:
        host: Host to reach
        port: Port to reach
        timeout: Connection timeout in seconds

    Returns:
        NetworkState with both flags set from the probe result
    """
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
    except (OSError, asyncio.TimeoutError):
        return NetworkState(is_connected=False, is_internet_reachable=False)
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return NetworkState(is_connected=True, is_internet_reachable=True)


class ReachabilityPoller:
    """Feeds periodic probe results into a ConnectivityMonitor."""

    def __init__(
        self,
        monitor: ConnectivityMonitor,
        probe: Optional[Callable[[], Awaitable[NetworkState]]] = None,
        interval_seconds: float = POLL_INTERVAL_SECONDS,
    ):
        self.monitor = monitor
        self.probe = probe or probe_reachability
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll_once(self) -> bool:
        """Probe once and feed the monitor. Returns the online result."""
        state = await self.probe()
        self.monitor.observe(state)
        return state.online

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Reachability probe failed")
            await asyncio.sleep(self.interval_seconds)
