"""Tests for the connectivity monitor, probe and poller."""
import asyncio
import socket

import pytest

from stocksync.offline.connectivity import (
    ConnectionStatus,
    ConnectivityMonitor,
    NetworkState,
    ReachabilityPoller,
    probe_reachability,
)


class TestNetworkState:
    """Test reduction of platform signals to one boolean."""

    @pytest.mark.parametrize("connected,reachable,online", [
        (True, True, True),
        (True, None, True),
        (True, False, False),
        (False, None, False),
        (False, True, False),
    ])
    def test_online(self, connected, reachable, online):
        assert NetworkState(connected, reachable).online is online


class TestConnectivityMonitor:
    """Test the two-state machine and its reconnect edge."""

    def test_starts_optimistically_online(self):
        monitor = ConnectivityMonitor()

        assert monitor.status == ConnectionStatus.ONLINE
        assert monitor.is_online
        assert monitor.observed is False

    def test_reconnect_fires_once_per_edge(self):
        monitor = ConnectivityMonitor()
        fired = []
        monitor.on_reconnected(lambda: fired.append(True))

        monitor.observe(True)
        monitor.observe(NetworkState(True, False))
        monitor.observe(False)
        edge = monitor.observe(NetworkState(True, None))
        monitor.observe(True)

        assert edge is True
        assert fired == [True]

    def test_online_without_prior_offline_is_silent(self):
        monitor = ConnectivityMonitor()
        fired = []
        monitor.on_reconnected(lambda: fired.append(True))

        assert monitor.observe(True) is False
        assert fired == []
        assert monitor.was_offline is False

    def test_status_listeners_see_every_transition(self):
        monitor = ConnectivityMonitor()
        seen = []
        monitor.on_status_change(seen.append)

        monitor.observe(False)
        monitor.observe(False)
        monitor.observe(True)

        assert seen == [False, True]

    def test_missed_reconnect_replayed_to_late_subscriber(self):
        """A reconnect with nobody listening is delivered on subscribe."""
        monitor = ConnectivityMonitor()
        monitor.observe(False)
        monitor.observe(True)

        fired = []
        monitor.on_reconnected(lambda: fired.append("late"))
        monitor.on_reconnected(lambda: fired.append("later"))

        assert fired == ["late"]

    def test_was_offline_survives_until_cleared(self):
        monitor = ConnectivityMonitor()
        monitor.observe(False)
        monitor.observe(True)

        assert monitor.was_offline is True
        monitor.clear_was_offline()
        assert monitor.was_offline is False

    def test_failing_listener_does_not_block_others(self):
        monitor = ConnectivityMonitor()
        fired = []

        def broken():
            raise RuntimeError("listener bug")

        monitor.on_reconnected(broken)
        monitor.on_reconnected(lambda: fired.append(True))
        monitor.observe(False)
        monitor.observe(True)

        assert fired == [True]

    def test_unsubscribe(self):
        monitor = ConnectivityMonitor()
        fired = []
        unsubscribe = monitor.on_reconnected(lambda: fired.append(True))
        keep = monitor.on_reconnected(lambda: None)

        unsubscribe()
        monitor.observe(False)
        monitor.observe(True)
        keep()

        assert fired == []

    def test_reconnection_receipt(self, monkeypatch, capsys):
        from stocksync.core import receipt
        monkeypatch.setattr(receipt, "EMIT_TO_STDOUT", True)
        monitor = ConnectivityMonitor(tenant_id="shop-1")
        monitor.on_reconnected(lambda: None)

        monitor.observe(False)
        monitor.observe(True)

        out = capsys.readouterr().out
        assert '"receipt_type": "reconnection"' in out
        assert '"tenant_id": "shop-1"' in out


class TestProbe:
    """Test the TCP reachability probe."""

    def test_reachable_port(self):
        async def scenario():
            server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
            port = server.sockets[0].getsockname()[1]
            async with server:
                return await probe_reachability("127.0.0.1", port, timeout=2.0)

        state = asyncio.run(scenario())
        assert state.online

    def test_closed_port(self):
        sock = socket.socket()
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
        sock.close()

        state = asyncio.run(probe_reachability("127.0.0.1", port, timeout=2.0))

        assert state == NetworkState(is_connected=False, is_internet_reachable=False)


class TestReachabilityPoller:
    """Test periodic observation feeding."""

    def test_poll_once_feeds_monitor(self):
        monitor = ConnectivityMonitor()
        results = iter([NetworkState(False), NetworkState(True, True)])

        async def probe():
            return next(results)

        poller = ReachabilityPoller(monitor, probe=probe, interval_seconds=0.01)

        async def scenario():
            first = await poller.poll_once()
            status_after_first = monitor.status
            second = await poller.poll_once()
            return first, status_after_first, second

        first, status_after_first, second = asyncio.run(scenario())
        assert first is False
        assert status_after_first == ConnectionStatus.OFFLINE
        assert second is True
        assert monitor.is_online

    def test_start_and_stop(self):
        monitor = ConnectivityMonitor()
        calls = []

        async def probe():
            calls.append(True)
            if len(calls) == 2:
                raise OSError("probe crashed")
            return NetworkState(len(calls) % 2 == 1)

        poller = ReachabilityPoller(monitor, probe=probe, interval_seconds=0.01)

        async def scenario():
            poller.start()
            running = poller.running
            await asyncio.sleep(0.1)
            await poller.stop()
            return running, poller.running

        running, after = asyncio.run(scenario())
        assert running is True
        assert after is False
        assert len(calls) >= 3
