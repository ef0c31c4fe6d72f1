"""Tests for the offline session controller."""
import asyncio

from stocksync.core.models import PendingChange
from stocksync.offline import MemoryRemoteStore, OfflineSession, ReachabilityPoller, SyncEngine
from stocksync.offline.connectivity import NetworkState


def _update(item_id: str, **data) -> PendingChange:
    return PendingChange(type="update", collection="inventory", item_id=item_id, data=data)


class TestLifecycle:
    """Test start/stop and state publication."""

    def test_start_loads_pending_count(self, session, queue):
        async def scenario():
            await queue.enqueue(_update("a", stock=1))
            await queue.enqueue(_update("b", stock=2))
            await session.start()
            count = session.pending_changes_count
            await session.stop()
            return count

        assert asyncio.run(scenario()) == 2

    def test_state_tracks_monitor(self, session, monitor):
        async def scenario():
            async with session:
                monitor.observe(False)
                offline = session.is_online
                monitor.observe(True)
                return offline, session.is_online

        assert asyncio.run(scenario()) == (False, True)

    def test_subscribers_receive_state(self, session, queue):
        seen = []

        async def scenario():
            async with session:
                unsubscribe = session.subscribe(lambda state: seen.append(state.pending_changes_count))
                await queue.enqueue(_update("a", stock=1))
                await session.refresh_pending_count()
                unsubscribe()
                await session.refresh_pending_count()

        asyncio.run(scenario())
        assert seen == [1]

    def test_state_to_dict(self, session):
        state = session.state.to_dict()

        assert state == {
            "is_online": True,
            "is_syncing": False,
            "pending_changes_count": 0,
            "exhausted_changes_count": 0,
            "last_sync_time": None,
        }


class TestTriggerSync:
    """Test the guarded drain trigger."""

    def test_noop_when_offline(self, session, monitor, queue, remote, seed):
        async def scenario():
            await seed("a", name="A", stock=1)
            await queue.enqueue(_update("a", stock=2))
            async with session:
                monitor.observe(False)
                return await session.trigger_sync()

        assert asyncio.run(scenario()) is None
        assert remote.calls == []

    def test_noop_when_queue_empty(self, session):
        async def scenario():
            async with session:
                result = await session.trigger_sync()
                return result, session.is_syncing, session.last_sync_time

        assert asyncio.run(scenario()) == (None, False, None)

    def test_exclusive_drain(self, queue, config):
        """Two rapid triggers run exactly one drain."""
        remote = MemoryRemoteStore(delay=0.01)
        engine = SyncEngine(queue, remote, config)
        session = OfflineSession(queue, engine, config=config)
        drains = []
        original = engine.drain_queue

        async def counting_drain(**kwargs):
            drains.append(True)
            return await original(**kwargs)

        engine.drain_queue = counting_drain

        async def scenario():
            for item_id in ("a", "b"):
                remote.seed("inventory", item_id, {"name": item_id, "stock": 0})
                await queue.enqueue(_update(item_id, stock=4))
            async with session:
                return await asyncio.gather(session.trigger_sync(), session.trigger_sync())

        first, second = asyncio.run(scenario())

        assert len(drains) == 1
        assert first.success_count == 2
        assert second is None
        assert len(remote.calls) == 2

    def test_updates_state_after_pass(self, session, queue, seed):
        async def scenario():
            await seed("a", name="A", stock=1)
            await queue.enqueue(_update("a", stock=2))
            async with session:
                result = await session.trigger_sync()
                return result, session.state

        result, state = asyncio.run(scenario())

        assert result.success_count == 1
        assert state.pending_changes_count == 0
        assert state.last_sync_time is not None
        assert state.last_result is result
        assert state.is_syncing is False

    def test_failure_keeps_was_offline(self, session, monitor, queue, remote, seed):
        async def scenario():
            await seed("a", name="A", stock=1)
            async with session:
                monitor.observe(False)
                await queue.enqueue(_update("a", stock=2))
                remote.available = False
                monitor.observe(True)
                await session.wait_for_sync()
                kept = monitor.was_offline
                remote.available = True
                await session.trigger_sync(force=True)
                return kept, monitor.was_offline, session.pending_changes_count

        assert asyncio.run(scenario()) == (True, False, 0)

    def test_storage_failure_releases_syncing(self, session, queue, store, seed):
        async def scenario():
            await seed("a", name="A", stock=1)
            await queue.enqueue(_update("a", stock=2))
            async with session:
                store.fail_on.add("write")
                result = await session.trigger_sync()
                store.fail_on.clear()
                return result, session.is_syncing

        assert asyncio.run(scenario()) == (None, False)


class TestReconnect:
    """Test automatic sync on the reconnect edge."""

    def test_offline_changes_drain_once_on_reconnect(self, session, monitor, queue, remote, seed):
        """Online -> offline -> online drains both offline changes in order."""
        reconnects = []
        drains = []
        original = session.engine.drain_queue

        async def counting_drain(**kwargs):
            drains.append(True)
            return await original(**kwargs)

        session.engine.drain_queue = counting_drain

        async def scenario():
            await seed("a", name="A", stock=1)
            await seed("b", name="B", stock=1)
            async with session:
                monitor.on_reconnected(lambda: reconnects.append(True))
                monitor.observe(NetworkState(True, True))
                monitor.observe(NetworkState(True, False))
                await queue.enqueue(_update("b", stock=8))
                await queue.enqueue(_update("a", stock=9))
                await session.refresh_pending_count()
                queued = session.pending_changes_count
                monitor.observe(NetworkState(True, True))
                await session.wait_for_sync()
                return queued, session.pending_changes_count

        queued, remaining = asyncio.run(scenario())

        assert queued == 2
        assert remaining == 0
        assert reconnects == [True]
        assert drains == [True]
        assert remote.calls == [
            ("update_record", "inventory", "b"),
            ("update_record", "inventory", "a"),
        ]
        assert monitor.was_offline is False

    def test_reconnect_before_start_is_not_lost(self, session, monitor, queue, remote, seed):
        async def scenario():
            await seed("a", name="A", stock=1)
            await queue.enqueue(_update("a", stock=2))
            monitor.observe(False)
            monitor.observe(True)
            async with session:
                await session.wait_for_sync()
                return session.pending_changes_count

        assert asyncio.run(scenario()) == 0
        assert remote.get("inventory", "a")["stock"] == 2

    def test_poller_drives_reconnect(self, queue, engine, monitor, config, remote, seed):
        results = [NetworkState(False), NetworkState(True, True)]

        async def probe():
            return results.pop(0) if results else NetworkState(True, True)

        poller = ReachabilityPoller(monitor, probe=probe, interval_seconds=0.01)
        session = OfflineSession(queue, engine, monitor=monitor, config=config, poller=poller)

        async def scenario():
            await seed("a", name="A", stock=1)
            await queue.enqueue(_update("a", stock=5))
            async with session:
                for _ in range(50):
                    await asyncio.sleep(0.01)
                    if not results:
                        break
                await asyncio.sleep(0.02)
                await session.wait_for_sync()
            return await queue.count()

        assert asyncio.run(scenario()) == 0
        assert remote.get("inventory", "a")["stock"] == 5
