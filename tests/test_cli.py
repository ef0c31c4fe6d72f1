"""Tests for the stock CLI."""
import json
import socket

import pytest
from click.testing import CliRunner

from stocksync import __version__
from stocksync.cli import runtime
from stocksync.cli.main import cli
from stocksync.config import SyncConfig


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("STOCKSYNC_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("STOCKSYNC_EMIT_RECEIPTS", "false")
    monkeypatch.delenv("STOCKSYNC_PROBE_HOST", raising=False)
    return tmp_path


@pytest.fixture
def network(monkeypatch):
    """Controls what the reachability probe reports."""
    state = {"online": True}
    monkeypatch.setattr(runtime, "is_reachable", lambda config: state["online"])
    return state


@pytest.fixture
def invoke(data_dir, network):
    runner = CliRunner()

    def _invoke(*args, **kwargs):
        return runner.invoke(cli, list(args), **kwargs)
    return _invoke


def _cache(data_dir) -> list[dict]:
    path = data_dir / "store" / "inventory_cache.json"
    return json.loads(path.read_text()) if path.exists() else []


def _pending(data_dir) -> list[dict]:
    path = data_dir / "store" / "pending_changes.json"
    return json.loads(path.read_text()) if path.exists() else []


def _remote(data_dir) -> dict:
    return json.loads((data_dir / "remote.json").read_text())["collections"]


class TestItemCommands:
    """Test item mutations through the CLI."""

    def test_version(self, invoke):
        result = invoke("--version")

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_add_online(self, invoke, data_dir):
        result = invoke("item", "add", "LCD iPhone 11", "--stock", "10", "--brand", "Apple")

        assert result.exit_code == 0, result.output
        assert "Item Add: SAVED" in result.output
        cache = _cache(data_dir)
        assert len(cache) == 1
        assert cache[0]["brand"] == "Apple"
        assert "_pending" not in cache[0]
        assert cache[0]["id"] in _remote(data_dir)["inventory"]

    def test_add_offline_then_sync(self, invoke, data_dir):
        added = invoke("item", "add", "Battery", "--stock", "3", "--offline")
        listed = invoke("queue", "list")
        status = invoke("status")
        synced = invoke("sync")

        assert "Item Add: QUEUED" in added.output
        assert "Showing 1 of 1 pending changes" in listed.output
        assert '"pending_changes_count": 1' in status.output
        assert "Synced 1 changes" in synced.output, synced.output
        cache = _cache(data_dir)
        assert len(cache) == 1
        assert not cache[0]["id"].startswith("local-")
        assert "_pending" not in cache[0]
        assert _pending(data_dir) == []

    def test_adjust(self, invoke, data_dir):
        invoke("item", "add", "Glass", "--stock", "10")
        item_id = _cache(data_dir)[0]["id"]

        rejected = invoke("item", "adjust", item_id, "--delta=-20")
        applied = invoke("item", "adjust", item_id, "--delta=-3", "--reason", "Damaged")

        assert rejected.exit_code == 1
        assert "REJECTED" in rejected.output
        assert applied.exit_code == 0, applied.output
        assert _cache(data_dir)[0]["stock"] == 7
        logs = list(_remote(data_dir)["transactions"].values())
        assert len(logs) == 1
        assert logs[0]["reason"] == "Damaged"
        assert logs[0]["old_stock"] == 10

    def test_adjust_unknown_reason(self, invoke):
        result = invoke("item", "adjust", "x", "--delta", "1", "--reason", "Magic")

        assert result.exit_code == 2

    def test_update_requires_fields(self, invoke):
        result = invoke("item", "update", "x")

        assert result.exit_code == 1
        assert "Nothing to update" in result.output

    def test_link_and_cascade_delete(self, invoke, data_dir):
        invoke("item", "add", "Case", "--stock", "0")
        invoke("item", "add", "Case red", "--stock", "2")
        parent_id, variant_id = (e["id"] for e in _cache(data_dir))

        linked = invoke("item", "link", parent_id, variant_id, "--name", "Red")
        blocked = invoke("item", "delete", parent_id)
        deleted = invoke("item", "delete", parent_id, "--cascade")

        assert "Variant Link: SAVED" in linked.output
        assert blocked.exit_code == 1
        assert "Item Delete: REJECTED" in blocked.output
        assert deleted.exit_code == 0
        assert _cache(data_dir) == []

    def test_list(self, invoke):
        empty = invoke("item", "list")
        invoke("item", "add", "Cable", "--stock", "5", "--offline")
        listed = invoke("item", "list")

        assert "No items cached" in empty.output
        assert "Cable" in listed.output
        assert "*" in listed.output


class TestQueueCommands:
    """Test queue management commands."""

    def test_empty_queue(self, invoke):
        assert "Queue is empty" in invoke("queue", "list").output
        assert "Queue already empty" in invoke("queue", "clear").output

    def test_discard(self, invoke, data_dir):
        invoke("item", "add", "Cable", "--stock", "5", "--offline")
        change_id = _pending(data_dir)[0]["id"]

        result = invoke("queue", "discard", change_id[:8])

        assert "Discarded add change" in result.output
        assert _pending(data_dir) == []
        assert _cache(data_dir) == []

    def test_discard_unknown(self, invoke):
        assert "No queued change matches" in invoke("queue", "discard", "nope").output

    def test_retry(self, invoke, data_dir):
        invoke("item", "add", "Cable", "--stock", "5", "--offline")

        result = invoke("queue", "retry")

        assert "Reset 0 changes" in result.output

    def test_clear(self, invoke, data_dir):
        invoke("item", "add", "A", "--stock", "1", "--offline")
        invoke("item", "add", "B", "--stock", "1", "--offline")

        result = invoke("queue", "clear", "--yes")

        assert "Queue cleared" in result.output
        assert _pending(data_dir) == []


class TestSyncCommand:
    """Test the sync command guard."""

    def test_offline_refuses(self, invoke, network):
        network["online"] = False

        result = invoke("sync")

        assert "Not connected" in result.output

    def test_nothing_to_sync(self, invoke):
        assert "Nothing to sync" in invoke("sync").output

    def test_force_when_probe_fails(self, invoke, network, data_dir):
        invoke("item", "add", "Cable", "--stock", "5", "--offline")
        network["online"] = False

        result = invoke("sync", "--force")

        assert "Synced 1 changes" in result.output
        assert _pending(data_dir) == []


class TestReachability:
    """Test how the CLI decides it can reach the remote."""

    def test_local_remote_needs_no_network(self, data_dir, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("local remote needs no network check")
        monkeypatch.setattr(runtime, "probe_reachability", fail)
        runner = CliRunner()
        runner.invoke(cli, ["item", "add", "Cable", "--stock", "5", "--offline"])

        result = runner.invoke(cli, ["sync"])

        assert runtime.is_reachable(SyncConfig(data_dir=str(data_dir))) is True
        assert "Synced 1 changes" in result.output, result.output
        assert _pending(data_dir) == []

    def test_configured_host_is_checked(self, tmp_path):
        sock = socket.socket()
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
        sock.close()
        config = SyncConfig(data_dir=str(tmp_path), probe_host="127.0.0.1",
                            probe_port=port, probe_timeout=2.0)

        assert runtime.is_reachable(config) is False
