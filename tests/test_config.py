"""Tests for StockSync configuration."""
from pathlib import Path

from stocksync.config import SyncConfig


class TestSyncConfig:
    """Tests for configuration defaults, env overrides and validation."""

    def test_default_config(self):
        config = SyncConfig()

        assert config.inventory_collection == "inventory"
        assert config.transactions_collection == "transactions"
        assert config.max_attempts == 5
        assert config.default_user == "Admin"
        assert config.probe_host is None
        assert config.emit_receipts is True
        assert config.validate() == []

    def test_config_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("STOCKSYNC_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("STOCKSYNC_MAX_ATTEMPTS", "7")
        monkeypatch.setenv("STOCKSYNC_BACKOFF_BASE", "0.5")
        monkeypatch.setenv("STOCKSYNC_EMIT_RECEIPTS", "false")
        monkeypatch.setenv("STOCKSYNC_LOG_LEVEL", "debug")
        monkeypatch.setenv("STOCKSYNC_USER", "Rina")

        config = SyncConfig.from_env()

        assert config.data_dir == str(tmp_path)
        assert config.store_dir == Path(tmp_path) / "store"
        assert config.remote_path == Path(tmp_path) / "remote.json"
        assert config.max_attempts == 7
        assert config.backoff_base_seconds == 0.5
        assert config.emit_receipts is False
        assert config.log_level == "DEBUG"
        assert config.default_user == "Rina"

    def test_backoff_grows_and_caps(self):
        config = SyncConfig(backoff_base_seconds=2.0, backoff_max_seconds=10.0)

        assert [config.backoff_seconds(n) for n in range(0, 6)] == [0.0, 2.0, 4.0, 8.0, 10.0, 10.0]

    def test_config_validation(self):
        config = SyncConfig(max_attempts=0, probe_port=70000, log_level="LOUD",
                            backoff_base_seconds=5.0, backoff_max_seconds=1.0)

        errors = config.validate()

        assert any("max_attempts" in e for e in errors)
        assert any("probe_port" in e for e in errors)
        assert any("log_level" in e for e in errors)
        assert any("backoff_max_seconds" in e for e in errors)
