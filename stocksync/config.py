"""StockSync configuration.

All settings can be overridden via environment variables with the
STOCKSYNC_ prefix.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from stocksync.core.constants import (
    BACKOFF_BASE_SECONDS,
    BACKOFF_MAX_SECONDS,
    DEFAULT_USER,
    INVENTORY_COLLECTION,
    MAX_SYNC_ATTEMPTS,
    POLL_INTERVAL_SECONDS,
    PROBE_PORT,
    PROBE_TIMEOUT_SECONDS,
    TRANSACTIONS_COLLECTION,
)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class SyncConfig:
    """Offline sync configuration."""

    # Local persistence
    data_dir: str = str(Path.home() / ".stocksync")
    tenant_id: str = "default"

    # Remote collections
    inventory_collection: str = INVENTORY_COLLECTION
    transactions_collection: str = TRANSACTIONS_COLLECTION

    # Retry policy
    max_attempts: int = MAX_SYNC_ATTEMPTS
    backoff_base_seconds: float = BACKOFF_BASE_SECONDS
    backoff_max_seconds: float = BACKOFF_MAX_SECONDS

    # Reachability probe; no host means the remote is local (the JSON
    # development remote) and is always reachable
    probe_host: Optional[str] = None
    probe_port: int = PROBE_PORT
    probe_timeout: float = PROBE_TIMEOUT_SECONDS
    poll_interval_seconds: float = POLL_INTERVAL_SECONDS

    # Observability
    emit_receipts: bool = True
    log_level: str = "INFO"

    # Attribution on transaction logs
    default_user: str = DEFAULT_USER

    @property
    def store_dir(self) -> Path:
        return Path(self.data_dir) / "store"

    @property
    def remote_path(self) -> Path:
        return Path(self.data_dir) / "remote.json"

    @classmethod
    def from_env(cls) -> "SyncConfig":
        """Load configuration from environment variables."""
        config = cls()

        if "STOCKSYNC_DATA_DIR" in os.environ:
            config.data_dir = os.environ["STOCKSYNC_DATA_DIR"]
        if "STOCKSYNC_TENANT_ID" in os.environ:
            config.tenant_id = os.environ["STOCKSYNC_TENANT_ID"]

        if "STOCKSYNC_INVENTORY_COLLECTION" in os.environ:
            config.inventory_collection = os.environ["STOCKSYNC_INVENTORY_COLLECTION"]
        if "STOCKSYNC_TRANSACTIONS_COLLECTION" in os.environ:
            config.transactions_collection = os.environ["STOCKSYNC_TRANSACTIONS_COLLECTION"]

        # Retry policy
        if "STOCKSYNC_MAX_ATTEMPTS" in os.environ:
            config.max_attempts = int(os.environ["STOCKSYNC_MAX_ATTEMPTS"])
        if "STOCKSYNC_BACKOFF_BASE" in os.environ:
            config.backoff_base_seconds = float(os.environ["STOCKSYNC_BACKOFF_BASE"])
        if "STOCKSYNC_BACKOFF_MAX" in os.environ:
            config.backoff_max_seconds = float(os.environ["STOCKSYNC_BACKOFF_MAX"])

        # Probe
        if "STOCKSYNC_PROBE_HOST" in os.environ:
            config.probe_host = os.environ["STOCKSYNC_PROBE_HOST"]
        if "STOCKSYNC_PROBE_PORT" in os.environ:
            config.probe_port = int(os.environ["STOCKSYNC_PROBE_PORT"])
        if "STOCKSYNC_PROBE_TIMEOUT" in os.environ:
            config.probe_timeout = float(os.environ["STOCKSYNC_PROBE_TIMEOUT"])
        if "STOCKSYNC_POLL_INTERVAL" in os.environ:
            config.poll_interval_seconds = float(os.environ["STOCKSYNC_POLL_INTERVAL"])

        if "STOCKSYNC_EMIT_RECEIPTS" in os.environ:
            config.emit_receipts = os.environ["STOCKSYNC_EMIT_RECEIPTS"].lower() == "true"
        if "STOCKSYNC_LOG_LEVEL" in os.environ:
            config.log_level = os.environ["STOCKSYNC_LOG_LEVEL"].upper()
        if "STOCKSYNC_USER" in os.environ:
            config.default_user = os.environ["STOCKSYNC_USER"]

        return config

    def backoff_seconds(self, attempts: int) -> float:
        """Delay before the next attempt after `attempts` failures."""
        if attempts < 1:
            return 0.0
        return min(self.backoff_max_seconds, self.backoff_base_seconds * 2 ** (attempts - 1))

    def validate(self) -> list[str]:
        """Validate configuration. Returns list of errors."""
        errors = []

        if not self.data_dir:
            errors.append("data_dir must not be empty")

        if self.max_attempts < 1:
            errors.append(f"max_attempts must be >= 1, got {self.max_attempts}")

        if self.backoff_base_seconds < 0:
            errors.append(f"backoff_base_seconds must be >= 0, got {self.backoff_base_seconds}")

        if self.backoff_max_seconds < self.backoff_base_seconds:
            errors.append("backoff_max_seconds must be >= backoff_base_seconds")

        if self.probe_port < 1 or self.probe_port > 65535:
            errors.append(f"Invalid probe_port: {self.probe_port}")

        if self.probe_timeout <= 0:
            errors.append(f"probe_timeout must be > 0, got {self.probe_timeout}")

        if self.poll_interval_seconds <= 0:
            errors.append(f"poll_interval_seconds must be > 0, got {self.poll_interval_seconds}")

        if self.log_level not in _LOG_LEVELS:
            errors.append(f"Unknown log_level: {self.log_level}")

        return errors


# Default configuration instance
DEFAULT_CONFIG = SyncConfig.from_env()
