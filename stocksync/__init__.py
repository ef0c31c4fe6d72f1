"""
StockSync - Offline-first inventory sync

Inventory edits made without a connection are applied to a local cache
immediately and queued durably. When connectivity returns the queue is
replayed against the cloud document store, oldest change first.
"""

__version__ = "1.0.0"

from stocksync.core.receipt import StopRule, emit_receipt
from stocksync.core.models import InventoryRecord, PendingChange, TransactionLog
from stocksync.config import DEFAULT_CONFIG, SyncConfig
from stocksync.inventory import InventoryService, MutationOutcome

__all__ = [
    "__version__",
    "StopRule",
    "emit_receipt",
    "InventoryRecord",
    "PendingChange",
    "TransactionLog",
    "DEFAULT_CONFIG",
    "SyncConfig",
    "InventoryService",
    "MutationOutcome",
]
