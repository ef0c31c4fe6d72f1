"""Core subpackage for StockSync data model and receipt primitives.

Exports all from receipt.py, models.py and schemas.py.
"""
from .receipt import dual_hash, emit_receipt, utc_now_iso, StopRule
from .models import (
    ChangeStatus,
    InventoryRecord,
    PendingChange,
    TransactionLog,
    is_local_id,
    new_change_id,
    new_local_id,
    now_ms,
    swap_links,
)
from .schemas import RECORD_SCHEMA, validate_change, validate_record

__all__ = [
    "dual_hash",
    "emit_receipt",
    "utc_now_iso",
    "StopRule",
    "ChangeStatus",
    "InventoryRecord",
    "PendingChange",
    "TransactionLog",
    "is_local_id",
    "new_change_id",
    "new_local_id",
    "now_ms",
    "swap_links",
    "RECORD_SCHEMA",
    "validate_change",
    "validate_record",
]
