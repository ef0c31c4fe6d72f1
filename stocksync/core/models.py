"""Inventory data model: records, pending changes, transaction logs.

All types round-trip through plain dicts so the durable store can keep
them as JSON lists.
"""
import time
import uuid
from dataclasses import dataclass, field, fields
from typing import Optional

from .constants import LOCAL_ID_PREFIX, PENDING_FLAG


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_change_id() -> str:
    """Globally unique pending-change identifier."""
    return str(uuid.uuid4())


def new_local_id() -> str:
    """Placeholder record id used until the remote assigns a real one."""
    return f"{LOCAL_ID_PREFIX}{uuid.uuid4()}"


def is_local_id(item_id: Optional[str]) -> bool:
    return bool(item_id) and item_id.startswith(LOCAL_ID_PREFIX)


def swap_links(data: dict, old_id: str, new_id: str) -> bool:
    """Replace old_id in the parent_id / variants fields of one dict.

    Returns:
        True if anything changed
    """
    changed = False
    if data.get("parent_id") == old_id:
        data["parent_id"] = new_id
        changed = True
    variants = data.get("variants")
    if variants and old_id in variants:
        data["variants"] = [new_id if v == old_id else v for v in variants]
        changed = True
    return changed


class ChangeStatus:
    """Retry state of a queued change."""
    RETRYABLE = "retryable"  # Will be attempted on the next due drain
    EXHAUSTED = "exhausted"  # Parked until reset or discarded


@dataclass
class InventoryRecord:
    """One stock-keeping unit, or a variant of one."""
    id: str
    name: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    category: Optional[str] = None
    quality: Optional[str] = None
    location: Optional[str] = None
    barcode: Optional[str] = None
    stock: Optional[int] = None
    price_buy: Optional[float] = None
    price_sell: Optional[float] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    parent_id: Optional[str] = None
    variants: list[str] = field(default_factory=list)
    variant_name: Optional[str] = None
    is_parent: Optional[bool] = None
    pending: bool = False

    @property
    def is_variant(self) -> bool:
        return self.parent_id is not None

    @property
    def has_variants(self) -> bool:
        return len(self.variants) > 0

    def to_dict(self) -> dict:
        """Serialize for the cache, dropping unset optional fields."""
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "pending":
                continue
            if value is None:
                continue
            if f.name == "variants" and not value:
                continue
            out[f.name] = list(value) if f.name == "variants" else value
        if self.pending:
            out[PENDING_FLAG] = True
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "InventoryRecord":
        """Build from a cache entry or remote document; unknown keys are ignored."""
        known = {f.name for f in fields(cls)} - {"pending"}
        kwargs = {k: v for k, v in data.items() if k in known}
        kwargs["variants"] = list(data.get("variants") or [])
        return cls(pending=bool(data.get(PENDING_FLAG, False)), **kwargs)


@dataclass
class PendingChange:
    """One mutation not yet confirmed against the remote store."""
    type: str
    collection: str
    data: dict = field(default_factory=dict)
    item_id: Optional[str] = None
    id: str = field(default_factory=new_change_id)
    timestamp: int = field(default_factory=now_ms)
    attempts: int = 0
    status: str = ChangeStatus.RETRYABLE
    last_error: Optional[str] = None
    next_attempt_at: Optional[int] = None
    local_id: Optional[str] = None

    @property
    def target(self) -> Optional[str]:
        """Record this change applies to (placeholder id for offline adds)."""
        return self.item_id or self.local_id

    @property
    def exhausted(self) -> bool:
        return self.status == ChangeStatus.EXHAUSTED

    def is_due(self, at_ms: Optional[int] = None) -> bool:
        """True when backoff has elapsed (or no attempt has failed yet)."""
        if self.next_attempt_at is None:
            return True
        return (at_ms if at_ms is not None else now_ms()) >= self.next_attempt_at

    def remap(self, old_id: str, new_id: str) -> bool:
        """Point the target and any payload links at new_id. Returns True if changed."""
        changed = swap_links(self.data, old_id, new_id)
        if self.item_id == old_id:
            self.item_id = new_id
            changed = True
        return changed

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "collection": self.collection,
            "data": dict(self.data),
            "timestamp": self.timestamp,
            "item_id": self.item_id,
            "attempts": self.attempts,
            "status": self.status,
            "last_error": self.last_error,
            "next_attempt_at": self.next_attempt_at,
            "local_id": self.local_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PendingChange":
        return cls(
            id=data["id"],
            type=data["type"],
            collection=data["collection"],
            data=dict(data.get("data") or {}),
            timestamp=data.get("timestamp", 0),
            item_id=data.get("item_id"),
            attempts=data.get("attempts", 0),
            status=data.get("status", ChangeStatus.RETRYABLE),
            last_error=data.get("last_error"),
            next_attempt_at=data.get("next_attempt_at"),
            local_id=data.get("local_id"),
        )


@dataclass
class TransactionLog:
    """Stock movement record written alongside every stock adjustment."""
    item_id: str
    item_name: str
    type: str
    quantity: int
    old_stock: int
    new_stock: int
    reason: str
    notes: str = ""
    user: Optional[str] = None
    timestamp: Optional[str] = None

    @property
    def delta(self) -> int:
        return self.new_stock - self.old_stock

    def to_dict(self) -> dict:
        out = {
            "item_id": self.item_id,
            "item_name": self.item_name,
            "type": self.type,
            "quantity": self.quantity,
            "delta": self.delta,
            "old_stock": self.old_stock,
            "new_stock": self.new_stock,
            "reason": self.reason,
            "notes": self.notes,
        }
        if self.user is not None:
            out["user"] = self.user
        if self.timestamp is not None:
            out["timestamp"] = self.timestamp
        return out
