"""Pending-change queue and cached inventory snapshot.

Both live in the durable store as whole JSON lists. Every mutation is
read-full-list / mutate-in-memory / write-full-list, so a failed write
leaves the stored list exactly as it was.

Mutations of each list are serialised by an asyncio.Lock owned by the
queue: tasks sharing one event loop can interleave at the storage
await, and the lock keeps one enqueue from overwriting another.
"""
import asyncio
import logging
from typing import Callable, Optional

from stocksync.core.constants import (
    PENDING_FLAG,
    STORAGE_KEY_INVENTORY_CACHE,
    STORAGE_KEY_INVENTORY_TIMESTAMP,
    STORAGE_KEY_PENDING_CHANGES,
)
from stocksync.core.models import (
    ChangeStatus,
    InventoryRecord,
    PendingChange,
    is_local_id,
    now_ms,
    swap_links,
)
from stocksync.core.receipt import emit_receipt
from stocksync.core.schemas import validate_change

from .store import KeyValueStore

logger = logging.getLogger("stocksync.queue")


def _entry(record: dict | InventoryRecord) -> dict:
    if isinstance(record, InventoryRecord):
        return record.to_dict()
    return dict(record)


def _mark(entry: dict, pending: bool) -> dict:
    entry.pop(PENDING_FLAG, None)
    if pending:
        entry[PENDING_FLAG] = True
    return entry


class ChangeQueue:
    """Change Queue Manager over a KeyValueStore.

    Attributes:
        store: Durable key-value store
        tenant_id: Tenant stamped on emitted receipts
    """

    def __init__(self, store: KeyValueStore, tenant_id: str = "default"):
        self.store = store
        self.tenant_id = tenant_id
        self._queue_lock = asyncio.Lock()
        self._cache_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Pending queue
    # ------------------------------------------------------------------

    async def _load_changes(self) -> list[PendingChange]:
        raw = await self.store.read(STORAGE_KEY_PENDING_CHANGES, [])
        return [PendingChange.from_dict(item) for item in raw or []]

    async def _save_changes(self, changes: list[PendingChange]) -> None:
        await self.store.write(STORAGE_KEY_PENDING_CHANGES, [c.to_dict() for c in changes])

    async def enqueue(self, change: PendingChange) -> PendingChange:
        """Append a change to the end of the queue.

        Raises:
            StopRule: If the change fails validation (nothing is written)
            StorageFailure: If the queue could not be persisted
        """
        validate_change(change)

        async with self._queue_lock:
            changes = await self._load_changes()
            changes.append(change)
            await self._save_changes(changes)
            queue_size = len(changes)

        logger.debug("Enqueued %s change %s (queue size %d)", change.type, change.id, queue_size)
        emit_receipt("offline_enqueue", {
            "tenant_id": self.tenant_id,
            "change_id": change.id,
            "change_type": change.type,
            "collection": change.collection,
            "item_id": change.target,
            "queue_size": queue_size,
        })
        return change

    async def list_pending(self) -> list[PendingChange]:
        """Full queue in enqueue order; empty list if none."""
        return await self._load_changes()

    async def peek(self, n: int = 10) -> list[PendingChange]:
        """Oldest N changes without removing them."""
        return (await self._load_changes())[:n]

    async def get(self, change_id: str) -> Optional[PendingChange]:
        for change in await self._load_changes():
            if change.id == change_id:
                return change
        return None

    async def remove(self, change_id: str) -> bool:
        """Delete a change by id. Removing an unknown id is a no-op.

        Returns:
            True if an entry was removed
        """
        async with self._queue_lock:
            changes = await self._load_changes()
            remaining = [c for c in changes if c.id != change_id]
            if len(remaining) == len(changes):
                return False
            await self._save_changes(remaining)
        return True

    async def count(self) -> int:
        return len(await self._load_changes())

    async def has_pending(self) -> bool:
        return await self.count() > 0

    async def exhausted_count(self) -> int:
        return sum(1 for c in await self._load_changes() if c.exhausted)

    async def clear_pending(self) -> int:
        """Drop every queued change and settle the optimistic cache entries.

        Returns:
            Number of changes dropped
        """
        async with self._queue_lock:
            changes = await self._load_changes()
            await self.store.remove(STORAGE_KEY_PENDING_CHANGES)
        await self._settle_cache({c.target for c in changes if c.target}, remaining=[])
        return len(changes)

    async def discard(self, change_id: str) -> Optional[PendingChange]:
        """Remove one change without applying it.

        Unlike remove(), the cache entry it touched is settled: an
        unsynced placeholder record disappears, and other entries lose
        their pending flag once no queued change targets them.

        Returns:
            The discarded change, or None if it was not queued
        """
        async with self._queue_lock:
            changes = await self._load_changes()
            discarded = next((c for c in changes if c.id == change_id), None)
            if discarded is None:
                return None
            remaining = [c for c in changes if c.id != change_id]
            await self._save_changes(remaining)

        if discarded.target:
            await self._settle_cache({discarded.target}, remaining)
        logger.info("Discarded %s change %s", discarded.type, discarded.id)
        return discarded

    async def _settle_cache(self, targets: set[str], remaining: list[PendingChange]) -> None:
        if not targets:
            return
        still_targeted = {c.target for c in remaining}
        async with self._cache_lock:
            cache = await self.load_cache()
            settled = []
            for entry in cache:
                entry_id = entry.get("id")
                if entry_id in targets and entry_id not in still_targeted:
                    if is_local_id(entry_id):
                        continue
                    _mark(entry, False)
                settled.append(entry)
            await self.store.write(STORAGE_KEY_INVENTORY_CACHE, settled)

    async def record_failure(
        self,
        change_id: str,
        error: str,
        max_attempts: int,
        backoff_seconds: Callable[[int], float],
        retryable: bool = True,
        at_ms: Optional[int] = None,
    ) -> Optional[PendingChange]:
        """Count a failed attempt, schedule the retry or park the change.

        Args:
            change_id: Change that failed
            error: Error detail kept on the change
            max_attempts: Attempts after which the change is exhausted
            backoff_seconds: Delay for a given attempt count
            retryable: False parks the change immediately
            at_ms: Time of the failure (defaults to now)

        Returns:
            Updated change, or None if it is no longer queued
        """
        at_ms = at_ms if at_ms is not None else now_ms()

        async with self._queue_lock:
            changes = await self._load_changes()
            updated = None
            for change in changes:
                if change.id != change_id:
                    continue
                change.attempts += 1
                change.last_error = error
                if not retryable or change.attempts >= max_attempts:
                    change.status = ChangeStatus.EXHAUSTED
                    change.next_attempt_at = None
                else:
                    delay_ms = int(backoff_seconds(change.attempts) * 1000)
                    change.next_attempt_at = at_ms + delay_ms
                updated = change
                break
            if updated is None:
                return None
            await self._save_changes(changes)

        if updated.exhausted:
            logger.warning("Change %s exhausted after %d attempts: %s",
                           updated.id, updated.attempts, error)
            emit_receipt("change_exhausted", {
                "tenant_id": self.tenant_id,
                "change_id": updated.id,
                "change_type": updated.type,
                "attempts": updated.attempts,
                "last_error": error,
            })
        return updated

    async def reset_attempts(self, change_id: Optional[str] = None) -> int:
        """Make exhausted or backed-off changes due again.

        Args:
            change_id: Single change to reset, or None for all

        Returns:
            Number of changes reset
        """
        async with self._queue_lock:
            changes = await self._load_changes()
            reset = 0
            for change in changes:
                if change_id is not None and change.id != change_id:
                    continue
                if change.attempts == 0 and change.status == ChangeStatus.RETRYABLE:
                    continue
                change.attempts = 0
                change.status = ChangeStatus.RETRYABLE
                change.next_attempt_at = None
                reset += 1
            if reset:
                await self._save_changes(changes)
        return reset

    async def remap_item_id(self, old_id: str, new_id: str) -> int:
        """Point queued changes and cached links at a remote-assigned id.

        Rewrites change targets, parent_id fields and variants lists that
        still mention the placeholder.

        Returns:
            Number of queued changes rewritten
        """
        async with self._queue_lock:
            changes = await self._load_changes()
            rewritten = sum(1 for change in changes if change.remap(old_id, new_id))
            if rewritten:
                await self._save_changes(changes)

        async with self._cache_lock:
            cache = await self.load_cache()
            swapped = [swap_links(entry, old_id, new_id) for entry in cache]
            if any(swapped):
                await self.store.write(STORAGE_KEY_INVENTORY_CACHE, cache)

        return rewritten

    # ------------------------------------------------------------------
    # Cached snapshot
    # ------------------------------------------------------------------

    async def load_cache(self) -> list[dict]:
        """Cached inventory entries; empty list if nothing cached."""
        return list(await self.store.read(STORAGE_KEY_INVENTORY_CACHE, []) or [])

    async def get_cache_entry(self, item_id: str) -> Optional[dict]:
        for entry in await self.load_cache():
            if entry.get("id") == item_id:
                return entry
        return None

    async def upsert_cache_entry(self, record: dict | InventoryRecord, pending: bool = False) -> dict:
        """Replace the entry with the same id, or append it.

        Args:
            record: Full record (must carry "id")
            pending: Mark the entry as an unconfirmed optimistic write
        """
        entry = _mark(_entry(record), pending)
        if not entry.get("id"):
            raise ValueError("Cache entry requires an id")

        async with self._cache_lock:
            cache = await self.load_cache()
            for i, existing in enumerate(cache):
                if existing.get("id") == entry["id"]:
                    cache[i] = entry
                    break
            else:
                cache.append(entry)
            await self.store.write(STORAGE_KEY_INVENTORY_CACHE, cache)
        return entry

    async def patch_cache_entry(self, item_id: str, fields: dict, pending: bool = False) -> dict:
        """Merge fields into the entry with this id, appending if absent."""
        async with self._cache_lock:
            cache = await self.load_cache()
            for i, existing in enumerate(cache):
                if existing.get("id") == item_id:
                    entry = _mark({**existing, **fields, "id": item_id}, pending)
                    cache[i] = entry
                    break
            else:
                entry = _mark({**fields, "id": item_id}, pending)
                cache.append(entry)
            await self.store.write(STORAGE_KEY_INVENTORY_CACHE, cache)
        return entry

    async def remove_cache_entry(self, item_id: str) -> bool:
        """Delete the entry with this id; no-op if absent."""
        async with self._cache_lock:
            cache = await self.load_cache()
            remaining = [e for e in cache if e.get("id") != item_id]
            if len(remaining) == len(cache):
                return False
            await self.store.write(STORAGE_KEY_INVENTORY_CACHE, remaining)
        return True

    async def replace_cache(self, records: list[dict | InventoryRecord]) -> int:
        """Wholesale replace the snapshot and refresh the last-sync timestamp.

        Entries keep a pending flag only if they already carry one.
        """
        entries = [_mark(_entry(r), bool(_entry(r).get(PENDING_FLAG))) for r in records]
        async with self._cache_lock:
            await self.store.write(STORAGE_KEY_INVENTORY_CACHE, entries)
            await self.store.write(STORAGE_KEY_INVENTORY_TIMESTAMP, now_ms())

        emit_receipt("cache_refresh", {
            "tenant_id": self.tenant_id,
            "record_count": len(entries),
        })
        return len(entries)

    async def clear_cache(self) -> None:
        async with self._cache_lock:
            await self.store.remove_many([
                STORAGE_KEY_INVENTORY_CACHE,
                STORAGE_KEY_INVENTORY_TIMESTAMP,
            ])

    async def last_sync_timestamp(self) -> int:
        """Epoch ms of the last successful full read; 0 if never."""
        return int(await self.store.read(STORAGE_KEY_INVENTORY_TIMESTAMP, 0) or 0)
