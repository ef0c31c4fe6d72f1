"""Sync engine: replay the pending queue against the remote store.

Drain process:
1. Read the full pending queue (enqueue order)
2. Apply each due change to the remote store, one at a time
3. On success, reflect the confirmed state in the cache and dequeue
4. On failure, keep the change queued, count the attempt, move on
5. Report success / failure / skipped counts with error details

A change leaves the queue only after its remote call succeeded. A crash
between remote success and dequeue replays the change next pass; adds
and transaction logs carry the change id as an idempotency key so the
replay is absorbed by the remote.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from stocksync.config import DEFAULT_CONFIG, SyncConfig
from stocksync.core.constants import (
    CHANGE_ADD,
    CHANGE_DELETE,
    CHANGE_STOCK_ADJUST,
    CHANGE_UPDATE,
    PENDING_FLAG,
)
from stocksync.core.models import PendingChange, TransactionLog, now_ms
from stocksync.core.receipt import StopRule, emit_receipt

from .queue import ChangeQueue
from .remote import RemoteError, RemoteStore
from .store import StorageFailure

logger = logging.getLogger("stocksync.sync")


@dataclass
class SyncFailure:
    """One change that failed during a drain."""
    change: PendingChange
    error: str
    retryable: bool = True

    def to_dict(self) -> dict:
        return {
            "change_id": self.change.id,
            "change_type": self.change.type,
            "item_id": self.change.target,
            "error": self.error,
            "retryable": self.retryable,
        }


@dataclass
class SyncResult:
    """Outcome of one drain pass."""
    success_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0
    errors: list[SyncFailure] = field(default_factory=list)
    applied: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return self.failure_count == 0

    def to_dict(self) -> dict:
        return {
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "skipped_count": self.skipped_count,
            "errors": [e.to_dict() for e in self.errors],
            "applied": list(self.applied),
        }


def _payload(data: dict) -> dict:
    return {k: v for k, v in data.items() if k not in ("id", PENDING_FLAG)}


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, RemoteError):
        return error.retryable
    if isinstance(error, StopRule):
        return False
    return True


class SyncEngine:
    """Applies pending changes to the remote store."""

    def __init__(
        self,
        queue: ChangeQueue,
        remote: RemoteStore,
        config: Optional[SyncConfig] = None,
    ):
        self.queue = queue
        self.remote = remote
        self.config = config or DEFAULT_CONFIG

    async def _still_pending(self, item_id: str, exclude_change: str) -> bool:
        """True if another queued change still targets this record."""
        for other in await self.queue.list_pending():
            if other.id != exclude_change and other.target == item_id:
                return True
        return False

    async def apply_change(self, change: PendingChange) -> Optional[str]:
        """Apply one change remotely, then confirm it in the cache.

        Args:
            change: Change to apply

        Returns:
            Remote-assigned id for add changes, else None

        Raises:
            RemoteError: Remote call failed (nothing confirmed locally)
            StopRule: Change is malformed
            StorageFailure: Remote succeeded but the cache write failed
        """
        mirrors_cache = change.collection == self.config.inventory_collection
        payload = _payload(change.data)

        if change.type == CHANGE_ADD:
            created = await self.remote.create_record(
                change.collection, payload, idempotency_key=change.id,
            )
            new_id = created["id"]
            if mirrors_cache:
                placeholder = None
                if change.local_id:
                    placeholder = await self.queue.get_cache_entry(change.local_id)
                    await self.queue.remove_cache_entry(change.local_id)
                    await self.queue.remap_item_id(change.local_id, new_id)
                pending = await self._still_pending(new_id, change.id)
                # Later queued edits are already folded into the placeholder entry
                confirmed = _payload(placeholder) if pending and placeholder else payload
                await self.queue.upsert_cache_entry({**confirmed, "id": new_id}, pending=pending)
            return new_id

        if not change.item_id:
            raise StopRule(f"Item ID is required for {change.type} operation")

        if change.type == CHANGE_UPDATE:
            await self.remote.update_record(change.collection, change.item_id, payload)
            if mirrors_cache:
                pending = await self._still_pending(change.item_id, change.id)
                await self.queue.patch_cache_entry(change.item_id, payload, pending=pending)

        elif change.type == CHANGE_DELETE:
            await self.remote.delete_record(change.collection, change.item_id)
            if mirrors_cache:
                await self.queue.remove_cache_entry(change.item_id)

        elif change.type == CHANGE_STOCK_ADJUST:
            new_stock = payload["new_stock"]
            await self.remote.update_record(change.collection, change.item_id, {"stock": new_stock})
            log = TransactionLog(
                item_id=change.item_id,
                item_name=payload.get("item_name", ""),
                type=payload["type"],
                quantity=payload["quantity"],
                old_stock=payload["old_stock"],
                new_stock=new_stock,
                reason=payload.get("reason", ""),
                notes=payload.get("notes", ""),
                user=payload.get("user"),
            )
            await self.remote.create_log_entry(
                self.config.transactions_collection, log.to_dict(), idempotency_key=change.id,
            )
            if mirrors_cache:
                pending = await self._still_pending(change.item_id, change.id)
                await self.queue.patch_cache_entry(change.item_id, {"stock": new_stock}, pending=pending)

        else:
            raise StopRule(f"Unknown change type: {change.type}")

        return None

    async def drain_queue(self, force: bool = False, at_ms: Optional[int] = None) -> SyncResult:
        """Attempt every queued change once, in enqueue order.

        Exhausted changes and changes still in backoff are skipped
        (force=True ignores backoff only). Once a record has a failed or
        skipped change in this pass, its later changes are skipped too.

        Args:
            force: Attempt changes whose backoff has not elapsed
            at_ms: Clock reading used for backoff decisions

        Returns:
            SyncResult with counts and per-change errors

        Raises:
            StorageFailure: Local queue or cache could not be updated
        """
        at_ms = at_ms if at_ms is not None else now_ms()
        changes = await self.queue.list_pending()
        result = SyncResult()
        blocked: set[str] = set()
        remapped: dict[str, str] = {}

        logger.info("Draining %d pending changes", len(changes))

        for change in changes:
            # The stored copies were remapped already; this snapshot predates that
            for old_id, new_id in remapped.items():
                change.remap(old_id, new_id)
            target = change.target

            if target in blocked or change.exhausted or (not force and not change.is_due(at_ms)):
                result.skipped_count += 1
                if target:
                    blocked.add(target)
                continue

            try:
                assigned = await self.apply_change(change)
            except StorageFailure:
                raise
            except Exception as e:
                error = str(e) or type(e).__name__
                retryable = _is_retryable(e)
                await self.queue.record_failure(
                    change.id,
                    error,
                    max_attempts=self.config.max_attempts,
                    backoff_seconds=self.config.backoff_seconds,
                    retryable=retryable,
                    at_ms=at_ms,
                )
                result.failure_count += 1
                result.errors.append(SyncFailure(change, error, retryable))
                if target:
                    blocked.add(target)
                logger.warning("Change %s (%s) failed: %s", change.id, change.type, error)
                emit_receipt("sync_change", {
                    "tenant_id": self.config.tenant_id,
                    "change_id": change.id,
                    "change_type": change.type,
                    "item_id": target,
                    "status": "failed",
                    "error": error,
                })
                continue

            await self.queue.remove(change.id)
            if assigned and change.local_id:
                remapped[change.local_id] = assigned
            result.success_count += 1
            result.applied.append(change.id)
            emit_receipt("sync_change", {
                "tenant_id": self.config.tenant_id,
                "change_id": change.id,
                "change_type": change.type,
                "item_id": assigned or target,
                "status": "applied",
            })

        logger.info("Sync completed: %d succeeded, %d failed, %d skipped",
                    result.success_count, result.failure_count, result.skipped_count)
        emit_receipt("offline_sync", {
            "tenant_id": self.config.tenant_id,
            "success_count": result.success_count,
            "failure_count": result.failure_count,
            "skipped_count": result.skipped_count,
        })
        return result
