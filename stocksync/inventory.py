"""Inventory mutations and reads for the presentation layer.

Every mutation takes one of two paths:

- Online, with nothing queued for the record: apply to the remote
  store, then confirm in the cache. Remote failures raise immediately.
- Otherwise: validate, write the cache optimistically (entry marked
  pending), enqueue a PendingChange and refresh the pending count. The
  caller gets MutationOutcome(queued=True), "saved locally".

Records with queued changes always take the second path, so a direct
remote write can never overtake an older queued change for the same
record.
"""
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from stocksync.config import DEFAULT_CONFIG, SyncConfig
from stocksync.core.constants import (
    CHANGE_ADD,
    CHANGE_DELETE,
    CHANGE_STOCK_ADJUST,
    CHANGE_UPDATE,
    DEFAULT_ADJUST_REASON,
    MOVEMENT_IN,
    MOVEMENT_OUT,
    PENDING_FLAG,
)
from stocksync.core.models import (
    InventoryRecord,
    PendingChange,
    TransactionLog,
    is_local_id,
    new_local_id,
)
from stocksync.core.receipt import StopRule
from stocksync.core.schemas import validate_change, validate_record
from stocksync.offline.remote import RemoteStore
from stocksync.offline.session import OfflineSession
from stocksync.offline.store import StorageFailure

logger = logging.getLogger("stocksync.inventory")

_LINK_FIELDS = ("parent_id", "variants")


@dataclass
class MutationOutcome:
    """Result of one user mutation."""
    item_id: Optional[str]
    queued: bool
    change_id: Optional[str] = None
    record: Optional[dict] = None

    @property
    def message(self) -> str:
        if self.queued:
            return "Saved locally, will sync later"
        return "Saved"


def _clean(data: dict) -> dict:
    return {k: v for k, v in data.items() if k not in ("id", PENDING_FLAG)}


class InventoryService:
    """Mutation and read facade over the offline session and remote store."""

    def __init__(
        self,
        session: OfflineSession,
        remote: RemoteStore,
        config: Optional[SyncConfig] = None,
    ):
        self.session = session
        self.queue = session.queue
        self.remote = remote
        self.config = config or session.config or DEFAULT_CONFIG
        self.collection = self.config.inventory_collection

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_items(self) -> list[InventoryRecord]:
        """Cached inventory, optimistic entries included."""
        return [InventoryRecord.from_dict(e) for e in await self.queue.load_cache()]

    async def get_item(self, item_id: str) -> Optional[InventoryRecord]:
        entry = await self.queue.get_cache_entry(item_id)
        return InventoryRecord.from_dict(entry) if entry else None

    async def variants_of(self, parent_id: str) -> list[InventoryRecord]:
        parent = await self._require(parent_id)
        items = {item.id: item for item in await self.list_items()}
        return [items[v] for v in parent.variants if v in items]

    async def refresh_cache(self) -> list[InventoryRecord]:
        """Replace the cache from a full remote read when online.

        Offline, or with the remote unreachable, the cache is returned
        unchanged.
        """
        if not self.session.is_online:
            return await self.list_items()
        records = await self.remote.list_records(self.collection)
        await self._mirror(records)
        return await self.list_items()

    async def watch(self) -> AsyncIterator[list[InventoryRecord]]:
        """Mirror live remote snapshots into the cache and yield them."""
        stream = self.remote.subscribe(self.collection)
        try:
            async for snapshot in stream:
                await self._mirror(snapshot)
                yield await self.list_items()
        finally:
            await stream.aclose()

    async def _mirror(self, records: list[dict]) -> None:
        # Optimistic entries stay on top until their changes are confirmed
        merged = {r["id"]: r for r in records}
        for entry in await self.queue.load_cache():
            if entry.get(PENDING_FLAG):
                merged[entry["id"]] = entry
        for change in await self.queue.list_pending():
            if change.type == CHANGE_DELETE:
                merged.pop(change.target, None)
        await self.queue.replace_cache(list(merged.values()))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_item(self, data: dict) -> MutationOutcome:
        """Create a record (remote id online, placeholder id offline)."""
        record = _clean(data)
        validate_record(record)
        if any(record.get(f) for f in _LINK_FIELDS):
            raise StopRule("Use link_variant to attach variants")

        if self.session.is_online:
            created = await self.remote.create_record(self.collection, record)
            entry = await self.queue.upsert_cache_entry({**record, "id": created["id"]})
            return MutationOutcome(created["id"], queued=False, record=entry)

        local_id = new_local_id()
        change = PendingChange(type=CHANGE_ADD, collection=self.collection,
                               data=record, local_id=local_id)
        validate_change(change)
        entry = await self.queue.upsert_cache_entry({**record, "id": local_id}, pending=True)
        await self._enqueue(change, local_id, previous=None)
        return MutationOutcome(local_id, queued=True, change_id=change.id, record=entry)

    async def update_item(self, item_id: str, fields: dict) -> MutationOutcome:
        """Patch record fields other than variant links."""
        patch = _clean(fields)
        if any(f in patch for f in _LINK_FIELDS):
            raise StopRule("Use link_variant/unlink_variant to change variant links")
        return await self._update(item_id, patch)

    async def delete_item(self, item_id: str, cascade: bool = False) -> list[MutationOutcome]:
        """Delete a record.

        A parent with variants is rejected unless cascade=True, which
        deletes the variants first. Deleting a variant detaches it from
        its parent.

        Returns:
            One outcome per deleted record, variants first
        """
        record = await self._require(item_id)
        outcomes = []

        if record.has_variants:
            if not cascade:
                raise StopRule(
                    f"Item {item_id} has {len(record.variants)} variants; "
                    "delete them first or pass cascade=True"
                )
            for variant_id in list(record.variants):
                if await self.queue.get_cache_entry(variant_id) is not None:
                    outcomes.extend(await self.delete_item(variant_id))
            record = await self._require(item_id)

        if record.parent_id:
            parent = await self.get_item(record.parent_id)
            if parent is not None:
                remaining = [v for v in parent.variants if v != item_id]
                await self._update(parent.id, {"variants": remaining, "is_parent": bool(remaining)})

        outcomes.append(await self._delete(item_id))
        return outcomes

    async def adjust_stock(
        self,
        item_id: str,
        adjustment: int,
        reason: str = DEFAULT_ADJUST_REASON,
        notes: str = "",
        user: Optional[str] = None,
        current_stock: Optional[int] = None,
    ) -> MutationOutcome:
        """Move stock in or out and log the movement.

        Args:
            item_id: Record to adjust
            adjustment: Signed number of units (positive = in)
            reason: Movement reason for the transaction log
            notes: Free-form notes
            user: Actor recorded on the log (defaults to config)
            current_stock: Stock the caller displayed; defaults to the cache

        Raises:
            StopRule: Zero adjustment, or a resulting stock below 0
        """
        if adjustment == 0:
            raise StopRule("No stock change")
        record = await self._require(item_id)
        old_stock = current_stock if current_stock is not None else (record.stock or 0)
        new_stock = old_stock + adjustment
        if new_stock < 0:
            raise StopRule(f"Stock cannot go below 0 ({old_stock} {adjustment:+d})")

        movement = {
            "new_stock": new_stock,
            "old_stock": old_stock,
            "quantity": abs(adjustment),
            "type": MOVEMENT_IN if adjustment > 0 else MOVEMENT_OUT,
            "reason": reason,
            "notes": notes or "",
            "user": user or self.config.default_user,
            "item_name": record.name or "",
        }

        if not await self._must_queue(item_id):
            await self.remote.update_record(self.collection, item_id, {"stock": new_stock})
            log = TransactionLog(
                item_id=item_id,
                item_name=movement["item_name"],
                type=movement["type"],
                quantity=movement["quantity"],
                old_stock=old_stock,
                new_stock=new_stock,
                reason=reason,
                notes=movement["notes"],
                user=movement["user"],
            )
            await self.remote.create_log_entry(self.config.transactions_collection, log.to_dict())
            entry = await self.queue.patch_cache_entry(item_id, {"stock": new_stock})
            return MutationOutcome(item_id, queued=False, record=entry)

        change = PendingChange(type=CHANGE_STOCK_ADJUST, collection=self.collection,
                               data=movement, item_id=item_id)
        validate_change(change)
        previous = await self.queue.get_cache_entry(item_id)
        entry = await self.queue.patch_cache_entry(item_id, {"stock": new_stock}, pending=True)
        await self._enqueue(change, item_id, previous)
        return MutationOutcome(item_id, queued=True, change_id=change.id, record=entry)

    async def link_variant(
        self,
        parent_id: str,
        variant_id: str,
        variant_name: Optional[str] = None,
    ) -> list[MutationOutcome]:
        """Attach variant_id under parent_id as one checked operation.

        Raises:
            StopRule: Self-link, parent that is itself a variant, variant
                that already has variants or another parent
        """
        if parent_id == variant_id:
            raise StopRule("A record cannot be its own variant")
        parent = await self._require(parent_id)
        variant = await self._require(variant_id)

        if parent.is_variant:
            raise StopRule(f"{parent_id} is a variant and cannot have variants")
        if variant.has_variants:
            raise StopRule(f"{variant_id} is a parent and cannot become a variant")
        if variant.parent_id and variant.parent_id != parent_id:
            raise StopRule(f"{variant_id} already belongs to {variant.parent_id}")

        variant_patch = {"parent_id": parent_id, "is_parent": False}
        if variant_name is not None:
            variant_patch["variant_name"] = variant_name
        variants = parent.variants if variant_id in parent.variants else parent.variants + [variant_id]

        return [
            await self._update(variant_id, variant_patch),
            await self._update(parent_id, {"variants": variants, "is_parent": True}),
        ]

    async def unlink_variant(self, variant_id: str) -> list[MutationOutcome]:
        """Detach a variant from its parent."""
        variant = await self._require(variant_id)
        if not variant.parent_id:
            raise StopRule(f"{variant_id} is not a variant")
        outcomes = [await self._update(variant_id, {"parent_id": None})]
        parent = await self.get_item(variant.parent_id)
        if parent is not None:
            remaining = [v for v in parent.variants if v != variant_id]
            outcomes.append(await self._update(parent.id, {"variants": remaining,
                                                           "is_parent": bool(remaining)}))
        return outcomes

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _require(self, item_id: str) -> InventoryRecord:
        record = await self.get_item(item_id)
        if record is None:
            raise StopRule(f"Unknown item: {item_id}")
        return record

    async def _must_queue(self, item_id: str) -> bool:
        if not self.session.is_online or is_local_id(item_id):
            return True
        return any(c.target == item_id for c in await self.queue.list_pending())

    async def _update(self, item_id: str, patch: dict) -> MutationOutcome:
        validate_record(patch, partial=True)

        if not await self._must_queue(item_id):
            await self.remote.update_record(self.collection, item_id, patch)
            entry = await self.queue.patch_cache_entry(item_id, patch)
            return MutationOutcome(item_id, queued=False, record=entry)

        change = PendingChange(type=CHANGE_UPDATE, collection=self.collection,
                               data=patch, item_id=item_id)
        validate_change(change)
        previous = await self.queue.get_cache_entry(item_id)
        entry = await self.queue.patch_cache_entry(item_id, patch, pending=True)
        await self._enqueue(change, item_id, previous)
        return MutationOutcome(item_id, queued=True, change_id=change.id, record=entry)

    async def _delete(self, item_id: str) -> MutationOutcome:
        if not await self._must_queue(item_id):
            await self.remote.delete_record(self.collection, item_id)
            await self.queue.remove_cache_entry(item_id)
            return MutationOutcome(item_id, queued=False)

        change = PendingChange(type=CHANGE_DELETE, collection=self.collection, item_id=item_id)
        previous = await self.queue.get_cache_entry(item_id)
        await self.queue.remove_cache_entry(item_id)
        await self._enqueue(change, item_id, previous)
        return MutationOutcome(item_id, queued=True, change_id=change.id)

    async def _enqueue(self, change: PendingChange, item_id: str, previous: Optional[dict]) -> None:
        """Enqueue after an optimistic cache write, undoing it if the queue write fails."""
        try:
            await self.queue.enqueue(change)
        except StorageFailure:
            logger.error("Offline save failed for %s; restoring cache entry", item_id)
            if previous is None:
                await self.queue.remove_cache_entry(item_id)
            else:
                await self.queue.upsert_cache_entry(previous, pending=bool(previous.get(PENDING_FLAG)))
            raise
        await self.session.refresh_pending_count()
