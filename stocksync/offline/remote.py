"""Remote document store contract and local implementations.

The sync core needs four calls from the cloud database: create, patch
and delete a document, and append a log entry. Each may raise
RemoteError. Reads go through list_records (one-shot) or subscribe
(live full-result snapshots).

MemoryRemoteStore is an in-process store honouring the same contract,
including server-assigned ids/timestamps and idempotency keys.
JsonRemoteStore persists it to a single JSON file for local use.
"""
import asyncio
import copy
import json
import uuid
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

from stocksync.core.receipt import utc_now_iso


class RemoteError(Exception):
    """Remote call failed (transport, permission or validation)."""

    UNAVAILABLE = "unavailable"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    INVALID_ARGUMENT = "invalid_argument"

    _RETRYABLE_CODES = (UNAVAILABLE, DEADLINE_EXCEEDED)

    def __init__(self, message: str, code: str = UNAVAILABLE, retryable: Optional[bool] = None):
        super().__init__(message)
        self.code = code
        self.retryable = code in self._RETRYABLE_CODES if retryable is None else retryable


class RemoteStore:
    """Contract the sync core consumes from the cloud document database."""

    async def create_record(self, collection: str, data: dict,
                            idempotency_key: Optional[str] = None) -> dict:
        """Create a document. Returns {"id", "created_at", "updated_at"}."""
        raise NotImplementedError

    async def update_record(self, collection: str, record_id: str, patch: dict) -> str:
        """Patch a document. Returns the assigned updated_at."""
        raise NotImplementedError

    async def delete_record(self, collection: str, record_id: str) -> None:
        raise NotImplementedError

    async def create_log_entry(self, collection: str, data: dict,
                               idempotency_key: Optional[str] = None) -> str:
        """Append a log document. Returns its id."""
        raise NotImplementedError

    async def list_records(self, collection: str) -> list[dict]:
        raise NotImplementedError

    def subscribe(self, collection: str) -> AsyncIterator[list[dict]]:
        """Live stream of full-collection snapshots; cancel with aclose()."""
        raise NotImplementedError


def _random_id() -> str:
    return uuid.uuid4().hex[:20]


class MemoryRemoteStore(RemoteStore):
    """In-process document store.

    Attributes:
        available: False makes every call raise RemoteError(UNAVAILABLE)
        delay: Seconds each call suspends for, to simulate latency
        calls: Log of (operation, collection, record_id) in call order
    """

    def __init__(self, id_factory: Optional[Callable[[], str]] = None, delay: float = 0.0):
        self.id_factory = id_factory or _random_id
        self.delay = delay
        self.available = True
        self.calls: list[tuple[str, str, Optional[str]]] = []
        self._collections: dict[str, dict[str, dict]] = {}
        self._idempotency: dict[str, dict] = {}
        self._failures: list[dict] = []
        self._subscribers: dict[str, list[asyncio.Queue]] = {}

    # ------------------------------------------------------------------
    # Failure injection and inspection
    # ------------------------------------------------------------------

    def inject_failure(
        self,
        operation: str,
        record_id: Optional[str] = None,
        error: Optional[RemoteError] = None,
        times: int = 1,
    ) -> None:
        """Make the next `times` matching calls raise.

        Args:
            operation: create_record, update_record, delete_record,
                create_log_entry or list_records
            record_id: Only fail calls for this id (None matches any)
            error: Error to raise (defaults to a retryable network error)
            times: Number of calls to fail
        """
        self._failures.append({
            "operation": operation,
            "record_id": record_id,
            "error": error or RemoteError("network error", RemoteError.UNAVAILABLE),
            "times": times,
        })

    def get(self, collection: str, record_id: str) -> Optional[dict]:
        doc = self._collections.get(collection, {}).get(record_id)
        return {"id": record_id, **copy.deepcopy(doc)} if doc is not None else None

    def seed(self, collection: str, record_id: str, data: dict) -> None:
        """Insert a document directly, bypassing the call log."""
        self._collections.setdefault(collection, {})[record_id] = copy.deepcopy(data)

    def snapshot(self, collection: str) -> list[dict]:
        return [{"id": rid, **copy.deepcopy(doc)}
                for rid, doc in self._collections.get(collection, {}).items()]

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    async def _enter(self, operation: str, collection: str, record_id: Optional[str]) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        else:
            await asyncio.sleep(0)
        if not self.available:
            raise RemoteError("Remote store unreachable", RemoteError.UNAVAILABLE)
        for rule in self._failures:
            if rule["operation"] != operation or rule["times"] <= 0:
                continue
            if rule["record_id"] is not None and rule["record_id"] != record_id:
                continue
            rule["times"] -= 1
            raise rule["error"]
        self.calls.append((operation, collection, record_id))

    async def create_record(self, collection: str, data: dict,
                            idempotency_key: Optional[str] = None) -> dict:
        await self._enter("create_record", collection, None)
        if idempotency_key and idempotency_key in self._idempotency:
            return dict(self._idempotency[idempotency_key])

        record_id = self.id_factory()
        ts = utc_now_iso()
        doc = {**copy.deepcopy(data), "created_at": ts, "updated_at": ts}
        doc.pop("id", None)
        self._collections.setdefault(collection, {})[record_id] = doc
        result = {"id": record_id, "created_at": ts, "updated_at": ts}
        if idempotency_key:
            self._idempotency[idempotency_key] = result
        self._changed(collection)
        return dict(result)

    async def update_record(self, collection: str, record_id: str, patch: dict) -> str:
        await self._enter("update_record", collection, record_id)
        docs = self._collections.get(collection, {})
        if record_id not in docs:
            raise RemoteError(f"No document {collection}/{record_id}", RemoteError.NOT_FOUND)
        ts = utc_now_iso()
        fields = {k: v for k, v in copy.deepcopy(patch).items() if k != "id"}
        docs[record_id].update(fields, updated_at=ts)
        self._changed(collection)
        return ts

    async def delete_record(self, collection: str, record_id: str) -> None:
        await self._enter("delete_record", collection, record_id)
        if self._collections.get(collection, {}).pop(record_id, None) is not None:
            self._changed(collection)

    async def create_log_entry(self, collection: str, data: dict,
                               idempotency_key: Optional[str] = None) -> str:
        await self._enter("create_log_entry", collection, None)
        if idempotency_key and idempotency_key in self._idempotency:
            return self._idempotency[idempotency_key]["id"]
        entry_id = self.id_factory()
        self._collections.setdefault(collection, {})[entry_id] = {
            **copy.deepcopy(data), "timestamp": utc_now_iso(),
        }
        if idempotency_key:
            self._idempotency[idempotency_key] = {"id": entry_id}
        self._changed(collection)
        return entry_id

    async def list_records(self, collection: str) -> list[dict]:
        await self._enter("list_records", collection, None)
        return self.snapshot(collection)

    async def subscribe(self, collection: str) -> AsyncIterator[list[dict]]:
        if not self.available:
            raise RemoteError("Remote store unreachable", RemoteError.UNAVAILABLE)
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(collection, []).append(queue)
        try:
            yield self.snapshot(collection)
            while True:
                yield await queue.get()
        finally:
            self._subscribers[collection].remove(queue)

    def _changed(self, collection: str) -> None:
        self._commit()
        for queue in self._subscribers.get(collection, []):
            queue.put_nowait(self.snapshot(collection))

    def _commit(self) -> None:
        pass


class JsonRemoteStore(MemoryRemoteStore):
    """MemoryRemoteStore persisted to one JSON file after every write."""

    def __init__(self, path: str | Path, id_factory: Optional[Callable[[], str]] = None):
        super().__init__(id_factory=id_factory)
        self.path = Path(path)
        if self.path.exists():
            with open(self.path, "r", encoding="utf-8") as f:
                state = json.load(f)
            self._collections = state.get("collections", {})
            self._idempotency = state.get("idempotency", {})

    def _commit(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump({
                "collections": self._collections,
                "idempotency": self._idempotency,
            }, f, indent=2, sort_keys=True)
        tmp.replace(self.path)
