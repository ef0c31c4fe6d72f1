"""Durable key-value storage for the offline cache and pending queue.

Each key is one JSON document. FileStore keeps one file per key and
replaces it atomically, so a crash mid-write leaves either the old or
the new value for that key and never touches other keys.

Reads of a missing key return the caller's default; they never raise.
"""
import asyncio
import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class StorageFailure(Exception):
    """Local persistence read/write failed; the value is not durable."""

    def __init__(self, operation: str, key: str, cause: Exception | None = None):
        self.operation = operation
        self.key = key
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Storage {operation} failed for {key!r}{detail}")


class KeyValueStore:
    """Asynchronous string-keyed get/set/remove interface."""

    async def read(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    async def write(self, key: str, value: Any) -> None:
        raise NotImplementedError

    async def remove(self, key: str) -> None:
        raise NotImplementedError

    async def remove_many(self, keys: list[str]) -> None:
        for key in keys:
            await self.remove(key)


class FileStore(KeyValueStore):
    """Key-value store backed by one JSON file per key.

    Attributes:
        root: Directory holding the key files
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise StorageFailure("resolve", key, ValueError("invalid key"))
        return self.root / f"{key}.json"

    def _read_sync(self, key: str, default: Any) -> Any:
        path = self._path(key)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return default
        except (OSError, ValueError) as e:
            raise StorageFailure("read", key, e) from e

    def _write_sync(self, key: str, value: Any) -> None:
        path = self._path(key)
        try:
            data = json.dumps(value, sort_keys=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", dir=self.root)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise StorageFailure("write", key, e) from e

    def _remove_sync(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageFailure("remove", key, e) from e

    async def read(self, key: str, default: Any = None) -> Any:
        return await asyncio.to_thread(self._read_sync, key, default)

    async def write(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._write_sync, key, value)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._remove_sync, key)


class MemoryStore(KeyValueStore):
    """In-process store for tests and ephemeral sessions.

    Values are deep-copied through JSON so callers can never alias
    stored state. `fail_on` holds operation names ("read", "write",
    "remove") that should raise StorageFailure.
    """

    def __init__(self):
        self._data: dict[str, str] = {}
        self.fail_on: set[str] = set()

    async def read(self, key: str, default: Any = None) -> Any:
        await asyncio.sleep(0)
        if "read" in self.fail_on:
            raise StorageFailure("read", key, OSError("injected read failure"))
        if key not in self._data:
            return default
        return json.loads(self._data[key])

    async def write(self, key: str, value: Any) -> None:
        await asyncio.sleep(0)
        if "write" in self.fail_on:
            raise StorageFailure("write", key, OSError("injected write failure"))
        try:
            self._data[key] = json.dumps(value, sort_keys=True)
        except (TypeError, ValueError) as e:
            raise StorageFailure("write", key, e) from e

    async def remove(self, key: str) -> None:
        await asyncio.sleep(0)
        if "remove" in self.fail_on:
            raise StorageFailure("remove", key, OSError("injected remove failure"))
        self._data.pop(key, None)
