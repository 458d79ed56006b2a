"""Durable key-value stores for workspace snapshots.

Values are JSON-compatible structures. ``set(key, None)`` deletes the key.
Every write replaces the whole value; there are no partial updates.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from marktex.errors import StoreError

logger = logging.getLogger(__name__)


@runtime_checkable
class DurableStore(Protocol):
    """Protocol that all durable store backends must implement."""

    async def get(self, key: str) -> Any | None:
        """Return the stored value, or None when the key is absent."""
        ...

    async def set(self, key: str, value: Any | None) -> None:
        """Replace the stored value. ``None`` deletes the key."""
        ...


class MemoryKeyValueStore:
    """Process-local store. Values are deep-copied on the way in and out."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self.writes = 0

    async def get(self, key: str) -> Any | None:
        value = self._data.get(key)
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any | None) -> None:
        self.writes += 1
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = copy.deepcopy(value)


class FileKeyValueStore:
    """One JSON file per key under ``root``, replaced atomically on write."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def _path(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9._-]", "_", key) or "_"
        return self.root / f"{safe}.json"

    async def get(self, key: str) -> Any | None:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: Any | None) -> None:
        await asyncio.to_thread(self._write, key, value)

    def _read(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            raise StoreError(f"Failed to read {path}: {e}", key=key) from e

    def _write(self, key: str, value: Any | None) -> None:
        path = self._path(key)
        try:
            if value is None:
                path.unlink(missing_ok=True)
                logger.info("Deleted %s", path)
                return
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".json.tmp")
            tmp.write_text(json.dumps(value, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as e:
            raise StoreError(f"Failed to write {path}: {e}", key=key) from e
