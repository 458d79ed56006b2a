"""Autosave and hydration lifecycle for a workspace session.

States: UNINITIALIZED → HYDRATING → READY.

- Hydration reads the stored snapshot once. Missing, unreadable or malformed
  data falls back to the default single-document workspace.
- In READY every session change re-arms a debounce timer. When it elapses
  the session state is copied and a fresh snapshot is written.
- Only one write runs at a time. A timer firing during a write schedules one
  more write after it; a running write is never cancelled.
- Write failures are logged and recorded in ``status``/``last_error``; they
  never escape the debounce loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from marktex.config import DEFAULT_DEBOUNCE_MS, DEFAULT_STORAGE_KEY
from marktex.errors import WorkspaceError
from marktex.storage.blobs import InMemoryObjectStore, ObjectStore
from marktex.storage.kv import DurableStore, FileKeyValueStore
from marktex.storage.serializer import WorkspaceSerializer, WorkspaceSnapshot
from marktex.workspace.models import DEFAULT_CONTENT, MAIN_DOCUMENT_ID, FileEntry
from marktex.workspace.session import WorkspaceSession

if TYPE_CHECKING:
    from marktex.config import PersistenceConfig

logger = logging.getLogger(__name__)


class PersistenceState(Enum):
    UNINITIALIZED = "uninitialized"
    HYDRATING = "hydrating"
    READY = "ready"


class SaveStatus(Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    FAILED = "failed"


class WorkspacePersistenceManager:
    """Owns hydration and debounced autosave for one workspace key."""

    def __init__(
        self,
        store: DurableStore,
        objects: ObjectStore | None = None,
        *,
        key: str = DEFAULT_STORAGE_KEY,
        debounce: float = DEFAULT_DEBOUNCE_MS / 1000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.objects = objects or InMemoryObjectStore()
        self.serializer = WorkspaceSerializer(self.objects)
        self.key = key
        self.debounce = debounce
        self._clock = clock

        self.state = PersistenceState.UNINITIALIZED
        self.session: WorkspaceSession | None = None
        self.status = SaveStatus.IDLE
        self.last_saved: datetime | None = None
        self.last_error: Exception | None = None

        self._timer: asyncio.Task | None = None
        self._writer: asyncio.Task | None = None
        self._writing = False
        self._rerun = False
        self._unsubscribe: Callable[[], None] | None = None

    @classmethod
    def from_config(
        cls, config: PersistenceConfig, objects: ObjectStore | None = None
    ) -> WorkspacePersistenceManager:
        return cls(
            FileKeyValueStore(config.data_dir),
            objects,
            key=config.storage_key,
            debounce=config.debounce_seconds,
        )

    @property
    def pending(self) -> bool:
        """True while a debounce timer is armed or a write is running."""
        return self._timer is not None or self._writing

    # ── Hydration ────────────────────────────────────────────

    async def hydrate(self) -> WorkspaceSession:
        """Load the stored workspace (or the default one) and start autosaving."""
        if self.state is not PersistenceState.UNINITIALIZED:
            raise RuntimeError(f"Cannot hydrate from state {self.state.value}")
        self.state = PersistenceState.HYDRATING
        session = await self._load()
        self.session = session
        self._unsubscribe = session.subscribe(self.notify_change)
        self.state = PersistenceState.READY
        logger.info(
            "Workspace ready (%d nodes, current=%s)", len(session.tree), session.current_file
        )
        return session

    async def _load(self) -> WorkspaceSession:
        try:
            raw = await self.store.get(self.key)
        except Exception as e:
            logger.error("Failed to load workspace: %s", e)
            return WorkspaceSession.default(self.objects)

        if raw is None:
            logger.info("No saved workspace under %r, starting fresh", self.key)
            return WorkspaceSession.default(self.objects)

        try:
            snapshot = WorkspaceSnapshot.from_dict(raw)
            tree, registry = self.serializer.deserialize(snapshot)
        except WorkspaceError as e:
            logger.error("Saved workspace is malformed, starting fresh: %s", e)
            return WorkspaceSession.default(self.objects)

        main = tree.get(MAIN_DOCUMENT_ID)
        if main is None:
            logger.warning("Saved workspace has no %s, adding one", MAIN_DOCUMENT_ID)
            tree.add(FileEntry(id=MAIN_DOCUMENT_ID, name=MAIN_DOCUMENT_ID, content=DEFAULT_CONTENT))
            registry.put(MAIN_DOCUMENT_ID, DEFAULT_CONTENT)
        elif not isinstance(main, FileEntry) or main.is_binary:
            logger.error("Saved workspace has an invalid %s, starting fresh", MAIN_DOCUMENT_ID)
            return WorkspaceSession.default(self.objects)

        current = snapshot.current_file
        node = tree.get(current)
        if not isinstance(node, FileEntry) or node.is_binary:
            logger.info("Saved current file %r is gone, opening %s", current, MAIN_DOCUMENT_ID)
            current = MAIN_DOCUMENT_ID

        if snapshot.timestamp:
            try:
                self.last_saved = datetime.fromtimestamp(snapshot.timestamp / 1000)
            except (OverflowError, OSError, ValueError) as e:
                logger.warning("Ignoring saved timestamp %r: %s", snapshot.timestamp, e)
        return WorkspaceSession(tree, registry, self.objects, current)

    # ── Debounced autosave ───────────────────────────────────

    def notify_change(self) -> None:
        """(Re)arm the debounce timer. Ignored until hydration has finished."""
        if self.state is not PersistenceState.READY:
            logger.debug("Change ignored while %s", self.state.value)
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._debounced())

    async def _debounced(self) -> None:
        await asyncio.sleep(self.debounce)
        # From here on this task is a writer and must not be cancelled by new edits
        self._timer = None
        await self._run_writes()

    async def _run_writes(self) -> None:
        if self._writing:
            self._rerun = True
            return
        self._writing = True
        self._writer = asyncio.current_task()
        try:
            while True:
                self._rerun = False
                await self._write()
                if not self._rerun:
                    break
        finally:
            self._writing = False
            self._writer = None

    async def _write(self) -> bool:
        if self.session is None:
            return False
        tree, registry, current = self.session.copy_state()
        self.status = SaveStatus.SAVING
        try:
            snapshot = await self.serializer.serialize(tree, registry, current)
            snapshot.timestamp = int(self._clock() * 1000)
            await self.store.set(self.key, snapshot.to_dict())
        except Exception as e:
            logger.error("Auto-save failed: %s", e)
            self.status = SaveStatus.FAILED
            self.last_error = e
            return False

        self.status = SaveStatus.SAVED
        self.last_error = None
        self.last_saved = datetime.fromtimestamp(snapshot.timestamp / 1000)
        logger.debug("Saved workspace under %r (%d nodes)", self.key, len(tree))
        return True

    async def flush(self) -> bool:
        """Write now instead of waiting for the timer. Returns True on success."""
        if self.state is not PersistenceState.READY:
            return False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._writing and self._writer is not None:
            self._rerun = True
            await asyncio.shield(self._writer)
        else:
            await self._run_writes()
        return self.status is SaveStatus.SAVED

    async def clear(self) -> bool:
        """Delete the stored snapshot. The live session is left untouched."""
        try:
            await self.store.set(self.key, None)
        except Exception as e:
            logger.error("Failed to clear workspace: %s", e)
            return False
        logger.info("Cleared saved workspace %r", self.key)
        return True

    async def close(self, *, flush: bool = False) -> None:
        """Stop observing the session. Optionally write pending changes first."""
        if flush and self._timer is not None:
            await self.flush()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._writer is not None:
            await asyncio.shield(self._writer)
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
