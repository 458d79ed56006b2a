"""Workspace session: tree, registry, active document and editor buffer.

A session is the single owner of workspace state. Every mutation goes
through it so the tree and the registry stay consistent, and so change
listeners (autosave) see every edit.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from marktex.errors import DuplicateFileError
from marktex.storage.blobs import ObjectStore
from marktex.workspace.models import (
    ASSETS_FOLDER_ID,
    DEFAULT_CONTENT,
    MAIN_DOCUMENT_ID,
    FileEntry,
    FolderEntry,
)
from marktex.workspace.registry import VirtualFileRegistry
from marktex.workspace.tree import VirtualFileTree

logger = logging.getLogger(__name__)

ChangeListener = Callable[[], None]


@dataclass
class AssetUpload:
    """An incoming binary item (upload or drop)."""

    filename: str
    mime_type: str
    data: bytes


class WorkspaceSession:
    """Controller for one workspace."""

    def __init__(
        self,
        tree: VirtualFileTree,
        registry: VirtualFileRegistry,
        objects: ObjectStore,
        current_file: str = MAIN_DOCUMENT_ID,
    ) -> None:
        self.tree = tree
        self.registry = registry
        self.objects = objects
        self.current_file = current_file
        self.content = self._stored_text(current_file)
        self._listeners: list[ChangeListener] = []

    @classmethod
    def default(cls, objects: ObjectStore) -> WorkspaceSession:
        """Single-document workspace: main.md plus an empty assets folder."""
        tree = VirtualFileTree(
            [
                FileEntry(id=MAIN_DOCUMENT_ID, name=MAIN_DOCUMENT_ID, content=DEFAULT_CONTENT),
                FolderEntry(id=ASSETS_FOLDER_ID, name=ASSETS_FOLDER_ID),
            ]
        )
        registry = VirtualFileRegistry()
        registry.put(MAIN_DOCUMENT_ID, DEFAULT_CONTENT)
        return cls(tree, registry, objects)

    # ── Change notification ──────────────────────────────────

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.error("Change listener failed: %s", e)

    # ── Document editing ─────────────────────────────────────

    def _stored_text(self, file_id: str) -> str:
        record = self.registry.get(file_id)
        if record is not None:
            return record.content
        node = self.tree.get(file_id)
        if isinstance(node, FileEntry) and node.content is not None:
            return node.content
        return ""

    def _flush_active(self) -> None:
        if self.current_file in self.tree:
            node = self.tree.find(self.current_file)
            if isinstance(node, FileEntry) and not node.is_binary:
                node.content = self.content
        if self.current_file in self.tree or self.current_file in self.registry:
            self.registry.set_content(self.current_file, self.content)

    def select(self, file_id: str) -> str:
        """Make ``file_id`` the active document and return its text.

        The outgoing document's buffer is written back first so no edit is
        lost on switch.
        """
        node = self.tree.find(file_id)
        if not isinstance(node, FileEntry):
            raise ValueError(f"Not a file: {file_id}")
        if node.is_binary:
            raise ValueError(f"Not a text document: {file_id}")
        self._flush_active()
        self.current_file = file_id
        self.content = self._stored_text(file_id)
        self._changed()
        return self.content

    def edit(self, content: str) -> None:
        """Replace the active document's text (continuous editor updates)."""
        self.content = content
        self._flush_active()
        self._changed()

    def update(self, file_id: str, content: str, *, binary: bool = False) -> None:
        """Write ``content`` to the tree node (if any) and the registry.

        For binary assets ``content`` is the ephemeral handle and is stored
        as both the text value and the binary reference.
        """
        node = self.tree.get(file_id)
        if isinstance(node, FileEntry):
            node.content = content
            if binary:
                node.binary_ref = content
        self.registry.put(file_id, content, content if binary else None)
        if file_id == self.current_file:
            self.content = content
        self._changed()

    @property
    def stats(self) -> tuple[int, int]:
        """``(characters, lines)`` of the active buffer."""
        return len(self.content), self.content.count("\n") + 1

    # ── Structure ────────────────────────────────────────────

    def create_document(self, name: str, folder_id: str | None = None, content: str = "") -> str:
        name = name.strip()
        if not name:
            raise ValueError("Document name must not be empty")
        file_id = f"{folder_id}/{name}" if folder_id else name
        self.tree.add(FileEntry(id=file_id, name=name, content=content), parent_id=folder_id)
        self.registry.put(file_id, content)
        self._changed()
        return file_id

    def rename(self, file_id: str, new_name: str) -> str | None:
        """Rename a node. Returns the new id, or None for a no-op rename."""
        if file_id == self.current_file:
            self._flush_active()
        new_id = self.tree.rename(file_id, new_name)
        if new_id is None:
            return None

        record = self.registry.move(file_id, new_id)
        node = self.tree.find(new_id)
        if record is None and isinstance(node, FileEntry):
            value = node.binary_ref or node.content
            if value:
                self.registry.put(new_id, value, node.binary_ref)
        if self.current_file == file_id:
            self.current_file = new_id
        logger.info("Renamed %s -> %s", file_id, new_id)
        self._changed()
        return new_id

    def delete(self, file_id: str) -> bool:
        """Delete a node and its subtree. The main document is never deleted.

        Ephemeral handles of removed assets are not revoked; the object store
        owns their lifetime.
        """
        removed = self.tree.delete(file_id)
        if not removed:
            return False
        removed_ids = {n.id for n in removed}
        for node_id in removed_ids:
            self.registry.pop(node_id)
        if self.current_file in removed_ids:
            self.current_file = MAIN_DOCUMENT_ID
            self.content = self._stored_text(MAIN_DOCUMENT_ID)
        self._changed()
        return True

    def add_assets(self, items: Iterable[AssetUpload]) -> list[str]:
        """Add image uploads under ``assets/``. Returns the ids actually added.

        Non-image items are ignored and an existing id is never overwritten.
        """
        images = [item for item in items if item.mime_type.startswith("image/")]
        if not images:
            return []

        folder = self.tree.get(ASSETS_FOLDER_ID)
        if folder is None:
            self.tree.add(FolderEntry(id=ASSETS_FOLDER_ID, name=ASSETS_FOLDER_ID))
        elif not isinstance(folder, FolderEntry):
            logger.warning("Cannot add assets: %s is not a folder", ASSETS_FOLDER_ID)
            return []

        added: list[str] = []
        for item in images:
            file_id = f"{ASSETS_FOLDER_ID}/{item.filename}"
            if file_id in self.tree:
                logger.info("Skipping %s: already exists", file_id)
                continue
            handle = self.objects.create_handle(item.data, item.mime_type)
            try:
                self.tree.add(
                    FileEntry(id=file_id, name=item.filename, content=handle, binary_ref=handle),
                    parent_id=ASSETS_FOLDER_ID,
                )
            except DuplicateFileError:
                self.objects.revoke(handle)
                raise
            self.registry.put(file_id, handle, handle)
            added.append(file_id)

        if added:
            self._changed()
        return added

    # ── Snapshots of state ───────────────────────────────────

    def copy_state(self) -> tuple[VirtualFileTree, VirtualFileRegistry, str]:
        """Detached copy of tree, registry and current file, with the buffer flushed."""
        tree = VirtualFileTree(copy.deepcopy(self.tree.roots))
        registry = VirtualFileRegistry({r.id: copy.copy(r) for r in self.registry})
        if self.current_file in registry or self.current_file in tree:
            registry.set_content(self.current_file, self.content)
            node = tree.get(self.current_file)
            if isinstance(node, FileEntry) and not node.is_binary:
                node.content = self.content
        return tree, registry, self.current_file
