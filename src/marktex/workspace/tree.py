"""Hierarchical namespace of files and folders.

Nodes live in nested ``children`` lists (display order) and in a flat
id → node index that enforces global id uniqueness.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

from marktex.errors import DuplicateFileError, UnknownFileError
from marktex.workspace.models import MAIN_DOCUMENT_ID, FileEntry, FileNode, FolderEntry

logger = logging.getLogger(__name__)


def renamed_id(file_id: str, new_name: str) -> str:
    """Replace the last path segment of ``file_id`` with ``new_name``."""
    if "/" in file_id:
        return file_id[: file_id.rindex("/") + 1] + new_name
    return new_name


class VirtualFileTree:
    """In-memory file tree with an id index."""

    def __init__(self, roots: list[FileNode] | None = None) -> None:
        self.roots: list[FileNode] = []
        self._index: dict[str, FileNode] = {}
        self._parents: dict[str, FolderEntry | None] = {}
        for node in roots or []:
            self.add(node)

    # ── Lookup ───────────────────────────────────────────────

    def __contains__(self, file_id: object) -> bool:
        return file_id in self._index

    def __len__(self) -> int:
        return len(self._index)

    def get(self, file_id: str) -> FileNode | None:
        return self._index.get(file_id)

    def find(self, file_id: str) -> FileNode:
        node = self._index.get(file_id)
        if node is None:
            raise UnknownFileError(file_id)
        return node

    def parent_of(self, file_id: str) -> FolderEntry | None:
        self.find(file_id)
        return self._parents[file_id]

    def walk(self) -> Iterator[tuple[int, FileNode]]:
        """Yield ``(depth, node)`` pairs in display order."""
        stack: list[tuple[int, FileNode]] = [(0, n) for n in reversed(self.roots)]
        while stack:
            depth, node = stack.pop()
            yield depth, node
            if isinstance(node, FolderEntry):
                stack.extend((depth + 1, c) for c in reversed(node.children))

    def files(self) -> Iterator[FileEntry]:
        for _, node in self.walk():
            if isinstance(node, FileEntry):
                yield node

    # ── Mutation ─────────────────────────────────────────────

    def add(self, node: FileNode, parent_id: str | None = None) -> FileNode:
        """Attach ``node`` (and its subtree) under ``parent_id`` or at the root."""
        parent: FolderEntry | None = None
        if parent_id is not None:
            candidate = self.find(parent_id)
            if not isinstance(candidate, FolderEntry):
                raise ValueError(f"Not a folder: {parent_id}")
            parent = candidate

        incoming = list(_subtree(node))
        seen: set[str] = set()
        for n, _ in incoming:
            if n.id in self._index or n.id in seen:
                raise DuplicateFileError(n.id)
            seen.add(n.id)

        if parent is None:
            self.roots.append(node)
        else:
            parent.children.append(node)
        for n, owner in incoming:
            self._index[n.id] = n
            self._parents[n.id] = owner if owner is not None else parent
        return node

    def rename(self, file_id: str, new_name: str) -> str | None:
        """Rename a node in place. Returns the new id, or None when nothing changed."""
        node = self.find(file_id)
        new_name = new_name.strip()
        if not new_name or new_name == node.name:
            return None
        if file_id == MAIN_DOCUMENT_ID:
            logger.warning("Refusing to rename %s", MAIN_DOCUMENT_ID)
            return None
        new_id = renamed_id(file_id, new_name)
        if new_id != file_id and new_id in self._index:
            raise DuplicateFileError(new_id)

        self._index.pop(file_id)
        parent = self._parents.pop(file_id)
        node.id = new_id
        node.name = new_name
        self._index[new_id] = node
        self._parents[new_id] = parent
        return new_id

    def delete(self, file_id: str) -> list[FileNode]:
        """Remove a node and its subtree. Returns the removed nodes.

        The main document, and any folder holding it, cannot be deleted.
        """
        node = self.find(file_id)
        removed = [n for n, _ in _subtree(node)]
        if any(n.id == MAIN_DOCUMENT_ID for n in removed):
            logger.warning("Refusing to delete %s: contains %s", file_id, MAIN_DOCUMENT_ID)
            return []

        parent = self._parents[file_id]
        siblings = self.roots if parent is None else parent.children
        siblings[:] = [n for n in siblings if n.id != file_id]
        for n in removed:
            self._index.pop(n.id, None)
            self._parents.pop(n.id, None)
        logger.debug("Deleted %s (%d nodes)", file_id, len(removed))
        return removed


def _subtree(node: FileNode) -> Iterator[tuple[FileNode, FolderEntry | None]]:
    """Yield ``(node, owning_folder)`` for ``node`` and all descendants.

    The owner of the subtree root is None; callers fill in the real parent.
    """
    stack: list[tuple[FileNode, FolderEntry | None]] = [(node, None)]
    while stack:
        current, owner = stack.pop()
        yield current, owner
        if isinstance(current, FolderEntry):
            stack.extend((c, current) for c in reversed(current.children))
