"""Workspace snapshot format and the tree/registry ⇄ snapshot conversion.

Binary assets only exist as ephemeral handles while the process runs. On save
their bytes are embedded as ``data:<mime>;base64,<body>`` strings; on load the
bytes are registered again and get fresh handles. Handle values themselves are
never written.
"""

from __future__ import annotations

import base64
import binascii
import logging
import math
import re
import time
from dataclasses import dataclass, field
from typing import Any

from marktex.errors import (
    DuplicateFileError,
    PayloadDecodeError,
    PayloadEncodeError,
    SnapshotFormatError,
)
from marktex.storage.blobs import DEFAULT_MIME_TYPE, Blob, ObjectStore
from marktex.workspace.models import (
    MAIN_DOCUMENT_ID,
    FileEntry,
    FileNode,
    FolderEntry,
    is_handle,
)
from marktex.workspace.registry import VirtualFileRegistry
from marktex.workspace.tree import VirtualFileTree

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:([^;,]*)((?:;[^;,]*)*),(.*)$", re.DOTALL)


def encode_payload(blob: Blob) -> str:
    body = base64.b64encode(blob.data).decode("ascii")
    return f"data:{blob.mime_type or DEFAULT_MIME_TYPE};base64,{body}"


def decode_payload(payload: str) -> Blob:
    match = _DATA_URL_RE.match(payload)
    if not match:
        raise PayloadDecodeError("Not a data URL")
    mime_type, params, body = match.groups()
    if ";base64" not in params:
        raise PayloadDecodeError("Data URL is not base64-encoded")
    try:
        data = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PayloadDecodeError(f"Invalid base64 body: {e}") from e
    return Blob(data=data, mime_type=mime_type or DEFAULT_MIME_TYPE)


# ── Snapshot types ───────────────────────────────────────────


@dataclass
class SerializedNode:
    """Durable mirror of a FileNode. Carries bytes instead of handles."""

    id: str
    name: str
    type: str
    content: str | None = None
    encoded_payload: str | None = None
    children: list[SerializedNode] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "name": self.name, "type": self.type}
        if self.content is not None:
            data["content"] = self.content
        if self.encoded_payload is not None:
            data["encodedPayload"] = self.encoded_payload
        if self.children is not None:
            data["children"] = [c.to_dict() for c in self.children]
        return data

    @classmethod
    def from_dict(cls, data: Any) -> SerializedNode:
        if not isinstance(data, dict):
            raise SnapshotFormatError(f"Node must be an object, got {type(data).__name__}")
        node_id, name, kind = data.get("id"), data.get("name"), data.get("type")
        if not isinstance(node_id, str) or not node_id:
            raise SnapshotFormatError("Node without a string id")
        if not isinstance(name, str):
            raise SnapshotFormatError(f"Node {node_id} has no name")
        if kind not in ("file", "folder"):
            raise SnapshotFormatError(f"Node {node_id} has unknown type {kind!r}")

        content = data.get("content")
        # Snapshots written before the key was renamed use "base64"
        payload = data.get("encodedPayload", data.get("base64"))
        if content is not None and not isinstance(content, str):
            raise SnapshotFormatError(f"Node {node_id} has non-text content")
        if payload is not None and not isinstance(payload, str):
            raise SnapshotFormatError(f"Node {node_id} has a non-text payload")

        children = None
        if kind == "folder":
            raw_children = data.get("children") or []
            if not isinstance(raw_children, list):
                raise SnapshotFormatError(f"Folder {node_id} children must be a list")
            children = [cls.from_dict(c) for c in raw_children]
        return cls(
            id=node_id,
            name=name,
            type=kind,
            content=content,
            encoded_payload=payload,
            children=children,
        )


@dataclass
class WorkspaceSnapshot:
    """Full durable workspace state. Written whole, never patched."""

    files: list[SerializedNode] = field(default_factory=list)
    current_file: str = MAIN_DOCUMENT_ID
    timestamp: int = 0  # epoch milliseconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "files": [f.to_dict() for f in self.files],
            "currentFile": self.current_file,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Any) -> WorkspaceSnapshot:
        if not isinstance(data, dict) or not isinstance(data.get("files"), list):
            raise SnapshotFormatError("Snapshot must be an object with a 'files' list")
        current = data.get("currentFile")
        timestamp = data.get("timestamp", 0)
        if not isinstance(timestamp, (int, float)) or isinstance(timestamp, bool):
            timestamp = 0
        elif isinstance(timestamp, float) and not math.isfinite(timestamp):
            timestamp = 0
        return cls(
            files=[SerializedNode.from_dict(f) for f in data["files"]],
            current_file=current if isinstance(current, str) and current else MAIN_DOCUMENT_ID,
            timestamp=int(timestamp),
        )


# ── Serializer ───────────────────────────────────────────────


class WorkspaceSerializer:
    """Converts between (VirtualFileTree, VirtualFileRegistry) and WorkspaceSnapshot."""

    def __init__(self, objects: ObjectStore) -> None:
        self.objects = objects

    async def serialize(
        self,
        tree: VirtualFileTree,
        registry: VirtualFileRegistry,
        current_file: str,
        *,
        timestamp: int | None = None,
    ) -> WorkspaceSnapshot:
        files = await self.serialize_nodes(tree.roots, registry)
        return WorkspaceSnapshot(
            files=files,
            current_file=current_file,
            timestamp=timestamp if timestamp is not None else int(time.time() * 1000),
        )

    async def serialize_nodes(
        self, nodes: list[FileNode], registry: VirtualFileRegistry
    ) -> list[SerializedNode]:
        serialized: list[SerializedNode] = []
        for node in nodes:
            if isinstance(node, FolderEntry):
                serialized.append(
                    SerializedNode(
                        id=node.id,
                        name=node.name,
                        type="folder",
                        children=await self.serialize_nodes(node.children, registry),
                    )
                )
                continue

            item = SerializedNode(
                id=node.id,
                name=node.name,
                type="file",
                content=None if is_handle(node.content) else node.content,
            )
            if node.is_binary or is_handle(node.content):
                try:
                    item.encoded_payload = await self._encode(node, registry)
                except PayloadEncodeError as e:
                    logger.error("Failed to serialize blob for %s: %s", node.id, e)
            serialized.append(item)
        return serialized

    async def _encode(self, node: FileEntry, registry: VirtualFileRegistry) -> str:
        record = registry.get(node.id)
        if record is None:
            raise PayloadEncodeError("no registry record", file_id=node.id)
        handle = record.binary_ref if is_handle(record.binary_ref) else record.content
        if not is_handle(handle):
            raise PayloadEncodeError("registry record has no handle", file_id=node.id)
        try:
            blob = await self.objects.fetch(handle)
            return encode_payload(blob)
        except Exception as e:
            raise PayloadEncodeError(str(e), file_id=node.id) from e

    def deserialize(
        self, snapshot: WorkspaceSnapshot | list[SerializedNode]
    ) -> tuple[VirtualFileTree, VirtualFileRegistry]:
        """Rebuild tree and registry, minting fresh handles for embedded payloads."""
        nodes = snapshot.files if isinstance(snapshot, WorkspaceSnapshot) else snapshot
        registry = VirtualFileRegistry()
        roots = [self._restore(n, registry) for n in nodes]
        try:
            tree = VirtualFileTree(roots)
        except DuplicateFileError as e:
            raise SnapshotFormatError(str(e)) from e
        return tree, registry

    def _restore(self, node: SerializedNode, registry: VirtualFileRegistry) -> FileNode:
        if node.type == "folder":
            return FolderEntry(
                id=node.id,
                name=node.name,
                children=[self._restore(c, registry) for c in node.children or []],
            )

        # Handles from a previous process are dead; never carry them over
        content = None if is_handle(node.content) else node.content
        entry = FileEntry(id=node.id, name=node.name, content=content)

        if node.encoded_payload is not None:
            try:
                blob = decode_payload(node.encoded_payload)
            except PayloadDecodeError as e:
                logger.error("Failed to deserialize blob for %s: %s", node.id, e)
                return entry
            handle = self.objects.create_handle(blob.data, blob.mime_type)
            entry.content = handle
            entry.binary_ref = handle
            registry.put(node.id, handle, handle)
        elif content is not None:
            registry.put(node.id, content)
        return entry
