"""Tests for the snapshot format and WorkspaceSerializer."""

from __future__ import annotations

import base64

import pytest

from marktex.errors import PayloadDecodeError, SnapshotFormatError
from marktex.storage.blobs import Blob, InMemoryObjectStore
from marktex.storage.serializer import (
    SerializedNode,
    WorkspaceSerializer,
    WorkspaceSnapshot,
    decode_payload,
    encode_payload,
)
from marktex.workspace.models import FileEntry, FolderEntry
from marktex.workspace.session import AssetUpload, WorkspaceSession

PNG = b"\x89PNG\r\n\x1a\n\x00\x01\x02 image bytes"
GIF = b"GIF89a tiny"


@pytest.fixture
def objects() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def serializer(objects: InMemoryObjectStore) -> WorkspaceSerializer:
    return WorkspaceSerializer(objects)


@pytest.fixture
def session(objects: InMemoryObjectStore) -> WorkspaceSession:
    session = WorkspaceSession.default(objects)
    session.edit("# Main\n\n![fig](assets/a.png)")
    session.create_document("chapter.md", folder_id="assets", content="## Chapter")
    session.add_assets(
        [
            AssetUpload("a.png", "image/png", PNG),
            AssetUpload("b.gif", "image/gif", GIF),
        ]
    )
    return session


def _shape(tree):
    """(id, kind, name, text) for every node, in walk order."""
    out = []
    for _, node in tree.walk():
        text = None
        if isinstance(node, FileEntry) and not node.is_binary:
            text = node.content
        out.append((node.id, node.kind, node.name, text))
    return out


class TestPayloadCodec:
    def test_encode_is_data_url(self):
        payload = encode_payload(Blob(PNG, "image/png"))
        assert payload.startswith("data:image/png;base64,")
        assert base64.b64decode(payload.split(",", 1)[1]) == PNG

    def test_decode(self):
        blob = decode_payload("data:image/gif;base64," + base64.b64encode(GIF).decode())
        assert blob == Blob(GIF, "image/gif")

    def test_decode_missing_mime_defaults(self):
        blob = decode_payload("data:;base64,AAEC")
        assert blob.mime_type == "application/octet-stream"
        assert blob.data == b"\x00\x01\x02"

    @pytest.mark.parametrize(
        "payload",
        ["not a data url", "data:image/png,plain", "data:image/png;base64,@@@notbase64"],
    )
    def test_decode_rejects(self, payload: str):
        with pytest.raises(PayloadDecodeError):
            decode_payload(payload)


class TestSerialize:
    @pytest.mark.asyncio
    async def test_snapshot_shape(self, serializer, session):
        snapshot = await serializer.serialize(
            session.tree, session.registry, session.current_file, timestamp=42
        )
        data = snapshot.to_dict()
        assert data["currentFile"] == "main.md"
        assert data["timestamp"] == 42
        main, assets = data["files"]
        assert main == {
            "id": "main.md",
            "name": "main.md",
            "type": "file",
            "content": "# Main\n\n![fig](assets/a.png)",
        }
        assert assets["type"] == "folder"
        by_id = {c["id"]: c for c in assets["children"]}
        assert by_id["assets/chapter.md"]["content"] == "## Chapter"
        image = by_id["assets/a.png"]
        assert "content" not in image
        assert image["encodedPayload"].startswith("data:image/png;base64,")

    @pytest.mark.asyncio
    async def test_no_handles_in_snapshot(self, serializer, session):
        snapshot = await serializer.serialize(session.tree, session.registry, "main.md")
        assert "blob:" not in repr(snapshot.to_dict())

    @pytest.mark.asyncio
    async def test_failed_asset_does_not_abort(self, serializer, session, objects, caplog):
        objects.revoke(session.registry.get("assets/a.png").binary_ref)
        snapshot = await serializer.serialize(session.tree, session.registry, "main.md")
        by_id = {c.id: c for c in snapshot.files[1].children}
        assert by_id["assets/a.png"].encoded_payload is None
        assert by_id["assets/b.gif"].encoded_payload is not None
        assert "Failed to serialize blob for assets/a.png" in caplog.text

    @pytest.mark.asyncio
    async def test_missing_registry_record(self, serializer, session):
        session.registry.pop("assets/b.gif")
        snapshot = await serializer.serialize(session.tree, session.registry, "main.md")
        by_id = {c.id: c for c in snapshot.files[1].children}
        assert by_id["assets/b.gif"].encoded_payload is None


class TestDeserialize:
    @pytest.mark.asyncio
    async def test_round_trip(self, serializer, session, objects):
        snapshot = await serializer.serialize(session.tree, session.registry, "main.md")
        restored = WorkspaceSnapshot.from_dict(snapshot.to_dict())
        tree, registry = serializer.deserialize(restored)

        assert _shape(tree) == _shape(session.tree)
        for file_id, data in [("assets/a.png", PNG), ("assets/b.gif", GIF)]:
            old_handle = session.tree.find(file_id).binary_ref
            node = tree.find(file_id)
            assert node.binary_ref != old_handle  # re-minted
            assert node.content == node.binary_ref
            assert registry.get(file_id).binary_ref == node.binary_ref
            assert (await objects.fetch(node.binary_ref)).data == data
        assert registry.get("main.md").content == "# Main\n\n![fig](assets/a.png)"
        assert registry.get("assets/chapter.md").content == "## Chapter"

    def test_undecodable_payload_left_unresolved(self, serializer, caplog):
        nodes = [
            SerializedNode(id="main.md", name="main.md", type="file", content="x"),
            SerializedNode(
                id="assets",
                name="assets",
                type="folder",
                children=[
                    SerializedNode(
                        id="assets/bad.png",
                        name="bad.png",
                        type="file",
                        encoded_payload="garbage",
                    )
                ],
            ),
        ]
        tree, registry = serializer.deserialize(nodes)
        assert "assets/bad.png" in tree
        assert tree.find("assets/bad.png").binary_ref is None
        assert "assets/bad.png" not in registry
        assert registry.resolve("bad.png") is None
        assert "Failed to deserialize blob for assets/bad.png" in caplog.text

    def test_stale_handle_is_dropped(self, serializer):
        nodes = [SerializedNode(id="a.png", name="a.png", type="file", content="blob:old")]
        tree, registry = serializer.deserialize(nodes)
        assert tree.find("a.png").content is None
        assert "a.png" not in registry

    def test_empty_text_document_registered(self, serializer):
        nodes = [SerializedNode(id="empty.md", name="empty.md", type="file", content="")]
        _, registry = serializer.deserialize(nodes)
        assert registry.get("empty.md").content == ""

    def test_duplicate_ids_are_malformed(self, serializer):
        nodes = [
            SerializedNode(id="a.md", name="a.md", type="file", content="1"),
            SerializedNode(id="a.md", name="a.md", type="file", content="2"),
        ]
        with pytest.raises(SnapshotFormatError):
            serializer.deserialize(nodes)

    def test_folders_are_not_registered(self, serializer):
        nodes = [SerializedNode(id="assets", name="assets", type="folder", children=[])]
        tree, registry = serializer.deserialize(nodes)
        assert isinstance(tree.find("assets"), FolderEntry)
        assert len(registry) == 0


class TestSnapshotFormat:
    def test_legacy_base64_key(self):
        snapshot = WorkspaceSnapshot.from_dict(
            {
                "files": [
                    {"id": "a.png", "name": "a.png", "type": "file", "base64": "data:image/png;base64,AA=="}
                ],
                "currentFile": "main.md",
                "timestamp": 1,
            }
        )
        assert snapshot.files[0].encoded_payload == "data:image/png;base64,AA=="

    def test_missing_current_file_defaults(self):
        snapshot = WorkspaceSnapshot.from_dict({"files": []})
        assert snapshot.current_file == "main.md"
        assert snapshot.timestamp == 0

    @pytest.mark.parametrize("timestamp", [float("nan"), float("inf"), float("-inf"), "soon", True])
    def test_unusable_timestamp_becomes_zero(self, timestamp):
        snapshot = WorkspaceSnapshot.from_dict({"files": [], "timestamp": timestamp})
        assert snapshot.timestamp == 0

    @pytest.mark.parametrize(
        "data",
        [
            None,
            [],
            {"files": "nope"},
            {"files": [{"name": "x", "type": "file"}]},
            {"files": [{"id": "x", "name": "x", "type": "symlink"}]},
            {"files": [{"id": "x", "name": "x", "type": "file", "content": 5}]},
            {"files": [{"id": "d", "name": "d", "type": "folder", "children": "x"}]},
        ],
    )
    def test_malformed(self, data):
        with pytest.raises(SnapshotFormatError):
            WorkspaceSnapshot.from_dict(data)
