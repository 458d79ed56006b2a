"""Flat id → FileRecord lookup used to resolve document references to assets."""

from __future__ import annotations

from collections.abc import Iterator

from marktex.workspace.models import ASSETS_FOLDER_ID, FileRecord, basename


class VirtualFileRegistry:
    """Current value of every file, keyed by id, independent of tree position."""

    def __init__(self, records: dict[str, FileRecord] | None = None) -> None:
        self._records: dict[str, FileRecord] = dict(records or {})

    def __contains__(self, file_id: object) -> bool:
        return file_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[FileRecord]:
        return iter(list(self._records.values()))

    def ids(self) -> list[str]:
        return list(self._records)

    def get(self, file_id: str) -> FileRecord | None:
        return self._records.get(file_id)

    def put(self, file_id: str, content: str, binary_ref: str | None = None) -> FileRecord:
        record = FileRecord(id=file_id, content=content, binary_ref=binary_ref)
        self._records[file_id] = record
        return record

    def set_content(self, file_id: str, content: str) -> FileRecord:
        """Replace the text of a record, keeping its binary reference."""
        existing = self._records.get(file_id)
        binary_ref = existing.binary_ref if existing else None
        return self.put(file_id, content, binary_ref)

    def move(self, old_id: str, new_id: str) -> FileRecord | None:
        record = self._records.pop(old_id, None)
        if record is None:
            return None
        record.id = new_id
        self._records[new_id] = record
        return record

    def pop(self, file_id: str) -> FileRecord | None:
        return self._records.pop(file_id, None)

    def resolve(self, reference: str) -> FileRecord | None:
        """Find the record a document reference points at.

        Tried in order: exact id, ``assets/<basename>``, any id with the same
        basename, then any id with the same basename ignoring case.
        """
        ref = reference.strip()
        while ref.startswith("./"):
            ref = ref[2:]
        if not ref:
            return None

        record = self._records.get(ref)
        if record is not None:
            return record

        name = basename(ref)
        record = self._records.get(f"{ASSETS_FOLDER_ID}/{name}")
        if record is not None:
            return record

        for file_id, record in self._records.items():
            if basename(file_id) == name:
                return record

        folded = name.casefold()
        for file_id, record in self._records.items():
            if basename(file_id).casefold() == folded:
                return record
        return None
