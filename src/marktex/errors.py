"""Exceptions raised by the workspace model and its persistence layer."""

from __future__ import annotations


class WorkspaceError(Exception):
    """Base exception for all workspace errors."""


class UnknownFileError(WorkspaceError, KeyError):
    """Raised when an id does not name any node in the workspace."""

    def __init__(self, file_id: str):
        super().__init__(file_id)
        self.file_id = file_id

    def __str__(self) -> str:
        return f"Unknown file: {self.file_id}"


class DuplicateFileError(WorkspaceError):
    """Raised when a node would reuse an id that already exists in the tree."""

    def __init__(self, file_id: str):
        super().__init__(f"File already exists: {file_id}")
        self.file_id = file_id


class PayloadEncodeError(WorkspaceError):
    """A binary node could not be fetched or encoded during serialization."""

    def __init__(self, message: str, file_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.file_id = file_id

    def __str__(self) -> str:
        if self.file_id:
            return f"{self.file_id}: {self.message}"
        return self.message


class PayloadDecodeError(WorkspaceError):
    """A persisted payload string is not a valid base64 data URL."""


class SnapshotFormatError(WorkspaceError):
    """A stored snapshot does not have the expected shape."""


class StoreError(WorkspaceError):
    """Durable store read or write failure."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.message = message
        self.key = key

    def __str__(self) -> str:
        if self.key:
            return f"[{self.key}] {self.message}"
        return self.message
