"""Ephemeral object store: process-lifetime handles for binary payloads."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from marktex.workspace.models import HANDLE_SCHEME

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class Blob:
    """Bytes plus the MIME type they were registered with."""

    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE


@runtime_checkable
class ObjectStore(Protocol):
    """Protocol for ephemeral object stores."""

    def create_handle(self, data: bytes, mime_type: str) -> str:
        """Register bytes and return a handle valid for this process only."""
        ...

    async def fetch(self, handle: str) -> Blob:
        """Return the bytes behind a handle. Raises KeyError for unknown handles."""
        ...

    def revoke(self, handle: str) -> None:
        """Release a handle. Unknown handles are ignored."""
        ...


class InMemoryObjectStore:
    """Dict-backed store minting ``blob:<uuid>`` handles."""

    def __init__(self) -> None:
        self._blobs: dict[str, Blob] = {}

    def __contains__(self, handle: object) -> bool:
        return handle in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)

    def create_handle(self, data: bytes, mime_type: str) -> str:
        handle = f"{HANDLE_SCHEME}{uuid.uuid4()}"
        self._blobs[handle] = Blob(data=bytes(data), mime_type=mime_type or DEFAULT_MIME_TYPE)
        logger.debug("Minted %s (%s, %d bytes)", handle, mime_type, len(data))
        return handle

    async def fetch(self, handle: str) -> Blob:
        try:
            return self._blobs[handle]
        except KeyError:
            raise KeyError(f"Unknown or expired handle: {handle}") from None

    def revoke(self, handle: str) -> None:
        self._blobs.pop(handle, None)
