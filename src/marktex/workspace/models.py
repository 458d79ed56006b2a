"""Node and record types for the virtual file system."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import ClassVar, Literal, Union

MAIN_DOCUMENT_ID = "main.md"
ASSETS_FOLDER_ID = "assets"

# Ephemeral handles minted by the object store all start with this scheme
HANDLE_SCHEME = "blob:"

_IMAGE_NAME_RE = re.compile(r"\.(jpg|jpeg|png|gif|svg|webp)$", re.IGNORECASE)


def is_handle(value: str | None) -> bool:
    return bool(value) and value.startswith(HANDLE_SCHEME)


def basename(file_id: str) -> str:
    return file_id.rsplit("/", 1)[-1]


@dataclass
class FileEntry:
    """A leaf node: a markdown document or a binary asset."""

    id: str
    name: str
    content: str | None = None
    binary_ref: str | None = None

    kind: ClassVar[Literal["file"]] = "file"

    @property
    def is_binary(self) -> bool:
        return is_handle(self.binary_ref)

    @property
    def is_image(self) -> bool:
        return _IMAGE_NAME_RE.search(self.name) is not None


@dataclass
class FolderEntry:
    """An interior node holding an ordered list of children."""

    id: str
    name: str
    children: list[FileNode] = field(default_factory=list)

    kind: ClassVar[Literal["folder"]] = "folder"


FileNode = Union[FileEntry, FolderEntry]


@dataclass
class FileRecord:
    """Registry entry: the current value of one file, keyed by id."""

    id: str
    content: str
    binary_ref: str | None = None


DEFAULT_CONTENT = """\
# Welcome to MarkTeX

A markdown editor focused on rendering math.

## Math examples

### Inline math

Mass-energy equivalence: $E = mc^2$

### Display math

The Gaussian integral:

$$
\\int_{-\\infty}^{\\infty} e^{-x^2} dx = \\sqrt{\\pi}
$$

The quadratic formula:

$$
x = \\frac{-b \\pm \\sqrt{b^2 - 4ac}}{2a}
$$

## Markdown features

### Lists

- Item 1
- Item 2
  - Item 2.1
  - Item 2.2

### Quotes

> A quoted paragraph

### Tables

| Feature | Status |
|---------|--------|
| Markdown | yes |
| KaTeX | yes |
| PDF export | yes |

Start editing your document!
"""
