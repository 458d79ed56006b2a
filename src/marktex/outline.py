"""Heading outline extraction for markdown documents.

Builds a forest of headings from ATX lines (``#`` to ``######``). Each
heading gets a slug id matching the anchor ids the preview assigns, so the
outline can jump to the rendered heading.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")
# ASCII word characters, CJK ideographs, whitespace and hyphens survive
_SLUG_STRIP_RE = re.compile(r"[^A-Za-z0-9_\u4e00-\u9fa5\s-]")
_WHITESPACE_RE = re.compile(r"\s+")
_HYPHENS_RE = re.compile(r"-+")


@dataclass
class HeadingNode:
    id: str
    text: str
    level: int
    source_line: int
    children: list[HeadingNode] = field(default_factory=list)


def slugify(text: str) -> str:
    """Anchor slug for a heading text. May be empty for punctuation-only text."""
    slug = text.strip().lower()
    slug = _SLUG_STRIP_RE.sub("", slug)
    slug = _WHITESPACE_RE.sub("-", slug)
    slug = _HYPHENS_RE.sub("-", slug)
    return slug.strip("-")


class OutlineExtractor:
    """Parses document text into a heading forest. Stateless between calls."""

    def extract(self, text: str) -> list[HeadingNode]:
        roots: list[HeadingNode] = []
        stack: list[HeadingNode] = []
        slug_counts: dict[str, int] = {}
        used: set[str] = set()

        for index, line in enumerate(text.split("\n")):
            match = _HEADING_RE.match(line)
            if not match:
                continue
            heading_text = match.group(2).strip()
            if not heading_text:
                continue
            level = len(match.group(1))

            slug = slugify(heading_text)
            # First occurrence keeps the bare slug; the n-th gets "-n", skipping
            # suffixes already taken by another heading
            if slug in used:
                base = slug
                count = slug_counts.get(base, 1)
                while slug in used:
                    count += 1
                    slug = f"{base}-{count}"
                slug_counts[base] = count
            used.add(slug)

            node = HeadingNode(id=slug, text=heading_text, level=level, source_line=index)

            while stack and stack[-1].level >= level:
                stack.pop()
            if stack:
                stack[-1].children.append(node)
            else:
                roots.append(node)
            stack.append(node)

        return roots


def extract_outline(text: str) -> list[HeadingNode]:
    return OutlineExtractor().extract(text)


def iter_headings(forest: list[HeadingNode]) -> Iterator[tuple[int, HeadingNode]]:
    """Yield ``(depth, heading)`` in document order."""
    stack = [(0, node) for node in reversed(forest)]
    while stack:
        depth, node = stack.pop()
        yield depth, node
        stack.extend((depth + 1, child) for child in reversed(node.children))


def find_heading(forest: list[HeadingNode], slug: str) -> HeadingNode | None:
    for _, node in iter_headings(forest):
        if node.id == slug:
            return node
    return None


def heading_at_line(forest: list[HeadingNode], line: int) -> HeadingNode | None:
    """The last heading at or above ``line`` (the section the line belongs to)."""
    found = None
    for _, node in iter_headings(forest):
        if node.source_line > line:
            break
        found = node
    return found
