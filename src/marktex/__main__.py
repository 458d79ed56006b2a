"""Entry point: python -m marktex <command>

- outline FILE:   Print the heading outline of a markdown file
- show:           List the saved workspace tree
- import PATH...: Add image files to assets/ and save
- clear:          Delete the saved workspace
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import sys
from pathlib import Path

from marktex.config import MarkTeXConfig, load_config


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _run_outline(args: list[str]) -> int:
    from marktex.outline import extract_outline, iter_headings

    if len(args) != 1:
        print("Usage: python -m marktex outline FILE", file=sys.stderr)
        return 1
    text = Path(args[0]).read_text(encoding="utf-8")
    for depth, heading in iter_headings(extract_outline(text)):
        print(f"{'  ' * depth}{heading.text}  #{heading.id} (line {heading.source_line + 1})")
    return 0


async def _show(config: MarkTeXConfig) -> int:
    from marktex.storage.persistence import WorkspacePersistenceManager
    from marktex.workspace.models import FolderEntry

    manager = WorkspacePersistenceManager.from_config(config.persistence)
    session = await manager.hydrate()
    for depth, node in session.tree.walk():
        marker = "/" if isinstance(node, FolderEntry) else ""
        current = "  *" if node.id == session.current_file else ""
        print(f"{'  ' * depth}{node.name}{marker}{current}")
    chars, lines = session.stats
    saved = manager.last_saved.strftime("%Y-%m-%d %H:%M:%S") if manager.last_saved else "never"
    print(f"\n{session.current_file}: {chars} chars, {lines} lines (saved: {saved})")
    await manager.close()
    return 0


async def _import(config: MarkTeXConfig, paths: list[str]) -> int:
    from marktex.storage.persistence import WorkspacePersistenceManager
    from marktex.workspace.session import AssetUpload

    if not paths:
        print("Usage: python -m marktex import PATH...", file=sys.stderr)
        return 1

    uploads = []
    for raw in paths:
        path = Path(raw)
        mime_type, _ = mimetypes.guess_type(path.name)
        uploads.append(
            AssetUpload(
                filename=path.name,
                mime_type=mime_type or "application/octet-stream",
                data=path.read_bytes(),
            )
        )

    manager = WorkspacePersistenceManager.from_config(config.persistence)
    session = await manager.hydrate()
    added = session.add_assets(uploads)
    ok = await manager.flush() if added else True
    await manager.close()
    for file_id in added:
        print(f"added {file_id}")
    skipped = len(uploads) - len(added)
    if skipped:
        print(f"skipped {skipped} file(s) (not an image, or already present)")
    return 0 if ok else 1


async def _clear(config: MarkTeXConfig) -> int:
    from marktex.storage.persistence import WorkspacePersistenceManager

    manager = WorkspacePersistenceManager.from_config(config.persistence)
    return 0 if await manager.clear() else 1


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    args = sys.argv[2:]

    config = load_config()
    _setup_logging(config.log_level)

    if cmd == "outline":
        code = _run_outline(args)
    elif cmd == "show":
        code = asyncio.run(_show(config))
    elif cmd == "import":
        code = asyncio.run(_import(config, args))
    elif cmd == "clear":
        code = asyncio.run(_clear(config))
    else:
        print("Usage: python -m marktex [outline|show|import|clear]")
        print("  outline FILE    — Print the heading outline of a markdown file")
        print("  show            — List the saved workspace")
        print("  import PATH...  — Add images to assets/ and save")
        print("  clear           — Delete the saved workspace")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
