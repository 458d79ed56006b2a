"""Tests for the command-line entry point."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from marktex.__main__ import main

PNG = b"\x89PNG\r\n\x1a\n cli image"


@pytest.fixture(autouse=True)
def isolated(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("MARKTEX_DATA_DIR", str(tmp_path / "store"))
    monkeypatch.setenv("MARKTEX_STORAGE_KEY", "cli-test")
    monkeypatch.setenv("MARKTEX_LOG_LEVEL", "WARNING")


def _run(monkeypatch, *argv: str) -> int:
    monkeypatch.setattr(sys, "argv", ["marktex", *argv])
    with pytest.raises(SystemExit) as exc:
        main()
    return exc.value.code


class TestOutlineCommand:
    def test_prints_nested_outline(self, tmp_path: Path, monkeypatch, capsys):
        doc = tmp_path / "doc.md"
        doc.write_text("# Intro\ntext\n## Details\n# Intro\n", encoding="utf-8")
        assert _run(monkeypatch, "outline", str(doc)) == 0
        assert capsys.readouterr().out.splitlines() == [
            "Intro  #intro (line 1)",
            "  Details  #details (line 3)",
            "Intro  #intro-2 (line 4)",
        ]

    def test_missing_argument(self, monkeypatch, capsys):
        assert _run(monkeypatch, "outline") == 1
        assert "Usage" in capsys.readouterr().err


class TestWorkspaceCommands:
    def test_show_fresh_workspace(self, monkeypatch, capsys):
        assert _run(monkeypatch, "show") == 0
        out = capsys.readouterr().out
        assert "main.md  *" in out
        assert "assets/" in out
        assert "saved: never" in out

    def test_import_then_show_then_clear(self, tmp_path: Path, monkeypatch, capsys):
        image = tmp_path / "fig.png"
        image.write_bytes(PNG)
        text = tmp_path / "notes.txt"
        text.write_text("not an image", encoding="utf-8")

        assert _run(monkeypatch, "import", str(image), str(text)) == 0
        out = capsys.readouterr().out
        assert "added assets/fig.png" in out
        assert "skipped 1 file(s)" in out
        assert (tmp_path / "store" / "cli-test.json").exists()

        assert _run(monkeypatch, "show") == 0
        out = capsys.readouterr().out
        assert "  fig.png" in out
        assert "saved: never" not in out

        assert _run(monkeypatch, "clear") == 0
        assert not (tmp_path / "store" / "cli-test.json").exists()

    def test_unknown_command(self, monkeypatch, capsys):
        assert _run(monkeypatch, "bogus") == 1
        assert "Usage" in capsys.readouterr().out
