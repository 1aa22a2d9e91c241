"""Tests for the document writer."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from repodoc.generate.writer import confirm_overwrite, resolve_output_path, write_document


# ------------------------------------------------------------------
# resolve_output_path
# ------------------------------------------------------------------


def test_relative_path_inside_base(tmp_path):
    assert resolve_output_path("docs/README.md", base_dir=tmp_path) == tmp_path.resolve() / "docs" / "README.md"


def test_traversal_rejected(tmp_path):
    with pytest.raises(ValueError, match="traversal"):
        resolve_output_path("../../etc/passwd", base_dir=tmp_path)


def test_absolute_path_accepted(tmp_path):
    target = tmp_path / "out.md"
    assert resolve_output_path(str(target), base_dir=Path("/nonexistent")) == target.resolve()


# ------------------------------------------------------------------
# confirm_overwrite
# ------------------------------------------------------------------


def test_new_file_needs_no_confirmation(tmp_path):
    assert confirm_overwrite(tmp_path / "new.md", yes=False)


def test_yes_skips_prompt(tmp_path):
    existing = tmp_path / "README.md"
    existing.write_text("old")
    with patch("repodoc.generate.writer.typer.confirm") as mock_confirm:
        assert confirm_overwrite(existing, yes=True)
    mock_confirm.assert_not_called()


def test_existing_file_asks(tmp_path):
    existing = tmp_path / "README.md"
    existing.write_text("old")
    with patch("repodoc.generate.writer.typer.confirm", return_value=False):
        assert not confirm_overwrite(existing, yes=False)


# ------------------------------------------------------------------
# write_document
# ------------------------------------------------------------------


def test_write_creates_parents(tmp_path):
    target = tmp_path / "a" / "b" / "README.md"
    write_document(target, "# Hello\n")
    assert target.read_text(encoding="utf-8") == "# Hello\n"


def test_write_replaces_and_leaves_no_temp_files(tmp_path):
    target = tmp_path / "README.md"
    target.write_text("old")
    write_document(target, "new")
    assert target.read_text() == "new"
    assert [p.name for p in tmp_path.iterdir()] == ["README.md"]


def test_failed_write_keeps_original(tmp_path):
    target = tmp_path / "README.md"
    target.write_text("old")
    with patch("repodoc.generate.writer.os.replace", side_effect=OSError("disk full")):
        with pytest.raises(OSError):
            write_document(target, "new")
    assert target.read_text() == "old"
    assert [p.name for p in tmp_path.iterdir()] == ["README.md"]
