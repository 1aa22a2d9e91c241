"""Tests for repodoc generate / modify CLI commands."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from repodoc.cli.main import app
from repodoc.errors import IncompleteGenerationError, NotFoundError
from repodoc.generate.generator import GenerationResult
from repodoc.generate.templates import TECHNICAL_DOCS
from repodoc.generate.validation import validate_draft
from repodoc.rag.llm_client import UsageMetrics

runner = CliRunner()

_DOC = "\n\n".join(f"{s.header}\n\nDone." for s in TECHNICAL_DOCS.sections) + "\n"


def _result(content: str = _DOC, passes: int = 1) -> GenerationResult:
    return GenerationResult(
        content=content,
        draft=validate_draft(content, TECHNICAL_DOCS.section_count),
        usage=UsageMetrics(1_000, 2_000, 3_000, "test/chat"),
        passes=passes,
    )


# ------------------------------------------------------------------
# generate
# ------------------------------------------------------------------


def test_generate_writes_output(tmp_path, db_path, service):
    service.generate_document.return_value = _result(passes=2)
    out = tmp_path / "docs" / "technical.md"

    result = runner.invoke(
        app,
        ["generate", "--kind", "technical_docs", "--name", "Acme", "--project", "acme", "--output", str(out), "--db", str(db_path)],
    )

    assert result.exit_code == 0, result.output
    assert out.read_text(encoding="utf-8") == _DOC
    assert "Written" in result.output
    assert "2 pass(es)" in result.output
    service.generate_document.assert_called_once_with("acme", "Acme", "technical_docs")


def test_generate_name_defaults_to_project(db_path, service):
    service.generate_document.return_value = _result()
    result = runner.invoke(app, ["generate", "--project", "acme", "--db", str(db_path)])
    assert result.exit_code == 0, result.output
    service.generate_document.assert_called_once_with("acme", "acme", "README")
    assert "System Overview" in result.output


def test_generate_unknown_kind(db_path, service):
    result = runner.invoke(app, ["generate", "--kind", "CHANGELOG", "--db", str(db_path)])
    assert result.exit_code == 1
    assert "Unknown document kind" in result.output
    service.generate_document.assert_not_called()


def test_generate_rejects_traversal(db_path, service):
    result = runner.invoke(app, ["generate", "--output", "../../../etc/evil.md", "--db", str(db_path)])
    assert result.exit_code == 1
    assert "Output path is not allowed" in result.output
    service.generate_document.assert_not_called()


def test_generate_existing_output_declined(tmp_path, db_path, service):
    out = tmp_path / "README.md"
    out.write_text("keep me")
    result = runner.invoke(app, ["generate", "--output", str(out), "--db", str(db_path)], input="n\n")
    assert result.exit_code == 0
    assert out.read_text() == "keep me"
    service.generate_document.assert_not_called()


def test_generate_existing_output_yes(tmp_path, db_path, service):
    out = tmp_path / "README.md"
    out.write_text("old")
    service.generate_document.return_value = _result()
    result = runner.invoke(app, ["generate", "--output", str(out), "--yes", "--db", str(db_path)])
    assert result.exit_code == 0, result.output
    assert out.read_text(encoding="utf-8") == _DOC


def test_generate_incomplete(tmp_path, db_path, service):
    service.generate_document.side_effect = IncompleteGenerationError([4, 5])
    out = tmp_path / "README.md"
    result = runner.invoke(app, ["generate", "--output", str(out), "--db", str(db_path)])
    assert result.exit_code == 1
    assert "Missing sections: 4, 5" in result.output
    assert not out.exists()


# ------------------------------------------------------------------
# modify
# ------------------------------------------------------------------


def test_modify_calls_service(tmp_path, db_path, service):
    service.modify_document.return_value = _result()
    out = tmp_path / "README.md"

    result = runner.invoke(
        app, ["modify", "Add a Docker section", "--project", "acme", "--output", str(out), "--db", str(db_path)]
    )

    assert result.exit_code == 0, result.output
    service.modify_document.assert_called_once_with("acme", "Add a Docker section", "README")
    assert Path(out).exists()


def test_modify_without_document(db_path, service):
    service.modify_document.side_effect = NotFoundError("No README document for 'default'. Run 'repodoc generate' first.")
    result = runner.invoke(app, ["modify", "Anything", "--db", str(db_path)])
    assert result.exit_code == 1
    assert "No README document" in result.output
