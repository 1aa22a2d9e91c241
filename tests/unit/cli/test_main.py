"""Tests for the repodoc CLI entry point."""

from __future__ import annotations

import logging

from typer.testing import CliRunner

from repodoc.cli.main import app

runner = CliRunner()


def test_version_flag():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.startswith("repodoc ")


def test_version_command():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "repodoc" in result.output


def test_help_lists_commands():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("ingest", "search", "ask", "diff", "generate", "modify"):
        assert command in result.output


def test_verbose_sets_debug_logging():
    result = runner.invoke(app, ["--verbose", "version"])
    assert result.exit_code == 0
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("litellm").level == logging.WARNING
