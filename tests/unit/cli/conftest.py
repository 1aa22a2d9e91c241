"""Fixtures for CLI tests: a mocked service behind open_service()."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / ".repodoc.db"


@pytest.fixture
def api_keys(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    for var in ("REPODOC_GENERATION_MODEL", "REPODOC_EMBEDDING_MODEL", "REPODOC_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def service(api_keys):
    """MagicMock RepoDoc returned by build_service()."""
    fake = MagicMock()
    with patch("repodoc.cli.session.build_service", return_value=fake):
        yield fake
