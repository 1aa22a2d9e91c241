"""Shared pytest fixtures."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from repodoc.db.connection import Database
from repodoc.db.schema import initialize
from repodoc.db.store import VectorStore
from repodoc.rag.llm_client import ChatResult, UsageMetrics

TEST_MODEL = "test/embed-4"
TEST_DIMS = 4


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".repodoc.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def store(tmp_db):
    """VectorStore with 4-dimensional vec tables."""
    return VectorStore(tmp_db, TEST_MODEL, TEST_DIMS)


def chat_result(content: str, prompt_tokens: int = 10, completion_tokens: int = 20) -> ChatResult:
    return ChatResult(
        content=content,
        usage=UsageMetrics(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            model_id="test/chat",
        ),
    )


@pytest.fixture
def make_result():
    """Factory for ChatResult objects with fixed usage."""
    return chat_result


@pytest.fixture
def fake_chat():
    """MagicMock ChatClient; set .complete.return_value / side_effect per test."""
    chat = MagicMock()
    chat.complete.return_value = chat_result("ok")
    chat.prompt.return_value = chat_result("ok")
    return chat


@pytest.fixture
def fake_embedder():
    """MagicMock EmbeddingClient returning a fixed 4-d vector."""
    embedder = MagicMock()
    embedder.embed.return_value = [1.0, 0.0, 0.0, 0.0]
    embedder.dimensions = TEST_DIMS
    return embedder
