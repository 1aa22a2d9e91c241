"""Per-model sqlite-vec virtual table management.

Each collection (``units``, ``memories``) gets one vec0 table per embedding
model. Rows are partitioned by ``owner_id`` and compared with cosine distance,
so ``1 - distance`` is the cosine similarity.
"""

from __future__ import annotations

import re
import sqlite3

COLLECTIONS: frozenset[str] = frozenset(["units", "memories"])


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
        "gemini/gemini-embedding-001"   -> "gemini_gemini_embedding_001"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(collection: str, model_slug: str) -> str:
    """Return the full vec table name for a collection and model slug."""
    return f"vec_{collection}_{model_slug}"


def ensure_vec_table(
    conn: sqlite3.Connection, collection: str, model_slug: str, dimensions: int
) -> str:
    """Create vec_{collection}_{model_slug} if it doesn't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        collection: ``"units"`` or ``"memories"``.
        model_slug: Sanitized model identifier (use model_to_slug() to generate).
        dimensions: Embedding vector dimensions (e.g. 1536 for text-embedding-3-small).

    Returns:
        The table name.
    """
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown vector collection '{collection}'")
    if not re.fullmatch(r"[a-z0-9_]+", model_slug):
        raise ValueError(
            f"Invalid model_slug '{model_slug}'; use model_to_slug() to sanitize."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(collection, model_slug)
    existing = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()

    if existing is None:
        conn.execute(
            f"CREATE VIRTUAL TABLE {table} USING vec0("
            f"owner_id text partition key, "
            f"embedding float[{dimensions}] distance_metric=cosine)"
        )
        conn.commit()

    return table
