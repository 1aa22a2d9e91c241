"""Vector store: all repodoc database operations behind one interface.

Wraps an open sqlite3.Connection. Unit and memory rows live in plain tables;
their embeddings live in per-model vec0 tables keyed by the same rowid and
partitioned by owner. Writes are transactional: a row is never left without
its embedding.
"""

from __future__ import annotations

import json
import sqlite3

from repodoc.db.models import IndexedUnit, MemoryItem, StoredDocument
from repodoc.db.vectors import ensure_vec_table, model_to_slug

# bound parameters per DELETE, well under SQLite's host parameter limit
DELETE_CHUNK = 500


class VectorStore:
    """Data access layer for indexed units, memory items and stored documents.

    The connection is owned by the caller and must be closed after use.

    Args:
        conn:            Open connection with sqlite-vec loaded and schema initialised.
        embedding_model: LiteLLM embedding model string; selects the vec tables.
        dimensions:      Embedding dimensionality of *embedding_model*.
    """

    def __init__(self, conn: sqlite3.Connection, embedding_model: str, dimensions: int) -> None:
        self._conn = conn
        self.dimensions = dimensions
        slug = model_to_slug(embedding_model)
        self._unit_vec = ensure_vec_table(conn, "units", slug, dimensions)
        self._memory_vec = ensure_vec_table(conn, "memories", slug, dimensions)

    # ------------------------------------------------------------------
    # Indexed units
    # ------------------------------------------------------------------

    def add_unit(self, unit: IndexedUnit) -> int:
        """Insert *unit* and its embedding. Returns the new id."""
        self._check_dimensions(unit.embedding)
        try:
            cur = self._conn.execute(
                """
                INSERT INTO units (owner_id, path, raw_content, summary_text)
                VALUES (?, ?, ?, ?)
                """,
                (unit.owner_id, unit.path, unit.raw_content, unit.summary_text),
            )
            unit_id = cur.lastrowid
            self._conn.execute(
                f"INSERT INTO {self._unit_vec}(rowid, owner_id, embedding) VALUES (?, ?, ?)",
                (unit_id, unit.owner_id, json.dumps(unit.embedding)),
            )
            self._conn.commit()
        except sqlite3.Error:
            self._conn.rollback()
            raise
        unit.id = unit_id
        return unit_id

    def nearest_units(
        self, owner_id: str, embedding: list[float], limit: int = 10
    ) -> list[tuple[IndexedUnit, float]]:
        """Nearest-neighbour search scoped to *owner_id*.

        Returns (unit, cosine distance) pairs sorted by distance, ties broken by
        insertion order.
        """
        vec_rows = self._knn(self._unit_vec, owner_id, embedding, limit)
        results: list[tuple[IndexedUnit, float]] = []
        for rowid, distance in vec_rows:
            unit = self.get_unit(rowid)
            if unit is not None:
                results.append((unit, distance))
        return results

    def recent_units(self, owner_id: str, limit: int = 10) -> list[IndexedUnit]:
        """Return the *limit* most recently created units of *owner_id*."""
        rows = self._conn.execute(
            """
            SELECT id, owner_id, path, raw_content, summary_text, created_at
            FROM units WHERE owner_id = ?
            ORDER BY created_at DESC, id DESC LIMIT ?
            """,
            (owner_id, limit),
        ).fetchall()
        return [_row_to_unit(r) for r in rows]

    def list_units(self, owner_id: str) -> list[IndexedUnit]:
        """Return every unit of *owner_id* in insertion order."""
        rows = self._conn.execute(
            """
            SELECT id, owner_id, path, raw_content, summary_text, created_at
            FROM units WHERE owner_id = ? ORDER BY id
            """,
            (owner_id,),
        ).fetchall()
        return [_row_to_unit(r) for r in rows]

    def get_unit(self, unit_id: int) -> IndexedUnit | None:
        row = self._conn.execute(
            """
            SELECT id, owner_id, path, raw_content, summary_text, created_at
            FROM units WHERE id = ?
            """,
            (unit_id,),
        ).fetchone()
        return _row_to_unit(row) if row else None

    def count_units(self, owner_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM units WHERE owner_id = ?", (owner_id,)
        ).fetchone()[0]

    def delete_units(self, owner_id: str) -> int:
        """Delete every unit and unit embedding of *owner_id* (full reset).

        Returns the number of units deleted.
        """
        ids = [
            r[0]
            for r in self._conn.execute(
                "SELECT id FROM units WHERE owner_id = ?", (owner_id,)
            ).fetchall()
        ]
        if not ids:
            return 0
        try:
            for start in range(0, len(ids), DELETE_CHUNK):
                chunk = ids[start : start + DELETE_CHUNK]
                placeholders = ",".join("?" * len(chunk))
                self._conn.execute(
                    f"DELETE FROM {self._unit_vec} WHERE rowid IN ({placeholders})", chunk
                )
            self._conn.execute("DELETE FROM units WHERE owner_id = ?", (owner_id,))
            self._conn.commit()
        except sqlite3.Error:
            self._conn.rollback()
            raise
        return len(ids)

    # ------------------------------------------------------------------
    # Memory items
    # ------------------------------------------------------------------

    def add_memory(self, item: MemoryItem) -> int:
        """Insert a memory item and its embedding. Returns the new id."""
        self._check_dimensions(item.embedding)
        try:
            cur = self._conn.execute(
                """
                INSERT INTO memories (owner_id, kind, content, relevance_score)
                VALUES (?, ?, ?, ?)
                """,
                (item.owner_id, item.kind, item.content, item.relevance_score),
            )
            memory_id = cur.lastrowid
            self._conn.execute(
                f"INSERT INTO {self._memory_vec}(rowid, owner_id, embedding) VALUES (?, ?, ?)",
                (memory_id, item.owner_id, json.dumps(item.embedding)),
            )
            self._conn.commit()
        except sqlite3.Error:
            self._conn.rollback()
            raise
        item.id = memory_id
        return memory_id

    def nearest_memories(
        self, owner_id: str, embedding: list[float], limit: int = 5
    ) -> list[tuple[MemoryItem, float]]:
        """Owner-scoped nearest memory items as (item, cosine distance) pairs."""
        vec_rows = self._knn(self._memory_vec, owner_id, embedding, limit)
        results: list[tuple[MemoryItem, float]] = []
        for rowid, distance in vec_rows:
            row = self._conn.execute(
                """
                SELECT id, owner_id, kind, content, relevance_score, created_at
                FROM memories WHERE id = ?
                """,
                (rowid,),
            ).fetchone()
            if row is not None:
                results.append((_row_to_memory(row), distance))
        return results

    def count_memories(self, owner_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM memories WHERE owner_id = ?", (owner_id,)
        ).fetchone()[0]

    # ------------------------------------------------------------------
    # Stored documents
    # ------------------------------------------------------------------

    def add_document(self, document: StoredDocument) -> int:
        cur = self._conn.execute(
            "INSERT INTO documents (owner_id, kind, content) VALUES (?, ?, ?)",
            (document.owner_id, document.kind, document.content),
        )
        self._conn.commit()
        document.id = cur.lastrowid
        return cur.lastrowid

    def latest_document(self, owner_id: str, kind: str) -> StoredDocument | None:
        """Return the most recently stored document of *kind*, or None."""
        row = self._conn.execute(
            """
            SELECT id, owner_id, kind, content, created_at FROM documents
            WHERE owner_id = ? AND kind = ? ORDER BY id DESC LIMIT 1
            """,
            (owner_id, kind),
        ).fetchone()
        if row is None:
            return None
        return StoredDocument(
            id=row["id"],
            owner_id=row["owner_id"],
            kind=row["kind"],
            content=row["content"],
            created_at=row["created_at"],
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _knn(
        self, table: str, owner_id: str, embedding: list[float], limit: int
    ) -> list[tuple[int, float]]:
        self._check_dimensions(embedding)
        rows = self._conn.execute(
            f"""
            SELECT rowid, distance FROM {table}
            WHERE embedding MATCH ? AND k = ? AND owner_id = ?
            ORDER BY distance
            """,
            (json.dumps(embedding), limit, owner_id),
        ).fetchall()
        pairs = [(r["rowid"], r["distance"]) for r in rows]
        pairs.sort(key=lambda p: (p[1], p[0]))
        return pairs

    def _check_dimensions(self, embedding: list[float]) -> None:
        if len(embedding) != self.dimensions:
            raise ValueError(
                f"Embedding has {len(embedding)} dimensions, store expects {self.dimensions}"
            )


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_unit(row: sqlite3.Row) -> IndexedUnit:
    return IndexedUnit(
        id=row["id"],
        owner_id=row["owner_id"],
        path=row["path"],
        raw_content=row["raw_content"],
        summary_text=row["summary_text"],
        created_at=row["created_at"],
    )


def _row_to_memory(row: sqlite3.Row) -> MemoryItem:
    return MemoryItem(
        id=row["id"],
        owner_id=row["owner_id"],
        kind=row["kind"],
        content=row["content"],
        relevance_score=row["relevance_score"],
        created_at=row["created_at"],
    )
