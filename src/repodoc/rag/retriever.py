"""Retrieval engine: owner-scoped vector search over indexed units.

The query is embedded with the same model used at ingest time and matched
against the owner's vec0 partition. Similarity is ``1 - cosine distance``
clamped to [0, 1].

When the vector query itself fails the engine degrades to the most recently
ingested units (similarity 0.0, ``degraded=True``) instead of failing the
request. An owner with nothing ingested is a NotFoundError, never a
degraded result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from repodoc.db.models import IndexedUnit
from repodoc.db.store import VectorStore
from repodoc.errors import NotFoundError
from repodoc.rag.llm_client import EmbeddingClient

logger = logging.getLogger(__name__)


@dataclass
class SearchHit:
    """A retrieved unit.

    Attributes:
        path:       Repository-relative file path.
        content:    Raw file content.
        summary:    Ingest-time summary.
        similarity: Cosine similarity in [0, 1] (0.0 on the degraded path).
        degraded:   True when the hit came from the recency fallback.
    """

    path: str
    content: str
    summary: str
    similarity: float
    degraded: bool = False


def similarity_from_distance(distance: float) -> float:
    return min(1.0, max(0.0, 1.0 - distance))


class Retriever:
    """Semantic search over one store.

    Args:
        store:    Open VectorStore.
        embedder: Embedding client (same model as the store's vec tables).
    """

    def __init__(self, store: VectorStore, embedder: EmbeddingClient) -> None:
        self._store = store
        self._embedder = embedder

    def search(self, owner_id: str, query_text: str, limit: int = 10) -> list[SearchHit]:
        """Return up to *limit* hits for *query_text*, best-first.

        Raises:
            ExternalServiceError: The query could not be embedded.
            NotFoundError:        *owner_id* has no indexed units.
        """
        query_vector = self._embedder.embed(query_text)
        return self.search_by_vector(owner_id, query_vector, limit)

    def search_by_vector(
        self, owner_id: str, query_vector: list[float], limit: int = 10
    ) -> list[SearchHit]:
        """Like search() but with a pre-computed query vector."""
        try:
            pairs = self._store.nearest_units(owner_id, query_vector, limit)
            hits = [_to_hit(unit, similarity_from_distance(distance)) for unit, distance in pairs]
        except Exception as exc:
            logger.warning(
                "Vector search failed for owner '%s' (%s); falling back to recent units",
                owner_id,
                exc,
            )
            hits = [
                _to_hit(unit, 0.0, degraded=True)
                for unit in self._store.recent_units(owner_id, limit)
            ]

        if not hits and self._store.count_units(owner_id) == 0:
            raise NotFoundError(
                f"No indexed content for '{owner_id}'. Run 'repodoc ingest' first."
            )
        return hits


def _to_hit(unit: IndexedUnit, similarity: float, degraded: bool = False) -> SearchHit:
    return SearchHit(
        path=unit.path,
        content=unit.raw_content,
        summary=unit.summary_text,
        similarity=similarity,
        degraded=degraded,
    )
