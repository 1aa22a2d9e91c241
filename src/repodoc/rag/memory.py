"""Long-term repository memory: extract, store and recall durable knowledge.

After a question is answered, the exchange is distilled into at most five
memory items (concepts, decisions, relationships). Items are embedded and
stored per owner; later analyses recall the nearest ones as extra context.

Every operation here is best-effort: bad model output yields no items, a
failed store marks that item as failed, a failed recall yields nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from repodoc.db.models import MEMORY_KINDS, MemoryItem
from repodoc.db.store import VectorStore
from repodoc.rag.llm_client import ChatClient, EmbeddingClient
from repodoc.rag.parsing import extract_json_array
from repodoc.rag.retriever import similarity_from_distance

logger = logging.getLogger(__name__)

MAX_EXTRACTED = 5

_EXTRACT_SYSTEM = """\
You are a knowledge extraction system. Your task is to extract only long-term, \
reusable knowledge about the codebase from a user question and assistant answer.

RULES:
1. Look at the user question and the assistant answer.
2. Extract ONLY long-term, durable knowledge: facts, architectural decisions, \
relationships between modules or systems.
3. Output a valid JSON array of objects. Each object must have exactly two keys: \
"type" and "content".
4. "type" MUST be one of: "concept", "decision", "relationship".
   - concept: Factual knowledge about the repo (how something works, what a component does)
   - decision: Architectural or engineering decisions (why something was built a certain way)
   - relationship: Relationships between modules, systems, or components
5. Ignore transient or conversational content. Do not extract greetings, \
follow-ups, or one-off clarifications.
6. Return at most 5 items. If nothing worth remembering, return [].
7. Output only the JSON array, no other text."""


@dataclass
class MemoryCandidate:
    kind: str
    content: str


@dataclass
class StoreOutcome:
    """Per-item result of MemoryStore.store()."""

    candidate: MemoryCandidate
    ok: bool
    memory_id: int | None = None
    error: str | None = None


@dataclass
class RecalledMemory:
    kind: str
    content: str
    similarity: float


class MemoryStore:
    """Memory extraction, storage and recall for one store.

    Args:
        store:    Open VectorStore.
        chat:     Chat client used for extraction.
        embedder: Embedding client (same model as the store's vec tables).
        model:    Optional model override for extraction.
    """

    def __init__(
        self,
        store: VectorStore,
        chat: ChatClient,
        embedder: EmbeddingClient,
        model: str | None = None,
    ) -> None:
        self._store = store
        self._chat = chat
        self._embedder = embedder
        self._model = model

    def extract(self, question: str, answer: str) -> list[MemoryCandidate]:
        """Distil *question*/*answer* into durable memory candidates.

        Never raises: model failure or unparseable output yields [].
        """
        try:
            result = self._chat.complete(
                [{"role": "user", "content": f"Question: {question}\n\nAnswer:\n{answer}"}],
                model=self._model,
                system=_EXTRACT_SYSTEM,
                temperature=0.2,
                max_tokens=1_000,
            )
        except Exception as exc:
            logger.warning("Memory extraction call failed: %s", exc)
            return []

        parsed = extract_json_array(result.content.strip())
        if parsed is None:
            logger.debug("Memory extraction returned no JSON array")
            return []

        candidates = [
            MemoryCandidate(kind=item["type"], content=item["content"])
            for item in parsed
            if isinstance(item, dict)
            and isinstance(item.get("type"), str)
            and isinstance(item.get("content"), str)
            and item["type"] in MEMORY_KINDS
        ]
        return candidates[:MAX_EXTRACTED]

    def store(self, owner_id: str, items: list[MemoryCandidate]) -> list[StoreOutcome]:
        """Embed and persist *items*; returns one outcome per item, in order."""
        outcomes: list[StoreOutcome] = []
        for candidate in items:
            if candidate.kind not in MEMORY_KINDS:
                outcomes.append(
                    StoreOutcome(candidate, ok=False, error=f"invalid kind '{candidate.kind}'")
                )
                continue
            try:
                embedding = self._embedder.embed(candidate.content)
                memory_id = self._store.add_memory(
                    MemoryItem(
                        owner_id=owner_id,
                        kind=candidate.kind,
                        content=candidate.content,
                        embedding=embedding,
                    )
                )
            except Exception as exc:
                logger.warning("Failed to store memory for owner '%s': %s", owner_id, exc)
                outcomes.append(StoreOutcome(candidate, ok=False, error=str(exc)))
                continue
            outcomes.append(StoreOutcome(candidate, ok=True, memory_id=memory_id))
        return outcomes

    def recall(
        self, owner_id: str, query_vector: list[float], limit: int = 5
    ) -> list[RecalledMemory]:
        """Nearest memory items of *owner_id*; [] on an empty vector or store failure."""
        if not query_vector:
            return []
        try:
            pairs = self._store.nearest_memories(owner_id, query_vector, limit)
        except Exception as exc:
            logger.warning("Memory recall failed for owner '%s': %s", owner_id, exc)
            return []
        return [
            RecalledMemory(
                kind=item.kind,
                content=item.content,
                similarity=similarity_from_distance(distance),
            )
            for item, distance in pairs
        ]
