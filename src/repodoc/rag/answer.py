"""Question answering over an indexed repository.

retrieve (top 5) → recall memory → answer → extract + store memory.
The memory write-back is best-effort and never affects the answer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from repodoc.rag.llm_client import ChatClient, EmbeddingClient, UsageMetrics
from repodoc.rag.memory import MemoryStore
from repodoc.rag.retriever import Retriever, SearchHit

logger = logging.getLogger(__name__)

ANSWER_TOP_K = 5
SOURCE_SNIPPET_MAX = 1_000

NO_CONTEXT_ANSWER = (
    "I couldn't find any relevant code for your question. The repository might "
    "not be fully indexed yet, or your question might be too specific."
)

_SYSTEM_PROMPT = """\
You are a senior software engineer helping a developer understand their codebase.
Answer using only the code snippets and repository memory below. If the \
information is not there, say what is missing instead of guessing. Reference \
files by path.

Relevant code:

{code_context}

Repository memory:

{memory_context}"""


@dataclass
class Answer:
    text: str
    sources: list[SearchHit] = field(default_factory=list)
    usage: UsageMetrics | None = None
    memories_stored: int = 0


def _code_context(hits: list[SearchHit]) -> str:
    blocks = []
    for i, hit in enumerate(hits, start=1):
        snippet = hit.content[:SOURCE_SNIPPET_MAX]
        if len(hit.content) > SOURCE_SNIPPET_MAX:
            snippet += "..."
        blocks.append(
            f"[Source {i}: {hit.path}] (Relevance: {hit.similarity * 100:.1f}%)\n"
            f"Summary: {hit.summary}\n\nCode:\n```\n{snippet}\n```"
        )
    return "\n\n---\n\n".join(blocks)


class QuestionAnswerer:
    def __init__(
        self,
        chat: ChatClient,
        embedder: EmbeddingClient,
        retriever: Retriever,
        memory: MemoryStore,
    ) -> None:
        self._chat = chat
        self._embedder = embedder
        self._retriever = retriever
        self._memory = memory

    def ask(self, owner_id: str, question: str, history: list[dict] | None = None) -> Answer:
        """Answer *question* about *owner_id*'s repository.

        Raises:
            NotFoundError:        Nothing indexed for *owner_id*.
            ExternalServiceError: Query embedding or the answer call failed.
        """
        query_vector = self._embedder.embed(question)
        hits = self._retriever.search_by_vector(owner_id, query_vector, ANSWER_TOP_K)
        if not hits:
            return Answer(text=NO_CONTEXT_ANSWER)

        memories = self._memory.recall(owner_id, query_vector, 5)
        memory_context = (
            "\n".join(f"[{m.kind}] {m.content}" for m in memories)
            or "(No relevant repository memory)"
        )
        system = _SYSTEM_PROMPT.format(
            code_context=_code_context(hits), memory_context=memory_context
        )
        messages = [*(history or []), {"role": "user", "content": question}]
        result = self._chat.complete(messages, system=system)

        stored = 0
        candidates = self._memory.extract(question, result.content)
        if candidates:
            stored = sum(1 for outcome in self._memory.store(owner_id, candidates) if outcome.ok)
            logger.debug("Stored %d/%d memory items for '%s'", stored, len(candidates), owner_id)
        return Answer(text=result.content, sources=hits, usage=result.usage, memories_stored=stored)
