"""Domain models for the repodoc storage layer."""

from __future__ import annotations

from dataclasses import dataclass, field

MEMORY_KINDS: tuple[str, ...] = ("concept", "decision", "relationship")


@dataclass
class IndexedUnit:
    """One embedded source file. Immutable once written."""

    owner_id: str
    path: str
    raw_content: str
    summary_text: str
    embedding: list[float] = field(default_factory=list)
    created_at: str | None = None
    id: int | None = None  # set after insert; None for unsaved units


@dataclass
class MemoryItem:
    """A durable fact extracted from a question/answer exchange."""

    owner_id: str
    kind: str
    content: str
    embedding: list[float] = field(default_factory=list)
    relevance_score: float = 1.0
    created_at: str | None = None
    id: int | None = None


@dataclass
class StoredDocument:
    """A generated document persisted per owner and kind (readme, docs)."""

    owner_id: str
    kind: str
    content: str
    created_at: str | None = None
    id: int | None = None
