"""Service facade: the operations repodoc exposes, wired once per process.

build_service() constructs every client and component from a RepodocConfig
and an open connection, and hands the same instances to everything that
needs them. Nothing in the package holds module-level clients.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass

from repodoc.config import RepodocConfig
from repodoc.db.models import StoredDocument
from repodoc.db.schema import initialize
from repodoc.db.store import VectorStore
from repodoc.diff.analyzer import DiffAnalyzer, DiffReport
from repodoc.errors import NotFoundError
from repodoc.generate.generator import DocumentGenerator, GenerationResult
from repodoc.generate.templates import README, get_template
from repodoc.ingest.loader import load_repository
from repodoc.ingest.pipeline import IngestionPipeline, IngestReport, ProgressCallback
from repodoc.ingest.summarizer import CodeSummarizer
from repodoc.rag.answer import Answer, QuestionAnswerer
from repodoc.rag.llm_client import ChatClient, EmbeddingClient
from repodoc.rag.memory import MemoryStore
from repodoc.rag.retriever import Retriever, SearchHit
from repodoc.rag.retry import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class RepoDoc:
    """All pipeline components sharing one store and one pair of model clients."""

    config: RepodocConfig
    store: VectorStore
    chat: ChatClient
    embedder: EmbeddingClient
    pipeline: IngestionPipeline
    retriever: Retriever
    memory: MemoryStore
    analyzer: DiffAnalyzer
    generator: DocumentGenerator
    answerer: QuestionAnswerer
    loader_retry: RetryPolicy

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest(
        self,
        owner_id: str,
        source: str,
        progress: ProgressCallback | None = None,
        generate_readme: bool = False,
        subject_name: str | None = None,
    ) -> IngestReport:
        """Load *source* (directory or git URL) and index it for *owner_id*.

        With *generate_readme*, a README is generated from the file summaries
        afterwards; its failure does not affect the report.
        """
        files = load_repository(
            source,
            exclude=self.config.ingest.exclude,
            max_file_bytes=self.config.ingest.max_file_bytes,
            retry=self.loader_retry,
        )
        hook = None
        if generate_readme:
            name = subject_name or owner_id

            def hook(owner: str, summaries: list[str]) -> None:
                facts = "\n\n".join(f"- {s}" for s in summaries)
                result = self.generator.generate(name, facts, README)
                self.store.add_document(
                    StoredDocument(owner_id=owner, kind=README.kind, content=result.content)
                )

        return self.pipeline.ingest(owner_id, files, progress=progress, on_complete=hook)

    # ------------------------------------------------------------------
    # Retrieval / Q&A / diffs
    # ------------------------------------------------------------------

    def search(self, owner_id: str, query: str, limit: int | None = None) -> list[SearchHit]:
        return self.retriever.search(owner_id, query, limit or self.config.retrieval.top_k)

    def ask(self, owner_id: str, question: str) -> Answer:
        return self.answerer.ask(owner_id, question)

    def analyze_diff(self, owner_id: str, raw_diff: str) -> DiffReport:
        return self.analyzer.analyze(owner_id, raw_diff)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def generate_document(
        self, owner_id: str, subject_name: str, kind: str = "README"
    ) -> GenerationResult:
        """Generate and store a *kind* document grounded in the owner's units.

        Raises:
            NotFoundError:             Nothing indexed for *owner_id*.
            IncompleteGenerationError: The repair loop could not complete the document.
        """
        template = get_template(kind)
        units = self.store.list_units(owner_id)
        if not units:
            raise NotFoundError(
                f"No indexed content for '{owner_id}'. Run 'repodoc ingest' first."
            )
        facts = "\n\n".join(f"### {u.path}\n{u.summary_text}" for u in units)
        result = self.generator.generate(subject_name, facts, template)
        self.store.add_document(
            StoredDocument(owner_id=owner_id, kind=template.kind, content=result.content)
        )
        return result

    def modify_document(
        self, owner_id: str, instruction: str, kind: str = "README"
    ) -> GenerationResult:
        """Apply *instruction* to the latest stored *kind* document and store the result.

        Raises:
            NotFoundError:             No stored document of that kind.
            IncompleteGenerationError: The edit kept losing sections.
        """
        template = get_template(kind)
        current = self.store.latest_document(owner_id, template.kind)
        if current is None:
            raise NotFoundError(
                f"No {template.kind} document for '{owner_id}'. Run 'repodoc generate' first."
            )
        result = self.generator.modify(current.content, instruction, template)
        self.store.add_document(
            StoredDocument(owner_id=owner_id, kind=template.kind, content=result.content)
        )
        return result

    def latest_document(self, owner_id: str, kind: str = "README") -> StoredDocument | None:
        return self.store.latest_document(owner_id, get_template(kind).kind)


def build_service(config: RepodocConfig, conn: sqlite3.Connection) -> RepoDoc:
    """Wire every component against *conn* (schema is initialised if needed)."""
    initialize(conn)
    retry_cfg = config.retry
    retry = RetryPolicy(
        max_attempts=retry_cfg.max_attempts,
        initial_delay=retry_cfg.initial_delay,
        backoff_multiplier=retry_cfg.backoff_multiplier,
        max_delay=retry_cfg.max_delay,
    )
    loader_retry = RetryPolicy(
        max_attempts=retry_cfg.max_attempts + 1,
        initial_delay=retry_cfg.initial_delay * 2,
        backoff_multiplier=retry_cfg.backoff_multiplier,
        max_delay=retry_cfg.max_delay,
    )

    store = VectorStore(conn, config.embedding.model, config.embedding.dimensions)
    chat = ChatClient(
        model=config.generation.model,
        retry=retry,
        timeout=retry_cfg.timeout,
        temperature=config.generation.temperature,
    )
    embedder = EmbeddingClient(
        model=config.embedding.model,
        dimensions=config.embedding.dimensions,
        retry=retry,
        timeout=retry_cfg.timeout,
        cache_size=config.embedding.cache_size,
    )
    retriever = Retriever(store, embedder)
    memory = MemoryStore(store, chat, embedder, model=config.generation.summary_model)
    pipeline = IngestionPipeline(
        store,
        CodeSummarizer(chat, model=config.generation.summary_model),
        embedder,
        batch_size=config.ingest.batch_size,
        batch_delay=config.ingest.batch_delay,
    )
    return RepoDoc(
        config=config,
        store=store,
        chat=chat,
        embedder=embedder,
        pipeline=pipeline,
        retriever=retriever,
        memory=memory,
        analyzer=DiffAnalyzer(chat, embedder, retriever, memory),
        generator=DocumentGenerator(chat, config.document),
        answerer=QuestionAnswerer(chat, embedder, retriever, memory),
        loader_retry=loader_retry,
    )
