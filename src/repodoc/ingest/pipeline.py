"""Batched ingestion: summarise → embed → persist, tolerant of per-file failures.

Files are processed in batches of ``batch_size``. Within a batch every file is
summarised and embedded concurrently on a thread pool; results are collected
settle-all style, so one failing file never cancels its siblings. Persistence
happens afterwards on the calling thread (sqlite connections are not shared
across threads), in file order.

Failures are logged and counted, never raised. Re-ingesting an owner replaces
everything it had before.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable

from repodoc.db.models import IndexedUnit
from repodoc.db.store import VectorStore
from repodoc.errors import NotFoundError, ValidationError
from repodoc.ingest.loader import SourceFile
from repodoc.ingest.summarizer import CodeSummarizer
from repodoc.rag.llm_client import EmbeddingClient

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]
CompletionHook = Callable[[str, list[str]], None]


@dataclass
class IngestReport:
    files_processed: int = 0
    success_count: int = 0
    fail_count: int = 0

    def to_dict(self) -> dict:
        return {
            "filesProcessed": self.files_processed,
            "successCount": self.success_count,
            "failCount": self.fail_count,
        }


@dataclass
class _Prepared:
    file: SourceFile
    summary: str
    embedding: list[float]


class IngestionPipeline:
    """Index a repository's files for one owner.

    Args:
        store:       Open VectorStore.
        summarizer:  Per-file summariser.
        embedder:    Embedding client.
        batch_size:  Files per batch (and thread pool size).
        batch_delay: Seconds to wait between batches.
        on_complete: Best-effort hook called with (owner_id, summaries) once at
                     least one unit was written; its failure is only logged.
        sleep:       Sleep function (swapped out in tests).
    """

    def __init__(
        self,
        store: VectorStore,
        summarizer: CodeSummarizer,
        embedder: EmbeddingClient,
        batch_size: int = 10,
        batch_delay: float = 1.0,
        on_complete: CompletionHook | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValidationError(f"batch_size must be >= 1, got {batch_size}")
        self._store = store
        self._summarizer = summarizer
        self._embedder = embedder
        self._batch_size = batch_size
        self._batch_delay = batch_delay
        self._on_complete = on_complete
        self._sleep = sleep

    def ingest(
        self,
        owner_id: str,
        files: list[SourceFile],
        progress: ProgressCallback | None = None,
        on_complete: CompletionHook | None = None,
    ) -> IngestReport:
        """Summarise, embed and store *files* for *owner_id*.

        Args:
            owner_id:    Owner (project) the units belong to.
            files:       Loaded source files.
            progress:    Optional callback receiving a percentage after each batch.
            on_complete: Overrides the hook given at construction for this run.

        Raises:
            NotFoundError: *files* is empty.
        """
        if not files:
            raise NotFoundError(f"No files found to ingest for '{owner_id}'")

        removed = self._store.delete_units(owner_id)
        if removed:
            logger.info("Removed %d existing units for owner '%s'", removed, owner_id)

        report = IngestReport(files_processed=len(files))
        summaries: list[str] = []
        total = len(files)

        for start in range(0, total, self._batch_size):
            batch = files[start : start + self._batch_size]
            for prepared in self._prepare_batch(owner_id, batch):
                if prepared is None:
                    report.fail_count += 1
                    continue
                if self._persist(owner_id, prepared):
                    report.success_count += 1
                    summaries.append(prepared.summary)
                else:
                    report.fail_count += 1

            done = min(start + self._batch_size, total)
            if progress is not None:
                progress(round(done * 100 / total))
            if done < total:
                self._sleep(self._batch_delay)

        logger.info(
            "Ingested owner '%s': %d ok, %d failed of %d files",
            owner_id,
            report.success_count,
            report.fail_count,
            report.files_processed,
        )
        hook = on_complete or self._on_complete
        if summaries and hook is not None:
            try:
                hook(owner_id, summaries)
            except Exception as exc:
                logger.warning("Post-ingest hook failed for owner '%s': %s", owner_id, exc)
        return report

    # ------------------------------------------------------------------
    # Batch processing
    # ------------------------------------------------------------------

    def _prepare_batch(self, owner_id: str, batch: list[SourceFile]) -> list[_Prepared | None]:
        """Summarise + embed every file of *batch* concurrently; None marks a failure."""
        with ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="ingest") as pool:
            futures: list[Future[_Prepared]] = [pool.submit(self._prepare, f) for f in batch]
            results: list[_Prepared | None] = []
            for source_file, future in zip(batch, futures):
                try:
                    results.append(future.result())
                except Exception as exc:
                    logger.warning(
                        "Failed to index %s for owner '%s': %s", source_file.path, owner_id, exc
                    )
                    results.append(None)
        return results

    def _prepare(self, source_file: SourceFile) -> _Prepared:
        summary = self._summarizer.summarize(source_file.path, source_file.content)
        if not summary:
            raise ValueError("empty summary generated")
        embedding = self._embedder.embed(summary)
        return _Prepared(file=source_file, summary=summary, embedding=embedding)

    def _persist(self, owner_id: str, prepared: _Prepared) -> bool:
        try:
            self._store.add_unit(
                IndexedUnit(
                    owner_id=owner_id,
                    path=prepared.file.path,
                    raw_content=prepared.file.content,
                    summary_text=prepared.summary,
                    embedding=prepared.embedding,
                )
            )
        except Exception as exc:
            logger.warning(
                "Failed to store %s for owner '%s': %s", prepared.file.path, owner_id, exc
            )
            return False
        return True
