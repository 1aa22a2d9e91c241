"""Tests for the batched ingestion pipeline."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from repodoc.db.models import IndexedUnit
from repodoc.errors import ExternalServiceError, NotFoundError, ValidationError
from repodoc.ingest.loader import SourceFile
from repodoc.ingest.pipeline import IngestionPipeline


def _files(n: int) -> list[SourceFile]:
    return [SourceFile(path=f"src/file{i}.py", content=f"x = {i}") for i in range(1, n + 1)]


@pytest.fixture
def summarizer():
    summarizer = MagicMock()
    summarizer.summarize.side_effect = lambda path, code: f"Summary of {path}"
    return summarizer


def _pipeline(store, summarizer, embedder, **kwargs) -> IngestionPipeline:
    kwargs.setdefault("sleep", lambda s: None)
    return IngestionPipeline(store, summarizer, embedder, **kwargs)


def test_all_files_indexed(store, summarizer, fake_embedder):
    report = _pipeline(store, summarizer, fake_embedder, batch_size=4).ingest("proj", _files(6))

    assert (report.files_processed, report.success_count, report.fail_count) == (6, 6, 0)
    assert [u.path for u in store.list_units("proj")] == [f"src/file{i}.py" for i in range(1, 7)]
    assert store.list_units("proj")[0].summary_text == "Summary of src/file1.py"


def test_failures_counted_not_raised(store, summarizer, fake_embedder):
    def summarize(path, code):
        if path in ("src/file3.py", "src/file7.py"):
            raise ExternalServiceError("rate limited", service="chat")
        return f"Summary of {path}"

    summarizer.summarize.side_effect = summarize

    report = _pipeline(store, summarizer, fake_embedder, batch_size=4).ingest("proj", _files(10))

    assert report.to_dict() == {"filesProcessed": 10, "successCount": 8, "failCount": 2}
    assert store.count_units("proj") == 8
    paths = {u.path for u in store.list_units("proj")}
    assert "src/file3.py" not in paths and "src/file7.py" not in paths


def test_empty_summary_is_a_failure(store, summarizer, fake_embedder):
    summarizer.summarize.side_effect = lambda path, code: "" if path.endswith("2.py") else "ok"
    report = _pipeline(store, summarizer, fake_embedder).ingest("proj", _files(3))
    assert (report.success_count, report.fail_count) == (2, 1)


def test_store_failure_is_a_failure(store, summarizer):
    embedder = MagicMock()
    embedder.embed.side_effect = lambda text: [1.0, 0.0] if "file1" in text else [1.0, 0.0, 0.0, 0.0]
    report = _pipeline(store, summarizer, embedder).ingest("proj", _files(2))
    assert (report.success_count, report.fail_count) == (1, 1)


def test_reingest_replaces_previous_units(store, summarizer, fake_embedder):
    store.add_unit(
        IndexedUnit(owner_id="proj", path="stale.py", raw_content="", summary_text="old", embedding=[0.0, 1.0, 0.0, 0.0])
    )
    _pipeline(store, summarizer, fake_embedder).ingest("proj", _files(2))
    assert [u.path for u in store.list_units("proj")] == ["src/file1.py", "src/file2.py"]


def test_no_files_raises(store, summarizer, fake_embedder):
    with pytest.raises(NotFoundError):
        _pipeline(store, summarizer, fake_embedder).ingest("proj", [])


def test_progress_and_delay_between_batches(store, summarizer, fake_embedder):
    slept: list[float] = []
    seen: list[int] = []
    pipeline = _pipeline(store, summarizer, fake_embedder, batch_size=4, batch_delay=0.5, sleep=slept.append)

    pipeline.ingest("proj", _files(10), progress=seen.append)

    assert seen == [40, 80, 100]
    assert slept == [0.5, 0.5]


def test_completion_hook_receives_summaries(store, summarizer, fake_embedder):
    hook = MagicMock()
    _pipeline(store, summarizer, fake_embedder, on_complete=hook).ingest("proj", _files(2))
    hook.assert_called_once_with("proj", ["Summary of src/file1.py", "Summary of src/file2.py"])


def test_completion_hook_failure_is_swallowed(store, summarizer, fake_embedder):
    hook = MagicMock(side_effect=RuntimeError("readme failed"))
    report = _pipeline(store, summarizer, fake_embedder).ingest("proj", _files(1), on_complete=hook)
    assert report.success_count == 1
    hook.assert_called_once()


def test_completion_hook_skipped_when_nothing_indexed(store, summarizer, fake_embedder):
    summarizer.summarize.side_effect = ExternalServiceError("down")
    hook = MagicMock()
    report = _pipeline(store, summarizer, fake_embedder, on_complete=hook).ingest("proj", _files(2))
    assert report.fail_count == 2
    hook.assert_not_called()


def test_invalid_batch_size(store, summarizer, fake_embedder):
    with pytest.raises(ValidationError, match="batch_size"):
        IngestionPipeline(store, summarizer, fake_embedder, batch_size=0)


def test_batch_runs_concurrently_and_batches_in_sequence(store, summarizer, fake_embedder):
    barrier = threading.Barrier(3, timeout=5)
    lock = threading.Lock()
    events: list[str] = []
    in_flight = 0
    peak = 0

    def summarize(path, code):
        nonlocal in_flight, peak
        with lock:
            in_flight += 1
            peak = max(peak, in_flight)
        barrier.wait()  # only passes when the whole batch is in flight
        with lock:
            in_flight -= 1
            events.append(path)
        return f"Summary of {path}"

    summarizer.summarize.side_effect = summarize

    report = _pipeline(
        store, summarizer, fake_embedder, batch_size=3, sleep=lambda s: events.append("sleep")
    ).ingest("proj", _files(6))

    assert (report.success_count, report.fail_count) == (6, 0)
    assert peak == 3
    assert events[3] == "sleep"
    assert set(events[:3]) == {"src/file1.py", "src/file2.py", "src/file3.py"}
    assert set(events[4:]) == {"src/file4.py", "src/file5.py", "src/file6.py"}
