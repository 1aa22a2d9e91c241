"""repodoc ingest pipeline: repository loader, code summarizer, batched indexer."""

from repodoc.ingest.loader import SourceFile, load_repository
from repodoc.ingest.pipeline import IngestionPipeline, IngestReport
from repodoc.ingest.summarizer import CodeSummarizer

__all__ = [
    "CodeSummarizer",
    "IngestReport",
    "IngestionPipeline",
    "SourceFile",
    "load_repository",
]
