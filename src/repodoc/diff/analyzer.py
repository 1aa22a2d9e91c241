"""Diff analysis: turn a raw unified diff into a structured risk report.

Pipeline (strictly sequential per call):
    parse → embed-query → retrieve-code → retrieve-memory →
    assemble-prompt → generate → extract-json → validate

Only an empty diff short-circuits. Embedding, code retrieval and memory
recall each degrade to "nothing found"; malformed model output degrades to a
report built from the raw text. The model call itself is the one step whose
failure propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Union

from repodoc.diff.parser import DiffFile, parse_diff
from repodoc.rag.llm_client import ChatClient, EmbeddingClient, UsageMetrics
from repodoc.rag.memory import MemoryStore, RecalledMemory
from repodoc.rag.parsing import extract_json_object
from repodoc.rag.retriever import Retriever, SearchHit

logger = logging.getLogger(__name__)

HUNK_MAX_LEN = 800
QUERY_MAX_CHARS_PER_FILE = 300
QUERY_TOTAL_MAX = 500
CODE_SNIPPET_MAX = 600
RAW_SUMMARY_MAX = 500
CODE_TOP_K = 10
MEMORY_TOP_K = 5

RISK_LEVELS = ("low", "medium", "high")
NO_DIFF_SUMMARY = "No valid diff detected."

_SYSTEM_PROMPT = """\
You are a senior engineer analyzing a git/PR diff. You will receive:
1) The parsed diff (file paths and hunks)
2) Related code from the codebase (for context)
3) Relevant repository memory (decisions, concepts, relationships)

Analyze the diff and return a single JSON object with exactly these keys \
(use empty arrays or omit optional keys if not applicable):
- summary: string (brief overall summary)
- whatChanged: string[] (bullet-point list of what changed)
- impactedFiles: string[] (file paths impacted)
- impactedModules: string[] (optional; logical modules/areas affected)
- architecturalImpact: string (optional; short description of architectural side effects)
- riskLevel: "low" | "medium" | "high"
- testsToUpdate: string[] (optional; tests or test files that should be updated)
- possibleRegressions: string[] (optional; areas that might regress)

Return only valid JSON. No markdown code fence, no extra text."""

_USER_PROMPT = """\
## Diff to analyze

{diff_section}

## Related code from codebase

{code_section}

## Relevant repository memory

{memory_section}

Return the analysis as a single JSON object with keys: summary, whatChanged, \
impactedFiles, impactedModules (optional), architecturalImpact (optional), \
riskLevel, testsToUpdate (optional), possibleRegressions (optional)."""


# ------------------------------------------------------------------
# Report types
# ------------------------------------------------------------------


@dataclass
class AnalysisMetrics:
    retrieval_count: int = 0
    memory_hit_count: int = 0
    avg_memory_similarity: float | None = None


@dataclass
class DiffReport:
    """Structured diff analysis.

    ``degraded`` is True when the model's answer could not be parsed and the
    report was built from its raw text.
    """

    summary: str
    what_changed: list[str] = field(default_factory=list)
    impacted_files: list[str] = field(default_factory=list)
    risk_level: str = "low"
    impacted_modules: list[str] | None = None
    architectural_impact: str | None = None
    tests_to_update: list[str] | None = None
    possible_regressions: list[str] | None = None
    usage: UsageMetrics | None = None
    metrics: AnalysisMetrics | None = None
    degraded: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "summary": self.summary,
            "whatChanged": self.what_changed,
            "impactedFiles": self.impacted_files,
            "riskLevel": self.risk_level,
        }
        optional = {
            "impactedModules": self.impacted_modules,
            "architecturalImpact": self.architectural_impact,
            "testsToUpdate": self.tests_to_update,
            "possibleRegressions": self.possible_regressions,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        if self.usage is not None:
            data["usage"] = self.usage.to_dict()
        if self.metrics is not None:
            data["metrics"] = {
                "retrievalCount": self.metrics.retrieval_count,
                "memoryHitCount": self.metrics.memory_hit_count,
                "avgMemorySimilarity": self.metrics.avg_memory_similarity,
            }
        if self.degraded:
            data["degraded"] = True
        return data


@dataclass
class ParsedReport:
    data: dict[str, Any]


@dataclass
class MalformedReport:
    raw: str


ExtractedReport = Union[ParsedReport, MalformedReport]


def extract_report(content: str) -> ExtractedReport:
    """Locate the JSON object in a model reply (fenced block, else first {...} span)."""
    data = extract_json_object(content.strip())
    if data is None:
        return MalformedReport(raw=content)
    return ParsedReport(data=data)


def validate_report(data: dict[str, Any]) -> DiffReport:
    """Coerce an untrusted JSON object into a DiffReport."""
    risk = data.get("riskLevel")
    return DiffReport(
        summary=data["summary"] if isinstance(data.get("summary"), str) else "",
        what_changed=_string_list(data.get("whatChanged")) or [],
        impacted_files=_string_list(data.get("impactedFiles")) or [],
        risk_level=risk if risk in RISK_LEVELS else "low",
        impacted_modules=_string_list(data.get("impactedModules")),
        architectural_impact=(
            data["architecturalImpact"]
            if isinstance(data.get("architecturalImpact"), str)
            else None
        ),
        tests_to_update=_string_list(data.get("testsToUpdate")),
        possible_regressions=_string_list(data.get("possibleRegressions")),
    )


def _string_list(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    return [v if isinstance(v, str) else str(v) for v in value]


# ------------------------------------------------------------------
# Prompt assembly
# ------------------------------------------------------------------


def build_retrieval_query(files: list[DiffFile]) -> str:
    """Bounded text used to embed the diff for retrieval."""
    parts: list[str] = []
    total = 0
    for f in files:
        parts.append(f.path)
        total += len(f.path) + 1
        excerpt = "\n".join(f.hunks)[:QUERY_MAX_CHARS_PER_FILE]
        parts.append(excerpt)
        total += len(excerpt)
        if total >= QUERY_TOTAL_MAX:
            break
    return " ".join(parts)[:QUERY_TOTAL_MAX]


def truncate_hunk(hunk: str, max_len: int = HUNK_MAX_LEN) -> str:
    if len(hunk) <= max_len:
        return hunk
    return hunk[:max_len] + "\n... (truncated)"


def build_user_prompt(
    files: list[DiffFile], hits: list[SearchHit], memories: list[RecalledMemory]
) -> str:
    diff_section = "\n\n".join(
        f"File: {f.path}\n" + "\n---\n".join(truncate_hunk(h) for h in f.hunks)
        for f in files
    )
    if hits:
        code_section = "\n\n---\n\n".join(
            f"[{i}] {hit.path}\nSummary: {hit.summary}\nCode:\n"
            f"{hit.content[:CODE_SNIPPET_MAX]}{'...' if len(hit.content) > CODE_SNIPPET_MAX else ''}"
            for i, hit in enumerate(hits, start=1)
        )
    else:
        code_section = "(No related code retrieved)"
    if memories:
        memory_section = "\n".join(f"[{m.kind}] {m.content}" for m in memories)
    else:
        memory_section = "(No relevant repository memory)"
    return _USER_PROMPT.format(
        diff_section=diff_section,
        code_section=code_section,
        memory_section=memory_section,
    )


# ------------------------------------------------------------------
# Analyzer
# ------------------------------------------------------------------


class DiffAnalyzer:
    """Analyse diffs against one owner's index.

    Args:
        chat:      Chat client for the report.
        embedder:  Embedding client for the retrieval query.
        retriever: Retrieval engine over the owner's units.
        memory:    Memory subsystem for recall.
    """

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

    def analyze(self, owner_id: str, raw_diff: str) -> DiffReport:
        """Analyse *raw_diff* for *owner_id*.

        Raises:
            ExternalServiceError: The chat model call failed after retries.
        """
        files = parse_diff(raw_diff)
        if not files:
            return DiffReport(summary=NO_DIFF_SUMMARY, risk_level="low")

        query_text = build_retrieval_query(files)
        query_vector = self._embed_query(query_text)
        hits = self._related_code(owner_id, query_vector)
        memories = self._memory.recall(owner_id, query_vector, MEMORY_TOP_K)

        result = self._chat.complete(
            [{"role": "user", "content": build_user_prompt(files, hits, memories)}],
            system=_SYSTEM_PROMPT,
            temperature=0.3,
        )
        metrics = AnalysisMetrics(
            retrieval_count=len(hits),
            memory_hit_count=len(memories),
            avg_memory_similarity=(
                sum(m.similarity for m in memories) / len(memories) if memories else None
            ),
        )

        extracted = extract_report(result.content)
        if isinstance(extracted, MalformedReport):
            logger.warning("Diff analysis returned malformed JSON; returning raw summary")
            return DiffReport(
                summary="Analysis could not be structured. Raw response: "
                + extracted.raw[:RAW_SUMMARY_MAX],
                impacted_files=[f.path for f in files],
                risk_level="medium",
                usage=result.usage,
                metrics=metrics,
                degraded=True,
            )

        report = validate_report(extracted.data)
        report.usage = result.usage
        report.metrics = metrics
        return report

    def _embed_query(self, text: str) -> list[float]:
        try:
            return self._embedder.embed(text)
        except Exception as exc:
            logger.warning("Diff query embedding failed (%s); continuing without retrieval", exc)
            return []

    def _related_code(self, owner_id: str, query_vector: list[float]) -> list[SearchHit]:
        if not query_vector:
            return []
        try:
            return self._retriever.search_by_vector(owner_id, query_vector, CODE_TOP_K)
        except Exception as exc:
            logger.warning("Related code lookup failed for owner '%s': %s", owner_id, exc)
            return []
