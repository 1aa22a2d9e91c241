"""Structured document generator with a bounded validation-and-repair loop.

generate():
    pass 1  full template prompt
    pass 2  targeted retry naming the missing sections (only if pass 1 is incomplete)
    pass 3  section-only retry, merged into the best draft (only if still incomplete)
    → IncompleteGenerationError if sections are still missing

A failed model call (retries exhausted, timeout) counts as an empty pass;
the loop never makes more than three model calls per document. A gapped
draft is never returned.

modify():
    one edit pass, plus one stricter retry when the edit looks like a
    wholesale rewrite (too short, lost sections, gaps, truncation).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from repodoc.config import DocumentCfg
from repodoc.errors import ExternalServiceError, IncompleteGenerationError
from repodoc.generate import templates
from repodoc.generate.templates import DocumentTemplate
from repodoc.generate.validation import (
    DocumentDraft,
    cut_trailing_section,
    looks_truncated,
    merge_sections,
    validate_draft,
)
from repodoc.rag.llm_client import ChatClient, UsageMetrics

logger = logging.getLogger(__name__)

MAX_PASSES = 3


@dataclass
class GenerationResult:
    content: str
    draft: DocumentDraft
    usage: UsageMetrics = field(default_factory=UsageMetrics)
    passes: int = 0


def output_budget(prompt: str, cfg: DocumentCfg) -> int:
    """Output token budget left after the estimated input, clamped to the configured range.

    *prompt* is the full user prompt, grounding facts included.
    """
    estimated_input = math.ceil(len(prompt) / 4)
    reserved = estimated_input + cfg.fixed_overhead
    return max(cfg.min_output_tokens, min(cfg.max_output_tokens, cfg.total_budget - reserved))


class DocumentGenerator:
    """Generate and modify template-shaped documents.

    Args:
        chat:  Chat client.
        cfg:   Budget and repair thresholds.
        model: Optional model override.
    """

    def __init__(self, chat: ChatClient, cfg: DocumentCfg | None = None, model: str | None = None) -> None:
        self._chat = chat
        self._cfg = cfg or DocumentCfg()
        self._model = model

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate(self, subject_name: str, grounding_facts: str, template: DocumentTemplate) -> GenerationResult:
        """Write a complete document for *subject_name*.

        Raises:
            IncompleteGenerationError: Sections still missing after the repair loop.
        """
        expected = template.section_count
        prompt = templates.build_generation_prompt(subject_name, grounding_facts, template)
        budget = output_budget(prompt, self._cfg)
        usage = UsageMetrics()

        # Pass 1
        content, usage = self._attempt(prompt, templates.GENERATION_SYSTEM, budget, usage)
        first = validate_draft(content, expected)
        if first.is_complete:
            return GenerationResult(content=first.content, draft=first, usage=usage, passes=1)
        logger.info(
            "Pass 1 incomplete for '%s': missing %s%s",
            subject_name,
            first.missing_sections,
            " (truncated)" if first.truncated else "",
        )

        # Pass 2: targeted retry
        retry_prompt = templates.build_retry_prompt(
            prompt, template, first.missing_sections, first.truncated
        )
        content, usage = self._attempt(retry_prompt, templates.RETRY_SYSTEM, budget, usage)
        second = validate_draft(content, expected)
        best = self._choose(first, second)
        if best.is_complete:
            return GenerationResult(content=best.content, draft=best, usage=usage, passes=2)
        logger.info(
            "Pass 2 incomplete for '%s': missing %s%s",
            subject_name,
            best.missing_sections,
            " (truncated)" if best.truncated else "",
        )

        # Pass 3: section-only retry
        base = best.content
        needed = list(best.missing_sections)
        if best.truncated:
            base, cut = cut_trailing_section(base)
            if cut is not None and 1 <= cut <= expected and cut not in needed:
                needed.append(cut)
            needed.sort()
        if needed:
            sections_prompt = templates.build_sections_prompt(
                subject_name, grounding_facts, template, needed
            )
            addition, usage = self._attempt(sections_prompt, templates.RETRY_SYSTEM, budget, usage)
            if looks_truncated(addition):
                # a cut-off reply section would land mid-document after the merge
                addition, dropped = cut_trailing_section(addition)
                logger.info("Section-only reply truncated; dropping section %s", dropped)
            final = validate_draft(merge_sections(base, addition, needed), expected)
            passes = MAX_PASSES
        else:
            # only an out-of-range trailing section was cut off
            final = validate_draft(base, expected)
            passes = 2

        if not final.is_complete:
            logger.warning(
                "Giving up on '%s' after %d passes: missing %s",
                subject_name,
                passes,
                final.missing_sections,
            )
            raise IncompleteGenerationError(final.missing_sections, truncated=final.truncated)
        return GenerationResult(content=final.content, draft=final, usage=usage, passes=passes)

    def _choose(self, first: DocumentDraft, second: DocumentDraft) -> DocumentDraft:
        """Pick between the pass-1 draft and the targeted retry."""
        if len(first.content.strip()) < self._cfg.min_draft_chars:
            return second
        new_gaps = set(second.missing_sections) - set(first.missing_sections)
        if second.coverage >= first.coverage and not new_gaps:
            return second
        if second.coverage > first.coverage:
            return second
        return first

    def _attempt(
        self, prompt: str, system: str, max_tokens: int, usage: UsageMetrics
    ) -> tuple[str, UsageMetrics]:
        """One model call; a failed call yields empty content."""
        try:
            result = self._chat.complete(
                [{"role": "user", "content": prompt}],
                model=self._model,
                system=system,
                max_tokens=max_tokens,
            )
        except ExternalServiceError as exc:
            logger.warning("Generation pass failed: %s", exc)
            return "", usage
        return result.content, usage + result.usage

    # ------------------------------------------------------------------
    # Modification
    # ------------------------------------------------------------------

    def modify(self, original: str, instruction: str, template: DocumentTemplate) -> GenerationResult:
        """Apply *instruction* to *original*.

        Sections present in *original* must survive the edit.

        Raises:
            IncompleteGenerationError: The retried edit still lost sections.
        """
        expected = template.section_count
        reference = validate_draft(original, expected)
        required = reference.section_numbers_present or list(range(1, expected + 1))
        prompt = templates.build_modify_prompt(original, instruction, template)
        budget = output_budget(prompt, self._cfg)
        usage = UsageMetrics()

        content, usage = self._attempt(prompt, templates.MODIFY_SYSTEM, budget, usage)
        draft = validate_draft(content, expected)
        if not self._looks_rewritten(original, reference, draft, required):
            return GenerationResult(content=draft.content, draft=draft, usage=usage, passes=1)

        logger.info("Modified draft looks like a rewrite; retrying with verbatim-copy instruction")
        content, usage = self._attempt(prompt, templates.MODIFY_STRICT_SYSTEM, budget, usage)
        draft = validate_draft(content, expected)
        gaps = _gaps(draft, required)
        if gaps or not draft.content.strip():
            raise IncompleteGenerationError(gaps or list(required), truncated=draft.truncated)
        return GenerationResult(content=draft.content, draft=draft, usage=usage, passes=2)

    def _looks_rewritten(
        self,
        original: str,
        reference: DocumentDraft,
        draft: DocumentDraft,
        required: list[int],
    ) -> bool:
        if not draft.content.strip():
            return True
        if len(draft.content) < self._cfg.min_length_ratio * len(original):
            return True
        if reference.coverage - draft.coverage > self._cfg.max_section_drop:
            return True
        return bool(_gaps(draft, required)) or draft.truncated


def _gaps(draft: DocumentDraft, required: list[int]) -> list[int]:
    present = set(draft.section_numbers_present)
    return [n for n in required if n not in present]
