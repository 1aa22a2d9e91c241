"""Section completeness checks for generated documents.

A draft is complete iff its ``## <n>. <title>`` headers cover 1..N with no
gaps and the text does not look cut off. Section numbers above N are ignored
(and logged); duplicate headers count once.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

SECTION_HEADER_RE = re.compile(r"^##[ \t]+(\d+)\.[ \t]+\S.*$", re.MULTILINE)
_ANY_HEADER_RE = re.compile(r"^#{1,6}\s+\S")
_FENCE_RE = re.compile(r"^\s*(```|~~~)", re.MULTILINE)


@dataclass
class DocumentDraft:
    content: str
    section_numbers_present: list[int] = field(default_factory=list)
    expected_section_count: int = 0
    truncated: bool = False

    @property
    def missing_sections(self) -> list[int]:
        present = set(self.section_numbers_present)
        return [n for n in range(1, self.expected_section_count + 1) if n not in present]

    @property
    def coverage(self) -> int:
        return len(self.section_numbers_present)

    @property
    def is_complete(self) -> bool:
        return not self.missing_sections and not self.truncated


def section_numbers(content: str) -> list[int]:
    """Every section number found in *content*, de-duplicated, in order of appearance."""
    seen: list[int] = []
    for match in SECTION_HEADER_RE.finditer(content):
        number = int(match.group(1))
        if number not in seen:
            seen.append(number)
    return seen


def looks_truncated(content: str) -> bool:
    """Heuristic check for a document that was cut off mid-output."""
    text = content.rstrip()
    if not text:
        return False
    if len(_FENCE_RE.findall(text)) % 2 == 1:
        return True
    last = text.splitlines()[-1].strip()
    # table row without its closing pipe
    if last.startswith("|") and not last.endswith("|"):
        return True
    if _ANY_HEADER_RE.match(last):
        return True
    if last.endswith(("...", "…")):
        return True
    if last.endswith(("-", "–", "—")) and set(last) - {"-", "–", "—", " "}:
        return True
    return False


def validate_draft(content: str, expected_section_count: int) -> DocumentDraft:
    found = section_numbers(content)
    present = sorted(n for n in found if 1 <= n <= expected_section_count)
    extra = [n for n in found if n > expected_section_count]
    if extra:
        logger.info("Draft has sections beyond %d: %s", expected_section_count, extra)
    return DocumentDraft(
        content=content,
        section_numbers_present=present,
        expected_section_count=expected_section_count,
        truncated=looks_truncated(content),
    )


# ------------------------------------------------------------------
# Section splitting / merging
# ------------------------------------------------------------------


def split_sections(content: str) -> tuple[str, dict[int, str]]:
    """Split *content* into (preamble, {number: section text}).

    A repeated section number keeps its first occurrence.
    """
    matches = list(SECTION_HEADER_RE.finditer(content))
    if not matches:
        return content.strip(), {}
    preamble = content[: matches[0].start()].strip()
    sections: dict[int, str] = {}
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(content)
        number = int(match.group(1))
        if number not in sections:
            sections[number] = content[match.start() : end].strip()
    return preamble, sections


def join_sections(preamble: str, sections: dict[int, str]) -> str:
    parts = [preamble] if preamble else []
    parts.extend(sections[n] for n in sorted(sections))
    return "\n\n".join(parts) + "\n"


def cut_trailing_section(content: str) -> tuple[str, int | None]:
    """Drop the last section of *content*; returns (rest, dropped number)."""
    matches = list(SECTION_HEADER_RE.finditer(content))
    if not matches:
        return content, None
    last = matches[-1]
    return content[: last.start()].rstrip() + "\n", int(last.group(1))


def merge_sections(base: str, addition: str, numbers: list[int]) -> str:
    """Insert the sections *numbers* found in *addition* into *base*, in numeric order.

    Sections already present in *base* are kept as they are.
    """
    preamble, sections = split_sections(base)
    _, new_sections = split_sections(addition)
    for number in numbers:
        if number in new_sections and number not in sections:
            sections[number] = new_sections[number]
    return join_sections(preamble, sections)
