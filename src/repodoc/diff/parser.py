"""Unified diff parsing.

parse_diff() never fails: text that does not look like a diff becomes a
single ``pasted-content`` file so arbitrary pasted code can still be analysed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

PASTED_CONTENT = "pasted-content"

_GIT_HEADER_RE = re.compile(r"^diff --git\s+(?:a/)?(.+?)\s+(?:b/)?(.+)$")
_HUNK_RE = re.compile(r"^@@\s+-\d+")


@dataclass
class DiffFile:
    path: str
    hunks: list[str] = field(default_factory=list)


def strip_prefix(path: str) -> str:
    """Drop a leading ``a/`` or ``b/`` from a diff path."""
    path = path.strip()
    if path.startswith(("a/", "b/")):
        return path[2:]
    return path


def looks_like_diff(raw: str) -> bool:
    text = raw.strip()
    return (
        "diff --git" in text
        or ("--- " in text and "+++ " in text)
        or "@@ " in text
    )


def parse_diff(raw: str) -> list[DiffFile]:
    """Split *raw* into files and hunks.

    Files without hunks are dropped. Empty input yields an empty list.
    """
    if not raw:
        return []
    if not looks_like_diff(raw):
        return [DiffFile(path=PASTED_CONTENT, hunks=[raw.strip() or "(empty)"])]

    lines = re.split(r"\r?\n", raw)
    files: list[DiffFile] = []
    path: str | None = None
    hunks: list[str] = []
    hunk_lines: list[str] = []

    def flush_hunk() -> None:
        nonlocal hunk_lines
        if hunk_lines:
            hunks.append("\n".join(hunk_lines))
            hunk_lines = []

    def flush_file() -> None:
        nonlocal path, hunks
        flush_hunk()
        if path is not None and hunks:
            files.append(DiffFile(path=path, hunks=hunks))
        path = None
        hunks = []

    i = 0
    while i < len(lines):
        line = lines[i]
        i += 1

        header = _GIT_HEADER_RE.match(line)
        if header:
            flush_file()
            path = strip_prefix(header.group(2))
            continue

        if _HUNK_RE.match(line):
            flush_hunk()
            hunk_lines.append(line)
            continue

        # ---/+++ pair: a file header for diffs without ``diff --git`` lines
        if _is_header_pair(lines, i, in_hunk=bool(hunk_lines)):
            new_path = _pair_path(line[4:], lines[i][4:])
            i += 1
            if hunk_lines or hunks:
                flush_file()
                path = new_path
            elif path is None:
                path = new_path
            continue

        if hunk_lines:
            hunk_lines.append(line)
        elif line.startswith("+++ ") and path is None:
            path = strip_prefix(line[4:])

    flush_file()
    return files


def _is_header_pair(lines: list[str], i: int, in_hunk: bool) -> bool:
    """True if lines[i-1:i+1] is a ``--- old`` / ``+++ new`` file header.

    Inside an open hunk the pair only counts when a hunk marker follows it;
    otherwise it is removed/added content.
    """
    if not lines[i - 1].startswith("--- ") or i >= len(lines) or not lines[i].startswith("+++ "):
        return False
    if not in_hunk:
        return True
    return i + 1 < len(lines) and bool(_HUNK_RE.match(lines[i + 1]))


def _pair_path(old: str, new: str) -> str:
    new = _drop_timestamp(new)
    if new == "/dev/null":
        return strip_prefix(_drop_timestamp(old))
    return strip_prefix(new)


def _drop_timestamp(path: str) -> str:
    # `diff -u` appends a tab-separated timestamp
    return path.split("\t", 1)[0].strip()
