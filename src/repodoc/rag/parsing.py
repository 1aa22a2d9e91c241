"""Lenient JSON extraction from model output.

Models wrap JSON in prose or code fences often enough that strict parsing is
useless. Both helpers prefer a fenced block, then fall back to the first
bracketed span.
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)


def _candidate(text: str, open_char: str, close_char: str) -> str | None:
    fenced = _FENCE_RE.search(text)
    if fenced:
        return fenced.group(1).strip()
    start = text.find(open_char)
    end = text.rfind(close_char)
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the JSON object embedded in *text*, or None."""
    candidate = _candidate(text, "{", "}")
    if candidate is None:
        return None
    try:
        value = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def extract_json_array(text: str) -> list[Any] | None:
    """Return the JSON array embedded in *text*, or None."""
    candidate = _candidate(text, "[", "]")
    if candidate is None:
        return None
    try:
        value = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, list) else None
