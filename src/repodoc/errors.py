"""Typed errors raised by the repodoc pipeline.

Per-item failures inside fan-out work (ingestion, memory storage) are caught
and counted, never raised. The types below are what escapes to callers.
"""

from __future__ import annotations


class RepodocError(Exception):
    """Base class for every error repodoc raises on purpose."""


class NotFoundError(RepodocError):
    """Nothing to work on: no files loaded, no indexed units, no stored document."""


class ValidationError(RepodocError, ValueError):
    """Malformed caller input (bad option value, unknown document kind)."""


class ExternalServiceError(RepodocError):
    """An embedding, completion or vector-store call failed after retries.

    Attributes:
        service:   Short service label (``"chat"``, ``"embedding"``, ...).
        retryable: False when retrying cannot help (e.g. authentication).
    """

    def __init__(self, message: str, service: str = "", retryable: bool = True) -> None:
        super().__init__(message)
        self.service = service
        self.retryable = retryable


class ModelTimeoutError(ExternalServiceError):
    """A model call exceeded the request timeout. Never retried."""

    def __init__(self, message: str, service: str = "", timeout: float | None = None) -> None:
        super().__init__(message, service=service, retryable=False)
        self.timeout = timeout


class LoaderAuthError(ExternalServiceError):
    """The repository loader was refused by the remote (bad or missing token)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, service="git", retryable=False)


class IncompleteGenerationError(RepodocError):
    """The document generator exhausted its repair budget.

    Attributes:
        missing_sections: Section numbers still absent from the best draft.
        truncated:        True when the best draft still looked cut off.
    """

    def __init__(self, missing_sections: list[int], truncated: bool = False) -> None:
        self.missing_sections = sorted(missing_sections)
        self.truncated = truncated
        if self.missing_sections:
            numbers = ", ".join(str(n) for n in self.missing_sections)
            message = f"Document generation incomplete: missing sections {numbers}"
        else:
            message = "Document generation incomplete: output appears truncated"
        super().__init__(message)
