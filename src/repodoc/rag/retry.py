"""Retry with exponential backoff for external model calls.

Every embedding and chat call goes through a RetryPolicy. Non-retryable
failures (authentication, bad requests, timeouts) are raised on the first
attempt; everything else is retried up to ``max_attempts`` times and then
surfaces as ExternalServiceError.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

import litellm

from repodoc.errors import ExternalServiceError, ModelTimeoutError, RepodocError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# litellm maps provider errors onto these; none of them improve on retry.
_NON_RETRYABLE: tuple[type[BaseException], ...] = (
    litellm.exceptions.AuthenticationError,
    litellm.exceptions.PermissionDeniedError,
    litellm.exceptions.BadRequestError,
    litellm.exceptions.NotFoundError,
)


def is_retryable(exc: BaseException) -> bool:
    """Default retry predicate."""
    if isinstance(exc, ModelTimeoutError):
        return False
    if isinstance(exc, ExternalServiceError):
        return exc.retryable
    if isinstance(exc, _NON_RETRYABLE):
        return False
    return True


@dataclass
class RetryPolicy:
    """Exponential backoff policy.

    Attributes:
        max_attempts:       Total attempts including the first one.
        initial_delay:      Seconds to wait before the second attempt.
        backoff_multiplier: Factor applied to the delay after each failure.
        max_delay:          Upper bound for a single delay.
        retry_if:           Predicate; False means raise immediately.
        sleep:              Sleep function (swapped out in tests).
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay: float = 10.0
    retry_if: Callable[[BaseException], bool] = is_retryable
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delays(self) -> list[float]:
        """Delays slept between attempts, in order."""
        result: list[float] = []
        delay = self.initial_delay
        for _ in range(self.max_attempts - 1):
            result.append(min(delay, self.max_delay))
            delay *= self.backoff_multiplier
        return result

    def call(self, operation: Callable[[], T], name: str = "operation") -> T:
        """Run *operation* under this policy and return its result.

        Raises:
            ModelTimeoutError:    The call timed out (not retried).
            ExternalServiceError: Non-retryable failure, or attempts exhausted.
        """
        delays = self.delays()
        for attempt in range(1, self.max_attempts + 1):
            try:
                result = operation()
                if attempt > 1:
                    logger.info("%s succeeded after %d attempts", name, attempt)
                return result
            except Exception as exc:
                if not self.retry_if(exc) or attempt == self.max_attempts:
                    if attempt > 1:
                        logger.warning("%s failed after %d attempts: %s", name, attempt, exc)
                    if isinstance(exc, RepodocError):
                        raise
                    raise _as_service_error(exc, name, attempt) from exc
                delay = delays[attempt - 1]
                logger.debug(
                    "%s attempt %d/%d failed (%s); retrying in %.1fs",
                    name,
                    attempt,
                    self.max_attempts,
                    exc,
                    delay,
                )
                self.sleep(delay)
        raise AssertionError("unreachable")


def _as_service_error(exc: Exception, name: str, attempts: int) -> ExternalServiceError:
    retryable = is_retryable(exc)
    if retryable:
        message = f"{name} failed after {attempts} attempts: {exc}"
    else:
        message = f"{name} failed: {exc}"
    return ExternalServiceError(message, service=name, retryable=retryable)
