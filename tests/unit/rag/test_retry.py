"""Tests for RetryPolicy."""

from __future__ import annotations

import pytest

from repodoc.errors import ExternalServiceError, ModelTimeoutError, NotFoundError
from repodoc.rag.retry import RetryPolicy, is_retryable


class _Flaky:
    """Fails *failures* times, then returns "done"."""

    def __init__(self, failures: int, exc: Exception | None = None) -> None:
        self.failures = failures
        self.calls = 0
        self.exc = exc or RuntimeError("transient")

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return "done"


def _policy(**kwargs) -> tuple[RetryPolicy, list[float]]:
    slept: list[float] = []
    return RetryPolicy(sleep=slept.append, **kwargs), slept


def test_delays_exponential_and_capped():
    policy = RetryPolicy(max_attempts=5, initial_delay=1.0, backoff_multiplier=2.0, max_delay=5.0)
    assert policy.delays() == [1.0, 2.0, 4.0, 5.0]


def test_single_attempt_has_no_delays():
    assert RetryPolicy(max_attempts=1).delays() == []


def test_success_first_try_no_sleep():
    policy, slept = _policy()
    assert policy.call(lambda: 42) == 42
    assert slept == []


def test_recovers_after_transient_failures():
    policy, slept = _policy(max_attempts=3, initial_delay=0.5)
    op = _Flaky(2)
    assert policy.call(op, name="chat") == "done"
    assert op.calls == 3
    assert slept == [0.5, 1.0]


def test_exhausted_attempts_raise_service_error():
    policy, slept = _policy(max_attempts=2)
    op = _Flaky(5)
    with pytest.raises(ExternalServiceError) as excinfo:
        policy.call(op, name="embedding")
    assert op.calls == 2
    assert excinfo.value.service == "embedding"
    assert excinfo.value.retryable is True
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_non_retryable_raised_on_first_attempt():
    policy, slept = _policy(max_attempts=4)
    op = _Flaky(5, ExternalServiceError("auth", retryable=False))
    with pytest.raises(ExternalServiceError, match="auth"):
        policy.call(op)
    assert op.calls == 1
    assert slept == []


def test_timeout_never_retried():
    policy, _ = _policy(max_attempts=4)
    op = _Flaky(5, ModelTimeoutError("slow", service="chat", timeout=1.0))
    with pytest.raises(ModelTimeoutError):
        policy.call(op)
    assert op.calls == 1


def test_repodoc_errors_propagate_unwrapped():
    policy, _ = _policy(max_attempts=1)
    with pytest.raises(NotFoundError):
        policy.call(_Flaky(1, NotFoundError("gone")))


def test_custom_predicate():
    policy, _ = _policy(max_attempts=3, retry_if=lambda exc: False)
    op = _Flaky(1)
    with pytest.raises(ExternalServiceError):
        policy.call(op)
    assert op.calls == 1


def test_is_retryable_defaults():
    assert is_retryable(RuntimeError("x"))
    assert is_retryable(ExternalServiceError("x"))
    assert not is_retryable(ExternalServiceError("x", retryable=False))
    assert not is_retryable(ModelTimeoutError("x"))
