"""LiteLLM client wrappers: chat completion + embeddings.

All LLM and embedding calls in the pipeline route through this module. Each
call runs under a RetryPolicy and a request timeout; a timeout surfaces as
ModelTimeoutError, exhausted retries as ExternalServiceError.
The clients are built once at process start and passed to every component.
"""

from __future__ import annotations

import hashlib
import logging
import os
import threading
from collections import OrderedDict
from dataclasses import dataclass

import litellm

from repodoc.errors import ExternalServiceError, ModelTimeoutError
from repodoc.rag.retry import RetryPolicy

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def provider_env_var(model: str) -> str | None:
    """Return the env var holding the API key for *model*'s provider, if any."""
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    return _PROVIDER_ENV.get(provider, f"{provider.upper()}_API_KEY")


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    env_var = provider_env_var(model)
    if env_var is None:
        return
    if not os.getenv(env_var):
        provider = model.split("/")[0] if "/" in model else "openai"
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def request_timeout(max_tokens: int, base: float = 120.0) -> float:
    """Scale the request timeout with the requested output size."""
    if max_tokens >= 200_000:
        return max(base, 1200.0)
    if max_tokens >= 100_000:
        return max(base, 900.0)
    if max_tokens >= 50_000:
        return max(base, 600.0)
    if max_tokens >= 16_000:
        return max(base, 300.0)
    if max_tokens >= 8_000:
        return max(base, 240.0)
    return base


# ------------------------------------------------------------------
# Usage metrics
# ------------------------------------------------------------------


@dataclass
class UsageMetrics:
    """Token usage of one or more model calls. Informational only."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    model_id: str = ""

    def __add__(self, other: UsageMetrics) -> UsageMetrics:
        return UsageMetrics(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            model_id=other.model_id or self.model_id,
        )

    def cost_usd(self) -> float:
        """Estimated USD cost from litellm's pricing table (0.0 if unknown)."""
        try:
            prompt_cost, completion_cost = litellm.cost_per_token(
                model=self.model_id,
                prompt_tokens=self.prompt_tokens,
                completion_tokens=self.completion_tokens,
            )
        except Exception:
            return 0.0
        return round(prompt_cost + completion_cost, 6)

    def to_dict(self) -> dict:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
            "modelId": self.model_id,
        }


@dataclass
class ChatResult:
    content: str
    usage: UsageMetrics


# ------------------------------------------------------------------
# Chat completion
# ------------------------------------------------------------------


class ChatClient:
    """Text generation through ``litellm.completion()``.

    Args:
        model:       Default LiteLLM model string (provider/model format).
        retry:       Retry policy applied to every call.
        timeout:     Base request timeout in seconds.
        temperature: Default sampling temperature.
        max_tokens:  Default output token cap.
    """

    def __init__(
        self,
        model: str = "openai/gpt-4o",
        retry: RetryPolicy | None = None,
        timeout: float = 120.0,
        temperature: float = 0.3,
        max_tokens: int = 8_000,
    ) -> None:
        self.model = model
        self._retry = retry or RetryPolicy()
        self._timeout = timeout
        self._temperature = temperature
        self._max_tokens = max_tokens

    def complete(
        self,
        messages: list[dict],
        model: str | None = None,
        max_tokens: int | None = None,
        system: str | None = None,
        temperature: float | None = None,
    ) -> ChatResult:
        """Generate a reply to *messages*.

        Args:
            messages:    OpenAI-style role-tagged messages.
            model:       Overrides the default model.
            max_tokens:  Overrides the default output token cap.
            system:      Optional system instruction, prepended as a system message.
            temperature: Overrides the default temperature.

        Raises:
            ModelTimeoutError:    The request exceeded its timeout.
            ExternalServiceError: The call failed after retries.
        """
        model = model or self.model
        max_tokens = max_tokens or self._max_tokens
        timeout = request_timeout(max_tokens, self._timeout)
        full_messages = [{"role": "system", "content": system}, *messages] if system else messages

        def _call() -> ChatResult:
            try:
                response = litellm.completion(
                    model=model,
                    messages=full_messages,
                    max_tokens=max_tokens,
                    temperature=self._temperature if temperature is None else temperature,
                    timeout=timeout,
                    num_retries=0,
                )
            except litellm.exceptions.Timeout as exc:
                raise ModelTimeoutError(
                    f"Chat completion timed out after {timeout:.0f}s ({model})",
                    service="chat",
                    timeout=timeout,
                ) from exc
            return ChatResult(
                content=response.choices[0].message.content or "",
                usage=_usage_from(response, model),
            )

        return self._retry.call(_call, name="chat")

    def prompt(self, text: str, **kwargs) -> ChatResult:
        """Single user message shortcut."""
        return self.complete([{"role": "user", "content": text}], **kwargs)


def _usage_from(response: object, model: str) -> UsageMetrics:
    usage = getattr(response, "usage", None)
    prompt_tokens = int(getattr(usage, "prompt_tokens", 0) or 0)
    completion_tokens = int(getattr(usage, "completion_tokens", 0) or 0)
    total_tokens = int(getattr(usage, "total_tokens", 0) or 0) or prompt_tokens + completion_tokens
    reported = getattr(response, "model", None)
    return UsageMetrics(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=total_tokens,
        model_id=reported if isinstance(reported, str) and reported else model,
    )


# ------------------------------------------------------------------
# Embeddings
# ------------------------------------------------------------------


class EmbeddingClient:
    """Fixed-length embeddings through ``litellm.embedding()``.

    Results are cached by content hash (model + text) in a bounded LRU, so
    identical inputs are embedded once. Safe to call from worker threads.

    Args:
        model:      LiteLLM embedding model string.
        dimensions: Requested output dimensionality.
        retry:      Retry policy applied to every uncached call.
        timeout:    Request timeout in seconds.
        cache_size: Maximum cached vectors (0 disables the cache).
    """

    def __init__(
        self,
        model: str = "openai/text-embedding-3-small",
        dimensions: int = 1536,
        retry: RetryPolicy | None = None,
        timeout: float = 120.0,
        cache_size: int = 2_048,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        self._retry = retry or RetryPolicy()
        self._timeout = timeout
        self._cache_size = cache_size
        self._cache: OrderedDict[str, list[float]] = OrderedDict()
        self._lock = threading.Lock()

    def embed(self, text: str) -> list[float]:
        """Return the embedding of *text*.

        Raises:
            ModelTimeoutError:    The request exceeded its timeout.
            ExternalServiceError: The call failed after retries or returned no vector.
        """
        key = self._cache_key(text)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                return list(cached)

        def _call() -> list[float]:
            try:
                response = litellm.embedding(
                    model=self.model,
                    input=[text],
                    dimensions=self.dimensions,
                    timeout=self._timeout,
                )
            except litellm.exceptions.Timeout as exc:
                raise ModelTimeoutError(
                    f"Embedding timed out after {self._timeout:.0f}s ({self.model})",
                    service="embedding",
                    timeout=self._timeout,
                ) from exc
            vector = list(response.data[0]["embedding"]) if response.data else []
            if not vector:
                raise ExternalServiceError("Embedding model returned an empty vector", service="embedding")
            return vector

        vector = self._retry.call(_call, name="embedding")
        self._remember(key, vector)
        return vector

    @property
    def cache_len(self) -> int:
        with self._lock:
            return len(self._cache)

    def _cache_key(self, text: str) -> str:
        return hashlib.sha256(f"{self.model}\0{text}".encode("utf-8")).hexdigest()

    def _remember(self, key: str, vector: list[float]) -> None:
        if self._cache_size <= 0:
            return
        with self._lock:
            self._cache[key] = list(vector)
            self._cache.move_to_end(key)
            while len(self._cache) > self._cache_size:
                self._cache.popitem(last=False)
