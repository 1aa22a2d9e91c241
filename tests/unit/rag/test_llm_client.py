"""Tests for the LiteLLM client wrappers."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import litellm
import pytest

from repodoc.errors import ExternalServiceError, ModelTimeoutError
from repodoc.rag.llm_client import (
    ChatClient,
    EmbeddingClient,
    UsageMetrics,
    provider_env_var,
    request_timeout,
    validate_api_key,
)
from repodoc.rag.retry import RetryPolicy


def _no_sleep_policy(attempts: int = 3) -> RetryPolicy:
    return RetryPolicy(max_attempts=attempts, sleep=lambda s: None)


def _chat_response(content: str | None, prompt_tokens: int = 12, completion_tokens: int = 8) -> MagicMock:
    response = MagicMock()
    response.choices[0].message.content = content
    response.usage.prompt_tokens = prompt_tokens
    response.usage.completion_tokens = completion_tokens
    response.usage.total_tokens = prompt_tokens + completion_tokens
    response.model = None
    return response


def _embedding_response(vector: list[float]) -> MagicMock:
    response = MagicMock()
    response.data = [{"embedding": vector}] if vector else []
    return response


# ------------------------------------------------------------------
# validate_api_key
# ------------------------------------------------------------------


def test_validate_api_key_raises_if_missing(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="OPENAI_API_KEY"):
        validate_api_key("openai/gpt-4o")


def test_validate_api_key_passes_if_set(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
    validate_api_key("openai/gpt-4o")


def test_validate_api_key_ollama_no_key_required():
    validate_api_key("ollama/llama2")


def test_provider_env_var_unprefixed_model_is_openai():
    assert provider_env_var("gpt-4o") == "OPENAI_API_KEY"


def test_provider_env_var_unknown_provider_derived():
    assert provider_env_var("acme/model-x") == "ACME_API_KEY"


# ------------------------------------------------------------------
# request_timeout
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    "max_tokens, expected",
    [(1_000, 120.0), (8_000, 240.0), (16_000, 300.0), (50_000, 600.0), (100_000, 900.0), (200_000, 1200.0)],
)
def test_request_timeout_scales_with_output(max_tokens, expected):
    assert request_timeout(max_tokens) == expected


def test_request_timeout_never_below_base():
    assert request_timeout(8_000, base=500.0) == 500.0


# ------------------------------------------------------------------
# UsageMetrics
# ------------------------------------------------------------------


def test_usage_metrics_add():
    total = UsageMetrics(10, 5, 15, "a") + UsageMetrics(1, 2, 3, "b")
    assert (total.prompt_tokens, total.completion_tokens, total.total_tokens) == (11, 7, 18)
    assert total.model_id == "b"


def test_usage_metrics_to_dict_camel_case():
    assert UsageMetrics(1, 2, 3, "m").to_dict() == {
        "promptTokens": 1,
        "completionTokens": 2,
        "totalTokens": 3,
        "modelId": "m",
    }


def test_usage_cost_unknown_model_is_zero():
    with patch("repodoc.rag.llm_client.litellm.cost_per_token", side_effect=Exception("unknown")):
        assert UsageMetrics(10, 10, 20, "nobody/knows").cost_usd() == 0.0


# ------------------------------------------------------------------
# ChatClient
# ------------------------------------------------------------------


def test_complete_returns_content_and_usage():
    with patch("repodoc.rag.llm_client.litellm.completion", return_value=_chat_response("Hello")):
        result = ChatClient("openai/gpt-4o").complete([{"role": "user", "content": "Hi"}])

    assert result.content == "Hello"
    assert result.usage.total_tokens == 20
    assert result.usage.model_id == "openai/gpt-4o"


def test_complete_none_content_becomes_empty_string():
    with patch("repodoc.rag.llm_client.litellm.completion", return_value=_chat_response(None)):
        result = ChatClient().complete([{"role": "user", "content": "Hi"}])
    assert result.content == ""


def test_complete_prepends_system_and_passes_params():
    with patch(
        "repodoc.rag.llm_client.litellm.completion", return_value=_chat_response("ok")
    ) as mock_completion:
        ChatClient("openai/gpt-4o", timeout=60).complete(
            [{"role": "user", "content": "Hi"}],
            system="Be brief.",
            max_tokens=500,
            temperature=0.0,
        )

    kwargs = mock_completion.call_args.kwargs
    assert kwargs["messages"][0] == {"role": "system", "content": "Be brief."}
    assert kwargs["max_tokens"] == 500
    assert kwargs["temperature"] == 0.0
    assert kwargs["timeout"] == 60
    assert kwargs["num_retries"] == 0


def test_prompt_wraps_single_user_message():
    with patch(
        "repodoc.rag.llm_client.litellm.completion", return_value=_chat_response("ok")
    ) as mock_completion:
        ChatClient().prompt("Summarise this")
    assert mock_completion.call_args.kwargs["messages"] == [{"role": "user", "content": "Summarise this"}]


def test_complete_retries_transient_failures():
    side_effect = [RuntimeError("503"), RuntimeError("503"), _chat_response("third time")]
    with patch("repodoc.rag.llm_client.litellm.completion", side_effect=side_effect) as mock_completion:
        result = ChatClient(retry=_no_sleep_policy(3)).prompt("Hi")

    assert result.content == "third time"
    assert mock_completion.call_count == 3


def test_complete_exhausted_retries_raise_service_error():
    with patch("repodoc.rag.llm_client.litellm.completion", side_effect=RuntimeError("down")):
        with pytest.raises(ExternalServiceError, match="chat failed after 2 attempts"):
            ChatClient(retry=_no_sleep_policy(2)).prompt("Hi")


def test_complete_timeout_is_not_retried():
    timeout = litellm.exceptions.Timeout(message="slow", model="gpt-4o", llm_provider="openai")
    with patch("repodoc.rag.llm_client.litellm.completion", side_effect=timeout) as mock_completion:
        with pytest.raises(ModelTimeoutError):
            ChatClient(retry=_no_sleep_policy(3)).prompt("Hi")
    assert mock_completion.call_count == 1


# ------------------------------------------------------------------
# EmbeddingClient
# ------------------------------------------------------------------


def test_embed_returns_vector_and_passes_dimensions():
    with patch(
        "repodoc.rag.llm_client.litellm.embedding", return_value=_embedding_response([0.1, 0.2])
    ) as mock_embedding:
        vector = EmbeddingClient("openai/text-embedding-3-small", dimensions=2).embed("hello")

    assert vector == [0.1, 0.2]
    kwargs = mock_embedding.call_args.kwargs
    assert kwargs["input"] == ["hello"]
    assert kwargs["dimensions"] == 2


def test_embed_caches_identical_text():
    with patch(
        "repodoc.rag.llm_client.litellm.embedding", return_value=_embedding_response([0.5, 0.5])
    ) as mock_embedding:
        client = EmbeddingClient(dimensions=2)
        client.embed("same")
        client.embed("same")
        client.embed("different")

    assert mock_embedding.call_count == 2
    assert client.cache_len == 2


def test_embed_cache_is_bounded():
    with patch("repodoc.rag.llm_client.litellm.embedding", return_value=_embedding_response([1.0])):
        client = EmbeddingClient(dimensions=1, cache_size=2)
        for text in ("a", "b", "c"):
            client.embed(text)
    assert client.cache_len == 2


def test_embed_empty_vector_raises():
    with patch("repodoc.rag.llm_client.litellm.embedding", return_value=_embedding_response([])):
        with pytest.raises(ExternalServiceError, match="empty vector"):
            EmbeddingClient(retry=_no_sleep_policy(1)).embed("x")


def test_embed_timeout_raises_model_timeout():
    timeout = litellm.exceptions.Timeout(message="slow", model="emb", llm_provider="openai")
    with patch("repodoc.rag.llm_client.litellm.embedding", side_effect=timeout):
        with pytest.raises(ModelTimeoutError):
            EmbeddingClient(retry=_no_sleep_policy(3)).embed("x")
