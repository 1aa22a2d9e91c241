"""Per-file code summaries via the chat client.

The summary, not the raw code, is what gets embedded: it is short, uniform
and written in the same vocabulary as the questions asked later.
"""

from __future__ import annotations

from repodoc.rag.llm_client import ChatClient

_SUMMARY_PROMPT = """\
You are an intelligent senior software engineer who specialises in onboarding \
junior software engineers onto projects.
You are onboarding a junior software engineer and explaining to them the purpose \
of the {path} file.

Here is the code:
---
{code}
---

Give a summary no more than {max_words} words of the code above."""

MAX_CODE_CHARS = 10_000
MAX_WORDS = 100


class CodeSummarizer:
    """Summarise one source file.

    Args:
        chat:  Chat client.
        model: Model override (e.g. a cheaper summary model).
    """

    def __init__(self, chat: ChatClient, model: str | None = None) -> None:
        self._chat = chat
        self._model = model

    def summarize(self, path: str, code: str) -> str:
        """Return the summary of *code* (may be empty).

        Raises:
            ExternalServiceError: The chat call failed after retries.
        """
        prompt = _SUMMARY_PROMPT.format(
            path=path,
            code=code[:MAX_CODE_CHARS],
            max_words=MAX_WORDS,
        )
        result = self._chat.prompt(prompt, model=self._model, max_tokens=400, temperature=0.0)
        return result.content.strip()
