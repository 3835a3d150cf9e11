"""LLM summarizer with multi-provider support (OpenAI, Anthropic, local, mock)."""

from __future__ import annotations

import logging
from typing import Any

from recap.errors import ConfigError, SummarizationError

logger = logging.getLogger(__name__)

PROVIDERS = ("mock", "openai", "anthropic", "local")

DEFAULT_SYSTEM_PROMPT = (
    "You write a daily recap. You are given several short summaries written "
    "over the past day. Condense them into one concise digest of a few "
    "sentences that keeps the most important points."
)

MOCK_PREVIEW_CHARS = 200


class LLMSummarizer:
    """Condense the concatenated pending summaries into one recap text.

    ``summarize`` either returns non-empty text or raises
    :class:`SummarizationError`; transport, auth and service failures of every
    provider collapse into that one kind.
    """

    def __init__(self, config: dict[str, Any]) -> None:
        llm = config.get("llm", {})
        self.provider: str = llm.get("provider", "mock")
        self.model: str = llm.get("model", "gpt-4o-mini")
        self.max_tokens: int = llm.get("max_tokens", 400)
        self.temperature: float = llm.get("temperature", 0.3)
        self.local_url: str = llm.get("local_url", "http://localhost:11434/v1")
        self.local_model: str = llm.get("local_model", "llama3.2")
        self.system_prompt: str = llm.get("system_prompt") or DEFAULT_SYSTEM_PROMPT

        if self.provider not in PROVIDERS:
            raise ConfigError(f"Unknown llm.provider {self.provider!r}; expected one of {PROVIDERS}")

    async def summarize(self, text: str) -> str:
        """Return the provider's condensation of ``text``."""
        try:
            result = await self._dispatch(text)
        except SummarizationError:
            raise
        except Exception as e:
            raise SummarizationError(f"{self.provider} summarization failed: {e}") from e

        result = (result or "").strip()
        if not result:
            raise SummarizationError(f"{self.provider} returned an empty summary")
        return result

    async def _dispatch(self, text: str) -> str:
        if self.provider == "openai":
            return await self._call_openai(text)
        elif self.provider == "anthropic":
            return await self._call_anthropic(text)
        elif self.provider == "local":
            return await self._call_local(text)
        return self._mock_summary(text)

    # ------------------------------------------------------------------
    # Provider implementations
    # ------------------------------------------------------------------

    async def _call_openai(self, text: str) -> str:
        from openai import AsyncOpenAI

        client = AsyncOpenAI()
        resp = await client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": text},
            ],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        return resp.choices[0].message.content or ""

    async def _call_anthropic(self, text: str) -> str:
        from anthropic import AsyncAnthropic

        client = AsyncAnthropic()
        resp = await client.messages.create(
            model=self.model or "claude-haiku-4-5-20251001",
            max_tokens=self.max_tokens,
            system=self.system_prompt,
            messages=[{"role": "user", "content": text}],
        )
        return "".join(block.text for block in resp.content if getattr(block, "type", "") == "text")

    async def _call_local(self, text: str) -> str:
        """Call a local Ollama-compatible OpenAI API."""
        from openai import AsyncOpenAI

        client = AsyncOpenAI(base_url=self.local_url, api_key="ollama")
        resp = await client.chat.completions.create(
            model=self.local_model,
            messages=[
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": text},
            ],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        return resp.choices[0].message.content or ""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _mock_summary(text: str) -> str:
        """Deterministic recap for testing (no API calls)."""
        preview = " ".join(text.split())
        if len(preview) > MOCK_PREVIEW_CHARS:
            preview = preview[:MOCK_PREVIEW_CHARS].rstrip() + "..."
        return f"Recap of {len(text.split())} words: {preview}"
