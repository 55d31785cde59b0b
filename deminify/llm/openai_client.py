"""OpenAI-compatible LLM client."""

import asyncio
import logging
import random
from typing import Any, Optional

from openai import AsyncOpenAI

from deminify.errors import LLMRequestError
from deminify.llm.base import BaseLLMClient

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 4

_RETRYABLE_HINTS = (
    "429",
    "too many requests",
    "rate limit",
    "timeout",
    "timed out",
    "connection error",
    "service unavailable",
    "try again later",
)


class OpenAIClient(BaseLLMClient):
    """Chat Completions client for OpenAI and compatible endpoints."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.1,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
        )

    async def complete(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        """Send a JSON-mode chat completion request.

        Rate limits and transient network errors are retried with backoff.

        Raises:
            LLMRequestError: If the request fails or the answer has no text
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                response = await self._client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                    response_format={"type": "json_object"},
                )
                break
            except Exception as exc:
                if not self._is_retryable_error(exc) or attempt >= MAX_ATTEMPTS:
                    raise LLMRequestError(f"LLM request failed: {exc}") from exc
                delay = self._retry_delay_seconds(attempt)
                logger.debug("LLM request attempt %d failed (%s), retrying in %.1fs", attempt, exc, delay)
                await asyncio.sleep(delay)

        content = self._extract_content(response)
        if not content or not content.strip():
            raise LLMRequestError(f"LLM request failed: no usable content in {type(response).__name__}")
        return content

    @staticmethod
    def _extract_content(response: Any) -> Optional[str]:
        """Text of the first choice, whether a string or a list of text parts."""
        choices = getattr(response, "choices", None)
        if not choices:
            return None
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if isinstance(content, list):
            parts = [item.get("text") if isinstance(item, dict) else getattr(item, "text", None) for item in content]
            return "".join(part for part in parts if isinstance(part, str))
        return content if isinstance(content, str) else None

    @staticmethod
    def _is_retryable_error(exc: Exception) -> bool:
        message = str(exc).lower()
        return any(hint in message for hint in _RETRYABLE_HINTS)

    @staticmethod
    def _retry_delay_seconds(attempt: int) -> float:
        # 1.5, 3, 6 (+ jitter)
        return min(30.0, 1.5 * (2 ** (attempt - 1))) + random.uniform(0, 0.5)

    async def close(self) -> None:
        """Close the OpenAI client."""
        await self._client.close()
