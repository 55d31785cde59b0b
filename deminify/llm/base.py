"""Base LLM client interface."""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

from deminify.errors import LLMResponseError

logger = logging.getLogger(__name__)


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.1,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature

    @abstractmethod
    async def complete(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        """Send a completion request to the LLM.

        Args:
            prompt: The user prompt to send
            system_prompt: Optional system prompt

        Returns:
            The LLM's response text
        """

    @staticmethod
    def extract_json_from_response(response: str) -> dict[str, Any]:
        """Extract a JSON object from an LLM response.

        Markdown code blocks are tried first, then the whole response, then
        the first brace-delimited object in the text.

        Raises:
            LLMResponseError: If no JSON object is found
        """
        candidates = [m.strip() for m in re.findall(r"```(?:json)?\s*\n?(.*?)\n?```", response, re.DOTALL)]
        candidates.append(response.strip())
        candidates.extend(re.findall(r"\{[^{}]*(?:\{[^{}]*\}[^{}]*)*\}", response, re.DOTALL))

        for candidate in candidates:
            try:
                parsed = json.loads(candidate)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                return parsed

        raise LLMResponseError(f"Could not extract a JSON object from LLM response: {response[:200]}...")

    async def find_dispatchers(self, formatted_code: str) -> dict[str, Any]:
        """Ask the LLM for JSVMP dispatcher regions in labelled code.

        Args:
            formatted_code: Lines in ``LineNo SourceLoc Code`` form

        Returns:
            The JSON object the model answered with, not yet validated
        """
        from deminify.config import PROMPTS

        prompt = PROMPTS["find_jsvmp_dispatcher"].format(code=formatted_code)
        logger.debug("Requesting dispatcher analysis from %s (%d chars)", self.model, len(prompt))
        response = await self.complete(prompt, system_prompt=PROMPTS["find_jsvmp_dispatcher_system"])
        return self.extract_json_from_response(response)

    @abstractmethod
    async def close(self) -> None:
        """Close the client and release resources."""
