"""LLM client implementations."""

from deminify.llm.base import BaseLLMClient
from deminify.llm.openai_client import OpenAIClient

__all__ = ["BaseLLMClient", "OpenAIClient"]
