"""LLM provider implementations."""

from insightloop.core.llm.providers.anthropic import AnthropicProvider
from insightloop.core.llm.providers.mock import MockProvider
from insightloop.core.llm.providers.openai import OpenAIProvider

__all__ = ["AnthropicProvider", "MockProvider", "OpenAIProvider"]
