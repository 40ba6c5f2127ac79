"""LLM client implementations."""

from unmangle.llm.base import BaseLLMClient
from unmangle.llm.openai_client import OpenAIClient
from unmangle.llm.anthropic_client import AnthropicClient
from unmangle.llm.namer import LLMNamingOracle, create_llm_client, create_naming_oracle

__all__ = [
    "BaseLLMClient",
    "OpenAIClient",
    "AnthropicClient",
    "LLMNamingOracle",
    "create_llm_client",
    "create_naming_oracle",
]
