"""Anthropic LLM client implementation."""

from typing import Any, Optional

from anthropic import AsyncAnthropic

from unmangle.llm.base import BaseLLMClient


class AnthropicClient(BaseLLMClient):
    """Anthropic API client."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-6-20250514",
        base_url: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.3,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        # Retries are handled by the oracle layer
        self._client = AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
            max_retries=0,
        )

    async def complete(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        """Send a completion request to Anthropic.

        Args:
            prompt: The user prompt to send
            system_prompt: Optional system prompt

        Returns:
            The LLM's response text

        Raises:
            ValueError: If the response is empty or was cut off
        """
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        response = await self._client.messages.create(**kwargs)

        text_content = "".join(
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        )
        if not text_content:
            raise ValueError("Anthropic returned empty response")
        if getattr(response, "stop_reason", None) == "max_tokens":
            raise ValueError(f"Anthropic response truncated at {self.max_tokens} tokens")
        return text_content

    async def close(self) -> None:
        """Close the Anthropic client."""
        await self._client.close()
