"""OpenAI LLM client implementation."""

from typing import Any, Optional

from openai import AsyncOpenAI

from unmangle.llm.base import BaseLLMClient


class OpenAIClient(BaseLLMClient):
    """OpenAI (and OpenAI-compatible) API client."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.3,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        # Retries are handled by the oracle layer
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            max_retries=0,
        )

    async def complete(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        """Send a completion request to OpenAI.

        Args:
            prompt: The user prompt to send
            system_prompt: Optional system prompt

        Returns:
            The LLM's response text

        Raises:
            ValueError: If the provider returned no usable content
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        response = await self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

        content = self._extract_content_from_response(response)
        if content is None or not content.strip():
            error_detail = self._describe_unusable_response(response)
            raise ValueError(
                "OpenAI-compatible API returned no usable content. "
                f"response_type={type(response).__name__}. {error_detail}"
            )
        return content

    @staticmethod
    def _extract_content_from_response(response: Any) -> Optional[str]:
        """Extract text content from a variety of OpenAI-compatible response formats."""
        if response is None:
            return None

        choices = getattr(response, "choices", None)
        if choices:
            first_choice = choices[0]
            message = getattr(first_choice, "message", None)
            if message is not None:
                extracted = OpenAIClient._normalize_message_content(getattr(message, "content", None))
                if extracted:
                    return extracted

            # Some compatible providers put text directly on the choice.
            direct_text = getattr(first_choice, "text", None)
            if isinstance(direct_text, str) and direct_text.strip():
                return direct_text

        output_text = getattr(response, "output_text", None)
        if isinstance(output_text, str) and output_text.strip():
            return output_text

        return None

    @staticmethod
    def _normalize_message_content(content: Any) -> Optional[str]:
        """Normalize message content that may be either string or structured blocks."""
        if isinstance(content, str):
            return content

        if isinstance(content, list):
            text_parts: list[str] = []
            for item in content:
                if isinstance(item, dict):
                    text_value = item.get("text") or item.get("content")
                else:
                    text_value = getattr(item, "text", None)
                if isinstance(text_value, str) and text_value:
                    text_parts.append(text_value)
            if text_parts:
                return "".join(text_parts)

        return None

    @staticmethod
    def _describe_unusable_response(response: Any) -> str:
        """Build a diagnostic string from an unusable response."""
        if not hasattr(response, "model_dump"):
            return "provider did not include parseable error details"
        try:
            dumped = response.model_dump()
        except (TypeError, ValueError):
            return "provider did not include parseable error details"

        details = []
        choices = dumped.get("choices") or []
        if choices and choices[0].get("finish_reason"):
            details.append(f"finish_reason={choices[0]['finish_reason']}")
        for key in ("status", "msg", "body"):
            value = dumped.get(key)
            if value not in (None, ""):
                details.append(f"{key}={value}")
        if details:
            return "provider_details: " + ", ".join(details)
        return "provider did not include parseable error details"

    async def close(self) -> None:
        """Close the OpenAI client."""
        await self._client.close()
