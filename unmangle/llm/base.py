"""Base LLM client interface."""

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Optional


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.3,
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
        pass

    @staticmethod
    def extract_json_from_response(response: str) -> dict[str, Any]:
        """Extract JSON from LLM response, handling markdown code blocks.

        Args:
            response: Raw LLM response text

        Returns:
            Parsed JSON dictionary

        Raises:
            ValueError: If no valid JSON found
        """
        # Try to extract from markdown code block first
        code_block_pattern = r"```(?:json)?\s*\n?(.*?)\n?```"
        matches = re.findall(code_block_pattern, response, re.DOTALL)

        for match in matches:
            try:
                parsed = json.loads(match.strip())
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                return parsed

        # Try to parse the entire response as JSON
        try:
            parsed = json.loads(response.strip())
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass

        # Fall back to the outermost braces in the text
        start = response.find("{")
        end = response.rfind("}")
        if start != -1 and end > start:
            try:
                parsed = json.loads(response[start:end + 1])
                if isinstance(parsed, dict):
                    return parsed
            except json.JSONDecodeError:
                pass

        raise ValueError(f"Could not extract valid JSON from response: {response[:200]}...")

    async def suggest_names(
        self,
        scope_summary: str,
        dossiers_json: str,
        max_candidates: int,
    ) -> dict[str, Any]:
        """Ask the LLM for candidate names.

        Args:
            scope_summary: Numbered source of the enclosing scope
            dossiers_json: JSON list of dossiers to name
            max_candidates: Candidates wanted per dossier

        Returns:
            The parsed JSON object from the response
        """
        from unmangle.config import PROMPTS

        prompt = PROMPTS["suggest_names"].format(
            scope_summary=scope_summary,
            dossiers=dossiers_json,
            max_candidates=max_candidates,
        )
        response = await self.complete(prompt, system_prompt=PROMPTS["system"])
        return self.extract_json_from_response(response)

    @abstractmethod
    async def close(self) -> None:
        """Close the client and release resources."""
        pass
