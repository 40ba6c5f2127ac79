"""Naming oracle backed by an LLM chat client."""

import json
import logging

from unmangle.config import Config, LLMProvider
from unmangle.core.oracle import NamingOracle, OracleRequest, OracleResponse
from unmangle.llm.anthropic_client import AnthropicClient
from unmangle.llm.base import BaseLLMClient
from unmangle.llm.openai_client import OpenAIClient

logger = logging.getLogger(__name__)


class LLMNamingOracle(NamingOracle):
    """Renders oracle requests into a prompt and parses the JSON answer."""

    def __init__(self, client: BaseLLMClient):
        self.client = client

    async def suggest(self, request: OracleRequest) -> OracleResponse:
        dossiers_json = json.dumps(
            [dossier.model_dump(by_alias=True) for dossier in request.dossiers],
            ensure_ascii=False,
            indent=2,
        )
        logger.debug("Requesting names for %d dossiers", len(request.dossiers))
        payload = await self.client.suggest_names(
            scope_summary=request.scope_summary,
            dossiers_json=dossiers_json,
            max_candidates=request.max_candidates,
        )
        # Some models answer with a bare list of suggestions
        if "suggestions" not in payload and isinstance(payload.get("results"), list):
            payload = {"suggestions": payload["results"]}
        response = OracleResponse.model_validate(payload)
        for suggestion in response.suggestions:
            suggestion.candidates = suggestion.candidates[:request.max_candidates]
        return response

    async def close(self) -> None:
        await self.client.close()


def create_llm_client(config: Config) -> BaseLLMClient:
    """Create LLM client based on configuration."""
    if config.llm_provider == LLMProvider.OPENAI:
        return OpenAIClient(
            api_key=config.llm_api_key,
            model=config.llm_model,
            base_url=config.llm_base_url,
            max_tokens=config.llm_max_tokens,
            temperature=config.llm_temperature,
        )
    elif config.llm_provider == LLMProvider.ANTHROPIC:
        return AnthropicClient(
            api_key=config.llm_api_key,
            model=config.llm_model,
            base_url=config.llm_base_url,
            max_tokens=config.llm_max_tokens,
            temperature=config.llm_temperature,
        )
    else:
        raise ValueError(f"Unsupported LLM provider: {config.llm_provider}")


def create_naming_oracle(config: Config) -> LLMNamingOracle:
    return LLMNamingOracle(create_llm_client(config))
