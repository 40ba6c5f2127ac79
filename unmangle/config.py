"""Configuration management for unmangle."""

import os
from enum import Enum
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

# Load .env from multiple locations
# 1. Current working directory
load_dotenv()
# 2. Project directory (where this package is installed)
_package_dir = Path(__file__).parent
load_dotenv(_package_dir.parent / ".env")
# 3. Home directory config
load_dotenv(Path.home() / ".config" / "unmangle" / ".env")


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class Config(BaseSettings):
    """Configuration for unmangle."""

    # LLM Settings
    llm_provider: LLMProvider = Field(default=LLMProvider.OPENAI, description="LLM provider to use")
    llm_model: str = Field(default="", validate_default=True, description="Model name to use")
    llm_api_key: Optional[str] = Field(
        default=None,
        validate_default=True,
        description="API key for the LLM provider",
    )
    llm_base_url: Optional[str] = Field(default=None, description="Base URL for API (for custom endpoints)")
    llm_max_tokens: int = Field(default=4096, description="Maximum tokens for LLM response")
    llm_temperature: float = Field(default=0.3, description="Temperature for LLM generation")
    llm_concurrency: int = Field(default=4, ge=1, description="Number of concurrent oracle requests per file")

    # Oracle Settings
    max_symbols_per_batch: int = Field(default=20, ge=1, description="Maximum dossiers in one oracle request")
    max_candidates: int = Field(default=5, ge=1, description="Candidate names requested per binding")
    oracle_max_attempts: int = Field(default=6, ge=1, description="Attempts per oracle request before giving up")
    oracle_timeout_seconds: Optional[float] = Field(
        default=300.0,
        description="Deadline for one oracle request including retries (None disables)",
    )

    # Analysis Settings
    context_lines: int = Field(default=3, ge=0, description="Source lines shown either side of a declaration")
    max_snippet_chars: int = Field(default=200, ge=16, description="Maximum chars of a declaration snippet")
    max_scope_summary_chars: int = Field(default=2000, ge=64, description="Maximum chars of a scope summary")
    skip_descriptive_names: bool = Field(
        default=False,
        description="Only ask the oracle about names that look minified",
    )

    # Solver Settings
    min_confidence: float = Field(default=0.0, ge=0.0, le=1.0, description="Ignore candidates below this confidence")
    enforce_naming_conventions: bool = Field(
        default=True,
        description="PascalCase for classes, camelCase for everything else",
    )

    # Validation Settings
    low_confidence_threshold: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Renames below this confidence produce a warning",
    )
    max_validation_retries: int = Field(
        default=2,
        ge=0,
        description="Re-solve attempts after a rewrite fails validation",
    )

    # Processing Settings
    file_concurrency: int = Field(default=4, ge=1, description="Files processed concurrently")
    output_dir: Optional[Path] = Field(default=None, description="Output directory for deobfuscated files")

    model_config = {
        "env_prefix": "UNMANGLE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("llm_api_key", mode="before")
    @classmethod
    def validate_api_key(cls, v: Optional[str], info) -> Optional[str]:
        """Validate and load API key from environment if not provided."""
        if v:
            return v

        # Try to load from environment based on provider
        provider = info.data.get("llm_provider", LLMProvider.OPENAI)
        if provider == LLMProvider.OPENAI:
            return os.environ.get("OPENAI_API_KEY")
        elif provider == LLMProvider.ANTHROPIC:
            return os.environ.get("ANTHROPIC_API_KEY")
        return v

    @field_validator("llm_model", mode="before")
    @classmethod
    def set_default_model(cls, v: Optional[str], info) -> str:
        """Set default model based on provider if not specified."""
        if v:
            return v

        provider = info.data.get("llm_provider", LLMProvider.OPENAI)
        if provider == LLMProvider.OPENAI:
            return "gpt-4o"
        elif provider == LLMProvider.ANTHROPIC:
            return "claude-sonnet-4-6-20250514"
        return v


# LLM Prompt templates
PROMPTS = {
    "system": """You are an expert JavaScript developer renaming minified identifiers to descriptive, meaningful names.

Guidelines:
1. Use camelCase for variables and functions, PascalCase for classes
2. Use UPPER_SNAKE_CASE only for constants holding fixed primitive values
3. Names should be descriptive but concise (2-4 words)
4. Predicates: isXxx, hasXxx; handlers: onXxx, handleXxx; collections: plural nouns
5. If the purpose is unclear, prefer a generic but accurate name over a misleading one""",

    "suggest_names": """Suggest names for the identifiers described below.

Scope:
```
{scope_summary}
```

Identifiers (JSON):
```json
{dossiers}
```

For every identifier provide up to {max_candidates} candidate names ranked by confidence (0.0-1.0).
Every "id" from the input MUST appear in the output exactly once.
Output MUST be a valid JSON object wrapped in a markdown code block:

```json
{{
  "suggestions": [
    {{"id": 3, "candidates": [{{"name": "userCount", "confidence": 0.9, "rationale": "counts users"}}]}}
  ]
}}
```""",
}
