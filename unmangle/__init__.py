"""Unmangle - rename minified JavaScript identifiers with an LLM naming oracle."""

__version__ = "0.1.0"

from unmangle.config import Config
from unmangle.core.scope_builder import analyze_source
from unmangle.core.generator import generate_code
from unmangle.core.validator import validate_code
from unmangle.engine import RenameOutcome, rename_identifiers, rename_many

__all__ = [
    "__version__",
    "Config",
    "RenameOutcome",
    "analyze_source",
    "generate_code",
    "rename_identifiers",
    "rename_many",
    "validate_code",
]
