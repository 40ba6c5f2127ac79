"""Core renaming functionality."""

from unmangle.core.dossier import NamingBatch, build_dossier, build_naming_batches
from unmangle.core.generator import CodeGenerator, generate_code
from unmangle.core.oracle import (
    Dossier,
    NameCandidate,
    NamingOracle,
    OracleRequest,
    OracleResponse,
    Suggestion,
    merge_suggestions,
    request_suggestions,
)
from unmangle.core.parser import parse_javascript
from unmangle.core.scope_builder import analyze_source, classify_reference
from unmangle.core.solver import NameAssignment, solve_names
from unmangle.core.symbols import AnalysisResult, Binding, Reference, Scope
from unmangle.core.validator import ValidationResult, quick_validate, validate_code

__all__ = [
    "AnalysisResult",
    "Binding",
    "CodeGenerator",
    "Dossier",
    "NameAssignment",
    "NameCandidate",
    "NamingBatch",
    "NamingOracle",
    "OracleRequest",
    "OracleResponse",
    "Reference",
    "Scope",
    "Suggestion",
    "ValidationResult",
    "analyze_source",
    "build_dossier",
    "build_naming_batches",
    "classify_reference",
    "generate_code",
    "merge_suggestions",
    "parse_javascript",
    "quick_validate",
    "request_suggestions",
    "solve_names",
    "validate_code",
]
