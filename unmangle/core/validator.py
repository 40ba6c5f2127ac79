"""Post-rename validation of JavaScript source."""

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Union

from unmangle.core.scope_builder import analyze_source, duplicate_declaration_groups
from unmangle.core.solver import RESERVED_WORDS, RenameDecision
from unmangle.core.symbols import REDECLARABLE_KINDS, AnalysisResult, Binding, BindingKind
from unmangle.errors import ParseError

# Error types
PARSE_ERROR = "parse_error"
UNDEFINED_REFERENCE = "undefined_reference"
DUPLICATE_DECLARATION = "duplicate_declaration"
RESERVED_WORD = "reserved_word"

# Warning types
SUSPICIOUS_NAME = "suspicious_name"
SHADOWING = "shadowing"
LOW_CONFIDENCE = "low_confidence"

KNOWN_GLOBALS = frozenset({
    # Browser globals
    "window", "self", "top", "parent", "frames", "document", "navigator",
    "location", "history", "screen", "localStorage", "sessionStorage",
    "indexedDB", "fetch", "console", "performance", "crypto", "atob", "btoa",
    "setTimeout", "setInterval", "clearTimeout", "clearInterval",
    "requestAnimationFrame", "cancelAnimationFrame", "requestIdleCallback",
    "alert", "confirm", "prompt", "getComputedStyle", "matchMedia",
    "XMLHttpRequest", "WebSocket", "Worker", "Event", "CustomEvent",
    "EventTarget", "Node", "Element", "HTMLElement", "Image", "Audio",
    "URL", "URLSearchParams", "FormData", "Blob", "File", "FileReader",
    "Headers", "Request", "Response", "AbortController", "AbortSignal",
    "TextEncoder", "TextDecoder", "MutationObserver", "IntersectionObserver",
    "ResizeObserver", "PerformanceObserver", "MessageChannel", "BroadcastChannel",
    # Node.js globals
    "process", "global", "Buffer", "require", "module", "exports",
    "__dirname", "__filename", "setImmediate", "clearImmediate",
    # ECMAScript globals
    "Error", "TypeError", "ReferenceError", "SyntaxError", "RangeError",
    "EvalError", "URIError", "AggregateError", "JSON", "Math", "Date",
    "RegExp", "Array", "Object", "String", "Number", "Boolean", "Symbol",
    "BigInt", "Function", "Map", "Set", "WeakMap", "WeakSet", "WeakRef",
    "FinalizationRegistry", "Promise", "Proxy", "Reflect", "Int8Array",
    "Uint8Array", "Uint8ClampedArray", "Int16Array", "Uint16Array",
    "Int32Array", "Uint32Array", "Float32Array", "Float64Array",
    "BigInt64Array", "BigUint64Array", "ArrayBuffer", "SharedArrayBuffer",
    "DataView", "Atomics", "Intl", "undefined", "NaN", "Infinity", "eval",
    "arguments", "isFinite", "isNaN", "parseFloat", "parseInt", "decodeURI",
    "decodeURIComponent", "encodeURI", "encodeURIComponent", "escape",
    "unescape", "globalThis", "queueMicrotask", "structuredClone",
})

_SUSPICIOUS_PATTERNS = (
    re.compile(r"^[a-zA-Z]$"),
    re.compile(r"^(temp|tmp)\d*$", re.IGNORECASE),
    re.compile(r"^var\d+$", re.IGNORECASE),
    re.compile(r"^_+$"),
    re.compile(r"^(unnamed|unknown|placeholder|newName|renamed|undefinedName)\d*$", re.IGNORECASE),
)

# Declarations a var may not hoist past. A simple catch parameter may be redeclared.
_LEXICAL_KINDS = frozenset({BindingKind.LET, BindingKind.CONST, BindingKind.CLASS, BindingKind.FUNCTION})


@dataclass
class ValidationIssue:
    """One error or warning found in a program."""
    type: str
    message: str
    name: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None

    @property
    def location(self) -> Optional[dict[str, int]]:
        if self.line is None:
            return None
        return {"line": self.line, "column": self.column or 0}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "message": self.message}
        if self.location is not None:
            data["location"] = self.location
        return data


@dataclass
class ValidationResult:
    """Outcome of validating a program."""
    valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def implicated_names(self) -> set[str]:
        """Names mentioned by hard errors."""
        return {issue.name for issue in self.errors if issue.name}

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
        }


@dataclass(frozen=True)
class ValidationBaseline:
    """Facts about the original program a rewrite is compared against."""
    free_names: frozenset[str] = frozenset()
    binding_names: frozenset[str] = frozenset()
    duplicate_names: frozenset[str] = frozenset()

    @classmethod
    def from_analysis(cls, analysis: AnalysisResult) -> "ValidationBaseline":
        return cls(
            free_names=frozenset(analysis.free_names()),
            binding_names=frozenset(binding.name for binding in analysis.bindings.values()),
            duplicate_names=frozenset(find_duplicate_declarations(analysis)),
        )

    @classmethod
    def from_source(cls, source_code: str) -> "ValidationBaseline":
        return cls.from_analysis(analyze_source(source_code))


@dataclass
class ShadowedBinding:
    """A binding that hides a same-named binding of an enclosing scope."""
    name: str
    binding_id: int
    shadowed_binding_id: int
    line: int
    column: int


def _analysis(source: Union[str, AnalysisResult]) -> AnalysisResult:
    return analyze_source(source) if isinstance(source, str) else source


def _sort_issues(issues: list[ValidationIssue]) -> list[ValidationIssue]:
    return sorted(issues, key=lambda issue: (issue.line or 0, issue.column or 0, issue.type, issue.name or ""))


def find_undefined_references(
    source: Union[str, AnalysisResult],
    baseline: Optional[ValidationBaseline] = None,
) -> list[str]:
    """Free names that are neither known globals nor free in the baseline.

    Args:
        source: Code or its analysis
        baseline: Facts about the original program, if any

    Returns:
        Sorted unique names
    """
    allowed = baseline.free_names if baseline is not None else frozenset()
    return sorted({
        ref.name for ref in _analysis(source).unresolved
        if ref.name not in KNOWN_GLOBALS and ref.name not in allowed
    })


def _hoisting_conflicts(analysis: AnalysisResult) -> list[list[Binding]]:
    """var declarations that hoist out of a block declaring the same name lexically."""
    groups = []
    for binding in analysis.bindings.values():
        if binding.kind != BindingKind.VAR:
            continue
        for scope in analysis.hoisted_through(binding.id):
            clash = next(
                (
                    other for other in analysis.bindings_in(scope.id)
                    if other.name == binding.name and other.kind in _LEXICAL_KINDS
                ),
                None,
            )
            if clash is not None:
                groups.append(sorted([clash, binding], key=lambda item: item.start))
                break
    return groups


def _redeclaration_groups(analysis: AnalysisResult) -> list[list[Binding]]:
    """Groups of declarations of one name that the language rejects together."""
    groups = [
        group for group in duplicate_declaration_groups(analysis)
        if not all(binding.kind in REDECLARABLE_KINDS for binding in group)
    ]
    groups.extend(_hoisting_conflicts(analysis))
    groups.sort(key=lambda group: group[0].start)
    return groups


def find_duplicate_declarations(source: Union[str, AnalysisResult]) -> list[str]:
    """Names declared twice in a way the language forbids.

    Redeclarations where every declaration is a var, function or parameter
    are legal and not reported. A var that hoists out of a block declaring
    the same name with let, const, class or function is reported.
    """
    return [group[0].name for group in _redeclaration_groups(_analysis(source))]


def find_reserved_word_usage(
    source: Union[str, AnalysisResult],
    baseline: Optional[ValidationBaseline] = None,
) -> list[str]:
    """Binding names that are reserved words.

    Property keys and member names are not bindings and never count. Names
    already bound in the baseline program are accepted.
    """
    allowed = baseline.binding_names if baseline is not None else frozenset()
    return sorted({
        binding.name for binding in _analysis(source).bindings.values()
        if binding.name in RESERVED_WORDS and binding.name not in allowed
    })


def find_shadowing(source: Union[str, AnalysisResult]) -> list[ShadowedBinding]:
    """Bindings that reuse a name bound in an enclosing scope."""
    analysis = _analysis(source)
    found = []
    for binding in analysis.bindings.values():
        parent_id = analysis.scopes[binding.scope_id].parent_id
        if parent_id is None:
            continue
        outer = analysis.lookup(binding.name, parent_id)
        if outer is not None:
            found.append(ShadowedBinding(
                name=binding.name,
                binding_id=binding.id,
                shadowed_binding_id=outer.id,
                line=binding.line,
                column=binding.column,
            ))
    found.sort(key=lambda item: (item.line, item.column, item.binding_id))
    return found


def is_suspicious_name(name: str) -> bool:
    return any(pattern.match(name) for pattern in _SUSPICIOUS_PATTERNS)


def find_suspicious_names(source: Union[str, AnalysisResult]) -> list[str]:
    """Binding names that look minified or like a naming failure."""
    return sorted({
        binding.name for binding in _analysis(source).bindings.values()
        if is_suspicious_name(binding.name)
    })


def validate_code(
    code: str,
    baseline: Optional[ValidationBaseline] = None,
    decisions: Optional[Iterable[RenameDecision]] = None,
    low_confidence_threshold: float = 0.3,
) -> ValidationResult:
    """Validate a program from scratch.

    The code is re-parsed and re-analyzed; nothing from an earlier analysis
    is reused except the baseline facts.

    Args:
        code: JavaScript source to check
        baseline: Free names and binding names of the original program
        decisions: Renames that produced the code, for confidence warnings
        low_confidence_threshold: Renames below this confidence are flagged

    Returns:
        ValidationResult, valid when there are no errors
    """
    try:
        analysis = analyze_source(code)
    except ParseError as e:
        return ValidationResult(
            valid=False,
            errors=[ValidationIssue(PARSE_ERROR, f"Parse error: {e}", line=e.line, column=e.column)],
        )

    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []

    allowed_free = baseline.free_names if baseline is not None else frozenset()
    seen: set[str] = set()
    for ref in analysis.unresolved:
        if ref.name in KNOWN_GLOBALS or ref.name in allowed_free or ref.name in seen:
            continue
        seen.add(ref.name)
        errors.append(ValidationIssue(
            UNDEFINED_REFERENCE,
            f"Undefined reference: {ref.name}",
            name=ref.name,
            line=ref.line,
            column=ref.column,
        ))

    allowed_duplicates = baseline.duplicate_names if baseline is not None else frozenset()
    for group in _redeclaration_groups(analysis):
        if group[0].name in allowed_duplicates:
            continue
        second = group[1]
        kinds = ", ".join(binding.kind.value for binding in group)
        errors.append(ValidationIssue(
            DUPLICATE_DECLARATION,
            f"Duplicate declaration: {second.name} ({kinds})",
            name=second.name,
            line=second.line,
            column=second.column,
        ))

    errors.extend(_reserved_word_issues(analysis, baseline))

    for shadow in find_shadowing(analysis):
        warnings.append(ValidationIssue(
            SHADOWING,
            f"'{shadow.name}' shadows a binding in an enclosing scope",
            name=shadow.name,
            line=shadow.line,
            column=shadow.column,
        ))

    flagged: set[str] = set()
    for binding in analysis.bindings.values():
        if binding.name in flagged or not is_suspicious_name(binding.name):
            continue
        flagged.add(binding.name)
        warnings.append(ValidationIssue(
            SUSPICIOUS_NAME,
            f"Suspicious name: {binding.name}",
            name=binding.name,
            line=binding.line,
            column=binding.column,
        ))

    for decision in decisions or ():
        if decision.confidence < low_confidence_threshold:
            warnings.append(ValidationIssue(
                LOW_CONFIDENCE,
                f"Low confidence rename {decision.original_name} -> {decision.new_name} "
                f"({decision.confidence:.2f})",
                name=decision.new_name,
            ))

    errors = _sort_issues(errors)
    return ValidationResult(valid=not errors, errors=errors, warnings=_sort_issues(warnings))


def _reserved_word_issues(
    analysis: AnalysisResult,
    baseline: Optional[ValidationBaseline],
) -> list[ValidationIssue]:
    allowed = baseline.binding_names if baseline is not None else frozenset()
    issues = []
    for binding in analysis.bindings.values():
        if binding.name in RESERVED_WORDS and binding.name not in allowed:
            issues.append(ValidationIssue(
                RESERVED_WORD,
                f"Reserved word used as identifier: {binding.name}",
                name=binding.name,
                line=binding.line,
                column=binding.column,
            ))
    return issues


def quick_validate(code: str, baseline: Optional[ValidationBaseline] = None) -> ValidationResult:
    """Parse and reserved-word checks only."""
    try:
        analysis = analyze_source(code)
    except ParseError as e:
        return ValidationResult(
            valid=False,
            errors=[ValidationIssue(PARSE_ERROR, f"Parse error: {e}", line=e.line, column=e.column)],
        )
    errors = _sort_issues(_reserved_word_issues(analysis, baseline))
    return ValidationResult(valid=not errors, errors=errors)
