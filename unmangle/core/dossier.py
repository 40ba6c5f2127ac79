"""Dossier building and batching for the naming oracle."""

import re
from dataclasses import dataclass, field

from unmangle.core.oracle import Dossier, OracleRequest
from unmangle.core.symbols import (
    AnalysisResult,
    Binding,
    BindingKind,
    ReferenceRole,
    Scope,
)

# Member names that suggest what kind of value a binding holds.
_MEMBER_FAMILIES = (
    ("array", frozenset({
        "push", "pop", "shift", "unshift", "map", "filter", "reduce", "forEach",
        "slice", "splice", "concat", "indexOf", "includes", "find", "findIndex",
        "some", "every", "join", "sort", "reverse", "flat", "flatMap",
    })),
    ("string", frozenset({
        "charAt", "charCodeAt", "substring", "substr", "toLowerCase", "toUpperCase",
        "trim", "split", "replace", "startsWith", "endsWith", "padStart", "match",
    })),
    ("promise", frozenset({"then", "catch", "finally"})),
    ("map or set", frozenset({"get", "set", "has", "add", "delete", "clear", "keys", "values", "entries"})),
    ("DOM element", frozenset({
        "addEventListener", "removeEventListener", "appendChild", "removeChild",
        "querySelector", "querySelectorAll", "setAttribute", "getAttribute",
        "classList", "innerHTML", "textContent", "style",
    })),
    ("event", frozenset({"preventDefault", "stopPropagation", "target", "currentTarget"})),
)

_KIND_HINTS = {
    BindingKind.FUNCTION: "function",
    BindingKind.CLASS: "class",
    BindingKind.PARAM: "parameter",
    BindingKind.CATCH: "caught error",
    BindingKind.CONST: "constant",
}


def is_minified_name(name: str) -> bool:
    """Check if a name appears to be minified.

    Considers names as minified if they are:
    - Single character (a, b, c, etc.)
    - Two character combinations (aa, ab, etc.)
    - Mix of random letters and numbers (x1, a2b)
    - Common minifier patterns
    """
    if not name:
        return False

    # Common meaningful short names to preserve
    preserved_names = {
        "i", "j", "k",  # Loop counters
        "x", "y", "z",  # Coordinates
        "id", "db", "io", "ui", "os",
        "fs", "ls", "rm", "cp",
        "up", "on", "in", "to",
    }
    if name.lower() in preserved_names:
        return False

    if len(name) == 1:
        return True

    if len(name) == 2:
        common_abbr = {"id", "io", "ui", "db", "fn", "cb", "ev", "el", "tx", "rx"}
        return name.lower() not in common_abbr

    # Mix of single letters and numbers (e.g., a1, b2, x1)
    if re.match(r"^[a-zA-Z$_]\d+$", name):
        return True

    if len(name) <= 3 and re.match(r"^[a-zA-Z]+$", name):
        if name.lower() in {"set", "get", "map", "key", "val", "arr", "obj", "str", "num", "err", "req", "res"}:
            return False
        if len(set(name.lower())) <= 2:
            return True

    # Names with underscores or dollars but very short (a_b, $_1)
    if ("_" in name or "$" in name) and len(name) <= 5:
        return True

    # Hex-like names (a1b2, x9f3)
    if re.match(r"^[a-f0-9]+$", name.lower()) and len(name) >= 4:
        return True

    return False


def _plural(count: int, word: str) -> str:
    return f"{word} {count} time" if count == 1 else f"{word} {count} times"


def summarize_usage(binding: Binding) -> str:
    """Human-readable summary of how a binding is used."""
    counts: dict[ReferenceRole, int] = {}
    members: list[str] = []
    for ref in binding.references:
        counts[ref.role] = counts.get(ref.role, 0) + 1
        if ref.member and ref.member not in members:
            members.append(ref.member)

    parts = []
    if counts.get(ReferenceRole.CALL):
        parts.append(_plural(counts[ReferenceRole.CALL], "called"))
    if counts.get(ReferenceRole.READ):
        parts.append(_plural(counts[ReferenceRole.READ], "read"))
    if counts.get(ReferenceRole.WRITE):
        parts.append(_plural(counts[ReferenceRole.WRITE], "written"))
    if counts.get(ReferenceRole.SHORTHAND):
        parts.append(_plural(counts[ReferenceRole.SHORTHAND], "used as object shorthand"))
    if counts.get(ReferenceRole.EXPORT):
        parts.append("exported")
    if members:
        shown = ", ".join(members[:10])
        if len(members) > 10:
            shown += f", ... ({len(members) - 10} more)"
        parts.append(f"accessed properties: {shown}")

    return "; ".join(parts) if parts else "never referenced"


def infer_type_hints(binding: Binding) -> list[str]:
    """Best-effort hints about what a binding holds."""
    hints = []
    if binding.initializer:
        hints.append(f"initialized as {binding.initializer}")
    kind_hint = _KIND_HINTS.get(binding.kind)
    if kind_hint:
        hints.append(kind_hint)

    arg_counts = sorted({ref.arg_count for ref in binding.references if ref.arg_count is not None})
    if arg_counts:
        shown = "/".join(str(count) for count in arg_counts)
        hints.append(f"called with {shown} argument(s)")

    members = {ref.member for ref in binding.references if ref.member}
    for family, names in _MEMBER_FAMILIES:
        if members & names:
            hints.append(f"used like a {family}")
    if "length" in members:
        hints.append("has length")

    if binding.is_exported:
        hints.append("part of the module interface")
    return hints


def build_dossier(binding: Binding) -> Dossier:
    """Project a binding into an oracle dossier."""
    return Dossier(
        id=binding.id,
        original_name=binding.name,
        kind=binding.kind.value,
        exported=binding.is_exported,
        declaration_snippet=binding.declaration_snippet,
        usage_summary=summarize_usage(binding),
        type_hints=infer_type_hints(binding),
    )


def scopes_by_significance(analysis: AnalysisResult) -> list[Scope]:
    """Scopes ordered by subtree binding count (largest first), then id."""
    return sorted(analysis.scopes.values(), key=lambda scope: (-scope.size, scope.id))


def summarize_scope(analysis: AnalysisResult, scope: Scope, max_chars: int = 2000) -> str:
    """Render a scope as a header plus numbered source lines.

    Long scopes are cut in the middle so both the opening and the closing
    code stay visible.
    """
    header = (
        f"// {scope.label} ({scope.kind.value} scope {scope.id}, "
        f"{scope.binding_count} bindings, {scope.size} in subtree)"
    )
    text = analysis.span_text(scope.start, scope.end)
    numbered = "\n".join(
        f"{scope.line + offset:6d} | {line}"
        for offset, line in enumerate(text.split("\n"))
    )

    budget = max(0, max_chars - len(header) - 1)
    if len(numbered) > budget:
        head = budget // 2
        tail = budget - head
        omitted = len(numbered) - head - tail
        numbered = (
            numbered[:head]
            + f"\n       ... ({omitted} chars omitted) ...\n"
            + (numbered[-tail:] if tail else "")
        )
    return f"{header}\n{numbered}"


@dataclass
class NamingBatch:
    """One oracle request worth of dossiers from a single scope."""
    scope_id: int
    index: int
    scope_summary: str
    dossiers: list[Dossier] = field(default_factory=list)

    @property
    def binding_ids(self) -> list[int]:
        return [dossier.id for dossier in self.dossiers]

    def to_request(self, max_candidates: int = 5) -> OracleRequest:
        return OracleRequest(
            scope_summary=self.scope_summary,
            dossiers=self.dossiers,
            max_candidates=max_candidates,
        )


def build_naming_batches(
    analysis: AnalysisResult,
    max_symbols_per_batch: int = 20,
    max_scope_summary_chars: int = 2000,
    skip_descriptive_names: bool = False,
) -> list[NamingBatch]:
    """Group renameable bindings into oracle batches.

    Bindings are grouped by owning scope and scopes are visited in
    significance order. A scope with more bindings than fit in one batch is
    split; every part carries the full scope summary.

    Args:
        analysis: Result of the scope graph builder
        max_symbols_per_batch: Maximum dossiers per batch
        max_scope_summary_chars: Maximum length of a scope summary
        skip_descriptive_names: Leave names that do not look minified alone

    Returns:
        Batches in processing order
    """
    batches = []
    for scope in scopes_by_significance(analysis):
        eligible = [
            binding for binding in analysis.bindings_in(scope.id)
            if analysis.is_renameable(binding.id)
            and (not skip_descriptive_names or is_minified_name(binding.name))
        ]
        if not eligible:
            continue

        summary = summarize_scope(analysis, scope, max_scope_summary_chars)
        for index, offset in enumerate(range(0, len(eligible), max_symbols_per_batch)):
            chunk = eligible[offset:offset + max_symbols_per_batch]
            batches.append(NamingBatch(
                scope_id=scope.id,
                index=index,
                scope_summary=summary,
                dossiers=[build_dossier(binding) for binding in chunk],
            ))
    return batches
