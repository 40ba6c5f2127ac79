"""Constraint solver turning ranked candidates into a collision-free assignment."""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Sequence

from unmangle.core.oracle import NameCandidate
from unmangle.core.symbols import AnalysisResult, Binding, BindingKind

logger = logging.getLogger(__name__)

RESERVED_WORDS = frozenset({
    "abstract", "arguments", "async", "await", "boolean", "break", "byte", "case",
    "catch", "char", "class", "const", "continue", "debugger", "default", "delete",
    "do", "double", "else", "enum", "eval", "export", "extends", "false", "final",
    "finally", "float", "for", "function", "goto", "if", "implements", "import",
    "in", "instanceof", "int", "interface", "let", "long", "native", "new", "null",
    "package", "private", "protected", "public", "return", "short", "static",
    "super", "switch", "synchronized", "this", "throw", "throws", "transient",
    "true", "try", "typeof", "undefined", "var", "void", "volatile", "while",
    "with", "yield",
})

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_UPPER_SNAKE_RE = re.compile(r"^[A-Z][A-Z0-9_]*$")
_CAMEL_RE = re.compile(r"^[a-z][a-zA-Z0-9]*$")
_PASCAL_RE = re.compile(r"^[A-Z][a-zA-Z0-9]*$")


def is_valid_identifier(name: str) -> bool:
    """Whether a name can be used as a binding name."""
    return bool(_IDENTIFIER_RE.match(name)) and name not in RESERVED_WORDS


def _split_prefix(name: str) -> tuple[str, str]:
    stripped = name.lstrip("_$")
    return name[:len(name) - len(stripped)], stripped


def to_camel_case(name: str) -> str:
    prefix, body = _split_prefix(name)
    if not body or _CAMEL_RE.match(body):
        return name
    if _UPPER_SNAKE_RE.match(body):
        body = body.lower()
    body = re.sub(r"_+(.)?", lambda m: m.group(1).upper() if m.group(1) else "", body)
    return prefix + body[:1].lower() + body[1:]


def to_pascal_case(name: str) -> str:
    prefix, body = _split_prefix(name)
    if not body or _PASCAL_RE.match(body):
        return name
    camel = to_camel_case(body)
    return prefix + camel[:1].upper() + camel[1:]


def normalize_candidate_name(
    name: str,
    kind: Optional[BindingKind] = None,
    enforce_naming_conventions: bool = True,
) -> Optional[str]:
    """Clean an oracle suggestion into a usable identifier.

    Args:
        name: Raw candidate name
        kind: Kind of the binding the name is for
        enforce_naming_conventions: PascalCase classes, camelCase the rest

    Returns:
        The normalized name, or None if it is not an identifier
    """
    cleaned = name.strip().strip("`'\"").strip()
    if not _IDENTIFIER_RE.match(cleaned):
        return None
    if enforce_naming_conventions:
        if kind == BindingKind.CLASS:
            cleaned = to_pascal_case(cleaned)
        elif not _UPPER_SNAKE_RE.match(cleaned):
            cleaned = to_camel_case(cleaned)
    return cleaned if _IDENTIFIER_RE.match(cleaned) else None


def rank_candidates(
    candidates: Sequence[NameCandidate],
    kind: Optional[BindingKind] = None,
    min_confidence: float = 0.0,
    enforce_naming_conventions: bool = True,
) -> list[NameCandidate]:
    """Normalize, filter and order candidates, best first.

    Duplicate normalized names keep their highest confidence; equal
    confidences keep the oracle's order.
    """
    best: dict[str, NameCandidate] = {}
    order: list[str] = []
    for candidate in candidates:
        if candidate.confidence < min_confidence:
            continue
        name = normalize_candidate_name(candidate.name, kind, enforce_naming_conventions)
        if name is None:
            continue
        if name not in best:
            order.append(name)
            best[name] = candidate.model_copy(update={"name": name})
        elif candidate.confidence > best[name].confidence:
            best[name] = candidate.model_copy(update={"name": name})
    ranked = [best[name] for name in order]
    ranked.sort(key=lambda candidate: -candidate.confidence)
    return ranked


@dataclass
class RenameDecision:
    """A binding that received a new name."""
    binding_id: int
    original_name: str
    new_name: str
    confidence: float
    rationale: Optional[str] = None


@dataclass
class SolverFallback:
    """A binding that kept its original name although candidates existed."""
    binding_id: int
    name: str
    reason: str


@dataclass
class NameAssignment:
    """Final names keyed by binding id."""
    names: dict[int, str] = field(default_factory=dict)
    decisions: list[RenameDecision] = field(default_factory=list)
    fallbacks: list[SolverFallback] = field(default_factory=list)

    def name_for(self, binding: Binding) -> str:
        return self.names.get(binding.id, binding.name)

    @property
    def renamed(self) -> dict[int, str]:
        return {decision.binding_id: decision.new_name for decision in self.decisions}

    @classmethod
    def identity(cls, analysis: AnalysisResult) -> "NameAssignment":
        """Assignment that maps every binding to its current name."""
        return cls(names={bid: binding.name for bid, binding in analysis.bindings.items()})


class ConstraintSolver:
    """Greedy solver over the scope tree.

    Bindings are visited largest scope first, so parents settle their names
    before their children. Every binding keeps its original name unless one
    of its candidates passes all collision checks.
    """

    def __init__(
        self,
        analysis: AnalysisResult,
        min_confidence: float = 0.0,
        enforce_naming_conventions: bool = True,
        pinned: Optional[Iterable[int]] = None,
    ):
        self.analysis = analysis
        self.min_confidence = min_confidence
        self.enforce_naming_conventions = enforce_naming_conventions
        self.pinned = set(pinned or ())

        # name -> number of bindings in the scope currently holding it
        self._held: dict[int, dict[str, int]] = {}
        for scope_id in analysis.scopes:
            counts: dict[str, int] = {}
            for binding in analysis.bindings_in(scope_id):
                counts[binding.name] = counts.get(binding.name, 0) + 1
            self._held[scope_id] = counts

        self._final: dict[int, str] = {}
        self._free_below = self._collect_free_names()

    def _collect_free_names(self) -> dict[int, set[str]]:
        free: dict[int, set[str]] = {scope_id: set() for scope_id in self.analysis.scopes}
        for ref in self.analysis.unresolved:
            scope_id: Optional[int] = ref.scope_id
            while scope_id is not None:
                names = free[scope_id]
                if ref.name in names:
                    break
                names.add(ref.name)
                scope_id = self.analysis.scopes[scope_id].parent_id
        return free

    def order(self) -> list[Binding]:
        """Bindings in processing order."""
        scopes = self.analysis.scopes

        def key(binding: Binding) -> tuple[int, int, int, int]:
            scope = scopes[binding.scope_id]
            return (-scope.size, scope.depth, binding.start, binding.id)

        return sorted(self.analysis.bindings.values(), key=key)

    def _current_name(self, binding: Binding) -> str:
        return self._final.get(binding.id, binding.name)

    def _between_scopes(self, binding: Binding) -> set[int]:
        """Scopes between the binding's scope and its references or declaration site.

        A hoisted declaration passes through the blocks around it, so a name
        held there would clash with it as well as capture references.
        """
        scopes = self.analysis.scopes
        between = {scope.id for scope in self.analysis.hoisted_through(binding.id)}
        for ref in binding.references:
            scope_id: Optional[int] = ref.scope_id
            while scope_id is not None and scope_id != binding.scope_id:
                if scope_id in between:
                    break
                between.add(scope_id)
                scope_id = scopes[scope_id].parent_id
        return between

    def _rejection(self, binding: Binding, name: str, between: set[int]) -> Optional[str]:
        """Why a name cannot be used for a binding, or None if it can."""
        if name in RESERVED_WORDS:
            return "reserved word"
        if self._held[binding.scope_id].get(name):
            return "taken in the same scope"
        if name in self._free_below[binding.scope_id]:
            return "free reference in scope subtree"
        for ancestor in self.analysis.ancestors(binding.scope_id):
            if not self._held[ancestor.id].get(name):
                continue
            for other in self.analysis.bindings_in(ancestor.id):
                if self._current_name(other) == name and other.name != binding.name:
                    return f"used by enclosing scope {ancestor.id}"
        for scope_id in between:
            if self._held[scope_id].get(name):
                return f"clashes with scope {scope_id} between declaration and references"
        return None

    def _hold(self, binding: Binding, name: str) -> None:
        counts = self._held[binding.scope_id]
        old = self._current_name(binding)
        counts[old] -= 1
        if not counts[old]:
            del counts[old]
        counts[name] = counts.get(name, 0) + 1
        self._final[binding.id] = name

    def _keep(self, assignment: NameAssignment, binding: Binding, reason: str) -> None:
        assignment.names[binding.id] = binding.name
        assignment.fallbacks.append(SolverFallback(binding.id, binding.name, reason))
        logger.info("Keeping '%s' (binding %d): %s", binding.name, binding.id, reason)

    def solve(self, candidates: Mapping[int, Sequence[NameCandidate]]) -> NameAssignment:
        assignment = NameAssignment()
        for binding in self.order():
            raw = candidates.get(binding.id)
            if not raw:
                continue

            if binding.id in self.pinned:
                self._keep(assignment, binding, "pinned after failed validation")
                continue
            if binding.kind == BindingKind.IMPORT:
                self._keep(assignment, binding, "import binding")
                continue
            if binding.scope_id in self.analysis.dynamic_scope_ids:
                self._keep(assignment, binding, "scope uses eval or with")
                continue
            if not self.analysis.is_renameable(binding.id):
                self._keep(assignment, binding, "duplicate declaration in scope")
                continue

            ranked = rank_candidates(raw, binding.kind, self.min_confidence, self.enforce_naming_conventions)
            if not ranked:
                self._keep(assignment, binding, "no valid candidate")
                continue

            between = self._between_scopes(binding)
            chosen: Optional[NameCandidate] = None
            reasons = []
            for candidate in ranked:
                if candidate.name == binding.name:
                    chosen = candidate
                    break
                reason = self._rejection(binding, candidate.name, between)
                if reason is None:
                    chosen = candidate
                    break
                reasons.append(f"{candidate.name}: {reason}")

            if chosen is None:
                self._keep(assignment, binding, "; ".join(reasons))
                continue

            assignment.names[binding.id] = chosen.name
            if chosen.name != binding.name:
                self._hold(binding, chosen.name)
                assignment.decisions.append(RenameDecision(
                    binding_id=binding.id,
                    original_name=binding.name,
                    new_name=chosen.name,
                    confidence=chosen.confidence,
                    rationale=chosen.rationale,
                ))

        assignment.names = dict(sorted(assignment.names.items()))
        assignment.decisions.sort(key=lambda decision: decision.binding_id)
        assignment.fallbacks.sort(key=lambda fallback: fallback.binding_id)
        return assignment


def solve_names(
    analysis: AnalysisResult,
    candidates: Mapping[int, Sequence[NameCandidate]],
    min_confidence: float = 0.0,
    enforce_naming_conventions: bool = True,
    pinned: Optional[Iterable[int]] = None,
) -> NameAssignment:
    """Choose one final name per binding.

    Args:
        analysis: Result of the scope graph builder
        candidates: Ranked candidates keyed by binding id
        min_confidence: Ignore candidates below this confidence
        enforce_naming_conventions: PascalCase classes, camelCase the rest
        pinned: Binding ids that must keep their original names

    Returns:
        NameAssignment for every binding that had candidates
    """
    solver = ConstraintSolver(analysis, min_confidence, enforce_naming_conventions, pinned)
    return solver.solve(candidates)
