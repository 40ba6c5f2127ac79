"""Scope graph data model.

Scopes and bindings live in two arenas keyed by integer ids. Parent/child,
binding/scope and reference/binding links are plain id fields, so an
``AnalysisResult`` can be copied or shipped to another worker freely.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional


class ScopeKind(str, Enum):
    """Kind of lexical region."""
    PROGRAM = "program"
    FUNCTION = "function"
    BLOCK = "block"
    CATCH = "catch"
    CLASS = "class"


class BindingKind(str, Enum):
    """How an identifier was declared."""
    LET = "let"
    CONST = "const"
    VAR = "var"
    FUNCTION = "function"
    CLASS = "class"
    PARAM = "param"
    CATCH = "catch"
    IMPORT = "import"


class ReferenceRole(str, Enum):
    """Semantic role of one identifier occurrence."""
    DECLARATION = "declaration"
    READ = "read"
    WRITE = "write"
    CALL = "call"
    PROPERTY_ACCESS = "property-access"
    SHORTHAND = "shorthand"
    CATCH_PARAMETER = "catch-parameter"
    EXPORT = "export"


class SourceForm(str, Enum):
    """Syntactic form of an occurrence, which decides how it is rewritten."""
    PLAIN = "plain"
    SHORTHAND_PROPERTY = "shorthand_property"  # { a } in an object literal
    SHORTHAND_PATTERN = "shorthand_pattern"  # { a } = obj / const { a } = obj
    IMPORT_SPECIFIER = "import_specifier"  # import { a } from "m"
    EXPORT_SPECIFIER = "export_specifier"  # export { a }


# Kinds that can be redeclared in the same scope without a SyntaxError.
REDECLARABLE_KINDS = frozenset({BindingKind.VAR, BindingKind.FUNCTION, BindingKind.PARAM})


@dataclass
class Reference:
    """One occurrence of an identifier that is not its declaration."""
    name: str
    role: ReferenceRole
    scope_id: int
    start: int
    end: int
    line: int
    column: int
    form: SourceForm = SourceForm.PLAIN
    member: Optional[str] = None
    arg_count: Optional[int] = None
    binding_id: Optional[int] = None

    @property
    def is_resolved(self) -> bool:
        return self.binding_id is not None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.role.value, "line": self.line, "column": self.column}
        if self.member is not None:
            data["context"] = self.member
        return data


@dataclass
class UsageHint:
    """A usage pattern observed on a binding and how often."""
    hint: str
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {"hint": self.hint, "count": self.count}


@dataclass
class ExportStatement:
    """Span of an ``export <declaration>`` statement."""
    start: int
    declaration_start: int
    end: int


@dataclass
class Binding:
    """One declared identifier."""
    id: int
    name: str
    kind: BindingKind
    scope_id: int
    start: int
    end: int
    line: int
    column: int
    form: SourceForm = SourceForm.PLAIN
    declared_in_scope_id: Optional[int] = None  # innermost scope around the declaring identifier
    declaration_role: ReferenceRole = ReferenceRole.DECLARATION
    is_exported: bool = False
    export_statement: Optional[ExportStatement] = None
    declaration_snippet: str = ""
    surrounding_code: str = ""
    initializer: Optional[str] = None
    references: list[Reference] = field(default_factory=list)
    usage_hints: list[UsageHint] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "scopeId": self.scope_id,
            "declarationRole": self.declaration_role.value,
            "isExported": self.is_exported,
            "references": [ref.to_dict() for ref in self.references],
            "usageHints": [hint.to_dict() for hint in self.usage_hints],
            "surroundingCode": self.surrounding_code,
        }


@dataclass
class Scope:
    """A lexical region."""
    id: int
    kind: ScopeKind
    parent_id: Optional[int]
    start: int
    end: int
    line: int
    depth: int = 0
    label: str = ""
    children: list[int] = field(default_factory=list)
    binding_ids: list[int] = field(default_factory=list)
    size: int = 0  # bindings declared in this scope and all descendants
    is_dynamic: bool = False  # contains eval / with directly

    @property
    def binding_count(self) -> int:
        return len(self.binding_ids)

    @property
    def is_var_target(self) -> bool:
        return self.kind in (ScopeKind.PROGRAM, ScopeKind.FUNCTION)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "parentId": self.parent_id,
            "size": self.size,
            "bindingCount": self.binding_count,
            "children": list(self.children),
        }


@dataclass
class AnalysisResult:
    """Output of the scope graph builder."""
    source_code: str
    lines: list[str]
    scopes: dict[int, Scope]
    bindings: dict[int, Binding]
    root_scope_id: int
    unresolved: list[Reference] = field(default_factory=list)
    has_dynamic_features: bool = False
    dynamic_scope_ids: set[int] = field(default_factory=set)
    _source_bytes: Optional[bytes] = field(default=None, repr=False, compare=False)

    def span_text(self, start: int, end: int) -> str:
        """Source text between two byte offsets."""
        if self._source_bytes is None:
            self._source_bytes = self.source_code.encode("utf-8")
        return self._source_bytes[start:end].decode("utf-8", errors="replace")

    def scope_of(self, binding_id: int) -> Scope:
        return self.scopes[self.bindings[binding_id].scope_id]

    def ancestors(self, scope_id: int) -> Iterator[Scope]:
        """Yield the parent chain of a scope, nearest first (excluding itself)."""
        parent_id = self.scopes[scope_id].parent_id
        while parent_id is not None:
            scope = self.scopes[parent_id]
            yield scope
            parent_id = scope.parent_id

    def is_ancestor(self, ancestor_id: int, scope_id: int) -> bool:
        return any(scope.id == ancestor_id for scope in self.ancestors(scope_id))

    def subtree(self, scope_id: int) -> Iterator[Scope]:
        """Yield a scope and all its descendants."""
        stack = [scope_id]
        while stack:
            scope = self.scopes[stack.pop()]
            yield scope
            stack.extend(reversed(scope.children))

    def hoisted_through(self, binding_id: int) -> list[Scope]:
        """Scopes a hoisted declaration passes before reaching its owning scope.

        Empty unless the binding is declared inside a nested block, loop head
        or catch clause of the scope that owns it, as with a ``var`` in a block.
        """
        binding = self.bindings[binding_id]
        passed = []
        current = binding.declared_in_scope_id
        while current is not None and current != binding.scope_id:
            scope = self.scopes[current]
            passed.append(scope)
            current = scope.parent_id
        return passed

    def bindings_in(self, scope_id: int) -> list[Binding]:
        return [self.bindings[bid] for bid in self.scopes[scope_id].binding_ids]

    def lookup(self, name: str, scope_id: int) -> Optional[Binding]:
        """Resolve a name from a scope outward; the first match wins."""
        current: Optional[int] = scope_id
        while current is not None:
            scope = self.scopes[current]
            for binding_id in scope.binding_ids:
                binding = self.bindings[binding_id]
                if binding.name == name:
                    return binding
            current = scope.parent_id
        return None

    def free_names(self) -> set[str]:
        return {ref.name for ref in self.unresolved}

    def free_names_in_subtree(self, scope_id: int) -> set[str]:
        inside = {scope.id for scope in self.subtree(scope_id)}
        return {ref.name for ref in self.unresolved if ref.scope_id in inside}

    def is_renameable(self, binding_id: int) -> bool:
        """Whether a binding may be given a new name at all."""
        binding = self.bindings[binding_id]
        if binding.kind == BindingKind.IMPORT:
            return False
        if binding.scope_id in self.dynamic_scope_ids:
            return False
        return not any(
            other.id != binding.id and other.name == binding.name
            for other in self.bindings_in(binding.scope_id)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "bindings": {bid: binding.to_dict() for bid, binding in self.bindings.items()},
            "scopes": {sid: scope.to_dict() for sid, scope in self.scopes.items()},
            "rootScopeId": self.root_scope_id,
            "hasDynamicFeatures": self.has_dynamic_features,
        }
