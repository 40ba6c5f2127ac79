"""Scope graph builder and reference classifier.

One pre-order walk over the tree-sitter syntax tree opens a scope for every
scope-introducing construct, records a binding for every declaration site and
queues every other identifier occurrence as a reference. References are
resolved once the walk is complete, so hoisted and later-declared names resolve
the same way the language resolves them.
"""

import logging
from typing import Optional

from tree_sitter import Node

from unmangle.core.parser import ParsedSource, parse_javascript
from unmangle.core.symbols import (
    AnalysisResult,
    Binding,
    BindingKind,
    ExportStatement,
    Reference,
    ReferenceRole,
    Scope,
    ScopeKind,
    SourceForm,
    UsageHint,
)

logger = logging.getLogger(__name__)

FUNCTION_TYPES = frozenset({
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",
    "generator_function",
    "arrow_function",
    "method_definition",
})
CLASS_TYPES = frozenset({"class_declaration", "class"})

_REFERENCE_TYPES = frozenset({"identifier", "shorthand_property_identifier"})
_JSX_ELEMENT_TYPES = frozenset({"jsx_opening_element", "jsx_closing_element", "jsx_self_closing_element"})
_WRITE_TARGET_FIELDS = {
    "assignment_expression": "left",
    "augmented_assignment_expression": "left",
    "update_expression": "argument",
    "for_in_statement": "left",
}
_DECLARATION_KEYWORDS = {"var": BindingKind.VAR, "let": BindingKind.LET, "const": BindingKind.CONST}
_BLOCK_LABELS = {
    "if_statement": "if block",
    "else_clause": "else block",
    "for_statement": "for block",
    "for_in_statement": "for block",
    "while_statement": "while block",
    "do_statement": "do-while block",
    "try_statement": "try block",
    "finally_clause": "finally block",
    "with_statement": "with block",
    "labeled_statement": "labeled block",
}
_LITERAL_SHAPES = {
    "string": "string",
    "template_string": "string",
    "number": "number",
    "true": "boolean",
    "false": "boolean",
    "null": "null",
    "undefined": "undefined",
    "array": "array",
    "object": "object",
    "regex": "regex",
    "arrow_function": "function",
    "function_expression": "function",
    "function": "function",
    "generator_function": "function",
    "class": "class",
    "await_expression": "awaited value",
}
_STRING_EVAL_CALLEES = frozenset({"setTimeout", "setInterval"})
_MAX_LINE_CHARS = 240


def _text(node: Node) -> str:
    return node.text.decode("utf-8", errors="replace")


def _clip(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max(0, max_chars - 3)] + "..."


def _argument_count(call: Node) -> Optional[int]:
    arguments = call.child_by_field_name("arguments")
    if arguments is None:
        return 0 if call.type == "new_expression" else None
    if arguments.type == "template_string":
        return 1
    return sum(1 for child in arguments.named_children if child.type != "comment")


def classify_reference(node: Node) -> tuple[ReferenceRole, Optional[str]]:
    """Classify one identifier occurrence by its syntactic context.

    Rules in priority order: assignment target, call callee, object of a
    non-computed member access (the member name is returned as context),
    object-literal shorthand, and read for everything else. Declaration
    sites are not references: each Binding carries its own declaration role.
    """
    parent = node.parent
    if parent is None:
        return ReferenceRole.READ, None

    field_name = _WRITE_TARGET_FIELDS.get(parent.type)
    if field_name is not None and parent.child_by_field_name(field_name) == node:
        return ReferenceRole.WRITE, None

    if parent.type == "call_expression" and parent.child_by_field_name("function") == node:
        return ReferenceRole.CALL, None
    if parent.type == "new_expression" and parent.child_by_field_name("constructor") == node:
        return ReferenceRole.CALL, None

    if parent.type == "member_expression" and parent.child_by_field_name("object") == node:
        prop = parent.child_by_field_name("property")
        if prop is not None:
            return ReferenceRole.PROPERTY_ACCESS, _text(prop)

    if node.type == "shorthand_property_identifier":
        return ReferenceRole.SHORTHAND, None

    if parent.type == "export_specifier":
        return ReferenceRole.EXPORT, None

    return ReferenceRole.READ, None


def _pattern_identifiers(pattern: Node) -> list[Node]:
    """Identifiers a binding pattern declares, in source order."""
    kind = pattern.type
    if kind in ("identifier", "shorthand_property_identifier_pattern"):
        return [pattern]
    if kind == "pair_pattern":
        value = pattern.child_by_field_name("value")
        return _pattern_identifiers(value) if value is not None else []
    if kind in ("assignment_pattern", "object_assignment_pattern"):
        left = pattern.child_by_field_name("left")
        return _pattern_identifiers(left) if left is not None else []
    if kind in ("object_pattern", "array_pattern", "rest_pattern"):
        found = []
        for child in pattern.named_children:
            found.extend(_pattern_identifiers(child))
        return found
    return []


def _outer_binding_identifiers(declaration: Node) -> list[Node]:
    if declaration.type in ("function_declaration", "generator_function_declaration", "class_declaration"):
        name = declaration.child_by_field_name("name")
        return [name] if name is not None else []
    if declaration.type in ("lexical_declaration", "variable_declaration"):
        found = []
        for declarator in declaration.named_children:
            if declarator.type == "variable_declarator":
                name = declarator.child_by_field_name("name")
                if name is not None:
                    found.extend(_pattern_identifiers(name))
        return found
    return []


def _declaration_keyword(node: Node) -> Optional[BindingKind]:
    kind_node = node.child_by_field_name("kind")
    if kind_node is not None:
        return _DECLARATION_KEYWORDS.get(kind_node.type)
    for child in node.children:
        if not child.is_named and child.type in _DECLARATION_KEYWORDS:
            return _DECLARATION_KEYWORDS[child.type]
    return None


def _initializer_shape(value: Optional[Node]) -> Optional[str]:
    if value is None:
        return None
    while value.type == "parenthesized_expression" and value.named_child_count:
        value = value.named_children[0]
    shape = _LITERAL_SHAPES.get(value.type)
    if shape is not None:
        return shape
    if value.type == "new_expression":
        constructor = value.child_by_field_name("constructor")
        if constructor is not None:
            return f"instance of {_clip(_text(constructor), 40)}"
    if value.type == "call_expression":
        callee = value.child_by_field_name("function")
        if callee is not None:
            return f"result of {_clip(_text(callee), 40)}()"
    if value.type == "unary_expression":
        operator = value.child_by_field_name("operator")
        op = operator.type if operator is not None else ""
        if op == "!":
            return "boolean"
        if op == "void":
            return "undefined"
        if op in ("-", "+"):
            return "number"
        if op == "typeof":
            return "string"
    if value.type == "binary_expression":
        operator = value.child_by_field_name("operator")
        if operator is not None and operator.type in ("===", "!==", "==", "!=", "<", ">", "<=", ">=", "instanceof", "in"):
            return "boolean"
    return None


class ScopeGraphBuilder:
    """Builds an AnalysisResult from a parsed source in a single walk."""

    def __init__(
        self,
        parsed: ParsedSource,
        context_lines: int = 3,
        max_snippet_chars: int = 200,
    ):
        self.parsed = parsed
        self.context_lines = context_lines
        self.max_snippet_chars = max_snippet_chars

        self.scopes: dict[int, Scope] = {}
        self.bindings: dict[int, Binding] = {}
        self._names: dict[int, dict[str, int]] = {}
        self._pending: list[Reference] = []
        self._exported: dict[int, Optional[ExportStatement]] = {}
        # (scope id, reason, callee name that must be unbound, program-only)
        self._dynamic_sites: list[tuple[int, str, Optional[str], bool]] = []
        self._stack: list[tuple[Node, int]] = []

    def build(self) -> AnalysisResult:
        root = self.parsed.root
        root_id = self._new_scope(ScopeKind.PROGRAM, root, None, "Program")
        self._stack.extend((child, root_id) for child in reversed(root.children))

        while self._stack:
            node, scope_id = self._stack.pop()
            todo = self._visit(node, scope_id)
            if todo:
                self._stack.extend(reversed(todo))

        unresolved = self._resolve_references()
        dynamic_scope_ids = self._mark_dynamic_scopes(root_id)
        self._compute_sizes()
        for binding in self.bindings.values():
            binding.references.sort(key=lambda ref: ref.start)
            binding.usage_hints = _usage_hints(binding)

        logger.debug(
            "Analyzed %d scopes, %d bindings, %d unresolved references",
            len(self.scopes), len(self.bindings), len(unresolved),
        )
        return AnalysisResult(
            source_code=self.parsed.source_code,
            lines=self.parsed.lines,
            scopes=self.scopes,
            bindings=self.bindings,
            root_scope_id=root_id,
            unresolved=unresolved,
            has_dynamic_features=bool(dynamic_scope_ids),
            dynamic_scope_ids=dynamic_scope_ids,
        )

    # -- traversal -----------------------------------------------------

    def _visit(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        handler = getattr(self, f"_visit_{node.type}", None)
        if handler is not None:
            return handler(node, scope_id)
        if node.type in _REFERENCE_TYPES:
            if not self._is_intrinsic_jsx_name(node):
                self._add_reference(node, scope_id)
            return []
        if node.type == "shorthand_property_identifier_pattern":
            self._add_reference(node, scope_id, ReferenceRole.WRITE, SourceForm.SHORTHAND_PATTERN)
            return []
        return [(child, scope_id) for child in node.children]

    def _visit_statement_block(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        parent = node.parent
        label = _BLOCK_LABELS.get(parent.type, "block") if parent is not None else "block"
        block_id = self._new_scope(ScopeKind.BLOCK, node, scope_id, label)
        return [(child, block_id) for child in node.children]

    def _visit_function_declaration(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        name = node.child_by_field_name("name")
        if name is not None:
            self._declare(name, BindingKind.FUNCTION, scope_id, node)
        return self._enter_function(node, scope_id)

    _visit_generator_function_declaration = _visit_function_declaration

    def _visit_function_expression(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        return self._enter_function(node, scope_id, self_name=node.child_by_field_name("name"))

    _visit_function = _visit_function_expression
    _visit_generator_function = _visit_function_expression

    def _visit_arrow_function(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        return self._enter_function(node, scope_id)

    def _visit_method_definition(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        todo: list[tuple[Node, int]] = []
        for child in node.children:
            if child.type == "decorator":
                todo.append((child, scope_id))
        name = node.child_by_field_name("name")
        if name is not None and name.type == "computed_property_name":
            todo.append((name, scope_id))
        return todo + self._enter_function(node, scope_id)

    def _enter_function(
        self,
        node: Node,
        scope_id: int,
        self_name: Optional[Node] = None,
    ) -> list[tuple[Node, int]]:
        function_id = self._new_scope(ScopeKind.FUNCTION, node, scope_id, self._function_label(node))
        todo: list[tuple[Node, int]] = []

        if self_name is not None:
            self._declare(self_name, BindingKind.FUNCTION, function_id, node)

        single = node.child_by_field_name("parameter")
        if single is not None and single.type == "identifier":
            self._declare(single, BindingKind.PARAM, function_id, node)

        parameters = node.child_by_field_name("parameters")
        if parameters is not None:
            for param in parameters.named_children:
                self._declare_pattern(param, BindingKind.PARAM, function_id, function_id, node, todo)

        body = node.child_by_field_name("body")
        if body is not None:
            if body.type == "statement_block":
                todo.extend((child, function_id) for child in body.children)
            else:
                todo.append((body, function_id))
        return todo

    def _visit_class_declaration(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        name = node.child_by_field_name("name")
        if name is not None:
            self._declare(name, BindingKind.CLASS, scope_id, node)
        class_id = self._new_scope(ScopeKind.CLASS, node, scope_id, self._class_label(node))
        todo: list[tuple[Node, int]] = []
        for child in node.children:
            if child.type in ("class_heritage", "decorator"):
                todo.append((child, scope_id))
            elif child.type == "class_body":
                todo.extend((member, class_id) for member in child.children)
        return todo

    def _visit_class(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        class_id = self._new_scope(ScopeKind.CLASS, node, scope_id, self._class_label(node))
        name = node.child_by_field_name("name")
        if name is not None:
            self._declare(name, BindingKind.CLASS, class_id, node)
        todo: list[tuple[Node, int]] = []
        for child in node.children:
            if child.type == "decorator":
                todo.append((child, scope_id))
            elif child.type == "class_heritage":
                todo.append((child, class_id))
            elif child.type == "class_body":
                todo.extend((member, class_id) for member in child.children)
        return todo

    def _visit_class_static_block(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        block_id = self._new_scope(ScopeKind.FUNCTION, node, scope_id, "static block")
        body = node.child_by_field_name("body")
        children = body.children if body is not None else node.children
        return [(child, block_id) for child in children]

    def _visit_for_statement(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        for_id = self._new_scope(ScopeKind.BLOCK, node, scope_id, "for statement")
        return [(child, for_id) for child in node.children]

    def _visit_for_in_statement(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        for_id = self._new_scope(ScopeKind.BLOCK, node, scope_id, "for statement")
        keyword = _declaration_keyword(node)
        left = node.child_by_field_name("left")
        todo: list[tuple[Node, int]] = []
        for child in node.children:
            if left is not None and child == left:
                if keyword is None:
                    self._assignment_target(left, for_id, todo)
                else:
                    target = self._var_scope(for_id) if keyword == BindingKind.VAR else for_id
                    self._declare_pattern(left, keyword, target, for_id, node, todo)
            else:
                todo.append((child, for_id))
        return todo

    def _visit_switch_body(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        switch_id = self._new_scope(ScopeKind.BLOCK, node, scope_id, "switch block")
        return [(child, switch_id) for child in node.children]

    def _visit_catch_clause(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        catch_id = self._new_scope(ScopeKind.CATCH, node, scope_id, "catch clause")
        todo: list[tuple[Node, int]] = []
        parameter = node.child_by_field_name("parameter")
        if parameter is not None:
            self._declare_pattern(parameter, BindingKind.CATCH, catch_id, catch_id, node, todo)
        body = node.child_by_field_name("body")
        if body is not None:
            todo.extend((child, catch_id) for child in body.children)
        return todo

    def _visit_variable_declaration(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        return self._declarators(node, BindingKind.VAR, self._var_scope(scope_id), scope_id)

    def _visit_lexical_declaration(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        kind = _declaration_keyword(node) or BindingKind.LET
        return self._declarators(node, kind, scope_id, scope_id)

    def _declarators(
        self,
        node: Node,
        kind: BindingKind,
        target_id: int,
        scope_id: int,
    ) -> list[tuple[Node, int]]:
        todo: list[tuple[Node, int]] = []
        for declarator in node.named_children:
            if declarator.type != "variable_declarator":
                continue
            name = declarator.child_by_field_name("name")
            value = declarator.child_by_field_name("value")
            if name is not None:
                if name.type == "identifier":
                    self._declare(
                        name, kind, target_id, declarator,
                        initializer=_initializer_shape(value), declared_in=scope_id,
                    )
                else:
                    self._declare_pattern(name, kind, target_id, scope_id, declarator, todo)
            if value is not None:
                todo.append((value, scope_id))
        return todo

    def _visit_assignment_expression(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        left = node.child_by_field_name("left")
        todo: list[tuple[Node, int]] = []
        for child in node.children:
            if left is not None and child == left:
                self._assignment_target(left, scope_id, todo)
            else:
                todo.append((child, scope_id))
        return todo

    def _visit_with_statement(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        self._dynamic_sites.append((scope_id, "with statement", None, False))
        self.scopes[scope_id].is_dynamic = True
        return [(child, scope_id) for child in node.children]

    def _visit_call_expression(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        callee = node.child_by_field_name("function")
        if callee is not None and callee.type == "identifier":
            name = _text(callee)
            if name == "eval":
                self._dynamic_sites.append((scope_id, "eval() call", name, False))
            elif name == "Function":
                self._dynamic_sites.append((scope_id, "Function() call", name, True))
            elif name in _STRING_EVAL_CALLEES and self._first_argument_is_string(node):
                self._dynamic_sites.append((scope_id, f"{name}() with string code", name, True))
        return [(child, scope_id) for child in node.children]

    def _visit_new_expression(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        constructor = node.child_by_field_name("constructor")
        if constructor is not None and constructor.type == "identifier" and _text(constructor) == "Function":
            self._dynamic_sites.append((scope_id, "new Function()", "Function", True))
        return [(child, scope_id) for child in node.children]

    def _visit_import_statement(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        for clause in node.named_children:
            if clause.type != "import_clause":
                continue
            for item in clause.named_children:
                if item.type == "identifier":
                    self._declare(item, BindingKind.IMPORT, scope_id, node)
                elif item.type == "namespace_import":
                    for ident in item.named_children:
                        if ident.type == "identifier":
                            self._declare(ident, BindingKind.IMPORT, scope_id, node)
                elif item.type == "named_imports":
                    for spec in item.named_children:
                        if spec.type != "import_specifier":
                            continue
                        alias = spec.child_by_field_name("alias")
                        name = spec.child_by_field_name("name")
                        if alias is not None:
                            self._declare(alias, BindingKind.IMPORT, scope_id, node)
                        elif name is not None and name.type == "identifier":
                            self._declare(name, BindingKind.IMPORT, scope_id, node, form=SourceForm.IMPORT_SPECIFIER)
        return []

    def _visit_export_statement(self, node: Node, scope_id: int) -> list[tuple[Node, int]]:
        declaration = node.child_by_field_name("declaration")
        source = node.child_by_field_name("source")
        value = node.child_by_field_name("value")
        is_default = any(child.type == "default" for child in node.children)
        todo: list[tuple[Node, int]] = []

        if declaration is not None:
            statement = None
            if not is_default:
                statement = ExportStatement(node.start_byte, declaration.start_byte, node.end_byte)
            for ident in _outer_binding_identifiers(declaration):
                self._exported[ident.start_byte] = statement
            if is_default and declaration.type in ("function_declaration", "class_declaration"):
                name = declaration.child_by_field_name("name")
                if name is not None:
                    self._exported[name.start_byte] = None

        for child in node.children:
            if child.type == "export_clause":
                if source is not None:
                    continue
                for spec in child.named_children:
                    if spec.type != "export_specifier":
                        continue
                    name = spec.child_by_field_name("name")
                    alias = spec.child_by_field_name("alias")
                    if name is not None and name.type == "identifier":
                        form = SourceForm.EXPORT_SPECIFIER if alias is None else SourceForm.PLAIN
                        self._add_reference(name, scope_id, ReferenceRole.EXPORT, form)
            elif value is not None and child == value and child.type == "identifier":
                self._add_reference(child, scope_id, ReferenceRole.EXPORT)
            elif child.is_named and child.type not in ("string", "comment", "namespace_export"):
                todo.append((child, scope_id))
        return todo

    # -- declarations --------------------------------------------------

    def _declare_pattern(
        self,
        pattern: Node,
        kind: BindingKind,
        target_id: int,
        expr_scope_id: int,
        declaration: Node,
        todo: list[tuple[Node, int]],
    ) -> None:
        ptype = pattern.type
        if ptype == "identifier":
            self._declare(pattern, kind, target_id, declaration, declared_in=expr_scope_id)
        elif ptype == "shorthand_property_identifier_pattern":
            self._declare(
                pattern, kind, target_id, declaration,
                form=SourceForm.SHORTHAND_PATTERN, declared_in=expr_scope_id,
            )
        elif ptype == "pair_pattern":
            key = pattern.child_by_field_name("key")
            if key is not None and key.type == "computed_property_name":
                todo.append((key, expr_scope_id))
            value = pattern.child_by_field_name("value")
            if value is not None:
                self._declare_pattern(value, kind, target_id, expr_scope_id, declaration, todo)
        elif ptype in ("assignment_pattern", "object_assignment_pattern"):
            left = pattern.child_by_field_name("left")
            right = pattern.child_by_field_name("right")
            if left is not None:
                self._declare_pattern(left, kind, target_id, expr_scope_id, declaration, todo)
            if right is not None:
                todo.append((right, expr_scope_id))
        elif ptype in ("object_pattern", "array_pattern", "rest_pattern"):
            for child in pattern.named_children:
                self._declare_pattern(child, kind, target_id, expr_scope_id, declaration, todo)
        elif ptype not in ("comment", "undefined"):
            todo.append((pattern, expr_scope_id))

    def _assignment_target(self, node: Node, scope_id: int, todo: list[tuple[Node, int]]) -> None:
        ntype = node.type
        if ntype == "identifier":
            self._add_reference(node, scope_id, ReferenceRole.WRITE)
        elif ntype == "shorthand_property_identifier_pattern":
            self._add_reference(node, scope_id, ReferenceRole.WRITE, SourceForm.SHORTHAND_PATTERN)
        elif ntype == "pair_pattern":
            key = node.child_by_field_name("key")
            if key is not None and key.type == "computed_property_name":
                todo.append((key, scope_id))
            value = node.child_by_field_name("value")
            if value is not None:
                self._assignment_target(value, scope_id, todo)
        elif ntype in ("assignment_pattern", "object_assignment_pattern"):
            left = node.child_by_field_name("left")
            right = node.child_by_field_name("right")
            if left is not None:
                self._assignment_target(left, scope_id, todo)
            if right is not None:
                todo.append((right, scope_id))
        elif ntype in ("object_pattern", "array_pattern", "rest_pattern", "parenthesized_expression"):
            for child in node.named_children:
                self._assignment_target(child, scope_id, todo)
        elif ntype != "comment":
            todo.append((node, scope_id))

    def _declare(
        self,
        ident: Node,
        kind: BindingKind,
        scope_id: int,
        declaration: Node,
        form: SourceForm = SourceForm.PLAIN,
        initializer: Optional[str] = None,
        declared_in: Optional[int] = None,
    ) -> Binding:
        binding_id = len(self.bindings)
        name = _text(ident)
        snippet = self._snippet(declaration)
        if kind in (BindingKind.VAR, BindingKind.LET, BindingKind.CONST) and declaration.type == "variable_declarator":
            snippet = _clip(f"{kind.value} {snippet}", self.max_snippet_chars)

        binding = Binding(
            id=binding_id,
            name=name,
            kind=kind,
            scope_id=scope_id,
            start=ident.start_byte,
            end=ident.end_byte,
            line=ident.start_point[0] + 1,
            column=ident.start_point[1],
            form=form,
            declared_in_scope_id=scope_id if declared_in is None else declared_in,
            declaration_role=ReferenceRole.CATCH_PARAMETER if kind == BindingKind.CATCH else ReferenceRole.DECLARATION,
            is_exported=ident.start_byte in self._exported,
            export_statement=self._exported.get(ident.start_byte),
            declaration_snippet=snippet,
            surrounding_code=self._surrounding(ident),
            initializer=initializer,
        )
        self.bindings[binding_id] = binding
        self.scopes[scope_id].binding_ids.append(binding_id)
        self._names[scope_id].setdefault(name, binding_id)
        return binding

    def _add_reference(
        self,
        node: Node,
        scope_id: int,
        role: Optional[ReferenceRole] = None,
        form: Optional[SourceForm] = None,
    ) -> None:
        member = None
        if role is None:
            role, member = classify_reference(node)
        if form is None:
            form = SourceForm.SHORTHAND_PROPERTY if node.type == "shorthand_property_identifier" else SourceForm.PLAIN
        arg_count = None
        if role == ReferenceRole.CALL and node.parent is not None:
            arg_count = _argument_count(node.parent)

        self._pending.append(Reference(
            name=_text(node),
            role=role,
            scope_id=scope_id,
            start=node.start_byte,
            end=node.end_byte,
            line=node.start_point[0] + 1,
            column=node.start_point[1],
            form=form,
            member=member,
            arg_count=arg_count,
        ))

    # -- scopes --------------------------------------------------------

    def _new_scope(self, kind: ScopeKind, node: Node, parent_id: Optional[int], label: str) -> int:
        scope_id = len(self.scopes)
        depth = self.scopes[parent_id].depth + 1 if parent_id is not None else 0
        self.scopes[scope_id] = Scope(
            id=scope_id,
            kind=kind,
            parent_id=parent_id,
            start=node.start_byte,
            end=node.end_byte,
            line=node.start_point[0] + 1,
            depth=depth,
            label=label,
        )
        self._names[scope_id] = {}
        if parent_id is not None:
            self.scopes[parent_id].children.append(scope_id)
        return scope_id

    def _var_scope(self, scope_id: int) -> int:
        current = self.scopes[scope_id]
        while not current.is_var_target and current.parent_id is not None:
            current = self.scopes[current.parent_id]
        return current.id

    def _function_label(self, node: Node) -> str:
        if node.type == "method_definition":
            name = node.child_by_field_name("name")
            return f"method {_text(name)}" if name is not None else "method"
        name = node.child_by_field_name("name")
        if name is not None:
            return f"function {_text(name)}"
        parent = node.parent
        if parent is not None and parent.type == "variable_declarator":
            target = parent.child_by_field_name("name")
            if target is not None and target.type == "identifier":
                return f"function {_text(target)}"
        if parent is not None and parent.type == "pair":
            key = parent.child_by_field_name("key")
            if key is not None:
                return f"method {_text(key)}"
        return "arrow function" if node.type == "arrow_function" else "anonymous function"

    def _class_label(self, node: Node) -> str:
        name = node.child_by_field_name("name")
        return f"class {_text(name)}" if name is not None else "anonymous class"

    # -- context -------------------------------------------------------

    def _snippet(self, node: Node) -> str:
        end = node.end_byte
        if node.type in FUNCTION_TYPES or node.type in CLASS_TYPES or node.type in ("catch_clause", "for_in_statement"):
            body = node.child_by_field_name("body")
            if body is not None:
                end = body.start_byte
        raw = self.parsed.source_bytes[node.start_byte:end].decode("utf-8", errors="replace")
        return _clip(" ".join(raw.split()), self.max_snippet_chars)

    def _surrounding(self, ident: Node) -> str:
        lines = self.parsed.lines
        row = ident.start_point[0]
        line_start = ident.start_byte - ident.start_point[1]
        column = len(self.parsed.source_bytes[line_start:ident.start_byte].decode("utf-8", errors="replace"))

        start = max(0, row - self.context_lines)
        end = min(len(lines), row + self.context_lines + 1)
        parts = []
        for i in range(start, end):
            if i == row:
                parts.append(f" >>> {i + 1:6d} | {_clip_around(lines[i], column, _MAX_LINE_CHARS)}")
            else:
                parts.append(f"     {i + 1:6d} | {_clip(lines[i], _MAX_LINE_CHARS)}")
        return "\n".join(parts)

    @staticmethod
    def _first_argument_is_string(call: Node) -> bool:
        arguments = call.child_by_field_name("arguments")
        if arguments is None or arguments.type != "arguments":
            return False
        first = next((child for child in arguments.named_children if child.type != "comment"), None)
        return first is not None and first.type in ("string", "template_string")

    @staticmethod
    def _is_intrinsic_jsx_name(node: Node) -> bool:
        parent = node.parent
        if parent is None or parent.type not in _JSX_ELEMENT_TYPES:
            return False
        name = _text(node)
        return bool(name) and name[0].islower()

    # -- finalization --------------------------------------------------

    def _lookup(self, name: str, scope_id: Optional[int]) -> Optional[int]:
        while scope_id is not None:
            found = self._names[scope_id].get(name)
            if found is not None:
                return found
            scope_id = self.scopes[scope_id].parent_id
        return None

    def _resolve_references(self) -> list[Reference]:
        unresolved = []
        for ref in self._pending:
            binding_id = self._lookup(ref.name, ref.scope_id)
            if binding_id is None:
                unresolved.append(ref)
                continue
            ref.binding_id = binding_id
            binding = self.bindings[binding_id]
            binding.references.append(ref)
            if ref.role == ReferenceRole.EXPORT:
                binding.is_exported = True
        unresolved.sort(key=lambda ref: ref.start)
        return unresolved

    def _mark_dynamic_scopes(self, root_id: int) -> set[int]:
        marked: set[int] = set()
        for scope_id, reason, callee, program_only in self._dynamic_sites:
            if callee is not None and self._lookup(callee, scope_id) is not None:
                continue  # a local binding shadows the global
            logger.debug("Dynamic scope feature in scope %d: %s", scope_id, reason)
            if program_only:
                marked.add(root_id)
                continue
            self.scopes[scope_id].is_dynamic = True
            marked.add(scope_id)
            current = self.scopes[scope_id].parent_id
            while current is not None:
                marked.add(current)
                current = self.scopes[current].parent_id
            stack = list(self.scopes[scope_id].children)
            while stack:
                child = stack.pop()
                marked.add(child)
                stack.extend(self.scopes[child].children)
        return marked

    def _compute_sizes(self) -> None:
        # children always have larger ids than their parents
        for scope_id in sorted(self.scopes, reverse=True):
            scope = self.scopes[scope_id]
            scope.size = scope.binding_count + sum(self.scopes[child].size for child in scope.children)


def _clip_around(line: str, column: int, max_chars: int) -> str:
    """Clip a long line to a window centred on a column."""
    if len(line) <= max_chars:
        return line
    half = max_chars // 2
    start = max(0, min(column - half, len(line) - max_chars))
    end = start + max_chars
    prefix = "..." if start > 0 else ""
    suffix = "..." if end < len(line) else ""
    return f"{prefix}{line[start:end]}{suffix}"


def _usage_hints(binding: Binding) -> list[UsageHint]:
    counts: dict[str, int] = {}
    for ref in binding.references:
        if ref.role == ReferenceRole.CALL:
            hint = "called as function"
        elif ref.role == ReferenceRole.PROPERTY_ACCESS:
            hint = f"used with .{ref.member}"
        elif ref.role == ReferenceRole.WRITE:
            hint = "reassigned"
        elif ref.role == ReferenceRole.SHORTHAND:
            hint = "used in object shorthand"
        elif ref.role == ReferenceRole.EXPORT:
            hint = "exported"
        else:
            hint = "read"
        counts[hint] = counts.get(hint, 0) + 1
    return [UsageHint(hint=hint, count=count) for hint, count in counts.items()]


def duplicate_declaration_groups(result: AnalysisResult) -> list[list[Binding]]:
    """Groups of bindings that share a name within one scope."""
    groups = []
    for scope in result.scopes.values():
        by_name: dict[str, list[Binding]] = {}
        for binding in result.bindings_in(scope.id):
            by_name.setdefault(binding.name, []).append(binding)
        groups.extend(group for group in by_name.values() if len(group) > 1)
    groups.sort(key=lambda group: group[0].start)
    return groups


def analyze_parsed(
    parsed: ParsedSource,
    context_lines: int = 3,
    max_snippet_chars: int = 200,
) -> AnalysisResult:
    """Build the scope graph for an already parsed source."""
    return ScopeGraphBuilder(parsed, context_lines, max_snippet_chars).build()


def analyze_source(
    source_code: str,
    context_lines: int = 3,
    max_snippet_chars: int = 200,
) -> AnalysisResult:
    """Parse JavaScript and build its scope graph.

    Args:
        source_code: The JavaScript source code to analyze
        context_lines: Lines of surrounding code kept per binding
        max_snippet_chars: Maximum length of a declaration snippet

    Returns:
        AnalysisResult with scopes, bindings and unresolved references

    Raises:
        ParseError: If the text is not syntactically valid
    """
    return analyze_parsed(parse_javascript(source_code), context_lines, max_snippet_chars)
