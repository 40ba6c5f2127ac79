"""Tests for generator module."""

import pytest

from unmangle.core.oracle import NameCandidate
from unmangle.core.generator import CodeGenerator, TextEdit, generate_code
from unmangle.core.scope_builder import analyze_source
from unmangle.core.solver import NameAssignment, solve_names


def _rename(code, mapping):
    """Rename bindings by original name; every binding with that name gets the new one."""
    analysis = analyze_source(code)
    names = {
        binding.id: mapping.get(binding.name, binding.name)
        for binding in analysis.bindings.values()
    }
    return generate_code(analysis, NameAssignment(names=names))


def _shape(code):
    """Scope tree and reference structure of a program, names removed."""
    analysis = analyze_source(code)
    scopes = sorted(
        (scope.id, scope.kind.value, scope.parent_id, len(scope.binding_ids))
        for scope in analysis.scopes.values()
    )
    refs = sorted(
        (binding.scope_id, binding.kind.value, len(binding.references))
        for binding in analysis.bindings.values()
    )
    return scopes, refs, sorted(analysis.free_names())


class TestGenerateCode:
    """Tests for generate_code function."""

    def test_identity_is_byte_identical(self, nested_scope_code):
        """An assignment that changes nothing reproduces the input exactly."""
        analysis = analyze_source(nested_scope_code)

        result = generate_code(analysis, NameAssignment.identity(analysis))

        assert result == nested_scope_code

    def test_empty_assignment(self):
        """No names means no edits."""
        code = "var a = 1;\n// comment stays\n"
        analysis = analyze_source(code)

        assert generate_code(analysis, NameAssignment()) == code

    def test_simple_rename(self):
        """Declaration and references are renamed together."""
        result = _rename("var a = 1;\nconsole.log(a + a);", {"a": "count"})

        assert result == "var count = 1;\nconsole.log(count + count);"

    def test_properties_and_strings_untouched(self):
        """Member names, object keys and string contents keep the old name."""
        result = _rename('var a = { a: 1 };\na.a = "a";', {"a": "obj"})

        assert result == 'var obj = { a: 1 };\nobj.a = "a";'

    def test_shadowed_bindings_renamed_independently(self):
        """Only the binding the reference resolves to is renamed."""
        code = "var a = 1;\nfunction f() {\n  var a = 2;\n  return a;\n}\nf(a);"
        analysis = analyze_source(code)
        outer = min(
            (b for b in analysis.bindings.values() if b.name == "a"),
            key=lambda b: b.start,
        )
        names = {outer.id: "total"}

        result = generate_code(analysis, NameAssignment(names=names))

        assert result == "var total = 1;\nfunction f() {\n  var a = 2;\n  return a;\n}\nf(total);"

    def test_free_references_untouched(self):
        """Globals that merely share a name are left alone."""
        code = "function f(e) { return e + window.e; }"

        assert _rename(code, {"e": "event"}) == "function f(event) { return event + window.e; }"

    def test_object_shorthand_keeps_key(self):
        """{ a } becomes { a: newName }."""
        result = _rename("const a = 1; const o = { a };", {"a": "value"})

        assert result == "const value = 1; const o = { a: value };"

    def test_destructuring_shorthand_keeps_key(self):
        """const { a } = obj keeps reading property a."""
        result = _rename("const { a } = obj; use(a);", {"a": "alpha"})

        assert result == "const { a: alpha } = obj; use(alpha);"

    def test_import_specifier_keeps_imported_name(self):
        """Import specifiers gain an alias instead of a new imported name."""
        code = 'import { h } from "m";\nh();'
        analysis = analyze_source(code)
        h = next(iter(analysis.bindings.values()))

        result = generate_code(analysis, NameAssignment(names={h.id: "createElement"}))

        assert result == 'import { h as createElement } from "m";\ncreateElement();'

    def test_export_specifier_keeps_exported_name(self):
        """export { a } becomes export { newName as a }."""
        result = _rename("const a = 1;\nexport { a };", {"a": "limit"})

        assert result == "const limit = 1;\nexport { limit as a };"

    def test_exported_declaration_keeps_interface(self):
        """A renamed exported declaration is re-exported under its old name."""
        result = _rename("export function u(l) { return l; }", {"u": "render", "l": "node"})

        assert result == "function render(node) { return node; }\nexport { render as u };"

    def test_exported_declaration_lists_all_bindings(self):
        """Every binding of the statement stays exported."""
        result = _rename("export const a = 1, b = 2;", {"a": "first"})

        assert result == "const first = 1, b = 2;\nexport { first as a, b };"

    def test_unicode_offsets(self):
        """Byte offsets are honoured around non-ASCII text."""
        result = _rename('const ü = "ß"; const a = ü + "→"; a;', {"a": "text", "ü": "umlaut"})

        assert result == 'const umlaut = "ß"; const text = umlaut + "→"; text;'

    def test_rewrite_is_isomorphic(self, nested_scope_code):
        """Solved renames keep the scope graph shape."""
        analysis = analyze_source(nested_scope_code)
        candidates = {
            binding.id: [NameCandidate(name=f"{binding.name}Renamed", confidence=0.9)]
            for binding in analysis.bindings.values()
        }
        assignment = solve_names(analysis, candidates)

        result = generate_code(analysis, assignment)

        assert result != nested_scope_code
        assert _shape(result) == _shape(nested_scope_code)


class TestCodeGenerator:
    """Tests for CodeGenerator class."""

    def test_collect_edits_sorted(self):
        """Edits come back in source order."""
        code = "var a = 1; a; a;"
        analysis = analyze_source(code)
        a = next(iter(analysis.bindings.values()))

        edits = CodeGenerator(analysis).collect_edits(NameAssignment(names={a.id: "x"}))

        assert [edit.start for edit in edits] == sorted(edit.start for edit in edits)
        assert len(edits) == 3
        assert all(edit.text == "x" for edit in edits)

    def test_overlapping_edits_rejected(self):
        """apply refuses overlapping edits."""
        analysis = analyze_source("var abc = 1;")
        generator = CodeGenerator(analysis)

        with pytest.raises(ValueError, match="Overlapping"):
            generator.apply([TextEdit(4, 7, "x"), TextEdit(5, 6, "y")])

    def test_apply_edits(self):
        """apply splices text at byte offsets."""
        analysis = analyze_source("var abc = 1;")

        assert CodeGenerator(analysis).apply([TextEdit(4, 7, "total")]) == "var total = 1;"
