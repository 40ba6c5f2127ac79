"""Tests for the constraint solver."""

import pytest

from unmangle.core.oracle import NameCandidate
from unmangle.core.scope_builder import analyze_source
from unmangle.core.solver import (
    ConstraintSolver,
    NameAssignment,
    is_valid_identifier,
    normalize_candidate_name,
    rank_candidates,
    solve_names,
    to_camel_case,
    to_pascal_case,
)
from unmangle.core.symbols import BindingKind


def _binding(analysis, name, index=0):
    found = sorted(
        (binding for binding in analysis.bindings.values() if binding.name == name),
        key=lambda binding: binding.start,
    )
    return found[index]


def _candidates(*names):
    return [NameCandidate(name=name, confidence=0.9 - i * 0.1) for i, name in enumerate(names)]


def _assert_safe(analysis, assignment):
    """No scope holds a name twice and no reference changes its target."""
    for scope in analysis.scopes.values():
        final = [assignment.name_for(binding) for binding in analysis.bindings_in(scope.id)]
        original = [binding.name for binding in analysis.bindings_in(scope.id)]
        assert len(set(final)) == len(set(original))

    renamed = {decision.binding_id for decision in assignment.decisions}
    for binding in analysis.bindings.values():
        new = assignment.name_for(binding)
        for ref in binding.references:
            scope_id = ref.scope_id
            while scope_id != binding.scope_id:
                for other in analysis.bindings_in(scope_id):
                    assert assignment.name_for(other) != new, (
                        f"reference to {binding.name} at {ref.line}:{ref.column} captured"
                    )
                scope_id = analysis.scopes[scope_id].parent_id
        if binding.id in renamed:
            assert new not in analysis.free_names_in_subtree(binding.scope_id)


class TestNameHelpers:
    """Tests for identifier helpers."""

    def test_is_valid_identifier(self):
        assert is_valid_identifier("userName")
        assert is_valid_identifier("$el")
        assert not is_valid_identifier("2fast")
        assert not is_valid_identifier("class")
        assert not is_valid_identifier("has-dash")

    def test_case_conversion(self):
        assert to_camel_case("user_name") == "userName"
        assert to_camel_case("MAX_SIZE") == "maxSize"
        assert to_camel_case("UserName") == "userName"
        assert to_camel_case("_private_value") == "_privateValue"
        assert to_pascal_case("event_emitter") == "EventEmitter"
        assert to_pascal_case("Widget") == "Widget"

    def test_normalize_candidate_name(self):
        assert normalize_candidate_name(" `user_id` ") == "userId"
        assert normalize_candidate_name("event_bus", BindingKind.CLASS) == "EventBus"
        assert normalize_candidate_name("MAX_RETRIES") == "MAX_RETRIES"
        assert normalize_candidate_name("user_id", enforce_naming_conventions=False) == "user_id"
        assert normalize_candidate_name("not valid") is None
        assert normalize_candidate_name("") is None

    def test_rank_candidates(self):
        """Ranking normalizes, filters and orders by confidence."""
        ranked = rank_candidates(
            [
                NameCandidate(name="low", confidence=0.1),
                NameCandidate(name="user_name", confidence=0.6),
                NameCandidate(name="userName", confidence=0.8),
                NameCandidate(name="bad name", confidence=0.99),
            ],
            min_confidence=0.2,
        )

        assert [(c.name, c.confidence) for c in ranked] == [("userName", 0.8)]


class TestConstraintSolver:
    """Tests for ConstraintSolver."""

    def test_parent_scopes_are_processed_first(self):
        """Bindings of larger scopes come first in the order."""
        analysis = analyze_source("function f(a) { { let b = a; } }\nvar c;")

        order = [binding.name for binding in ConstraintSolver(analysis).order()]
        assert order == ["f", "c", "a", "b"]

    def test_same_original_name_may_share_new_name(self):
        """Shadowing in the input can be preserved under the new name."""
        analysis = analyze_source("const a = 1; function foo() { const a = 2; return a; }")
        outer, inner = _binding(analysis, "a", 0), _binding(analysis, "a", 1)

        assignment = solve_names(analysis, {outer.id: _candidates("count"), inner.id: _candidates("count")})

        assert assignment.names[outer.id] == "count"
        assert assignment.names[inner.id] == "count"
        _assert_safe(analysis, assignment)

    def test_free_name_in_subtree_is_rejected(self):
        """A new name may not capture a free reference below the binding."""
        analysis = analyze_source("const a = 1; function foo() { const a = 2; return count + a; }")
        outer, inner = _binding(analysis, "a", 0), _binding(analysis, "a", 1)

        assignment = solve_names(analysis, {
            outer.id: _candidates("count", "total"),
            inner.id: _candidates("count", "amount"),
        })

        assert assignment.names[outer.id] == "total"
        assert assignment.names[inner.id] == "amount"
        _assert_safe(analysis, assignment)

    def test_same_scope_collision(self):
        """Two bindings of one scope never end up with the same name."""
        analysis = analyze_source("var a = 1; var b = 2;")
        a, b = _binding(analysis, "a"), _binding(analysis, "b")

        assignment = solve_names(analysis, {a.id: _candidates("value"), b.id: _candidates("value", "other")})

        assert assignment.names == {a.id: "value", b.id: "other"}

    def test_collision_with_unrenamed_binding(self):
        """A candidate equal to another binding's kept name is rejected."""
        analysis = analyze_source("var a = 1; var total = 2;")
        a = _binding(analysis, "a")

        assignment = solve_names(analysis, {a.id: _candidates("total")})

        assert assignment.names[a.id] == "a"
        assert assignment.fallbacks[0].reason == "total: taken in the same scope"

    def test_ancestor_name_is_rejected(self):
        """A child binding may not take a name its ancestor scope holds."""
        analysis = analyze_source("var a = 1; function f(b) { return a + b; }")
        a, b = _binding(analysis, "a"), _binding(analysis, "b")

        assignment = solve_names(analysis, {a.id: _candidates("value"), b.id: _candidates("value", "input")})

        assert assignment.names[a.id] == "value"
        assert assignment.names[b.id] == "input"
        _assert_safe(analysis, assignment)

    def test_capture_through_intermediate_scope(self):
        """A reference must not be captured by a scope it passes through."""
        analysis = analyze_source("var a = 1; function f() { var b = 2; return function () { return a; }; }")
        a = _binding(analysis, "a")

        assignment = solve_names(analysis, {a.id: _candidates("b", "base")})

        assert assignment.names[a.id] == "base"
        _assert_safe(analysis, assignment)

    @pytest.mark.parametrize("code", [
        "function f() { { let x = 0; var a = 1; } return a; }",
        "function f() { for (let x = 0; x < 1; x++) { var a = x; } return a; }",
        "function f() { try { g(); } catch (x) { var a = 1; } return a; }",
    ])
    def test_hoisted_var_avoids_names_of_blocks_it_leaves(self, code):
        """A var may not take a name declared by a block it hoists out of."""
        analysis = analyze_source(code)
        a = _binding(analysis, "a")

        assignment = solve_names(analysis, {a.id: _candidates("x", "value")})

        assert assignment.names[a.id] == "value"
        assert assignment.fallbacks == []

    def test_hoisted_var_kept_when_only_clashing_names_offered(self):
        """With no other candidate the var keeps its name."""
        analysis = analyze_source("function f() { { let x = 0; var a = 1; } return a; }")
        a = _binding(analysis, "a")

        assignment = solve_names(analysis, {a.id: _candidates("x")})

        assert assignment.names[a.id] == "a"
        assert assignment.decisions == []
        assert assignment.fallbacks[0].reason.startswith("x: clashes with scope")

    def test_reserved_words_are_rejected(self):
        """Keywords are never assigned."""
        analysis = analyze_source("var a = 1;")
        a = _binding(analysis, "a")

        assignment = solve_names(analysis, {a.id: _candidates("class", "klass")})

        assert assignment.names[a.id] == "klass"

    def test_keeps_original_without_valid_candidate(self):
        """A binding keeps its name when nothing fits."""
        analysis = analyze_source("var a = 1;")
        a = _binding(analysis, "a")

        assignment = solve_names(analysis, {a.id: _candidates("for", "not an identifier")})

        assert assignment.names[a.id] == "a"
        assert assignment.decisions == []
        assert len(assignment.fallbacks) == 1

    def test_dynamic_scope_is_not_renamed(self):
        """Bindings in a scope reaching eval keep their names."""
        analysis = analyze_source('function f() { var a = 1; eval("a"); }')
        a, f = _binding(analysis, "a"), _binding(analysis, "f")

        assignment = solve_names(analysis, {a.id: _candidates("value"), f.id: _candidates("run")})

        assert assignment.names == {a.id: "a", f.id: "f"}
        assert {fallback.reason for fallback in assignment.fallbacks} == {"scope uses eval or with"}

    def test_imports_and_pins_are_kept(self):
        """Import bindings and pinned bindings are never renamed."""
        analysis = analyze_source('import { h } from "m"; var a = h;')
        h, a = _binding(analysis, "h"), _binding(analysis, "a")

        assignment = solve_names(
            analysis,
            {h.id: _candidates("createElement"), a.id: _candidates("node")},
            pinned={a.id},
        )

        assert assignment.names == {h.id: "h", a.id: "a"}
        assert assignment.renamed == {}

    def test_min_confidence(self):
        """Low-confidence candidates are ignored."""
        analysis = analyze_source("var a = 1;")
        a = _binding(analysis, "a")

        assignment = solve_names(
            analysis,
            {a.id: [NameCandidate(name="guess", confidence=0.1)]},
            min_confidence=0.5,
        )

        assert assignment.names[a.id] == "a"

    def test_class_names_are_pascal_cased(self):
        """Class bindings receive PascalCase names."""
        analysis = analyze_source("class t {}")
        t = _binding(analysis, "t")

        assignment = solve_names(analysis, {t.id: _candidates("event_emitter")})

        assert assignment.names[t.id] == "EventEmitter"

    def test_bindings_without_candidates_are_untouched(self):
        """Only bindings with candidates appear in the assignment."""
        analysis = analyze_source("var a = 1; var b = 2;")
        a, b = _binding(analysis, "a"), _binding(analysis, "b")

        assignment = solve_names(analysis, {a.id: _candidates("first")})

        assert b.id not in assignment.names
        assert assignment.name_for(b) == "b"

    def test_swap_is_rejected(self):
        """Greedy solving does not swap two names within a scope."""
        analysis = analyze_source("var a = 1; var b = 2;")
        a, b = _binding(analysis, "a"), _binding(analysis, "b")

        assignment = solve_names(analysis, {a.id: _candidates("b"), b.id: _candidates("a")})

        assert assignment.names == {a.id: "a", b.id: "b"}

    def test_determinism(self, nested_scope_code):
        """The same inputs always give the same assignment."""
        analysis = analyze_source(nested_scope_code)
        candidates = {
            binding.id: _candidates("value", "item", "result")
            for binding in analysis.bindings.values()
        }

        first = solve_names(analysis, candidates)
        second = solve_names(analysis, dict(reversed(list(candidates.items()))))

        assert first.names == second.names
        assert first.decisions == second.decisions
        _assert_safe(analysis, first)

    @pytest.mark.parametrize("code", [
        "var a; function b(c) { var d = c; return function (e) { return a + d + e; }; }",
        "let x = 1; { let y = x; { let z = y + w; } }",
        "const p = (q, r) => { try { return q(r); } catch (s) { return s; } };",
    ])
    def test_safety_under_uniform_suggestions(self, code):
        """Even when every binding gets the same wishes, the result is safe."""
        analysis = analyze_source(code)
        candidates = {
            binding.id: _candidates("w", "value", "item", "data")
            for binding in analysis.bindings.values()
        }

        assignment = solve_names(analysis, candidates)

        _assert_safe(analysis, assignment)


class TestNameAssignment:
    """Tests for NameAssignment."""

    def test_identity(self):
        analysis = analyze_source("var a = 1; function b(c) {}")

        assignment = NameAssignment.identity(analysis)

        assert sorted(assignment.names.values()) == ["a", "b", "c"]
        assert assignment.decisions == []
