"""Code generation by applying a name assignment to the original source."""

import logging
from dataclasses import dataclass

from unmangle.core.solver import NameAssignment
from unmangle.core.symbols import (
    AnalysisResult,
    Binding,
    ExportStatement,
    SourceForm,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextEdit:
    """Replace the bytes in [start, end) with text."""
    start: int
    end: int
    text: str


def _occurrence_text(form: SourceForm, old: str, new: str) -> str:
    if form in (SourceForm.SHORTHAND_PROPERTY, SourceForm.SHORTHAND_PATTERN):
        return f"{old}: {new}"
    if form == SourceForm.IMPORT_SPECIFIER:
        return f"{old} as {new}"
    if form == SourceForm.EXPORT_SPECIFIER:
        return f"{new} as {old}"
    return new


class CodeGenerator:
    """Rewrites identifiers in place and leaves every other byte untouched."""

    def __init__(self, analysis: AnalysisResult):
        self.analysis = analysis
        self._source_bytes = analysis.source_code.encode("utf-8")

    def collect_edits(self, assignment: NameAssignment) -> list[TextEdit]:
        """Edits needed to realize an assignment, ordered by position."""
        edits: list[TextEdit] = []
        export_groups: dict[int, tuple[ExportStatement, list[Binding]]] = {}

        for binding in self.analysis.bindings.values():
            if binding.export_statement is not None:
                statement = binding.export_statement
                export_groups.setdefault(statement.start, (statement, []))[1].append(binding)

            new = assignment.name_for(binding)
            if new == binding.name:
                continue
            edits.append(TextEdit(binding.start, binding.end, _occurrence_text(binding.form, binding.name, new)))
            for ref in binding.references:
                edits.append(TextEdit(ref.start, ref.end, _occurrence_text(ref.form, binding.name, new)))

        for statement, bindings in export_groups.values():
            if all(assignment.name_for(binding) == binding.name for binding in bindings):
                continue
            specifiers = []
            for binding in sorted(bindings, key=lambda b: b.start):
                new = assignment.name_for(binding)
                specifiers.append(new if new == binding.name else f"{new} as {binding.name}")
            edits.append(TextEdit(statement.start, statement.declaration_start, ""))
            edits.append(TextEdit(statement.end, statement.end, f"\nexport {{ {', '.join(specifiers)} }};"))

        edits.sort(key=lambda edit: (edit.start, edit.end))
        return edits

    def apply(self, edits: list[TextEdit]) -> str:
        """Apply non-overlapping edits to the source.

        Raises:
            ValueError: If two edits overlap
        """
        if not edits:
            return self.analysis.source_code

        parts: list[bytes] = []
        cursor = 0
        for edit in edits:
            if edit.start < cursor:
                raise ValueError(f"Overlapping edits at byte {edit.start}")
            parts.append(self._source_bytes[cursor:edit.start])
            parts.append(edit.text.encode("utf-8"))
            cursor = edit.end
        parts.append(self._source_bytes[cursor:])
        return b"".join(parts).decode("utf-8")

    def generate(self, assignment: NameAssignment) -> str:
        edits = self.collect_edits(assignment)
        logger.debug("Applying %d edits", len(edits))
        return self.apply(edits)


def generate_code(analysis: AnalysisResult, assignment: NameAssignment) -> str:
    """Generate renamed code.

    Every occurrence of a renamed binding (its declaration and all resolved
    references) takes the assigned name. Free references, literals, property
    names and formatting are left exactly as they were. Object shorthand,
    import/export specifiers and directly exported declarations are expanded
    so that property keys and the module interface keep their original names.

    Args:
        analysis: Analysis of the original source
        assignment: Final names keyed by binding id

    Returns:
        Renamed source code
    """
    return CodeGenerator(analysis).generate(assignment)
