"""JavaScript parsing using tree-sitter."""

from dataclasses import dataclass
from functools import lru_cache
from typing import Iterator, Optional

import tree_sitter_javascript
from tree_sitter import Language, Node, Parser, Tree

from unmangle.errors import ParseError


@dataclass
class ParsedSource:
    """A parsed JavaScript source and its tree."""
    source_code: str
    source_bytes: bytes
    lines: list[str]
    tree: Tree

    @property
    def root(self) -> Node:
        return self.tree.root_node


@lru_cache(maxsize=1)
def _language() -> Language:
    return Language(tree_sitter_javascript.language())


def iter_nodes(node: Node) -> Iterator[Node]:
    """Pre-order walk over a subtree."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def _first_error_node(root: Node) -> Optional[Node]:
    for node in iter_nodes(root):
        if node.is_error or node.is_missing:
            return node
    return None


def parse_javascript(source_code: str) -> ParsedSource:
    """Parse JavaScript code with tree-sitter.

    Args:
        source_code: The JavaScript source code to parse

    Returns:
        ParsedSource holding the syntax tree

    Raises:
        ParseError: If the text is not syntactically valid
    """
    source_bytes = source_code.encode("utf-8")
    parser = Parser(_language())
    tree = parser.parse(source_bytes)

    if tree.root_node.has_error:
        bad = _first_error_node(tree.root_node) or tree.root_node
        line, column = bad.start_point[0] + 1, bad.start_point[1]
        if bad.is_missing:
            message = f"Missing '{bad.type}'"
        else:
            snippet = source_bytes[bad.start_byte:bad.end_byte][:40].decode("utf-8", errors="replace")
            message = f"Unexpected token near {snippet!r}" if snippet else "Unexpected end of input"
        raise ParseError(message, line=line, column=column)

    return ParsedSource(
        source_code=source_code,
        source_bytes=source_bytes,
        lines=source_code.split("\n"),
        tree=tree,
    )
