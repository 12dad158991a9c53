"""Text edit buffer used while rewriting a module factory."""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Tuple

from tree_sitter import Node

from ..analyzers.base import call_arguments, named_children, node_text, string_value, unwrap

RESERVED_WORDS = frozenset(
    {
        "break", "case", "catch", "class", "const", "continue", "debugger", "default",
        "delete", "do", "else", "enum", "export", "extends", "false", "finally", "for",
        "function", "if", "import", "in", "instanceof", "new", "null", "return", "super",
        "switch", "this", "throw", "true", "try", "typeof", "var", "void", "while", "with",
        "yield", "let", "static", "implements", "interface", "package", "private",
        "protected", "public", "await",
    }
)


class EditBuffer:
    """Collects replacements over one source buffer and renders nodes through them."""

    def __init__(self, source: bytes) -> None:
        self._source = source
        self._edits: Dict[Tuple[int, int], str] = {}

    @property
    def source(self) -> bytes:
        return self._source

    def replace(self, node: Node, text: str) -> None:
        self._edits[(node.start_byte, node.end_byte)] = text

    def text(self, node: Node) -> str:
        """Original text of ``node`` with no edits applied."""
        return node_text(node, self._source)

    def render(self, node: Node) -> str:
        return self.render_range(node.start_byte, node.end_byte)

    def render_range(self, start: int, end: int) -> str:
        # Outer edits win over edits nested inside them.
        ordered = sorted(self._edits.items(), key=lambda item: (item[0][0], -item[0][1]))
        chunks: List[bytes] = []
        cursor = start
        for (edit_start, edit_end), text in ordered:
            if edit_start < cursor or edit_end > end:
                continue
            chunks.append(self._source[cursor:edit_start])
            chunks.append(text.encode("utf-8"))
            cursor = edit_end
        chunks.append(self._source[cursor:end])
        return b"".join(chunks).decode("utf-8", errors="replace")


def same_node(left: Optional[Node], right: Optional[Node]) -> bool:
    if left is None or right is None:
        return False
    return (left.start_byte, left.end_byte, left.type) == (right.start_byte, right.end_byte, right.type)


def flatten_sequence(node: Node) -> Iterator[Node]:
    """Split minified ``a, b, c`` expression statements into their parts."""
    node = unwrap(node)
    if node.type == "sequence_expression":
        for part in named_children(node):
            yield from flatten_sequence(part)
    else:
        yield node


def statement_expressions(statement: Node) -> List[Node]:
    if statement.type != "expression_statement":
        return []
    parts: List[Node] = []
    for child in named_children(statement):
        parts.extend(flatten_sequence(child))
    return parts


def require_specifier(node: Node, require_name: Optional[str], source: bytes) -> Optional[str]:
    """Return the specifier when ``node`` is ``require("spec")``."""
    if require_name is None or node.type != "call_expression":
        return None
    function = node.child_by_field_name("function")
    if function is None or function.type != "identifier" or node_text(function, source) != require_name:
        return None
    arguments = call_arguments(node)
    if not arguments or arguments[0].type != "string":
        return None
    return string_value(arguments[0], source)


def is_identifier_name(name: str) -> bool:
    if not name or name in RESERVED_WORDS:
        return False
    if not (name[0].isalpha() or name[0] in "_$"):
        return False
    return all(char.isalnum() or char in "_$" for char in name)


def indent_block(text: str, prefix: str = "    ") -> str:
    return "\n".join(prefix + line if line.strip() else line for line in text.splitlines())


__all__ = [
    "EditBuffer",
    "RESERVED_WORDS",
    "flatten_sequence",
    "indent_block",
    "is_identifier_name",
    "require_specifier",
    "same_node",
    "statement_expressions",
]
