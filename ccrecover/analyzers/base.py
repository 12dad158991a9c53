"""Tree-sitter helpers shared by the manifest and bundle analyzers."""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, Iterator, List, Optional

import tree_sitter_javascript
from tree_sitter import Language, Node, Parser, Tree

JS_LANGUAGE = Language(tree_sitter_javascript.language())

FUNCTION_TYPES = frozenset(
    {
        "function",
        "function_expression",
        "arrow_function",
        "function_declaration",
        "generator_function",
        "generator_function_declaration",
        "method_definition",
    }
)

_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
}
_IDENTIFIER_INVALID = re.compile(r"[^0-9A-Za-z_$]")


class NonLiteralError(ValueError):
    """Raised when a syntax node is not a plain data literal."""


def create_parser() -> Parser:
    return Parser(JS_LANGUAGE)


def parse_js(parser: Parser, source: bytes) -> Tree:
    return parser.parse(source)


def node_text(node: Node, source: bytes) -> str:
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def named_children(node: Node) -> List[Node]:
    """Named children without comments."""
    return [child for child in node.named_children if child.type != "comment"]


def unwrap(node: Node) -> Node:
    while node.type == "parenthesized_expression":
        inner = named_children(node)
        if len(inner) != 1:
            break
        node = inner[0]
    return node


def walk(node: Node, skip: Optional[Callable[[Node], bool]] = None) -> Iterator[Node]:
    """Pre-order traversal; subtrees whose root satisfies ``skip`` are pruned."""
    stack = [node]
    while stack:
        current = stack.pop()
        if skip is not None and current is not node and skip(current):
            continue
        yield current
        stack.extend(reversed(current.named_children))


def is_function(node: Node) -> bool:
    return node.type in FUNCTION_TYPES


def call_arguments(call: Node) -> List[Node]:
    arguments = call.child_by_field_name("arguments")
    if arguments is None:
        return []
    return named_children(arguments)


def callee_text(call: Node, source: bytes) -> str:
    function = call.child_by_field_name("function")
    if function is None:
        return ""
    return "".join(node_text(function, source).split())


def parameter_names(function: Node, source: bytes) -> List[str]:
    parameters = function.child_by_field_name("parameters")
    if parameters is None:
        single = function.child_by_field_name("parameter")
        return [node_text(single, source)] if single is not None else []
    return [
        node_text(child, source)
        for child in named_children(parameters)
        if child.type == "identifier"
    ]


def declares(function: Node, name: str, source: bytes) -> bool:
    """Return True when ``function`` rebinds ``name`` for its own body."""
    parameters = function.child_by_field_name("parameters")
    if parameters is None:
        parameters = function.child_by_field_name("parameter")
    if parameters is not None:
        for node in walk(parameters):
            if node.type in {"identifier", "shorthand_property_identifier_pattern"} and node_text(
                node, source
            ) == name:
                return True
    body = function.child_by_field_name("body")
    if body is None or body.type != "statement_block":
        return False
    for node in walk(body, skip=is_function):
        if node.type == "variable_declarator":
            target = node.child_by_field_name("name")
            if target is not None and target.type == "identifier" and node_text(target, source) == name:
                return True
    return False


def iter_scoped(function: Node, name: str, source: bytes) -> Iterator[Node]:
    """Walk a function body, skipping nested functions that shadow ``name``."""
    body = function.child_by_field_name("body")
    if body is None:
        body = function

    def _shadowed(node: Node) -> bool:
        return is_function(node) and declares(node, name, source)

    yield from walk(body, skip=_shadowed)


def string_value(node: Node, source: bytes) -> str:
    """Decode a string literal node, resolving JavaScript escape sequences."""
    parts: List[str] = []
    saw_content = False
    for child in node.children:
        if child.type in {'"', "'", "`"}:
            continue
        saw_content = True
        text = node_text(child, source)
        if child.type == "escape_sequence":
            parts.append(_decode_escape(text))
        else:
            parts.append(text)
    if not saw_content:
        raw = node_text(node, source)
        return raw[1:-1] if len(raw) >= 2 else ""
    value = "".join(parts)
    try:
        return value.encode("utf-16", "surrogatepass").decode("utf-16")
    except UnicodeError:
        return value


def _decode_escape(sequence: str) -> str:
    body = sequence[1:]
    if not body:
        return ""
    head = body[0]
    if head == "x" and len(body) == 3:
        return chr(int(body[1:], 16))
    if head == "u":
        if body.startswith("u{"):
            return chr(int(body[2:-1], 16))
        return chr(int(body[1:5], 16))
    if head in "\r\n\u2028\u2029":
        return ""
    return _SIMPLE_ESCAPES.get(body, body)


def number_value(text: str) -> int | float:
    cleaned = text.replace("_", "").lower()
    if cleaned.endswith("n"):
        cleaned = cleaned[:-1]
    if cleaned.startswith(("0x", "0o", "0b")):
        return int(cleaned, 0)
    try:
        return int(cleaned)
    except ValueError:
        return float(cleaned)


def property_key(node: Node, source: bytes) -> Optional[str]:
    """Return the static name of an object key, or None for computed keys."""
    if node.type in {"property_identifier", "identifier"}:
        return node_text(node, source)
    if node.type == "string":
        return string_value(node, source)
    if node.type == "number":
        value = number_value(node_text(node, source))
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return str(value)
    return None


def literal_value(node: Node, source: bytes) -> Any:
    """Convert a data-only literal node to Python, raising NonLiteralError otherwise."""
    node = unwrap(node)
    kind = node.type
    if kind == "string":
        return string_value(node, source)
    if kind == "number":
        return number_value(node_text(node, source))
    if kind == "true":
        return True
    if kind == "false":
        return False
    if kind in {"null", "undefined"}:
        return None
    if kind == "unary_expression":
        return _unary_literal(node, source)
    if kind == "template_string":
        if any(child.type == "template_substitution" for child in node.named_children):
            raise NonLiteralError("template substitution")
        return node_text(node, source)[1:-1]
    if kind == "array":
        return [literal_value(child, source) for child in named_children(node)]
    if kind == "object":
        result: Dict[str, Any] = {}
        for child in named_children(node):
            if child.type != "pair":
                raise NonLiteralError(child.type)
            key_node = child.child_by_field_name("key")
            value_node = child.child_by_field_name("value")
            key = property_key(key_node, source) if key_node is not None else None
            if key is None or value_node is None:
                raise NonLiteralError("computed key")
            result[key] = literal_value(value_node, source)
        return result
    raise NonLiteralError(kind)


def _unary_literal(node: Node, source: bytes) -> Any:
    operator_node = node.child_by_field_name("operator")
    argument_node = node.child_by_field_name("argument")
    if operator_node is None or argument_node is None:
        raise NonLiteralError("unary_expression")
    operator = node_text(operator_node, source)
    argument = literal_value(argument_node, source)
    if operator == "void":
        return None
    if operator == "!" and isinstance(argument, (bool, int, float)):
        return not argument
    if operator in {"-", "+"} and isinstance(argument, (int, float)) and not isinstance(argument, bool):
        return -argument if operator == "-" else argument
    raise NonLiteralError(f"unary {operator}")


def safe_identifier(text: str) -> str:
    cleaned = _IDENTIFIER_INVALID.sub("_", text)
    if not cleaned or cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    return cleaned


__all__ = [
    "FUNCTION_TYPES",
    "JS_LANGUAGE",
    "NonLiteralError",
    "call_arguments",
    "callee_text",
    "create_parser",
    "declares",
    "is_function",
    "iter_scoped",
    "literal_value",
    "named_children",
    "node_text",
    "number_value",
    "parameter_names",
    "parse_js",
    "property_key",
    "safe_identifier",
    "string_value",
    "unwrap",
    "walk",
]
