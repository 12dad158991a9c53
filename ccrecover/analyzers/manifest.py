"""Restricted decoder for the build manifest (settings.js)."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Dict, Iterator, Optional, Sequence, Tuple

from tree_sitter import Node

from .base import (
    NonLiteralError,
    create_parser,
    literal_value,
    named_children,
    node_text,
    property_key,
    unwrap,
)
from ..config import DEFAULT_DICTIONARY_KEYS, DEFAULT_SETTINGS_NAMESPACES
from ..layout import BuildLayout
from ..logging import get_logger
from ..models import DiagnosticKind, Outcome, SettingsModel

logger = get_logger("manifest")


class ManifestDecoder:
    """Recovers the settings literal from a manifest without evaluating it."""

    def __init__(
        self,
        *,
        namespaces: Sequence[str] = DEFAULT_SETTINGS_NAMESPACES,
        dictionary_keys: Sequence[str] = DEFAULT_DICTIONARY_KEYS,
    ) -> None:
        self._namespaces = tuple(namespaces)
        self._dictionary_keys = tuple(dictionary_keys)
        self._parser = create_parser()

    def decode(self, text: str, layout: BuildLayout) -> Outcome[SettingsModel]:
        outcome: Outcome[SettingsModel] = Outcome(SettingsModel.empty())
        source = text.encode("utf-8")

        parsed = self._from_assignment(source, outcome)
        if parsed is None and layout.candidates.bare_literal_fallback:
            parsed = self._from_bare_literal(text, outcome)
        if parsed is None:
            outcome.warn(
                DiagnosticKind.DEGRADED_PARSE,
                "empty_settings",
                "Manifest could not be decoded; continuing with empty settings",
            )
            return outcome

        values, source_key = parsed
        dictionary = self._dictionary(values, outcome)
        if not dictionary:
            if layout is BuildLayout.LEGACY:
                outcome.warn(
                    DiagnosticKind.DEGRADED_PARSE,
                    "no_dictionary",
                    "Manifest has no identifier dictionary; asset linkage will be partial",
                    subject=source_key,
                )
            else:
                logger.debug("Manifest carries no identifier dictionary; bundle configs will be used")

        outcome.value = SettingsModel(
            values=MappingProxyType(values),
            dictionary=dictionary,
            source_key=source_key,
        )
        logger.debug("Decoded manifest keys: %s", ", ".join(values) or "(none)")
        return outcome

    # ------------------------------------------------------------------
    # Strategies

    def _from_assignment(
        self, source: bytes, outcome: Outcome[SettingsModel]
    ) -> Optional[Tuple[Dict[str, Any], Optional[str]]]:
        tree = self._parser.parse(source)
        candidates = list(self._assignments(tree.root_node, source))
        if not candidates:
            return None

        chosen: Optional[Tuple[str, Node]] = None
        for key, value in candidates:
            if key in self._namespaces:
                chosen = (key, value)
                break
        if chosen is None:
            for key, value in candidates:
                if value.type == "object":
                    chosen = (key, value)
                    break
        if chosen is None:
            return None

        key, value = chosen
        if value.type == "array":
            try:
                return {key: literal_value(value, source)}, key
            except NonLiteralError:
                return None
        return self._object_values(value, source, outcome), key

    def _from_bare_literal(
        self, text: str, outcome: Outcome[SettingsModel]
    ) -> Optional[Tuple[Dict[str, Any], Optional[str]]]:
        body = text.strip().rstrip(";").strip()
        if not body.startswith("{"):
            return None
        source = f"({body})".encode("utf-8")
        tree = self._parser.parse(source)
        statements = named_children(tree.root_node)
        if len(statements) != 1 or statements[0].type != "expression_statement":
            return None
        expressions = named_children(statements[0])
        if not expressions:
            return None
        literal = unwrap(expressions[0])
        if literal.type != "object":
            return None
        return self._object_values(literal, source, outcome), None

    # ------------------------------------------------------------------
    # Helpers

    def _assignments(self, root: Node, source: bytes) -> Iterator[Tuple[str, Node]]:
        for statement in named_children(root):
            if statement.type != "expression_statement":
                continue
            for expression in named_children(statement):
                yield from self._assignment_targets(unwrap(expression), source)

    def _assignment_targets(self, expression: Node, source: bytes) -> Iterator[Tuple[str, Node]]:
        if expression.type == "sequence_expression":
            for part in named_children(expression):
                yield from self._assignment_targets(unwrap(part), source)
            return
        if expression.type != "assignment_expression":
            return
        left = expression.child_by_field_name("left")
        right = expression.child_by_field_name("right")
        if left is None or right is None or left.type != "member_expression":
            return
        prop = left.child_by_field_name("property")
        if prop is None:
            return
        right = unwrap(right)
        if right.type == "assignment_expression":
            yield from self._assignment_targets(right, source)
            return
        if right.type in {"object", "array"}:
            yield node_text(prop, source), right

    def _object_values(
        self, node: Node, source: bytes, outcome: Outcome[SettingsModel]
    ) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for child in named_children(node):
            if child.type != "pair":
                outcome.warn(
                    DiagnosticKind.DEGRADED_PARSE,
                    "settings_key",
                    f"Skipped non-literal manifest entry: {child.type}",
                )
                continue
            key_node = child.child_by_field_name("key")
            value_node = child.child_by_field_name("value")
            key = property_key(key_node, source) if key_node is not None else None
            if key is None or value_node is None:
                outcome.warn(
                    DiagnosticKind.DEGRADED_PARSE,
                    "settings_key",
                    "Skipped manifest entry with a computed key",
                )
                continue
            try:
                values[key] = literal_value(value_node, source)
            except NonLiteralError as exc:
                outcome.warn(
                    DiagnosticKind.DEGRADED_PARSE,
                    "settings_key",
                    f"Manifest key '{key}' holds a non-literal value ({exc})",
                    subject=key,
                )
        return values

    def _dictionary(self, values: Dict[str, Any], outcome: Outcome[SettingsModel]) -> Tuple[str, ...]:
        for key in self._dictionary_keys:
            entries = values.get(key)
            if entries is None:
                continue
            if isinstance(entries, list) and all(isinstance(item, str) for item in entries):
                return tuple(entries)
            outcome.warn(
                DiagnosticKind.DEGRADED_PARSE,
                "settings_key",
                f"Manifest key '{key}' is not a list of identifiers",
                subject=key,
            )
        return ()


def decode_manifest(
    text: str,
    layout: BuildLayout,
    *,
    namespaces: Sequence[str] = DEFAULT_SETTINGS_NAMESPACES,
    dictionary_keys: Sequence[str] = DEFAULT_DICTIONARY_KEYS,
) -> Outcome[SettingsModel]:
    """Convenience wrapper around ManifestDecoder."""
    decoder = ManifestDecoder(namespaces=namespaces, dictionary_keys=dictionary_keys)
    return decoder.decode(text, layout)


__all__ = ["ManifestDecoder", "decode_manifest"]
