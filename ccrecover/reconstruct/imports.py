"""Import planning for require() sites found in a module factory."""

from __future__ import annotations

from typing import Dict, List, Optional, Set, Tuple

from tree_sitter import Node

from .rewriter import EditBuffer, is_identifier_name, same_node
from ..analyzers.base import iter_scoped, safe_identifier
from ..models import ModuleGraph, ModuleRecord


class ImportPlanner:
    """Turns require() call sites into TypeScript import declarations."""

    def __init__(
        self,
        record: ModuleRecord,
        graph: ModuleGraph,
        buffer: EditBuffer,
        taken: Set[str],
    ) -> None:
        self._record = record
        self._graph = graph
        self._buffer = buffer
        self._taken = taken
        self._entries: List[Tuple[int, str]] = []
        self._inline_locals: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Targets

    def target(self, spec: str) -> Optional[ModuleRecord]:
        target_id = self._record.require_map.get(spec, spec)
        return self._graph.get(target_id)

    def module_path(self, spec: str) -> str:
        target = self.target(spec)
        if target is None:
            return spec
        return f"./{target.name}"

    # ------------------------------------------------------------------
    # Call sites

    def side_effect(self, call: Node, spec: str) -> None:
        self._add(call, f'import "{self.module_path(spec)}";')

    def bind(self, call: Node, spec: str, local: str, declared: Node) -> None:
        """Import for ``var local = require(spec)``; the declarator itself is dropped."""
        path = self.module_path(spec)
        target = self.target(spec)
        if target is None:
            self._add(call, f'import * as {local} from "{path}";')
            return

        uses = self._qualified_uses(local, declared, target)
        if uses:
            used: List[str] = []
            for _, name in uses:
                if name not in used:
                    used.append(name)
            named = [name for name in used if name != "default"]
            if all(is_identifier_name(name) and name not in self._taken for name in named):
                for member, name in uses:
                    self._buffer.replace(member, local if name == "default" else name)
                self._taken.update(named)
                clause: List[str] = []
                if "default" in used:
                    clause.append(local)
                if named:
                    clause.append("{ " + ", ".join(named) + " }")
                self._add(call, f'import {", ".join(clause)} from "{path}";')
                return

        if target.exports == ("default",):
            self._add(call, f'import {local} from "{path}";')
        else:
            self._add(call, f'import * as {local} from "{path}";')

    def inline(self, call: Node, spec: str) -> None:
        """Hoist a require() used inside an expression to a generated import local."""
        local = self._inline_locals.get(spec)
        if local is None:
            target = self.target(spec)
            if target is not None:
                base = target.name
            else:
                base = spec.rstrip("/").rsplit("/", 1)[-1].split(".", 1)[0] or "external"
            local = self._fresh(safe_identifier(base))
            self._inline_locals[spec] = local
            path = self.module_path(spec)
            if target is not None and target.exports == ("default",):
                self._add(call, f'import {local} from "{path}";')
            else:
                self._add(call, f'import * as {local} from "{path}";')
        self._buffer.replace(call, local)

    def lines(self) -> List[str]:
        result: List[str] = []
        for _, text in sorted(self._entries, key=lambda entry: entry[0]):
            if text not in result:
                result.append(text)
        return result

    # ------------------------------------------------------------------
    # Helpers

    def _add(self, call: Node, text: str) -> None:
        self._entries.append((call.start_byte, text))

    def _fresh(self, base: str) -> str:
        candidate = base if is_identifier_name(base) else f"_{base}"
        if candidate in self._taken:
            candidate = f"_{base}"
        name = candidate
        counter = 2
        while name in self._taken:
            name = f"{candidate}_{counter}"
            counter += 1
        self._taken.add(name)
        return name

    def _qualified_uses(
        self, local: str, declared: Node, target: ModuleRecord
    ) -> Optional[List[Tuple[Node, str]]]:
        """``(member, name)`` for every use of ``local``, or None when a use is not ``local.export``."""
        uses: List[Tuple[Node, str]] = []
        for node in iter_scoped(self._record.node, local, self._buffer.source):
            if node.type not in {"identifier", "shorthand_property_identifier"}:
                continue
            if self._buffer.text(node) != local or same_node(node, declared):
                continue
            if node.type != "identifier":
                return None
            parent = node.parent
            if parent is None or parent.type != "member_expression":
                return None
            if not same_node(parent.child_by_field_name("object"), node):
                return None
            prop = parent.child_by_field_name("property")
            if prop is None or prop.type != "property_identifier":
                return None
            name = self._buffer.text(prop)
            if name not in target.exports or _is_write_target(parent):
                return None
            uses.append((parent, name))
        return uses or None


def _is_write_target(node: Node) -> bool:
    parent = node.parent
    if parent is None:
        return False
    if parent.type in {"assignment_expression", "augmented_assignment_expression"}:
        return same_node(parent.child_by_field_name("left"), node)
    return parent.type == "update_expression"


__all__ = ["ImportPlanner"]
