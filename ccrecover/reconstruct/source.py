"""Per-module source reconstruction from the recovered module graph."""

from __future__ import annotations

from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set, Tuple

from tree_sitter import Node

from .components import DECORATOR_ORDER, ComponentBuilder
from .imports import ImportPlanner
from .rewriter import (
    EditBuffer,
    flatten_sequence,
    is_identifier_name,
    require_specifier,
    same_node,
    statement_expressions,
)
from ..analyzers.base import (
    call_arguments,
    callee_text,
    declares,
    is_function,
    named_children,
    node_text,
    safe_identifier,
    string_value,
    unwrap,
    walk,
)
from ..analyzers.modules import export_name, iter_require_calls
from ..config import DEFAULT_COMPONENT_CALLEES
from ..identifiers import IdentifierResolver, is_compressed
from ..logging import get_logger
from ..models import DiagnosticKind, ModuleGraph, ModuleRecord, Outcome, SourceUnit

logger = get_logger("reconstruct")

_DROPPED_CALLEES = frozenset({"cc._RF.push", "cc._RF.pop"})
_DECLARATIONS = frozenset({"variable_declaration", "lexical_declaration"})
_EXPORT_TARGETS = frozenset({"member_expression", "subscript_expression"})
_WRITES = frozenset({"assignment_expression", "augmented_assignment_expression"})
# Declaring locals this short are treated as minifier output.
_MINIFIED_NAME_LENGTH = 2


@dataclass
class _Action:
    """One emitted piece of the module body, in document order."""

    kind: str
    node: Optional[Node] = None
    name: Optional[str] = None
    declarators: Tuple[Node, ...] = ()
    export_default: bool = False


class SourceReconstructor:
    """Rebuilds TypeScript component sources from a ModuleGraph."""

    def __init__(
        self,
        graph: ModuleGraph,
        resolver: IdentifierResolver | None = None,
        *,
        scripts_dir: str = "assets/scripts",
        component_callees: Sequence[str] = DEFAULT_COMPONENT_CALLEES,
        extension: str = ".ts",
    ) -> None:
        self.graph = graph
        self.resolver = resolver or IdentifierResolver()
        self.scripts_dir = scripts_dir.strip("/")
        self.component_callees = tuple(component_callees)
        self.extension = extension

    def unit_path(self, record: ModuleRecord) -> str:
        filename = f"{record.name}{self.extension}"
        return f"{self.scripts_dir}/{filename}" if self.scripts_dir else filename

    def reconstruct(self, record: ModuleRecord) -> Outcome[SourceUnit]:
        return _ModuleRewriter(self, record).run()

    def reconstruct_all(self, workers: int = 1) -> Outcome[List[SourceUnit]]:
        """Reconstruct every module; results and diagnostics keep graph order."""
        records = list(self.graph.records)
        if workers > 1 and len(records) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                outcomes = list(executor.map(self.reconstruct, records))
        else:
            outcomes = [self.reconstruct(record) for record in records]

        combined: Outcome[List[SourceUnit]] = Outcome([])
        for outcome in outcomes:
            combined.value.append(outcome.value)
            combined.diagnostics.extend(outcome.diagnostics)
        logger.debug("Reconstructed %d source units", len(combined.value))
        return combined


class _ModuleRewriter:
    """Single-use rewriter for one module factory."""

    def __init__(self, owner: SourceReconstructor, record: ModuleRecord) -> None:
        self._owner = owner
        self._record = record
        self._source = record.source
        self._buffer = EditBuffer(record.source)
        self._outcome: Outcome[SourceUnit] = Outcome(
            SourceUnit(module_id=record.module_id, path=owner.unit_path(record), text="")
        )
        self._taken = self._identifiers()
        self._imports = ImportPlanner(record, owner.graph, self._buffer, self._taken)
        self._components = ComponentBuilder(
            self._buffer, owner.component_callees, self._outcome, record.module_id
        )
        self._claimed: Set[Tuple[int, int]] = set()
        self._export_counts, self._export_reads = self._scan_exports()

    def run(self) -> Outcome[SourceUnit]:
        self._canonicalize_identifiers()
        actions = self._plan()
        self._hoist_inline_requires()
        self._assign_default_export(actions)
        self._warn_unhandled_components(actions)

        body = [text for text in (self._emit(action) for action in actions) if text]
        sections: List[str] = [self._header()]
        imports = self._imports.lines()
        if imports:
            sections.append("\n".join(imports))
        if self._components.decorators:
            names = [name for name in DECORATOR_ORDER if name in self._components.decorators]
            sections.append("const { " + ", ".join(names) + " } = cc._decorator;")
        if body:
            sections.append("\n".join(body))

        text = "\n\n".join(sections).rstrip() + "\n"
        self._outcome.value = SourceUnit(
            module_id=self._record.module_id,
            path=self._outcome.value.path,
            text=text,
        )
        return self._outcome

    # ------------------------------------------------------------------
    # Planning

    def _plan(self) -> List[_Action]:
        body = self._record.node.child_by_field_name("body")
        if body is None:
            return []
        if body.type != "statement_block":
            # Arrow factory with an expression body.
            planned = (self._plan_expression(part) for part in flatten_sequence(body))
            return [action for action in planned if action.kind != "drop"]

        actions: List[_Action] = []
        for statement in body.named_children:
            if statement.type in _DECLARATIONS:
                actions.extend(self._plan_declaration(statement))
            elif statement.type == "expression_statement":
                parts = [self._plan_expression(part) for part in statement_expressions(statement)]
                if parts and all(part.kind == "expr" for part in parts):
                    actions.append(_Action("text", statement))
                else:
                    actions.extend(part for part in parts if part.kind != "drop")
            else:
                actions.append(_Action("text", statement))
        return actions

    def _plan_declaration(self, statement: Node) -> List[_Action]:
        keyword = statement.children[0].type if statement.children else "var"
        actions: List[_Action] = []
        kept: List[Node] = []
        changed = False
        for declarator in named_children(statement):
            if declarator.type != "variable_declarator":
                kept.append(declarator)
                continue
            name_node = declarator.child_by_field_name("name")
            value_node = declarator.child_by_field_name("value")
            value = unwrap(value_node) if value_node is not None else None
            if name_node is None or value is None or name_node.type != "identifier":
                kept.append(declarator)
                continue
            local = node_text(name_node, self._source)
            spec = require_specifier(value, self._record.require_param, self._source)
            if spec is not None:
                self._claim(value)
                self._imports.bind(value, spec, local, name_node)
                changed = True
                continue
            if self._components.is_component_call(value):
                if kept:
                    actions.append(_Action("declaration", name=keyword, declarators=tuple(kept)))
                    kept = []
                actions.append(_Action("component", value, name=self._component_name(local, value)))
                changed = True
                continue
            kept.append(declarator)
        if not changed:
            return [_Action("text", statement)]
        if kept:
            actions.append(_Action("declaration", name=keyword, declarators=tuple(kept)))
        return actions

    def _plan_expression(self, expression: Node) -> _Action:
        expression = unwrap(expression)
        if expression.type == "string" and string_value(expression, self._source) == "use strict":
            return _Action("drop")
        if expression.type == "call_expression":
            callee = callee_text(expression, self._source)
            if callee in _DROPPED_CALLEES or self._is_esmodule_marker(expression):
                return _Action("drop")
            spec = require_specifier(expression, self._record.require_param, self._source)
            if spec is not None:
                self._claim(expression)
                self._imports.side_effect(expression, spec)
                return _Action("drop")
            if self._components.is_component_call(expression):
                return _Action("component", expression)
        if expression.type == "assignment_expression":
            return self._plan_assignment(expression)
        return _Action("expr", expression)

    def _plan_assignment(self, expression: Node) -> _Action:
        left = expression.child_by_field_name("left")
        right_node = expression.child_by_field_name("right")
        if left is None or right_node is None:
            return _Action("expr", expression)
        right = unwrap(right_node)
        name = export_name(left, self._source, self._record.module_param, self._record.exports_param)
        if name == "__esModule" or (name is not None and _is_void(right, self._source)):
            return _Action("drop")
        if name == "default":
            if self._components.is_component_call(right):
                return _Action("component", right, export_default=True)
            return _Action("export_default", right)
        if name is not None:
            return self._plan_named_export(expression, name, right)
        if left.type == "identifier" and self._components.is_component_call(right):
            local = node_text(left, self._source)
            return _Action("component", right, name=self._component_name(local, right))
        return _Action("expr", expression)

    def _plan_named_export(self, expression: Node, name: str, right: Node) -> _Action:
        """``exports.x = e`` becomes an ES export when ``x`` is written exactly once.

        Reads of ``exports.x`` elsewhere in the factory are rewritten to the bare
        binding, so nothing refers to ``exports`` once the module is emitted.
        """
        if self._export_counts[name] != 1 or not is_identifier_name(name):
            return _Action("expr", expression)
        reads = self._export_reads.get(name, [])
        if any(right.start_byte <= read.start_byte and read.end_byte <= right.end_byte for read in reads):
            return _Action("expr", expression)
        if any(self._shadowed(read, name) for read in reads):
            return _Action("expr", expression)

        if right.type == "identifier" and node_text(right, self._source) == name:
            kind = "export_local"
        elif name not in self._taken:
            kind = "export_const"
        else:
            return _Action("expr", expression)
        for read in reads:
            self._buffer.replace(read, name)
        return _Action(kind, right, name=name)

    def _component_name(self, local: str, call: Node) -> str:
        """Class name for a component bound to ``local``.

        Minified locals give way to the registered script name, then the
        descriptor ``name``, then the module name; every reference to the
        local is renamed to match.
        """
        if len(local) > _MINIFIED_NAME_LENGTH:
            return local
        candidates = (self._record.script_name, self._components.declared_name(call), self._record.name)
        for candidate in candidates:
            if not candidate:
                continue
            name = safe_identifier(candidate)
            if len(name) <= _MINIFIED_NAME_LENGTH or not is_identifier_name(name) or name in self._taken:
                continue
            self._rename_local(local, name)
            self._taken.add(name)
            logger.debug("Renamed component %s to %s in %s", local, name, self._record.module_id)
            return name
        return local

    def _rename_local(self, local: str, name: str) -> None:
        def _shadows(node: Node) -> bool:
            return is_function(node) and declares(node, local, self._source)

        for node in walk(self._record.node, skip=_shadows):
            if node.type not in {"identifier", "shorthand_property_identifier"}:
                continue
            if node_text(node, self._source) != local:
                continue
            if node.type == "identifier":
                self._buffer.replace(node, name)
            else:
                self._buffer.replace(node, f"{local}: {name}")

    def _assign_default_export(self, actions: List[_Action]) -> None:
        has_default = any(
            action.kind == "export_default" or (action.kind == "component" and action.export_default)
            for action in actions
        )
        if has_default:
            return
        for action in actions:
            if action.kind == "component":
                action.export_default = True
                return

    # ------------------------------------------------------------------
    # Rewrites registered before emission

    def _canonicalize_identifiers(self) -> None:
        resolver = self._owner.resolver
        for node in walk(self._record.node):
            if node.type != "string":
                continue
            parent = node.parent
            if parent is not None and parent.type == "pair":
                key = parent.child_by_field_name("key")
                if key is not None and key.start_byte == node.start_byte:
                    continue
            value = string_value(node, self._source)
            if not is_compressed(value) or not resolver.contains(value):
                continue
            quote = node_text(node, self._source)[:1] or '"'
            self._buffer.replace(node, f"{quote}{resolver.expand(value)}{quote}")

    def _hoist_inline_requires(self) -> None:
        require_name = self._record.require_param
        if require_name is None:
            return
        for call, spec in iter_require_calls(self._record.node, require_name, self._source):
            if (call.start_byte, call.end_byte) in self._claimed:
                continue
            self._imports.inline(call, spec)

    def _warn_unhandled_components(self, actions: List[_Action]) -> None:
        handled = [
            (action.node.start_byte, action.node.end_byte)
            for action in actions
            if action.kind == "component" and action.node is not None
        ]
        for node in walk(self._record.node):
            if node.type != "call_expression" or not self._components.is_component_call(node):
                continue
            if any(start <= node.start_byte and node.end_byte <= end for start, end in handled):
                continue
            self._outcome.warn(
                DiagnosticKind.DEGRADED_PARSE,
                "component_shape",
                "Component definition outside statement level kept as-is",
                subject=self._record.module_id,
            )

    # ------------------------------------------------------------------
    # Emission

    def _emit(self, action: _Action) -> str:
        render = self._buffer.render
        if action.kind == "text" and action.node is not None:
            return render(action.node)
        if action.kind == "expr" and action.node is not None:
            return render(action.node) + ";"
        if action.kind == "declaration":
            return f"{action.name} " + ", ".join(render(node) for node in action.declarators) + ";"
        if action.kind == "export_default" and action.node is not None:
            return f"export default {render(action.node)};"
        if action.kind == "export_const" and action.node is not None:
            return f"export const {action.name} = {render(action.node)};"
        if action.kind == "export_local":
            return f"export {{ {action.name} }};"
        if action.kind == "component" and action.node is not None:
            built = self._components.build(
                action.node,
                class_name=action.name,
                fallback_name=self._record.name,
                export_default=action.export_default,
            )
            if built is not None:
                return built
            text = render(action.node)
            if action.name:
                return f"var {action.name} = {text};"
            return f"export default {text};" if action.export_default else f"{text};"
        return ""

    def _header(self) -> str:
        lines = [f"// Recovered from module {self._record.module_id}"]
        if self._record.script_uuid:
            lines.append(f"// uuid: {self._record.script_uuid}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Helpers

    def _claim(self, node: Node) -> None:
        self._claimed.add((node.start_byte, node.end_byte))

    def _identifiers(self) -> Set[str]:
        names = set(self._record.params)
        for node in walk(self._record.node):
            if node.type == "identifier":
                names.add(node_text(node, self._source))
        return names

    def _scan_exports(self) -> Tuple[Counter, Dict[str, List[Node]]]:
        """Count the writes to each export and collect the expressions reading it back."""
        counts: Counter = Counter()
        reads: Dict[str, List[Node]] = {}
        module_name = self._record.module_param
        exports_name = self._record.exports_param
        bindings = [name for name in (module_name, exports_name) if name is not None]
        if not bindings:
            return counts, reads

        def _shadows(node: Node) -> bool:
            return is_function(node) and any(declares(node, name, self._source) for name in bindings)

        for node in walk(self._record.node, skip=_shadows):
            if node.type not in _EXPORT_TARGETS:
                continue
            name = export_name(node, self._source, module_name, exports_name)
            if name is None:
                continue
            parent = node.parent
            writes = parent is not None and parent.type in _WRITES
            if writes and same_node(parent.child_by_field_name("left"), node):
                right = parent.child_by_field_name("right")
                if right is None or _is_void(unwrap(right), self._source):
                    continue
                counts[name] += 1
            elif parent is not None and parent.type == "update_expression":
                counts[name] += 1
            else:
                reads.setdefault(name, []).append(node)
        return counts, reads

    def _shadowed(self, node: Node, name: str) -> bool:
        """True when a function between ``node`` and the factory rebinds ``name``."""
        current = node.parent
        while current is not None and not same_node(current, self._record.node):
            if is_function(current) and declares(current, name, self._source):
                return True
            current = current.parent
        return False

    def _is_esmodule_marker(self, call: Node) -> bool:
        if callee_text(call, self._source) != "Object.defineProperty":
            return False
        arguments = call_arguments(call)
        return (
            len(arguments) >= 2
            and arguments[1].type == "string"
            and string_value(arguments[1], self._source) == "__esModule"
        )


def _is_void(node: Node, source: bytes) -> bool:
    return node.type == "unary_expression" and node_text(node, source).startswith("void")


__all__ = ["SourceReconstructor"]
