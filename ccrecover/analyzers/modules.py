"""Module graph extraction from the browserify-style script bundle."""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Set, Tuple

from tree_sitter import Node

from .base import (
    call_arguments,
    callee_text,
    create_parser,
    is_function,
    iter_scoped,
    named_children,
    node_text,
    parameter_names,
    property_key,
    safe_identifier,
    string_value,
    unwrap,
    walk,
)
from ..identifiers import IdentifierResolver, is_canonical
from ..logging import get_logger
from ..models import DiagnosticKind, ModuleGraph, ModuleRecord, Outcome

logger = get_logger("modules")

_SCRIPT_REGISTER = "cc._RF.push"
_SCRIPT_EXTENSIONS = (".js", ".ts")


def iter_require_calls(factory: Node, require_name: str, source: bytes) -> Iterator[Tuple[Node, str]]:
    """Yield ``(call, specifier)`` for every require call that sees the factory parameter."""
    for node in iter_scoped(factory, require_name, source):
        if node.type != "call_expression":
            continue
        function = node.child_by_field_name("function")
        if function is None or function.type != "identifier":
            continue
        if node_text(function, source) != require_name:
            continue
        arguments = call_arguments(node)
        if not arguments or arguments[0].type != "string":
            continue
        yield node, string_value(arguments[0], source)


def export_name(left: Node, source: bytes, module_name: Optional[str], exports_name: Optional[str]) -> Optional[str]:
    """Return the export written by an assignment target, if it writes one."""
    if left.type not in {"member_expression", "subscript_expression"}:
        return None
    target = left.child_by_field_name("object")
    prop = _member_name(left, source)
    if target is None or prop is None:
        return None
    target = unwrap(target)
    if target.type == "identifier":
        name = node_text(target, source)
        if exports_name is not None and name == exports_name:
            return prop
        if module_name is not None and name == module_name and prop == "exports":
            return "default"
        return None
    if _is_module_exports(target, source, module_name):
        return prop
    return None


def _member_name(node: Node, source: bytes) -> Optional[str]:
    if node.type == "member_expression":
        prop = node.child_by_field_name("property")
        return node_text(prop, source) if prop is not None else None
    index = node.child_by_field_name("index")
    if index is not None and index.type == "string":
        return string_value(index, source)
    return None


def _is_module_exports(node: Node, source: bytes, module_name: Optional[str]) -> bool:
    if module_name is None or node.type != "member_expression":
        return False
    target = node.child_by_field_name("object")
    return (
        target is not None
        and target.type == "identifier"
        and node_text(target, source) == module_name
        and _member_name(node, source) == "exports"
    )


class ModuleGraphExtractor:
    """Builds ModuleRecords from the module-factory registrations in a bundle."""

    def __init__(self, resolver: IdentifierResolver | None = None) -> None:
        self._resolver = resolver or IdentifierResolver()
        self._parser = create_parser()

    def extract(self, bundle: str | bytes) -> Outcome[ModuleGraph]:
        source = bundle.encode("utf-8") if isinstance(bundle, str) else bundle
        tree = self._parser.parse(source)
        outcome: Outcome[ModuleGraph] = Outcome(ModuleGraph())

        if tree.root_node.has_error:
            outcome.warn(
                DiagnosticKind.DEGRADED_PARSE,
                "bundle_syntax",
                "Bundle contains syntax the parser could not fully understand",
            )

        records: List[ModuleRecord] = []
        entries: List[str] = []
        used_names: Set[str] = set()
        seen_ids: Set[str] = set()
        for module_map, arguments in self._find_registrations(tree.root_node):
            if len(arguments) > 2 and arguments[2].type == "array":
                for item in named_children(arguments[2]):
                    key = property_key(item, source)
                    if key is not None and key not in entries:
                        entries.append(key)
            for pair in named_children(module_map):
                record = self._build_record(pair, source, used_names, outcome)
                if record is None:
                    continue
                if record.module_id in seen_ids:
                    outcome.warn(
                        DiagnosticKind.DEGRADED_PARSE,
                        "duplicate_module",
                        f"Module '{record.module_id}' registered twice; keeping the first",
                        subject=record.module_id,
                    )
                    continue
                seen_ids.add(record.module_id)
                records.append(record)

        if not records:
            outcome.warn(
                DiagnosticKind.DEGRADED_PARSE,
                "no_modules",
                "No module registrations found in the bundle",
            )

        # Records hold nodes of this tree; the graph keeps it alive.
        outcome.value = ModuleGraph.build(records, entries, syntax=tree)
        logger.debug("Extracted %d modules from bundle", len(records))
        return outcome

    # ------------------------------------------------------------------
    # Registration discovery

    def _find_registrations(self, root: Node) -> Iterator[Tuple[Node, List[Node]]]:
        stack = [root]
        while stack:
            node = stack.pop()
            if node.type == "call_expression":
                arguments = call_arguments(node)
                if arguments and arguments[0].type == "object" and self._is_module_map(arguments[0]):
                    yield arguments[0], arguments
                    continue
            stack.extend(reversed(node.named_children))

    @staticmethod
    def _is_module_map(node: Node) -> bool:
        pairs = named_children(node)
        if not pairs:
            return False
        for pair in pairs:
            if pair.type != "pair":
                return False
            value = pair.child_by_field_name("value")
            if value is None or value.type != "array":
                return False
            elements = named_children(value)
            if not elements or not is_function(elements[0]):
                return False
        return True

    # ------------------------------------------------------------------
    # Per-module analysis

    def _build_record(
        self,
        pair: Node,
        source: bytes,
        used_names: Set[str],
        outcome: Outcome[ModuleGraph],
    ) -> Optional[ModuleRecord]:
        key_node = pair.child_by_field_name("key")
        value_node = pair.child_by_field_name("value")
        module_id = property_key(key_node, source) if key_node is not None else None
        if module_id is None or value_node is None:
            outcome.warn(
                DiagnosticKind.DEGRADED_PARSE,
                "module_key",
                "Skipped module registration with a computed key",
            )
            return None

        elements = named_children(value_node)
        factory = elements[0]
        dependency_map = self._dependency_map(elements[1], source) if len(elements) > 1 else {}
        params = tuple(parameter_names(factory, source))

        requires: List[Tuple[str, str]] = []
        if params:
            seen_specs: Set[str] = set()
            for _, spec in iter_require_calls(factory, params[0], source):
                if spec in seen_specs:
                    continue
                seen_specs.add(spec)
                target = dependency_map.get(spec) or spec
                requires.append((spec, target))

        dependencies: List[str] = []
        for _, target in requires:
            if target not in dependencies:
                dependencies.append(target)

        module_name = params[1] if len(params) > 1 else None
        exports_name = params[2] if len(params) > 2 else None
        exports = self._exports(factory, source, module_name, exports_name)

        raw_uuid, script_name = self._script_registration(factory, source)
        script_uuid: Optional[str] = None
        if raw_uuid is not None:
            expanded = self._resolver.expand(raw_uuid)
            if is_canonical(expanded):
                script_uuid = expanded
            else:
                outcome.warn(
                    DiagnosticKind.UNRESOLVED_REFERENCE,
                    "script_uuid",
                    f"Script identifier '{raw_uuid}' of module '{module_id}' is not a uuid",
                    subject=module_id,
                )

        return ModuleRecord(
            module_id=module_id,
            name=self._unique_name(module_id, script_name, used_names),
            node=factory,
            source=source,
            params=params,
            requires=tuple(requires),
            dependencies=tuple(dependencies),
            exports=exports,
            script_uuid=script_uuid,
            script_name=script_name,
            identifiers=self._embedded_identifiers(factory, source, raw_uuid),
        )

    @staticmethod
    def _dependency_map(node: Node, source: bytes) -> Dict[str, Optional[str]]:
        mapping: Dict[str, Optional[str]] = {}
        if node.type != "object":
            return mapping
        for pair in named_children(node):
            if pair.type != "pair":
                continue
            key_node = pair.child_by_field_name("key")
            value_node = pair.child_by_field_name("value")
            spec = property_key(key_node, source) if key_node is not None else None
            if spec is None or value_node is None:
                continue
            value_node = unwrap(value_node)
            if value_node.type in {"string", "number"}:
                mapping[spec] = property_key(value_node, source)
            else:
                mapping[spec] = None
        return mapping

    @staticmethod
    def _exports(
        factory: Node,
        source: bytes,
        module_name: Optional[str],
        exports_name: Optional[str],
    ) -> Tuple[str, ...]:
        found: List[Tuple[int, str]] = []
        for binding in (module_name, exports_name):
            if binding is None:
                continue
            for node in iter_scoped(factory, binding, source):
                name: Optional[str] = None
                if node.type == "assignment_expression":
                    left = node.child_by_field_name("left")
                    if left is not None:
                        name = export_name(left, source, module_name, exports_name)
                elif node.type == "call_expression" and callee_text(node, source) == "Object.defineProperty":
                    arguments = call_arguments(node)
                    if len(arguments) >= 2 and arguments[1].type == "string":
                        target = unwrap(arguments[0])
                        is_exports = (
                            target.type == "identifier" and node_text(target, source) == exports_name
                        ) or _is_module_exports(target, source, module_name)
                        if is_exports:
                            name = string_value(arguments[1], source)
                if name is not None and name != "__esModule":
                    found.append((node.start_byte, name))

        names: List[str] = []
        for _, name in sorted(found):
            if name not in names:
                names.append(name)
        return tuple(names) if names else ("default",)

    @staticmethod
    def _script_registration(factory: Node, source: bytes) -> Tuple[Optional[str], Optional[str]]:
        for node in walk(factory):
            if node.type != "call_expression" or callee_text(node, source) != _SCRIPT_REGISTER:
                continue
            arguments = call_arguments(node)
            if len(arguments) < 2 or arguments[1].type != "string":
                continue
            name = None
            if len(arguments) > 2 and arguments[2].type == "string":
                name = string_value(arguments[2], source)
            return string_value(arguments[1], source), name
        return None, None

    def _embedded_identifiers(self, factory: Node, source: bytes, script_uuid: Optional[str]) -> Tuple[str, ...]:
        identifiers: List[str] = []
        for node in walk(factory):
            if node.type != "string":
                continue
            value = string_value(node, source)
            if value == script_uuid:
                continue
            if is_canonical(value):
                canonical = value
            elif self._resolver.contains(value):
                canonical = self._resolver.expand(value)
            else:
                continue
            if canonical not in identifiers:
                identifiers.append(canonical)
        return tuple(identifiers)

    @staticmethod
    def _unique_name(module_id: str, script_name: Optional[str], used: Set[str]) -> str:
        if script_name:
            base = safe_identifier(script_name)
        else:
            stem = module_id.rsplit("/", 1)[-1]
            for extension in _SCRIPT_EXTENSIONS:
                if stem.endswith(extension):
                    stem = stem[: -len(extension)]
            base = f"module_{stem}" if stem.isdigit() else safe_identifier(stem or "module")
        name = base
        counter = 2
        while name in used:
            name = f"{base}_{counter}"
            counter += 1
        used.add(name)
        return name


__all__ = ["ModuleGraphExtractor", "export_name", "iter_require_calls"]
