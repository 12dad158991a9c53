"""Rewrite ``cc.Class({...})`` component definitions into decorated classes."""

from __future__ import annotations

import json
from typing import Dict, List, Optional, Sequence

from tree_sitter import Node

from .rewriter import EditBuffer, indent_block
from ..analyzers.base import (
    NonLiteralError,
    call_arguments,
    callee_text,
    is_function,
    literal_value,
    named_children,
    property_key,
    safe_identifier,
    string_value,
    unwrap,
    walk,
)
from ..models import DiagnosticKind, Outcome

DECORATOR_ORDER = (
    "ccclass",
    "property",
    "mixins",
    "executeInEditMode",
    "requireComponent",
    "menu",
    "executionOrder",
    "disallowMultiple",
    "playOnFocus",
    "inspector",
    "help",
)
_FLAG_DECORATORS = frozenset({"executeInEditMode", "disallowMultiple", "playOnFocus"})
_ARGUMENT_DECORATORS = frozenset({"requireComponent", "menu", "executionOrder", "inspector", "help"})

# Primitive attribute types: (TypeScript type, initial value).
PRIMITIVE_TYPES = {
    "cc.Integer": ("number", "0"),
    "cc.Float": ("number", "0"),
    "cc.String": ("string", '""'),
    "cc.Boolean": ("boolean", "false"),
}
_DESCRIPTOR_SLOTS = frozenset({"default", "type", "get", "set"})
_PLAIN_FUNCTIONS = frozenset({"function", "function_expression", "generator_function"})


class ComponentBuilder:
    """Builds TypeScript class text for one module's component definitions."""

    def __init__(
        self,
        buffer: EditBuffer,
        callees: Sequence[str],
        outcome: Outcome,
        subject: str,
    ) -> None:
        self._buffer = buffer
        self._callees = frozenset(callees)
        self._outcome = outcome
        self._subject = subject
        self.decorators: set[str] = set()

    def is_component_call(self, node: Node) -> bool:
        node = unwrap(node)
        return node.type == "call_expression" and callee_text(node, self._buffer.source) in self._callees

    def declared_name(self, call: Node) -> Optional[str]:
        """The ``name`` string of the descriptor passed to ``call``, if any."""
        arguments = call_arguments(call)
        descriptor = unwrap(arguments[0]) if len(arguments) == 1 else None
        if descriptor is None or descriptor.type != "object":
            return None
        for key, value in self._entries(descriptor):
            if key == "name" and value is not None and unwrap(value).type == "string":
                return string_value(unwrap(value), self._buffer.source)
        return None

    def build(
        self,
        call: Node,
        *,
        class_name: Optional[str],
        fallback_name: str,
        export_default: bool,
    ) -> Optional[str]:
        """Return the class declaration, or None when the call is not a plain descriptor."""
        arguments = call_arguments(call)
        descriptor = unwrap(arguments[0]) if len(arguments) == 1 else None
        if descriptor is None or descriptor.type != "object":
            self._warn("Component definition does not take a single object literal; kept as-is")
            return None

        self._warn_nested(descriptor)
        entries = self._entries(descriptor)

        explicit_name = self.declared_name(call)
        base: Optional[str] = None
        for key, value in entries:
            if key == "extends" and value is not None:
                base = self._buffer.render(unwrap(value))

        name = class_name or (safe_identifier(explicit_name) if explicit_name else fallback_name)
        decorators: Dict[str, str] = {}
        if explicit_name and explicit_name != name:
            decorators["ccclass"] = f"@ccclass({json.dumps(explicit_name)})"
        else:
            decorators["ccclass"] = "@ccclass"

        members: List[str] = []
        for child in named_children(descriptor):
            if child.type == "method_definition":
                members.append(self._method_definition(child))
                continue
            if child.type != "pair":
                members.append(self._preserved(child, "Component entry is not a plain key"))
                continue
            key_node = child.child_by_field_name("key")
            value_node = child.child_by_field_name("value")
            key = property_key(key_node, self._buffer.source) if key_node is not None else None
            if key is None or value_node is None:
                members.append(self._preserved(child, "Component entry has a computed key"))
                continue
            value = unwrap(value_node)
            if key in {"name", "extends"}:
                continue
            if key == "mixins":
                items = named_children(value) if value.type == "array" else [value]
                decorators["mixins"] = "@mixins(" + ", ".join(self._buffer.render(item) for item in items) + ")"
            elif key == "editor":
                self._editor(value, decorators, members)
            elif key == "statics":
                members.extend(self._statics(value))
            elif key == "properties":
                members.extend(self._properties(value))
            elif key == "ctor" and value.type in _PLAIN_FUNCTIONS:
                members.append(self._constructor(value, base is not None))
            elif value.type in _PLAIN_FUNCTIONS:
                members.append(self._method(key, value))
            else:
                members.append(f"{_member_name(key)} = {self._buffer.render(value)};")

        self.decorators.update(decorators)
        if any(member.startswith("@property") or "\n@property" in member for member in members):
            self.decorators.add("property")

        header = "export default class" if export_default else "class"
        extends = f" extends {base}" if base else ""
        lines = [decorators[key] for key in DECORATOR_ORDER if key in decorators]
        lines.append(f"{header} {name}{extends} {{")
        if members:
            lines.append("\n\n".join(indent_block(member) for member in members))
        lines.append("}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Descriptor sections

    def _entries(self, descriptor: Node) -> List[tuple[str, Optional[Node]]]:
        entries: List[tuple[str, Optional[Node]]] = []
        for child in named_children(descriptor):
            if child.type != "pair":
                continue
            key_node = child.child_by_field_name("key")
            key = property_key(key_node, self._buffer.source) if key_node is not None else None
            if key is not None:
                entries.append((key, child.child_by_field_name("value")))
        return entries

    def _editor(self, value: Node, decorators: Dict[str, str], members: List[str]) -> None:
        if value.type != "object":
            members.append(self._preserved(value, "Editor options are not an object literal"))
            return
        for child in named_children(value):
            key_node = child.child_by_field_name("key") if child.type == "pair" else None
            option = property_key(key_node, self._buffer.source) if key_node is not None else None
            option_value = child.child_by_field_name("value") if child.type == "pair" else None
            if option is None or option_value is None:
                members.append(self._preserved(child, "Unsupported editor entry"))
                continue
            option_value = unwrap(option_value)
            if option in _FLAG_DECORATORS:
                try:
                    enabled = literal_value(option_value, self._buffer.source)
                except NonLiteralError:
                    self._warn(f"Editor flag '{option}' is not a literal; dropped")
                    continue
                if enabled:
                    decorators[option] = f"@{option}"
            elif option in _ARGUMENT_DECORATORS:
                decorators[option] = f"@{option}({self._buffer.render(option_value)})"
            else:
                self._warn(f"Unsupported editor option '{option}' dropped")

    def _statics(self, value: Node) -> List[str]:
        if value.type != "object":
            return [self._preserved(value, "Statics are not an object literal")]
        members: List[str] = []
        for child in named_children(value):
            if child.type == "method_definition":
                members.append(f"static {self._method_definition(child)}")
                continue
            key_node = child.child_by_field_name("key") if child.type == "pair" else None
            key = property_key(key_node, self._buffer.source) if key_node is not None else None
            member_value = child.child_by_field_name("value") if child.type == "pair" else None
            if key is None or member_value is None:
                members.append(self._preserved(child, "Unsupported statics entry"))
                continue
            member_value = unwrap(member_value)
            if member_value.type in _PLAIN_FUNCTIONS:
                members.append(f"static {self._method(key, member_value)}")
            else:
                members.append(f"static {_member_name(key)} = {self._buffer.render(member_value)};")
        return members

    def _properties(self, value: Node) -> List[str]:
        block = self._properties_object(value)
        if block is None:
            return [self._preserved(value, "Properties are not an object literal")]
        members: List[str] = []
        for child in named_children(block):
            key_node = child.child_by_field_name("key") if child.type == "pair" else None
            key = property_key(key_node, self._buffer.source) if key_node is not None else None
            prop_value = child.child_by_field_name("value") if child.type == "pair" else None
            if key is None or prop_value is None:
                members.append(self._preserved(child, "Unsupported property entry"))
                continue
            members.append(self._property(key, unwrap(prop_value)))
        return members

    @staticmethod
    def _properties_object(value: Node) -> Optional[Node]:
        if value.type == "object":
            return value
        if not is_function(value):
            return None
        body = value.child_by_field_name("body")
        if body is None:
            return None
        body = unwrap(body)
        if body.type == "object":
            return body
        if body.type != "statement_block":
            return None
        statements = named_children(body)
        if len(statements) != 1 or statements[0].type != "return_statement":
            return None
        returned = named_children(statements[0])
        if len(returned) == 1 and unwrap(returned[0]).type == "object":
            return unwrap(returned[0])
        return None

    # ------------------------------------------------------------------
    # Properties

    def _property(self, key: str, value: Node) -> str:
        name = _member_name(key)
        if value.type == "object":
            return self._descriptor_property(name, value)
        if value.type == "array":
            elements = named_children(value)
            if len(elements) == 1 and _is_type_ref(elements[0], self._buffer):
                element = self._buffer.render(elements[0])
                return f"@property([{element}])\n{name}: {self._ts_type(elements[0])}[] = [];"
            return f"@property\n{name} = {self._buffer.render(value)};"
        if _is_type_ref(value, self._buffer):
            type_text = self._buffer.render(value)
            primitive = PRIMITIVE_TYPES.get(_compact(type_text))
            if primitive is not None:
                return f"@property({type_text})\n{name}: {primitive[0]} = {primitive[1]};"
            return f"@property({type_text})\n{name}: {type_text} = null;"
        annotation = _literal_annotation(value)
        return f"@property\n{name}{annotation} = {self._buffer.render(value)};"

    def _descriptor_property(self, name: str, descriptor: Node) -> str:
        slots: Dict[str, Node] = {}
        options: List[str] = []
        notes: List[str] = []
        for child in named_children(descriptor):
            if child.type == "method_definition":
                method_name = child.child_by_field_name("name")
                label = self._buffer.text(method_name) if method_name is not None else ""
                if label in {"get", "set"}:
                    slots[label] = child
                    continue
            key_node = child.child_by_field_name("key") if child.type == "pair" else None
            key = property_key(key_node, self._buffer.source) if key_node is not None else None
            slot_value = child.child_by_field_name("value") if child.type == "pair" else None
            if key is None or slot_value is None:
                notes.append(self._preserved(child, f"Unsupported attribute on property '{name}'"))
                continue
            slot_value = unwrap(slot_value)
            if key in _DESCRIPTOR_SLOTS:
                slots[key] = slot_value
            elif key == "notify":
                self._warn(f"Property '{name}' uses notify, which has no decorator form")
                notes.append("// notify: " + " ".join(self._buffer.render(slot_value).split()))
            else:
                options.append(f"{_member_name(key)}: {self._buffer.render(slot_value)}")

        type_node = slots.get("type")
        if type_node is not None:
            options.insert(0, f"type: {self._buffer.render(type_node)}")
        if not options:
            decorator = "@property"
        elif type_node is not None and len(options) == 1:
            decorator = f"@property({self._buffer.render(type_node)})"
        else:
            decorator = "@property({ " + ", ".join(options) + " })"

        lines = list(notes)
        lines.append(decorator)
        if "get" in slots or "set" in slots:
            for accessor in ("get", "set"):
                if accessor in slots:
                    lines.append(self._accessor(accessor, name, slots[accessor]))
            return "\n".join(lines)

        annotation = self._annotation(type_node, slots.get("default"))
        default = slots.get("default")
        if default is None:
            lines.append(f"{name}{annotation};")
        elif is_function(default):
            lines.append(f"{name}{annotation} = ({self._buffer.render(default)})();")
        else:
            lines.append(f"{name}{annotation} = {self._buffer.render(default)};")
        return "\n".join(lines)

    def _annotation(self, type_node: Optional[Node], default: Optional[Node]) -> str:
        if type_node is not None:
            if type_node.type == "array":
                elements = named_children(type_node)
                if len(elements) == 1 and _is_type_ref(elements[0], self._buffer):
                    return f": {self._ts_type(elements[0])}[]"
                return ""
            if _is_type_ref(type_node, self._buffer):
                return f": {self._ts_type(type_node)}"
            return ""
        if default is not None:
            return _literal_annotation(default)
        return ""

    def _ts_type(self, node: Node) -> str:
        text = self._buffer.render(node)
        primitive = PRIMITIVE_TYPES.get(_compact(text))
        return primitive[0] if primitive is not None else text

    # ------------------------------------------------------------------
    # Methods

    def _method(self, key: str, function: Node) -> str:
        self._rewrite_super(function, key)
        prefix = "async " if any(child.type == "async" for child in function.children) else ""
        if function.type.startswith("generator"):
            prefix += "*"
        parameters = function.child_by_field_name("parameters")
        params = self._buffer.render(parameters) if parameters is not None else "()"
        body = function.child_by_field_name("body")
        body_text = self._buffer.render(body) if body is not None else "{}"
        return f"{prefix}{_member_name(key)}{params} {body_text}"

    def _method_definition(self, node: Node) -> str:
        name_node = node.child_by_field_name("name")
        if name_node is not None:
            self._rewrite_super(node, self._buffer.text(name_node))
        return self._buffer.render(node)

    def _accessor(self, kind: str, name: str, node: Node) -> str:
        parameters = node.child_by_field_name("parameters")
        params = self._buffer.render(parameters) if parameters is not None else "()"
        body = node.child_by_field_name("body")
        body_text = self._buffer.render(body) if body is not None else "{}"
        return f"{kind} {name}{params} {body_text}"

    def _constructor(self, function: Node, has_base: bool) -> str:
        self._drop_super_calls(function)
        parameters = function.child_by_field_name("parameters")
        params = self._buffer.render(parameters) if parameters is not None else "()"
        body = function.child_by_field_name("body")
        body_text = self._buffer.render(body) if body is not None else "{}"
        if has_base:
            inner = body_text[1:].lstrip()
            body_text = "{\n    super();\n    " + inner if inner != "}" else "{\n    super();\n}"
        return f"constructor{params} {body_text}"

    def _drop_super_calls(self, function: Node) -> None:
        """Remove ``this._super()`` from a ctor; the constructor already calls ``super()``."""
        for call in self._super_calls(function):
            parent = call.parent
            if parent is not None and parent.type == "expression_statement":
                self._buffer.replace(parent, "")
            else:
                self._buffer.replace(call, "undefined")

    def _rewrite_super(self, function: Node, method: str) -> None:
        target = f"super.{method}" if _is_plain_name(method) else f"super[{json.dumps(method)}]"
        for call in self._super_calls(function):
            callee = call.child_by_field_name("function")
            if callee is not None:
                self._buffer.replace(callee, target)

    def _super_calls(self, function: Node) -> List[Node]:
        """``this._super(...)`` calls made with the method's own ``this``."""
        body = function.child_by_field_name("body")
        if body is None:
            return []

        def _rebinds_this(node: Node) -> bool:
            return is_function(node) and node.type != "arrow_function"

        calls: List[Node] = []
        for node in walk(body, skip=_rebinds_this):
            if node.type != "call_expression":
                continue
            callee = node.child_by_field_name("function")
            if callee is None or callee.type != "member_expression":
                continue
            receiver = callee.child_by_field_name("object")
            prop = callee.child_by_field_name("property")
            if receiver is not None and prop is not None and receiver.type == "this":
                if self._buffer.text(prop) == "_super":
                    calls.append(node)
        return calls

    # ------------------------------------------------------------------
    # Diagnostics

    def _preserved(self, node: Node, reason: str) -> str:
        self._warn(reason)
        text = self._buffer.render(node).replace("*/", "* /")
        return f"/* {text} */"

    def _warn_nested(self, descriptor: Node) -> None:
        for node in walk(descriptor):
            if node.type == "call_expression" and self.is_component_call(node):
                self._warn("Nested component definition kept as-is")
                return

    def _warn(self, message: str) -> None:
        self._outcome.warn(DiagnosticKind.DEGRADED_PARSE, "component_shape", message, subject=self._subject)


def _compact(text: str) -> str:
    return "".join(text.split())


def _is_plain_name(name: str) -> bool:
    return bool(name) and (name[0].isalpha() or name[0] in "_$") and all(
        char.isalnum() or char in "_$" for char in name
    )


def _member_name(key: str) -> str:
    return key if _is_plain_name(key) else json.dumps(key)


def _is_type_ref(node: Node, buffer: EditBuffer) -> bool:
    node = unwrap(node)
    if node.type == "identifier":
        text = buffer.text(node)
        return text != "undefined" and text[:1].isupper()
    if node.type == "member_expression":
        segments = _compact(buffer.text(node)).split(".")
        return all(_is_plain_name(segment) for segment in segments) and segments[-1][:1].isupper()
    return False


def _literal_annotation(node: Node) -> str:
    node = unwrap(node)
    if node.type in {"string", "template_string"}:
        return ": string"
    if node.type == "number":
        return ": number"
    if node.type in {"true", "false"}:
        return ": boolean"
    if node.type == "unary_expression":
        operator = node.child_by_field_name("operator")
        argument = node.child_by_field_name("argument")
        if operator is not None and argument is not None and unwrap(argument).type == "number":
            op_type = operator.type
            if op_type == "!":
                return ": boolean"
            if op_type in {"-", "+"}:
                return ": number"
    return ""


__all__ = ["ComponentBuilder", "DECORATOR_ORDER", "PRIMITIVE_TYPES"]
