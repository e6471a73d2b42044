"""Type handles over Tree-sitter syntax trees.

A :class:`TypeHandle` answers the structural questions the simplifier asks
(is it an array, a union, an object? what are its properties and call
signatures? what is its text?) for a type written in a TypeScript file.

Handles are built lazily. A reference such as ``User`` or ``Box<string>``
keeps its own text and symbol name, and resolves on demand to the structure
of the declaration it names: a local interface, type alias, class or enum,
or an exported declaration of another module reached through the
:class:`~tsgraph_cli.resolver.ModuleResolver`. Generic type arguments are
substituted for the declaration's type parameters.

This is a syntactic approximation of a type checker: unannotated values get
a literal-based type from their initializer and nothing more.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from .errors import ProviderFailure
from .parser import (
    Declaration,
    ParsedModule,
    TypeScriptProvider,
    node_text,
)
from .resolver import ModuleResolver

logger = logging.getLogger(__name__)

PRIMITIVE = "primitive"
LITERAL = "literal"
ARRAY = "array"
TUPLE = "tuple"
UNION = "union"
INTERSECTION = "intersection"
FUNCTION = "function"
OBJECT = "object"
OPAQUE = "opaque"
REFERENCE = "reference"

PRIMITIVE_NAMES = {
    "string", "number", "boolean", "bigint", "symbol", "null", "undefined",
    "void", "any", "unknown", "never", "object",
}
BUILTIN_NAMES = {"Date", "RegExp", "Error", "Function"}
ARRAY_NAMES = {"Array", "ReadonlyArray"}

# Chains such as "type A = B; type B = C" are followed this many hops at most
MAX_ALIAS_HOPS = 32

_WHITESPACE = re.compile(r"\s+")

Bindings = Dict[str, "TypeHandle"]


def normalize_text(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


@dataclass(frozen=True)
class Property:
    name: str
    optional: bool
    type: "TypeHandle"


@dataclass(frozen=True)
class Param:
    name: str
    type: "TypeHandle"
    optional: bool = False
    rest: bool = False
    destructured: Tuple[Property, ...] = ()
    pattern: str = "identifier"  # identifier | object | array


@dataclass(frozen=True)
class Signature:
    params: Tuple[Param, ...]
    returns: "TypeHandle"

    def text(self) -> str:
        parts = []
        for p in self.params:
            name = f"...{p.name}" if p.rest else p.name
            if p.optional:
                name += "?"
            parts.append(f"{name}: {p.type.get_text()}")
        return f"({', '.join(parts)}) => {self.returns.get_text()}"


@dataclass
class _ObjectMembers:
    properties: List[Property] = field(default_factory=list)
    call_signatures: List[Signature] = field(default_factory=list)


class TypeHandle:
    """A possibly-unresolved type. Structural queries follow references."""

    def __init__(
        self,
        model: "TypeModel",
        kind: str,
        text: str,
        symbol: Optional[str] = None,
        payload: Any = None,
    ) -> None:
        self.model = model
        self.kind = kind
        self.text = normalize_text(text)
        self.symbol = symbol
        self._payload = payload
        self._target: Optional["TypeHandle"] = None
        self._members: Optional[_ObjectMembers] = None

    def __repr__(self) -> str:
        return f"TypeHandle({self.kind}, {self.text!r})"

    # -- identity -------------------------------------------------------

    def get_text(self) -> str:
        return self.text

    def symbol_name(self) -> Optional[str]:
        if self.symbol:
            return self.symbol
        if self.kind == REFERENCE:
            return self.structure().symbol
        return None

    # -- structure ------------------------------------------------------

    def structure(self) -> "TypeHandle":
        current: TypeHandle = self
        hops = 0
        while current.kind == REFERENCE:
            if current._target is None:
                current._target = self.model._resolve_reference(current)
            current = current._target
            hops += 1
            if hops > MAX_ALIAS_HOPS:
                return self.model.opaque(self.text)
        return current

    def array_element(self) -> "TypeHandle":
        return self.structure()._payload

    def tuple_elements(self) -> List["TypeHandle"]:
        return list(self.structure()._payload)

    def union_members(self) -> List["TypeHandle"]:
        return list(self.structure()._payload)

    def intersection_members(self) -> List["TypeHandle"]:
        return list(self.structure()._payload)

    def is_object(self) -> bool:
        return self.structure().kind == OBJECT

    def call_signatures(self) -> List[Signature]:
        target = self.structure()
        if target.kind == FUNCTION:
            return list(target._payload)
        if target.kind == OBJECT:
            return list(target._object_members().call_signatures)
        return []

    def properties(self) -> List[Property]:
        target = self.structure()
        if target.kind != OBJECT:
            return []
        return list(target._object_members().properties)

    def _object_members(self) -> _ObjectMembers:
        if self._members is None:
            self._members = self._payload()
        return self._members


class TypeModel:
    """Builds :class:`TypeHandle` objects for one provider session."""

    def __init__(self, provider: TypeScriptProvider, resolver: Optional[ModuleResolver] = None) -> None:
        self.provider = provider
        self.resolver = resolver
        # Declarations whose members are being collected; breaks circular heritage
        self._expanding: Set[Tuple[str, int]] = set()

    # ------------------------------------------------------------------
    # Handle constructors
    # ------------------------------------------------------------------

    def primitive(self, text: str) -> TypeHandle:
        return TypeHandle(self, PRIMITIVE, text)

    def literal(self, text: str) -> TypeHandle:
        return TypeHandle(self, LITERAL, text)

    def opaque(self, text: str) -> TypeHandle:
        return TypeHandle(self, OPAQUE, text)

    def array(self, element: TypeHandle) -> TypeHandle:
        inner = element.get_text()
        if element.kind in (UNION, INTERSECTION, FUNCTION):
            inner = f"({inner})"
        return TypeHandle(self, ARRAY, f"{inner}[]", payload=element)

    def tuple(self, elements: Sequence[TypeHandle]) -> TypeHandle:
        text = "[" + ", ".join(e.get_text() for e in elements) + "]"
        return TypeHandle(self, TUPLE, text, payload=tuple(elements))

    def union(self, members: Sequence[TypeHandle], text: Optional[str] = None) -> TypeHandle:
        return TypeHandle(
            self, UNION, text or " | ".join(m.get_text() for m in members), payload=tuple(members)
        )

    def intersection(self, members: Sequence[TypeHandle], text: Optional[str] = None) -> TypeHandle:
        return TypeHandle(
            self, INTERSECTION, text or " & ".join(m.get_text() for m in members), payload=tuple(members)
        )

    def function(self, signatures: Sequence[Signature], text: Optional[str] = None) -> TypeHandle:
        return TypeHandle(
            self, FUNCTION, text or (signatures[0].text() if signatures else "Function"),
            payload=tuple(signatures),
        )

    def object(
        self,
        members: Callable[[], _ObjectMembers],
        text: str,
        symbol: Optional[str] = None,
    ) -> TypeHandle:
        return TypeHandle(self, OBJECT, text, symbol=symbol, payload=members)

    def reference(
        self,
        name: str,
        module: ParsedModule,
        bindings: Bindings,
        arg_nodes: Sequence[Any] = (),
        text: Optional[str] = None,
    ) -> TypeHandle:
        payload = (name, module, dict(bindings), tuple(arg_nodes))
        return TypeHandle(self, REFERENCE, text or name, symbol=name.split(".")[-1], payload=payload)

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def declaration_type(self, decl: Declaration, module: ParsedModule) -> TypeHandle:
        """Type of an exported (or local) declaration."""
        node = decl.node
        kind = node.type
        if kind in ("interface_declaration", "type_alias_declaration", "class_declaration",
                    "abstract_class_declaration", "enum_declaration"):
            name = decl.name if decl.name != "default" else node_text(node.child_by_field_name("name"))
            params = _type_parameter_names(node)
            text = f"{name}<{', '.join(params)}>" if params else name
            if not name:
                return self._declaration_structure([decl], module, [], decl.name)
            return self.reference(name, module, {}, text=text)
        if kind == "variable_declarator":
            return self._variable_type(node, module, _is_const_declarator(node))
        if kind in ("function_declaration", "generator_function_declaration", "function_signature",
                    "function_expression", "function", "arrow_function", "method_definition"):
            return self.function([self.signature(node, module, {})])
        if kind in ("class",):
            return self._declaration_structure([decl], module, [], decl.name)
        return self.infer_expression(node, module, {}, const=True)

    def _variable_type(self, declarator: Any, module: ParsedModule, const: bool) -> TypeHandle:
        annotation = declarator.child_by_field_name("type")
        if annotation is not None:
            return self.from_node(annotation, module, {})
        value = declarator.child_by_field_name("value")
        if value is None:
            return self.primitive("any")
        return self.infer_expression(value, module, {}, const=const)

    # ------------------------------------------------------------------
    # Type syntax
    # ------------------------------------------------------------------

    def from_node(self, node: Any, module: ParsedModule, bindings: Bindings) -> TypeHandle:
        kind = node.type
        if kind in ("type_annotation", "opting_type_annotation", "omitting_type_annotation",
                    "adding_type_annotation", "parenthesized_type", "readonly_type", "default_type",
                    "constraint"):
            inner = _last_named(node)
            return self.from_node(inner, module, bindings) if inner is not None else self.primitive("any")
        if kind == "predefined_type":
            return self.primitive(node_text(node))
        if kind == "literal_type":
            text = node_text(node)
            return self.primitive(text) if text in ("null", "undefined") else self.literal(text)
        if kind in ("string", "number", "true", "false"):
            return self.literal(node_text(node))
        if kind in ("null", "undefined"):
            return self.primitive(node_text(node))
        if kind in ("type_identifier", "identifier"):
            name = node_text(node)
            if name in bindings:
                return bindings[name]
            return self.reference(name, module, bindings)
        if kind == "nested_type_identifier":
            return self.reference(node_text(node), module, bindings)
        if kind == "generic_type":
            name_node = node.child_by_field_name("name")
            args_node = node.child_by_field_name("type_arguments")
            args = args_node.named_children if args_node is not None else []
            return self.reference(node_text(name_node), module, bindings, args, text=self._generic_text(
                node_text(name_node), args, module, bindings))
        if kind == "array_type":
            element = node.named_children[0] if node.named_children else None
            if element is None:
                return self.opaque(node_text(node))
            return self.array(self.from_node(element, module, bindings))
        if kind == "tuple_type":
            return self.tuple([self._tuple_member(m, module, bindings) for m in node.named_children])
        if kind == "union_type":
            members = [self.from_node(m, module, bindings) for m in _flatten(node, "union_type")]
            return self.union(members)
        if kind == "intersection_type":
            members = [self.from_node(m, module, bindings) for m in _flatten(node, "intersection_type")]
            return self.intersection(members)
        if kind == "function_type":
            return self.function([self.signature(node, module, bindings)])
        if kind in ("object_type", "interface_body"):
            text = self._substituted_text(node, bindings)
            return self.object(lambda: self._members_of_body(node, module, bindings), text)
        if kind in ("type_predicate", "type_predicate_annotation"):
            return self.primitive("boolean")
        if kind == "asserts_annotation":
            return self.primitive("void")
        if kind == "template_literal_type":
            return self.primitive("string")
        return self.opaque(self._substituted_text(node, bindings))

    def _tuple_member(self, node: Any, module: ParsedModule, bindings: Bindings) -> TypeHandle:
        if node.type in ("tuple_parameter", "optional_tuple_parameter"):
            type_node = node.child_by_field_name("type")
            if type_node is not None:
                return self.from_node(type_node, module, bindings)
        if node.type in ("optional_type", "rest_type"):
            inner = _last_named(node)
            if inner is not None:
                return self.from_node(inner, module, bindings)
        return self.from_node(node, module, bindings)

    def _generic_text(self, name: str, args: Sequence[Any], module: ParsedModule, bindings: Bindings) -> str:
        parts = [self.from_node(a, module, bindings).get_text() if bindings else node_text(a) for a in args]
        return f"{name}<{', '.join(parts)}>"

    def _substituted_text(self, node: Any, bindings: Bindings) -> str:
        text = node_text(node)
        if not bindings:
            return text
        for name, handle in bindings.items():
            text = re.sub(rf"\b{re.escape(name)}\b", handle.get_text(), text)
        return text

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    def signature(self, node: Any, module: ParsedModule, bindings: Bindings) -> Signature:
        params: List[Param] = []
        single = node.child_by_field_name("parameter")
        if single is not None:
            params.append(Param(node_text(single), self.primitive("any")))
        params_node = node.child_by_field_name("parameters")
        if params_node is not None:
            for p in params_node.named_children:
                param = self._param(p, module, bindings)
                if param is not None:
                    params.append(param)
        return Signature(tuple(params), self._return_type(node, module, bindings))

    def _param(self, node: Any, module: ParsedModule, bindings: Bindings) -> Optional[Param]:
        if node.type not in ("required_parameter", "optional_parameter"):
            return None
        pattern = node.child_by_field_name("pattern")
        if pattern is None or pattern.type == "this":
            return None
        annotation = node.child_by_field_name("type")
        default = node.child_by_field_name("value")
        if annotation is not None:
            type_handle = self.from_node(annotation, module, bindings)
        elif default is not None:
            type_handle = self.infer_expression(default, module, bindings, const=False)
        else:
            type_handle = self.primitive("any")

        optional = node.type == "optional_parameter" or default is not None
        if pattern.type == "rest_pattern":
            inner = _last_named(pattern)
            return Param(node_text(inner) if inner is not None else "args", type_handle, rest=True)
        if pattern.type == "object_pattern":
            bound = self._destructured(pattern, module, bindings) if annotation is None else []
            return Param(
                normalize_text(node_text(pattern)), type_handle, optional,
                destructured=tuple(bound), pattern="object",
            )
        if pattern.type == "array_pattern":
            return Param(normalize_text(node_text(pattern)), type_handle, optional, pattern="array")
        return Param(node_text(pattern), type_handle, optional)

    def _destructured(self, pattern: Any, module: ParsedModule, bindings: Bindings) -> List[Property]:
        """Names bound by an unannotated object pattern; defaults give the type."""
        bound: List[Property] = []
        for child in pattern.named_children:
            if child.type == "shorthand_property_identifier_pattern":
                bound.append(Property(node_text(child), False, self.primitive("any")))
            elif child.type == "object_assignment_pattern":
                left = child.child_by_field_name("left")
                right = child.child_by_field_name("right")
                type_handle = self.infer_expression(right, module, bindings, const=False) \
                    if right is not None else self.primitive("any")
                bound.append(Property(node_text(left), True, type_handle))
            elif child.type == "pair_pattern":
                name = _property_name(child.child_by_field_name("key"))
                value = child.child_by_field_name("value")
                if value is not None and value.type == "assignment_pattern":
                    right = value.child_by_field_name("right")
                    bound.append(Property(name, True, self.infer_expression(right, module, bindings, const=False)))
                else:
                    bound.append(Property(name, False, self.primitive("any")))
        return bound

    def _return_type(self, node: Any, module: ParsedModule, bindings: Bindings) -> TypeHandle:
        ret = node.child_by_field_name("return_type")
        if ret is not None:
            return self.from_node(ret, module, bindings)

        is_async = any(child.type == "async" for child in node.children)
        is_generator = node.type.startswith("generator") or any(c.type == "*" for c in node.children)
        body = node.child_by_field_name("body")
        if body is None:
            inferred = self.primitive("any") if node.type in ("function_signature", "method_signature") \
                else self.primitive("void")
        elif body.type != "statement_block":
            inferred = self.infer_expression(body, module, bindings, const=False)
        else:
            values = [self.infer_expression(v, module, bindings, const=False) for v in _return_values(body)]
            inferred = _dedupe_union(self, values) if values else self.primitive("void")

        if is_generator:
            return self.opaque(f"Generator<{inferred.get_text()}>")
        if is_async:
            return self.opaque(f"Promise<{inferred.get_text()}>")
        return inferred

    # ------------------------------------------------------------------
    # Object members
    # ------------------------------------------------------------------

    def _members_of_body(self, body: Any, module: ParsedModule, bindings: Bindings) -> _ObjectMembers:
        members = _ObjectMembers()
        for member in body.named_children:
            kind = member.type
            if kind == "property_signature":
                name_node = member.child_by_field_name("name")
                type_node = member.child_by_field_name("type")
                members.properties.append(Property(
                    _property_name(name_node),
                    _has_question(member),
                    self.from_node(type_node, module, bindings) if type_node is not None else self.primitive("any"),
                ))
            elif kind == "method_signature":
                members.properties.append(Property(
                    _property_name(member.child_by_field_name("name")),
                    _has_question(member),
                    self.function([self.signature(member, module, bindings)]),
                ))
            elif kind == "call_signature":
                members.call_signatures.append(self.signature(member, module, bindings))
            elif kind == "index_signature":
                name_node = member.child_by_field_name("name")
                index_type = member.child_by_field_name("index_type")
                type_node = member.child_by_field_name("type")
                if name_node is None or index_type is None or type_node is None:
                    continue
                members.properties.append(Property(
                    f"[{node_text(name_node)}: {node_text(index_type)}]",
                    False,
                    self.from_node(type_node, module, bindings),
                ))
        return members

    def _class_members(self, decl_node: Any, module: ParsedModule, bindings: Bindings) -> _ObjectMembers:
        members = _ObjectMembers()
        seen: Set[str] = set()
        body = decl_node.child_by_field_name("body")
        for member in body.named_children if body is not None else []:
            modifiers = {child.type for child in member.children}
            access = next((node_text(c) for c in member.children if c.type == "accessibility_modifier"), "")
            if "static" in modifiers or access in ("private", "protected"):
                continue
            name_node = member.child_by_field_name("name")
            if name_node is None or name_node.type == "private_property_identifier":
                continue
            name = _property_name(name_node)
            if name == "constructor" or name in seen:
                continue
            if member.type == "public_field_definition":
                type_node = member.child_by_field_name("type")
                value = member.child_by_field_name("value")
                if type_node is not None:
                    handle = self.from_node(type_node, module, bindings)
                elif value is not None:
                    handle = self.infer_expression(value, module, bindings, const=False)
                else:
                    handle = self.primitive("any")
                members.properties.append(Property(name, "?" in modifiers, handle))
            elif member.type in ("method_definition", "method_signature", "abstract_method_signature"):
                if "set" in modifiers:
                    continue
                sig = self.signature(member, module, bindings)
                handle = sig.returns if "get" in modifiers else self.function([sig])
                members.properties.append(Property(name, "?" in modifiers, handle))
            else:
                continue
            seen.add(name)

        for base in self._class_bases(decl_node, module, bindings):
            for prop in base.properties():
                if prop.name not in seen:
                    seen.add(prop.name)
                    members.properties.append(prop)
        return members

    def _class_bases(self, decl_node: Any, module: ParsedModule, bindings: Bindings) -> List[TypeHandle]:
        bases: List[TypeHandle] = []
        for child in decl_node.named_children:
            if child.type != "class_heritage":
                continue
            for clause in child.named_children:
                if clause.type != "extends_clause":
                    continue
                value = clause.child_by_field_name("value")
                if value is not None and value.type in ("identifier", "member_expression"):
                    args_node = clause.child_by_field_name("type_arguments")
                    args = args_node.named_children if args_node is not None else []
                    bases.append(self.reference(node_text(value), module, bindings, args))
        return bases

    def _interface_members(self, decls: Sequence[Declaration], module: ParsedModule,
                           bindings: Bindings) -> _ObjectMembers:
        merged = _ObjectMembers()
        seen: Set[str] = set()
        bases: List[TypeHandle] = []
        for decl in decls:
            body = decl.node.child_by_field_name("body")
            if body is not None:
                own = self._members_of_body(body, module, bindings)
                for prop in own.properties:
                    if prop.name not in seen:
                        seen.add(prop.name)
                        merged.properties.append(prop)
                merged.call_signatures.extend(own.call_signatures)
            for child in decl.node.named_children:
                if child.type == "extends_type_clause":
                    bases.extend(self.from_node(t, module, bindings) for t in child.named_children)
        for base in bases:
            for prop in base.properties():
                if prop.name not in seen:
                    seen.add(prop.name)
                    merged.properties.append(prop)
        return merged

    # ------------------------------------------------------------------
    # Reference resolution
    # ------------------------------------------------------------------

    def _resolve_reference(self, handle: TypeHandle) -> TypeHandle:
        name, module, bindings, arg_nodes = handle._payload
        args = [self.from_node(a, module, bindings) for a in arg_nodes]

        if "." in name:
            namespace, _, member = name.rpartition(".")
            binding = module.bindings.get(namespace)
            if binding is not None and binding.imported == "*":
                target = self._load(binding.specifier, module)
                if target is not None:
                    found = self.find_export(target, member)
                    if found is not None:
                        decls, decl_module = found
                        return self._declaration_structure(decls, decl_module, args, member)
            return self.opaque(handle.text)

        if name in bindings and not args:
            return bindings[name]
        if name in ARRAY_NAMES and len(args) == 1:
            return self.array(args[0])

        local = module.lookup(name, type_space=True)
        if local:
            return self._declaration_structure(local, module, args, name)

        binding = module.bindings.get(name)
        if binding is not None:
            target = self._load(binding.specifier, module)
            if target is not None:
                found = self.find_export(target, binding.imported)
                if found is not None:
                    decls, decl_module = found
                    return self._declaration_structure(decls, decl_module, args, name)

        if name in BUILTIN_NAMES or name in PRIMITIVE_NAMES:
            return self.primitive(name)
        return self.opaque(handle.text)

    def _declaration_structure(self, decls: Sequence[Declaration], module: ParsedModule,
                               args: Sequence[TypeHandle], name: str) -> TypeHandle:
        types = [d for d in decls if d.node.type in (
            "interface_declaration", "type_alias_declaration", "class_declaration",
            "abstract_class_declaration", "enum_declaration", "class")]
        if not types:
            return self.opaque(name)
        first = types[0].node
        bindings = self._bind_type_parameters(first, module, args)

        if first.type == "interface_declaration":
            interfaces = [d for d in types if d.node.type == "interface_declaration"]
            return self.object(
                lambda: self._members_once(
                    first, module, lambda: self._interface_members(interfaces, module, bindings)),
                name, symbol=name,
            )
        if first.type == "type_alias_declaration":
            value = first.child_by_field_name("value")
            if value is None:
                return self.opaque(name)
            target = self.from_node(value, module, bindings)
            if target.kind == OBJECT and target.symbol is None:
                target.symbol = name
            return target
        if first.type == "enum_declaration":
            return self.union(self._enum_members(first, name), text=name)
        return self.object(
            lambda: self._members_once(first, module, lambda: self._class_members(first, module, bindings)),
            name, symbol=name,
        )

    def _members_once(self, decl_node: Any, module: ParsedModule,
                      collect: Callable[[], _ObjectMembers]) -> _ObjectMembers:
        """Run *collect* unless the same declaration is already being collected.

        ``interface A extends B`` with ``interface B extends A`` would
        otherwise recurse through the base lists forever; the inner visit
        contributes no members instead.
        """
        key = (str(module.path), decl_node.start_byte)
        if key in self._expanding:
            logger.debug("Circular heritage at %s:%d", module.path, decl_node.start_point[0] + 1)
            return _ObjectMembers()
        self._expanding.add(key)
        try:
            return collect()
        finally:
            self._expanding.discard(key)

    def _bind_type_parameters(self, decl_node: Any, module: ParsedModule,
                              args: Sequence[TypeHandle]) -> Bindings:
        bindings: Bindings = {}
        params_node = decl_node.child_by_field_name("type_parameters")
        if params_node is None:
            return bindings
        for index, param in enumerate(p for p in params_node.named_children if p.type == "type_parameter"):
            pname = node_text(param.child_by_field_name("name"))
            if index < len(args):
                bindings[pname] = args[index]
            else:
                default = param.child_by_field_name("value")
                if default is not None:
                    bindings[pname] = self.from_node(default, module, bindings)
        return bindings

    def _enum_members(self, enum_node: Any, enum_name: str) -> List[TypeHandle]:
        body = enum_node.child_by_field_name("body")
        out: List[TypeHandle] = []
        for member in body.named_children if body is not None else []:
            if member.type == "enum_assignment":
                member_name = _property_name(member.child_by_field_name("name"))
            elif member.type in ("property_identifier", "string"):
                member_name = _property_name(member)
            else:
                continue
            out.append(self.literal(f"{enum_name}.{member_name}"))
        return out

    def _load(self, specifier: str, module: ParsedModule) -> Optional[ParsedModule]:
        if self.resolver is None:
            return None
        result = self.resolver.resolve(specifier, module.path)
        if not result.resolved or not self.provider.supports(result.handle.canonical):
            return None
        try:
            return self.provider.parse(result.handle.canonical)
        except ProviderFailure as exc:
            logger.debug("Cannot load %s for type resolution: %s", specifier, exc)
            return None

    # ------------------------------------------------------------------
    # Exports across modules
    # ------------------------------------------------------------------

    def find_export(
        self,
        module: ParsedModule,
        name: str,
        seen: Optional[Set[Tuple[str, str]]] = None,
    ) -> Optional[Tuple[List[Declaration], ParsedModule]]:
        """Declarations exported from *module* under *name*, following re-exports."""
        seen = set() if seen is None else seen
        key = (str(module.path), name)
        if key in seen:
            return None
        seen.add(key)

        direct = [decl for exported, decl in module.exports if exported == name]
        if direct:
            return direct, module
        for re_export in module.re_exports:
            if re_export.names is None:
                if re_export.namespace is not None or name == "default":
                    continue
                imported = name
            else:
                match = [imp for exp, imp in re_export.names if exp == name]
                if not match:
                    continue
                imported = match[0]
            target = self._load(re_export.specifier, module)
            if target is None:
                continue
            found = self.find_export(target, imported, seen)
            if found is not None:
                return found
        return None

    def module_exports(
        self,
        module: ParsedModule,
        seen: Optional[Set[str]] = None,
    ) -> List[Tuple[str, Declaration, ParsedModule]]:
        """Every exported declaration of *module*, in source order, re-exports expanded."""
        seen = set() if seen is None else seen
        if str(module.path) in seen:
            return []
        seen.add(str(module.path))

        out: List[Tuple[str, Declaration, ParsedModule]] = [
            (name, decl, module) for name, decl in module.exports
        ]
        local_names = {name for name, _ in module.exports}
        for re_export in module.re_exports:
            target = self._load(re_export.specifier, module)
            if target is None:
                logger.debug("Cannot follow re-export '%s' from %s", re_export.specifier, module.path)
                continue
            if re_export.namespace is not None:
                continue
            if re_export.names is None:
                for name, decl, decl_module in self.module_exports(target, seen):
                    if name != "default" and name not in local_names:
                        out.append((name, decl, decl_module))
                continue
            for exported, imported in re_export.names:
                found = self.find_export(target, imported)
                if found is None:
                    continue
                decls, decl_module = found
                out.extend((exported, decl, decl_module) for decl in decls)
        return out

    # ------------------------------------------------------------------
    # Literal-based inference for unannotated values
    # ------------------------------------------------------------------

    def infer_expression(self, node: Any, module: ParsedModule, bindings: Bindings,
                         const: bool) -> TypeHandle:
        kind = node.type
        if kind == "string":
            text = node_text(node)
            return self.literal('"' + text[1:-1] + '"') if const else self.primitive("string")
        if kind == "template_string":
            return self.primitive("string")
        if kind == "number":
            return self.literal(node_text(node)) if const else self.primitive("number")
        if kind in ("true", "false"):
            return self.literal(kind) if const else self.primitive("boolean")
        if kind == "null":
            return self.primitive("null")
        if kind == "undefined" or (kind == "identifier" and node_text(node) == "undefined"):
            return self.primitive("undefined")
        if kind == "regex":
            return self.primitive("RegExp")
        if kind in ("arrow_function", "function_expression", "function", "generator_function"):
            return self.function([self.signature(node, module, bindings)])
        if kind == "object":
            return self._infer_object(node, module, bindings)
        if kind == "array":
            elements = [self.infer_expression(e, module, bindings, const=False)
                        for e in node.named_children if e.type != "spread_element"]
            if not elements:
                return self.array(self.primitive("any"))
            return self.array(_dedupe_union(self, elements))
        if kind == "new_expression":
            ctor = node.child_by_field_name("constructor")
            args_node = node.child_by_field_name("type_arguments")
            args = args_node.named_children if args_node is not None else []
            if ctor is not None and ctor.type in ("identifier", "member_expression"):
                text = node_text(ctor)
                if args:
                    text = self._generic_text(text, args, module, bindings)
                return self.reference(node_text(ctor), module, bindings, args, text=text)
        if kind == "as_expression":
            named = node.named_children
            if any(child.type == "const" for child in node.children) and named:
                return self.infer_expression(named[0], module, bindings, const=True)
            if len(named) > 1:
                return self.from_node(named[-1], module, bindings)
        if kind in ("satisfies_expression", "parenthesized_expression", "non_null_expression"):
            inner = node.named_children[0] if node.named_children else None
            if inner is not None:
                return self.infer_expression(inner, module, bindings, const)
        if kind == "unary_expression":
            operator = node.child_by_field_name("operator")
            op = node_text(operator) if operator is not None else ""
            if op == "!":
                return self.primitive("boolean")
            if op == "typeof":
                return self.primitive("string")
            argument = node.child_by_field_name("argument")
            if op == "-" and argument is not None and argument.type == "number":
                return self.literal(node_text(node)) if const else self.primitive("number")
            if op in ("-", "+", "~"):
                return self.primitive("number")
        if kind == "binary_expression":
            operator = node.child_by_field_name("operator")
            if operator is not None and node_text(operator) in (
                "==", "===", "!=", "!==", "<", ">", "<=", ">=", "instanceof", "in",
            ):
                return self.primitive("boolean")
        return self.primitive("unknown")

    def _infer_object(self, node: Any, module: ParsedModule, bindings: Bindings) -> TypeHandle:
        members = _ObjectMembers()
        for child in node.named_children:
            if child.type == "pair":
                key = child.child_by_field_name("key")
                value = child.child_by_field_name("value")
                if key is None or value is None:
                    continue
                members.properties.append(Property(
                    _property_name(key), False, self.infer_expression(value, module, bindings, const=False)
                ))
            elif child.type == "shorthand_property_identifier":
                members.properties.append(Property(node_text(child), False, self.primitive("unknown")))
            elif child.type == "method_definition":
                members.properties.append(Property(
                    _property_name(child.child_by_field_name("name")),
                    False,
                    self.function([self.signature(child, module, bindings)]),
                ))
        if not members.properties:
            text = "{}"
        else:
            text = "{ " + " ".join(f"{p.name}: {p.type.get_text()};" for p in members.properties) + " }"
        return self.object(lambda: members, text)


# ---------------------------------------------------------------------------
# Syntax helpers
# ---------------------------------------------------------------------------


def _last_named(node: Any) -> Optional[Any]:
    named = node.named_children
    return named[-1] if named else None


def _flatten(node: Any, kind: str) -> List[Any]:
    out: List[Any] = []
    for child in node.named_children:
        if child.type == kind:
            out.extend(_flatten(child, kind))
        else:
            out.append(child)
    return out


def _has_question(node: Any) -> bool:
    return any(child.type == "?" for child in node.children)


def _property_name(node: Any) -> str:
    if node is None:
        return "anonymous"
    text = node_text(node)
    if node.type == "string" and len(text) >= 2:
        return text[1:-1]
    return text


def _type_parameter_names(node: Any) -> List[str]:
    params_node = node.child_by_field_name("type_parameters")
    if params_node is None:
        return []
    return [node_text(p.child_by_field_name("name"))
            for p in params_node.named_children if p.type == "type_parameter"]


def _is_const_declarator(declarator: Any) -> bool:
    parent = declarator.parent
    if parent is None or parent.type != "lexical_declaration":
        return False
    kind = parent.child_by_field_name("kind")
    return kind is not None and node_text(kind) == "const"


_NESTED_SCOPES = {
    "function_declaration", "function_expression", "function", "arrow_function",
    "generator_function_declaration", "generator_function", "method_definition",
    "class_declaration", "class",
}


def _return_values(body: Any) -> List[Any]:
    """Expressions returned directly by *body* (nested functions excluded)."""
    values: List[Any] = []
    stack = list(reversed(body.named_children))
    while stack:
        node = stack.pop()
        if node.type in _NESTED_SCOPES:
            continue
        if node.type == "return_statement":
            if node.named_children:
                values.append(node.named_children[0])
            continue
        stack.extend(reversed(node.named_children))
    return values


def _dedupe_union(model: TypeModel, handles: Sequence[TypeHandle]) -> TypeHandle:
    unique: Dict[str, TypeHandle] = {}
    for handle in handles:
        unique.setdefault(handle.get_text(), handle)
    if len(unique) == 1:
        return next(iter(unique.values()))
    return model.union(list(unique.values()))


__all__ = [
    "TypeHandle", "TypeModel", "Property", "Param", "Signature", "normalize_text",
]
