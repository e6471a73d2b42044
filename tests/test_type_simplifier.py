"""Tests for the bounded, cycle-safe type simplifier."""

import logging
from pathlib import Path

import pytest

from tsgraph_cli.config_manager import AnalysisSettings
from tsgraph_cli.exports import ExportCatalogue
from tsgraph_cli.models import (
    TRUNCATED,
    ArrayOf,
    FunctionSig,
    Literal,
    NameReference,
    ObjectShape,
    Opaque,
    Primitive,
    Union,
)
from tsgraph_cli.resolver import ModuleResolver
from tsgraph_cli.type_model import Property, TypeModel, _ObjectMembers
from tsgraph_cli.type_simplifier import TypeSimplifier


def _object(model: TypeModel, names, symbol=None):
    props = [Property(name, False, model.primitive("string")) for name in names]
    return model.object(lambda: _ObjectMembers(properties=props), symbol or "{...}", symbol=symbol)


def _walk_rendered(value):
    """Count object shapes and collect the bare names in a rendered type."""
    if isinstance(value, dict):
        shapes, names = 1, []
        for child in value.values():
            child_shapes, child_names = _walk_rendered(child)
            shapes += child_shapes
            names.extend(child_names)
        return shapes, names
    if isinstance(value, list):
        shapes, names = 0, []
        for child in value:
            child_shapes, child_names = _walk_rendered(child)
            shapes += child_shapes
            names.extend(child_names)
        return shapes, names
    return 0, [value]


@pytest.fixture
def simplify_source(make_project, provider):
    """Simplified type of one export of an inline TypeScript module."""

    def _simplify(source: str, name: str, settings: AnalysisSettings = None):
        root = make_project({"mod.ts": source})
        catalogue = ExportCatalogue(root, provider, ModuleResolver(root), TypeSimplifier(settings))
        result = catalogue.extract_file(root / "mod.ts")
        matches = [e for e in result.exports if e.name == name]
        assert matches, f"{name} not exported"
        assert matches[0].error is None
        return matches[0].simplified

    return _simplify


class TestHandles:
    """Simplifier rules over hand-built handles (no parsing)."""

    def setup_method(self):
        self.model = TypeModel(provider=None)

    def test_primitives_and_literals(self):
        simplifier = TypeSimplifier()
        assert simplifier.simplify(self.model.primitive("string")) == Primitive("string")
        assert simplifier.simplify(self.model.literal("'on'")) == Literal("'on'")
        assert simplifier.simplify(self.model.literal("42")) == Literal("42")
        assert simplifier.simplify(self.model.opaque("Date")) == Primitive("Date")

    def test_union_of_literals(self):
        handle = self.model.union([self.model.literal("'a'"), self.model.literal("'b'")])
        result = TypeSimplifier().simplify(handle)
        assert result == Union((Literal("'a'"), Literal("'b'")))
        assert result.render() == "'a' | 'b'"

    def test_depth_limit_inserts_sentinel(self):
        handle = self.model.primitive("number")
        for _ in range(4):
            handle = self.model.array(handle)

        result = TypeSimplifier(AnalysisSettings(max_depth=3)).simplify(handle)
        assert result == ArrayOf(ArrayOf(ArrayOf(TRUNCATED)))

    def test_at_max_depth_returns_sentinel(self):
        simplifier = TypeSimplifier(AnalysisSettings(max_depth=2))
        assert simplifier.simplify(self.model.primitive("string"), depth=2) == TRUNCATED

    def test_property_cap_marks_truncation(self):
        wide = _object(self.model, [f"p{i:02d}" for i in range(25)], symbol="Wide")
        result = TypeSimplifier(AnalysisSettings(max_properties=20)).simplify(wide)

        assert isinstance(result, ObjectShape)
        assert result.truncated
        assert len(result.properties) == 20
        assert [name for name, _ in result.properties][-1] == "p19"
        assert result.render()["..."] == "..."

    def test_exactly_at_cap_is_not_truncated(self):
        result = TypeSimplifier(AnalysisSettings(max_properties=3)).simplify(
            _object(self.model, ["a", "b", "c"])
        )
        assert not result.truncated
        assert len(result.properties) == 3

    def test_empty_object(self):
        assert TypeSimplifier().simplify(_object(self.model, [])) == ObjectShape(())

    def test_large_named_object_collapses_when_nested(self):
        simplifier = TypeSimplifier(AnalysisSettings(collapse_threshold=10))
        big = _object(self.model, [f"p{i}" for i in range(11)], symbol="Big")

        assert simplifier.simplify(big, depth=2) == NameReference("Big")
        assert isinstance(simplifier.simplify(big, depth=1), ObjectShape)

    def test_anonymous_large_object_is_expanded(self):
        big = _object(self.model, [f"p{i}" for i in range(11)])
        assert isinstance(TypeSimplifier().simplify(big, depth=3), ObjectShape)

    def test_visited_text_becomes_reference(self):
        node = _object(self.model, ["x"], symbol="Node")
        result = TypeSimplifier().simplify(node, depth=1, visited=frozenset({"Node"}))
        assert result == NameReference("Node")

    def test_is_object_follows_structure(self):
        assert _object(self.model, ["a"]).is_object()
        assert not self.model.array(self.model.primitive("string")).is_object()
        assert not self.model.union([self.model.literal("'a'"), self.model.literal("'b'")]).is_object()

    def test_node_budget_is_shared_by_siblings(self):
        leaf = _object(self.model, ["x"], symbol="Leaf")
        props = [Property(name, False, leaf) for name in ("a", "b")]
        pair = self.model.object(lambda: _ObjectMembers(properties=props), "Pair", symbol="Pair")

        result = TypeSimplifier(AnalysisSettings(max_nodes=2)).simplify(pair)
        assert result == ObjectShape((
            ("a", ObjectShape((("x", Primitive("string")),))),
            ("b", NameReference("Leaf")),
        ))


class TestCleanTypeText:
    """Wrapper normalisation of displayed type text."""

    def test_import_qualifiers_stripped(self):
        text = 'Promise<import("/repo/src/models").User>'
        assert TypeSimplifier().clean_type_text(text) == "Promise<User>"

    def test_default_wrappers(self):
        simplifier = TypeSimplifier()
        assert simplifier.clean_type_text("ZodObject<{ a: ZodString }>") == "ZodObject"
        assert simplifier.clean_type_text("Server<ClientToServerEvents, Other>") == "SocketIOServer"
        assert simplifier.clean_type_text("Sql<{ bigint: PostgresType }>") == "PostgresConnection"
        assert (
            simplifier.clean_type_text("TransactionSql<{ bigint: PostgresType }>")
            == "PostgresTransactionConnection"
        )

    def test_whitespace_collapsed(self):
        assert TypeSimplifier().clean_type_text("{\n  a: string;\n}") == "{ a: string; }"

    def test_invalid_custom_wrapper_is_skipped(self, caplog):
        settings = AnalysisSettings(wrapper_rules=(("(", "x"), ("Foo<[^>]+>", "Foo")))
        with caplog.at_level(logging.WARNING):
            simplifier = TypeSimplifier(settings)

        assert "invalid wrapper pattern" in caplog.text
        assert simplifier.clean_type_text("Foo<Bar>") == "Foo"


class TestRecursion:
    """Self- and mutually-recursive declarations terminate."""

    def test_self_referential_alias(self, simplify_source):
        result = simplify_source("export type T = { a: T };\n", "T")
        assert result == ObjectShape((("a", NameReference("T")),))

    def test_mutual_interfaces(self, simplify_source):
        source = "export interface A { b: B }\nexport interface B { a: A }\n"
        assert simplify_source(source, "A").render() == {"b": {"a": "A"}}
        assert simplify_source(source, "B").render() == {"a": {"b": "B"}}

    def test_recursive_generic_interface(self, simplify_source):
        source = "export interface TreeNode<T> { value: T; children: TreeNode<T>[] }\n"
        result = simplify_source(source, "TreeNode")
        assert result.render() == {"value": "T", "children": "TreeNode[]"}

    def test_recursive_union(self, simplify_source):
        source = "export type Json = string | number | null | Json[] | { [key: string]: Json };\n"
        assert simplify_source(source, "Json").render() == {
            "union": ["string", "number", "null", "Json[]", {"[key: string]": "Json"}]
        }

    def test_siblings_expand_independently(self, simplify_source):
        source = (
            "interface Point { x: number; y: number }\n"
            "export interface Segment { from: Point; to: Point }\n"
        )
        point = {"x": "number", "y": "number"}
        assert simplify_source(source, "Segment").render() == {"from": point, "to": point}

    def test_wide_chain_is_bounded_per_export(self, simplify_source):
        source = "".join(
            f"export interface L{i} {{ {' '.join(f'p{j}: L{i + 1};' for j in range(5))} }}\n"
            for i in range(9)
        ) + "export interface L9 { end: string }\n"

        result = simplify_source(source, "L0", AnalysisSettings(max_nodes=50))
        shapes, names = _walk_rendered(result.render())
        assert shapes <= 50
        assert any(name.startswith("L") for name in names)


class TestDeclarations:
    """Simplified shapes of common declaration forms."""

    def test_interface_with_optional_members(self, simplify_source):
        source = "export interface Opts { name: string; retries?: number; log(msg: string): void }\n"
        assert simplify_source(source, "Opts").render() == {
            "name": "string",
            "retries?": "number",
            "log": {"params": {"msg": "string"}, "return": "void"},
        }

    def test_extended_interface_merges_base(self, simplify_source):
        source = (
            "interface Base { id: string }\n"
            "export interface Item extends Base { label: string }\n"
        )
        assert simplify_source(source, "Item").render() == {"label": "string", "id": "string"}

    def test_circular_interface_extends(self, simplify_source):
        source = (
            "export interface A extends B { a: string }\n"
            "export interface B extends A { b: string }\n"
        )
        assert simplify_source(source, "A").render() == {"a": "string", "b": "string"}
        assert simplify_source(source, "B").render() == {"b": "string", "a": "string"}

    def test_circular_class_extends(self, simplify_source):
        source = (
            "export class P extends Q { p = 1; }\n"
            "export class Q extends P { q = 'x'; }\n"
        )
        assert simplify_source(source, "P").render() == {"p": "number", "q": "string"}

    def test_generic_arguments_are_substituted(self, simplify_source):
        source = "interface Box<T> { value: T }\nexport type Boxed = Box<string>;\n"
        assert simplify_source(source, "Boxed").render() == {"value": "string"}

    def test_enum_is_union_of_members(self, simplify_source):
        source = "export enum Color { Red, Green = 'green' }\n"
        assert simplify_source(source, "Color").render() == "Color.Red | Color.Green"

    def test_class_public_instance_shape(self, simplify_source):
        source = (
            "export class Counter {\n"
            "  static instances = 0;\n"
            "  private secret = 1;\n"
            "  count: number = 0;\n"
            "  get doubled(): number { return this.count * 2; }\n"
            "  increment(by: number = 1): void { this.count += by; }\n"
            "}\n"
        )
        assert simplify_source(source, "Counter").render() == {
            "count": "number",
            "doubled": "number",
            "increment": {"params": {"by": "number"}, "return": "void"},
        }

    def test_const_variable_keeps_literal(self, simplify_source):
        source = "export const VERSION = '1.2.0';\nexport let counter = 3;\n"
        assert simplify_source(source, "VERSION") == Literal('"1.2.0"')
        assert simplify_source(source, "counter") == Primitive("number")

    def test_unresolved_reference_is_opaque(self, simplify_source):
        source = "export let registry: Registry<string>;\n"
        assert simplify_source(source, "registry") == Opaque("Registry<string>")

    def test_depth_limit_from_settings(self, simplify_source):
        source = (
            "interface Address { city: string }\n"
            "export interface User { address: Address }\n"
        )
        result = simplify_source(source, "User", AnalysisSettings(max_depth=2))
        assert result.render() == {"address": {"city": "..."}}

    def test_nested_large_interface_collapses(self, simplify_source):
        props = " ".join(f"p{i}: string;" for i in range(11))
        source = (
            f"interface Big {{ {props} }}\n"
            "export interface Outer { inner: { big: Big } }\n"
            "export interface Holder { big: Big }\n"
        )
        assert simplify_source(source, "Outer").render() == {"inner": {"big": "Big"}}
        assert len(simplify_source(source, "Holder").render()["big"]) == 11


class TestSignatures:
    """Function parameters, destructuring and rest parameters."""

    def test_plain_parameters(self, simplify_source):
        source = "export function add(a: number, b?: number): number { return a + (b ?? 0); }\n"
        assert simplify_source(source, "add") == FunctionSig(
            (("a", Primitive("number")), ("b", Primitive("number"))),
            Primitive("number"),
        )

    def test_rest_parameter(self, simplify_source):
        source = "export function log(level: string, ...parts: string[]): void {}\n"
        assert simplify_source(source, "log").render() == {
            "params": {"level": "string", "...parts": "string[]"},
            "return": "void",
        }

    def test_destructured_parameter_expands_properties(self, simplify_source):
        source = (
            "interface Options { host: string; port?: number }\n"
            "export function connect({ host, port }: Options): boolean { return true; }\n"
        )
        assert simplify_source(source, "connect").render() == {
            "params": {"host": "string", "port?": "number"},
            "return": "boolean",
        }

    def test_destructured_without_object_type_falls_back(self, simplify_source):
        source = "export function handle({ a, b }: any) {}\n"
        assert simplify_source(source, "handle").render() == {
            "params": {"...args": "any"},
            "return": "void",
        }

    def test_unannotated_destructuring_lists_bound_names(self, simplify_source):
        source = "export function setup({ a = 1, b, c: renamed = 'x' }) {}\n"
        assert simplify_source(source, "setup").render() == {
            "params": {"a?": "number", "b": "any", "c?": "string"},
            "return": "void",
        }

    def test_inferred_return_types(self, simplify_source):
        source = (
            "export function flag() { return true; }\n"
            "export async function load() { return 'x'; }\n"
            "export const arrow = (n: number) => n > 1;\n"
        )
        assert simplify_source(source, "flag").render()["return"] == "boolean"
        assert simplify_source(source, "load").render()["return"] == "Promise<string>"
        assert simplify_source(source, "arrow").render() == {
            "params": {"n": "number"},
            "return": "boolean",
        }
