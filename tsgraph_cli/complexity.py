"""Cyclomatic complexity and the declaration catalogue behind ``tsg analyze``."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

from .errors import ProviderFailure
from .models import AnalysisItem, FileAnalysis, FileHandle
from .parser import SourceModelProvider, line_of, node_text, walk

logger = logging.getLogger(__name__)

# Syntax nodes that add one decision point each
DECISION_NODES = {
    "if_statement",
    "ternary_expression",
    "while_statement",
    "for_statement",
    "for_in_statement",  # also covers for...of
    "do_statement",
    "switch_case",
    "catch_clause",
}
LOGICAL_OPERATORS = {"&&", "||"}

FUNCTION_NODES = {"function_declaration", "generator_function_declaration", "function_signature"}
CLASS_NODES = {"class_declaration", "abstract_class_declaration"}


def complexity(body: Any) -> int:
    """1 + one per branch, loop, case clause, catch clause and ``&&``/``||``.

    Nested function bodies inside *body* are counted too.
    """
    score = 1
    for node in walk(body):
        if node.type in DECISION_NODES:
            score += 1
        elif node.type == "binary_expression":
            operator = node.child_by_field_name("operator")
            if operator is not None and operator.type in LOGICAL_OPERATORS:
                score += 1
    return score


class DeclarationAnalyzer:
    """Catalogue interfaces, type aliases, classes, enums, functions and methods."""

    def __init__(self, provider: SourceModelProvider) -> None:
        self.provider = provider

    def analyze_file(self, handle: FileHandle) -> FileAnalysis:
        try:
            module = self.provider.parse(handle.canonical)
        except ProviderFailure as exc:
            logger.warning("Skipping %s: %s", handle.relative, exc)
            return FileAnalysis(handle.relative, error=str(exc))

        items: List[AnalysisItem] = []
        for node in walk(module.root):
            item = self._analyze_node(node, handle.relative)
            if item is not None:
                items.append(item)
        items.sort(key=lambda i: i.line)
        return FileAnalysis(handle.relative, items)

    def _analyze_node(self, node: Any, file: str) -> Optional[AnalysisItem]:
        kind = node.type
        if kind == "interface_declaration":
            return self._interface(node, file)
        if kind == "type_alias_declaration":
            value = node.child_by_field_name("value")
            return AnalysisItem(
                "type", _name(node), file, _line(node),
                exported=_is_exported(node),
                definition=node_text(value) if value is not None else None,
            )
        if kind in CLASS_NODES:
            return self._class(node, file)
        if kind == "enum_declaration":
            return self._enum(node, file)
        if kind in FUNCTION_NODES:
            return self._function(node, file, "function", _is_exported(node))
        if kind == "method_definition":
            return self._function(node, file, "method", None)
        return None

    def _interface(self, node: Any, file: str) -> AnalysisItem:
        properties: List[str] = []
        body = node.child_by_field_name("body")
        for member in body.named_children if body is not None else []:
            if member.type == "property_signature":
                properties.append(_typed(member.child_by_field_name("name"), member.child_by_field_name("type")))
            elif member.type == "method_signature":
                properties.append(_typed(member.child_by_field_name("name"),
                                         member.child_by_field_name("return_type")))

        extends: List[str] = []
        for child in node.named_children:
            if child.type == "extends_type_clause":
                extends.extend(_heritage_name(t) for t in child.named_children)

        return AnalysisItem(
            "interface", _name(node), file, _line(node),
            exported=_is_exported(node), properties=properties, extends=extends,
        )

    def _class(self, node: Any, file: str) -> AnalysisItem:
        extends: List[str] = []
        implements: List[str] = []
        for child in node.named_children:
            if child.type != "class_heritage":
                continue
            for clause in child.named_children:
                if clause.type == "extends_clause":
                    value = clause.child_by_field_name("value")
                    if value is not None:
                        extends.append(node_text(value))
                elif clause.type == "implements_clause":
                    implements.extend(_heritage_name(t) for t in clause.named_children)

        members: List[str] = []
        body = node.child_by_field_name("body")
        for member in body.named_children if body is not None else []:
            if member.type not in ("public_field_definition", "method_definition"):
                continue
            name_node = member.child_by_field_name("name")
            name = node_text(name_node) if name_node is not None else "anonymous"
            visibility = next(
                (node_text(c) + " " for c in member.children if c.type == "accessibility_modifier"), ""
            )
            role = "method" if member.type == "method_definition" else "property"
            members.append(f"{visibility}{name} ({role})")

        return AnalysisItem(
            "class", _name(node), file, _line(node),
            exported=_is_exported(node), extends=extends, implements=implements, members=members,
        )

    def _enum(self, node: Any, file: str) -> AnalysisItem:
        members: List[str] = []
        body = node.child_by_field_name("body")
        for member in body.named_children if body is not None else []:
            if member.type == "enum_assignment":
                value = member.child_by_field_name("value")
                members.append(f"{node_text(member.child_by_field_name('name'))} = {node_text(value)}")
            elif member.type in ("property_identifier", "string"):
                members.append(node_text(member))
        return AnalysisItem(
            "enum", _name(node), file, _line(node), exported=_is_exported(node), members=members,
        )

    def _function(self, node: Any, file: str, kind: str, exported: Optional[bool]) -> AnalysisItem:
        parameters: List[str] = []
        params_node = node.child_by_field_name("parameters")
        for param in params_node.named_children if params_node is not None else []:
            if param.type not in ("required_parameter", "optional_parameter"):
                continue
            parameters.append(_typed(param.child_by_field_name("pattern"), param.child_by_field_name("type")))

        return_type = node.child_by_field_name("return_type")
        body = node.child_by_field_name("body")
        return AnalysisItem(
            kind, _name(node), file, _line(node),
            exported=exported,
            parameters=parameters,
            return_type=_annotation_text(return_type) if return_type is not None else None,
            complexity=complexity(body) if body is not None else None,
        )


def summarize(files: Iterable[FileAnalysis]) -> Dict[str, int]:
    """Per-kind counts (``interfaces``, ``classes``...) plus ``total``."""
    counts: Counter = Counter(item.kind for f in files for item in f.items)
    summary = {_plural(kind): counts[kind] for kind in sorted(counts)}
    summary["total"] = sum(counts.values())
    return summary


def _plural(kind: str) -> str:
    return kind + "es" if kind.endswith("s") else kind + "s"


def _name(node: Any) -> str:
    name_node = node.child_by_field_name("name")
    return node_text(name_node) if name_node is not None else "anonymous"


def _line(node: Any) -> int:
    parent = node.parent
    if parent is not None and parent.type in ("export_statement", "ambient_declaration"):
        return line_of(parent)
    return line_of(node)


def _is_exported(node: Any) -> bool:
    parent = node.parent
    if parent is not None and parent.type == "ambient_declaration":
        parent = parent.parent
    return parent is not None and parent.type == "export_statement"


def _annotation_text(node: Any) -> str:
    """Type text of a ``: T`` annotation, without the colon."""
    if node.type.endswith("annotation") and node.named_children:
        return node_text(node.named_children[-1])
    return node_text(node)


def _typed(name_node: Any, type_node: Any) -> str:
    name = node_text(name_node) if name_node is not None else "anonymous"
    if type_node is None:
        return name
    return f"{name}: {_annotation_text(type_node)}"


def _heritage_name(node: Any) -> str:
    if node.type == "generic_type":
        return node_text(node.child_by_field_name("name"))
    return node_text(node)
