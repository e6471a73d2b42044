"""Bounded, cycle-safe structural rendering of declaration types.

:class:`TypeSimplifier` walks a :class:`~tsgraph_cli.type_model.TypeHandle`
and produces a :data:`~tsgraph_cli.models.SimplifiedType` tree. Three limits
keep the output small and the walk finite:

* the nesting depth never exceeds ``max_depth``; deeper positions hold the
  ``"..."`` sentinel;
* a type whose text was already expanded on the current path is rendered
  as a :class:`~tsgraph_cli.models.NameReference` to its declared name;
* at most ``max_nodes`` structured types are expanded per top-level call;
  later ones are shown by name as well.

The visited set is a ``frozenset`` passed down the recursion, so sibling
branches never see each other's entries and the same named type may be
expanded once per branch. The node budget is the one piece of state the
branches share.
"""

from __future__ import annotations

import logging
import re
from typing import FrozenSet, List, Optional, Pattern, Tuple

from .config_manager import AnalysisSettings
from .models import (
    TRUNCATED,
    ArrayOf,
    FunctionSig,
    Intersection,
    Literal,
    NameReference,
    ObjectShape,
    Opaque,
    Primitive,
    SimplifiedType,
    TupleOf,
    Union,
)
from .type_model import (
    ARRAY,
    FUNCTION,
    INTERSECTION,
    LITERAL,
    OBJECT,
    PRIMITIVE,
    TUPLE,
    UNION,
    Signature,
    TypeHandle,
    normalize_text,
)

logger = logging.getLogger(__name__)

PRIMITIVE_TYPES = {
    "string", "number", "boolean", "bigint", "symbol", "null", "undefined",
    "void", "any", "unknown", "never", "object",
}
BUILTIN_TYPES = {"Date", "RegExp", "Error", "Function"}

_IMPORT_QUALIFIER = re.compile(r'import\("[^"]+"\)\.')
_NUMERIC_LITERAL = re.compile(r"^-?\d+(\.\d+)?$")


class TypeSimplifier:
    """Render type handles as bounded :data:`SimplifiedType` trees."""

    def __init__(self, settings: Optional[AnalysisSettings] = None) -> None:
        self.settings = settings or AnalysisSettings()
        self._wrappers: List[Tuple[Pattern[str], str]] = []
        for pattern, replacement in self.settings.wrapper_rules:
            try:
                self._wrappers.append((re.compile(pattern), replacement))
            except re.error as exc:
                logger.warning("Skipping invalid wrapper pattern %r: %s", pattern, exc)

    def clean_type_text(self, text: str) -> str:
        """Strip ``import("...").`` qualifiers and collapse verbose wrappers."""
        cleaned = _IMPORT_QUALIFIER.sub("", text)
        for pattern, replacement in self._wrappers:
            cleaned = pattern.sub(replacement, cleaned)
        return normalize_text(cleaned)

    # ------------------------------------------------------------------

    def simplify(
        self,
        handle: TypeHandle,
        depth: int = 0,
        visited: FrozenSet[str] = frozenset(),
        budget: Optional["_Budget"] = None,
    ) -> SimplifiedType:
        if budget is None:
            budget = _Budget(self.settings.max_nodes)
        if depth >= self.settings.max_depth:
            return TRUNCATED

        text = handle.get_text()
        if text in visited and depth > 0:
            return NameReference(self.clean_type_text(handle.symbol_name() or text))
        visited = visited | {text}

        if text in PRIMITIVE_TYPES or text in BUILTIN_TYPES:
            return Primitive(text)
        if _is_literal_text(text):
            return Literal(text)
        if not budget.spend():
            return NameReference(self.clean_type_text(handle.symbol_name() or text))

        target = handle.structure()
        kind = target.kind
        if kind == PRIMITIVE:
            return Primitive(target.get_text())
        if kind == LITERAL:
            return Literal(target.get_text())
        if kind == ARRAY:
            return ArrayOf(self.simplify(target.array_element(), depth + 1, visited, budget))
        if kind == TUPLE:
            return TupleOf(tuple(self.simplify(e, depth + 1, visited, budget) for e in target.tuple_elements()))
        if kind == FUNCTION:
            signatures = target.call_signatures()
            if signatures:
                return self.simplify_signature(signatures[0], depth + 1, visited, budget)
        if kind == UNION:
            return Union(tuple(self.simplify(m, depth + 1, visited, budget) for m in target.union_members()))
        if kind == INTERSECTION:
            return Intersection(
                tuple(self.simplify(m, depth + 1, visited, budget) for m in target.intersection_members())
            )
        if kind == OBJECT:
            return self._simplify_object(handle, target, depth, visited, budget)
        return Opaque(self.clean_type_text(target.get_text()))

    def simplify_signature(
        self,
        signature: Signature,
        depth: int = 0,
        visited: FrozenSet[str] = frozenset(),
        budget: Optional["_Budget"] = None,
    ) -> SimplifiedType:
        """``FunctionSig`` for one call signature.

        A sole destructured object parameter is flattened: every property of
        its type becomes a parameter entry of its own. Without an object
        type, the names bound by an unannotated pattern are used instead.
        """
        if budget is None:
            budget = _Budget(self.settings.max_nodes)
        if depth >= self.settings.max_depth:
            return TRUNCATED

        params: List[Tuple[str, SimplifiedType]] = []
        if len(signature.params) == 1 and signature.params[0].pattern != "identifier":
            param = signature.params[0]
            properties = param.type.properties() if param.type.is_object() else []
            if not properties:
                properties = list(param.destructured)
            if properties:
                for prop in properties:
                    name = prop.name + ("?" if prop.optional else "")
                    params.append((name, self.simplify(prop.type, depth + 1, visited, budget)))
            else:
                params.append(("...args", self.simplify(param.type, depth + 1, visited, budget)))
        else:
            for param in signature.params:
                name = f"...{param.name}" if param.rest else param.name
                params.append((name, self.simplify(param.type, depth + 1, visited, budget)))

        return FunctionSig(tuple(params), self.simplify(signature.returns, depth + 1, visited, budget))

    def _simplify_object(
        self,
        handle: TypeHandle,
        target: TypeHandle,
        depth: int,
        visited: FrozenSet[str],
        budget: "_Budget",
    ) -> SimplifiedType:
        properties = target.properties()
        if not properties:
            return ObjectShape(())

        name = handle.symbol_name()
        if name and len(properties) > self.settings.collapse_threshold and depth >= 2:
            return NameReference(name)

        cap = self.settings.max_properties
        shown: List[Tuple[str, SimplifiedType]] = []
        for prop in properties[:cap]:
            key = prop.name + ("?" if prop.optional else "")
            shown.append((key, self.simplify(prop.type, depth + 1, visited, budget)))
        return ObjectShape(tuple(shown), truncated=len(properties) > cap)


class _Budget:
    """Structured nodes one top-level call may still expand, shared by all branches."""

    def __init__(self, nodes: int) -> None:
        self.remaining = nodes

    def spend(self) -> bool:
        if self.remaining <= 0:
            return False
        self.remaining -= 1
        return True


def _is_literal_text(text: str) -> bool:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        # "'a' | 'b'" is a union, not one literal
        return text[0] not in text[1:-1]
    return bool(_NUMERIC_LITERAL.match(text)) or text in ("true", "false")
