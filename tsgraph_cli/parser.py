"""Source model provider built on Tree-sitter's TypeScript grammars.

One :class:`TypeScriptProvider` is one *session*: it owns the loaded
grammars and a cache of parsed modules keyed by canonical path. Sessions
are created per invocation and never shared between invocations, because
the cache reflects the file set of a single query.

The provider answers purely syntactic questions:

* which module specifiers a file imports (static, ``require`` and dynamic),
* which declarations a file declares and which of them it exports,
* what local names its import clauses bind.

Anything type-shaped is layered on top in :mod:`tsgraph_cli.type_model`.
"""

from __future__ import annotations

import importlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .errors import ProviderFailure, ProviderUnavailableError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Extension <-> grammar mapping
# ---------------------------------------------------------------------------
LANGUAGE_MAP: Dict[str, str] = {
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".js": "tsx",
    ".jsx": "tsx",
    ".mjs": "tsx",
    ".cjs": "tsx",
}

# syntax node type -> exported symbol kind
DECLARATION_KINDS: Dict[str, str] = {
    "interface_declaration": "interface",
    "type_alias_declaration": "type-alias",
    "class_declaration": "class",
    "abstract_class_declaration": "class",
    "class": "class",
    "enum_declaration": "enum",
    "function_declaration": "function",
    "generator_function_declaration": "function",
    "function_signature": "function",
    "function_expression": "function",
    "function": "function",
    "arrow_function": "function",
    "lexical_declaration": "variable",
    "variable_declaration": "variable",
}

# Declaration kinds that live in the type namespace
TYPE_DECLARATIONS = {
    "interface_declaration",
    "type_alias_declaration",
    "class_declaration",
    "abstract_class_declaration",
    "enum_declaration",
}


def node_text(node: Any) -> str:
    return node.text.decode("utf-8", errors="replace") if node is not None else ""


def string_value(node: Any) -> Optional[str]:
    """Contents of a ``string`` literal node, or None for anything else."""
    if node is None or node.type != "string":
        return None
    raw = node_text(node)
    if len(raw) >= 2 and raw[0] in "'\"" and raw[-1] == raw[0]:
        return raw[1:-1]
    return None


def walk(node: Any) -> Iterator[Any]:
    """Pre-order walk without recursion (deep trees are common in JS)."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def line_of(node: Any) -> int:
    return node.start_point[0] + 1


# ---------------------------------------------------------------------------
# Parsed artefacts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ImportRef:
    """One module specifier mentioned by a file."""

    specifier: str
    line: int
    kind: str  # import | export | require | dynamic


@dataclass(frozen=True)
class ImportBinding:
    """A local name bound by an import clause."""

    local: str
    specifier: str
    imported: str  # "default", "*" for namespace imports, else the exported name


@dataclass(frozen=True)
class Declaration:
    """A named top-level declaration."""

    name: str
    kind: str
    node: Any
    exported: bool = False
    statement: Any = None  # enclosing export_statement, when exported


@dataclass(frozen=True)
class ReExport:
    """``export ... from`` clause: names are (exported, imported) pairs; None means ``*``."""

    specifier: str
    names: Optional[Tuple[Tuple[str, str], ...]]
    namespace: Optional[str] = None


@dataclass
class ParsedModule:
    path: Path
    source: bytes
    tree: Any
    language: str
    declarations: Dict[str, List[Declaration]] = field(default_factory=dict)
    exports: List[Tuple[str, Declaration]] = field(default_factory=list)
    re_exports: List[ReExport] = field(default_factory=list)
    bindings: Dict[str, ImportBinding] = field(default_factory=dict)

    @property
    def root(self) -> Any:
        return self.tree.root_node

    def lookup(self, name: str, type_space: bool = False) -> List[Declaration]:
        decls = self.declarations.get(name, [])
        if type_space:
            return [d for d in decls if d.node.type in TYPE_DECLARATIONS]
        return decls


# ===================================================================
# Abstract provider interface
# ===================================================================


class SourceModelProvider(ABC):
    """What the analysis layers need from a parser/type-checker."""

    @abstractmethod
    def supports(self, path: Path) -> bool:
        ...

    @abstractmethod
    def parse(self, path: Path) -> ParsedModule:
        """Parse *path*; raises :class:`ProviderFailure` when it cannot."""
        ...

    @abstractmethod
    def imports(self, module: ParsedModule) -> List[ImportRef]:
        ...

    def close(self) -> None:
        """Release cached state; the session must not be used afterwards."""


# ===================================================================
# Tree-sitter provider
# ===================================================================


class TypeScriptProvider(SourceModelProvider):
    """Error-tolerant TypeScript/JavaScript provider.

    Uses ``tree-sitter-typescript`` for both the ``typescript`` and ``tsx``
    dialects; plain JavaScript is parsed with the ``tsx`` grammar, which is a
    superset of JSX-flavoured JavaScript.
    """

    _GRAMMAR_FUNCTIONS: Dict[str, str] = {
        "typescript": "language_typescript",
        "tsx": "language_tsx",
    }

    def __init__(self) -> None:
        self._parsers: Dict[str, Any] = {}
        self._cache: Dict[Path, ParsedModule] = {}
        self._init_parsers()

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def _init_parsers(self) -> None:
        try:
            from tree_sitter import Language, Parser as TSParser  # type: ignore[import-untyped]
            grammar = importlib.import_module("tree_sitter_typescript")
        except ImportError as exc:
            raise ProviderUnavailableError(
                "tree-sitter TypeScript support is not installed. "
                "Install with: pip install tree-sitter tree-sitter-typescript"
            ) from exc

        for lang, func_name in self._GRAMMAR_FUNCTIONS.items():
            try:
                ts_lang = Language(getattr(grammar, func_name)())
                self._parsers[lang] = TSParser(ts_lang)
                logger.debug("Loaded tree-sitter parser for %s", lang)
            except (AttributeError, TypeError, ValueError) as exc:
                raise ProviderUnavailableError(
                    f"Could not load tree-sitter grammar for {lang}: {exc}"
                ) from exc

    def supports(self, path: Path) -> bool:
        return _language_for(path) in self._parsers

    def close(self) -> None:
        self._cache.clear()

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse(self, path: Path) -> ParsedModule:
        canonical = path.resolve()
        cached = self._cache.get(canonical)
        if cached is not None:
            return cached

        lang = _language_for(canonical)
        if lang is None or lang not in self._parsers:
            raise ProviderFailure(f"Unsupported file type: {canonical.name}", canonical)
        try:
            source = canonical.read_bytes()
        except OSError as exc:
            raise ProviderFailure(f"Cannot read {canonical}: {exc}", canonical) from exc

        tree = self._parsers[lang].parse(source)
        if tree.root_node.has_error:
            logger.debug("Syntax errors in %s; continuing with partial tree", canonical)

        module = ParsedModule(path=canonical, source=source, tree=tree, language=lang)
        _index_module(module)
        self._cache[canonical] = module
        return module

    def parse_source(self, source: str, filename: str = "inline.ts") -> ParsedModule:
        """Parse in-memory *source*; handy for snippets and tests."""
        lang = _language_for(Path(filename)) or "typescript"
        data = source.encode("utf-8")
        tree = self._parsers[lang].parse(data)
        module = ParsedModule(path=Path(filename), source=data, tree=tree, language=lang)
        _index_module(module)
        return module

    # ------------------------------------------------------------------
    # Imports
    # ------------------------------------------------------------------

    def imports(self, module: ParsedModule) -> List[ImportRef]:
        refs: List[ImportRef] = []
        for node in walk(module.root):
            if node.type == "import_statement":
                spec = string_value(node.child_by_field_name("source"))
                if spec is None:
                    for child in node.named_children:
                        if child.type == "import_require_clause":
                            spec = string_value(child.child_by_field_name("source"))
                if spec is not None:
                    refs.append(ImportRef(spec, line_of(node), "import"))
            elif node.type == "export_statement":
                spec = string_value(node.child_by_field_name("source"))
                if spec is not None:
                    refs.append(ImportRef(spec, line_of(node), "export"))
            elif node.type == "call_expression":
                func = node.child_by_field_name("function")
                args = node.child_by_field_name("arguments")
                if func is None or args is None:
                    continue
                first = args.named_children[0] if args.named_children else None
                spec = string_value(first)
                if spec is None:
                    continue
                if func.type == "import":
                    refs.append(ImportRef(spec, line_of(node), "dynamic"))
                elif func.type == "identifier" and node_text(func) == "require":
                    refs.append(ImportRef(spec, line_of(node), "require"))
        return refs


def _language_for(path: Path) -> Optional[str]:
    return LANGUAGE_MAP.get(path.suffix.lower())


# ---------------------------------------------------------------------------
# Module indexing: declarations, exports, import bindings
# ---------------------------------------------------------------------------


def _index_module(module: ParsedModule) -> None:
    # (exported name, local name) pairs from "export { a as b }" and
    # "export default a"; resolved once every declaration is known
    pending: List[Tuple[str, str]] = []

    for stmt in module.root.named_children:
        if stmt.type == "import_statement":
            _index_import(module, stmt)
        elif stmt.type == "export_statement":
            _index_export_statement(module, stmt, pending)
        else:
            for decl in _declarations_of(stmt):
                _add_declaration(module, decl)

    for exported, local in pending:
        targets = module.declarations.get(local, [])
        if targets:
            for decl in targets:
                module.exports.append((exported, decl))
        elif local in module.bindings:
            binding = module.bindings[local]
            module.re_exports.append(ReExport(binding.specifier, ((exported, binding.imported),)))


def _index_import(module: ParsedModule, stmt: Any) -> None:
    spec = string_value(stmt.child_by_field_name("source"))
    for child in stmt.named_children:
        if child.type == "import_require_clause":
            name = child.named_children[0] if child.named_children else None
            source = string_value(child.child_by_field_name("source"))
            if name is not None and source is not None:
                local = node_text(name)
                module.bindings[local] = ImportBinding(local, source, "*")
        elif child.type == "import_clause" and spec is not None:
            for part in child.named_children:
                if part.type == "identifier":
                    local = node_text(part)
                    module.bindings[local] = ImportBinding(local, spec, "default")
                elif part.type == "namespace_import":
                    ident = part.named_children[0] if part.named_children else None
                    if ident is not None:
                        local = node_text(ident)
                        module.bindings[local] = ImportBinding(local, spec, "*")
                elif part.type == "named_imports":
                    for item in part.named_children:
                        if item.type != "import_specifier":
                            continue
                        imported = node_text(item.child_by_field_name("name"))
                        alias = item.child_by_field_name("alias")
                        local = node_text(alias) if alias is not None else imported
                        module.bindings[local] = ImportBinding(local, spec, imported)


def _export_specifiers(clause: Any) -> List[Tuple[str, str]]:
    """(exported, local) pairs of an ``export_clause``."""
    pairs: List[Tuple[str, str]] = []
    for spec in clause.named_children:
        if spec.type != "export_specifier":
            continue
        local = node_text(spec.child_by_field_name("name"))
        alias = spec.child_by_field_name("alias")
        pairs.append((node_text(alias) if alias is not None else local, local))
    return pairs


def _index_export_statement(module: ParsedModule, stmt: Any, pending: List[Tuple[str, str]]) -> None:
    source = string_value(stmt.child_by_field_name("source"))
    is_default = any(child.type == "default" for child in stmt.children)

    if source is not None:
        names: List[Tuple[str, str]] = []
        namespace: Optional[str] = None
        star = False
        for child in stmt.children:
            if child.type == "*":
                star = True
            elif child.type == "namespace_export":
                ident = child.named_children[0] if child.named_children else None
                namespace = node_text(ident) if ident is not None else None
            elif child.type == "export_clause":
                names.extend(_export_specifiers(child))
        if namespace is not None:
            module.re_exports.append(ReExport(source, None, namespace=namespace))
        elif star:
            module.re_exports.append(ReExport(source, None))
        else:
            module.re_exports.append(ReExport(source, tuple(names)))
        return

    declaration = stmt.child_by_field_name("declaration")
    if declaration is not None:
        for decl in _declarations_of(declaration, exported=True, statement=stmt):
            _add_declaration(module, decl)
            module.exports.append(("default" if is_default else decl.name, decl))
        return

    value = stmt.child_by_field_name("value")
    if value is not None and is_default:
        if value.type == "identifier":
            pending.append(("default", node_text(value)))
        else:
            kind = DECLARATION_KINDS.get(value.type, "variable")
            module.exports.append(("default", Declaration("default", kind, value, True, stmt)))
        return

    for child in stmt.named_children:
        if child.type == "export_clause":
            pending.extend(_export_specifiers(child))


def _declarations_of(node: Any, exported: bool = False, statement: Any = None) -> List[Declaration]:
    """Named declarations introduced by one statement node."""
    if node.type == "ambient_declaration":
        out: List[Declaration] = []
        for child in node.named_children:
            out.extend(_declarations_of(child, exported, statement))
        return out

    kind = DECLARATION_KINDS.get(node.type)
    if kind is None:
        return []

    if node.type in ("lexical_declaration", "variable_declaration"):
        out = []
        for declarator in node.named_children:
            if declarator.type != "variable_declarator":
                continue
            name_node = declarator.child_by_field_name("name")
            if name_node is None or name_node.type != "identifier":
                continue
            out.append(Declaration(node_text(name_node), kind, declarator, exported, statement))
        return out

    name_node = node.child_by_field_name("name")
    if name_node is None:
        return [Declaration("default", kind, node, exported, statement)]
    return [Declaration(node_text(name_node), kind, node, exported, statement)]


def _add_declaration(module: ParsedModule, decl: Declaration) -> None:
    module.declarations.setdefault(decl.name, []).append(decl)
