"""Export cataloguer: exported declarations with their text and simplified type."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, List, Optional, Sequence, Set

from .errors import ProviderFailure, TsGraphError
from .models import ExportedSymbol, FileExports, FileHandle, Opaque
from .parser import TYPE_DECLARATIONS, Declaration, ParsedModule, TypeScriptProvider, node_text
from .resolver import ModuleResolver
from .type_model import TypeModel, normalize_text
from .type_simplifier import TypeSimplifier

logger = logging.getLogger(__name__)

# Entry points tried for a directory input without package.json types
DIRECTORY_ENTRIES = ("index.d.ts", "index.ts", "types.d.ts", "types/index.d.ts")

_LOCAL_PREFIX = re.compile(r"^[A-Za-z0-9_-]+/")

_FUNCTION_NODES = {
    "function_declaration", "generator_function_declaration", "function_signature",
    "function_expression", "function", "arrow_function", "generator_function",
}
_CLASS_NODES = {"class_declaration", "abstract_class_declaration", "class"}


def looks_like_package(spec: str) -> bool:
    """``@scope/name`` and bare names; ``dir/file`` style inputs are paths."""
    if spec.startswith("@"):
        return True
    if spec.startswith((".", "/")):
        return False
    return not _LOCAL_PREFIX.match(spec)


class ExportCatalogue:
    """Enumerate exported declarations of files and packages."""

    def __init__(
        self,
        root: Path,
        provider: TypeScriptProvider,
        resolver: ModuleResolver,
        simplifier: TypeSimplifier,
    ) -> None:
        self.root = root.resolve()
        self.provider = provider
        self.resolver = resolver
        self.simplifier = simplifier
        self.model = TypeModel(provider, resolver)

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def resolve_input(self, spec: str, pwd: Path) -> Optional[Path]:
        """Map a CLI path or package name to the file whose exports are read."""
        candidate = Path(spec) if Path(spec).is_absolute() else pwd / spec
        if candidate.is_file():
            return candidate.resolve()
        if candidate.is_dir():
            return self._directory_entry(candidate)
        if looks_like_package(spec):
            found = self.resolver.resolve_package(spec, pwd)
            if found is not None:
                return found.resolve()
        return None

    def _directory_entry(self, directory: Path) -> Optional[Path]:
        manifest_path = directory / "package.json"
        if manifest_path.is_file():
            manifest = self.resolver.read_manifest_quietly(manifest_path) or {}
            entry = manifest.get("types") or manifest.get("typings") or "index.d.ts"
            if isinstance(entry, str) and (directory / entry).is_file():
                return (directory / entry).resolve()
            return None
        for entry in DIRECTORY_ENTRIES:
            if (directory / entry).is_file():
                return (directory / entry).resolve()
        return None

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def extract(
        self,
        paths: Sequence[str],
        pwd: Optional[Path] = None,
        name_filters: Optional[Sequence[str]] = None,
    ) -> List[FileExports]:
        base = (pwd or self.root).resolve()
        wanted = set(name_filters) if name_filters else None
        results: List[FileExports] = []
        for spec in paths:
            target = self.resolve_input(spec, base)
            if target is None:
                logger.warning("Could not resolve '%s' to a file or package", spec)
                continue
            result = self.extract_file(target, wanted)
            # A filtered run drops files left with nothing to show
            if wanted is None or result.exports:
                results.append(result)
        return results

    def extract_file(self, path: Path, names: Optional[Set[str]] = None) -> FileExports:
        """Exports of one file, restricted to *names* before any type is simplified."""
        handle = FileHandle.from_path(path, self.root)
        try:
            module = self.provider.parse(handle.canonical)
        except ProviderFailure as exc:
            logger.warning("Cannot extract exports from %s: %s", handle.relative, exc)
            return FileExports(handle.relative, error=str(exc))

        exports: List[ExportedSymbol] = []
        for name, decl, decl_module in self.model.module_exports(module):
            if names is None or name in names:
                exports.append(self.describe(name, decl, decl_module))
        for re_export in module.re_exports:
            if re_export.namespace is not None and (names is None or re_export.namespace in names):
                type_text = f'typeof import("{re_export.specifier}")'
                exports.append(ExportedSymbol(
                    re_export.namespace,
                    "variable",
                    declaration=f"const {re_export.namespace}: {type_text}",
                    simplified=Opaque(type_text),
                ))
        return FileExports(handle.relative, exports)

    def describe(self, name: str, decl: Declaration, module: ParsedModule) -> ExportedSymbol:
        """One catalogue entry; failures land in ``error``."""
        kind = decl.kind
        try:
            declaration = self.declaration_text(decl, module)
            if decl.node.type in _FUNCTION_NODES:
                signature = self.model.signature(decl.node, module, {})
                simplified = self.simplifier.simplify_signature(signature)
            else:
                simplified = self.simplifier.simplify(self.model.declaration_type(decl, module))
        except (TsGraphError, RecursionError) as exc:
            logger.debug("Cannot simplify export %s of %s: %s", name, module.path, exc)
            return ExportedSymbol(name, kind, error=str(exc) or exc.__class__.__name__)
        return ExportedSymbol(name, kind, declaration=declaration, simplified=simplified)

    # ------------------------------------------------------------------
    # Declaration text
    # ------------------------------------------------------------------

    def declaration_text(self, decl: Declaration, module: ParsedModule) -> str:
        node = decl.node
        if node.type in _FUNCTION_NODES:
            return self._function_text(decl, module)
        if node.type == "variable_declarator":
            keyword = _declaration_keyword(node)
            type_text = self.model.declaration_type(decl, module).get_text()
            return f"{keyword} {decl.name}: {self.simplifier.clean_type_text(type_text)}"
        if node.type in _CLASS_NODES:
            return self._class_text(decl)
        if decl.name == "default" and decl.statement is not None and node.type not in TYPE_DECLARATIONS:
            return re.sub(r"^export\s+", "", node_text(decl.statement))
        return re.sub(r"^export\s+", "", node_text(node))

    def _function_text(self, decl: Declaration, module: ParsedModule) -> str:
        node = decl.node
        signature = self.model.signature(node, module, {})
        parts = []
        for param in signature.params:
            label = f"...{param.name}" if param.rest else param.name
            if param.optional:
                label += "?"
            parts.append(f"{label}: {self.simplifier.clean_type_text(param.type.get_text())}")
        returns = self.simplifier.clean_type_text(signature.returns.get_text())
        return f"function {decl.name}{_type_parameters_text(node)}({', '.join(parts)}): {returns}"

    def _class_text(self, decl: Declaration) -> str:
        node = decl.node
        text = f"class {decl.name}{_type_parameters_text(node)}"
        for child in node.named_children:
            if child.type != "class_heritage":
                continue
            for clause in child.named_children:
                if clause.type == "extends_clause":
                    text += " extends " + normalize_text(node_text(clause))[len("extends "):]
                elif clause.type == "implements_clause":
                    types = [normalize_text(node_text(t)) for t in clause.named_children]
                    text += " implements " + ", ".join(types)
        return text + " { ... }"


def _type_parameters_text(node: Any) -> str:
    params_node = node.child_by_field_name("type_parameters")
    if params_node is None:
        return ""
    params = [normalize_text(node_text(p)) for p in params_node.named_children if p.type == "type_parameter"]
    return f"<{', '.join(params)}>" if params else ""


def _declaration_keyword(declarator: Any) -> str:
    parent = declarator.parent
    if parent is not None:
        kind = parent.child_by_field_name("kind")
        if kind is not None:
            return node_text(kind)
        if parent.type == "variable_declaration":
            return "var"
    return "const"
