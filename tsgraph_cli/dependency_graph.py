"""File-level dependency graphs: forward closure and transitive dependents.

Nodes are :class:`FileHandle` objects (identity = canonical path) and an edge
``A -> B`` means one of A's import specifiers resolves to B. Paths excluded
by the ignore rules or living in a dependency directory never become nodes.
"""

from __future__ import annotations

import glob as globlib
import logging
from collections import deque
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set

from . import config
from .errors import ProviderFailure
from .ignore_rules import IgnoreRuleSet
from .models import FileHandle
from .parser import SourceModelProvider
from .resolver import ModuleResolver

logger = logging.getLogger(__name__)


class DependencyGraph:
    """Directed graph keyed by :class:`FileHandle`."""

    def __init__(self) -> None:
        self._edges: Dict[FileHandle, Set[FileHandle]] = {}

    def add_node(self, node: FileHandle) -> None:
        self._edges.setdefault(node, set())

    def add_edge(self, src: FileHandle, dst: FileHandle) -> None:
        self.add_node(src)
        self.add_node(dst)
        self._edges[src].add(dst)

    def __contains__(self, node: object) -> bool:
        return node in self._edges

    def __len__(self) -> int:
        return len(self._edges)

    def nodes(self) -> List[FileHandle]:
        return sorted(self._edges, key=lambda h: h.relative)

    def successors(self, node: FileHandle) -> List[FileHandle]:
        return sorted(self._edges.get(node, ()), key=lambda h: h.relative)

    def edges(self) -> Iterator[tuple]:
        for src in self.nodes():
            for dst in self.successors(src):
                yield src, dst

    def edge_count(self) -> int:
        return sum(len(dsts) for dsts in self._edges.values())

    def transpose(self) -> "DependencyGraph":
        reversed_graph = DependencyGraph()
        for node in self._edges:
            reversed_graph.add_node(node)
        for src, dsts in self._edges.items():
            for dst in dsts:
                reversed_graph.add_edge(dst, src)
        return reversed_graph

    def reachable(self, start: FileHandle) -> Set[FileHandle]:
        """Nodes reachable from *start* through at least one edge."""
        seen: Set[FileHandle] = set()
        queue = deque(self._edges.get(start, ()))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(n for n in self._edges.get(current, ()) if n not in seen)
        return seen


def expand_globs(
    patterns: Sequence[str],
    root: Path,
    ignore: IgnoreRuleSet,
    dependency_dirs: Iterable[str] = config.DEPENDENCY_DIRS,
) -> List[FileHandle]:
    """Expand *patterns* to existing files, minus ignored and dependency paths."""
    dep_dirs = set(dependency_dirs)
    found: Dict[FileHandle, None] = {}
    for pattern in patterns:
        if globlib.has_magic(pattern):
            if Path(pattern).is_absolute():
                matches = globlib.glob(pattern, recursive=True, include_hidden=True)
            else:
                matches = globlib.glob(pattern, root_dir=root, recursive=True, include_hidden=True)
        else:
            matches = [pattern]
        for match in sorted(matches):
            path = Path(match) if Path(match).is_absolute() else root / match
            if not path.is_file():
                continue
            if _in_dependency_dir(path, root, dep_dirs) or ignore.is_ignored(path):
                continue
            try:
                handle = FileHandle.from_path(path, root)
            except OSError as exc:
                logger.warning("Cannot canonicalize %s: %s", path, exc)
                continue
            found.setdefault(handle, None)
    return sorted(found, key=lambda h: h.relative)


def project_files(root: Path, ignore: IgnoreRuleSet, dependency_dirs: Iterable[str]) -> List[FileHandle]:
    """Every non-declaration source file under *root*."""
    dep_dirs = set(dependency_dirs)
    files: Dict[FileHandle, None] = {}
    stack = [root]
    while stack:
        directory = stack.pop()
        try:
            entries = sorted(directory.iterdir())
        except OSError as exc:
            logger.warning("Cannot list %s: %s", directory, exc)
            continue
        for entry in entries:
            if entry.is_dir():
                if entry.name in dep_dirs or ignore.is_ignored(entry, is_dir=True):
                    continue
                if entry.is_symlink():
                    continue
                stack.append(entry)
            elif entry.suffix in config.SOURCE_EXTENSIONS and not entry.name.endswith(".d.ts"):
                if ignore.is_ignored(entry):
                    continue
                files.setdefault(FileHandle.from_path(entry, root), None)
    return sorted(files, key=lambda h: h.relative)


def _in_dependency_dir(path: Path, root: Path, dep_dirs: Set[str]) -> bool:
    try:
        parts = path.resolve().relative_to(root).parts
    except ValueError:
        parts = path.resolve().parts
    return any(part in dep_dirs for part in parts)


class GraphBuilder:
    """Builds forward and inverse dependency views for one invocation."""

    def __init__(
        self,
        root: Path,
        provider: SourceModelProvider,
        resolver: ModuleResolver,
        ignore: IgnoreRuleSet,
        dependency_dirs: Iterable[str] = config.DEPENDENCY_DIRS,
    ) -> None:
        self.root = root.resolve()
        self.provider = provider
        self.resolver = resolver
        self.ignore = ignore
        self.dependency_dirs = set(dependency_dirs)
        self.failures: Dict[FileHandle, str] = {}

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def direct_dependencies(self, handle: FileHandle) -> List[FileHandle]:
        """Resolved, admissible import targets of one file.

        Raises :class:`ProviderFailure` when the file cannot be parsed.
        """
        if not self.provider.supports(handle.canonical):
            return []
        module = self.provider.parse(handle.canonical)
        targets: Dict[FileHandle, None] = {}
        for ref in self.provider.imports(module):
            result = self.resolver.resolve(ref.specifier, handle.canonical)
            if not result.resolved or not self._admissible(result.handle):
                continue
            targets.setdefault(result.handle, None)
        return list(targets)

    def _admissible(self, handle: Optional[FileHandle]) -> bool:
        if handle is None:
            return False
        if _in_dependency_dir(handle.canonical, self.root, self.dependency_dirs):
            return False
        return not self.ignore.is_ignored(handle.canonical)

    # ------------------------------------------------------------------
    # Forward closure
    # ------------------------------------------------------------------

    def build_forward(self, seeds: Sequence[FileHandle]) -> DependencyGraph:
        """Depth-first traversal from every seed; a failing seed is skipped."""
        graph = DependencyGraph()
        visited: Set[FileHandle] = set()

        for seed in seeds:
            if seed in visited:
                continue
            try:
                first_hop = self.direct_dependencies(seed)
            except ProviderFailure as exc:
                self.failures[seed] = str(exc)
                logger.error("Error processing dependencies for %s: %s", seed.relative, exc)
                continue
            visited.add(seed)
            graph.add_node(seed)
            stack = []
            for dep in first_hop:
                graph.add_edge(seed, dep)
                stack.append(dep)

            while stack:
                current = stack.pop()
                if current in visited:
                    continue
                visited.add(current)
                graph.add_node(current)
                try:
                    deps = self.direct_dependencies(current)
                except ProviderFailure as exc:
                    self.failures[current] = str(exc)
                    logger.warning("Skipping imports of %s: %s", current.relative, exc)
                    continue
                for dep in deps:
                    graph.add_edge(current, dep)
                    if dep not in visited:
                        stack.append(dep)
        return graph

    def forward_closure(self, seed_globs: Sequence[str]) -> List[str]:
        seeds = expand_globs(seed_globs, self.root, self.ignore, self.dependency_dirs)
        if not seeds:
            logger.warning("No files found matching the input glob patterns: %s", list(seed_globs))
            return []
        graph = self.build_forward(seeds)
        closure = sorted({handle.relative for handle in graph.nodes()})
        if len(closure) <= len([s for s in seeds if s in graph]):
            logger.warning("No dependencies found for the specified files (excluding dependency directories).")
        return closure

    # ------------------------------------------------------------------
    # Inverse index
    # ------------------------------------------------------------------

    def build_project_graph(self) -> DependencyGraph:
        """Forward graph over every source file in the project."""
        graph = DependencyGraph()
        for handle in project_files(self.root, self.ignore, self.dependency_dirs):
            graph.add_node(handle)
            try:
                deps = self.direct_dependencies(handle)
            except ProviderFailure as exc:
                self.failures[handle] = str(exc)
                logger.warning("Skipping imports of %s: %s", handle.relative, exc)
                continue
            for dep in deps:
                graph.add_edge(handle, dep)
        return graph

    def transitive_dependents(self, target_globs: Sequence[str]) -> Dict[str, object]:
        targets = expand_globs(target_globs, self.root, self.ignore, self.dependency_dirs)
        if not targets:
            logger.warning("No files found matching the input glob patterns: %s", list(target_globs))
            return {"files": [], "count": 0}

        transposed = self.build_project_graph().transpose()
        dependents: Set[FileHandle] = set()
        for target in targets:
            dependents.update(h for h in transposed.reachable(target) if h != target)

        files = sorted({h.relative for h in dependents})
        return {"files": files, "count": len(files)}
