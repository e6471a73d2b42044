"""Invocation orchestrator exposing the four analysis operations."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

from .complexity import DeclarationAnalyzer, summarize
from .config_manager import AnalysisSettings, load_settings
from .dependency_graph import DependencyGraph, GraphBuilder, expand_globs
from .errors import CallerError
from .exports import ExportCatalogue
from .ignore_rules import IgnoreRuleSet, compile_ignore_rules, search_dirs_for_globs
from .parser import TypeScriptProvider
from .resolver import ModuleResolver
from .type_simplifier import TypeSimplifier

logger = logging.getLogger(__name__)


def require_str_list(value: Any, argument: str) -> List[str]:
    """Reject anything but a list of strings, before any I/O."""
    if value is None:
        raise CallerError(f"'{argument}' is required")
    if not isinstance(value, (list, tuple)):
        raise CallerError(f"'{argument}' must be a list, got {type(value).__name__}")
    if not all(isinstance(v, str) for v in value):
        raise CallerError(f"'{argument}' must contain only strings")
    return list(value)


@dataclass
class Session:
    """Collaborators owned by exactly one invocation."""

    root: Path
    ignore: IgnoreRuleSet
    provider: TypeScriptProvider
    resolver: ModuleResolver


class Orchestrator:
    """Runs one analysis per call with a fresh provider session.

    Nothing built during a call (ignore rules, manifest cache, graphs, parsed
    modules) survives it, so one instance may serve many requests serially.
    """

    def __init__(self, root: Optional[Path] = None, settings: Optional[AnalysisSettings] = None):
        self.root = (root or Path.cwd()).resolve()
        self.settings = settings or load_settings()

    @contextmanager
    def session(self, globs: Sequence[str], root: Optional[Path] = None) -> Iterator[Session]:
        base = (root or self.root).resolve()
        ignore = compile_ignore_rules(
            search_dirs_for_globs(globs, base), base, self.settings.extra_ignores
        )
        provider = TypeScriptProvider()
        try:
            yield Session(base, ignore, provider, ModuleResolver(base))
        finally:
            provider.close()

    def _builder(self, session: Session) -> GraphBuilder:
        return GraphBuilder(
            session.root, session.provider, session.resolver, session.ignore, self.settings.dependency_dirs
        )

    def _expand(self, globs: Sequence[str], session: Session):
        return expand_globs(globs, session.root, session.ignore, self.settings.dependency_dirs)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def forward_closure(self, globs: Any) -> List[str]:
        globs = require_str_list(globs, "globs")
        with self.session(globs) as session:
            return self._builder(session).forward_closure(globs)

    def forward_graph(self, globs: Any) -> DependencyGraph:
        """The graph behind :meth:`forward_closure`, for DOT output."""
        globs = require_str_list(globs, "globs")
        with self.session(globs) as session:
            seeds = self._expand(globs, session)
            if not seeds:
                logger.warning("No files found matching the input glob patterns: %s", globs)
                return DependencyGraph()
            return self._builder(session).build_forward(seeds)

    def transitive_dependents(self, globs: Any, root: Optional[Path] = None) -> Dict[str, Any]:
        globs = require_str_list(globs, "globs")
        with self.session(globs, root) as session:
            return self._builder(session).transitive_dependents(globs)

    def extract(
        self,
        paths: Any,
        pwd: Optional[Path] = None,
        name_filters: Any = None,
    ) -> List[Dict[str, Any]]:
        paths = require_str_list(paths, "paths")
        filters = require_str_list(name_filters, "name_filters") if name_filters is not None else None
        with self.session([]) as session:
            catalogue = ExportCatalogue(
                session.root, session.provider, session.resolver, TypeSimplifier(self.settings)
            )
            return [f.to_dict() for f in catalogue.extract(paths, pwd, filters)]

    def analyze(self, globs: Any) -> Dict[str, Any]:
        globs = require_str_list(globs, "globs")
        with self.session(globs) as session:
            files = [h for h in self._expand(globs, session) if not h.relative.endswith(".d.ts")]
            if not files:
                logger.warning("No files found matching the input glob patterns: %s", globs)
            analyzer = DeclarationAnalyzer(session.provider)
            results = [analyzer.analyze_file(handle) for handle in files]
            return {"files": [r.to_dict() for r in results], "summary": summarize(results)}
