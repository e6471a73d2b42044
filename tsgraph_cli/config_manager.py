"""Configuration manager for tsgraph using TOML files."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import toml

from . import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisSettings:
    """Effective knobs for one invocation."""

    max_depth: int = config.MAX_DEPTH
    max_properties: int = config.MAX_PROPERTIES
    collapse_threshold: int = config.COLLAPSE_THRESHOLD
    max_nodes: int = config.MAX_NODES
    wrapper_rules: Tuple[Tuple[str, str], ...] = tuple(config.WRAPPER_RULES)
    dependency_dirs: Tuple[str, ...] = tuple(sorted(config.DEPENDENCY_DIRS))
    extra_ignores: Tuple[str, ...] = field(default_factory=tuple)

    def with_overrides(self, **overrides: Any) -> "AnalysisSettings":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["wrapper_rules"] = [list(rule) for rule in self.wrapper_rules]
        data["dependency_dirs"] = list(self.dependency_dirs)
        data["extra_ignores"] = list(self.extra_ignores)
        return data


def load_full_config(config_file: Optional[Path] = None) -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    path = config_file or config.CONFIG_FILE
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}


def load_settings(config_file: Optional[Path] = None) -> AnalysisSettings:
    """Build :class:`AnalysisSettings` from the ``[simplifier]`` and ``[graph]`` tables.

    Missing keys keep their defaults; values of the wrong type are logged
    and skipped.
    """
    raw = load_full_config(config_file)
    simplifier = raw.get("simplifier", {}) or {}
    graph = raw.get("graph", {}) or {}

    settings = AnalysisSettings()
    changes: Dict[str, Any] = {}

    for key in ("max_depth", "max_properties", "collapse_threshold", "max_nodes"):
        if key not in simplifier:
            continue
        value = simplifier[key]
        if isinstance(value, int) and not isinstance(value, bool) and value > 0:
            changes[key] = value
        else:
            logger.warning("Config [simplifier].%s must be a positive integer, got %r", key, value)

    wrappers = simplifier.get("wrappers")
    if wrappers is not None:
        rules = _parse_wrapper_rules(wrappers)
        if rules is not None:
            changes["wrapper_rules"] = rules

    dep_dirs = graph.get("dependency_dirs")
    if dep_dirs is not None:
        if _is_str_list(dep_dirs):
            changes["dependency_dirs"] = tuple(sorted(set(dep_dirs)))
        else:
            logger.warning("Config [graph].dependency_dirs must be a list of strings")

    ignores = graph.get("ignore")
    if ignores is not None:
        if _is_str_list(ignores):
            changes["extra_ignores"] = tuple(ignores)
        else:
            logger.warning("Config [graph].ignore must be a list of strings")

    return settings.with_overrides(**changes)


def save_settings(settings: AnalysisSettings, config_file: Optional[Path] = None) -> bool:
    """Write *settings* back to the TOML file, preserving unrelated sections."""
    path = config_file or config.CONFIG_FILE
    full = load_full_config(path)
    full["simplifier"] = {
        "max_depth": settings.max_depth,
        "max_properties": settings.max_properties,
        "collapse_threshold": settings.collapse_threshold,
        "max_nodes": settings.max_nodes,
        "wrappers": [{"pattern": p, "replace": r} for p, r in settings.wrapper_rules],
    }
    full["graph"] = {
        "dependency_dirs": list(settings.dependency_dirs),
        "ignore": list(settings.extra_ignores),
    }
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            toml.dump(full, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config file %s: %s", path, exc)
        return False


def _parse_wrapper_rules(value: Any) -> Optional[Tuple[Tuple[str, str], ...]]:
    if not isinstance(value, list):
        logger.warning("Config [simplifier].wrappers must be a list of tables")
        return None
    rules: List[Tuple[str, str]] = []
    for entry in value:
        if (
            isinstance(entry, dict)
            and isinstance(entry.get("pattern"), str)
            and isinstance(entry.get("replace"), str)
        ):
            rules.append((entry["pattern"], entry["replace"]))
        else:
            logger.warning("Skipping malformed wrapper rule %r", entry)
    return tuple(rules)


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)
