"""Module resolution across local files, tsconfig path aliases and packages.

``ModuleResolver.resolve`` maps an import specifier to a :class:`FileHandle`
or to an unresolved :class:`ResolutionResult` that records which strategies
were tried. An unresolved result is an ordinary outcome: callers treat it as
"this edge does not exist".

Bare specifiers first go through the ``paths`` and ``baseUrl`` options of the
nearest ``tsconfig.json`` (following ``extends``), then workspace packages,
then installed packages.

Manifests (``package.json``, ``pnpm-workspace.yaml``) and path aliases are
cached per resolver, and one resolver lives for exactly one invocation.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import yaml

from . import config
from .errors import ManifestReadFailure
from .models import FileHandle, ResolutionResult

logger = logging.getLogger(__name__)

LOCAL = "local"
PATH_ALIAS = "tsconfig-paths"
WORKSPACE = "workspace-package"
INSTALLED = "installed-package"

NODE_BUILTINS = {
    "assert", "async_hooks", "buffer", "child_process", "cluster", "console",
    "constants", "crypto", "dgram", "dns", "domain", "events", "fs", "http",
    "http2", "https", "inspector", "module", "net", "os", "path", "perf_hooks",
    "process", "punycode", "querystring", "readline", "repl", "stream",
    "string_decoder", "sys", "timers", "tls", "trace_events", "tty", "url",
    "util", "v8", "vm", "wasi", "worker_threads", "zlib",
}

WORKSPACE_SUBPATH_LOCATIONS: Tuple[str, ...] = (
    "build/types/src/{sub}.d.ts",
    "build/types/src/{sub}/index.d.ts",
    "build/dist/src/{sub}.d.ts",
    "dist/{sub}.d.ts",
    "dist/{sub}/index.d.ts",
    "{sub}.d.ts",
    "{sub}/index.d.ts",
    "src/{sub}.ts",
    "src/{sub}/index.ts",
)

WORKSPACE_MAIN_LOCATIONS: Tuple[str, ...] = (
    "build/types/src/index.d.ts",
    "build/dist/src/index.d.ts",
    "dist/index.d.ts",
    "index.d.ts",
    "src/index.ts",
    "src/index.d.ts",
)

INSTALLED_SUBPATH_LOCATIONS: Tuple[str, ...] = (
    "dist/{sub}.d.ts",
    "dist/{sub}/index.d.ts",
    "{sub}.d.ts",
    "{sub}/index.d.ts",
    "lib/{sub}.d.ts",
    "lib/{sub}/index.d.ts",
)

EXPORT_CONDITIONS: Tuple[str, ...] = ("types", "import", "require", "node", "default")

TSCONFIG_NAME = "tsconfig.json"

# Strings are matched so that "//" inside a value is not taken for a comment
_JSONC_NOISE = re.compile(r'"(?:\\.|[^"\\])*"|//[^\n]*|/\*.*?\*/|,(?=\s*[}\]])', re.DOTALL)


def is_relative_specifier(specifier: str) -> bool:
    return specifier.startswith(("./", "../", "/")) or specifier in (".", "..")


def split_package_specifier(specifier: str) -> Tuple[str, str]:
    """``@scope/pkg/a/b`` -> (``@scope/pkg``, ``a/b``); ``pkg/a`` -> (``pkg``, ``a``)."""
    parts = specifier.split("/")
    if parts[0].startswith("@") and len(parts) >= 2:
        return "/".join(parts[:2]), "/".join(parts[2:])
    return parts[0], "/".join(parts[1:])


@dataclass
class PathAliases:
    """``baseUrl`` and ``paths`` in effect for the files under one tsconfig."""

    base_url: Optional[Path]
    paths_base: Path
    patterns: List[Tuple[str, List[str]]] = field(default_factory=list)

    def match(self, specifier: str) -> Optional[Tuple[List[str], str]]:
        """Targets of the best pattern for *specifier* and the text ``*`` stands for.

        An exact pattern wins; otherwise the wildcard pattern with the
        longest prefix does.
        """
        best: Optional[Tuple[List[str], str]] = None
        best_prefix = -1
        for pattern, targets in self.patterns:
            if "*" not in pattern:
                if pattern == specifier:
                    return targets, ""
                continue
            prefix, _, suffix = pattern.partition("*")
            if (
                len(specifier) >= len(prefix) + len(suffix)
                and specifier.startswith(prefix)
                and specifier.endswith(suffix)
                and len(prefix) > best_prefix
            ):
                best = (targets, specifier[len(prefix):len(specifier) - len(suffix)])
                best_prefix = len(prefix)
        return best


class ModuleResolver:
    """Resolve import specifiers relative to one invocation root."""

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()
        self._manifests: Dict[Path, Optional[Dict[str, Any]]] = {}
        self._workspace_members: Optional[List[Path]] = None
        self._aliases: Dict[Path, Optional[PathAliases]] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(self, specifier: str, from_file: Path) -> ResolutionResult:
        if not specifier:
            return ResolutionResult(specifier)

        if is_relative_specifier(specifier):
            base = Path(specifier) if specifier.startswith("/") else from_file.parent / specifier
            found = self.resolve_path(base)
            return self._result(specifier, found, (LOCAL,))

        if specifier.startswith("node:") or split_package_specifier(specifier)[0] in NODE_BUILTINS:
            return ResolutionResult(specifier)

        applied, found = self.resolve_path_alias(specifier, from_file)
        attempted: Tuple[str, ...] = (PATH_ALIAS,) if applied else ()
        if found is not None:
            return self._result(specifier, found, attempted)

        found = self.resolve_workspace_package(specifier)
        attempted += (WORKSPACE,)
        if found is not None:
            return self._result(specifier, found, attempted)

        found = self.resolve_installed_package(specifier, from_file.parent)
        attempted += (INSTALLED,)
        if found is not None:
            return self._result(specifier, found, attempted)

        logger.debug("Unresolved import '%s' from %s", specifier, from_file)
        return ResolutionResult(specifier, None, attempted)

    def resolve_package(self, specifier: str, base_dir: Path) -> Optional[Path]:
        """Workspace first, then installed packages; used for package inputs."""
        found = self.resolve_workspace_package(specifier)
        if found is None:
            found = self.resolve_installed_package(specifier, base_dir)
        return found

    # ------------------------------------------------------------------
    # Local files
    # ------------------------------------------------------------------

    def resolve_path(self, base: Path) -> Optional[Path]:
        """Literal path, then conventional extensions, then directory entries."""
        if base.is_file():
            return base

        for ext in config.RESOLVE_EXTENSIONS:
            candidate = base.with_name(base.name + ext)
            if candidate.is_file():
                return candidate

        swaps = config.ESM_EXTENSION_SWAPS.get(base.suffix)
        if swaps:
            for ext in swaps:
                candidate = base.with_suffix(ext)
                if candidate.is_file():
                    return candidate

        if base.is_dir():
            return self._resolve_directory(base)
        return None

    def _resolve_directory(self, directory: Path) -> Optional[Path]:
        manifest = self.read_manifest_quietly(directory / "package.json")
        if manifest:
            for key in ("types", "typings", "main"):
                entry = manifest.get(key)
                if isinstance(entry, str) and entry:
                    target = directory / entry
                    found = target if target.is_file() else self._resolve_file_only(target)
                    if found is not None:
                        return found
        for ext in config.RESOLVE_EXTENSIONS:
            candidate = directory / f"index{ext}"
            if candidate.is_file():
                return candidate
        return None

    def _resolve_file_only(self, base: Path) -> Optional[Path]:
        for ext in config.RESOLVE_EXTENSIONS:
            candidate = base.with_name(base.name + ext)
            if candidate.is_file():
                return candidate
        return None

    # ------------------------------------------------------------------
    # tsconfig path aliases
    # ------------------------------------------------------------------

    def resolve_path_alias(self, specifier: str, from_file: Path) -> Tuple[bool, Optional[Path]]:
        """Apply ``compilerOptions.paths`` then ``baseUrl`` of the nearest tsconfig.

        Returns ``(applied, path)``; *applied* is False when no tsconfig
        with either option governs *from_file*.
        """
        aliases = self.path_aliases(from_file.parent)
        if aliases is None:
            return False, None

        matched = aliases.match(specifier)
        if matched is not None:
            targets, capture = matched
            for target in targets:
                found = self.resolve_path(aliases.paths_base / target.replace("*", capture, 1))
                if found is not None:
                    return True, found

        if aliases.base_url is not None:
            return True, self.resolve_path(aliases.base_url / specifier)
        return True, None

    def path_aliases(self, directory: Path) -> Optional[PathAliases]:
        """Aliases of the nearest ``tsconfig.json`` at or above *directory*."""
        directory = directory.resolve()
        if directory in self._aliases:
            return self._aliases[directory]

        candidate = directory / TSCONFIG_NAME
        if candidate.is_file():
            aliases = self._load_aliases(candidate)
        elif directory.parent == directory:
            aliases = None
        else:
            aliases = self.path_aliases(directory.parent)
        self._aliases[directory] = aliases
        return aliases

    def _load_aliases(self, tsconfig: Path) -> Optional[PathAliases]:
        base_url: Optional[Path] = None
        paths: Optional[Dict[str, Any]] = None
        paths_base: Optional[Path] = None

        # Walk the extends chain child first; the nearest definition of each option wins
        seen = set()
        current: Optional[Path] = tsconfig
        while current is not None and current not in seen:
            seen.add(current)
            try:
                data = self.read_tsconfig(current)
            except ManifestReadFailure as exc:
                logger.warning("Ignoring unreadable tsconfig %s", exc)
                break
            options = data.get("compilerOptions")
            if isinstance(options, dict):
                if base_url is None and isinstance(options.get("baseUrl"), str):
                    base_url = (current.parent / options["baseUrl"]).resolve()
                if paths is None and isinstance(options.get("paths"), dict):
                    paths = options["paths"]
                    paths_base = current.parent.resolve()
            current = self._extended_config(current, data.get("extends"))

        if base_url is None and paths is None:
            return None
        patterns: List[Tuple[str, List[str]]] = []
        for pattern, targets in (paths or {}).items():
            if isinstance(targets, list):
                patterns.append((pattern, [t for t in targets if isinstance(t, str)]))
        logger.debug("Path aliases from %s: baseUrl=%s, %d pattern(s)", tsconfig, base_url, len(patterns))
        return PathAliases(base_url, base_url or paths_base or tsconfig.parent, patterns)

    def _extended_config(self, tsconfig: Path, extends: Any) -> Optional[Path]:
        # Several bases in a list apply in order, the last one winning; follow that one
        if isinstance(extends, list):
            extends = extends[-1] if extends else None
        if not isinstance(extends, str) or not extends:
            return None
        if is_relative_specifier(extends):
            target = tsconfig.parent / extends
            if not target.is_file() and target.suffix != ".json":
                target = target.with_name(target.name + ".json")
        else:
            name, sub = split_package_specifier(extends)
            package_dir = self._find_installed(name, tsconfig.parent)
            if package_dir is None:
                logger.debug("tsconfig %s extends missing package '%s'", tsconfig, extends)
                return None
            target = package_dir / (sub or TSCONFIG_NAME)
            if not target.is_file() and target.suffix != ".json":
                target = target.with_name(target.name + ".json")
        return target.resolve() if target.is_file() else None

    def read_tsconfig(self, path: Path) -> Dict[str, Any]:
        """Parsed ``tsconfig.json``; comments and trailing commas are allowed.

        Raises :class:`ManifestReadFailure` when the file cannot be read or is
        not a JSON object.
        """
        try:
            text = path.read_text(encoding="utf-8")
            data = json.loads(_JSONC_NOISE.sub(_keep_strings, text))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ManifestReadFailure(path, str(exc)) from exc
        if not isinstance(data, dict):
            raise ManifestReadFailure(path, "tsconfig is not a JSON object")
        return data

    # ------------------------------------------------------------------
    # Workspace packages
    # ------------------------------------------------------------------

    def resolve_workspace_package(self, specifier: str) -> Optional[Path]:
        name, sub = split_package_specifier(specifier)
        for member in self.workspace_members():
            manifest = self.read_manifest_quietly(member / "package.json")
            if not manifest or manifest.get("name") != name:
                continue
            if sub:
                found = _first_existing(member, WORKSPACE_SUBPATH_LOCATIONS, sub)
            else:
                found = self._manifest_types(member, manifest)
                if found is None:
                    found = _first_existing(member, WORKSPACE_MAIN_LOCATIONS)
            return found
        return None

    def workspace_members(self) -> List[Path]:
        """Member package directories declared by the enclosing workspace."""
        if self._workspace_members is not None:
            return self._workspace_members

        members: List[Path] = []
        ws_root, patterns = self._find_workspace_root()
        if ws_root is not None:
            seen = set()
            for pattern in patterns:
                if pattern.startswith("!"):
                    continue
                pattern = pattern.rstrip("/")
                if pattern.startswith("./"):
                    pattern = pattern[2:]
                for candidate in sorted(ws_root.glob(pattern)):
                    if not candidate.is_dir() or candidate in seen:
                        continue
                    if any(part in config.DEPENDENCY_DIRS for part in candidate.parts):
                        continue
                    seen.add(candidate)
                    members.append(candidate)
        self._workspace_members = members
        return members

    def _find_workspace_root(self) -> Tuple[Optional[Path], List[str]]:
        current = self.root
        while True:
            manifest = self.read_manifest_quietly(current / "package.json")
            patterns = _workspace_patterns(manifest) if manifest else []
            pnpm = current / "pnpm-workspace.yaml"
            if pnpm.is_file():
                patterns = patterns + self._pnpm_patterns(pnpm)
            if patterns:
                return current, patterns
            if current.parent == current:
                return None, []
            current = current.parent

    def _pnpm_patterns(self, path: Path) -> List[str]:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
            logger.warning("Cannot read workspace manifest %s: %s", path, exc)
            return []
        packages = data.get("packages") if isinstance(data, dict) else None
        if not isinstance(packages, list):
            return []
        return [p for p in packages if isinstance(p, str)]

    # ------------------------------------------------------------------
    # Installed packages
    # ------------------------------------------------------------------

    def resolve_installed_package(self, specifier: str, start_dir: Path) -> Optional[Path]:
        name, sub = split_package_specifier(specifier)
        package_dir = self._find_installed(name, start_dir)
        if package_dir is None:
            return None
        manifest = self.read_manifest_quietly(package_dir / "package.json") or {}

        if sub:
            found = self._exports_entry(package_dir, manifest, f"./{sub}")
            if found is None:
                found = _first_existing(package_dir, INSTALLED_SUBPATH_LOCATIONS, sub)
            if found is None:
                found = self.resolve_path(package_dir / sub)
            return found

        found = self._manifest_types(package_dir, manifest)
        if found is None:
            found = self._exports_entry(package_dir, manifest, ".")
        if found is None:
            main = manifest.get("main")
            if isinstance(main, str) and main:
                found = self.resolve_path(package_dir / main)
        if found is None:
            found = _first_existing(package_dir, ("index.d.ts", "index.js"))
        return found

    def _find_installed(self, name: str, start_dir: Path) -> Optional[Path]:
        current = start_dir.resolve()
        while True:
            for dep_dir in sorted(config.DEPENDENCY_DIRS):
                candidate = current / dep_dir / name
                if (candidate / "package.json").is_file():
                    return candidate
            if current.parent == current:
                return None
            current = current.parent

    def _exports_entry(self, package_dir: Path, manifest: Dict[str, Any], key: str) -> Optional[Path]:
        exports = manifest.get("exports")
        if exports is None:
            return None
        if isinstance(exports, (str, list)) or (
            isinstance(exports, dict) and not any(k.startswith(".") for k in exports)
        ):
            entry = exports if key == "." else None
        else:
            entry = exports.get(key)
        target = _pick_condition(entry)
        if target is None:
            return None
        candidate = package_dir / target
        return candidate if candidate.is_file() else None

    # ------------------------------------------------------------------
    # Manifests
    # ------------------------------------------------------------------

    def _manifest_types(self, package_dir: Path, manifest: Dict[str, Any]) -> Optional[Path]:
        for key in ("types", "typings"):
            entry = manifest.get(key)
            if isinstance(entry, str) and entry:
                candidate = package_dir / entry
                if candidate.is_file():
                    return candidate
        return None

    def read_manifest(self, path: Path) -> Optional[Dict[str, Any]]:
        """Parsed ``package.json`` or None when absent.

        Raises :class:`ManifestReadFailure` when the file exists but cannot
        be read or is not a JSON object.
        """
        if path in self._manifests:
            cached = self._manifests[path]
            if cached is None and path.is_file():
                raise ManifestReadFailure(path, "previously failed to load")
            return cached
        if not path.is_file():
            self._manifests[path] = None
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            self._manifests[path] = None
            raise ManifestReadFailure(path, str(exc)) from exc
        if not isinstance(data, dict):
            self._manifests[path] = None
            raise ManifestReadFailure(path, "manifest is not a JSON object")
        self._manifests[path] = data
        return data

    def read_manifest_quietly(self, path: Path) -> Optional[Dict[str, Any]]:
        try:
            return self.read_manifest(path)
        except ManifestReadFailure as exc:
            logger.warning("Ignoring unreadable manifest %s", exc)
            return None

    def _result(self, specifier: str, found: Optional[Path], attempted: Sequence[str]) -> ResolutionResult:
        if found is None:
            return ResolutionResult(specifier, None, tuple(attempted))
        return ResolutionResult(specifier, FileHandle.from_path(found, self.root), tuple(attempted))


def _workspace_patterns(manifest: Dict[str, Any]) -> List[str]:
    workspaces = manifest.get("workspaces")
    if isinstance(workspaces, dict):
        workspaces = workspaces.get("packages")
    if not isinstance(workspaces, list):
        return []
    return [w for w in workspaces if isinstance(w, str)]


def _first_existing(base: Path, templates: Iterable[str], sub: str = "") -> Optional[Path]:
    for template in templates:
        candidate = base / template.format(sub=sub)
        if candidate.is_file():
            return candidate
    return None


def _pick_condition(entry: Any) -> Optional[str]:
    """First usable target of a conditional ``exports`` entry."""
    if isinstance(entry, str):
        return entry
    if isinstance(entry, list):
        for item in entry:
            picked = _pick_condition(item)
            if picked is not None:
                return picked
        return None
    if isinstance(entry, dict):
        for condition in EXPORT_CONDITIONS:
            if condition in entry:
                picked = _pick_condition(entry[condition])
                if picked is not None:
                    return picked
    return None


def _keep_strings(match: "re.Match[str]") -> str:
    text = match.group(0)
    return text if text.startswith('"') else ""
