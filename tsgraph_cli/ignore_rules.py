"""Ignore-rule compiler: turns scattered ``.gitignore`` files into one matcher.

Every pattern is rewritten relative to the invocation root so a single
:class:`pathspec.GitIgnoreSpec` can answer "is this path excluded?":

* patterns declared at the root are used verbatim;
* patterns declared in a sub-directory ``d`` are prefixed with ``d`` (anchored
  ``/p`` becomes ``d/p``, anything else becomes ``d/**/p``);
* patterns declared above the root only survive when unanchored, and then
  match anywhere below the root.

Rules are ordered from the coarsest scope to the finest one, so under
gitignore's last-match-wins rule the closest ``.gitignore`` decides.
"""

from __future__ import annotations

import glob as globlib
import logging
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

import pathspec

from . import config
from .models import IgnoreRule, relative_to_root

logger = logging.getLogger(__name__)


class IgnoreRuleSet:
    """Read-only set of compiled ignore rules for one invocation."""

    def __init__(
        self,
        rules: Sequence[IgnoreRule],
        root: Path,
        extra_patterns: Iterable[str] = (),
    ) -> None:
        self.root = root
        self.rules: Tuple[IgnoreRule, ...] = tuple(rules)
        patterns: List[str] = []
        for rule in self.rules:
            patterns.extend(normalize_pattern(rule.pattern, rule.origin, root))
        patterns.extend(config.ALWAYS_IGNORED)
        patterns.extend(extra_patterns)
        self.patterns: Tuple[str, ...] = tuple(patterns)
        self._spec = pathspec.GitIgnoreSpec.from_lines(self.patterns)

    def is_ignored(self, path: Path, is_dir: bool = False) -> bool:
        rel = relative_to_root(path, self.root)
        if rel == "." or rel.startswith("../") or rel == "..":
            return False
        if is_dir:
            rel += "/"
        return self._spec.match_file(rel)

    def __len__(self) -> int:
        return len(self.rules)


def compile_ignore_rules(
    search_dirs: Iterable[Path],
    root: Path,
    extra_patterns: Iterable[str] = (),
) -> IgnoreRuleSet:
    """Collect and compile every ignore file relevant to *search_dirs*.

    A file that cannot be read is logged and skipped; it never aborts
    compilation.
    """
    root = root.resolve()
    rules: List[IgnoreRule] = []
    for ignore_file in find_ignore_files(search_dirs, root):
        try:
            content = ignore_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Error reading %s: %s", ignore_file, exc)
            continue
        for line in content.splitlines():
            pattern = line.strip()
            if not pattern or pattern.startswith("#"):
                continue
            rules.append(IgnoreRule(pattern=pattern, origin=ignore_file.parent))
    logger.debug("Compiled %d ignore rules under %s", len(rules), root)
    return IgnoreRuleSet(rules, root, extra_patterns)


def find_ignore_files(search_dirs: Iterable[Path], root: Path) -> List[Path]:
    """Return ignore files ordered from the coarsest scope to the finest."""
    inside: set = {root}
    for directory in search_dirs:
        current = directory.resolve()
        while _is_within(current, root):
            inside.add(current)
            if current == root:
                break
            current = current.parent

    above: List[Path] = []
    current = root
    while current.parent != current:
        current = current.parent
        above.append(current)

    ordered = list(reversed(above))
    ordered.extend(sorted(inside, key=lambda p: (len(p.parts), str(p))))

    found: List[Path] = []
    for directory in ordered:
        candidate = directory / config.IGNORE_FILE_NAME
        if candidate.is_file():
            found.append(candidate)
    return found


def normalize_pattern(pattern: str, origin: Path, root: Path) -> List[str]:
    """Rewrite one pattern so it is relative to *root*."""
    negated = pattern.startswith("!")
    body = pattern[1:] if negated else pattern
    if body.startswith("./"):
        body = body[2:]
    if not body:
        return []
    prefix = "!" if negated else ""

    rel_dir = relative_to_root(origin, root)
    if rel_dir == ".":
        return [prefix + body]
    if rel_dir.startswith(".."):
        if body.startswith("/"):
            # anchored to an unrelated ancestor tree
            return []
        return [prefix + body, prefix + "**/" + body]
    if body.startswith("/"):
        return [f"{prefix}{rel_dir}{body}"]
    return [f"{prefix}{rel_dir}/**/{body}"]


def search_dirs_for_globs(globs: Iterable[str], root: Path) -> List[Path]:
    """The directory each glob would start walking from."""
    dirs: List[Path] = []
    for pattern in globs:
        base = static_prefix(pattern)
        candidate = Path(base) if Path(base).is_absolute() else root / base
        if not globlib.has_magic(pattern) and candidate.is_file():
            candidate = candidate.parent
        dirs.append(candidate)
    return dirs


def static_prefix(pattern: str) -> str:
    """Leading path components of *pattern* that contain no glob magic."""
    parts = pattern.split("/")
    fixed: List[str] = []
    for part in parts[:-1]:
        if globlib.has_magic(part):
            break
        fixed.append(part)
    else:
        if parts and not globlib.has_magic(parts[-1]):
            fixed.append(parts[-1])
    if not fixed:
        return "."
    if fixed == [""]:
        return "/"
    return "/".join(fixed)


def _is_within(path: Path, root: Path) -> bool:
    return path == root or root in path.parents

