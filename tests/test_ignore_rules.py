"""Tests for the ignore-rule compiler."""

import logging
from pathlib import Path

from tsgraph_cli.ignore_rules import (
    IgnoreRuleSet,
    compile_ignore_rules,
    find_ignore_files,
    normalize_pattern,
    search_dirs_for_globs,
    static_prefix,
)
from tsgraph_cli.models import IgnoreRule


class TestNormalizePattern:
    """Patterns are rewritten relative to the invocation root."""

    def test_root_patterns_are_verbatim(self, temp_dir: Path):
        assert normalize_pattern("dist/", temp_dir, temp_dir) == ["dist/"]
        assert normalize_pattern("/build", temp_dir, temp_dir) == ["/build"]

    def test_subdirectory_patterns_are_prefixed(self, temp_dir: Path):
        origin = temp_dir / "pkg"
        assert normalize_pattern("*.log", origin, temp_dir) == ["pkg/**/*.log"]
        assert normalize_pattern("/build", origin, temp_dir) == ["pkg/build"]

    def test_negation_survives_prefixing(self, temp_dir: Path):
        origin = temp_dir / "pkg"
        assert normalize_pattern("!keep.log", origin, temp_dir) == ["!pkg/**/keep.log"]

    def test_ancestor_anchored_pattern_is_dropped(self, temp_dir: Path):
        root = temp_dir / "repo"
        assert normalize_pattern("/secret", temp_dir, root) == []

    def test_ancestor_unanchored_pattern_matches_anywhere(self, temp_dir: Path):
        root = temp_dir / "repo"
        assert normalize_pattern("*.tmp", temp_dir, root) == ["*.tmp", "**/*.tmp"]

    def test_leading_dot_slash_is_stripped(self, temp_dir: Path):
        assert normalize_pattern("./out", temp_dir, temp_dir) == ["out"]


class TestIgnoreRuleSet:
    """Matching behaviour of compiled rule sets."""

    def test_scoped_rules(self, make_project):
        root = make_project({
            ".gitignore": "dist/\n# a comment\n\n",
            "pkg/.gitignore": "*.gen.ts\n",
            "pkg/x.gen.ts": "",
            "x.gen.ts": "",
            "dist/a.ts": "",
        })
        rules = compile_ignore_rules([root / "pkg"], root)

        assert rules.is_ignored(root / "dist" / "a.ts")
        assert rules.is_ignored(root / "pkg" / "x.gen.ts")
        # a sibling scope never applies to the root
        assert not rules.is_ignored(root / "x.gen.ts")

    def test_closest_file_wins(self, make_project):
        root = make_project({
            ".gitignore": "*.log\n",
            "pkg/.gitignore": "!keep.log\n",
        })
        rules = compile_ignore_rules([root / "pkg"], root)

        assert rules.is_ignored(root / "pkg" / "other.log")
        assert not rules.is_ignored(root / "pkg" / "keep.log")

    def test_git_directory_always_ignored(self, temp_dir: Path):
        rules = IgnoreRuleSet([], temp_dir)
        assert rules.is_ignored(temp_dir / ".git" / "config")

    def test_paths_outside_root_never_match(self, temp_dir: Path):
        root = temp_dir / "repo"
        rules = IgnoreRuleSet([IgnoreRule("*", root)], root)
        assert not rules.is_ignored(temp_dir / "elsewhere.ts")

    def test_extra_patterns(self, temp_dir: Path):
        rules = IgnoreRuleSet([], temp_dir, extra_patterns=["fixtures/"])
        assert rules.is_ignored(temp_dir / "fixtures" / "a.ts")
        assert not rules.is_ignored(temp_dir / "src" / "a.ts")

    def test_unreadable_file_is_dropped(self, make_project, caplog):
        root = make_project({"pkg/a.ts": ""})
        (root / ".gitignore").write_text("*.ts\n", encoding="utf-8")
        (root / "pkg" / ".gitignore").write_bytes(b"\xff\xfe\xfa broken")

        with caplog.at_level(logging.WARNING):
            rules = compile_ignore_rules([root / "pkg"], root)

        assert "Error reading" in caplog.text
        # the readable file still counts
        assert rules.is_ignored(root / "pkg" / "a.ts")


def test_find_ignore_files_orders_coarse_to_fine(make_project):
    root = make_project({
        ".gitignore": "a\n",
        "one/two/.gitignore": "b\n",
        "one/.gitignore": "c\n",
    })
    found = [p for p in find_ignore_files([root / "one" / "two"], root) if root in p.parents]
    assert found == [
        root / ".gitignore",
        root / "one" / ".gitignore",
        root / "one" / "two" / ".gitignore",
    ]


def test_static_prefix():
    assert static_prefix("src/**/*.ts") == "src"
    assert static_prefix("*.ts") == "."
    assert static_prefix("src/a.ts") == "src/a.ts"


def test_search_dirs_for_literal_file(make_project):
    root = make_project({"src/a.ts": ""})
    assert search_dirs_for_globs(["src/a.ts", "lib/**/*.ts"], root) == [root / "src", root / "lib"]
