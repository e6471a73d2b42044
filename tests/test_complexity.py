"""Tests for cyclomatic complexity and the declaration catalogue."""

from pathlib import Path

import pytest

from tsgraph_cli.complexity import DeclarationAnalyzer, complexity, summarize
from tsgraph_cli.models import FileHandle
from tsgraph_cli.parser import walk


def _function_body(provider, source: str):
    module = provider.parse_source(source)
    for node in walk(module.root):
        if node.type == "function_declaration":
            return node.child_by_field_name("body")
    raise AssertionError("no function in source")


@pytest.mark.parametrize(
    "body, expected",
    [
        ("return 1;", 1),
        ("if (a) { return 1; }", 2),
        ("if (a) {} else if (b) {} else {}", 3),
        ("return a ? 1 : 2;", 2),
        ("while (a) { a--; }", 2),
        ("do { a--; } while (a);", 2),
        ("for (let i = 0; i < 3; i++) {}", 2),
        ("for (const k in a) {}", 2),
        ("for (const v of a) {}", 2),
        ("switch (a) { case 1: break; case 2: break; default: break; }", 3),
        ("try { a(); } catch (e) { b(); }", 2),
        ("return a && b;", 2),
        ("return a || b;", 2),
        ("return a ?? b;", 1),
        ("if (a && b && c) { return 1; }", 4),
    ],
)
def test_complexity_counts_decision_points(provider, body, expected):
    source = f"function f(a: any, b: any, c: any) {{ {body} }}\n"
    assert complexity(_function_body(provider, source)) == expected


def test_nested_functions_count_towards_enclosing(provider):
    source = (
        "function outer(xs: number[]) {\n"
        "  return xs.map((x) => (x > 0 ? x : -x));\n"
        "}\n"
    )
    assert complexity(_function_body(provider, source)) == 2


class TestDeclarationAnalyzer:
    """Per-file declaration items."""

    def _analyze(self, make_project, provider, source: str):
        root = make_project({"mod.ts": source})
        handle = FileHandle.from_path(root / "mod.ts", root)
        return DeclarationAnalyzer(provider).analyze_file(handle)

    def test_items_in_line_order(self, make_project, provider):
        result = self._analyze(make_project, provider, (
            "export type Id = string;\n"
            "interface Shape extends Base<number>, Named {\n"
            "  area: number;\n"
            "  describe(): string;\n"
            "}\n"
            "export enum Mode { On = 1, Off }\n"
            "function helper(x: number, y?: string): void {}\n"
        ))
        assert [(i.kind, i.name, i.line) for i in result.items] == [
            ("type", "Id", 1),
            ("interface", "Shape", 2),
            ("enum", "Mode", 6),
            ("function", "helper", 7),
        ]
        as_dicts = [i.to_dict() for i in result.items]
        assert as_dicts[0]["definition"] == "string"
        assert as_dicts[0]["exported"] is True
        assert as_dicts[1]["exported"] is False
        assert as_dicts[1]["properties"] == ["area: number", "describe: string"]
        assert as_dicts[1]["extends"] == ["Base", "Named"]
        assert as_dicts[2]["members"] == ["On = 1", "Off"]
        assert as_dicts[3]["parameters"] == ["x: number", "y: string"]
        assert as_dicts[3]["returnType"] == "void"
        assert as_dicts[3]["complexity"] == 1

    def test_class_members_and_methods(self, make_project, provider):
        result = self._analyze(make_project, provider, (
            "export class Repo extends Base implements Store, Closeable {\n"
            "  private cache = new Map();\n"
            "  name: string;\n"
            "  lookup(id: string): string | undefined {\n"
            "    return this.cache.has(id) ? this.cache.get(id) : undefined;\n"
            "  }\n"
            "}\n"
        ))
        cls, method = result.items
        assert cls.kind == "class"
        assert cls.extends == ["Base"]
        assert cls.implements == ["Store", "Closeable"]
        assert cls.members == ["private cache (property)", "name (property)", "lookup (method)"]

        assert method.kind == "method"
        assert method.name == "lookup"
        assert method.line == 4
        assert method.exported is None
        assert method.complexity == 2
        assert method.return_type == "string | undefined"

    def test_declaration_only_function_has_no_complexity(self, make_project, provider):
        result = self._analyze(make_project, provider, "export declare function f(a: number): void;\n")
        (item,) = result.items
        assert item.kind == "function"
        assert item.exported is True
        assert item.complexity is None

    def test_unreadable_file_reports_error(self, temp_dir: Path, provider):
        handle = FileHandle(temp_dir / "gone.ts", "gone.ts")
        result = DeclarationAnalyzer(provider).analyze_file(handle)
        assert result.items == []
        assert result.error


class TestSampleProject:
    """The bundled sample project end to end."""

    def _analyze_all(self, sample_project_path: Path, provider):
        analyzer = DeclarationAnalyzer(provider)
        files = sorted((sample_project_path / "src").rglob("*.ts"))
        return [analyzer.analyze_file(FileHandle.from_path(f, sample_project_path)) for f in files]

    def test_function_complexities(self, sample_project_path: Path, provider):
        results = self._analyze_all(sample_project_path, provider)
        scores = {
            (item.kind, item.name): item.complexity
            for result in results
            for item in result.items
            if item.kind in ("function", "method")
        }
        assert scores == {
            ("method", "add"): 1,
            ("method", "find"): 3,
            ("method", "label"): 2,
            ("function", "canEdit"): 3,
            ("function", "describeRole"): 3,
            ("function", "formatName"): 2,
        }

    def test_summary(self, sample_project_path: Path, provider):
        summary = summarize(self._analyze_all(sample_project_path, provider))
        assert summary == {
            "classes": 1,
            "enums": 1,
            "functions": 3,
            "interfaces": 3,
            "methods": 3,
            "types": 2,
            "total": 13,
        }


def test_summary_of_nothing():
    assert summarize([]) == {"total": 0}
