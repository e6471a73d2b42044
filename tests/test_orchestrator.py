"""Tests for the invocation orchestrator."""

import logging
from pathlib import Path

import pytest

from tsgraph_cli import orchestrator as orchestrator_module
from tsgraph_cli.config_manager import AnalysisSettings
from tsgraph_cli.errors import CallerError
from tsgraph_cli.orchestrator import Orchestrator, require_str_list


class TestArgumentValidation:
    """Malformed arguments are rejected before any I/O."""

    @pytest.fixture(autouse=True)
    def _no_provider(self, monkeypatch):
        def forbidden():
            raise AssertionError("provider must not be created for invalid input")

        monkeypatch.setattr(orchestrator_module, "TypeScriptProvider", forbidden)

    @pytest.mark.parametrize("value", [None, "src/a.ts", ["ok", 3], {"a": 1}])
    def test_require_str_list_rejects(self, value):
        with pytest.raises(CallerError):
            require_str_list(value, "globs")

    def test_require_str_list_accepts_tuples(self):
        assert require_str_list(("a", "b"), "globs") == ["a", "b"]

    def test_operations_reject_before_io(self, temp_dir: Path):
        orch = Orchestrator(root=temp_dir)
        with pytest.raises(CallerError):
            orch.forward_closure("src/*.ts")
        with pytest.raises(CallerError):
            orch.transitive_dependents(None)
        with pytest.raises(CallerError):
            orch.extract(["a.ts"], name_filters="User")
        with pytest.raises(CallerError):
            orch.analyze([1, 2])

    def test_caller_error_is_value_error(self):
        with pytest.raises(ValueError):
            require_str_list(None, "paths")


class TestOperations:
    """Each call is an independent session."""

    def test_forward_closure(self, chain_project: Path, provider):
        assert Orchestrator(root=chain_project).forward_closure(["src/a.ts"]) == [
            "src/a.ts", "src/b.ts", "src/c.ts",
        ]

    def test_forward_graph(self, chain_project: Path, provider):
        graph = Orchestrator(root=chain_project).forward_graph(["src/a.ts"])
        assert [(s.relative, d.relative) for s, d in graph.edges()] == [
            ("src/a.ts", "src/b.ts"),
            ("src/b.ts", "src/c.ts"),
        ]

    def test_no_state_survives_between_calls(self, chain_project: Path, provider):
        orch = Orchestrator(root=chain_project)
        assert orch.forward_closure(["src/lonely.ts"]) == ["src/lonely.ts"]

        (chain_project / "src" / "lonely.ts").write_text("import { c } from './c';\n")
        assert orch.forward_closure(["src/lonely.ts"]) == ["src/c.ts", "src/lonely.ts"]

    def test_transitive_dependents_with_explicit_root(self, chain_project: Path, temp_dir: Path, provider):
        orch = Orchestrator(root=temp_dir)
        result = orch.transitive_dependents(["src/c.ts"], root=chain_project)
        assert result == {"files": ["src/a.ts", "src/b.ts"], "count": 2}

    def test_extra_ignores_from_settings(self, chain_project: Path, provider):
        settings = AnalysisSettings(extra_ignores=("src/b.ts",))
        assert Orchestrator(root=chain_project, settings=settings).forward_closure(["src/a.ts"]) == ["src/a.ts"]

    def test_extract_returns_plain_dicts(self, sample_project_path: Path, provider):
        results = Orchestrator(root=sample_project_path).extract(["src/models.ts"], name_filters=["Role"])
        assert results == [{
            "file": "src/models.ts",
            "exports": [{
                "name": "Role",
                "kind": "type-alias",
                "declaration": "type Role = 'admin' | 'member' | 'guest';",
                "simplified": "'admin' | 'member' | 'guest'",
            }],
        }]

    def test_analyze_skips_declaration_files(self, make_project, provider):
        root = make_project({
            "src/a.ts": "export function a() { return 1; }\n",
            "src/types.d.ts": "export declare function b(): void;\n",
        })
        report = Orchestrator(root=root).analyze(["src/*.ts"])
        assert [f["path"] for f in report["files"]] == ["src/a.ts"]
        assert report["summary"] == {"functions": 1, "total": 1}

    def test_analyze_empty_input_warns(self, chain_project: Path, provider, caplog):
        with caplog.at_level(logging.WARNING):
            report = Orchestrator(root=chain_project).analyze(["nothing/*.ts"])
        assert report == {"files": [], "summary": {"total": 0}}
        assert "No files found" in caplog.text
