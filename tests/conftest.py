"""Pytest configuration and fixtures for tsgraph tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator

import pytest

from tsgraph_cli import config


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path_factory, monkeypatch):
    """Point the config file at a throwaway location for every test.

    Without this, a developer's ~/.tsgraph/config.toml would leak into the
    simplifier limits the tests assert on.
    """
    home = tmp_path_factory.mktemp("tsgraph_home")
    monkeypatch.setattr(config, "BASE_DIR", home)
    monkeypatch.setattr(config, "CONFIG_FILE", home / "config.toml")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp()).resolve()
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def make_project(temp_dir: Path) -> Callable[[Dict[str, str]], Path]:
    """Build a throwaway project from a ``{relative path: content}`` mapping."""

    def _make(files: Dict[str, str]) -> Path:
        root = temp_dir / "project"
        root.mkdir(parents=True, exist_ok=True)
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return root

    return _make


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to the sample TypeScript project."""
    return (Path(__file__).parent / "fixtures" / "sample_project").resolve()


@pytest.fixture
def provider():
    """A tree-sitter session; skips when the grammars are not installed."""
    pytest.importorskip("tree_sitter")
    pytest.importorskip("tree_sitter_typescript")
    from tsgraph_cli.parser import TypeScriptProvider

    session = TypeScriptProvider()
    yield session
    session.close()


@pytest.fixture
def chain_project(make_project) -> Path:
    """a.ts -> b.ts -> c.ts plus an unrelated file."""
    return make_project({
        "src/a.ts": "import { b } from './b';\nexport const a = b + 1;\n",
        "src/b.ts": "import { c } from './c';\nexport const b = c * 2;\n",
        "src/c.ts": "export const c = 1;\n",
        "src/lonely.ts": "export const lonely = true;\n",
    })
