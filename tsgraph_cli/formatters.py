"""Output helpers: JSON, YAML and Graphviz DOT renderings of results."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import yaml

from .dependency_graph import DependencyGraph


def to_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def to_yaml(data: Any) -> str:
    """Block-style YAML with keys in insertion order."""
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False, allow_unicode=True)


def export_dot(graph: DependencyGraph, output_file: Optional[Path] = None, focus: str = "") -> str:
    """Render *graph* as DOT; written to *output_file* when given.

    With *focus*, only edges touching a file whose path contains it are kept.
    """
    edges = list(graph.edges())
    if focus:
        focused = [(src, dst) for src, dst in edges if focus in src.relative or focus in dst.relative]
        if focused:
            edges = focused
            names = sorted({h.relative for pair in edges for h in pair})
        else:
            names = [h.relative for h in graph.nodes()]
    else:
        names = [h.relative for h in graph.nodes()]

    lines = ["digraph Dependencies {"]
    lines.append("  rankdir=LR;")
    for name in names:
        lines.append(f'  "{_esc(name)}";')
    for src, dst in edges:
        lines.append(f'  "{_esc(src.relative)}" -> "{_esc(dst.relative)}";')
    lines.append("}")

    doc = "\n".join(lines) + "\n"
    if output_file is not None:
        output_file.write_text(doc, encoding="utf-8")
    return doc


def _esc(text: str) -> str:
    return text.replace('"', '\\"')
