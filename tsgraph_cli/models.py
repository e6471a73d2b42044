"""Core data models shared by the graph, type and complexity layers."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union as TypingUnion


@dataclass(frozen=True)
class FileHandle:
    """A canonical file path; identity is the canonical path alone."""

    canonical: Path
    relative: str = field(compare=False)

    @classmethod
    def from_path(cls, path: Path, root: Path) -> "FileHandle":
        canonical = path.resolve()
        return cls(canonical=canonical, relative=relative_to_root(canonical, root))

    def __str__(self) -> str:
        return self.relative


def relative_to_root(path: Path, root: Path) -> str:
    """POSIX-style path of *path* relative to *root* (may climb with ``..``)."""
    return Path(os.path.relpath(path, root)).as_posix()


@dataclass(frozen=True)
class IgnoreRule:
    pattern: str
    origin: Path


@dataclass(frozen=True)
class ResolutionResult:
    specifier: str
    handle: Optional[FileHandle] = None
    attempted: Tuple[str, ...] = ()

    @property
    def resolved(self) -> bool:
        return self.handle is not None


# ---------------------------------------------------------------------------
# Simplified types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Primitive:
    text: str

    def render(self) -> Any:
        return self.text


@dataclass(frozen=True)
class Literal:
    text: str

    def render(self) -> Any:
        return self.text


@dataclass(frozen=True)
class NameReference:
    """Recursion break or depth-limit truncation."""

    text: str

    def render(self) -> Any:
        return self.text


@dataclass(frozen=True)
class Opaque:
    text: str

    def render(self) -> Any:
        return self.text


@dataclass(frozen=True)
class ArrayOf:
    element: "SimplifiedType"

    def render(self) -> Any:
        inner = self.element.render()
        if isinstance(inner, str):
            if isinstance(self.element, (Union, Intersection)):
                return f"({inner})[]"
            return f"{inner}[]"
        return [inner]


@dataclass(frozen=True)
class TupleOf:
    elements: Tuple["SimplifiedType", ...]

    def render(self) -> Any:
        parts = [e.render() for e in self.elements]
        if all(isinstance(p, str) for p in parts):
            return "[" + ", ".join(parts) + "]"
        return {"tuple": parts}


@dataclass(frozen=True)
class FunctionSig:
    params: Tuple[Tuple[str, "SimplifiedType"], ...]
    returns: "SimplifiedType"

    def render(self) -> Any:
        return {
            "params": {name: t.render() for name, t in self.params},
            "return": self.returns.render(),
        }


@dataclass(frozen=True)
class Union:
    members: Tuple["SimplifiedType", ...]

    def render(self) -> Any:
        parts = [m.render() for m in self.members]
        if all(isinstance(p, str) for p in parts):
            return " | ".join(parts)
        return {"union": parts}


@dataclass(frozen=True)
class Intersection:
    members: Tuple["SimplifiedType", ...]

    def render(self) -> Any:
        parts = [m.render() for m in self.members]
        if all(isinstance(p, str) for p in parts):
            return " & ".join(parts)
        return {"intersection": parts}


@dataclass(frozen=True)
class ObjectShape:
    properties: Tuple[Tuple[str, "SimplifiedType"], ...]
    truncated: bool = False

    def render(self) -> Any:
        out: Dict[str, Any] = {name: t.render() for name, t in self.properties}
        if self.truncated:
            out["..."] = "..."
        return out


SimplifiedType = TypingUnion[
    Primitive, Literal, NameReference, Opaque, ArrayOf, TupleOf,
    FunctionSig, Union, Intersection, ObjectShape,
]

TRUNCATED = NameReference("...")


# ---------------------------------------------------------------------------
# Export catalogue
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExportedSymbol:
    name: str
    kind: str
    declaration: Optional[str] = None
    simplified: Optional[SimplifiedType] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name, "kind": self.kind}
        if self.declaration is not None:
            out["declaration"] = self.declaration
        if self.simplified is not None:
            out["simplified"] = self.simplified.render()
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass
class FileExports:
    file: str
    exports: List[ExportedSymbol] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"file": self.file, "exports": [e.to_dict() for e in self.exports]}
        if self.error is not None:
            out["error"] = self.error
        return out


# ---------------------------------------------------------------------------
# Declaration analysis
# ---------------------------------------------------------------------------


@dataclass
class AnalysisItem:
    kind: str
    name: str
    file: str
    line: int
    exported: Optional[bool] = None
    properties: List[str] = field(default_factory=list)
    definition: Optional[str] = None
    extends: List[str] = field(default_factory=list)
    implements: List[str] = field(default_factory=list)
    members: List[str] = field(default_factory=list)
    parameters: List[str] = field(default_factory=list)
    return_type: Optional[str] = None
    complexity: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"kind": self.kind, "name": self.name, "line": self.line}
        if self.exported is not None:
            out["exported"] = self.exported
        if self.extends:
            out["extends"] = list(self.extends)
        if self.implements:
            out["implements"] = list(self.implements)
        if self.definition is not None:
            out["definition"] = self.definition
        if self.properties:
            out["properties"] = list(self.properties)
        if self.members:
            out["members"] = list(self.members)
        if self.parameters:
            out["parameters"] = list(self.parameters)
        if self.return_type is not None:
            out["returnType"] = self.return_type
        if self.complexity is not None:
            out["complexity"] = self.complexity
        return out


@dataclass
class FileAnalysis:
    path: str
    items: List[AnalysisItem] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"path": self.path, "items": [i.to_dict() for i in self.items]}
        if self.error is not None:
            out["error"] = self.error
        return out
