"""Exception taxonomy shared by every tsgraph component."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class TsGraphError(Exception):
    """Base class for tsgraph errors."""


class CallerError(TsGraphError, ValueError):
    """Malformed arguments; raised before any I/O happens."""


class ProviderUnavailableError(TsGraphError):
    """tree-sitter or the TypeScript grammar cannot be loaded. Fatal."""


class ProviderFailure(TsGraphError):
    """One file or declaration could not be parsed or typed."""

    def __init__(self, message: str, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.path = path


class ManifestReadFailure(TsGraphError):
    """A package.json / workspace manifest is unreadable or malformed."""

    def __init__(self, manifest: Path, reason: str) -> None:
        super().__init__(f"{manifest}: {reason}")
        self.manifest = manifest
        self.reason = reason
