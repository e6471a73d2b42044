"""Configuration paths and analysis defaults for tsgraph."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Tuple

BASE_DIR = Path(os.environ.get("TSGRAPH_HOME", str(Path.home() / ".tsgraph"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

# Type Simplifier limits
MAX_DEPTH = 10
MAX_PROPERTIES = 20
COLLAPSE_THRESHOLD = 10
# Type nodes expanded per export before the rest are shown by name
MAX_NODES = 1000

SOURCE_EXTENSIONS: Tuple[str, ...] = (
    ".ts", ".tsx", ".mts", ".cts", ".js", ".jsx", ".mjs", ".cjs",
)

# Probed in order when an import specifier has no extension
RESOLVE_EXTENSIONS: Tuple[str, ...] = (
    ".ts", ".tsx", ".d.ts", ".mts", ".cts", ".js", ".jsx", ".mjs", ".cjs", ".json",
)

# ESM-style "./foo.js" imports that actually point at TypeScript sources
ESM_EXTENSION_SWAPS: Dict[str, Tuple[str, ...]] = {
    ".js": (".ts", ".tsx", ".d.ts"),
    ".jsx": (".tsx",),
    ".mjs": (".mts", ".d.mts"),
    ".cjs": (".cts", ".d.cts"),
}

DEPENDENCY_DIRS = {"node_modules", "bower_components", "jspm_packages"}

ALWAYS_IGNORED: List[str] = [
    ".git", ".git/**", "**/.git", "**/.git/**",
    ".eslintcache", "**/.eslintcache",
]

IGNORE_FILE_NAME = ".gitignore"

# (regex, replacement) pairs applied to type text before it is shown
WRAPPER_RULES: List[Tuple[str, str]] = [
    (r"ZodObject<[^>]+>", "ZodObject"),
    (r"ZodArray<[^>]+>", "ZodArray"),
    (r"ZodOptional<[^>]+>", "ZodOptional"),
    (r"ZodDefault<[^>]+>", "ZodDefault"),
    (r"ZodType<[^>]+>", "ZodType"),
    (r"Server<[^>]*ClientToServerEvents[^>]*>", "SocketIOServer"),
    (r"Server<[^>]*DefaultEventsMap[^>]*>", "SocketIOServer"),
    (r"Socket<[^>]*DefaultEventsMap[^>]*>", "SocketIOSocket"),
    (r"TransactionSql<[^>]*PostgresType[^>]*>", "PostgresTransactionConnection"),
    (r"(?<![A-Za-z])Sql<[^>]*PostgresType[^>]*>", "PostgresConnection"),
]
