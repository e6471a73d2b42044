"""Command groups registered on the main ``tsg`` application.

  tsg config    show and persist analysis settings
"""

from __future__ import annotations

import typer

# ── Configuration group ──────────────────────────────────────
config_grp = typer.Typer(
    help="⚙️  Configuration — simplifier limits and graph settings.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
