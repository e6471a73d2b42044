"""Typer-based CLI for tsgraph static analysis of TypeScript projects."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from . import __version__, config
from .cli_groups import config_grp
from .config_manager import AnalysisSettings, load_settings, save_settings
from .errors import CallerError, ProviderUnavailableError
from .formatters import export_dot, to_json, to_yaml
from .orchestrator import Orchestrator

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="🕸️  tsgraph — dependency graphs, export types and complexity for TypeScript.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(config_grp, name="config")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"tsgraph v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    # Log records go to stderr so stdout stays machine-readable
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )


@app.callback()
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Log resolution details to stderr."),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", min=1, help="Type simplifier depth limit."),
    max_properties: Optional[int] = typer.Option(
        None, "--max-properties", min=1, help="Properties shown per object type."
    ),
):
    """tsgraph: static analysis of TypeScript and JavaScript sources."""
    _configure_logging(verbose)
    ctx.obj = load_settings().with_overrides(max_depth=max_depth, max_properties=max_properties)


def _settings(ctx: typer.Context) -> AnalysisSettings:
    return ctx.obj if isinstance(ctx.obj, AnalysisSettings) else load_settings()


def _run(call: Callable[[], Any]) -> Any:
    """Map the fatal error classes onto CLI exits."""
    try:
        return call()
    except CallerError as exc:
        raise typer.BadParameter(str(exc))
    except ProviderUnavailableError as exc:
        err_console.print(f"[red]✗ {exc}[/red]")
        raise typer.Exit(code=1)


def _check_format(fmt: str, allowed: List[str]) -> str:
    fmt = fmt.lower()
    if fmt not in allowed:
        raise typer.BadParameter(f"Format must be one of: {', '.join(allowed)}")
    return fmt


@app.command("deps")
def deps(
    ctx: typer.Context,
    globs: List[str] = typer.Argument(..., help="Seed files or glob patterns."),
    fmt: str = typer.Option("list", "--format", "-f", help="Output format: list, json or dot."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write DOT output to this file."),
    focus: str = typer.Option("", "--focus", help="DOT only: keep edges touching paths containing this."),
):
    """Print the forward dependency closure of the seed files."""
    fmt = _check_format(fmt, ["list", "json", "dot"])
    orchestrator = Orchestrator(settings=_settings(ctx))

    if fmt == "dot":
        graph = _run(lambda: orchestrator.forward_graph(globs))
        doc = export_dot(graph, output, focus=focus)
        if output is None:
            typer.echo(doc, nl=False)
        else:
            typer.echo(f"Exported graph to {output}")
        return

    files = _run(lambda: orchestrator.forward_closure(globs))
    if fmt == "json":
        typer.echo(to_json(files))
    else:
        for path in files:
            typer.echo(path)


@app.command("inverse-deps")
def inverse_deps(
    ctx: typer.Context,
    globs: List[str] = typer.Argument(..., help="Target files or glob patterns."),
    root: Optional[Path] = typer.Option(
        None, "--root", "-r", exists=True, file_okay=False, help="Project root to scan (default: cwd)."
    ),
    fmt: str = typer.Option("list", "--format", "-f", help="Output format: list or json."),
):
    """Print every file that transitively imports the targets."""
    fmt = _check_format(fmt, ["list", "json"])
    orchestrator = Orchestrator(root=root, settings=_settings(ctx))
    result = _run(lambda: orchestrator.transitive_dependents(globs))

    if fmt == "json":
        typer.echo(to_json(result))
        return
    for path in result["files"]:
        typer.echo(path)


@app.command("types")
def types(
    ctx: typer.Context,
    paths: List[str] = typer.Argument(..., help="Files, directories or package names."),
    pwd: Optional[Path] = typer.Option(None, "--pwd", help="Directory relative paths and packages resolve from."),
    name_filter: Optional[List[str]] = typer.Option(
        None, "--filter", "-t", help="Only show exports with this name (repeatable)."
    ),
    fmt: str = typer.Option("json", "--format", "-f", help="Output format: json or yaml."),
):
    """Print exported declarations with their simplified types."""
    fmt = _check_format(fmt, ["json", "yaml"])
    orchestrator = Orchestrator(settings=_settings(ctx))
    results = _run(lambda: orchestrator.extract(paths, pwd=pwd, name_filters=name_filter or None))
    typer.echo(to_json(results) if fmt == "json" else to_yaml(results), nl=fmt == "json")


@app.command("analyze")
def analyze(
    ctx: typer.Context,
    globs: List[str] = typer.Argument(..., help="Files or glob patterns to analyze."),
    fmt: str = typer.Option("yaml", "--format", "-f", help="Output format: yaml or json."),
):
    """Catalogue declarations with cyclomatic complexity per function."""
    fmt = _check_format(fmt, ["yaml", "json"])
    orchestrator = Orchestrator(settings=_settings(ctx))
    report = _run(lambda: orchestrator.analyze(globs))
    typer.echo(to_yaml(report) if fmt == "yaml" else to_json(report), nl=fmt == "json")


# ===================================================================
# tsg config
# ===================================================================


@config_grp.command("show")
def config_show(ctx: typer.Context):
    """Show the effective analysis settings."""
    settings = _settings(ctx)

    table = Table(title="tsgraph settings", show_header=True, header_style="bold cyan")
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("max_depth", str(settings.max_depth))
    table.add_row("max_properties", str(settings.max_properties))
    table.add_row("collapse_threshold", str(settings.collapse_threshold))
    table.add_row("max_nodes", str(settings.max_nodes))
    table.add_row("dependency_dirs", ", ".join(settings.dependency_dirs))
    table.add_row("ignore", ", ".join(settings.extra_ignores) or "[dim](none)[/dim]")
    table.add_row("wrappers", str(len(settings.wrapper_rules)))
    console.print(table)

    exists = config.CONFIG_FILE.exists()
    status = "" if exists else " [dim](not created yet, defaults in use)[/dim]"
    console.print(f"  Config  [dim]{config.CONFIG_FILE}[/dim]{status}")


@config_grp.command("set")
def config_set(
    max_depth: Optional[int] = typer.Option(None, "--max-depth", min=1, help="Type simplifier depth limit."),
    max_properties: Optional[int] = typer.Option(None, "--max-properties", min=1, help="Properties per object."),
    collapse_threshold: Optional[int] = typer.Option(
        None, "--collapse-threshold", min=1, help="Named objects above this size collapse when nested."
    ),
    max_nodes: Optional[int] = typer.Option(
        None, "--max-nodes", min=1, help="Type nodes expanded per export before names are shown."
    ),
    ignore: Optional[List[str]] = typer.Option(None, "--ignore", help="Extra gitignore-style pattern (repeatable)."),
):
    """Persist analysis settings to the config file."""
    current = load_settings()
    updated = current.with_overrides(
        max_depth=max_depth,
        max_properties=max_properties,
        collapse_threshold=collapse_threshold,
        max_nodes=max_nodes,
        extra_ignores=tuple(ignore) if ignore else None,
    )
    if updated == current:
        typer.echo("Nothing to change.")
        raise typer.Exit(code=0)
    if not save_settings(updated):
        err_console.print(f"[red]✗ Could not write {config.CONFIG_FILE}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Saved settings to {config.CONFIG_FILE}")


if __name__ == "__main__":
    app()
