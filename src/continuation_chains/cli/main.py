"""CLI entry point for continuation-chains.

Invoked as::

    continuation-chains [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m continuation_chains.cli.main

Commands
--------
- version    — Show version information
- discover   — Register transcripts found under the projects directory
- resolve    — Detect and persist every continuation
- chain      — Show the chain containing a session
- metadata   — Show cached chain facts for a session
- stats      — Show global chain statistics
- orphans    — List continuations whose parent is unknown
- heal       — Re-link orphaned continuations
- highlight  — Show roles and positions relative to a focal session
"""
from __future__ import annotations

import dataclasses
import json
import logging
import sys
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress
from rich.table import Table
from rich.tree import Tree

from continuation_chains.config import EngineConfig, load_config
from continuation_chains.errors import ConfigError
from continuation_chains.service.continuation_service import ContinuationService
from continuation_chains.service.envelope import Envelope

console = Console()

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _build_config(
    config_file: str | None,
    db_path: str | None,
    projects_dir: str | None,
    log_level: str | None,
) -> EngineConfig:
    config = load_config(config_file)
    overrides = {
        key: value
        for key, value in (
            ("db_path", db_path),
            ("projects_dir", projects_dir),
            ("log_level", log_level),
        )
        if value is not None
    }
    if not overrides:
        return config
    try:
        return EngineConfig.model_validate({**config.model_dump(), **overrides})
    except ValueError as exc:
        raise ConfigError(f"Invalid option: {exc}") from exc


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def _service(ctx: click.Context) -> ContinuationService:
    service = ctx.obj.get("service")
    if service is None:
        service = ContinuationService.from_config(ctx.obj["config"])
        ctx.obj["service"] = service
    return service


def _unwrap(envelope: Envelope[Any]) -> Any:
    if not envelope.success:
        console.print(f"[red]Error:[/red] {envelope.error}")
        sys.exit(1)
    return envelope.payload


def _to_jsonable(payload: Any) -> Any:
    if hasattr(payload, "model_dump"):
        return payload.model_dump(mode="json")
    if dataclasses.is_dataclass(payload) and not isinstance(payload, type):
        return dataclasses.asdict(payload)
    if isinstance(payload, list):
        return [_to_jsonable(item) for item in payload]
    return payload


def _print_json(payload: Any) -> None:
    console.print_json(json.dumps(_to_jsonable(payload), default=str))


def _short(session_id: str) -> str:
    return session_id[:8]


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="continuation-chains")
@click.option("--config", "config_file", default=None, help="YAML configuration file.")
@click.option("--db-path", default=None, help="Path to the SQLite database.")
@click.option("--projects-dir", default=None, help="Directory holding project transcripts.")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Log level (overrides configuration).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: str | None,
    db_path: str | None,
    projects_dir: str | None,
    log_level: str | None,
) -> None:
    """Detect and navigate continuation chains between sessions"""
    ctx.ensure_object(dict)
    try:
        config = _build_config(config_file, db_path, projects_dir, log_level)
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        sys.exit(1)
    _configure_logging(config.log_level)
    ctx.obj["config"] = config


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show version information."""
    from continuation_chains import __version__

    console.print(f"[bold]continuation-chains[/bold] v{__version__}")


# ---------------------------------------------------------------------------
# discover
# ---------------------------------------------------------------------------


@cli.command(name="discover")
@click.pass_context
def discover_command(ctx: click.Context) -> None:
    """Register every transcript under the projects directory."""
    service = _service(ctx)
    count = _unwrap(service.discover())
    console.print(
        f"[green]Registered[/green] {count} sessions from {service.config.projects_dir}"
    )


# ---------------------------------------------------------------------------
# resolve
# ---------------------------------------------------------------------------


@cli.command(name="resolve")
@click.option("--json-output", is_flag=True, help="Output raw JSON instead of formatted view.")
@click.pass_context
def resolve_command(ctx: click.Context, json_output: bool) -> None:
    """Scan every registered transcript and persist continuations."""
    service = _service(ctx)

    with Progress(console=console, transient=True) as progress:
        task = progress.add_task("Analysing transcripts", total=None)

        def report(current: int, total: int, _item: str) -> None:
            progress.update(task, completed=current, total=total)

        summary = _unwrap(service.resolve(report))

    if json_output:
        _print_json(summary)
        return

    table = Table(title="Resolution summary")
    table.add_column("Metric", style="bold cyan")
    table.add_column("Count", justify="right")
    for field in dataclasses.fields(summary):
        table.add_row(field.name, str(getattr(summary, field.name)))
    console.print(table)


# ---------------------------------------------------------------------------
# chain
# ---------------------------------------------------------------------------


@cli.command(name="chain")
@click.argument("session_id")
@click.option("--json-output", is_flag=True, help="Output raw JSON instead of formatted view.")
@click.pass_context
def chain_command(ctx: click.Context, session_id: str, json_output: bool) -> None:
    """Show the continuation chain containing SESSION_ID."""
    service = _service(ctx)

    if json_output:
        _print_json(_unwrap(service.get_chain(session_id)))
        return

    tree = _unwrap(service.build_tree(session_id))
    view = Tree(f"[bold]{tree.root_id}[/bold] (root)")
    stack = [(tree.root, view)]
    while stack:
        node, branch = stack.pop()
        for child in node.children:
            style = "green" if child.is_on_active_path else "dim"
            label = f"[{style}]{child.session_id}[/{style}]"
            if child.session_id == session_id:
                label += " [yellow]<[/yellow]"
            stack.append((child, branch.add(label)))
    console.print(view)
    console.print(
        f"\n[dim]{len(tree)} sessions, max depth {tree.max_depth}, "
        f"branches: {'yes' if tree.has_branches else 'no'}[/dim]"
    )


# ---------------------------------------------------------------------------
# metadata
# ---------------------------------------------------------------------------


@cli.command(name="metadata")
@click.argument("session_id")
@click.option("--json-output", is_flag=True, help="Output raw JSON instead of formatted view.")
@click.pass_context
def metadata_command(ctx: click.Context, session_id: str, json_output: bool) -> None:
    """Show cached chain facts for SESSION_ID."""
    metadata = _unwrap(_service(ctx).get_metadata(session_id))

    if json_output:
        _print_json(metadata)
        return

    table = Table(title=f"Chain metadata {_short(session_id)}", show_lines=True)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value")
    for key, value in metadata.model_dump(exclude={"computed_at", "generation"}).items():
        table.add_row(key, str(value))
    console.print(table)


# ---------------------------------------------------------------------------
# stats
# ---------------------------------------------------------------------------


@cli.command(name="stats")
@click.option("--json-output", is_flag=True, help="Output raw JSON instead of formatted view.")
@click.pass_context
def stats_command(ctx: click.Context, json_output: bool) -> None:
    """Show statistics over every stored continuation."""
    stats = _unwrap(_service(ctx).get_stats())

    if json_output:
        _print_json(stats)
        return

    table = Table(title="Continuation statistics")
    table.add_column("Metric", style="bold cyan")
    table.add_column("Value", justify="right")
    for key, value in stats.model_dump().items():
        table.add_row(key, str(value))
    console.print(table)


# ---------------------------------------------------------------------------
# orphans
# ---------------------------------------------------------------------------


@cli.command(name="orphans")
@click.option("--json-output", is_flag=True, help="Output raw JSON instead of formatted view.")
@click.pass_context
def orphans_command(ctx: click.Context, json_output: bool) -> None:
    """List continuations whose parent session is unknown."""
    orphans = _unwrap(_service(ctx).get_orphans())

    if json_output:
        _print_json(orphans)
        return

    if not orphans:
        console.print("[green]No orphaned continuations.[/green]")
        return

    table = Table(title="Orphaned continuations")
    table.add_column("Child", style="cyan")
    table.add_column("Missing parent", style="red")
    table.add_column("Project")
    for orphan in orphans:
        table.add_row(orphan.child_id, orphan.parent_id, orphan.project_path or "-")
    console.print(table)


# ---------------------------------------------------------------------------
# heal
# ---------------------------------------------------------------------------


@cli.command(name="heal")
@click.option("--json-output", is_flag=True, help="Output raw JSON instead of formatted view.")
@click.pass_context
def heal_command(ctx: click.Context, json_output: bool) -> None:
    """Re-scan orphaned continuations and re-link those whose parent now exists."""
    report = _unwrap(_service(ctx).heal_orphans())

    if json_output:
        _print_json(report)
        return

    console.print(
        f"[green]Healed[/green] {report.healed} of {report.candidates} orphaned "
        f"continuations ({report.remaining} remaining)."
    )


# ---------------------------------------------------------------------------
# highlight
# ---------------------------------------------------------------------------


@cli.command(name="highlight")
@click.argument("focal_id")
@click.option("--json-output", is_flag=True, help="Output raw JSON instead of formatted view.")
@click.pass_context
def highlight_command(ctx: click.Context, focal_id: str, json_output: bool) -> None:
    """Show every chain member's role relative to FOCAL_ID."""
    service = _service(ctx)
    snapshot = _unwrap(service.focus(focal_id))
    members = sorted(snapshot.members, key=snapshot.positions.__getitem__)
    infos = [(sid, snapshot.info(sid)) for sid in members]

    if json_output:
        _print_json([{"session_id": sid, **dataclasses.asdict(info)} for sid, info in infos])
        return

    role_styles = {
        "clicked": "bold yellow",
        "ancestor": "cyan",
        "descendant": "green",
        "sibling": "magenta",
    }
    table = Table(title=f"Highlight for {_short(focal_id)}")
    table.add_column("#", justify="right")
    table.add_column("Session", style="cyan")
    table.add_column("Role")
    table.add_column("Distance", justify="right")
    for sid, info in infos:
        style = role_styles.get(info.role.value, "white")
        name = f"{sid} (root)" if info.is_root else sid
        table.add_row(
            f"{info.position}/{info.total}",
            name,
            f"[{style}]{info.role.value}[/{style}]",
            str(info.distance),
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


if __name__ == "__main__":
    cli()
