"""
Command line interface.

Thin wrapper over the organizer entry points: clean, undo, import, history,
use and watch.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .. import __version__
from ..core.config import WardexSettings, load_settings
from ..core.errors import WardexError
from ..core.state import AppState, ImportContext, get_active_event_root
from ..core.types import Entry
from ..organization import (
    CleanSummary,
    MoveStatus,
    OperationOutcome,
    Organizer,
    UndoStatus,
    UndoSummary,
)

console = Console()

MAX_ERRORS_SHOWN = 10


def _fail(message: str) -> None:
    console.print(f"[red]✗ {escape(message)}[/red]")
    sys.exit(1)


def _organizer(ctx: click.Context) -> Organizer:
    settings: WardexSettings = ctx.obj["settings"]
    return Organizer(settings)


@click.group()
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Config file (default: ./config.yaml and ~/.config/wardex/config.yaml)",
)
@click.option("-v", "--verbose", is_flag=True, default=False, help="Verbose output")
@click.version_option(version=__version__, prog_name="wardex")
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[Path], verbose: bool) -> None:
    """Keep a workspace tidy: route inbox files and undo any move."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s - %(message)s")

    try:
        settings = load_settings(config_file)
    except WardexError as e:
        _fail(str(e))

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@cli.command()
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Preview moves without executing",
)
@click.pass_context
def clean(ctx: click.Context, dry_run: bool) -> None:
    """Move inbox entries to the destinations given by the clean rules."""
    try:
        result = _organizer(ctx).clean(dry_run=dry_run)
    except WardexError as e:
        _fail(str(e))

    if result.inbox_not_found:
        _fail(result.errors[-1])
    if result.inbox_empty:
        console.print("[yellow]Inbox is empty.[/yellow]")
        return

    _display_clean_result(result)


@cli.command("import")
@click.argument("archive", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--event",
    "event_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="CTF event directory (default: current event)",
)
@click.option("--category", help="Use this category instead of detecting one")
@click.option("--dry-run", is_flag=True, default=False, help="Preview only")
@click.pass_context
def import_challenge(
    ctx: click.Context,
    archive: Path,
    event_dir: Optional[Path],
    category: Optional[str],
    dry_run: bool,
) -> None:
    """Import a challenge file into the active CTF event."""
    try:
        context = ImportContext(
            event_root=event_dir or get_active_event_root(),
            category_override=category,
        )
        result = _organizer(ctx).smart_import(
            Entry.from_path(archive), context, dry_run=dry_run
        )
    except WardexError as e:
        _fail(str(e))

    _display_clean_result(result)


@cli.command()
@click.argument("count", type=click.IntRange(min=1), default=1)
@click.option("--id", "operation_id", type=int, help="Undo one operation by ID")
@click.pass_context
def undo(ctx: click.Context, count: int, operation_id: Optional[int]) -> None:
    """Undo the COUNT most recent moves (default 1)."""
    try:
        result = _organizer(ctx).undo(count=count, operation_id=operation_id)
    except WardexError as e:
        _fail(str(e))

    _display_undo_result(result)


@cli.command()
@click.option("--limit", type=int, default=20, show_default=True)
@click.option("--all", "show_all", is_flag=True, help="Include reverted moves")
@click.pass_context
def history(ctx: click.Context, limit: int, show_all: bool) -> None:
    """Show recorded moves, newest first."""
    try:
        log = _organizer(ctx).log
        operations = log.read_operations()
        stats = log.get_statistics()
    except WardexError as e:
        _fail(str(e))

    if not show_all:
        operations = [
            op for op in operations if op.outcome == OperationOutcome.APPLIED
        ]
    operations = list(reversed(operations))[:limit]

    if not operations:
        console.print("[yellow]No recorded moves.[/yellow]")
        return

    table = Table(title="Move history")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("When")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Outcome")

    for op in operations:
        table.add_row(
            str(op.operation_id),
            op.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            str(op.source_path),
            str(op.destination_path),
            str(OperationOutcome(op.outcome).value),
        )
    console.print(table)
    console.print(
        f"Total: {stats['total']}  Applied: {stats['applied']}  "
        f"Reverted: {stats['reverted']}"
    )


@cli.command()
@click.argument(
    "event_dir", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
def use(event_dir: Path) -> None:
    """Make EVENT_DIR the active CTF event for imports."""
    try:
        AppState.load().set_event(event_dir)
    except WardexError as e:
        _fail(str(e))

    active = escape(str(event_dir.resolve()))
    console.print(f"[green]✓ Active event: {active}[/green]")


@cli.command()
@click.option(
    "--debounce",
    type=float,
    default=2.0,
    show_default=True,
    help="Seconds of quiet before a clean runs",
)
@click.pass_context
def watch(ctx: click.Context, debounce: float) -> None:
    """Clean the inbox automatically whenever it changes."""
    from ..watcher import watch_inbox

    console.print("[cyan]Watching inbox. Press Ctrl+C to stop.[/cyan]")
    try:
        watch_inbox(ctx.obj["settings"], debounce_seconds=debounce)
    except WardexError as e:
        _fail(str(e))


def _display_clean_result(result: CleanSummary) -> None:
    """Display clean or import result."""
    table = Table(title="Dry run" if result.dry_run else "Results")
    table.add_column("Entry", style="cyan")
    table.add_column("Destination")
    table.add_column("Status", justify="right")

    for item in result.items:
        status = MoveStatus(item.status)
        style = {
            MoveStatus.MOVED: "green",
            MoveStatus.SKIPPED: "dim",
            MoveStatus.FAILED: "red",
        }[status]
        label = status.value
        if item.dry_run and status == MoveStatus.MOVED:
            label = "would move"
        table.add_row(
            item.source_path.name,
            str(item.destination_path or item.reason or ""),
            f"[{style}]{label}[/{style}]",
        )
    console.print(table)

    console.print(
        f"Moved: {result.moved}  Skipped: {result.skipped} "
        f"(unmatched {result.unmatched})  Failed: {result.failed}"
    )

    if result.dry_run:
        console.print("\n[yellow]This was a DRY RUN - no files were modified[/yellow]")

    for warning in result.warnings:
        console.print(f"[yellow]⚠ {escape(warning)}[/yellow]")

    if result.errors:
        console.print("\n[red]Errors:[/red]")
        for error in result.errors[:MAX_ERRORS_SHOWN]:
            console.print(f"  [red]• {escape(error)}[/red]")
        if len(result.errors) > MAX_ERRORS_SHOWN:
            console.print(
                f"  [dim]... and {len(result.errors) - MAX_ERRORS_SHOWN} more[/dim]"
            )


def _display_undo_result(result: UndoSummary) -> None:
    """Display undo result."""
    if result.no_log_found:
        console.print("[yellow]No undo history found.[/yellow]")
        return
    if result.nothing_to_undo:
        console.print("[yellow]Nothing to undo.[/yellow]")
        return

    for item in result.items:
        if item.status == UndoStatus.REVERTED:
            console.print(
                f"[green]✓ Restored {item.source_path} → "
                f"{item.destination_path}[/green]"
            )
        else:
            reason = escape(item.reason or "")
            console.print(f"[red]✗ #{item.operation_id}: {reason}[/red]")

    console.print(
        f"Reverted: {result.reverted}  Conflicts: {result.conflicted}  "
        f"Failed: {result.failed}"
    )
    for error in result.errors:
        if not error.startswith(("Conflict:", "Failed:")):
            console.print(f"[red]• {escape(error)}[/red]")


if __name__ == "__main__":
    cli()
