"""
pkgsync CLI - Sync command.

Runs the sync facade for one organization and prints the summary.
"""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from pkgsync.cli.errors import ExitCode, print_missing_token_warning
from pkgsync.cli.options import DB_OPTION, load_cli_config
from pkgsync.core.sync.models import SyncSummary
from pkgsync.core.sync.service import SyncService

console = Console()


def render_summary(summary: SyncSummary) -> None:
    """Print a summary table followed by any per-repository errors."""
    table = Table(title=f"Sync of {summary.organization}", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Repositories", str(summary.total_repositories))
    table.add_row("With manifest", str(summary.success_count))
    table.add_row("Without manifest", str(summary.no_manifest_count))
    table.add_row("Skipped (fresh)", str(summary.skipped_count))
    table.add_row("Errors", str(summary.error_count))
    table.add_row("Manifests written", str(summary.manifest_count))
    table.add_row("Marked missing", str(summary.missing_count))
    table.add_row("Batches", str(summary.batches))
    table.add_row("Duration", f"{summary.duration_seconds:.1f}s")
    console.print(table)

    if summary.errors:
        errors = Table(title="Errors")
        errors.add_column("Repository", style="yellow")
        errors.add_column("Type")
        errors.add_column("Message", overflow="fold")
        for error in summary.errors:
            errors.add_row(error.repository, error.error_type, error.message)
        console.print(errors)


def sync(
    organization: str = typer.Argument(..., help="GitHub organization login"),
    recursive: bool = typer.Option(
        False,
        "--recursive",
        "-r",
        help="Search the whole repository tree for manifests",
    ),
    batch_size: int | None = typer.Option(
        None,
        "--batch-size",
        min=1,
        help="Repositories processed concurrently per batch",
    ),
    batch_delay: float | None = typer.Option(
        None,
        "--batch-delay",
        min=0.0,
        help="Seconds to pause between batches",
    ),
    repo: str | None = typer.Option(
        None,
        "--repo",
        help="Sync only this repository of the organization",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the summary payload as JSON",
    ),
    db: Path | None = DB_OPTION,
) -> None:
    """
    Sync an organization's package.json manifests into the database.

    Examples:
        pkgsync sync acme                  # Root package.json of every repository
        pkgsync sync acme --recursive      # Every package.json (monorepos)
        pkgsync sync acme --json           # Machine readable summary
        pkgsync sync acme --repo web       # Just acme/web
    """
    config = load_cli_config(db)
    if recursive:
        config.discovery.mode = "recursive"
    if batch_size is not None:
        config.sync.batch_size = batch_size
    if batch_delay is not None:
        config.sync.batch_delay = batch_delay

    if not config.github.token and not as_json:
        print_missing_token_warning()

    async def _run() -> SyncSummary:
        async with SyncService.from_config(config) as service:
            if repo is not None:
                return await service.sync_repository(organization, repo)
            return await service.sync_organization(organization)

    try:
        summary = asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        raise typer.Exit(ExitCode.SIGINT)

    if as_json:
        console.print_json(json.dumps(summary.to_payload()))
    elif summary.success:
        console.print(f"[green]✓[/green] {summary.message}")
        render_summary(summary)
    else:
        console.print(f"[red]Sync failed:[/red] {summary.message}")

    if not summary.success:
        raise typer.Exit(ExitCode.GENERAL_ERROR)
