"""
pkgsync CLI - Reporting commands.

Read-only views over synchronized data.
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from pkgsync.cli.errors import ExitCode, print_error
from pkgsync.cli.options import DB_OPTION, load_cli_config
from pkgsync.core.db.connection import get_connection
from pkgsync.core.db.queries import dependency_report, list_repositories
from pkgsync.core.db.schema import DEPENDENCY_TYPES

console = Console()


def _require_db(path: Path) -> None:
    if not path.exists():
        print_error(
            f"Database not found: {path}",
            solution="pkgsync sync <organization>",
        )
        raise typer.Exit(ExitCode.USER_ERROR)


def repos(
    organization: str = typer.Argument(..., help="GitHub organization login"),
    db: Path | None = DB_OPTION,
) -> None:
    """
    List an organization's repositories and their manifest status.
    """
    config = load_cli_config(db)
    _require_db(config.database.path)

    with get_connection(config.database.path) as conn:
        rows = list_repositories(conn, organization)

    if not rows:
        console.print(f"[yellow]No repositories stored for {organization}[/yellow]")
        return

    table = Table(title=f"Repositories of {organization}")
    table.add_column("Repository", style="cyan")
    table.add_column("Branch")
    table.add_column("Manifests", justify="right")
    table.add_column("Last fetched")
    table.add_column("Status")

    for row in rows:
        if row["missing_since"]:
            status = "[red]missing[/red]"
        elif row["has_manifest"]:
            status = "[green]✓[/green]"
        else:
            status = "[dim]no manifest[/dim]"
        table.add_row(
            row["full_name"],
            row["default_branch"],
            str(row["manifest_count"]),
            row["last_fetched_at"] or "-",
            status,
        )

    console.print(table)


def deps(
    organization: str = typer.Argument(..., help="GitHub organization login"),
    dependency_type: str | None = typer.Option(
        None,
        "--type",
        "-t",
        help=f"Dependency class: {', '.join(DEPENDENCY_TYPES)}",
    ),
    limit: int = typer.Option(25, "--limit", "-n", min=1, help="Rows to show"),
    db: Path | None = DB_OPTION,
) -> None:
    """
    Show the most used packages across an organization.

    Examples:
        pkgsync deps acme                   # All dependency classes
        pkgsync deps acme --type PRODUCTION # Runtime dependencies only
    """
    config = load_cli_config(db)
    _require_db(config.database.path)

    dep_type = dependency_type.upper() if dependency_type else None
    try:
        with get_connection(config.database.path) as conn:
            rows = dependency_report(conn, organization, dependency_type=dep_type, limit=limit)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(ExitCode.USER_ERROR)

    if not rows:
        console.print(f"[yellow]No dependencies stored for {organization}[/yellow]")
        return

    table = Table(title=f"Dependencies of {organization}")
    table.add_column("Package", style="cyan")
    table.add_column("Used by", justify="right")
    table.add_column("Versions", overflow="fold")
    for row in rows:
        table.add_row(row["package_name"], str(row["usage_count"]), ", ".join(row["version_specs"]))

    console.print(table)
