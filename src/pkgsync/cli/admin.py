"""
pkgsync CLI - Database and API housekeeping commands.
"""

import asyncio
from pathlib import Path

import typer
from rich.console import Console

from pkgsync.cli.errors import ExitCode, print_pkgsync_error
from pkgsync.cli.options import DB_OPTION, load_cli_config
from pkgsync.core.db.connection import init_db
from pkgsync.core.db.schema import get_schema_version
from pkgsync.core.exceptions import PkgSyncError
from pkgsync.core.github.client import GitHubClient
from pkgsync.core.github.models import RateLimitStatus

console = Console()


def init_database(
    force: bool = typer.Option(
        False,
        "--force",
        help="Delete and recreate an existing database",
    ),
    db: Path | None = DB_OPTION,
) -> None:
    """
    Create the database and its schema.
    """
    config = load_cli_config(db)
    conn = init_db(config.database.path, force_recreate=force)
    try:
        version = get_schema_version(conn)
    finally:
        conn.close()
    console.print(
        f"[green]✓[/green] Database ready at {config.database.path} (schema v{version})"
    )


def rate_limit(ctx: typer.Context) -> None:
    """
    Show the remaining GitHub API quota.
    """
    config = load_cli_config()

    async def _fetch() -> RateLimitStatus:
        async with GitHubClient(config.github) as client:
            return await client.get_rate_limit()

    try:
        status = asyncio.run(_fetch())
    except PkgSyncError as e:
        print_pkgsync_error(e, debug=bool(ctx.obj and ctx.obj.get("debug")))
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    color = "red" if status.is_exhausted else "green"
    console.print(
        f"[{color}]{status.remaining}[/{color}]/{status.limit} requests remaining, "
        f"resets at {status.reset_at:%Y-%m-%d %H:%M:%S} UTC"
    )
