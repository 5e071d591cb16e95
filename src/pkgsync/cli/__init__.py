"""
Typer application for the pkgsync command line.

Commands are registered here and grouped into help panels.
"""

import typer
from rich.console import Console

from pkgsync import __version__
from pkgsync.cli import admin, report, sync
from pkgsync.cli.options import setup_logging
from pkgsync.core.config.env import load_layered_env

PANEL_SYNC = "Synchronize"
PANEL_REPORT = "Explore Synced Data"
PANEL_ADMIN = "Housekeeping"

app = typer.Typer(
    name="pkgsync",
    help="Synchronize a GitHub organization's package.json manifests into SQLite",
    no_args_is_help=True,
    add_completion=False,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"pkgsync {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Log at DEBUG level and show error context",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """
    pkgsync - GitHub organization manifest synchronizer.

    Quick Start:
        export GITHUB_TOKEN=ghp_...
        pkgsync sync acme            # Sync every repository of acme
        pkgsync repos acme           # What was found
        pkgsync deps acme            # Most used packages
    """
    # Exported variables beat project .env, which beats the user .env
    load_layered_env()
    setup_logging(debug)

    ctx.obj = {"debug": debug}


app.command(name="sync", rich_help_panel=PANEL_SYNC)(sync.sync)

app.command(name="repos", rich_help_panel=PANEL_REPORT)(report.repos)
app.command(name="deps", rich_help_panel=PANEL_REPORT)(report.deps)

app.command(name="init-db", rich_help_panel=PANEL_ADMIN)(admin.init_database)
app.command(name="rate-limit", rich_help_panel=PANEL_ADMIN)(admin.rate_limit)


def cli_main() -> None:
    """Entry point for the pkgsync console script."""
    app()


__all__ = ["app", "cli_main"]
