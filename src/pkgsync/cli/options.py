"""
Shared option handling for pkgsync commands.
"""

import logging
import sys
from pathlib import Path

import typer
from pydantic import ValidationError

from pkgsync.cli.errors import ExitCode, print_error
from pkgsync.core.config.loader import load_config
from pkgsync.core.config.models import PkgSyncConfig

DB_OPTION = typer.Option(
    None,
    "--db",
    help="SQLite database file (overrides database.path)",
)


def setup_logging(debug: bool = False) -> None:
    """
    Configure logging for pkgsync commands.

    Args:
        debug: If True, enable DEBUG level logging
    """
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)


def load_cli_config(db_path: Path | None = None) -> PkgSyncConfig:
    """
    Load configuration for one command invocation.

    Exits with USER_ERROR when the configuration is invalid.
    """
    try:
        config = load_config(use_cache=False)
        if db_path is not None:
            config.database.path = db_path
    except ValidationError as e:
        print_error("Invalid configuration", reason=str(e), solution="check .pkgsync.json")
        raise typer.Exit(ExitCode.USER_ERROR)
    return config
