"""
Exit codes and error output shared by the pkgsync commands.

Everything here writes to stderr so `--json` output on stdout stays parseable.
"""

from enum import IntEnum

from rich.console import Console

from pkgsync.core.exceptions import PkgSyncError

console = Console(stderr=True)


class ExitCode(IntEnum):
    """Process exit statuses."""

    SUCCESS = 0

    GENERAL_ERROR = 1
    """The organization could not be synced, or something unexpected broke."""

    USER_ERROR = 2
    """Bad flags, bad config or a missing database; the user can fix it."""

    SIGINT = 130


def print_error(
    problem: str,
    *,
    reason: str | None = None,
    solution: str | None = None,
) -> None:
    """
    Report a failure, optionally with the cause and a suggested next step.

    Example:
        >>> print_error(
        ...     "Database not found: pkgsync.db",
        ...     solution="pkgsync sync <org>",
        ... )
    """
    lines = [f"[red]Error:[/red] {problem}"]
    if reason:
        lines.append(f"[dim]{reason}[/dim]")
    if solution:
        lines.append(f"[cyan]→ Try:[/cyan] {solution}")
    for line in lines:
        console.print(line)


def print_pkgsync_error(error: PkgSyncError, *, debug: bool = False) -> None:
    console.print(f"[red]Error:[/red] {error}")
    if not debug:
        return
    for key, value in (error.context or {}).items():
        console.print(f"  [cyan]{key}:[/cyan] {value}")


def print_missing_token_warning() -> None:
    console.print(
        "[yellow]⚠[/yellow]  GITHUB_TOKEN is not set; "
        "unauthenticated requests are limited to 60 per hour"
    )
