"""
Layered .env loading.

GITHUB_TOKEN and the PKGSYNC_* overrides may live in dotenv files. Files
are applied lowest layer first:

1. ~/.config/pkgsync/.env (user)
2. ./.env, then ./.env.local (project)

A later file may replace a value an earlier file set. A variable that
was already exported when the process started always wins.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

from dotenv import dotenv_values


def default_user_env_paths() -> list[Path]:
    xdg_home = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return [Path(xdg_home) / "pkgsync" / ".env"]


def default_project_env_paths(project_dir: Path) -> list[Path]:
    return [project_dir / ".env", project_dir / ".env.local"]


def _apply_file(path: Path, owned: set[str]) -> None:
    """Copy one file's values into os.environ unless the process owns the key."""
    if not path.is_file():
        return
    for key, value in dotenv_values(path).items():
        if not key or value is None:
            continue
        if key in os.environ and key not in owned:
            continue
        os.environ[key] = value
        owned.add(key)


def load_layered_env(
    *,
    project_dir: Path | None = None,
    user_env_paths: Iterable[Path] | None = None,
    project_env_paths: Iterable[Path] | None = None,
) -> set[str]:
    """
    Load user and project .env files into os.environ.

    Args:
        project_dir: Directory holding the project .env files (defaults to cwd)
        user_env_paths: Override the user file locations
        project_env_paths: Override the project file locations

    Returns:
        Names of the variables set by this call
    """
    project_dir = project_dir or Path.cwd()
    if user_env_paths is None:
        user_env_paths = default_user_env_paths()
    if project_env_paths is None:
        project_env_paths = default_project_env_paths(project_dir)

    owned: set[str] = set()
    for path in [*user_env_paths, *project_env_paths]:
        _apply_file(Path(path), owned)
    return owned
