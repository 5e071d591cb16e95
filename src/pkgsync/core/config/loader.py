"""
Build a PkgSyncConfig from every place settings can come from.

Later sources win over earlier ones:

    built-in defaults
    ~/.config/pkgsync/config.json
    ./.pkgsync.json
    GITHUB_TOKEN / PKGSYNC_* environment variables
"""

import json
import os
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

from .models import DEFAULT_SKIP_DIRS, PkgSyncConfig

USER_CONFIG_NAME = "config.json"
PROJECT_CONFIG_NAME = ".pkgsync.json"

_loaded: PkgSyncConfig | None = None


def get_xdg_config_home() -> Path:
    """Return $XDG_CONFIG_HOME, or ~/.config when it is unset."""
    configured = os.environ.get("XDG_CONFIG_HOME")
    return Path(configured) if configured else Path.home() / ".config"


def get_user_config_path() -> Path:
    return get_xdg_config_home() / "pkgsync" / USER_CONFIG_NAME


def get_project_config_path(cwd: Path | None = None) -> Path:
    return (cwd or Path.cwd()) / PROJECT_CONFIG_NAME


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Return a new dict with `override` laid over `base`.

    Sections present in both as dicts are combined key by key; anything
    else from `override` replaces the base value outright. Neither input
    is mutated.

    >>> deep_merge({"sync": {"batch_size": 3, "batch_delay": 1}}, {"sync": {"batch_size": 8}})
    {'sync': {'batch_size': 8, 'batch_delay': 1}}
    """
    merged = dict(base)
    for key, incoming in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(incoming, dict):
            merged[key] = deep_merge(current, incoming)
        else:
            merged[key] = incoming
    return merged


def load_json_file(path: Path) -> dict[str, Any] | None:
    """
    Read a JSON object from `path`.

    A missing file, a file that does not parse, or a top-level value that
    is not an object all yield None. Parse failures print a warning.
    """
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError) as e:
        print(f"Warning: Failed to parse config at {path}: {e}")
        return None
    return data if isinstance(data, dict) else None


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value < 1:
        raise ValueError(f"must be >= 1, got {value}")
    return value


def _non_negative_float(raw: str) -> float:
    value = float(raw)
    if value < 0:
        raise ValueError(f"must be >= 0, got {value}")
    return value


def _discovery_mode(raw: str) -> str:
    value = raw.strip().lower()
    if value not in ("root", "recursive"):
        raise ValueError("must be 'root' or 'recursive'")
    return value


# variable -> (section, field, parser)
ENV_OVERRIDES: dict[str, tuple[str, str, Callable[[str], Any]]] = {
    "GITHUB_TOKEN": ("github", "token", str),
    "PKGSYNC_GITHUB_CONCURRENCY": ("github", "concurrency", _positive_int),
    "PKGSYNC_DB_CONCURRENCY": ("database", "concurrency", _positive_int),
    "PKGSYNC_DB_PATH": ("database", "path", str),
    "PKGSYNC_BATCH_SIZE": ("sync", "batch_size", _positive_int),
    "PKGSYNC_BATCH_DELAY": ("sync", "batch_delay", _non_negative_float),
    "PKGSYNC_DISCOVERY_MODE": ("discovery", "mode", _discovery_mode),
}


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Overlay the variables listed in ENV_OVERRIDES onto `config_dict`.

    Unset or empty variables are skipped. A value its parser rejects is
    reported on stdout and leaves the lower layer in place.
    """
    overrides: dict[str, dict[str, Any]] = {}
    for env_name, (section, field, parse) in ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if not raw:
            continue
        try:
            overrides.setdefault(section, {})[field] = parse(raw)
        except ValueError as e:
            print(f"Warning: Invalid {env_name} value '{raw}' ({e}), ignoring")
    return deep_merge(config_dict, overrides)


def get_default_config() -> dict[str, Any]:
    return {
        "github": {"concurrency": 10, "rate_limit_retries": 5, "transient_retries": 3},
        "discovery": {"mode": "root", "skip_dirs": list(DEFAULT_SKIP_DIRS)},
        "database": {"concurrency": 5, "transaction_timeout": 30.0},
        "sync": {"batch_size": 10, "batch_delay": 2.0},
    }


def _file_layers(project_dir: Path | None) -> Iterator[dict[str, Any]]:
    for path in (get_user_config_path(), get_project_config_path(project_dir)):
        layer = load_json_file(path)
        if layer:
            yield layer


def load_config(project_dir: Path | None = None, use_cache: bool = True) -> PkgSyncConfig:
    """
    Resolve and validate the effective configuration.

    Args:
        project_dir: Where to look for .pkgsync.json (defaults to cwd)
        use_cache: Reuse the result of an earlier call when one exists

    Raises:
        ValidationError: A layer supplied a value the models reject
    """
    global _loaded

    if use_cache and _loaded is not None:
        return _loaded

    settings = get_default_config()
    for layer in _file_layers(project_dir):
        settings = deep_merge(settings, layer)

    _loaded = PkgSyncConfig(**apply_env_overrides(settings))
    return _loaded


def clear_cache() -> None:
    """Forget the cached configuration so the next load rereads everything."""
    global _loaded
    _loaded = None
