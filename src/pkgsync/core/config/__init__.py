"""
Settings for pkgsync.

Pydantic models describe the settings; the loader layers built-in
defaults, user and project JSON files and environment variables.
"""

from .env import load_layered_env
from .loader import (
    clear_cache,
    get_project_config_path,
    get_user_config_path,
    get_xdg_config_home,
    load_config,
)
from .models import (
    DatabaseConfig,
    DiscoveryConfig,
    GitHubConfig,
    PkgSyncConfig,
    SyncConfig,
)

__all__ = [
    # Models
    "DatabaseConfig",
    "DiscoveryConfig",
    "GitHubConfig",
    "PkgSyncConfig",
    "SyncConfig",
    # Loader functions
    "clear_cache",
    "get_project_config_path",
    "get_user_config_path",
    "get_xdg_config_home",
    "load_config",
    "load_layered_env",
]
