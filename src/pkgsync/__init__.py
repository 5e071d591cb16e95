"""
pkgsync - GitHub organization manifest synchronizer.

Discovers an organization's repositories, extracts their package.json
manifests, and reconciles them into a local SQLite database.
"""

__version__ = "0.1.0"

from pkgsync.core.config.models import PkgSyncConfig
from pkgsync.core.sync.models import SyncSummary
from pkgsync.core.sync.service import SyncService, sync_organization

__all__ = ["PkgSyncConfig", "SyncService", "SyncSummary", "sync_organization", "__version__"]
