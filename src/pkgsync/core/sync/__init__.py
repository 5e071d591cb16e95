"""
Organization sync: reconciliation engine and facade.

Usage:
    from pkgsync.core.sync import SyncService

    async with SyncService.from_config(config) as service:
        summary = await service.sync_organization("acme")
"""

from pkgsync.core.sync.engine import ReconciliationEngine, make_batches
from pkgsync.core.sync.models import RepoOutcome, RepoSyncError, SyncSummary
from pkgsync.core.sync.service import SyncService, sync_organization

__all__ = [
    "ReconciliationEngine",
    "RepoOutcome",
    "RepoSyncError",
    "SyncService",
    "SyncSummary",
    "make_batches",
    "sync_organization",
]
