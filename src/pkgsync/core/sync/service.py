"""
Sync facade: the single entry point for triggering a sync.

SyncService owns one GitHubClient and one TransactionPool for its
lifetime and hands them to a ReconciliationEngine per run.
sync_organization() and sync_repository() never raise; every outcome
is a SyncSummary.

Concurrent runs for different organizations are safe. Concurrent runs
for the same organization are not coordinated; callers must serialize
them.

Usage:
    async with SyncService.from_config(load_config()) as service:
        summary = await service.sync_organization("acme")
        print(summary.to_payload())
"""

from __future__ import annotations

import asyncio
import logging
import time

import httpx

from pkgsync.core.config.models import PkgSyncConfig
from pkgsync.core.db.pool import TransactionPool
from pkgsync.core.github.client import GitHubClient
from pkgsync.core.sync.engine import ReconciliationEngine
from pkgsync.core.sync.models import SyncSummary

logger = logging.getLogger(__name__)


class SyncService:
    """
    Composes client, pool and engine behind sync_organization().

    Example:
        >>> service = SyncService.from_config(config)
        >>> summary = await service.sync_organization("acme")
        >>> await service.aclose()
    """

    def __init__(
        self,
        client: GitHubClient,
        pool: TransactionPool,
        config: PkgSyncConfig | None = None,
    ) -> None:
        self.client = client
        self.pool = pool
        self.config = config or PkgSyncConfig()
        self._initialized = False

    @classmethod
    def from_config(
        cls,
        config: PkgSyncConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> SyncService:
        """
        Build a service and its resources from configuration.

        Args:
            config: Loaded configuration
            transport: Optional httpx transport for the GitHub client
        """
        client = GitHubClient(config.github, config.discovery, transport=transport)
        pool = TransactionPool(
            config.database.path,
            concurrency=config.database.concurrency,
            busy_timeout=config.database.busy_timeout,
            transaction_timeout=config.database.transaction_timeout,
        )
        return cls(client, pool, config)

    async def __aenter__(self) -> SyncService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Release the HTTP connection pool."""
        await self.client.aclose()

    async def initialize(self) -> None:
        """Create the database schema once per service."""
        if not self._initialized:
            await self.pool.initialize()
            self._initialized = True

    async def sync_organization(
        self,
        name: str,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> SyncSummary:
        """
        Sync one organization.

        Args:
            name: Organization login
            cancel_event: Optional event that stops the run between batches

        Returns:
            SyncSummary; never raises
        """
        start_time = time.time()
        name = name.strip()
        if not name:
            return SyncSummary(
                success=False, organization=name, message="Organization name is required."
            )

        try:
            await self.initialize()
            engine = ReconciliationEngine(self.client, self.pool, self.config)
            return await engine.run(name, cancel_event=cancel_event)
        except Exception as e:
            logger.exception(f"Sync of {name} failed")
            return SyncSummary(
                success=False,
                organization=name,
                message=f"Sync failed: {e}",
                duration_seconds=time.time() - start_time,
            )

    async def sync_repository(self, organization: str, name: str) -> SyncSummary:
        """
        Sync one repository of an organization.

        Args:
            organization: Organization login
            name: Repository name within the organization

        Returns:
            SyncSummary; never raises
        """
        start_time = time.time()
        organization, name = organization.strip(), name.strip()
        if not organization or not name:
            return SyncSummary(
                success=False,
                organization=organization,
                message="Organization and repository name are required.",
            )

        try:
            await self.initialize()
            engine = ReconciliationEngine(self.client, self.pool, self.config)
            return await engine.run_repository(organization, name)
        except Exception as e:
            logger.exception(f"Sync of {organization}/{name} failed")
            return SyncSummary(
                success=False,
                organization=organization,
                message=f"Sync failed: {e}",
                duration_seconds=time.time() - start_time,
            )


async def sync_organization(
    name: str,
    config: PkgSyncConfig | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SyncSummary:
    """
    Build a SyncService, sync one organization, and close it.

    Args:
        name: Organization login
        config: Configuration (defaults to load_config())
        transport: Optional httpx transport for the GitHub client
    """
    if config is None:
        from pkgsync.core.config.loader import load_config

        config = load_config()

    async with SyncService.from_config(config, transport=transport) as service:
        return await service.sync_organization(name)
