"""
Reconciliation engine: make stored state match an organization on GitHub.

Architecture:
- GitHubClient lists repositories and fetches manifests
- extract_manifest normalizes each manifest
- TransactionPool applies each repository's writes in one transaction
- Returns SyncSummary with counters and per-repository errors

Sync Flow:
1. Upsert the organization row by name
2. List repositories (organization-level failure aborts the run)
3. Split into batches of sync.batch_size
4. Run batches one after another, repositories within a batch concurrently,
   pausing sync.batch_delay seconds between batches
5. Flag repositories that have disappeared from the listing

Per-repository unit of work:
- Everything remote is fetched and parsed before the database is touched.
  A fetch or parse failure therefore writes nothing: prior repository and
  manifest state is preserved and has_manifest is left as it was.
- The writes (repository upsert, manifest upserts, child replacement,
  deletion of vanished manifests, has_manifest refresh) happen in one
  transaction.
- The whole unit is bounded by database.transaction_timeout. Exceeding it
  rolls back and counts as an error without touching sibling repositories.

Partial Failure Handling:
- Each repository's unit of work catches its own exceptions
- Errors are collected in SyncSummary.errors and never abort the batch
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from functools import partial
from typing import Any

from pkgsync.core.config.models import PkgSyncConfig
from pkgsync.core.db.gateway import PersistenceGateway
from pkgsync.core.db.pool import TransactionPool
from pkgsync.core.exceptions import (
    ConstraintViolationError,
    OrganizationSyncError,
    TransactionTimeoutError,
)
from pkgsync.core.github.client import GitHubClient
from pkgsync.core.github.models import RepoDescriptor
from pkgsync.core.manifest.extractor import extract_manifest
from pkgsync.core.manifest.models import ManifestRecord
from pkgsync.core.sync.models import RepoOutcome, RepoSyncError, SyncSummary

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


def utc_now() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def make_batches(items: list[RepoDescriptor], size: int) -> list[list[RepoDescriptor]]:
    """Split items into consecutive batches of at most size."""
    if size < 1:
        raise ValueError("batch size must be >= 1")
    return [items[i : i + size] for i in range(0, len(items), size)]


class ReconciliationEngine:
    """
    Drives a sync of one organization.

    The client and pool are injected; the engine owns neither and never
    closes them.

    Example:
        >>> engine = ReconciliationEngine(client, pool, config)
        >>> summary = await engine.run("acme")
        >>> print(summary.success_count, summary.error_count)
    """

    def __init__(
        self,
        client: GitHubClient,
        pool: TransactionPool,
        config: PkgSyncConfig | None = None,
        *,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.client = client
        self.pool = pool
        self.config = config or PkgSyncConfig()
        self._sleep = sleep

    async def run(
        self,
        org_name: str,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> SyncSummary:
        """
        Sync every repository of an organization.

        Args:
            org_name: Organization login
            cancel_event: Optional event checked before each batch; once set,
                no further batch starts

        Returns:
            SyncSummary; success is False only for organization-level failures
        """
        start_time = time.time()
        summary = SyncSummary(success=True, organization=org_name)
        logger.info(f"Starting sync of organization {org_name}")

        try:
            org_id, repos = await self._prepare(org_name)
        except OrganizationSyncError as e:
            logger.error(str(e))
            summary.success = False
            summary.message = str(e)
            summary.duration_seconds = time.time() - start_time
            return summary

        summary.total_repositories = len(repos)
        batches = make_batches(repos, self.config.sync.batch_size)
        lock = asyncio.Lock()

        for index, batch in enumerate(batches):
            if index > 0 and self.config.sync.batch_delay > 0:
                await self._sleep(self.config.sync.batch_delay)

            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Sync of {org_name} cancelled before batch {index + 1}")
                summary.cancelled = True
                break

            logger.info(
                f"Processing batch {index + 1}/{len(batches)} ({len(batch)} repositories)"
            )
            results = await asyncio.gather(
                *(self._sync_repository(org_id, repo, summary, lock) for repo in batch),
                return_exceptions=True,
            )
            for repo, result in zip(batch, results):
                if isinstance(result, BaseException):
                    await self._record_error(summary, lock, repo, result)
            summary.batches += 1

        if not summary.cancelled and self.config.sync.mark_missing_repositories:
            summary.missing_count = await self._mark_missing(org_id, org_name, repos)

        summary.duration_seconds = time.time() - start_time
        if summary.cancelled:
            summary.message = "Sync cancelled."
        logger.info(
            f"Sync of {org_name} complete in {summary.duration_seconds:.2f}s: "
            f"{summary.success_count} with manifests, {summary.no_manifest_count} without, "
            f"{summary.skipped_count} skipped, {summary.error_count} errors"
        )
        return summary

    async def run_repository(self, org_name: str, repo_name: str) -> SyncSummary:
        """
        Sync a single repository of an organization.

        The repository goes through the same unit of work as in run(), so
        its failures land in summary.errors the same way. Archived and
        disabled repositories are synced when asked for by name. Missing
        repositories are not flagged.

        Returns:
            SyncSummary with total_repositories == 1 on success; success is
            False when the organization row cannot be written or the
            repository cannot be found
        """
        start_time = time.time()
        summary = SyncSummary(success=True, organization=org_name)
        logger.info(f"Starting sync of {org_name}/{repo_name}")

        try:
            org_id = await self._upsert_organization(org_name)
            repo = await self._lookup_repository(org_name, repo_name)
        except OrganizationSyncError as e:
            logger.error(str(e))
            summary.success = False
            summary.message = str(e)
            summary.duration_seconds = time.time() - start_time
            return summary

        await self._record_owner(org_id, org_name, [repo])
        summary.total_repositories = 1
        await self._sync_repository(org_id, repo, summary, asyncio.Lock())
        summary.batches = 1
        summary.duration_seconds = time.time() - start_time
        return summary

    async def _upsert_organization(self, org_name: str) -> int:
        try:
            return await self.pool.run(lambda gw: gw.upsert_organization(org_name))
        except Exception as e:
            raise OrganizationSyncError(
                f"Could not create organization {org_name}: {e}", organization=org_name
            ) from e

    async def _lookup_repository(self, org_name: str, repo_name: str) -> RepoDescriptor:
        full_name = f"{org_name}/{repo_name}"
        try:
            repo = await self.client.get_repository(org_name, repo_name)
        except Exception as e:
            raise OrganizationSyncError(
                f"Could not fetch repository {full_name}: {e}", organization=org_name
            ) from e
        if repo is None:
            raise OrganizationSyncError(
                f"Repository {full_name} not found", organization=org_name
            )
        if repo.owner_login.lower() != org_name.lower():
            raise OrganizationSyncError(
                f"Repository {full_name} now belongs to {repo.owner_login}",
                organization=org_name,
            )
        return repo

    async def _prepare(self, org_name: str) -> tuple[int, list[RepoDescriptor]]:
        """Upsert the organization and list its repositories."""
        org_id = await self._upsert_organization(org_name)

        try:
            repos = await self.client.list_repositories(org_name)
        except Exception as e:
            raise OrganizationSyncError(
                f"Could not list repositories of {org_name}: {e}", organization=org_name
            ) from e

        logger.info(f"Found {len(repos)} repositories in {org_name}")
        await self._record_owner(org_id, org_name, repos)
        return org_id, repos

    async def _record_owner(
        self, org_id: int, org_name: str, repos: list[RepoDescriptor]
    ) -> None:
        """Store the organization id found on the first organization-owned repository."""
        owner = next((r for r in repos if r.owner_type == "Organization" and r.owner_id), None)
        if owner is None or owner.owner_id is None:
            return
        remote_id = owner.owner_id
        try:
            await self.pool.run(lambda gw: gw.set_organization_remote_id(org_id, remote_id))
        except ConstraintViolationError as e:
            logger.warning(f"Organization {org_name}: {e}")

    async def _sync_repository(
        self,
        org_id: int,
        repo: RepoDescriptor,
        summary: SyncSummary,
        lock: asyncio.Lock,
    ) -> RepoOutcome:
        """Run one repository's unit of work and record its outcome."""
        try:
            outcome, written = await self._process(org_id, repo)
        except Exception as e:
            await self._record_error(summary, lock, repo, e)
            return RepoOutcome.FAILED

        async with lock:
            summary.manifest_count += written
            if outcome is RepoOutcome.SYNCED:
                summary.success_count += 1
            elif outcome is RepoOutcome.NO_MANIFEST:
                summary.no_manifest_count += 1
            elif outcome is RepoOutcome.SKIPPED:
                summary.skipped_count += 1

        logger.info(f"{repo.full_name}: {outcome.value}")
        return outcome

    async def _record_error(
        self,
        summary: SyncSummary,
        lock: asyncio.Lock,
        repo: RepoDescriptor,
        error: BaseException,
    ) -> None:
        logger.warning(f"{repo.full_name}: {type(error).__name__}: {error}")
        async with lock:
            summary.error_count += 1
            summary.errors.append(
                RepoSyncError(
                    repository=repo.full_name,
                    error_type=type(error).__name__,
                    message=str(error),
                )
            )

    async def _process(self, org_id: int, repo: RepoDescriptor) -> tuple[RepoOutcome, int]:
        deadline = self.pool.new_deadline()

        if self.config.sync.skip_fresh_repositories:
            state = await self.pool.run(
                lambda gw: gw.get_repository_state(repo.remote_id, repo.full_name),
                deadline=deadline,
                write=False,
            )
            if self._is_fresh(repo, state):
                await self.pool.run(
                    lambda gw: gw.upsert_repository(org_id, repo), deadline=deadline
                )
                return RepoOutcome.SKIPPED, 0

        remaining = deadline - time.monotonic()
        timeout = self.pool.transaction_timeout
        if remaining <= 0:
            raise TransactionTimeoutError(
                f"{repo.full_name}: deadline exceeded before fetching", timeout=timeout
            )
        try:
            records = await asyncio.wait_for(self.fetch_manifests(repo), timeout=remaining)
        except asyncio.TimeoutError:
            raise TransactionTimeoutError(
                f"{repo.full_name}: fetching manifests exceeded {timeout:g}s", timeout=timeout
            ) from None

        written = await self.pool.run(
            partial(self._apply, org_id, repo, records, utc_now()), deadline=deadline
        )
        outcome = RepoOutcome.SYNCED if records else RepoOutcome.NO_MANIFEST
        return outcome, written

    def _is_fresh(self, repo: RepoDescriptor, state: dict[str, Any] | None) -> bool:
        if state is None or not state.get("has_manifest"):
            return False
        last_fetched = _parse_timestamp(state.get("last_fetched_at"))
        last_modified = repo.last_modified
        if last_fetched is None or last_modified is None:
            return False
        return last_modified < last_fetched

    async def fetch_manifests(self, repo: RepoDescriptor) -> list[ManifestRecord]:
        """
        Discover, fetch and parse a repository's manifests.

        Returns:
            Parsed records; an empty list means no manifest exists

        Raises:
            GitHubError: On fetch failure other than absence
            MalformedManifestError: If any manifest cannot be parsed
        """
        owner, name = repo.owner_login, repo.name
        discovery = self.client.discovery

        if discovery.mode == "recursive":
            paths = await self.client.find_all_manifests(owner, name)
        else:
            paths = [discovery.manifest_filename]

        records: list[ManifestRecord] = []
        for path in paths:
            content = await self.client.fetch_file_content(owner, name, path)
            if content is None:
                logger.debug(f"{repo.full_name}: no {path}")
                continue
            records.append(extract_manifest(content.content, path))
        return records

    def _apply(
        self,
        org_id: int,
        repo: RepoDescriptor,
        records: list[ManifestRecord],
        fetched_at: str,
        gateway: PersistenceGateway,
    ) -> int:
        """Write one repository's state; runs inside a single transaction."""
        repo_id = gateway.upsert_repository(org_id, repo, fetched_at)

        written = 0
        for record in records:
            if self.config.sync.skip_unchanged_manifests and gateway.manifest_unchanged(
                repo_id, record.path, record.content_hash
            ):
                gateway.touch_manifest(
                    repo_id, record.path, fetched_at, record.qualified_name(repo.full_name)
                )
                continue
            manifest_id = gateway.upsert_manifest(repo_id, record, repo.full_name, fetched_at)
            gateway.replace_all_children(manifest_id, record)
            written += 1

        removed = gateway.delete_manifests(repo_id, keep_paths=[r.path for r in records])
        if removed:
            logger.debug(f"{repo.full_name}: removed {removed} vanished manifests")
        gateway.refresh_has_manifest(repo_id)
        return written

    async def _mark_missing(
        self, org_id: int, org_name: str, repos: list[RepoDescriptor]
    ) -> int:
        names = [r.full_name for r in repos]
        ids = [r.remote_id for r in repos if r.remote_id is not None]
        try:
            return await self.pool.run(
                lambda gw: gw.mark_missing_repositories(org_id, names, ids, utc_now())
            )
        except Exception as e:
            logger.warning(f"Could not mark missing repositories of {org_name}: {e}")
            return 0
