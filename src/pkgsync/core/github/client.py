"""
Async GitHub REST client for pkgsync.

Wraps httpx.AsyncClient with the pieces the sync pipeline needs:
paginated organization listings, file content retrieval, a recursive
manifest search over the contents API, and one shared retry/backoff
policy for rate limits and transient failures.

All requests from one client share a single asyncio.Semaphore, so the
number of in-flight requests never exceeds ``github.concurrency`` no
matter how many callers are active. When one caller hits a rate limit
the whole client pauses until the wait has elapsed.

Example:
    >>> async with GitHubClient(config.github, config.discovery) as client:
    ...     async for repo in client.iter_repositories("acme"):
    ...         manifest = await client.fetch_file_content(repo.owner_login, repo.name,
    ...                                                    "package.json")
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any
from urllib.parse import quote

import httpx

from pkgsync import __version__
from pkgsync.core.config.models import DiscoveryConfig, GitHubConfig
from pkgsync.core.exceptions import (
    ManifestSearchLimitError,
    NotFoundError,
    RateLimitedError,
    TransientFetchError,
    UnexpectedContentError,
)
from pkgsync.core.github.models import FileContent, RateLimitStatus, RepoDescriptor
from pkgsync.core.github.retry import (
    RetryConfig,
    header_float,
    is_rate_limited,
    is_retryable_exception,
    is_retryable_status,
    rate_limit_delay,
)

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"
JSON_MEDIA_TYPE = "application/vnd.github+json"
RAW_MEDIA_TYPE = "application/vnd.github.raw+json"

SleepFunc = Callable[[float], Awaitable[Any]]


class GitHubClient:
    """
    Client for the GitHub REST API.

    Explicitly constructed and explicitly closed; use it as an async
    context manager or call aclose().
    """

    def __init__(
        self,
        config: GitHubConfig | None = None,
        discovery: DiscoveryConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        """
        Initialize GitHubClient.

        Args:
            config: API access settings (defaults to GitHubConfig())
            discovery: Manifest search settings (defaults to DiscoveryConfig())
            transport: Optional httpx transport (tests pass httpx.MockTransport)
            sleep: Coroutine used for every backoff wait
        """
        self.config = config or GitHubConfig()
        self.discovery = discovery or DiscoveryConfig()
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(self.config.concurrency)
        self._transient_retry = RetryConfig(
            max_retries=self.config.transient_retries,
            base_delay=self.config.backoff_base_delay,
        )
        self._rate_limit_retry = RetryConfig(
            max_retries=self.config.rate_limit_retries,
            base_delay=self.config.backoff_base_delay,
        )
        # Monotonic deadline before which no request may start
        self._blocked_until = 0.0
        self.request_count = 0

        headers = {
            "Accept": JSON_MEDIA_TYPE,
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": f"pkgsync/{__version__}",
        }
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"

        self._http = httpx.AsyncClient(
            base_url=self.config.api_url,
            headers=headers,
            timeout=self.config.request_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Request core
    # ------------------------------------------------------------------

    async def _wait_if_paused(self) -> None:
        remaining = self._blocked_until - time.monotonic()
        if remaining > 0:
            await self._sleep(remaining)

    def _pause(self, delay: float) -> None:
        self._blocked_until = max(self._blocked_until, time.monotonic() + delay)

    async def _request(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Perform a GET with rate-limit and transient retry handling.

        The semaphore is held only while the request is in flight; backoff
        waits happen outside it so other callers keep their slots.

        Raises:
            NotFoundError: On HTTP 404
            RateLimitedError: When rate_limit_retries is exhausted
            TransientFetchError: On persistent 5xx/network errors, or any
                other non-2xx status
        """
        rate_attempt = 0
        transient_attempt = 0

        while True:
            await self._wait_if_paused()

            try:
                async with self._semaphore:
                    self.request_count += 1
                    response = await self._http.get(path, params=params, headers=headers)
            except httpx.TransportError as e:
                if not is_retryable_exception(e) or (
                    transient_attempt >= self._transient_retry.max_retries
                ):
                    raise TransientFetchError(
                        f"Request to {path} failed: {e}", url=path
                    ) from e
                delay = self._transient_retry.calculate_delay(transient_attempt)
                transient_attempt += 1
                logger.warning(
                    f"GET {path}: retry {transient_attempt}/{self._transient_retry.max_retries} "
                    f"after {delay:.2f}s due to: {e}"
                )
                await self._sleep(delay)
                continue

            status = response.status_code

            if is_rate_limited(response):
                if rate_attempt >= self._rate_limit_retry.max_retries:
                    raise RateLimitedError(
                        f"Rate limit retries ({self._rate_limit_retry.max_retries}) "
                        f"exceeded for {path}",
                        retry_after=header_float(response, "retry-after"),
                        url=path,
                        status_code=status,
                    )
                delay = rate_limit_delay(
                    response,
                    rate_attempt,
                    self._rate_limit_retry,
                    max_wait=self.config.max_rate_limit_wait,
                )
                rate_attempt += 1
                logger.warning(
                    f"GET {path}: rate limited (HTTP {status}), pausing all requests "
                    f"for {delay:.2f}s (retry {rate_attempt}/{self._rate_limit_retry.max_retries})"
                )
                self._pause(delay)
                continue

            if is_retryable_status(status):
                if transient_attempt >= self._transient_retry.max_retries:
                    raise TransientFetchError(
                        f"GitHub returned HTTP {status} for {path} after "
                        f"{transient_attempt} retries",
                        status_code=status,
                        url=path,
                    )
                delay = self._transient_retry.calculate_delay(transient_attempt)
                transient_attempt += 1
                logger.warning(
                    f"GET {path}: HTTP {status}, retry {transient_attempt}/"
                    f"{self._transient_retry.max_retries} after {delay:.2f}s"
                )
                await self._sleep(delay)
                continue

            if status == 404:
                raise NotFoundError(f"Not found: {path}", url=path)

            if not response.is_success:
                raise TransientFetchError(
                    f"GitHub returned HTTP {status} for {path}",
                    status_code=status,
                    url=path,
                )

            return response

    @staticmethod
    def _contents_path(owner: str, repo: str, path: str) -> str:
        base = f"/repos/{owner}/{repo}/contents"
        path = path.strip("/")
        return f"{base}/{quote(path, safe='/')}" if path else base

    # ------------------------------------------------------------------
    # Repository listing
    # ------------------------------------------------------------------

    async def iter_repositories(self, org: str) -> AsyncIterator[RepoDescriptor]:
        """
        Iterate over an organization's repositories, page by page.

        Pages are requested lazily until a page shorter than page_size
        arrives. Calling again restarts from page 1. Archived and disabled
        repositories are skipped unless include_archived is set.

        Args:
            org: Organization login

        Yields:
            RepoDescriptor for each repository

        Raises:
            NotFoundError: If the organization does not exist
        """
        page_size = self.config.page_size
        page = 1

        while True:
            response = await self._request(
                f"/orgs/{org}/repos",
                params={"type": "all", "per_page": page_size, "page": page},
            )
            items = response.json()
            if not isinstance(items, list):
                raise TransientFetchError(
                    f"Unexpected repository listing payload for {org}", page=page
                )

            logger.debug(f"Listed page {page} of {org}: {len(items)} repositories")

            for item in items:
                repo = RepoDescriptor.from_api(item)
                if not self.config.include_archived and not repo.is_active:
                    logger.debug(f"Skipping inactive repository {repo.full_name}")
                    continue
                yield repo

            if len(items) < page_size:
                return
            page += 1

    async def list_repositories(self, org: str) -> list[RepoDescriptor]:
        """Collect iter_repositories() into a list."""
        return [repo async for repo in self.iter_repositories(org)]

    async def get_repository(self, owner: str, name: str) -> RepoDescriptor | None:
        """
        Look up a single repository.

        Archived and disabled repositories are returned as well; the
        caller asked for this one by name.

        Returns:
            RepoDescriptor, or None when the repository does not exist
                or the token cannot see it
        """
        try:
            response = await self._request(f"/repos/{owner}/{name}")
        except NotFoundError:
            return None
        data = response.json()
        if not isinstance(data, dict):
            raise TransientFetchError(f"Unexpected repository payload for {owner}/{name}")
        return RepoDescriptor.from_api(data)

    # ------------------------------------------------------------------
    # File contents
    # ------------------------------------------------------------------

    async def fetch_file_content(
        self,
        owner: str,
        repo: str,
        path: str,
        ref: str | None = None,
    ) -> FileContent | None:
        """
        Fetch and decode one file.

        Args:
            owner: Repository owner
            repo: Repository name
            path: File path inside the repository
            ref: Optional branch, tag or sha

        Returns:
            FileContent, or None when the file does not exist

        Raises:
            UnexpectedContentError: If the path is a directory
            RateLimitedError, TransientFetchError: On fetch failure
        """
        url = self._contents_path(owner, repo, path)
        params = {"ref": ref} if ref else None

        try:
            response = await self._request(url, params=params)
        except NotFoundError:
            return None

        data = response.json()
        if isinstance(data, list) or data.get("type") not in (None, "file"):
            raise UnexpectedContentError(
                f"Expected a file at {owner}/{repo}/{path}", path=path
            )

        encoding = data.get("encoding")
        content = data.get("content")
        size = int(data.get("size") or 0)

        if encoding == "base64" and content is not None:
            raw = base64.b64decode(content)
        elif encoding == "none" or (not content and size > 0):
            # Files over 1 MB come back without inline content
            try:
                raw_response = await self._request(
                    url, params=params, headers={"Accept": RAW_MEDIA_TYPE}
                )
            except NotFoundError:
                return None
            raw = raw_response.content
        else:
            raw = (content or "").encode("utf-8")

        return FileContent(path=data.get("path") or path, sha=data.get("sha"), size=size, content=raw)

    async def _list_directory(
        self, owner: str, repo: str, path: str, ref: str | None
    ) -> list[dict[str, Any]]:
        response = await self._request(
            self._contents_path(owner, repo, path), params={"ref": ref} if ref else None
        )
        data = response.json()
        if not isinstance(data, list):
            raise UnexpectedContentError(
                f"Expected a directory at {owner}/{repo}/{path or '.'}", path=path
            )
        return data

    def _should_skip(self, name: str) -> bool:
        return name.startswith(".") or name in self.discovery.skip_dirs

    async def find_all_manifests(
        self,
        owner: str,
        repo: str,
        root: str = "",
        ref: str | None = None,
    ) -> list[str]:
        """
        Walk the repository tree and return every manifest path.

        Directories named in skip_dirs and hidden directories are pruned.
        Directories deeper than max_depth are not entered. The walk fails
        with ManifestSearchLimitError once it needs more than max_nodes
        directory listings, so a huge monorepo cannot run unbounded.

        Args:
            owner: Repository owner
            repo: Repository name
            root: Directory to start from ("" for the repository root)
            ref: Optional branch, tag or sha

        Returns:
            Sorted manifest paths; empty if the repository is empty

        Raises:
            ManifestSearchLimitError: If max_nodes is exceeded
            RateLimitedError, TransientFetchError: On fetch failure
        """
        filename = self.discovery.manifest_filename
        max_depth = self.discovery.max_depth
        max_nodes = self.discovery.max_nodes

        root = root.strip("/")
        found: list[str] = []
        stack: list[tuple[str, int]] = [(root, 0)]
        visited = 0

        while stack:
            path, depth = stack.pop()
            visited += 1
            if visited > max_nodes:
                raise ManifestSearchLimitError(
                    f"Manifest search in {owner}/{repo} exceeded {max_nodes} directories",
                    repository=f"{owner}/{repo}",
                    max_nodes=max_nodes,
                )

            try:
                entries = await self._list_directory(owner, repo, path, ref)
            except NotFoundError:
                if path == root:
                    # Empty repositories have no contents at all
                    return []
                logger.debug(f"{owner}/{repo}: directory {path} vanished during walk")
                continue

            subdirs: list[tuple[str, int]] = []
            for entry in entries:
                name = entry.get("name", "")
                entry_path = entry.get("path") or (f"{path}/{name}" if path else name)
                entry_type = entry.get("type")

                if entry_type == "file" and name == filename:
                    found.append(entry_path)
                elif entry_type == "dir" and not self._should_skip(name):
                    if depth < max_depth:
                        subdirs.append((entry_path, depth + 1))

            stack.extend(reversed(subdirs))

        logger.debug(
            f"{owner}/{repo}: found {len(found)} manifests in {visited} directories"
        )
        return sorted(found)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    async def get_rate_limit(self) -> RateLimitStatus:
        """
        Get the current core REST quota.

        Returns:
            RateLimitStatus
        """
        response = await self._request("/rate_limit")
        data = response.json()
        core = (data.get("resources") or {}).get("core") or data.get("rate") or {}
        return RateLimitStatus(**core)
