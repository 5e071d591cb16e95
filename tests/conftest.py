"""
Pytest configuration and shared fixtures.

Provides an in-process fake of the GitHub REST API (served through
httpx.MockTransport), configuration objects pointing at temporary
databases, and helpers to build clients and services against the fake.
"""

import base64
import json
import time
from pathlib import Path
from typing import Any

import httpx
import pytest

from pkgsync.core.config.models import (
    DatabaseConfig,
    DiscoveryConfig,
    GitHubConfig,
    PkgSyncConfig,
    SyncConfig,
)
from pkgsync.core.db.pool import TransactionPool
from pkgsync.core.github.client import GitHubClient
from pkgsync.core.sync.service import SyncService

# ==============================================================================
# Fake GitHub
# ==============================================================================


class FakeGitHub:
    """
    Minimal stand-in for the GitHub REST API.

    Serves /orgs/{org}/repos with pagination, /repos/{o}/{r} and
    /repos/{o}/{r}/contents/...
    for files and directories, and /rate_limit. Failures can be queued per
    URL path and every request is recorded with a monotonic timestamp.
    """

    def __init__(self, org: str = "acme") -> None:
        self.org = org
        self.org_id = 4242
        self.repos: dict[str, dict[str, Any]] = {}
        self.files: dict[str, dict[str, bytes]] = {}
        self.failures: dict[str, list[httpx.Response]] = {}
        # (repo, path) pairs served like files over 1 MB: no inline content
        self.large_files: set[tuple[str, str]] = set()
        self.requests: list[tuple[float, str]] = []
        self._next_id = 1000

    # -- setup ---------------------------------------------------------

    def add_repo(
        self,
        name: str,
        manifest: dict[str, Any] | bytes | None = None,
        **fields: Any,
    ) -> dict[str, Any]:
        """Add a repository, optionally with a root package.json."""
        self._next_id += 1
        repo = {
            "id": self._next_id,
            "name": name,
            "full_name": f"{self.org}/{name}",
            "description": f"The {name} repository",
            "html_url": f"https://github.com/{self.org}/{name}",
            "default_branch": "main",
            "owner": {"login": self.org, "id": self.org_id, "type": "Organization"},
            "archived": False,
            "disabled": False,
            "updated_at": "2024-01-01T00:00:00Z",
            "pushed_at": "2024-01-01T00:00:00Z",
            "stargazers_count": 0,
            "forks_count": 0,
            "size": 12,
            "language": "TypeScript",
        }
        repo.update(fields)
        self.repos[name] = repo
        self.files.setdefault(name, {})
        if manifest is not None:
            self.set_file(name, "package.json", manifest)
        return repo

    def set_file(self, repo: str, path: str, content: dict[str, Any] | bytes | str) -> None:
        if isinstance(content, dict):
            content = json.dumps(content).encode()
        elif isinstance(content, str):
            content = content.encode()
        self.files[repo][path] = content

    def remove_file(self, repo: str, path: str = "package.json") -> None:
        self.files[repo].pop(path, None)

    def fail(self, path: str, status: int, times: int = 1, headers: dict[str, str] | None = None) -> None:
        """Answer the next `times` requests to path with status."""
        queue = self.failures.setdefault(path, [])
        for _ in range(times):
            queue.append(httpx.Response(status, headers=headers or {}, json={"message": "fail"}))

    def requests_to(self, path: str) -> list[float]:
        return [stamp for stamp, p in self.requests if p == path]

    # -- serving -------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((time.monotonic(), path))

        if queue := self.failures.get(path):
            return queue.pop(0)

        if path == "/rate_limit":
            core = {"limit": 5000, "remaining": 4999, "used": 1, "reset": 1700000000}
            return httpx.Response(200, json={"resources": {"core": core}, "rate": core})

        if path.startswith("/orgs/") and path.endswith("/repos"):
            return self._list_repos(request, path.split("/")[2])

        if path.startswith("/repos/"):
            parts = path.split("/", 5)
            # ['', 'repos', owner, repo, 'contents', rest]
            if len(parts) == 4:
                return self._repository(parts[2], parts[3])
            if len(parts) >= 5 and parts[4] == "contents":
                raw_accept = "raw" in request.headers.get("accept", "")
                return self._contents(parts[3], parts[5] if len(parts) > 5 else "", raw_accept)

        return httpx.Response(404, json={"message": "Not Found"})

    def _list_repos(self, request: httpx.Request, org: str) -> httpx.Response:
        if org != self.org:
            return httpx.Response(404, json={"message": "Not Found"})
        per_page = int(request.url.params.get("per_page", 30))
        page = int(request.url.params.get("page", 1))
        repos = list(self.repos.values())
        start = (page - 1) * per_page
        return httpx.Response(200, json=repos[start : start + per_page])

    def _repository(self, owner: str, name: str) -> httpx.Response:
        if owner != self.org or name not in self.repos:
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(200, json=self.repos[name])

    def _contents(self, repo: str, path: str, raw_accept: bool = False) -> httpx.Response:
        if repo not in self.repos:
            return httpx.Response(404, json={"message": "Not Found"})
        files = self.files[repo]
        path = path.strip("/")

        if path in files:
            raw = files[path]
            if raw_accept:
                return httpx.Response(200, content=raw)
            body = {
                "type": "file",
                "name": path.rsplit("/", 1)[-1],
                "path": path,
                "sha": f"sha-{len(raw)}",
                "size": len(raw),
                "encoding": "base64",
                "content": base64.encodebytes(raw).decode(),
            }
            if (repo, path) in self.large_files:
                body.update(encoding="none", content="")
            return httpx.Response(200, json=body)

        prefix = f"{path}/" if path else ""
        entries: dict[str, str] = {}
        for file_path in files:
            if not file_path.startswith(prefix):
                continue
            rest = file_path[len(prefix) :]
            name, sep, _ = rest.partition("/")
            entries[name] = "dir" if sep else "file"

        if not entries:
            return httpx.Response(404, json={"message": "Not Found"})

        listing = [
            {"name": name, "path": f"{prefix}{name}", "type": kind}
            for name, kind in sorted(entries.items())
        ]
        return httpx.Response(200, json=listing)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def fake_github() -> FakeGitHub:
    """Provide an empty fake GitHub organization named acme."""
    return FakeGitHub()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    """Provide a sleep function that returns immediately."""
    return SleepRecorder()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path for a temporary SQLite database."""
    return tmp_path / "pkgsync.db"


@pytest.fixture
def config(db_path: Path) -> PkgSyncConfig:
    """Configuration tuned for tests: no pacing, tiny backoff."""
    return PkgSyncConfig(
        github=GitHubConfig(token="test-token", backoff_base_delay=0.01),
        discovery=DiscoveryConfig(),
        database=DatabaseConfig(path=db_path, transaction_timeout=30.0),
        sync=SyncConfig(batch_size=10, batch_delay=0.0),
    )


@pytest.fixture
def make_client(fake_github: FakeGitHub, sleep_recorder: SleepRecorder):
    """Factory for GitHubClient instances served by the fake."""

    def _make(config: PkgSyncConfig | None = None) -> GitHubClient:
        config = config or PkgSyncConfig(github=GitHubConfig(token="test-token"))
        return GitHubClient(
            config.github,
            config.discovery,
            transport=fake_github.transport(),
            sleep=sleep_recorder,
        )

    return _make


@pytest.fixture
def make_service(make_client):
    """Factory for SyncService instances wired to the fake and a temp database."""

    def _make(config: PkgSyncConfig) -> SyncService:
        pool = TransactionPool(
            config.database.path,
            concurrency=config.database.concurrency,
            busy_timeout=config.database.busy_timeout,
            transaction_timeout=config.database.transaction_timeout,
        )
        return SyncService(make_client(config), pool, config)

    return _make


@pytest.fixture
def clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """
    Isolate configuration from the developer machine.

    Points XDG_CONFIG_HOME at an empty directory, removes pkgsync
    variables and chdirs into an empty project directory.
    """
    for name in (
        "GITHUB_TOKEN",
        "PKGSYNC_GITHUB_CONCURRENCY",
        "PKGSYNC_DB_CONCURRENCY",
        "PKGSYNC_DB_PATH",
        "PKGSYNC_BATCH_SIZE",
        "PKGSYNC_BATCH_DELAY",
        "PKGSYNC_DISCOVERY_MODE",
    ):
        monkeypatch.delenv(name, raising=False)

    xdg = tmp_path / "xdg"
    xdg.mkdir()
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))

    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.chdir(project)

    from pkgsync.core.config.loader import clear_cache

    clear_cache()
    yield project
    clear_cache()
