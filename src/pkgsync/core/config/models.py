"""
Configuration data models for pkgsync.

These models define the structure of .pkgsync.json and
~/.config/pkgsync/config.json files, with validation and type safety
via Pydantic.
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_SKIP_DIRS = [
    "node_modules",
    ".git",
    ".github",
    "dist",
    "build",
    "coverage",
    "docs",
    ".vscode",
    ".idea",
    "test",
    "tests",
    "__tests__",
]


class GitHubConfig(BaseModel):
    """
    GitHub REST API access.

    Controls authentication, request concurrency and the retry policy
    for rate limits and transient failures.
    """
    token: Optional[str] = Field(
        default=None,
        description="Personal access token (GITHUB_TOKEN)"
    )
    api_url: str = Field(
        default="https://api.github.com",
        description="Base URL of the GitHub REST API"
    )
    concurrency: int = Field(
        default=10,
        ge=1,
        description="Maximum simultaneous in-flight API requests"
    )
    page_size: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Repositories requested per listing page"
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Per-request timeout in seconds"
    )
    rate_limit_retries: int = Field(
        default=5,
        ge=0,
        description="Retries after a rate-limit response before giving up"
    )
    transient_retries: int = Field(
        default=3,
        ge=0,
        description="Retries after 5xx or network errors before giving up"
    )
    backoff_base_delay: float = Field(
        default=1.0,
        gt=0,
        description="Initial exponential backoff delay in seconds"
    )
    max_rate_limit_wait: float = Field(
        default=900.0,
        gt=0,
        description="Upper bound in seconds for a single rate-limit wait"
    )
    include_archived: bool = Field(
        default=False,
        description="Keep archived and disabled repositories in listings"
    )


class DiscoveryConfig(BaseModel):
    """
    Manifest discovery inside a repository.

    In "root" mode only the top-level manifest is fetched. In "recursive"
    mode the repository tree is walked, pruning skip_dirs and any hidden
    directory, bounded by max_depth and max_nodes.
    """
    mode: Literal["root", "recursive"] = Field(
        default="root",
        description="Discovery strategy: 'root' or 'recursive'"
    )
    manifest_filename: str = Field(
        default="package.json",
        min_length=1,
        description="File name that identifies a manifest"
    )
    skip_dirs: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SKIP_DIRS),
        description="Directory names never entered during a recursive walk"
    )
    max_depth: int = Field(
        default=8,
        ge=0,
        description="Deepest directory level entered (root is 0)"
    )
    max_nodes: int = Field(
        default=500,
        ge=1,
        description="Maximum directory listings per repository walk"
    )


class DatabaseConfig(BaseModel):
    """
    SQLite persistence settings.
    """
    path: Path = Field(
        default=Path(".pkgsync/pkgsync.db"),
        description="SQLite database file"
    )
    concurrency: int = Field(
        default=5,
        ge=1,
        description="Maximum simultaneous transactions"
    )
    transaction_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Deadline in seconds for one repository's unit of work"
    )
    busy_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds SQLite waits for a competing writer"
    )


class SyncConfig(BaseModel):
    """
    Reconciliation pacing and optimizations.
    """
    batch_size: int = Field(
        default=10,
        ge=1,
        description="Repositories processed concurrently per batch"
    )
    batch_delay: float = Field(
        default=2.0,
        ge=0.0,
        description="Pause in seconds between consecutive batches"
    )
    skip_unchanged_manifests: bool = Field(
        default=False,
        description="Leave child rows untouched when the content hash is unchanged"
    )
    skip_fresh_repositories: bool = Field(
        default=False,
        description="Skip repositories not updated since their last fetch"
    )
    mark_missing_repositories: bool = Field(
        default=True,
        description="Flag repositories that disappeared from the organization listing"
    )


class PkgSyncConfig(BaseModel):
    """
    Top-level pkgsync configuration.

    Loaded from defaults, user config, project config, and env vars.

    Example:
        >>> config = PkgSyncConfig(
        ...     github=GitHubConfig(token="ghp_x", concurrency=4),
        ...     sync=SyncConfig(batch_size=5),
        ... )
        >>> config.sync.batch_delay
        2.0
    """
    github: GitHubConfig = Field(
        default_factory=GitHubConfig,
        description="GitHub API access"
    )
    discovery: DiscoveryConfig = Field(
        default_factory=DiscoveryConfig,
        description="Manifest discovery"
    )
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig,
        description="SQLite persistence"
    )
    sync: SyncConfig = Field(
        default_factory=SyncConfig,
        description="Batching and pacing"
    )

    model_config = ConfigDict(
        extra="allow",
        validate_assignment=True,
    )

    @field_validator("github", mode="before")
    @classmethod
    def _blank_token_is_none(cls, value: object) -> object:
        if isinstance(value, dict) and value.get("token") == "":
            value = {**value, "token": None}
        return value
