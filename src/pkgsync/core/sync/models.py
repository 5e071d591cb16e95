"""
Pydantic models for sync results.

SyncSummary is what the facade returns for every run, successful or not.
to_payload() renders the camelCase shape consumed by HTTP callers.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RepoOutcome(str, Enum):
    """Terminal state of one repository's unit of work."""

    SYNCED = "synced"
    NO_MANIFEST = "no_manifest"
    SKIPPED = "skipped"
    FAILED = "failed"


class RepoSyncError(BaseModel):
    """One repository that failed during a run."""

    repository: str = Field(..., description="Repository full name")
    error_type: str = Field(..., description="Exception class name")
    message: str = Field(..., description="Error message")

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SyncSummary(BaseModel):
    """Aggregate result of syncing one organization.

    Example:
        >>> summary = SyncSummary(success=True, organization="acme", success_count=12,
        ...                       no_manifest_count=3)
        >>> summary.to_payload()["noManifestCount"]
        3
    """

    success: bool = Field(..., description="False only for organization-level failures")
    organization: str = Field(..., description="Organization name")
    message: str = Field(default="Sync complete.", description="Human readable outcome")
    total_repositories: int = Field(default=0, ge=0, description="Repositories listed")
    success_count: int = Field(default=0, ge=0, description="Repositories with manifests stored")
    no_manifest_count: int = Field(default=0, ge=0, description="Repositories without a manifest")
    error_count: int = Field(default=0, ge=0, description="Repositories that failed")
    skipped_count: int = Field(default=0, ge=0, description="Repositories skipped as fresh")
    missing_count: int = Field(default=0, ge=0, description="Repositories newly marked missing")
    manifest_count: int = Field(default=0, ge=0, description="Manifests written")
    batches: int = Field(default=0, ge=0, description="Batches processed")
    cancelled: bool = Field(default=False, description="Run stopped by a cancel event")
    errors: list[RepoSyncError] = Field(default_factory=list, description="Per-repository errors")
    duration_seconds: float = Field(default=0.0, ge=0.0, description="Run duration")

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @property
    def processed_count(self) -> int:
        """Repositories that reached a terminal state."""
        return self.success_count + self.no_manifest_count + self.error_count + self.skipped_count

    def to_payload(self) -> dict[str, Any]:
        """Render as a JSON-ready dict with camelCase keys."""
        return self.model_dump(by_alias=True, mode="json")
