"""
GitHub data models for pkgsync.

Defines Pydantic models for repository listings, file contents and
rate-limit status as returned by the GitHub REST API.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, computed_field


class RepoDescriptor(BaseModel):
    """
    One repository from an organization listing.

    Example:
        >>> repo = RepoDescriptor.from_api({"id": 1, "name": "web", "full_name": "acme/web",
        ...                                  "owner": {"login": "acme"}})
        >>> repo.default_branch
        'main'
    """

    remote_id: int | None = Field(default=None, description="GitHub numeric repository id")
    name: str = Field(..., description="Repository name")
    full_name: str = Field(..., description="owner/name")
    description: str | None = Field(default=None, description="Repository description")
    url: str = Field(default="", description="Web URL (html_url)")
    default_branch: str = Field(default="main", description="Default branch")
    owner_login: str = Field(..., description="Owner login")
    owner_id: int | None = Field(default=None, description="Owner numeric id")
    owner_type: str | None = Field(default=None, description="'Organization' or 'User'")
    archived: bool = Field(default=False)
    disabled: bool = Field(default=False)
    updated_at: datetime | None = Field(default=None, description="Last remote update")
    pushed_at: datetime | None = Field(default=None, description="Last push")
    stars: int = Field(default=0, ge=0, description="stargazers_count")
    forks: int = Field(default=0, ge=0, description="forks_count")
    size_kb: int = Field(default=0, ge=0, description="Repository size in kilobytes")
    language: str | None = Field(default=None, description="Primary language")

    @computed_field
    @property
    def is_active(self) -> bool:
        """Check if the repository is neither archived nor disabled."""
        return not (self.archived or self.disabled)

    @property
    def last_modified(self) -> datetime | None:
        """Latest of updated_at and pushed_at."""
        stamps = [s for s in (self.updated_at, self.pushed_at) if s is not None]
        return max(stamps) if stamps else None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> RepoDescriptor:
        """
        Build a descriptor from a /orgs/{org}/repos list item.

        Args:
            data: Repository object from the API

        Returns:
            RepoDescriptor
        """
        owner = data.get("owner") or {}
        full_name = data.get("full_name") or f"{owner.get('login', '')}/{data['name']}"
        return cls(
            remote_id=data.get("id"),
            name=data["name"],
            full_name=full_name,
            description=data.get("description"),
            url=data.get("html_url") or f"https://github.com/{full_name}",
            default_branch=data.get("default_branch") or "main",
            owner_login=owner.get("login") or full_name.split("/", 1)[0],
            owner_id=owner.get("id"),
            owner_type=owner.get("type"),
            archived=bool(data.get("archived", False)),
            disabled=bool(data.get("disabled", False)),
            updated_at=data.get("updated_at"),
            pushed_at=data.get("pushed_at"),
            stars=data.get("stargazers_count") or 0,
            forks=data.get("forks_count") or 0,
            size_kb=data.get("size") or 0,
            language=data.get("language"),
        )


class FileContent(BaseModel):
    """Decoded content of a single repository file."""

    path: str = Field(..., description="Path inside the repository")
    sha: str | None = Field(default=None, description="Git blob sha")
    size: int = Field(default=0, description="Size in bytes reported by the API")
    content: bytes = Field(..., description="Decoded file bytes")


class RateLimitStatus(BaseModel):
    """Core REST quota as reported by /rate_limit."""

    limit: int
    remaining: int
    used: int = 0
    reset: int = Field(..., description="Epoch seconds when the window resets")

    @computed_field
    @property
    def reset_at(self) -> datetime:
        """Reset time as an aware datetime."""
        return datetime.fromtimestamp(self.reset, tz=timezone.utc)

    @computed_field
    @property
    def is_exhausted(self) -> bool:
        """Check if no requests remain in the current window."""
        return self.remaining <= 0
