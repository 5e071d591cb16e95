"""
GitHub REST API access.

Provides the async client used to list an organization's repositories
and fetch their manifests, plus the models it returns.
"""

from pkgsync.core.github.client import GitHubClient
from pkgsync.core.github.models import FileContent, RateLimitStatus, RepoDescriptor
from pkgsync.core.github.retry import RetryConfig

__all__ = [
    "FileContent",
    "GitHubClient",
    "RateLimitStatus",
    "RepoDescriptor",
    "RetryConfig",
]
