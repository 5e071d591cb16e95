"""
Custom exceptions for pkgsync.

This module defines the exception hierarchy shared by the GitHub client,
the manifest extractor, the persistence layer and the reconciliation engine.
Every exception carries a human-readable message plus keyword context.

Exception Hierarchy:
    PkgSyncError (base)
    ├── GitHubError (remote API errors)
    │   ├── NotFoundError (404, expected absence)
    │   ├── RateLimitedError (rate-limit retry ceiling exceeded)
    │   ├── TransientFetchError (5xx/network after retries, other non-2xx)
    │   ├── UnexpectedContentError (directory where a file was expected)
    │   └── ManifestSearchLimitError (tree walk exceeded its node budget)
    ├── MalformedManifestError (manifest decode/parse failure)
    ├── PersistenceError (database errors)
    │   ├── ConstraintViolationError (uniqueness conflict)
    │   └── TransactionTimeoutError (transaction deadline exceeded)
    └── OrganizationSyncError (organization-level abort)

Example:
    >>> from pkgsync.core.exceptions import TransientFetchError
    >>> try:
    ...     raise TransientFetchError("Server error", status_code=502, url="/orgs/acme/repos")
    ... except TransientFetchError as e:
    ...     print(e.status_code, e.context["url"])
    502 /orgs/acme/repos
"""


class PkgSyncError(Exception):
    """
    Base exception for all pkgsync errors.

    Attributes:
        message: Human-readable error message
        context: Dictionary of additional context
    """

    def __init__(self, message: str, **context: object) -> None:
        """
        Initialize an error with message and context.

        Args:
            message: Human-readable error message
            **context: Additional context as keyword arguments
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Return string representation of the error."""
        return self.message


class GitHubError(PkgSyncError):
    """Base exception for failures talking to the GitHub REST API."""


class NotFoundError(GitHubError):
    """
    Raised when a GitHub resource does not exist (HTTP 404).

    Absence is an expected outcome: for manifests it drives the
    delete-reconciliation path rather than an error count.
    """


class RateLimitedError(GitHubError):
    """
    Raised when the rate-limit retry ceiling has been exceeded.

    Attributes:
        retry_after: Seconds the API asked us to wait on the last response
    """

    def __init__(self, message: str, *, retry_after: float | None = None, **context: object) -> None:
        super().__init__(message, retry_after=retry_after, **context)
        self.retry_after = retry_after


class TransientFetchError(GitHubError):
    """
    Raised when a request keeps failing with 5xx or network errors, or
    returns a non-2xx status that is neither 404 nor a rate limit.

    Attributes:
        status_code: Last HTTP status seen, None for transport failures
    """

    def __init__(self, message: str, *, status_code: int | None = None, **context: object) -> None:
        super().__init__(message, status_code=status_code, **context)
        self.status_code = status_code


class UnexpectedContentError(GitHubError):
    """Raised when the contents API returns a directory listing for a file path."""


class ManifestSearchLimitError(GitHubError):
    """Raised when a recursive manifest search visits more directories than allowed."""


class MalformedManifestError(PkgSyncError):
    """
    Raised when manifest bytes cannot be decoded or parsed.

    Example:
        >>> raise MalformedManifestError("Invalid JSON", path="package.json", position=12)
        Traceback (most recent call last):
        ...
        pkgsync.core.exceptions.MalformedManifestError: Invalid JSON
    """


class PersistenceError(PkgSyncError):
    """Base exception for database failures."""


class ConstraintViolationError(PersistenceError):
    """
    Raised when an upsert would collide with a different row's unique key.

    A repository whose remote id belongs to one row and whose full name
    belongs to another is never silently merged.
    """


class TransactionTimeoutError(PersistenceError):
    """
    Raised when a unit of work exceeds its deadline.

    The transaction has been rolled back when this is raised.

    Attributes:
        timeout: Deadline in seconds that was exceeded
    """

    def __init__(self, message: str, *, timeout: float, **context: object) -> None:
        super().__init__(message, timeout=timeout, **context)
        self.timeout = timeout


class OrganizationSyncError(PkgSyncError):
    """
    Raised when a sync cannot proceed at organization level.

    Covers failing to create the organization row or to list its
    repositories. This is the only failure that aborts a whole run.
    """


__all__ = [
    "PkgSyncError",
    "GitHubError",
    "NotFoundError",
    "RateLimitedError",
    "TransientFetchError",
    "UnexpectedContentError",
    "ManifestSearchLimitError",
    "MalformedManifestError",
    "PersistenceError",
    "ConstraintViolationError",
    "TransactionTimeoutError",
    "OrganizationSyncError",
]
