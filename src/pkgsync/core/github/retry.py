"""
When and how long to back off between GitHub API attempts.

GitHubClient keeps two separate attempt counters per request. One covers
rate-limit rejections and honours whatever wait GitHub announces. The
other covers 5xx answers and transport failures and uses jittered
exponential backoff. This module holds the classification and delay
arithmetic; the request loop itself lives in client.py.
"""

import random
import time
from dataclasses import dataclass

import httpx

RATE_LIMIT_STATUSES = (403, 429)


@dataclass
class RetryConfig:
    """
    Exponential backoff parameters.

    Attempt n (counting from 0) waits base_delay * multiplier**n seconds,
    spread by up to ±jitter_ratio of that value when jitter is on.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_ratio: float = 0.2

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if not 0.0 <= self.jitter_ratio <= 1.0:
            raise ValueError("jitter_ratio must be between 0.0 and 1.0")

    def calculate_delay(self, attempt: int) -> float:
        nominal = self.base_delay * self.multiplier**attempt
        if not self.jitter:
            return nominal
        spread = nominal * self.jitter_ratio
        return max(0.0, random.uniform(nominal - spread, nominal + spread))


def is_rate_limited(response: httpx.Response) -> bool:
    """
    True for GitHub's primary and secondary rate-limit answers.

    Both arrive as 403 or 429. The primary limit reports an exhausted
    X-RateLimit-Remaining; the secondary limit sends Retry-After. A 403
    carrying neither means the token lacks access.
    """
    if response.status_code not in RATE_LIMIT_STATUSES:
        return False
    headers = response.headers
    return "retry-after" in headers or headers.get("x-ratelimit-remaining") == "0"


def is_retryable_status(status_code: int) -> bool:
    return status_code >= 500 and status_code < 600


def is_retryable_exception(exception: Exception) -> bool:
    # TimeoutException is a TransportError; listed for readability
    return isinstance(exception, (httpx.TimeoutException, httpx.TransportError))


def header_float(response: httpx.Response, name: str) -> float | None:
    raw = response.headers.get(name)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def rate_limit_delay(
    response: httpx.Response,
    attempt: int,
    config: RetryConfig,
    *,
    max_wait: float,
    now: float | None = None,
) -> float:
    """
    Seconds to sleep after a rate-limited response, never above max_wait.

    Retry-After is used when present and numeric. Otherwise the wait
    runs until one second past the X-RateLimit-Reset epoch. Without
    either header the backoff from `config` applies.

    Args:
        response: The rejected response
        attempt: Zero-based rate-limit retry count
        config: Backoff used when the headers give no hint
        max_wait: Ceiling for the result
        now: Epoch seconds to measure the reset against (defaults to time.time())
    """
    retry_after = header_float(response, "retry-after")
    if retry_after is not None:
        wait = retry_after
    else:
        reset_at = header_float(response, "x-ratelimit-reset")
        if reset_at is not None:
            wait = reset_at - (time.time() if now is None else now) + 1.0
        else:
            wait = config.calculate_delay(attempt)
    return min(max(0.0, wait), max_wait)


__all__ = [
    "RetryConfig",
    "header_float",
    "is_rate_limited",
    "is_retryable_exception",
    "is_retryable_status",
    "rate_limit_delay",
]
