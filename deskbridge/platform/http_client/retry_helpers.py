"""Retry helpers for connector clients.

Builds the tenacity pieces used by ConnectorClient from a RetryPolicy.
"""

from typing import Callable, Optional

import httpx
from tenacity import retry_if_exception, stop_after_attempt, stop_never

from deskbridge.core.exceptions import RateLimitedError
from deskbridge.platform.http_client.retry_policy import RetryPolicy


def should_retry_on_rate_limit(exception: BaseException) -> bool:
    """Check if exception is a rate-limit response that should be retried.

    Args:
        exception: Exception to check

    Returns:
        True if this is a RateLimitedError
    """
    return isinstance(exception, RateLimitedError)


def parse_retry_after(response: httpx.Response) -> Optional[float]:
    """Read a Retry-After header given in seconds.

    Args:
        response: HTTP response

    Returns:
        Seconds to wait, or None if the header is absent or not numeric
    """
    retry_after = response.headers.get("Retry-After")
    if retry_after is None:
        return None
    try:
        return max(float(retry_after), 0.0)
    except (ValueError, TypeError):
        return None


def stop_for_policy(policy: RetryPolicy):
    """Stop condition allowing ``max_retries`` retries after the first attempt."""
    if policy.max_retries is None:
        return stop_never
    return stop_after_attempt(policy.max_retries + 1)


def wait_for_retry_after(policy: RetryPolicy) -> Callable[..., float]:
    """Wait strategy that respects Retry-After, falling back to the policy default.

    Args:
        policy: Retry policy of the client

    Returns:
        A tenacity wait callable
    """

    def _wait(retry_state) -> float:
        exception = retry_state.outcome.exception()
        retry_after = getattr(exception, "retry_after", None)
        wait_seconds = policy.default_retry_after if retry_after is None else retry_after
        return max(wait_seconds, policy.min_retry_after)

    return _wait


retry_if_rate_limit = retry_if_exception(should_retry_on_rate_limit)
