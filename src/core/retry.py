# src/core/retry.py - v1
"""Retry policy for store operations with linear backoff.

Every cache, history and catalog read/write that can hit the network or a
locked database goes through with_retry(). Analysis provider calls do not:
the provider client already retries on its own and the lookup protocol does
not retry the LLM call.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from medcache.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class StoreRetryExhausted(StoreUnavailableError):
    """All attempts exhausted for a store operation."""

    def __init__(self, operation: str, attempts: int, last_error: Exception):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Operation '{operation}' failed after {attempts} attempt(s): {last_error}"
        )


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and linear backoff step."""

    max_attempts: int = 3
    base_delay_s: float = 1.0


DEFAULT_RETRY_POLICY = RetryPolicy()

_TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "connection",
    "network",
    "fetch",
    "temporarily",
    "database is locked",
    "database is busy",
    "unavailable",
)


def is_transient_error(error: BaseException) -> bool:
    """Classify an exception as worth retrying (network/timeout shaped)."""
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True
    cause = error.__cause__
    if cause is not None and cause is not error and is_transient_error(cause):
        return True
    msg = str(error).lower()
    name = type(error).__name__.lower()
    if "timeout" in name or "connection" in name:
        return True
    return any(marker in msg for marker in _TRANSIENT_MARKERS)


def compute_delay(policy: RetryPolicy, attempt: int) -> float:
    """Linear backoff: base_delay * attempt (attempt is 1-based)."""
    return policy.base_delay_s * attempt


async def with_retry(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    operation: str = "unknown",
    policy: RetryPolicy | None = None,
    retryable: Callable[[BaseException], bool] = is_transient_error,
    **kwargs: Any,
) -> Any:
    """Execute an async store call, retrying transient failures.

    Domain errors that are not StoreUnavailableError (duplicate fingerprint,
    catalog races) are re-raised untouched on the first attempt.

    Raises:
        StoreRetryExhausted: If the call kept failing or failed with a
            non-transient store error.
    """
    policy = policy or DEFAULT_RETRY_POLICY
    attempts = 0

    while True:
        try:
            return await fn(*args, **kwargs)
        except StoreUnavailableError as e:
            attempts += 1
            if not retryable(e) or attempts >= policy.max_attempts:
                raise StoreRetryExhausted(operation, attempts, e) from e

            delay = compute_delay(policy, attempts)
            logger.warning(
                "Store operation '%s' failed (attempt %d/%d), retrying in %.1fs: %s",
                operation, attempts, policy.max_attempts, delay, e,
            )
            await asyncio.sleep(delay)
