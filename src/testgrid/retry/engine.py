"""Retry decisions: exception classification plus exponential backoff.

Everything here is a pure function of its arguments. Nothing sleeps; the
caller applies the returned delay.

Decision order for a failure at retry index ``i``:
    1. i >= max_attempts            -> exhausted
    2. failure matches abort_on     -> denied
    3. retry_on set, no match       -> not_allowed
    4. retry_on matched, or retry_on_any -> retry, else not_retryable
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from testgrid.core.exceptions import TestgridError
from testgrid.retry.policy import FailureMatcher, RetryPolicy

__all__ = [
    "RetryDecision",
    "RetryReason",
    "backoff_delay",
    "failure_category",
    "matches",
    "should_retry",
]


class RetryReason(str, Enum):
    EXHAUSTED = "exhausted"
    DENIED = "denied"
    NOT_ALLOWED = "not_allowed"
    RETRY = "retry"
    NOT_RETRYABLE = "not_retryable"


@dataclass(frozen=True)
class RetryDecision:
    """Result of should_retry(). ``delay`` is 0.0 when not retrying."""

    retry: bool
    delay: float
    reason: RetryReason

    def __bool__(self) -> bool:
        return self.retry


def backoff_delay(policy: RetryPolicy, attempt_index: int) -> float:
    """Delay in seconds before retry number ``attempt_index + 1``.

    Formula: min(base_delay * backoff_multiplier ** attempt_index, delay_cap)

    Example:
        >>> policy = RetryPolicy(base_delay=0.5, backoff_multiplier=2.0, delay_cap=5.0)
        >>> [backoff_delay(policy, i) for i in range(5)]
        [0.5, 1.0, 2.0, 4.0, 5.0]

    Raises:
        ValueError: If attempt_index is negative.

    """
    if attempt_index < 0:
        raise ValueError(f"attempt_index must be >= 0, got {attempt_index}")
    try:
        delay = policy.base_delay * policy.backoff_multiplier**attempt_index
    except OverflowError:
        return float(policy.delay_cap)
    return float(min(delay, policy.delay_cap))


def failure_category(failure: BaseException) -> str:
    """Category name recorded in metrics for a failure.

    Framework errors report their ErrorType name, everything else its
    class name.
    """
    if isinstance(failure, TestgridError):
        return failure.error_type.name
    return type(failure).__name__


def matches(failure: BaseException, matcher: FailureMatcher) -> bool:
    """Check one allow/deny-list entry against a failure."""
    if isinstance(matcher, str):
        if any(cls.__name__ == matcher for cls in type(failure).__mro__):
            return True
        return isinstance(failure, TestgridError) and failure.error_type.name == matcher.upper()
    return isinstance(failure, matcher)


def _matches_any(failure: BaseException, matchers: tuple[FailureMatcher, ...]) -> bool:
    return any(matches(failure, m) for m in matchers)


def should_retry(failure: BaseException, policy: RetryPolicy, attempt_index: int) -> RetryDecision:
    """Decide whether a failed test gets another attempt.

    Args:
        failure: The exception raised by the failed attempt.
        policy: Retry policy of the test.
        attempt_index: Retries already performed (0 after the first failure).

    Raises:
        ValueError: If attempt_index is negative.

    """
    if attempt_index < 0:
        raise ValueError(f"attempt_index must be >= 0, got {attempt_index}")

    if attempt_index >= policy.max_attempts:
        return RetryDecision(False, 0.0, RetryReason.EXHAUSTED)
    if _matches_any(failure, policy.abort_on):
        return RetryDecision(False, 0.0, RetryReason.DENIED)
    if policy.retry_on and not _matches_any(failure, policy.retry_on):
        return RetryDecision(False, 0.0, RetryReason.NOT_ALLOWED)
    if not policy.retry_on and not policy.retry_on_any:
        return RetryDecision(False, 0.0, RetryReason.NOT_RETRYABLE)
    return RetryDecision(True, backoff_delay(policy, attempt_index), RetryReason.RETRY)
