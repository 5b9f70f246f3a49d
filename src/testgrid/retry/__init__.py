"""Retry policy and decision engine."""

from testgrid.retry.engine import (
    RetryDecision,
    RetryReason,
    backoff_delay,
    failure_category,
    should_retry,
)
from testgrid.retry.policy import RetryPolicy, RetryPolicyBuilder

__all__ = [
    "RetryDecision",
    "RetryPolicy",
    "RetryPolicyBuilder",
    "RetryReason",
    "backoff_delay",
    "failure_category",
    "should_retry",
]
