"""Immutable retry policy and its builder."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["FailureMatcher", "RetryPolicy", "RetryPolicyBuilder"]

# Exception classes match by subtype; strings match class names in the MRO
# or a framework ErrorType name (e.g. "TIMEOUT").
FailureMatcher = type[BaseException] | str


@dataclass(frozen=True)
class RetryPolicy:
    """How a failed test is retried.

    Attributes:
        max_attempts: Maximum number of retries after the first failure.
        base_delay: Delay before the first retry, in seconds.
        backoff_multiplier: Factor applied to the delay per retry (>= 1).
        delay_cap: Upper bound for any single delay, in seconds.
        retry_on: Allow-list. When non-empty, only matching failures retry.
        abort_on: Deny-list. Matching failures never retry.
        retry_on_any: Retry failures that neither list decides.

    """

    max_attempts: int = 3
    base_delay: float = 1.0
    backoff_multiplier: float = 1.5
    delay_cap: float = 30.0
    retry_on: tuple[FailureMatcher, ...] = ()
    abort_on: tuple[FailureMatcher, ...] = ()
    retry_on_any: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError(f"max_attempts must be >= 0, got {self.max_attempts}")
        if self.base_delay < 0 or self.delay_cap < 0:
            raise ValueError("base_delay and delay_cap must be >= 0")
        if self.backoff_multiplier < 1:
            raise ValueError(f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}")

    @classmethod
    def builder(cls) -> RetryPolicyBuilder:
        return RetryPolicyBuilder()

    @classmethod
    def no_retry(cls) -> RetryPolicy:
        return cls(max_attempts=0)


class RetryPolicyBuilder:
    """Fluent builder for RetryPolicy.

    Example:
        >>> policy = (
        ...     RetryPolicy.builder()
        ...     .max_attempts(3)
        ...     .base_delay(0.1)
        ...     .abort_on(AssertionError)
        ...     .build()
        ... )

    """

    def __init__(self) -> None:
        self._max_attempts = 3
        self._base_delay = 1.0
        self._multiplier = 1.5
        self._delay_cap = 30.0
        self._retry_on: list[FailureMatcher] = []
        self._abort_on: list[FailureMatcher] = []
        self._retry_on_any = True

    def max_attempts(self, value: int) -> RetryPolicyBuilder:
        self._max_attempts = value
        return self

    def base_delay(self, seconds: float) -> RetryPolicyBuilder:
        self._base_delay = seconds
        return self

    def backoff_multiplier(self, value: float) -> RetryPolicyBuilder:
        self._multiplier = value
        return self

    def delay_cap(self, seconds: float) -> RetryPolicyBuilder:
        self._delay_cap = seconds
        return self

    def retry_on(self, *matchers: FailureMatcher) -> RetryPolicyBuilder:
        self._retry_on.extend(matchers)
        return self

    def abort_on(self, *matchers: FailureMatcher) -> RetryPolicyBuilder:
        self._abort_on.extend(matchers)
        return self

    def retry_on_any(self, value: bool = True) -> RetryPolicyBuilder:
        self._retry_on_any = value
        return self

    def build(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self._max_attempts,
            base_delay=self._base_delay,
            backoff_multiplier=self._multiplier,
            delay_cap=self._delay_cap,
            retry_on=tuple(self._retry_on),
            abort_on=tuple(self._abort_on),
            retry_on_any=self._retry_on_any,
        )
