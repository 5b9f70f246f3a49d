"""Execution configuration models (Execution, Retry, Cleanup, Metrics)."""

from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from testgrid.retry.policy import RetryPolicy


class ExecutionConfig(BaseModel):
    """Worker pool configuration.

    Attributes:
        workers: Number of parallel workers for run_all().
        environment: Environment label recorded as a metrics dimension.

    """

    model_config = ConfigDict(frozen=True)

    workers: int = Field(default=1, ge=1, le=256, description="Number of parallel workers")
    environment: str = Field(default="dev", description="Environment label (dev, qa, prod)")


class RetryConfig(BaseModel):
    """Default retry policy for tests that do not declare their own.

    Attributes:
        enabled: Master switch. When False, to_policy() allows no retries.
        max_attempts: Maximum retries after the first failure.
        base_delay: Delay before the first retry (seconds).
        backoff_multiplier: Factor applied per retry.
        max_delay: Upper bound for any single delay (seconds).
        retry_on: Exception names that may be retried (empty = any).
        abort_on: Exception names that are never retried.
        retry_on_any: Retry failures not matched by either list.

    Example:
        >>> RetryConfig(max_attempts=3, base_delay=0.5).to_policy().max_attempts
        3

    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Enable retry of failed tests")
    max_attempts: int = Field(default=2, ge=0, description="Maximum retries after first failure")
    base_delay: float = Field(default=1.0, ge=0, description="Initial retry delay in seconds")
    backoff_multiplier: float = Field(default=1.5, ge=1.0, description="Exponential backoff factor")
    max_delay: float = Field(default=30.0, ge=0, description="Maximum retry delay in seconds")
    retry_on: list[str] = Field(default_factory=list, description="Retryable exception names")
    abort_on: list[str] = Field(default_factory=list, description="Never-retried exception names")
    retry_on_any: bool = Field(default=True, description="Retry any unlisted failure")

    def to_policy(self) -> RetryPolicy:
        """Build the immutable RetryPolicy described by this section."""
        return RetryPolicy(
            max_attempts=self.max_attempts if self.enabled else 0,
            base_delay=self.base_delay,
            backoff_multiplier=self.backoff_multiplier,
            delay_cap=self.max_delay,
            retry_on=tuple(self.retry_on),
            abort_on=tuple(self.abort_on),
            retry_on_any=self.retry_on_any,
        )


class CleanupConfig(BaseModel):
    """Background cleanup scheduler configuration.

    Attributes:
        sweep_interval: Seconds between advisory sweeps.
        memory_check_interval: Seconds between memory samples.
        memory_warning_threshold: Usage ratio that triggers reclamation hints.
        memory_critical_threshold: Usage ratio that triggers forced cleanup.
        memory_limit_mb: Process RSS budget. None uses system memory usage.
        reclaim_pause: Pause between the two reclamation passes (seconds).
        shutdown_timeout: Bounded wait for background tasks on shutdown.
        exit_hook_timeout: Bounded wait when shutdown runs from the exit hook.
        register_exit_hook: Register the process-exit callback on initialize.

    """

    model_config = ConfigDict(frozen=True)

    sweep_interval: float = Field(default=30.0, gt=0, description="Seconds between sweeps")
    memory_check_interval: float = Field(default=10.0, gt=0, description="Seconds between samples")
    memory_warning_threshold: float = Field(default=0.8, gt=0, le=1.0)
    memory_critical_threshold: float = Field(default=0.9, gt=0, le=1.0)
    memory_limit_mb: int | None = Field(
        default=None, ge=1, description="Process RSS budget in MB (None = system memory)"
    )
    reclaim_pause: float = Field(default=0.1, ge=0, description="Pause between gc passes")
    shutdown_timeout: float = Field(default=10.0, ge=0)
    exit_hook_timeout: float = Field(default=5.0, ge=0)
    register_exit_hook: bool = Field(default=True)

    @model_validator(mode="after")
    def _check_thresholds(self) -> Self:
        if self.memory_warning_threshold > self.memory_critical_threshold:
            raise ValueError(
                "memory_warning_threshold must not exceed memory_critical_threshold "
                f"({self.memory_warning_threshold} > {self.memory_critical_threshold})"
            )
        return self


class MetricsConfig(BaseModel):
    """Metrics aggregation configuration."""

    model_config = ConfigDict(frozen=True)

    recent_failures_capacity: int = Field(default=50, ge=1, le=10_000)
    warnings_capacity: int = Field(default=50, ge=1, le=10_000)
    print_summary: bool = Field(default=True, description="Print summary at end of CLI runs")
