"""Test execution: context binding, resources, retry and metrics.

For each test the coordinator:

1. binds a new ExecutionContext for the worker and records the start;
2. per attempt acquires the test's resources, runs the body and releases
   the resources again, so every attempt starts from fresh handles;
3. on failure asks the retry engine, sleeps the backoff on the worker and
   tries again;
4. records the outcome exactly once and clears the context.

The final ExecutionResult is authoritative. Resource release failures only
reach the log and the metrics warning channel.
"""

from __future__ import annotations

import logging
import time
import unittest
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from types import MappingProxyType, TracebackType
from typing import TYPE_CHECKING

from testgrid.cleanup.scheduler import CleanupScheduler
from testgrid.core.context import ContextStore, ExecutionContext
from testgrid.core.exceptions import (
    ResourceAcquisitionError,
    ResourceLeakError,
    ResourceReleaseError,
    RetryExhaustedError,
    SkipExecution,
)
from testgrid.core.types import Outcome, TestId, WorkerId, current_worker_id
from testgrid.metrics.aggregator import MetricsAggregator
from testgrid.resources.providers import default_providers
from testgrid.resources.registry import ResourceRegistry
from testgrid.retry.engine import RetryReason, failure_category, should_retry
from testgrid.retry.policy import RetryPolicy

if TYPE_CHECKING:
    from testgrid.core.config.models import Config
    from testgrid.execution.spec import TestSpec

logger = logging.getLogger(__name__)

__all__ = ["ExecutionCoordinator", "ExecutionResult"]

_SKIP_SIGNALS = (SkipExecution, unittest.SkipTest)
# Raised before the body runs; retrying cannot help
_FATAL_RESOURCE_ERRORS = (ResourceAcquisitionError, ResourceLeakError)


@dataclass(frozen=True)
class ExecutionResult:
    """Final result of one test.

    Attributes:
        test_id: The test.
        worker: Worker that ran it.
        outcome: PASSED, FAILED or SKIPPED.
        retries: Retries performed after the first attempt.
        duration_ms: Wall time including retry backoff.
        error: Final failure. RetryExhaustedError when retries ran out.
        skip_reason: Reason given by the skip signal, if skipped.

    """

    test_id: TestId
    worker: WorkerId
    outcome: Outcome
    retries: int
    duration_ms: int
    error: BaseException | None = None
    skip_reason: str | None = None

    @property
    def passed(self) -> bool:
        return self.outcome is Outcome.PASSED

    @property
    def attempts(self) -> int:
        return self.retries + 1

    def raise_for_outcome(self) -> None:
        """Raise the final error if the test failed."""
        if self.outcome is Outcome.FAILED and self.error is not None:
            raise self.error


class ExecutionCoordinator:
    """Runs tests with per-worker resources, retry and metrics.

    Args:
        registry: Resource registry. Its release failures are forwarded to
            the metrics warning channel unless a callback is already set.
        metrics: Metrics aggregator for this session.
        scheduler: Optional cleanup scheduler, started and stopped by the
            context manager protocol.
        default_policy: Policy for specs that declare none.
        workers: Default pool size for run_all().
        default_dimensions: Dimensions recorded for every test. A spec's own
            dimensions override them key by key.
        sleep: Backoff sleep, injectable for tests.
        clock: Monotonic clock in seconds, injectable for tests.

    Example:
        >>> with ExecutionCoordinator.from_config(get_config()) as coordinator:
        ...     results = coordinator.run_all(specs, workers=4)
        >>> render_summary(coordinator.metrics.snapshot())

    """

    def __init__(
        self,
        registry: ResourceRegistry,
        metrics: MetricsAggregator | None = None,
        *,
        scheduler: CleanupScheduler | None = None,
        default_policy: RetryPolicy | None = None,
        workers: int = 1,
        default_dimensions: Mapping[str, str] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.metrics = metrics or MetricsAggregator()
        self.scheduler = scheduler
        self.default_policy = default_policy or RetryPolicy()
        self.workers = workers
        self.default_dimensions = MappingProxyType(dict(default_dimensions or {}))
        self.contexts = ContextStore()
        self._sleep = sleep
        self._clock = clock
        if self.registry.on_release_failure is None:
            self.registry.on_release_failure = self._on_release_failure

    @classmethod
    def from_config(cls, config: Config) -> ExecutionCoordinator:
        """Wire registry (Playwright providers), metrics and scheduler from config.

        The configured browser and environment become default dimensions.
        """
        metrics = MetricsAggregator(
            recent_failures_capacity=config.metrics.recent_failures_capacity,
            warnings_capacity=config.metrics.warnings_capacity,
        )
        registry = ResourceRegistry(default_providers(config))
        scheduler = CleanupScheduler.from_config(
            registry, config.cleanup, on_warning=metrics.record_warning
        )
        return cls(
            registry,
            metrics,
            scheduler=scheduler,
            default_policy=config.retry.to_policy(),
            workers=config.execution.workers,
            default_dimensions={
                "browser": config.browser.browser,
                "environment": config.execution.environment,
            },
        )

    def _on_release_failure(self, error: ResourceReleaseError) -> None:
        self.metrics.record_warning(str(error))

    # =========================================================================
    # Context manager
    # =========================================================================

    def __enter__(self) -> ExecutionCoordinator:
        if self.scheduler is not None:
            self.scheduler.initialize()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self.scheduler is not None:
            self.scheduler.shutdown()
        else:
            self.registry.release_all()

    # =========================================================================
    # Execution
    # =========================================================================

    def run(self, spec: TestSpec, worker: WorkerId | None = None) -> ExecutionResult:
        """Run one test on the calling thread.

        Raises:
            ContextConflictError: The worker already has a pending test.
            ResourceAcquisitionError: Resources could not be opened. The test
                is recorded as failed first.

        """
        worker = worker or current_worker_id()
        policy = spec.retry_policy or self.default_policy
        context = self.contexts.bind(ExecutionContext(worker=worker, test_id=spec.test_id))
        started = self._clock()
        self.metrics.record_start(spec.test_id, {**self.default_dimensions, **spec.dimensions})

        outcome = Outcome.FAILED
        error: BaseException | None = None
        category: str | None = None
        skip_reason: str | None = None
        try:
            while True:
                try:
                    self._attempt(spec, context)
                except _FATAL_RESOURCE_ERRORS as e:
                    error, category = e, failure_category(e)
                    logger.error("%s: %s", spec.key, e)
                    raise
                except _SKIP_SIGNALS as e:
                    outcome = Outcome.SKIPPED
                    skip_reason = str(e)
                    logger.info("%s skipped: %s", spec.key, skip_reason or "no reason given")
                    break
                except Exception as e:
                    decision = should_retry(e, policy, context.attempt)
                    if decision.retry:
                        logger.warning(
                            "%s failed (%s: %s), retry %d/%d in %.2fs",
                            spec.key,
                            type(e).__name__,
                            e,
                            context.attempt + 1,
                            policy.max_attempts,
                            decision.delay,
                        )
                        self.metrics.record_retry(spec.test_id)
                        self._sleep(decision.delay)
                        context.attempt += 1
                        continue
                    category = failure_category(e)
                    if decision.reason is RetryReason.EXHAUSTED and context.attempt > 0:
                        error = RetryExhaustedError(spec.test_id, context.attempt + 1, e)
                    else:
                        error = e
                    logger.warning("%s failed (%s): %s", spec.key, decision.reason.value, e)
                    break
                else:
                    outcome = Outcome.PASSED
                    break
        finally:
            duration_ms = int((self._clock() - started) * 1000)
            context.finish(outcome)
            self.metrics.record_finish(spec.test_id, outcome, duration_ms, category, error)
            self.contexts.clear(worker)

        logger.debug("%s %s in %dms", spec.key, outcome.value, duration_ms)
        return ExecutionResult(
            test_id=spec.test_id,
            worker=worker,
            outcome=outcome,
            retries=context.attempt,
            duration_ms=duration_ms,
            error=error,
            skip_reason=skip_reason,
        )

    def _attempt(self, spec: TestSpec, context: ExecutionContext) -> None:
        self.registry.acquire(context.worker, spec.resource_profile, context)
        try:
            spec.body(context)
        finally:
            self.registry.release(context.worker)

    def _run_for_pool(self, spec: TestSpec) -> ExecutionResult:
        worker = current_worker_id()
        started = self._clock()
        try:
            return self.run(spec, worker)
        except _FATAL_RESOURCE_ERRORS as e:
            return ExecutionResult(
                test_id=spec.test_id,
                worker=worker,
                outcome=Outcome.FAILED,
                retries=0,
                duration_ms=int((self._clock() - started) * 1000),
                error=e,
            )

    def run_all(
        self, specs: Iterable[TestSpec], workers: int | None = None
    ) -> list[ExecutionResult]:
        """Run tests on a thread pool, one worker per pool thread.

        Resource acquisition failures become FAILED results instead of
        propagating. Results are returned in input order.
        """
        specs = list(specs)
        pool_size = max(1, workers or self.workers)
        logger.info("Running %d test(s) on %d worker(s)", len(specs), pool_size)
        with ThreadPoolExecutor(
            max_workers=pool_size, thread_name_prefix="testgrid-worker"
        ) as pool:
            futures = [pool.submit(self._run_for_pool, spec) for spec in specs]
            return [future.result() for future in futures]
