"""Tests for ExecutionCoordinator: attempts, retry, skip, metrics and pools."""

import threading
import time
import unittest
from unittest.mock import MagicMock

import pytest

from testgrid.core.config import get_config, load_config
from testgrid.core.exceptions import (
    ContextConflictError,
    ResourceAcquisitionError,
    RetryExhaustedError,
    SkipExecution,
)
from testgrid.core.context import ExecutionContext
from testgrid.core.types import Outcome
from testgrid.execution.coordinator import ExecutionCoordinator, ExecutionResult
from testgrid.execution.spec import TestSpec
from testgrid.metrics.aggregator import MetricsAggregator
from testgrid.resources.registry import ResourceRegistry
from testgrid.retry.policy import RetryPolicy


class Flaky:
    """Test body failing with the given exceptions before passing."""

    def __init__(self, *failures: BaseException) -> None:
        self.failures = list(failures)
        self.calls: list[ExecutionContext] = []

    def __call__(self, ctx: ExecutionContext) -> None:
        self.calls.append(ctx)
        if self.failures:
            raise self.failures.pop(0)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def coordinator(registry, sleeps) -> ExecutionCoordinator:
    return ExecutionCoordinator(
        registry,
        MetricsAggregator(),
        default_policy=RetryPolicy(max_attempts=2, base_delay=0.5, backoff_multiplier=2.0),
        sleep=sleeps.append,
    )


def spec_for(body, name: str = "test_case", **kwargs) -> TestSpec:
    builder = TestSpec.builder(name, suite="suite").body(body)
    if "policy" in kwargs:
        builder.retry(kwargs["policy"])
    if "resources" in kwargs:
        builder.resources(*kwargs["resources"])
    for key, value in kwargs.get("dimensions", {}).items():
        builder.dimension(key, value)
    return builder.build()


# =============================================================================
# Test: outcomes
# =============================================================================


class TestOutcomes:
    """Single-test outcomes and metrics."""

    def test_passing_test(self, coordinator) -> None:
        result = coordinator.run(spec_for(Flaky()), worker="w1")

        assert result.outcome is Outcome.PASSED
        assert result.passed
        assert result.retries == 0
        assert result.attempts == 1
        assert result.error is None
        snap = coordinator.metrics.snapshot()
        assert (snap.passed, snap.total) == (1, 1)

    def test_body_receives_bound_context_with_handles(self, coordinator) -> None:
        seen: dict = {}

        def body(ctx: ExecutionContext) -> None:
            seen["worker"] = ctx.worker
            seen["page"] = ctx.handles["page"]
            seen["pending"] = ctx.is_pending
            seen["current"] = coordinator.contexts.current(ctx.worker) is ctx

        coordinator.run(spec_for(body, resources=["page"]), worker="w1")

        assert seen["worker"] == "w1"
        assert seen["pending"] is True
        assert seen["current"] is True
        assert seen["page"].closed

    def test_resources_released_and_context_cleared(self, coordinator, registry) -> None:
        coordinator.run(spec_for(Flaky(), resources=["page"]), worker="w1")

        assert registry.active_count() == 0
        assert coordinator.contexts.current("w1") is None

    def test_skip_signal(self, coordinator) -> None:
        def body(ctx):
            raise SkipExecution("feature flag off")

        result = coordinator.run(spec_for(body), worker="w1")

        assert result.outcome is Outcome.SKIPPED
        assert result.skip_reason == "feature flag off"
        assert coordinator.metrics.snapshot().skipped == 1

    def test_unittest_skip_is_honoured(self, coordinator) -> None:
        def body(ctx):
            raise unittest.SkipTest("not on CI")

        assert coordinator.run(spec_for(body), worker="w1").outcome is Outcome.SKIPPED

    def test_dimensions_recorded(self, coordinator) -> None:
        coordinator.run(spec_for(Flaky(), dimensions={"browser": "firefox"}), worker="w1")

        assert coordinator.metrics.snapshot().dimensions["browser"] == {"firefox": 1}

    def test_default_worker_is_calling_thread(self, coordinator) -> None:
        result = coordinator.run(spec_for(Flaky()))

        assert result.worker.startswith(threading.current_thread().name)

    def test_busy_worker_rejected(self, coordinator) -> None:
        """Starting a test on a worker with a pending test fails loudly."""
        inner = spec_for(Flaky(), name="inner")

        def outer(ctx):
            coordinator.run(inner, worker=ctx.worker)

        result = coordinator.run(spec_for(outer, policy=RetryPolicy.no_retry()), worker="w1")

        assert result.outcome is Outcome.FAILED
        assert isinstance(result.error, ContextConflictError)


# =============================================================================
# Test: retry
# =============================================================================


class TestRetry:
    """Retry loop driven by the retry engine."""

    def test_retries_then_passes(self, coordinator, sleeps) -> None:
        body = Flaky(ConnectionError("reset"), ConnectionError("reset"))

        result = coordinator.run(spec_for(body), worker="w1")

        assert result.outcome is Outcome.PASSED
        assert result.retries == 2
        assert sleeps == [0.5, 1.0]
        assert [ctx.attempt for ctx in body.calls] == [0, 1, 2]
        snap = coordinator.metrics.snapshot()
        assert snap.retried == 2
        assert (snap.passed, snap.failed, snap.total) == (1, 0, 1)

    def test_each_attempt_gets_fresh_resources(self, coordinator, providers) -> None:
        body = Flaky(ConnectionError("reset"))

        coordinator.run(spec_for(body, resources=["page"]), worker="w1")

        pages = providers["page"].opened
        assert len(pages) == 2
        assert pages[0] is not pages[1]
        assert all(p.closed for p in pages)

    def test_exhaustion_wraps_last_failure(self, coordinator) -> None:
        last = ConnectionError("third")
        body = Flaky(ConnectionError("first"), ConnectionError("second"), last)

        result = coordinator.run(spec_for(body), worker="w1")

        assert result.outcome is Outcome.FAILED
        assert isinstance(result.error, RetryExhaustedError)
        assert result.error.__cause__ is last
        assert result.error.attempts == 3
        with pytest.raises(RetryExhaustedError):
            result.raise_for_outcome()
        snap = coordinator.metrics.snapshot()
        assert snap.failure_categories == {"ConnectionError": 1}
        assert snap.failed == 1

    def test_denied_failure_not_retried(self, coordinator, sleeps) -> None:
        policy = RetryPolicy(max_attempts=3, abort_on=(AssertionError,))
        body = Flaky(AssertionError("title mismatch"))

        result = coordinator.run(spec_for(body, policy=policy), worker="w1")

        assert result.outcome is Outcome.FAILED
        assert isinstance(result.error, AssertionError)
        assert len(body.calls) == 1
        assert sleeps == []

    def test_no_retry_policy_keeps_original_error(self, coordinator) -> None:
        error = ValueError("bad")

        result = coordinator.run(
            spec_for(Flaky(error), policy=RetryPolicy.no_retry()), worker="w1"
        )

        assert result.error is error

    def test_passed_result_does_not_raise(self, coordinator) -> None:
        coordinator.run(spec_for(Flaky()), worker="w1").raise_for_outcome()

    @pytest.mark.slow
    def test_end_to_end_backoff_timing(self, registry) -> None:
        """max 3 retries, 100ms base, deny AssertionError: two failures then pass."""
        coordinator = ExecutionCoordinator(registry, MetricsAggregator())
        policy = (
            RetryPolicy.builder()
            .max_attempts(3)
            .base_delay(0.1)
            .backoff_multiplier(2.0)
            .abort_on(AssertionError)
            .build()
        )
        body = Flaky(TimeoutError("slow page"), ConnectionError("reset"))

        started = time.monotonic()
        result = coordinator.run(spec_for(body, policy=policy), worker="w1")
        elapsed = time.monotonic() - started

        assert result.outcome is Outcome.PASSED
        assert result.retries == 2
        assert coordinator.metrics.snapshot().retried == 2
        assert elapsed >= 0.3
        assert result.duration_ms >= 300


# =============================================================================
# Test: resource failures
# =============================================================================


class TestResourceFailures:
    def test_acquisition_failure_is_fatal_and_recorded(self, make_provider, sleeps) -> None:
        registry = ResourceRegistry([make_provider("browser", fail_open=True)])
        coordinator = ExecutionCoordinator(registry, sleep=sleeps.append)
        body = Flaky()

        with pytest.raises(ResourceAcquisitionError):
            coordinator.run(spec_for(body, resources=["browser"]), worker="w1")

        assert body.calls == []
        assert sleeps == []
        snap = coordinator.metrics.snapshot()
        assert snap.failed == 1
        assert snap.failure_categories == {"RESOURCE": 1}
        assert coordinator.contexts.current("w1") is None

    def test_release_failure_goes_to_warnings_not_result(self, make_provider) -> None:
        registry = ResourceRegistry([make_provider("browser", fail_close=True)])
        coordinator = ExecutionCoordinator(registry)

        result = coordinator.run(spec_for(Flaky(), resources=["browser"]), worker="w1")

        assert result.outcome is Outcome.PASSED
        warnings = coordinator.metrics.snapshot().warnings
        assert len(warnings) == 1
        assert "browser" in warnings[0]

    def test_existing_release_callback_kept(self, registry) -> None:
        callback = MagicMock()
        registry.on_release_failure = callback

        ExecutionCoordinator(registry)

        assert registry.on_release_failure is callback


# =============================================================================
# Test: pools and lifecycle
# =============================================================================


class TestRunAll:
    def test_runs_every_spec_in_order(self, coordinator) -> None:
        specs = [spec_for(Flaky(), name=f"t{i}", resources=["page"]) for i in range(20)]

        results = coordinator.run_all(specs, workers=4)

        assert [r.test_id.name for r in results] == [f"t{i}" for i in range(20)]
        assert all(r.passed for r in results)
        assert coordinator.metrics.snapshot().total == 20
        assert coordinator.registry.active_count() == 0

    def test_workers_are_pool_threads(self, coordinator) -> None:
        gate = threading.Barrier(3, timeout=5)

        def body(ctx):
            gate.wait()

        results = coordinator.run_all([spec_for(body, name=f"t{i}") for i in range(3)], workers=3)

        assert len({r.worker for r in results}) == 3
        assert all(r.worker.startswith("testgrid-worker") for r in results)

    def test_acquisition_failure_becomes_failed_result(self, make_provider) -> None:
        registry = ResourceRegistry([make_provider("browser", fail_open=True)])
        coordinator = ExecutionCoordinator(registry)
        specs = [spec_for(Flaky(), name="needs_browser", resources=["browser"]), spec_for(Flaky())]

        results = coordinator.run_all(specs, workers=2)

        assert results[0].outcome is Outcome.FAILED
        assert isinstance(results[0].error, ResourceAcquisitionError)
        assert results[1].passed

    def test_default_pool_size_from_coordinator(self, registry) -> None:
        coordinator = ExecutionCoordinator(registry, workers=2)

        assert len(coordinator.run_all([spec_for(Flaky(), name=f"t{i}") for i in range(4)])) == 4


class TestLifecycle:
    def test_context_manager_drives_scheduler(self, registry) -> None:
        scheduler = MagicMock()
        with ExecutionCoordinator(registry, scheduler=scheduler) as coordinator:
            scheduler.initialize.assert_called_once()
            assert isinstance(coordinator, ExecutionCoordinator)

        scheduler.shutdown.assert_called_once()

    def test_from_config(self) -> None:
        coordinator = ExecutionCoordinator.from_config(get_config())

        assert coordinator.workers == 1
        assert coordinator.default_policy.max_attempts == 2
        assert set(coordinator.registry.kinds) == {
            "playwright",
            "browser",
            "context",
            "page",
            "api",
        }
        assert coordinator.scheduler is not None
        assert coordinator.scheduler.warning_threshold == 0.8
        assert coordinator.default_dimensions == {"browser": "chromium", "environment": "dev"}

    def test_configured_browser_and_environment_recorded(self) -> None:
        """Tests without their own dimensions still count in the breakdowns."""
        config = load_config(
            {
                "execution": {"environment": "qa"},
                "browser": {"browser": "firefox"},
                "cleanup": {"register_exit_hook": False},
            }
        )
        coordinator = ExecutionCoordinator.from_config(config)

        coordinator.run(spec_for(Flaky()), worker="w1")

        dims = coordinator.metrics.snapshot().dimensions
        assert dims["environment"]["qa"] == 1
        assert dims["browser"]["firefox"] == 1

    def test_spec_dimensions_override_defaults(self, registry) -> None:
        coordinator = ExecutionCoordinator(
            registry, default_dimensions={"browser": "chromium", "environment": "qa"}
        )

        coordinator.run(spec_for(Flaky(), dimensions={"browser": "webkit"}), worker="w1")

        dims = coordinator.metrics.snapshot().dimensions
        assert dims["browser"] == {"webkit": 1}
        assert dims["environment"] == {"qa": 1}
        assert coordinator.metrics.test_metrics(spec_for(Flaky()).test_id).dimensions == {
            "browser": "webkit",
            "environment": "qa",
        }

    def test_result_is_immutable(self) -> None:
        result = ExecutionResult(
            test_id=spec_for(Flaky()).test_id,
            worker="w",
            outcome=Outcome.PASSED,
            retries=0,
            duration_ms=1,
        )
        with pytest.raises(AttributeError):
            result.retries = 3  # type: ignore[misc]
