"""Concurrent metrics aggregation for one execution session.

Workers report start, retry and finish events from any thread. Each
counter is its own lock-guarded primitive, so a snapshot is consistent
per counter but may be taken between two updates of the same event.
Counts only grow until reset(), and ``total`` is derived from the
outcome counts so passed + failed + skipped == total always holds.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from types import MappingProxyType

from testgrid.core.types import Outcome, TestId
from testgrid.metrics.counters import (
    AtomicCounter,
    AtomicExtremum,
    CounterMap,
    DimensionCounters,
)
from testgrid.metrics.snapshot import FailureRecord, MetricsSnapshot, TestMetrics

logger = logging.getLogger(__name__)

__all__ = ["MetricsAggregator"]

DEFAULT_RECENT_FAILURES = 50
DEFAULT_WARNINGS = 50


def _now() -> datetime:
    return datetime.now(UTC)


def _new_session_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass
class _Counters:
    started: AtomicCounter = field(default_factory=AtomicCounter)
    passed: AtomicCounter = field(default_factory=AtomicCounter)
    failed: AtomicCounter = field(default_factory=AtomicCounter)
    skipped: AtomicCounter = field(default_factory=AtomicCounter)
    retried: AtomicCounter = field(default_factory=AtomicCounter)
    total_duration_ms: AtomicCounter = field(default_factory=AtomicCounter)
    min_duration_ms: AtomicExtremum = field(default_factory=lambda: AtomicExtremum("min"))
    max_duration_ms: AtomicExtremum = field(default_factory=lambda: AtomicExtremum("max"))
    failure_categories: CounterMap = field(default_factory=CounterMap)
    dimensions: DimensionCounters = field(default_factory=DimensionCounters)

    def outcome(self, outcome: Outcome) -> AtomicCounter:
        if outcome is Outcome.PASSED:
            return self.passed
        if outcome is Outcome.FAILED:
            return self.failed
        if outcome is Outcome.SKIPPED:
            return self.skipped
        raise ValueError(f"record_finish requires a final outcome, got {outcome.value}")


class MetricsAggregator:
    """Aggregates execution statistics from many workers.

    Safe to call from any number of threads without caller-side locking.
    Each instance is one session with its own id and start time.

    Args:
        recent_failures_capacity: Size of the bounded recent-failures log.
        warnings_capacity: Size of the bounded warnings log.
        clock: Wall clock, injectable for tests.

    Example:
        >>> metrics = MetricsAggregator()
        >>> test = TestId("test_login", "auth")
        >>> metrics.record_start(test, {"browser": "chromium"})
        >>> metrics.record_finish(test, Outcome.PASSED, 1250)
        >>> metrics.snapshot().success_rate
        100.0

    """

    def __init__(
        self,
        *,
        recent_failures_capacity: int = DEFAULT_RECENT_FAILURES,
        warnings_capacity: int = DEFAULT_WARNINGS,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        if recent_failures_capacity < 1 or warnings_capacity < 1:
            raise ValueError("log capacities must be >= 1")
        self._clock = clock
        self._counters = _Counters()
        self._recent_failures: deque[FailureRecord] = deque(maxlen=recent_failures_capacity)
        self._warnings: deque[str] = deque(maxlen=warnings_capacity)
        self._log_lock = threading.Lock()
        self._tests: dict[str, TestMetrics] = {}
        self._tests_lock = threading.Lock()
        self.session_id = _new_session_id()
        self.session_start = self._clock()
        logger.debug("Metrics session %s started", self.session_id)

    # =========================================================================
    # Recording
    # =========================================================================

    def record_start(self, test_id: TestId, dimensions: Mapping[str, str] | None = None) -> None:
        """Record that a test began, counting its dimensions once."""
        dims = dict(dimensions or {})
        self._counters.started.increment()
        for dimension, value in dims.items():
            self._counters.dimensions.increment(dimension, value)
        with self._tests_lock:
            previous = self._tests.get(test_id.key)
            self._tests[test_id.key] = TestMetrics(
                test_key=test_id.key,
                dimensions=MappingProxyType(dims),
                started_at=self._clock(),
                durations=previous.durations if previous is not None else (),
            )

    def record_retry(self, test_id: TestId) -> None:
        """Record one retry of a test."""
        self._counters.retried.increment()
        with self._tests_lock:
            current = self._tests.get(test_id.key)
            if current is not None:
                self._tests[test_id.key] = replace(current, retries=current.retries + 1)

    def record_finish(
        self,
        test_id: TestId,
        outcome: Outcome,
        duration_ms: int,
        failure_category: str | None = None,
        error: BaseException | None = None,
    ) -> None:
        """Record the final outcome of a test. Call exactly once per test.

        Raises:
            ValueError: If outcome is PENDING or duration is negative.

        """
        if duration_ms < 0:
            raise ValueError(f"duration_ms must be >= 0, got {duration_ms}")
        counters = self._counters
        counter = counters.outcome(outcome)

        counters.total_duration_ms.add(duration_ms)
        counters.min_duration_ms.update(duration_ms)
        counters.max_duration_ms.update(duration_ms)

        message = str(error) if error is not None else None
        category: str | None = None
        if outcome is Outcome.FAILED:
            category = failure_category or (type(error).__name__ if error else "Unknown")
            counters.failure_categories.increment(category)
            record = FailureRecord(
                test_key=test_id.key,
                category=category,
                message=message or "",
                recorded_at=self._clock(),
            )
            with self._log_lock:
                self._recent_failures.append(record)
        # Outcome last, so a snapshot never counts a test without its duration
        counter.increment()

        with self._tests_lock:
            current = self._tests.get(test_id.key) or TestMetrics(
                test_key=test_id.key,
                dimensions=MappingProxyType({}),
                started_at=self._clock(),
            )
            self._tests[test_id.key] = replace(
                current,
                finished_at=self._clock(),
                outcome=outcome,
                duration_ms=duration_ms,
                durations=(*current.durations, duration_ms),
                failure_category=category,
                error_message=message,
            )

    def record_warning(self, message: str) -> None:
        """Append to the bounded warnings log (e.g. resource release failures)."""
        with self._log_lock:
            self._warnings.append(message)

    # =========================================================================
    # Reading
    # =========================================================================

    def snapshot(self) -> MetricsSnapshot:
        """Immutable point-in-time copy of all metrics."""
        c = self._counters
        passed = c.passed.value
        failed = c.failed.value
        skipped = c.skipped.value
        started = c.started.value
        with self._log_lock:
            recent = tuple(self._recent_failures)
            warnings = tuple(self._warnings)
        return MetricsSnapshot(
            session_id=self.session_id,
            session_start=self.session_start,
            taken_at=self._clock(),
            passed=passed,
            failed=failed,
            skipped=skipped,
            retried=c.retried.value,
            in_flight=max(0, started - (passed + failed + skipped)),
            total_duration_ms=c.total_duration_ms.value,
            min_duration_ms=c.min_duration_ms.value,
            max_duration_ms=c.max_duration_ms.value,
            failure_categories=MappingProxyType(
                {str(k): v for k, v in c.failure_categories.as_dict().items()}
            ),
            dimensions=MappingProxyType(
                {
                    dim: MappingProxyType({str(k): v for k, v in values.items()})
                    for dim, values in c.dimensions.as_dict().items()
                }
            ),
            recent_failures=recent,
            warnings=warnings,
        )

    def recent_failures(self) -> list[FailureRecord]:
        """Recent failures, oldest first."""
        with self._log_lock:
            return list(self._recent_failures)

    def test_metrics(self, test_id: TestId) -> TestMetrics | None:
        with self._tests_lock:
            return self._tests.get(test_id.key)

    def detailed_metrics(self) -> dict[str, TestMetrics]:
        """Per-test detail keyed by ``suite.name``."""
        with self._tests_lock:
            return dict(self._tests)

    def reset(self) -> None:
        """Start a new session: clear every counter and log."""
        self._counters = _Counters()
        with self._log_lock:
            self._recent_failures.clear()
            self._warnings.clear()
        with self._tests_lock:
            self._tests.clear()
        self.session_id = _new_session_id()
        self.session_start = self._clock()
        logger.info("Metrics reset, new session %s", self.session_id)
