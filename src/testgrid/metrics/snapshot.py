"""Immutable metrics value objects."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from testgrid.core.types import Outcome

__all__ = ["FailureRecord", "MetricsSnapshot", "TestMetrics"]


@dataclass(frozen=True)
class FailureRecord:
    """One entry in the recent-failures log."""

    test_key: str
    category: str
    message: str
    recorded_at: datetime

    def __str__(self) -> str:
        return f"{self.test_key}: [{self.category}] {self.message}"


@dataclass(frozen=True)
class TestMetrics:
    """Detail for the latest execution of a test key.

    ``durations`` keeps the duration of every finished run of the key within
    the session, oldest first. ``duration_ms`` is the latest of them.
    """

    __test__ = False

    test_key: str
    dimensions: Mapping[str, str]
    started_at: datetime
    finished_at: datetime | None = None
    outcome: Outcome = Outcome.PENDING
    duration_ms: int | None = None
    retries: int = 0
    failure_category: str | None = None
    error_message: str | None = None
    durations: tuple[int, ...] = ()


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time copy of the aggregated metrics.

    ``total`` always equals ``passed + failed + skipped``. Mapping fields are
    read-only proxies.
    """

    session_id: str
    session_start: datetime
    taken_at: datetime
    passed: int
    failed: int
    skipped: int
    retried: int
    in_flight: int
    total_duration_ms: int
    min_duration_ms: int | None
    max_duration_ms: int | None
    failure_categories: Mapping[str, int]
    dimensions: Mapping[str, Mapping[str, int]]
    recent_failures: tuple[FailureRecord, ...]
    warnings: tuple[str, ...]

    @property
    def total(self) -> int:
        return self.passed + self.failed + self.skipped

    @property
    def success_rate(self) -> float:
        """Passed tests as a percentage of finished tests (0.0 when none)."""
        return self.passed / self.total * 100 if self.total else 0.0

    @property
    def average_duration_ms(self) -> float:
        return self.total_duration_ms / self.total if self.total else 0.0

    @property
    def session_duration_ms(self) -> int:
        return int((self.taken_at - self.session_start).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        """Plain dict for JSON/YAML export."""
        return {
            "session_id": self.session_id,
            "session_start": self.session_start.isoformat(),
            "taken_at": self.taken_at.isoformat(),
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "retried": self.retried,
            "in_flight": self.in_flight,
            "success_rate": round(self.success_rate, 2),
            "total_duration_ms": self.total_duration_ms,
            "average_duration_ms": round(self.average_duration_ms, 2),
            "min_duration_ms": self.min_duration_ms,
            "max_duration_ms": self.max_duration_ms,
            "failure_categories": dict(self.failure_categories),
            "dimensions": {k: dict(v) for k, v in self.dimensions.items()},
            "recent_failures": [str(f) for f in self.recent_failures],
            "warnings": list(self.warnings),
        }
