"""Concurrent execution metrics: counters, aggregator, snapshot and summary."""

from testgrid.metrics.aggregator import MetricsAggregator
from testgrid.metrics.counters import (
    AtomicCounter,
    AtomicExtremum,
    CounterMap,
    DimensionCounters,
)
from testgrid.metrics.snapshot import FailureRecord, MetricsSnapshot, TestMetrics
from testgrid.metrics.summary import format_duration, render_summary

__all__ = [
    "AtomicCounter",
    "AtomicExtremum",
    "CounterMap",
    "DimensionCounters",
    "FailureRecord",
    "MetricsAggregator",
    "MetricsSnapshot",
    "TestMetrics",
    "format_duration",
    "render_summary",
]
