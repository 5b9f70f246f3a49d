"""Process and system memory sampling via psutil."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

import psutil

logger = logging.getLogger(__name__)

__all__ = ["MemoryInfo", "MemoryProbe", "sample_memory"]

_MB = 1024 * 1024


@dataclass(frozen=True)
class MemoryInfo:
    """One memory sample.

    Attributes:
        rss_mb: Resident set size of this process.
        limit_mb: Configured process budget, or None when system memory is
            the reference.
        usage_ratio: 0.0-1.0, RSS over limit when a limit is set, otherwise
            system memory usage.
        system_total_mb: Total physical memory.
        system_available_mb: Memory available to new allocations.

    """

    rss_mb: float
    limit_mb: float | None
    usage_ratio: float
    system_total_mb: float
    system_available_mb: float

    @property
    def usage_percent(self) -> float:
        return self.usage_ratio * 100

    def __str__(self) -> str:
        if self.limit_mb is not None:
            reference = f"{self.rss_mb:.1f} MB / {self.limit_mb:.1f} MB limit"
        else:
            used = self.system_total_mb - self.system_available_mb
            reference = f"{used:.1f} MB / {self.system_total_mb:.1f} MB system"
        return f"Memory Usage: {reference} ({self.usage_percent:.1f}%)"


MemoryProbe = Callable[[], MemoryInfo]


def sample_memory(limit_mb: float | None = None) -> MemoryInfo:
    """Sample memory of the current process and the system.

    Args:
        limit_mb: Process RSS budget. None uses system memory usage as the ratio.

    """
    rss_mb = psutil.Process().memory_info().rss / _MB
    vm = psutil.virtual_memory()
    if limit_mb:
        ratio = rss_mb / limit_mb
    else:
        ratio = vm.percent / 100
    return MemoryInfo(
        rss_mb=rss_mb,
        limit_mb=limit_mb,
        usage_ratio=ratio,
        system_total_mb=vm.total / _MB,
        system_available_mb=vm.available / _MB,
    )
