"""Background cleanup scheduler and memory sampling."""

from testgrid.cleanup.memory import MemoryInfo, MemoryProbe, sample_memory
from testgrid.cleanup.scheduler import CleanupScheduler, SchedulerState

__all__ = [
    "CleanupScheduler",
    "MemoryInfo",
    "MemoryProbe",
    "SchedulerState",
    "sample_memory",
]
