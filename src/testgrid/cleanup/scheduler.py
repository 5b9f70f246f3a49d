"""Background cleanup: periodic sweeps, memory monitoring and shutdown.

Lifecycle::

    STOPPED --initialize()--> RUNNING --shutdown()--> SHUTTING_DOWN --> STOPPED

Repeated or out-of-order lifecycle calls are logged no-ops. Nothing in this
module propagates an exception to its caller or kills a background thread:
every step is isolated and failures end up in the log (and, when a warning
callback is wired, in the metrics warning channel).
"""

from __future__ import annotations

import atexit
import gc
import logging
import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

from testgrid.cleanup.memory import MemoryInfo, MemoryProbe, sample_memory
from testgrid.core.exceptions import SchedulerTransitionError

if TYPE_CHECKING:
    from testgrid.core.config.models import CleanupConfig
    from testgrid.resources.registry import ActiveResource, ResourceRegistry

logger = logging.getLogger(__name__)

__all__ = ["CleanupScheduler", "SchedulerState"]

SWEEP_THREAD_NAME = "testgrid-cleanup-sweep"
MONITOR_THREAD_NAME = "testgrid-memory-monitor"


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


class CleanupScheduler:
    """Recovers leaked handles and reacts to memory pressure.

    Args:
        registry: Registry whose handles are swept and released.
        sweep_interval: Seconds between advisory sweeps.
        memory_check_interval: Seconds between memory samples.
        warning_threshold: Usage ratio above which reclamation is requested.
        critical_threshold: Usage ratio above which force_cleanup() runs.
        reclaim_pause: Pause between the two gc passes of force_cleanup().
        shutdown_timeout: Default bounded wait for background threads.
        exit_hook_timeout: Bounded wait when shutdown runs at process exit.
        memory_probe: Returns a MemoryInfo. Defaults to psutil sampling.
        register_exit_hook: Register a process-exit shutdown on initialize().
        on_warning: Receives warning messages (e.g. MetricsAggregator.record_warning).

    Example:
        >>> scheduler = CleanupScheduler(registry, memory_check_interval=5)
        >>> scheduler.initialize()
        >>> ...
        >>> scheduler.shutdown()

    """

    def __init__(
        self,
        registry: ResourceRegistry,
        *,
        sweep_interval: float = 30.0,
        memory_check_interval: float = 10.0,
        warning_threshold: float = 0.8,
        critical_threshold: float = 0.9,
        reclaim_pause: float = 0.1,
        shutdown_timeout: float = 10.0,
        exit_hook_timeout: float = 5.0,
        memory_probe: MemoryProbe | None = None,
        register_exit_hook: bool = True,
        on_warning: Callable[[str], None] | None = None,
    ) -> None:
        if warning_threshold > critical_threshold:
            raise ValueError("warning_threshold must not exceed critical_threshold")
        self.registry = registry
        self.sweep_interval = sweep_interval
        self.memory_check_interval = memory_check_interval
        self.warning_threshold = warning_threshold
        self.critical_threshold = critical_threshold
        self.reclaim_pause = reclaim_pause
        self.shutdown_timeout = shutdown_timeout
        self.exit_hook_timeout = exit_hook_timeout
        self._memory_probe: MemoryProbe = memory_probe or sample_memory
        self._register_exit_hook = register_exit_hook
        self._on_warning = on_warning

        self._state = SchedulerState.STOPPED
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._exit_hook_registered = False

    @classmethod
    def from_config(
        cls,
        registry: ResourceRegistry,
        config: CleanupConfig,
        **kwargs: object,
    ) -> CleanupScheduler:
        """Build a scheduler from the ``cleanup`` config section."""
        limit = config.memory_limit_mb
        kwargs.setdefault("memory_probe", lambda: sample_memory(limit))
        return cls(
            registry,
            sweep_interval=config.sweep_interval,
            memory_check_interval=config.memory_check_interval,
            warning_threshold=config.memory_warning_threshold,
            critical_threshold=config.memory_critical_threshold,
            reclaim_pause=config.reclaim_pause,
            shutdown_timeout=config.shutdown_timeout,
            exit_hook_timeout=config.exit_hook_timeout,
            register_exit_hook=config.register_exit_hook,
            **kwargs,  # type: ignore[arg-type]
        )

    @property
    def state(self) -> SchedulerState:
        with self._state_lock:
            return self._state

    @property
    def background_threads(self) -> list[threading.Thread]:
        """Live background threads started by initialize()."""
        with self._state_lock:
            return [t for t in self._threads if t.is_alive()]

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def initialize(self) -> None:
        """Start the sweep and memory-monitor threads.

        A call while not STOPPED is logged and ignored.
        """
        with self._state_lock:
            if self._state is not SchedulerState.STOPPED:
                logger.debug("%s", SchedulerTransitionError("initialize", self._state.value))
                return
            self._stop_event = threading.Event()
            self._threads = [
                threading.Thread(
                    target=self._run_periodic,
                    args=(self.sweep_interval, self.sweep, self._stop_event),
                    name=SWEEP_THREAD_NAME,
                    daemon=True,
                ),
                threading.Thread(
                    target=self._run_periodic,
                    args=(self.memory_check_interval, self.check_memory, self._stop_event),
                    name=MONITOR_THREAD_NAME,
                    daemon=True,
                ),
            ]
            for thread in self._threads:
                thread.start()
            self._state = SchedulerState.RUNNING
            if self._register_exit_hook and not self._exit_hook_registered:
                atexit.register(self._on_exit)
                self._exit_hook_registered = True

        logger.info(
            "Cleanup scheduler started (sweep every %ss, memory check every %ss)",
            self.sweep_interval,
            self.memory_check_interval,
        )

    def shutdown(self, timeout: float | None = None) -> None:
        """Stop background threads and release every remaining handle.

        Threads still alive after ``timeout`` are abandoned (they are daemons)
        and logged. A call while not RUNNING is logged and ignored.
        """
        wait = self.shutdown_timeout if timeout is None else timeout
        with self._state_lock:
            if self._state is not SchedulerState.RUNNING:
                logger.debug("%s", SchedulerTransitionError("shut down", self._state.value))
                return
            self._state = SchedulerState.SHUTTING_DOWN
            threads = self._threads
            self._threads = []
            self._stop_event.set()

        logger.info("Shutting down cleanup scheduler")
        deadline = time.monotonic() + wait
        for thread in threads:
            if thread is threading.current_thread():
                continue
            thread.join(max(0.0, deadline - time.monotonic()))
            if thread.is_alive():
                logger.warning(
                    "Background thread %s did not stop within %ss; abandoning", thread.name, wait
                )

        try:
            released = self.registry.release_all()
            if released:
                logger.info("Released %d remaining handle set(s) on shutdown", released)
        except Exception:
            logger.exception("Failed to release resources during shutdown")

        self.request_reclamation()

        with self._state_lock:
            self._state = SchedulerState.STOPPED
            # Exit hook is registered only while the scheduler runs
            if self._exit_hook_registered:
                atexit.unregister(self._on_exit)
                self._exit_hook_registered = False
        logger.info("Cleanup scheduler stopped")

    def _on_exit(self) -> None:
        if self.state is not SchedulerState.RUNNING:
            return
        logger.warning("Process exiting with cleanup scheduler running; emergency shutdown")
        try:
            self.shutdown(timeout=self.exit_hook_timeout)
        except Exception:
            logger.exception("Emergency shutdown failed")

    # =========================================================================
    # Background steps
    # =========================================================================

    @staticmethod
    def _run_periodic(interval: float, step: Callable[[], object], stop: threading.Event) -> None:
        while not stop.wait(interval):
            try:
                step()
            except Exception:
                logger.exception("Cleanup step %s failed", getattr(step, "__name__", step))

    def sweep(self) -> list[ActiveResource]:
        """One advisory sweep: log active handles and hint reclamation under pressure."""
        active = self.registry.snapshot_active()
        if active:
            idle = sum(1 for r in active if not r.pending)
            logger.debug("Sweep: %d active handle(s), %d idle", len(active), idle)
            for resource in active:
                logger.debug(
                    "  %s %s (%s%s)",
                    resource.worker,
                    resource.kind,
                    resource.test_key,
                    "" if resource.pending else ", idle",
                )
        info = self.memory_info()
        if info is not None and info.usage_ratio > self.warning_threshold:
            self.request_reclamation()
        return active

    def check_memory(self) -> MemoryInfo | None:
        """One memory-monitor pass. Runs force_cleanup() above the critical threshold."""
        info = self.memory_info()
        if info is None:
            return None
        if info.usage_ratio > self.critical_threshold:
            self._warn(f"Critical memory usage: {info}; forcing cleanup")
            self.force_cleanup()
        elif info.usage_ratio > self.warning_threshold:
            self._warn(f"High memory usage: {info}")
        return info

    def memory_info(self) -> MemoryInfo | None:
        """Current memory sample, or None if sampling failed."""
        try:
            return self._memory_probe()
        except Exception as e:
            logger.warning("Memory sampling failed: %s", e)
            return None

    def force_cleanup(self) -> int:
        """Release idle handle sets, then reclaim memory twice with a pause.

        Returns:
            Number of handle sets released.

        """
        released = 0
        try:
            released = self.registry.release_idle()
        except Exception:
            logger.exception("Forced release of idle resources failed")
        self.request_reclamation()
        time.sleep(self.reclaim_pause)
        self.request_reclamation()
        logger.info("Forced cleanup released %d idle handle set(s)", released)
        return released

    @staticmethod
    def request_reclamation() -> int:
        """Best-effort garbage collection hint."""
        try:
            return gc.collect()
        except Exception:
            logger.exception("Garbage collection failed")
            return 0

    def _warn(self, message: str) -> None:
        logger.warning("%s", message)
        if self._on_warning is not None:
            try:
                self._on_warning(message)
            except Exception:
                logger.exception("Warning callback raised")
