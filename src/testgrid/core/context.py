"""Per-worker execution context and the worker-keyed context store.

An ExecutionContext is created when a test begins and is owned exclusively by
the worker that created it. Other threads (the cleanup scheduler) may read
its outcome but never mutate it.

ContextStore replaces implicit thread-local storage with an explicit map keyed
by worker id, so ownership is enforced by the key rather than by convention.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from testgrid.core.exceptions import ContextConflictError
from testgrid.core.types import Outcome, TestId, WorkerId

if TYPE_CHECKING:
    from testgrid.resources.handles import HandleSet

logger = logging.getLogger(__name__)

__all__ = ["ContextStore", "ExecutionContext"]


@dataclass
class ExecutionContext:
    """State of one running test on one worker.

    Attributes:
        worker: Identity of the owning worker.
        test_id: Test being executed.
        started_at: Wall-clock start time (UTC).
        attempt: Number of retries performed so far (0 on the first attempt).
        handles: Handle set bound for the current attempt, if any.
        outcome: PENDING until the test finishes.
        data: Free-form per-test data shared between hooks and the test body.

    """

    worker: WorkerId
    test_id: TestId
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    attempt: int = 0
    handles: HandleSet | None = None
    outcome: Outcome = Outcome.PENDING
    data: dict[str, Any] = field(default_factory=dict)
    _started_monotonic: float = field(default_factory=time.monotonic, repr=False)

    @property
    def is_pending(self) -> bool:
        return self.outcome is Outcome.PENDING

    def elapsed_ms(self) -> int:
        """Milliseconds since the test started."""
        return int((time.monotonic() - self._started_monotonic) * 1000)

    def finish(self, outcome: Outcome) -> None:
        """Record the final outcome. A finished context cannot be reopened."""
        if outcome is Outcome.PENDING:
            raise ValueError("finish() requires a final outcome")
        self.outcome = outcome

    def describe(self) -> str:
        return (
            f"Worker[{self.worker}] Test[{self.test_id.key}] "
            f"Attempt[{self.attempt}] Duration[{self.elapsed_ms()}ms]"
        )


class ContextStore:
    """Concurrent map of worker id to its current ExecutionContext."""

    def __init__(self) -> None:
        self._contexts: dict[WorkerId, ExecutionContext] = {}
        self._lock = threading.Lock()

    def bind(self, context: ExecutionContext) -> ExecutionContext:
        """Bind a new context to its worker.

        Raises:
            ContextConflictError: If the worker already has a pending context.

        """
        with self._lock:
            existing = self._contexts.get(context.worker)
            if existing is not None and existing.is_pending:
                raise ContextConflictError(
                    f"Worker {context.worker} is still running {existing.test_id.key}; "
                    f"cannot start {context.test_id.key}"
                )
            self._contexts[context.worker] = context
        logger.debug("Bound context: %s", context.describe())
        return context

    def current(self, worker: WorkerId) -> ExecutionContext | None:
        with self._lock:
            return self._contexts.get(worker)

    def clear(self, worker: WorkerId) -> ExecutionContext | None:
        """Remove the worker's context. Returns the removed context, if any."""
        with self._lock:
            return self._contexts.pop(worker, None)

    def pending_count(self) -> int:
        with self._lock:
            return sum(1 for ctx in self._contexts.values() if ctx.is_pending)

    def workers(self) -> list[WorkerId]:
        with self._lock:
            return list(self._contexts)

    def __len__(self) -> int:
        with self._lock:
            return len(self._contexts)
