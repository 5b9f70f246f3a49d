"""Shared identifiers and enums used across testgrid modules."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import TypeAlias

__all__ = ["Outcome", "TestId", "WorkerId", "current_worker_id"]

WorkerId: TypeAlias = str


def current_worker_id() -> WorkerId:
    """Return the worker identity of the calling thread.

    Combines thread name and ident so two pool threads never collide, even
    when a pool reuses names.

    Example:
        >>> current_worker_id().startswith("MainThread-")
        True

    """
    thread = threading.current_thread()
    return f"{thread.name}-{thread.ident}"


class Outcome(str, Enum):
    """Lifecycle state of one test execution."""

    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_final(self) -> bool:
        return self is not Outcome.PENDING


@dataclass(frozen=True)
class TestId:
    """Identity of a test: its name within a suite.

    Attributes:
        name: Test name (e.g. "test_login").
        suite: Suite or class the test belongs to (e.g. "LoginTests").

    """

    __test__ = False

    name: str
    suite: str = "default"

    @property
    def key(self) -> str:
        """Stable ``suite.name`` key used by metrics and logs."""
        return f"{self.suite}.{self.name}"

    def __str__(self) -> str:
        return self.key
