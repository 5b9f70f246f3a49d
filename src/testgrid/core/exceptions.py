"""Custom exception hierarchy for testgrid.

All framework errors derive from TestgridError and carry an ErrorType plus a
stable error code (``TG_<TYPE>_<NNN>``) so log records and failure categories
can be grouped without parsing messages.

Taxonomy:
    ResourceAcquisitionError: external resource unavailable, fatal to the test.
    ResourceReleaseError: one handle's teardown failed, logged only.
    ResourceLeakError: handle set re-acquired for another context without release.
    ContextConflictError: worker already has a pending test.
    RetryExhaustedError: all retry attempts consumed without success.
    SchedulerTransitionError: lifecycle call in an unexpected state, logged only.
    SkipExecution: raised by a test body to mark the test as skipped.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from testgrid.core.types import TestId, WorkerId


class ErrorType(Enum):
    """Error categories for framework exceptions."""

    CONFIG = "Configuration Error"
    BROWSER = "Browser Error"
    API = "API Error"
    VALIDATION = "Validation Error"
    PAGE = "Page Error"
    ELEMENT = "Element Error"
    AUTHENTICATION = "Authentication Error"
    DATA = "Data Error"
    TIMEOUT = "Timeout Error"
    NETWORK = "Network Error"
    RESOURCE = "Resource Error"
    RETRY = "Retry Error"
    SCHEDULER = "Scheduler Error"
    EXECUTION = "Execution Error"

    @property
    def description(self) -> str:
        """Human-readable description of the error type."""
        return self.value


class TestgridError(Exception):
    """Base exception for all testgrid errors.

    Attributes:
        error_type: Category of the error.
        error_code: Stable code, e.g. ``TG_RESOURCE_001``.

    """

    __test__ = False
    default_type: ErrorType = ErrorType.VALIDATION
    default_code: str | None = None

    def __init__(
        self,
        message: str,
        *,
        error_type: ErrorType | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type or self.default_type
        self.error_code = error_code or self.default_code or f"TG_{self.error_type.name}_001"

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.error_type.description}: {super().__str__()}"


class ConfigError(TestgridError):
    """Configuration could not be loaded or failed validation."""

    default_type = ErrorType.CONFIG


class ResourceError(TestgridError):
    """Base class for resource lifecycle errors.

    Attributes:
        kind: Resource kind involved (e.g. "browser"), if known.
        worker: Worker that owned the resource, if known.

    """

    default_type = ErrorType.RESOURCE

    def __init__(
        self,
        message: str,
        *,
        kind: str | None = None,
        worker: WorkerId | None = None,
        error_type: ErrorType | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message, error_type=error_type, error_code=error_code)
        self.kind = kind
        self.worker = worker


class ResourceAcquisitionError(ResourceError):
    """An external resource could not be opened. Fatal to the current test."""

    default_code = "TG_RESOURCE_001"


class ResourceReleaseError(ResourceError):
    """A single handle failed to close. Never blocks sibling teardown."""

    default_code = "TG_RESOURCE_002"


class ResourceLeakError(ResourceError):
    """A worker re-acquired resources for a new context without releasing."""

    default_code = "TG_RESOURCE_003"


class ContextConflictError(TestgridError):
    """A worker tried to start a test while another is still pending."""

    default_type = ErrorType.EXECUTION
    default_code = "TG_EXECUTION_001"


class RetryExhaustedError(TestgridError):
    """A test failed on every permitted attempt.

    The last failure is chained as ``__cause__`` and kept in ``last_failure``.
    """

    default_type = ErrorType.RETRY
    default_code = "TG_RETRY_001"

    def __init__(self, test_id: TestId, attempts: int, last_failure: BaseException) -> None:
        super().__init__(
            f"{test_id.key} failed after {attempts} attempt(s): "
            f"{type(last_failure).__name__}: {last_failure}"
        )
        self.test_id = test_id
        self.attempts = attempts
        self.last_failure = last_failure
        self.__cause__ = last_failure


class SchedulerTransitionError(TestgridError):
    """Lifecycle call made in an unexpected scheduler state.

    Constructed for log records only. The scheduler never raises it so that
    initialize/shutdown stay safe to call repeatedly.
    """

    default_type = ErrorType.SCHEDULER
    default_code = "TG_SCHEDULER_001"

    def __init__(self, operation: str, state: str) -> None:
        super().__init__(f"Cannot {operation} while scheduler is {state}")
        self.operation = operation
        self.state = state


class SkipExecution(Exception):  # noqa: N818
    """Raised from a test body to report the test as skipped."""

    def __init__(self, reason: str = "") -> None:
        super().__init__(reason)
        self.reason = reason
