"""Core module: configuration, exceptions, identifiers and execution context.

NOTE: Configuration is loaded lazily so that importing exceptions or types
does not pull in pydantic and PyYAML.
"""

from typing import TYPE_CHECKING

from testgrid.core.exceptions import (
    ConfigError,
    ContextConflictError,
    ErrorType,
    ResourceAcquisitionError,
    ResourceError,
    ResourceLeakError,
    ResourceReleaseError,
    RetryExhaustedError,
    SchedulerTransitionError,
    SkipExecution,
    TestgridError,
)
from testgrid.core.types import Outcome, TestId, WorkerId, current_worker_id

if TYPE_CHECKING:
    from testgrid.core.config import (
        Config as Config,
        get_config as get_config,
        load_config as load_config,
        load_config_file as load_config_file,
        load_env_file as load_env_file,
        load_project_config as load_project_config,
    )
    from testgrid.core.context import (
        ContextStore as ContextStore,
        ExecutionContext as ExecutionContext,
    )

__all__ = [
    # Config
    "Config",
    "get_config",
    "load_config",
    "load_config_file",
    "load_env_file",
    "load_project_config",
    # Context
    "ContextStore",
    "ExecutionContext",
    # Types
    "Outcome",
    "TestId",
    "WorkerId",
    "current_worker_id",
    # Exceptions
    "ConfigError",
    "ContextConflictError",
    "ErrorType",
    "ResourceAcquisitionError",
    "ResourceError",
    "ResourceLeakError",
    "ResourceReleaseError",
    "RetryExhaustedError",
    "SchedulerTransitionError",
    "SkipExecution",
    "TestgridError",
]

_lazy_imports = {
    "Config": ".config",
    "get_config": ".config",
    "load_config": ".config",
    "load_config_file": ".config",
    "load_env_file": ".config",
    "load_project_config": ".config",
    "ContextStore": ".context",
    "ExecutionContext": ".context",
}


def __getattr__(name: str) -> object:
    """Lazy load attributes on first access."""
    if name in _lazy_imports:
        import importlib

        module = importlib.import_module(_lazy_imports[name], __package__)
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
