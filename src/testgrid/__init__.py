"""testgrid: concurrent test execution with per-worker resources, retry and metrics."""

from typing import TYPE_CHECKING

__version__ = "0.4.0"

if TYPE_CHECKING:
    from testgrid.execution import (
        ExecutionCoordinator as ExecutionCoordinator,
        ExecutionResult as ExecutionResult,
        TestSpec as TestSpec,
    )
    from testgrid.metrics import (
        MetricsAggregator as MetricsAggregator,
        render_summary as render_summary,
    )
    from testgrid.resources import (
        ResourceProfile as ResourceProfile,
        ResourceProvider as ResourceProvider,
        ResourceRegistry as ResourceRegistry,
    )
    from testgrid.retry import RetryPolicy as RetryPolicy

__all__ = [
    "ExecutionCoordinator",
    "ExecutionResult",
    "MetricsAggregator",
    "ResourceProfile",
    "ResourceProvider",
    "ResourceRegistry",
    "RetryPolicy",
    "TestSpec",
    "__version__",
    "render_summary",
]

_lazy_imports = {
    "ExecutionCoordinator": ".execution",
    "ExecutionResult": ".execution",
    "TestSpec": ".execution",
    "MetricsAggregator": ".metrics",
    "render_summary": ".metrics",
    "ResourceProfile": ".resources",
    "ResourceProvider": ".resources",
    "ResourceRegistry": ".resources",
    "RetryPolicy": ".retry",
}


def __getattr__(name: str) -> object:
    """Lazy load attributes on first access."""
    if name in _lazy_imports:
        import importlib

        module = importlib.import_module(_lazy_imports[name], __package__)
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
