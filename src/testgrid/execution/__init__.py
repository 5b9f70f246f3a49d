"""Test execution: declarations and the coordinator."""

from testgrid.execution.coordinator import ExecutionCoordinator, ExecutionResult
from testgrid.execution.spec import TestBody, TestSpec, TestSpecBuilder

__all__ = [
    "ExecutionCoordinator",
    "ExecutionResult",
    "TestBody",
    "TestSpec",
    "TestSpecBuilder",
]
