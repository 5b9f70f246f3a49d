"""Pydantic configuration models for testgrid.

All models are re-exported here for convenient imports.
"""

from testgrid.core.config.models.browser import ApiConfig, BrowserConfig, BrowserName
from testgrid.core.config.models.execution import (
    CleanupConfig,
    ExecutionConfig,
    MetricsConfig,
    RetryConfig,
)
from testgrid.core.config.models.main import Config

__all__ = [
    "ApiConfig",
    "BrowserConfig",
    "BrowserName",
    "CleanupConfig",
    "Config",
    "ExecutionConfig",
    "MetricsConfig",
    "RetryConfig",
]
