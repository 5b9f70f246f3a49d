"""Main Config model that aggregates all configuration sections."""

from pydantic import BaseModel, ConfigDict, Field

from testgrid.core.config.models.browser import ApiConfig, BrowserConfig
from testgrid.core.config.models.execution import (
    CleanupConfig,
    ExecutionConfig,
    MetricsConfig,
    RetryConfig,
)


class Config(BaseModel):
    """Root testgrid configuration model.

    Every section has defaults, so an empty mapping is a valid configuration.

    Attributes:
        execution: Worker pool settings.
        retry: Default retry policy.
        cleanup: Background cleanup scheduler settings.
        browser: Browser provider settings.
        api: HTTP request context provider settings.
        metrics: Metrics aggregation settings.

    """

    model_config = ConfigDict(frozen=True)

    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    cleanup: CleanupConfig = Field(default_factory=CleanupConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
