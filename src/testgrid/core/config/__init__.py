"""Pydantic configuration models and singleton access for testgrid.

Usage:
    from testgrid.core.config import get_config, load_config_file

    load_config_file("testgrid.yaml")
    config = get_config()
    print(config.retry.max_attempts)
"""

from testgrid.core.config.constants import (
    ENV_PREFIX,
    GLOBAL_CONFIG_PATH,
    MAX_CONFIG_SIZE,
    PROJECT_CONFIG_NAME,
)
from testgrid.core.config.env import ENV_FILE_NAME, env_overrides, load_env_file
from testgrid.core.config.loaders import (
    _deep_merge,
    _load_yaml_file,
    _reset_config,
    get_config,
    load_config,
    load_config_file,
    load_project_config,
)
from testgrid.core.config.models import (
    ApiConfig,
    BrowserConfig,
    CleanupConfig,
    Config,
    ExecutionConfig,
    MetricsConfig,
    RetryConfig,
)

__all__ = [
    "ENV_FILE_NAME",
    "ENV_PREFIX",
    "GLOBAL_CONFIG_PATH",
    "MAX_CONFIG_SIZE",
    "PROJECT_CONFIG_NAME",
    "ApiConfig",
    "BrowserConfig",
    "CleanupConfig",
    "Config",
    "ExecutionConfig",
    "MetricsConfig",
    "RetryConfig",
    "_deep_merge",
    "_load_yaml_file",
    "_reset_config",
    "env_overrides",
    "get_config",
    "load_config",
    "load_config_file",
    "load_env_file",
    "load_project_config",
]
