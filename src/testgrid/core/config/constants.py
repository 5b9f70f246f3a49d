"""Shared constants for configuration modules."""

from pathlib import Path

PROJECT_CONFIG_NAME: str = "testgrid.yaml"
GLOBAL_CONFIG_PATH: Path = Path.home() / ".testgrid" / "config.yaml"
MAX_CONFIG_SIZE: int = 1_048_576  # 1MB - protection against YAML bombs

# TESTGRID__RETRY__MAX_ATTEMPTS=3 overrides retry.max_attempts
ENV_PREFIX: str = "TESTGRID__"
ENV_NESTED_DELIMITER: str = "__"
