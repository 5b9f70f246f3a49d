"""Configuration loading functions and singleton management."""

import copy
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from testgrid.core.config.constants import (
    GLOBAL_CONFIG_PATH,
    MAX_CONFIG_SIZE,
    PROJECT_CONFIG_NAME,
)
from testgrid.core.config.env import env_overrides, load_env_file
from testgrid.core.config.models.main import Config
from testgrid.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

# Module-level singleton for configuration
_config: Config | None = None


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base dictionary.

    Dicts are merged recursively, everything else (lists included) is
    replaced by the override value. Inputs are not modified.

    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load and parse a YAML file with safety checks.

    An empty file is treated as an empty mapping, since every config
    section has defaults.

    Raises:
        ConfigError: If the file cannot be read, is too large, is a
            directory, is not a mapping, or the YAML is invalid.

    """
    try:
        # Bounded read instead of stat-then-read
        with path.open("r", encoding="utf-8") as f:
            content = f.read(MAX_CONFIG_SIZE + 1)

        if len(content) > MAX_CONFIG_SIZE:
            raise ConfigError(
                f"Config file {path} exceeds 1MB limit "
                f"(read {len(content):,} bytes before stopping)."
            )

        parsed = yaml.safe_load(content)
        if parsed is None:
            return {}

        if not isinstance(parsed, dict):
            raise ConfigError(
                f"Config file {path} must contain a YAML mapping, got {type(parsed).__name__}."
            )

        return parsed
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except IsADirectoryError as e:
        raise ConfigError(f"{path} is a directory, not a config file.") from e
    except PermissionError as e:
        raise ConfigError(f"Permission denied reading {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e


def load_config(config_data: dict[str, Any]) -> Config:
    """Validate a configuration dictionary and store it as the singleton.

    Raises:
        ConfigError: If config_data is not a dict or validation fails.

    """
    global _config
    if not isinstance(config_data, dict):
        raise ConfigError(f"config_data must be a dict, got {type(config_data).__name__}")
    try:
        _config = Config.model_validate(config_data)
        return _config
    except ValidationError as e:
        _config = None
        raise ConfigError(f"Configuration validation failed: {e}") from e


def get_config() -> Config:
    """Get the loaded configuration singleton.

    Raises:
        ConfigError: If config has not been loaded yet.

    """
    if _config is None:
        raise ConfigError("Config not loaded. Call load_config() first.")
    return _config


def _reset_config() -> None:
    """Reset config singleton. For tests only."""
    global _config
    _config = None


def load_config_file(path: str | Path, *, apply_env: bool = True) -> Config:
    """Load configuration from a single YAML file.

    Args:
        path: Path to the YAML file. ``~`` is expanded.
        apply_env: Merge TESTGRID__ environment overrides over file values.

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.

    """
    global _config

    config_path = Path(path).expanduser()
    if not config_path.exists():
        raise ConfigError(f"Config file not found at {config_path}.")
    if not config_path.is_file():
        raise ConfigError(f"Config path {config_path} exists but is not a file.")

    try:
        data = _load_yaml_file(config_path)
    except ConfigError:
        _config = None
        raise

    if apply_env:
        data = _deep_merge(data, env_overrides())

    try:
        return load_config(data)
    except ConfigError as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e


def load_project_config(
    project_path: str | Path | None = None,
    *,
    global_config_path: str | Path | None = None,
) -> Config:
    """Load configuration from the global and project tiers plus environment.

    Precedence, lowest first:
    1. Global: ~/.testgrid/config.yaml
    2. Project: {project_path}/testgrid.yaml
    3. Environment: TESTGRID__SECTION__FIELD variables

    Missing files are skipped; with no files at all the defaults apply.
    The project's .env file is loaded first so its variables can feed
    the environment tier.

    Raises:
        ConfigError: If a present file is invalid or validation fails.

    """
    resolved_project = Path.cwd() if project_path is None else Path(project_path).expanduser()
    if resolved_project.exists() and not resolved_project.is_dir():
        raise ConfigError(f"project_path must be a directory, got file: {resolved_project}")
    if resolved_project.is_dir():
        load_env_file(resolved_project)

    resolved_global = (
        GLOBAL_CONFIG_PATH if global_config_path is None else Path(global_config_path).expanduser()
    )

    sources: list[str] = []
    merged: dict[str, Any] = {}
    for config_file in (resolved_global, resolved_project / PROJECT_CONFIG_NAME):
        if config_file.is_file():
            merged = _deep_merge(merged, _load_yaml_file(config_file))
            sources.append(str(config_file))

    overrides = env_overrides()
    if overrides:
        merged = _deep_merge(merged, overrides)
        sources.append("environment")

    logger.debug("Config sources: %s", ", ".join(sources) or "defaults")
    try:
        return load_config(merged)
    except ConfigError as e:
        raise ConfigError(f"Invalid configuration (sources: {sources or 'defaults'}): {e}") from e
