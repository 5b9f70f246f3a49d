"""Environment variable handling: .env loading and TESTGRID__ overrides."""

import logging
import os
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from testgrid.core.config.constants import ENV_NESTED_DELIMITER, ENV_PREFIX

logger = logging.getLogger(__name__)

ENV_FILE_NAME: str = ".env"


def _check_env_file_permissions(path: Path) -> None:
    """Warn if a .env file is readable by group or others (Unix only)."""
    if sys.platform == "win32":
        return

    try:
        mode = path.stat().st_mode & 0o777
        if mode not in (0o600, 0o400):
            logger.warning(
                ".env file %s has insecure permissions %03o, "
                "expected 600 or 400. Run: chmod 600 %s",
                path,
                mode,
                path,
            )
    except OSError:
        pass  # deleted between exists() and stat()


def load_env_file(
    project_path: str | Path | None = None,
    *,
    check_permissions: bool = True,
) -> bool:
    """Load environment variables from {project_path}/.env.

    Existing environment variables are never overridden.

    Args:
        project_path: Directory containing the .env file. Defaults to cwd.
        check_permissions: Warn on permissive file modes.

    Returns:
        True if a .env file was found and loaded, False otherwise.

    """
    resolved_path = Path.cwd() if project_path is None else Path(project_path).expanduser()
    env_file = resolved_path / ENV_FILE_NAME

    if not env_file.is_file():
        logger.debug(".env file not found at %s, skipping", env_file)
        return False

    if check_permissions:
        _check_env_file_permissions(env_file)

    load_dotenv(env_file, encoding="utf-8", override=False)
    logger.debug("Loaded environment variables from %s", env_file)
    return True


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Collect TESTGRID__SECTION__FIELD variables into a nested dict.

    Values are parsed with yaml.safe_load so ``3`` becomes an int, ``true`` a
    bool and ``[a, b]`` a list. Keys are lower-cased.

    Example:
        >>> env_overrides({"TESTGRID__RETRY__MAX_ATTEMPTS": "3"})
        {'retry': {'max_attempts': 3}}

    """
    source = os.environ if environ is None else environ
    result: dict[str, Any] = {}
    for name, raw in source.items():
        if not name.startswith(ENV_PREFIX):
            continue
        path = [p.lower() for p in name[len(ENV_PREFIX) :].split(ENV_NESTED_DELIMITER) if p]
        if not path:
            continue
        try:
            value = yaml.safe_load(raw) if raw else raw
        except yaml.YAMLError:
            value = raw
        node = result
        for part in path[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[path[-1]] = value
        logger.debug("Config override from environment: %s", ".".join(path))
    return result
