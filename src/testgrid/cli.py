"""Typer CLI entry point for testgrid.

Parses arguments, loads configuration and delegates to ExecutionCoordinator.
No execution logic lives here.
"""

import importlib
import logging
import sys
from collections.abc import Iterable
from pathlib import Path

import typer
import yaml

from testgrid import __version__
from testgrid.cleanup.memory import sample_memory
from testgrid.cli_utils import (
    EXIT_CONFIG_ERROR,
    EXIT_ERROR,
    EXIT_SUCCESS,
    _error,
    _info,
    _setup_logging,
    _success,
    _validate_project_path,
    _warning,
    console,
)
from testgrid.core.config import Config, load_config_file, load_project_config
from testgrid.core.exceptions import ConfigError
from testgrid.core.types import Outcome
from testgrid.execution import ExecutionCoordinator, TestSpec
from testgrid.metrics import render_summary

logger = logging.getLogger(__name__)


app = typer.Typer(
    name="testgrid",
    help="Concurrent test execution with per-worker resources, retry and metrics",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"testgrid {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Concurrent test execution with per-worker resources, retry and metrics."""
    if ctx.invoked_subcommand is None:
        raise typer.Exit()


def _load_configuration(project_path: Path, config: str | None) -> Config:
    """Load config from --config or the project hierarchy, exiting on error."""
    try:
        if config is not None:
            return load_config_file(config)
        return load_project_config(project_path)
    except ConfigError as e:
        _error(str(e))
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from None


def _load_specs(target: str, project_path: Path) -> list[TestSpec]:
    """Resolve ``module:attribute`` to a list of TestSpec.

    The attribute may be an iterable of TestSpec or a zero-argument callable
    returning one. The project directory is importable.
    """
    module_name, sep, attribute = target.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Target must look like 'module:attribute', got {target!r}")

    if str(project_path) not in sys.path:
        sys.path.insert(0, str(project_path))
    module = importlib.import_module(module_name)
    value = getattr(module, attribute)
    if callable(value) and not isinstance(value, TestSpec):
        value = value()
    if isinstance(value, TestSpec):
        return [value]
    if not isinstance(value, Iterable):
        raise TypeError(f"{target} is not an iterable of TestSpec")

    specs = list(value)
    invalid = [s for s in specs if not isinstance(s, TestSpec)]
    if invalid:
        raise TypeError(f"{target} contains {len(invalid)} item(s) that are not TestSpec")
    return specs


@app.command()
def run(
    target: str = typer.Argument(
        ...,
        help="Tests to run as module:attribute (iterable of TestSpec or callable returning one)",
    ),
    workers: int | None = typer.Option(
        None,
        "--workers",
        "-w",
        min=1,
        help="Number of parallel workers (defaults to execution.workers)",
    ),
    project: str = typer.Option(
        ".",
        "--project",
        "-p",
        help="Project directory (holds testgrid.yaml and .env, importable)",
    ),
    config: str | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file (defaults to project hierarchy)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug output",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress non-error output",
    ),
) -> None:
    """Run tests and print the execution summary.

    Exit code is 0 when no test failed, 1 otherwise, 2 on configuration errors.

    Examples:
        testgrid run tests.smoke:SPECS --workers 4
        testgrid run suite:build_specs -c ci.yaml -q

    """
    _setup_logging(verbose=verbose, quiet=quiet)
    project_path = _validate_project_path(project)
    loaded = _load_configuration(project_path, config)

    try:
        specs = _load_specs(target, project_path)
    except (ImportError, AttributeError, TypeError, ValueError) as e:
        _error(f"Cannot load tests from {target}: {e}")
        raise typer.Exit(code=EXIT_ERROR) from None

    if not specs:
        _warning(f"No tests found in {target}")
        raise typer.Exit(code=EXIT_SUCCESS)

    if not quiet:
        _info(f"Running {len(specs)} test(s) from {target}")

    with ExecutionCoordinator.from_config(loaded) as coordinator:
        results = coordinator.run_all(specs, workers=workers)

    if loaded.metrics.print_summary and not quiet:
        render_summary(coordinator.metrics.snapshot(), console)

    failed = [r for r in results if r.outcome is Outcome.FAILED]
    if failed:
        for result in failed:
            _error(f"{result.test_id.key}: {result.error}")
        raise typer.Exit(code=EXIT_ERROR)

    _success(f"All {len(results)} test(s) passed or skipped")
    raise typer.Exit(code=EXIT_SUCCESS)


@app.command()
def memory(
    project: str = typer.Option(".", "--project", "-p", help="Project directory"),
    config: str | None = typer.Option(None, "--config", "-c", help="Path to configuration file"),
) -> None:
    """Show current memory usage against the cleanup thresholds."""
    project_path = _validate_project_path(project)
    cleanup = _load_configuration(project_path, config).cleanup
    info = sample_memory(cleanup.memory_limit_mb)

    console.print(str(info))
    if info.usage_ratio > cleanup.memory_critical_threshold:
        _warning(f"Above critical threshold ({cleanup.memory_critical_threshold:.0%})")
    elif info.usage_ratio > cleanup.memory_warning_threshold:
        _warning(f"Above warning threshold ({cleanup.memory_warning_threshold:.0%})")
    else:
        _success("Memory usage is below the warning threshold")


@app.command("config")
def show_config(
    project: str = typer.Option(".", "--project", "-p", help="Project directory"),
    config: str | None = typer.Option(None, "--config", "-c", help="Path to configuration file"),
) -> None:
    """Print the effective configuration as YAML."""
    project_path = _validate_project_path(project)
    loaded = _load_configuration(project_path, config)
    console.print(
        yaml.safe_dump(loaded.model_dump(mode="json"), sort_keys=False),
        highlight=False,
        markup=False,
    )


if __name__ == "__main__":
    app()
