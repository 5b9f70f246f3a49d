"""Shared CLI helpers: console, exit codes, logging setup and messages."""

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS: int = 0
EXIT_ERROR: int = 1
EXIT_CONFIG_ERROR: int = 2

console = Console()


def _setup_logging(verbose: bool, quiet: bool) -> None:
    """Configure root logging through Rich.

    --verbose wins over --quiet.
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )
    logging.getLogger().setLevel(level)


def _error(message: str) -> None:
    console.print(f"[red]Error:[/red] {message}")


def _success(message: str) -> None:
    console.print(f"[green]{message}[/green]")


def _warning(message: str) -> None:
    console.print(f"[yellow]Warning:[/yellow] {message}")


def _info(message: str) -> None:
    console.print(f"[dim]{message}[/dim]")


def _validate_project_path(project: str) -> Path:
    """Resolve the project directory or exit with EXIT_ERROR."""
    project_path = Path(project).expanduser().resolve()
    if not project_path.exists():
        _error(f"Project directory not found: {project_path}")
        raise typer.Exit(code=EXIT_ERROR)
    if not project_path.is_dir():
        _error(f"Project path must be a directory, got file: {project_path}")
        raise typer.Exit(code=EXIT_ERROR)
    return project_path
