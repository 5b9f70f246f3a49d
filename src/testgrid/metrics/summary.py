"""Rich rendering of a metrics snapshot."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from testgrid.metrics.snapshot import MetricsSnapshot

__all__ = ["format_duration", "render_summary"]


def format_duration(duration_ms: float | None) -> str:
    """Format milliseconds for humans: ``850ms``, ``12.34s`` or ``3m 5s``."""
    if duration_ms is None:
        return "-"
    if duration_ms < 1000:
        return f"{int(duration_ms)}ms"
    if duration_ms < 60_000:
        return f"{duration_ms / 1000:.2f}s"
    minutes, seconds = divmod(int(duration_ms // 1000), 60)
    return f"{minutes}m {seconds}s"


def render_summary(snapshot: MetricsSnapshot, console: Console | None = None) -> None:
    """Print the execution summary tables."""
    console = console or Console()

    rate = snapshot.success_rate
    rate_style = "green" if rate >= 90 else "yellow" if rate >= 70 else "red"

    table = Table(title=f"Execution Summary (session {snapshot.session_id})", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Total", str(snapshot.total))
    table.add_row("Passed", f"[green]{snapshot.passed}[/green]")
    table.add_row("Failed", f"[red]{snapshot.failed}[/red]" if snapshot.failed else "0")
    table.add_row("Skipped", f"[yellow]{snapshot.skipped}[/yellow]" if snapshot.skipped else "0")
    table.add_row("Retries", str(snapshot.retried))
    if snapshot.in_flight:
        table.add_row("In flight", str(snapshot.in_flight))
    table.add_row("Success rate", f"[{rate_style}]{rate:.2f}%[/{rate_style}]")
    table.add_row("Session duration", format_duration(snapshot.session_duration_ms))
    average = snapshot.average_duration_ms if snapshot.total else None
    table.add_row("Average test", format_duration(average))
    table.add_row("Fastest test", format_duration(snapshot.min_duration_ms))
    table.add_row("Slowest test", format_duration(snapshot.max_duration_ms))
    console.print(table)

    if snapshot.dimensions:
        dims = Table(title="Dimensions")
        dims.add_column("Dimension", style="cyan")
        dims.add_column("Value")
        dims.add_column("Tests", justify="right")
        for dimension, values in sorted(snapshot.dimensions.items()):
            for value, count in sorted(values.items()):
                dims.add_row(escape(dimension), escape(value), str(count))
        console.print(dims)

    if snapshot.failure_categories:
        errors = Table(title="Failure Categories")
        errors.add_column("Category", style="red")
        errors.add_column("Count", justify="right")
        for category, count in sorted(
            snapshot.failure_categories.items(), key=lambda item: item[1], reverse=True
        ):
            errors.add_row(escape(category), str(count))
        console.print(errors)

    if snapshot.recent_failures:
        console.print("[bold red]Recent failures:[/bold red]")
        for record in snapshot.recent_failures:
            console.print(f"  [red]x[/red] {escape(str(record))}", highlight=False)

    if snapshot.warnings:
        console.print("[bold yellow]Warnings:[/bold yellow]")
        for warning in snapshot.warnings:
            console.print(f"  [yellow]![/yellow] {escape(warning)}", highlight=False)
