"""
Display utilities for job outputs and stored job records.

Provides rich tables for the CLI.
"""

from __future__ import annotations

from typing import Iterable

from rich.console import Console
from rich.table import Table

from jobrelay.types import ExitCode, JobOutput, JobRecord, JobStatus

_EXIT_STYLES = {
    ExitCode.SUCCESS: "green",
    ExitCode.EXECUTION_CANCELED: "yellow",
    ExitCode.EXECUTION_STALLED: "yellow",
    ExitCode.UNDEFINED: "dim",
}


def _exit_cell(exit_code: ExitCode | None) -> str:
    if exit_code is None:
        return "-"
    style = _EXIT_STYLES.get(exit_code, "red")
    return f"[{style}]{exit_code.value}[/{style}]"


def display_outputs(outputs: Iterable[JobOutput], console: Console | None = None) -> None:
    """
    Print collected job outputs as a table.

    Example:
        outputs = coordinator.get_finished_jobs()
        display_outputs(outputs)
    """
    console = console or Console()
    outputs = list(outputs)
    if not outputs:
        console.print("[yellow]No finished jobs.[/yellow]")
        return

    table = Table(title="Finished Jobs", show_header=True, header_style="bold")
    table.add_column("Job", style="cyan")
    table.add_column("Result")
    table.add_column("Exit", justify="right")
    table.add_column("Elapsed", justify="right")
    table.add_column("Uploads")
    table.add_column("Stdout")

    for output in sorted(outputs, key=lambda o: o.job_id):
        table.add_row(
            output.job_id,
            _exit_cell(output.exit_code),
            "-" if output.raw_exit_code is None else str(output.raw_exit_code),
            "-" if output.elapsed_s is None else f"{output.elapsed_s:.1f}s",
            "\n".join(output.uploaded_results) or "-",
            output.stdout_path or "-",
        )

    console.print(table)


def display_records(records: Iterable[JobRecord], console: Console | None = None) -> None:
    """Print stored job records as a table."""
    console = console or Console()
    records = list(records)
    if not records:
        console.print("[yellow]No jobs recorded.[/yellow]")
        return

    table = Table(title="Jobs", show_header=True, header_style="bold")
    table.add_column("Job", style="cyan")
    table.add_column("Target")
    table.add_column("Status")
    table.add_column("Result")
    table.add_column("Submitted")
    table.add_column("Finished")

    for record in records:
        status = record.status.value
        if record.status == JobStatus.SUBMITTED:
            status = f"[blue]{status}[/blue]"
        table.add_row(
            record.job_id,
            f"{record.version}/{record.target}" if record.target else record.version,
            status,
            _exit_cell(record.exit_code),
            record.submitted_at.strftime("%Y-%m-%d %H:%M:%S"),
            record.finished_at.strftime("%Y-%m-%d %H:%M:%S") if record.finished_at else "-",
        )

    console.print(table)
