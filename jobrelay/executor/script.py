"""
Job wrapper script generation shared by all backends.

The wrapper stages inputs, runs the executable and collects outputs. Its exit
status encodes where a job failed:

    0  success
    1  an input could not be staged
    2  an output could not be written (grid backends)
    6  the executable exited non-zero
    7  an output could not be written (local backend)
"""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from jobrelay.types import JobDescriptor

EXIT_INPUT_FAILED = 1
EXIT_GRID_WRITE_FAILED = 2
EXIT_EXECUTION_FAILED = 6
EXIT_LOCAL_WRITE_FAILED = 7

SCRIPT_NAME = "job.sh"


def _stage_command(source: str) -> str:
    """Shell command staging one input into the current directory."""
    if source.startswith(("http://", "https://")):
        name = source.rstrip("/").rsplit("/", 1)[-1] or "input"
        return f"curl -fsSL -o {shlex.quote(name)} {shlex.quote(source)}"
    if source.startswith("file://"):
        source = source[len("file://") :]
    return f"cp -r -- {shlex.quote(source)} ."


def render_job_script(
    descriptor: JobDescriptor,
    job_dir: Path,
    output_dir: Path,
    write_error_code: int,
    header: list[str] | None = None,
    setup: list[str] | None = None,
    environment: dict[str, str] | None = None,
) -> str:
    """
    Render the bash wrapper for *descriptor*.

    Args:
        descriptor: The job to run.
        job_dir: Working directory of the job.
        output_dir: Where declared uploads are copied.
        write_error_code: Exit status used when an upload fails.
        header: Lines placed right after the shebang (e.g. #SBATCH directives).
        setup: Shell commands run before staging (module loads, ...).
        environment: Variables exported before running.

    Returns:
        Complete script as string.
    """
    lines = ["#!/bin/bash"]
    lines.extend(header or [])
    lines.append("")

    for cmd in setup or []:
        lines.append(cmd)

    env = {**descriptor.environment, **(environment or {})}
    for key, value in sorted(env.items()):
        lines.append(f"export {key}={shlex.quote(value)}")

    lines.append(f"cd {shlex.quote(str(job_dir))} || exit {EXIT_INPUT_FAILED}")
    lines.append("")

    if descriptor.downloads:
        lines.append("# Stage inputs")
        for source in descriptor.downloads:
            lines.append(f"{_stage_command(source)} || exit {EXIT_INPUT_FAILED}")
        lines.append("")

    command = " ".join(
        shlex.quote(part) for part in (descriptor.executable, *descriptor.parameters)
    )
    lines.append("# Run")
    lines.append(command)
    lines.append("status=$?")
    lines.append("if [ $status -ne 0 ]; then")
    lines.append('  echo "Executable exited with status $status" >&2')
    lines.append(f"  exit {EXIT_EXECUTION_FAILED}")
    lines.append("fi")
    lines.append("")

    if descriptor.uploads:
        lines.append("# Collect outputs")
        lines.append(
            f"mkdir -p {shlex.quote(str(output_dir))} || exit {write_error_code}"
        )
        for name in descriptor.uploads:
            lines.append(
                f"cp -r -- {shlex.quote(name)} {shlex.quote(str(output_dir))}/ "
                f"|| exit {write_error_code}"
            )
        lines.append("")

    lines.append("exit 0")
    return "\n".join(lines) + "\n"


def write_job_script(job_dir: Path, content: str) -> Path:
    """Write *content* as the job's executable wrapper and return its path."""
    job_dir.mkdir(parents=True, exist_ok=True)
    path = job_dir / SCRIPT_NAME
    path.write_text(content, encoding="utf-8")
    path.chmod(0o755)
    return path
