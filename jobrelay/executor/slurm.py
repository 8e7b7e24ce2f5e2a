"""
SlurmExecutor: GRID-family submission via sbatch.

Provides:
- SlurmConfig: SLURM job parameters (from ``[backends.slurm]``)
- SlurmExecutor: Executor writing a wrapper script and submitting it
- sacct_job_states: Per-job terminal state lookup used by SlurmMonitor

Handles have the form ``<name>-<hex8>--<slurmJobId>``.
"""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from jobrelay._commands import run_cmd
from jobrelay.errors import SubmissionError
from jobrelay.executor.script import (
    EXIT_GRID_WRITE_FAILED,
    render_job_script,
    write_job_script,
)
from jobrelay.types import (
    LOCAL_HANDLE_PREFIX,
    TARGET_SLURM,
    VERSION_GRID,
    Family,
    handle_safe_name,
    make_handle,
)

if TYPE_CHECKING:
    from jobrelay.executor.base import ExecutorContext
    from jobrelay.proxy import Proxy
    from jobrelay.types import JobDescriptor

logger = logging.getLogger(__name__)

# States after which a job never changes again
TERMINAL_STATES = frozenset(
    {
        "COMPLETED",
        "FAILED",
        "CANCELLED",
        "TIMEOUT",
        "OUT_OF_MEMORY",
        "NODE_FAIL",
        "PREEMPTED",
        "BOOT_FAIL",
        "DEADLINE",
    }
)


@dataclass
class SlurmConfig:
    """
    Configuration for SLURM job submission.

    Attributes:
        partition: SLURM partition/queue name.
        time: Maximum walltime (e.g., "1:00:00" for 1 hour).
        cpus: Number of CPUs per task.
        memory: Memory per task (e.g., "4G", "16GB").
        gpus: Number of GPUs per task (0 for CPU-only).
        modules: Shell modules to load before execution.
        conda_env: Conda environment to activate.
        setup: List of bash commands to run before the job.
        extra_sbatch: Additional sbatch directives as key-value pairs.
    """

    partition: str = "default"
    time: str = "1:00:00"
    cpus: int = 1
    memory: str = "4G"
    gpus: int = 0
    modules: list[str] = field(default_factory=list)
    conda_env: str | None = None
    setup: list[str] = field(default_factory=list)
    extra_sbatch: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SlurmConfig:
        """Parse from a config dict (e.g., ``[backends.slurm]``).

        Handles convenience fields:
        - mail_user, mail_type are moved into extra_sbatch
        - String values for modules/setup are wrapped in a list
        - Unknown keys (e.g. poll_interval) are ignored
        """
        d = d.copy()

        extra = dict(d.pop("extra_sbatch", {}))
        for key in ("mail_user", "mail_type"):
            if key in d:
                extra[key] = d.pop(key)

        for list_field in ("modules", "setup"):
            if list_field in d and isinstance(d[list_field], str):
                d[list_field] = [d[list_field]]

        known = {
            "partition",
            "time",
            "cpus",
            "memory",
            "gpus",
            "modules",
            "conda_env",
            "setup",
        }
        filtered = {k: v for k, v in d.items() if k in known}
        return cls(**filtered, extra_sbatch=extra)


# ---------------------------------------------------------------------------
# SLURM command utilities
# ---------------------------------------------------------------------------


def _parse_slurm_job_id(output: str) -> str | None:
    """
    Parse job ID from sbatch output.

    Expected format: "Submitted batch job 12345"
    """
    for line in output.strip().split("\n"):
        if "Submitted batch job" in line:
            parts = line.split()
            if parts:
                return parts[-1]
    return None


def _normalize_slurm_state(state: str) -> str:
    """
    Normalize SLURM state string.

    - Keeps the first word (e.g., "CANCELLED by 1234" -> "CANCELLED")
    - Strips trailing '+' (e.g., CANCELLED+ -> CANCELLED)
    - Uppercases for consistency
    """
    words = state.split()
    return (words[0] if words else "").upper().rstrip("+")


def _is_step_job(job_id: str) -> bool:
    """Check if job ID is a step (e.g., 12345.batch, 12345.extern)."""
    return "." in job_id


def _parse_exit_code(value: str) -> int | None:
    """Parse sacct's ``code:signal`` ExitCode column."""
    code, _, _signal = value.partition(":")
    try:
        return int(code)
    except ValueError:
        return None


def sacct_job_states(
    job_ids: list[str],
    timeout: float = 60.0,
) -> dict[str, tuple[str, int | None]]:
    """
    Query sacct for per-job state and exit code.

    Args:
        job_ids: SLURM job IDs to query.
        timeout: Command timeout in seconds.

    Returns:
        Dict mapping job ID to ``(state, exit_code)``. Jobs sacct does not
        know yet are absent. Returns an empty dict if sacct fails.

    Example:
        >>> sacct_job_states(["12345"])
        {"12345": ("COMPLETED", 0)}
    """
    if not job_ids:
        return {}

    exit_code, stdout, stderr = run_cmd(
        [
            "sacct",
            "-n",
            "-P",
            "-j",
            ",".join(job_ids),
            "--format=JobIDRaw,State,ExitCode",
        ],
        timeout=timeout,
    )

    if exit_code != 0:
        logger.debug(f"sacct failed: {stderr}")
        return {}

    states: dict[str, tuple[str, int | None]] = {}
    for line in stdout.strip().split("\n"):
        if not line.strip():
            continue
        parts = line.split("|")
        if len(parts) < 3:
            continue
        job_id, state, code = parts[0], parts[1], parts[2]
        if _is_step_job(job_id):
            continue
        states[job_id] = (_normalize_slurm_state(state), _parse_exit_code(code))

    return states


# ---------------------------------------------------------------------------
# Script generation
# ---------------------------------------------------------------------------


def _sbatch_directives(config: SlurmConfig, job_name: str, job_dir: str) -> list[str]:
    """Build the #SBATCH header for one job."""
    lines = [
        f"#SBATCH --job-name={job_name}",
        f"#SBATCH --partition={config.partition}",
        f"#SBATCH --time={config.time}",
        f"#SBATCH --cpus-per-task={config.cpus}",
        f"#SBATCH --mem={config.memory}",
        f"#SBATCH --output={job_dir}/stdout.log",
        f"#SBATCH --error={job_dir}/stderr.log",
    ]

    if config.gpus > 0:
        lines.append(f"#SBATCH --gres=gpu:{config.gpus}")

    for key, value in config.extra_sbatch.items():
        # Convert underscores to hyphens for SLURM compatibility
        slurm_key = key.replace("_", "-")
        lines.append(f"#SBATCH --{slurm_key}={value}")

    return lines


def _setup_commands(config: SlurmConfig) -> list[str]:
    lines = [f"module load {module}" for module in config.modules]
    if config.conda_env:
        lines.append(f"conda activate {config.conda_env}")
    lines.extend(config.setup)
    return lines


# ---------------------------------------------------------------------------
# SlurmExecutor
# ---------------------------------------------------------------------------


def _grid_job_name(name: str) -> str:
    """Job name part of a GRID job id; never classified as LOCAL."""
    name = handle_safe_name(name)
    if name.startswith(LOCAL_HANDLE_PREFIX):
        return f"job-{name}"
    return name


class SlurmExecutor:
    """
    Executor submitting one job through sbatch.

    The job's wrapper script and logs live in ``<work_dir>/jobs/<job_id>/``.
    After submission the job is tracked by the GRID-family SlurmMonitor.
    """

    target: ClassVar[str] = TARGET_SLURM
    versions: ClassVar[tuple[str, ...]] = (VERSION_GRID,)

    def __init__(self, descriptor: JobDescriptor, context: ExecutorContext) -> None:
        self._descriptor = descriptor
        self._context = context
        self._config = SlurmConfig.from_dict(context.settings.backend(TARGET_SLURM))
        self._job_id = f"{_grid_job_name(descriptor.job_name)}-{uuid.uuid4().hex[:8]}"
        self._job_dir = context.settings.jobs_dir / self._job_id
        self._proxy: Proxy | None = None

    @property
    def job_id(self) -> str:
        return self._job_id

    @property
    def config(self) -> SlurmConfig:
        return self._config

    def pre_process(self) -> None:
        """Create the job directory (the script is written at submit time)."""
        self._job_dir.mkdir(parents=True, exist_ok=True)

    def set_user_proxy(self, proxy: Proxy) -> None:
        self._proxy = proxy

    def render_script(self, environment: dict[str, str] | None = None) -> str:
        """Render the sbatch script for this job."""
        job_dir = str(self._job_dir)
        return render_job_script(
            self._descriptor,
            job_dir=self._job_dir,
            output_dir=self._job_dir / "outputs",
            write_error_code=EXIT_GRID_WRITE_FAILED,
            header=_sbatch_directives(self._config, self._descriptor.job_name, job_dir),
            setup=_setup_commands(self._config),
            environment=environment,
        )

    def submit(self) -> str:
        """
        Submit the job with sbatch.

        Returns:
            Handle ``<jobId>--<slurmJobId>``.

        Raises:
            SubmissionError: If sbatch fails or its output cannot be parsed.
        """
        environment: dict[str, str] = {}
        if self._proxy is not None:
            environment["X509_USER_PROXY"] = str(self._proxy.init())

        script_path = write_job_script(self._job_dir, self.render_script(environment))

        exit_code, stdout, stderr = run_cmd(
            ["sbatch", str(script_path)],
            timeout=60.0,
            env=dict(os.environ),
        )
        if exit_code != 0:
            raise SubmissionError(f"sbatch failed with exit code {exit_code}:\n{stderr}")

        slurm_job_id = _parse_slurm_job_id(stdout)
        if not slurm_job_id:
            raise SubmissionError(f"Failed to parse job ID from sbatch output:\n{stdout}")

        handle = make_handle(self._job_id, slurm_job_id)

        from jobrelay.monitor.slurm import SlurmJob

        monitor = self._context.monitors.get_monitor(Family.GRID)
        monitor.add(
            SlurmJob(
                handle=handle,
                slurm_job_id=slurm_job_id,
                job_dir=self._job_dir,
                uploads=self._descriptor.uploads,
            )
        )

        logger.info(f"Submitted SLURM job {slurm_job_id} as {handle}")
        return handle
