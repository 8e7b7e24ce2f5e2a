"""
SlurmMonitor: Polls sacct for GRID-family jobs.

Job state tracking:
- Jobs are registered by SlurmExecutor right after sbatch succeeds
- A background thread queries sacct every poll interval
- Jobs that reached a terminal state are reported in one batch per poll
- Jobs sacct does not know yet (still pending registration) stay tracked
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from jobrelay.executor.slurm import TERMINAL_STATES, sacct_job_states
from jobrelay.types import CompletionToken

if TYPE_CHECKING:
    from jobrelay.monitor.base import ReportCallback

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 30.0


@dataclass(frozen=True)
class SlurmJob:
    """A submitted SLURM job tracked until it finishes."""

    handle: str
    slurm_job_id: str
    job_dir: Path
    uploads: tuple[str, ...] = ()


class SlurmMonitor:
    """
    Monitor tracking SLURM jobs through sacct polling.

    Args:
        report: Callback receiving ``{handle: token}`` batches.
        poll_interval: Seconds between sacct queries.
    """

    def __init__(
        self,
        report: ReportCallback,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._report = report
        self._poll_interval = poll_interval
        self._start_time = int(time.time())
        self._jobs: dict[str, SlurmJob] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def start_time(self) -> int:
        return self._start_time

    @property
    def tracked(self) -> list[str]:
        """Handles of jobs not reported yet."""
        with self._lock:
            return [job.handle for job in self._jobs.values()]

    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._run, name="jobrelay-slurm-monitor", daemon=True
            )
            self._thread.start()

    def add(self, job: SlurmJob) -> None:
        """Track *job* until sacct reports a terminal state."""
        with self._lock:
            self._jobs[job.slurm_job_id] = job

    def _run(self) -> None:
        while not self._stop_event.wait(self._poll_interval):
            try:
                self.poll()
            except Exception:
                logger.exception("SLURM monitor poll failed")

    def poll(self) -> int:
        """
        Query sacct once and report finished jobs.

        Returns:
            Number of jobs reported.
        """
        with self._lock:
            job_ids = list(self._jobs)
        if not job_ids:
            return 0

        states = sacct_job_states(job_ids)
        finished: dict[str, CompletionToken] = {}
        with self._lock:
            for slurm_job_id, (state, exit_code) in states.items():
                if state not in TERMINAL_STATES:
                    continue
                job = self._jobs.pop(slurm_job_id, None)
                if job is None:
                    continue
                finished[job.handle] = CompletionToken(
                    state=state,
                    exit_code=exit_code,
                    stdout_path=str(job.job_dir / "stdout.log"),
                    stderr_path=str(job.job_dir / "stderr.log"),
                    output_dir=str(job.job_dir / "outputs"),
                    uploads=job.uploads,
                    backend_id=slurm_job_id,
                    finished_at=datetime.now(),
                )

        if finished:
            logger.info("SLURM monitor reporting %d finished job(s)", len(finished))
            self._report(finished)
        return len(finished)

    def terminate(self) -> None:
        """Stop polling. Running SLURM jobs are left alone."""
        self._stop_event.set()
        with self._lock:
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5.0)
