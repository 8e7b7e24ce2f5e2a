"""
LocalMonitor: Runs LOCAL-family jobs in a thread pool.

Each job's wrapper script runs in a subprocess; when it exits the monitor
reports ``{handle: CompletionToken}`` through its report callback.
"""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from jobrelay.types import CompletionToken

if TYPE_CHECKING:
    from jobrelay.monitor.base import ReportCallback

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalJob:
    """
    A LOCAL job ready to run.

    Attributes:
        handle: Job handle reported on completion.
        script: Wrapper script to execute.
        job_dir: Working directory (logs are written here).
        output_dir: Where the wrapper copies uploads.
        uploads: Declared upload names.
        env: Full environment for the subprocess.
    """

    handle: str
    script: Path
    job_dir: Path
    output_dir: Path
    uploads: tuple[str, ...] = ()
    env: dict[str, str] | None = None


class LocalMonitor:
    """
    Monitor executing LOCAL jobs on a ThreadPoolExecutor.

    Since workers share the process, completion is reported directly from
    the worker thread; no polling is needed.
    """

    def __init__(self, report: ReportCallback, workers: int = 4) -> None:
        """
        Initialize the local monitor.

        Args:
            report: Callback receiving ``{handle: token}``.
            workers: Maximum number of concurrently running jobs.
        """
        self._report = report
        self._workers = workers
        self._start_time = int(time.time())
        self._pool: ThreadPoolExecutor | None = None
        self._running: dict[str, Future[CompletionToken]] = {}
        self._lock = threading.Lock()
        self._terminated = False

    @property
    def start_time(self) -> int:
        return self._start_time

    @property
    def running(self) -> list[str]:
        """Handles of jobs not finished yet."""
        with self._lock:
            return list(self._running)

    def start(self) -> None:
        with self._lock:
            if self._terminated:
                raise RuntimeError("LocalMonitor has been terminated")
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self._workers, thread_name_prefix="jobrelay-local"
                )

    def add(self, job: LocalJob) -> None:
        """Queue *job* for execution."""
        self.start()
        with self._lock:
            if self._pool is None:
                raise RuntimeError("LocalMonitor has been terminated")
            future = self._pool.submit(self._execute, job)
            self._running[job.handle] = future
        future.add_done_callback(lambda f: self._on_done(job, f))
        logger.debug("Queued local job %s", job.handle)

    def _execute(self, job: LocalJob) -> CompletionToken:
        """Run one wrapper script to completion."""
        stdout_path = job.job_dir / "stdout.log"
        stderr_path = job.job_dir / "stderr.log"

        with open(stdout_path, "wb") as out, open(stderr_path, "wb") as err:
            process = subprocess.Popen(
                ["/bin/bash", str(job.script)],
                cwd=job.job_dir,
                stdout=out,
                stderr=err,
                env=job.env,
            )
            exit_code = process.wait()

        return CompletionToken(
            state="COMPLETED" if exit_code == 0 else "FAILED",
            exit_code=exit_code,
            stdout_path=str(stdout_path),
            stderr_path=str(stderr_path),
            output_dir=str(job.output_dir),
            uploads=job.uploads,
            backend_id=str(process.pid),
            finished_at=datetime.now(),
        )

    def _on_done(self, job: LocalJob, future: Future[CompletionToken]) -> None:
        with self._lock:
            self._running.pop(job.handle, None)

        if future.cancelled():
            token = CompletionToken(
                state="CANCELLED",
                output_dir=str(job.output_dir),
                uploads=job.uploads,
            )
        else:
            error = future.exception()
            if error is None:
                token = future.result()
            else:
                logger.warning(f"Local job {job.handle} could not run: {error}")
                token = CompletionToken(
                    state="FAILED",
                    output_dir=str(job.output_dir),
                    uploads=job.uploads,
                )

        logger.info("Local job %s finished (%s)", job.handle, token.state)
        self._report({job.handle: token})

    def terminate(self) -> None:
        """Stop accepting jobs and cancel queued ones."""
        with self._lock:
            self._terminated = True
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=False, cancel_futures=True)
