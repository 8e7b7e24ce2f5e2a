"""
Executor protocol: Backend-agnostic submission interface.

An Executor is bound to one JobDescriptor. The coordinator drives it as:

    executor.pre_process()
    executor.set_user_proxy(proxy)   # only when credentials were supplied
    handle = executor.submit()

Backends:
- LocalExecutor: runs the job on this host (LOCAL family handles)
- SlurmExecutor: submits the job with sbatch (GRID family handles)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from jobrelay.config import Settings
    from jobrelay.monitor.base import MonitorRegistry
    from jobrelay.proxy import Proxy


@dataclass(frozen=True)
class ExecutorContext:
    """
    What an executor needs beyond its descriptor.

    Attributes:
        settings: Loaded configuration (work dir, backend options).
        monitors: Registry used to hand submitted jobs to their monitor.
    """

    settings: Settings
    monitors: MonitorRegistry


class Executor(Protocol):
    """
    Protocol for execution backends.

    Executors may raise SubmissionError (or any exception) from any step;
    the coordinator surfaces failures to the caller without retrying.
    """

    def pre_process(self) -> None:
        """Prepare the job (directories, scripts) before submission."""
        ...

    def set_user_proxy(self, proxy: Proxy) -> None:
        """Attach a delegated proxy the job should run with."""
        ...

    def submit(self) -> str:
        """
        Submit the job.

        Returns:
            The job handle, ``"<jobId>--<suffix>"``.
        """
        ...
