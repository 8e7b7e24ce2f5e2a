"""
LocalExecutor: Runs jobs on this host.

Jobs are handed to the LOCAL-family LocalMonitor, which executes the
wrapper script in its thread pool. Handles have the form
``Local-<name>-<hex8>--<epochSeconds>`` so they classify as LOCAL.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from typing import TYPE_CHECKING, ClassVar

from jobrelay.executor.script import (
    EXIT_LOCAL_WRITE_FAILED,
    render_job_script,
    write_job_script,
)
from jobrelay.monitor.local import LocalJob
from jobrelay.types import (
    LOCAL_HANDLE_PREFIX,
    TARGET_LOCAL,
    VERSION_GRID,
    VERSION_LOCAL,
    Family,
    handle_safe_name,
    make_handle,
)

if TYPE_CHECKING:
    from pathlib import Path

    from jobrelay.executor.base import ExecutorContext
    from jobrelay.proxy import Proxy
    from jobrelay.types import JobDescriptor

logger = logging.getLogger(__name__)


class LocalExecutor:
    """
    Executor running one job on the local machine.

    Serves both versions: a GRID-version coordinator may route single jobs
    to ``local`` through a ``gridTarget`` override.
    """

    target: ClassVar[str] = TARGET_LOCAL
    versions: ClassVar[tuple[str, ...]] = (VERSION_LOCAL, VERSION_GRID)

    def __init__(self, descriptor: JobDescriptor, context: ExecutorContext) -> None:
        self._descriptor = descriptor
        self._context = context
        self._job_id = (
            f"{LOCAL_HANDLE_PREFIX}{handle_safe_name(descriptor.job_name)}-{uuid.uuid4().hex[:8]}"
        )
        self._job_dir = context.settings.jobs_dir / self._job_id
        self._proxy: Proxy | None = None
        self._script: Path | None = None

    @property
    def job_id(self) -> str:
        return self._job_id

    @property
    def job_dir(self) -> Path:
        return self._job_dir

    def pre_process(self) -> None:
        """Create the job directory and write the wrapper script."""
        content = render_job_script(
            self._descriptor,
            job_dir=self._job_dir,
            output_dir=self._job_dir / "outputs",
            write_error_code=EXIT_LOCAL_WRITE_FAILED,
        )
        self._script = write_job_script(self._job_dir, content)

    def set_user_proxy(self, proxy: Proxy) -> None:
        self._proxy = proxy

    def submit(self) -> str:
        """
        Queue the job on the LOCAL monitor.

        Returns:
            Handle ``<jobId>--<epochSeconds>``.

        Raises:
            RuntimeError: If pre_process() was not called.
        """
        if self._script is None:
            raise RuntimeError("LocalExecutor.submit() called before pre_process()")

        env = dict(os.environ)
        if self._proxy is not None:
            env["X509_USER_PROXY"] = str(self._proxy.init())

        handle = make_handle(self._job_id, str(int(time.time())))
        monitor = self._context.monitors.get_monitor(Family.LOCAL)
        monitor.add(
            LocalJob(
                handle=handle,
                script=self._script,
                job_dir=self._job_dir,
                output_dir=self._job_dir / "outputs",
                uploads=self._descriptor.uploads,
                env=env,
            )
        )

        logger.info(f"Submitted local job {handle}")
        return handle
