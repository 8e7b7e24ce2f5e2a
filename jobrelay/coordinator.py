"""
Coordinator: Dispatches jobs to backends and collects their completions.

The Coordinator:

1. Resolves the execution target of a job (default or ``gridTarget`` override)
2. Delegates a user proxy when credentials are supplied
3. Hands the job to the executor selected for (version, target)
4. Collects ``{handle: token}`` completions reported by monitors
5. Wakes the registered client (via the CompletionNotifier) when completions
   are pending, and resolves them into JobOutputs on request

Client protocol:

    client = Client()
    coordinator = get_instance()
    coordinator.submit(client, descriptor)
    while waiting_for_more:
        client.wait()
        for output in coordinator.get_finished_jobs():
            ...
        coordinator.wait_for_notification()

get_instance() keeps one coordinator per process; the first call wins and
later arguments are ignored. Coordinators can also be constructed directly
with injected collaborators.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Mapping

from jobrelay.config import Settings, setup_configuration
from jobrelay.errors import ConfigurationError, ResolutionError, SubmissionError
from jobrelay.events import Event, EventCallback, emit_event
from jobrelay.executor.base import ExecutorContext
from jobrelay.executor.registry import ExecutorRegistry
from jobrelay.logs import configure_logging
from jobrelay.monitor.base import MonitorRegistry
from jobrelay.output import OutputResolverRegistry
from jobrelay.proxy import delegate, init_security
from jobrelay.store.locator import create_store
from jobrelay.types import (
    VERSIONS,
    ExecutionTarget,
    Family,
    JobOutput,
    JobRecord,
    job_id_of,
)

if TYPE_CHECKING:
    from pathlib import Path

    from jobrelay.proxy import GridUserCredentials, MyproxyServer, VomsServer
    from jobrelay.store.base import JobStore
    from jobrelay.types import JobDescriptor

logger = logging.getLogger(__name__)


class Client:
    """
    Wake-up latch owned by the party collecting results.

    wake() may be called before wait(); the wake-up is kept until consumed.
    """

    def __init__(self, name: str = "client") -> None:
        self.name = name
        self._cond = threading.Condition()
        self._woken = False

    def __repr__(self) -> str:
        return f"Client({self.name!r})"

    @property
    def woken(self) -> bool:
        with self._cond:
            return self._woken

    def wake(self) -> None:
        with self._cond:
            self._woken = True
            self._cond.notify_all()

    def wait(self, timeout: float | None = None) -> bool:
        """
        Block until woken.

        Args:
            timeout: Maximum seconds to wait (None waits forever).

        Returns:
            True if woken, False on timeout. The latch is reset either way.
        """
        with self._cond:
            woken = self._cond.wait_for(lambda: self._woken, timeout)
            self._woken = False
            return woken


class CompletionNotifier(threading.Thread):
    """
    Background thread waking the client while completions are pending.

    Each cycle waits *interval* seconds, then asks the coordinator whether a
    wake-up is due (completions pending and no drain in progress). The wait
    ends early when stop() is called.
    """

    def __init__(self, coordinator: Coordinator, interval: float) -> None:
        super().__init__(name="jobrelay-notifier", daemon=True)
        self._coordinator = coordinator
        self._interval = interval
        self._stop_event = threading.Event()

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def run(self) -> None:
        logger.debug("Completion notifier started (interval=%ss)", self._interval)
        while not self._stop_event.wait(self._interval):
            try:
                self.poll()
            except Exception:
                logger.exception("Completion notifier poll failed")
        logger.debug("Completion notifier stopped")

    def poll(self) -> bool:
        """
        Run one notification check.

        Returns:
            True if the client was woken.
        """
        if self._stop_event.is_set():
            return False
        client, pending = self._coordinator._due_notification()
        if client is None:
            return False
        client.wake()
        logger.debug("Woke %r (%d finished job(s) pending)", client, pending)
        emit_event(self._coordinator._on_event, Event.client_notified(pending))
        return True

    def stop(self) -> None:
        self._stop_event.set()


class Coordinator:
    """
    Job coordinator.

    All public operations are serialized by one coordinator-wide lock,
    including output resolution in get_finished_jobs().

    Args:
        version: Default version ("GRID" or "LOCAL"). Defaults to the
            configured ``coordinator.version``.
        target: Default target name. Defaults to ``coordinator.target``.
        settings: Pre-built settings; loaded from ``.jobrelay.toml`` otherwise.
        executors: Executor selector (defaults to ExecutorRegistry).
        monitors: Monitor registry (defaults to one reporting to this coordinator).
        outputs: Output resolver registry.
        store: Job store (defaults to ``create_store(settings.store_locator)``).
        on_event: Optional lifecycle event callback.
        notify_interval: Notifier poll interval in seconds.
        start_dir: Where to start searching for the config file.

    Raises:
        ConfigurationError: If configuration or store setup fails.
    """

    def __init__(
        self,
        version: str | None = None,
        target: str | None = None,
        *,
        settings: Settings | None = None,
        executors: ExecutorRegistry | None = None,
        monitors: MonitorRegistry | None = None,
        outputs: OutputResolverRegistry | None = None,
        store: JobStore | None = None,
        on_event: EventCallback | None = None,
        notify_interval: float | None = None,
        start_dir: Path | None = None,
    ) -> None:
        settings = setup_configuration(start_dir=start_dir, settings=settings)
        configure_logging(settings.logging.level, settings.logging.file)
        try:
            init_security(settings)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Failed to initialise security: {e}") from e

        default = settings.default_target
        self._target = ExecutionTarget(
            (version or default.version).upper(),
            target or default.target,
        )
        if self._target.version not in VERSIONS:
            raise ConfigurationError(
                f"Unknown version {self._target.version!r}. Expected one of {VERSIONS}"
            )

        self._settings = settings
        self._lock = threading.RLock()
        self._finished: dict[str, Any] = {}
        self._draining = False
        self._client: Client | None = None
        self._terminated = False
        self._on_event = on_event

        self._monitors = monitors or MonitorRegistry(self.add_finished_job, settings)
        self._executors = executors or ExecutorRegistry(
            ExecutorContext(settings, self._monitors)
        )
        self._outputs = outputs or OutputResolverRegistry()

        if store is None:
            try:
                store = create_store(settings.store_locator)
            except (OSError, ValueError, ImportError) as e:
                raise ConfigurationError(
                    f"Failed to open store {settings.store_locator!r}: {e}"
                ) from e
        self._store = store

        self._notifier = CompletionNotifier(
            self, notify_interval or settings.notify_interval
        )
        self._notifier.start()

        logger.info(f"Coordinator started with default target {self._target}")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def target(self) -> ExecutionTarget:
        return self._target

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def client(self) -> Client | None:
        return self._client

    @property
    def notifier(self) -> CompletionNotifier:
        return self._notifier

    @property
    def draining(self) -> bool:
        with self._lock:
            return self._draining

    @property
    def pending(self) -> int:
        """Number of finished jobs waiting to be collected."""
        with self._lock:
            return len(self._finished)

    @property
    def terminated(self) -> bool:
        return self._terminated

    # =========================================================================
    # Submission
    # =========================================================================

    def submit(
        self,
        client: Client,
        descriptor: JobDescriptor,
        credentials: GridUserCredentials | None = None,
        myproxy_server: MyproxyServer | None = None,
        voms_server: VomsServer | None = None,
    ) -> str:
        """
        Submit one job.

        The first client passed is registered for notifications; later
        clients are not.

        Args:
            client: Party to wake when completions are pending.
            descriptor: The job.
            credentials: User credentials; a proxy is delegated only if given.
            myproxy_server: MyProxy server (defaults to the configured one).
            voms_server: VOMS server (defaults to the configured one).

        Returns:
            The job handle.

        Raises:
            SubmissionError: If the executor cannot be created, prepared or
                submitted. Nothing is retried.
        """
        with self._lock:
            if self._terminated:
                raise SubmissionError("Coordinator has been terminated")

            if self._client is None:
                self._client = client
            elif client is not self._client:
                logger.debug("Ignoring client %r; %r is registered", client, self._client)

            target = self._target.override(descriptor.grid_target)
            if target != self._target:
                logger.info(f"Job {descriptor.job_name} routed to {target} by gridTarget")

            try:
                executor = self._executors.get_executor(
                    target.version, target.target, descriptor
                )
                executor.pre_process()
                if credentials is not None:
                    executor.set_user_proxy(
                        delegate(credentials, myproxy_server, voms_server)
                    )
                handle = executor.submit()
            except SubmissionError:
                raise
            except Exception as e:
                raise SubmissionError(
                    f"Failed to submit {descriptor.job_name} to {target}: {e}"
                ) from e

            try:
                self._store.put_job(JobRecord.submitted(handle, target, descriptor))
            except Exception as e:
                logger.warning(f"Failed to record job {handle}: {e}")

        logger.info(f"Submitted {handle} to {target}")
        emit_event(self._on_event, Event.job_submitted(handle, str(target)))
        return handle

    # =========================================================================
    # Completion bookkeeping
    # =========================================================================

    def add_finished_job(self, finished: Mapping[str, Any]) -> None:
        """
        Merge completions reported by a backend.

        A handle reported again before being collected keeps the latest token.

        Args:
            finished: ``{handle: completion token}``.
        """
        if not finished:
            return
        with self._lock:
            for handle, token in finished.items():
                previous = self._finished.get(handle)
                if previous is not None and previous != token:
                    logger.warning(f"Finished job {handle} reported twice; keeping latest")
                self._finished[handle] = token
        logger.debug("Recorded %d finished job(s)", len(finished))
        emit_event(self._on_event, Event.jobs_reported(list(finished)))

    def get_finished_jobs(self) -> list[JobOutput]:
        """
        Resolve and remove every pending completion.

        Marks the coordinator as draining; the flag stays set until
        wait_for_notification() is called.

        Returns:
            One JobOutput per collected handle, keyed by job id. Order is
            not specified.

        Raises:
            ResolutionError: If any entry fails to resolve. No entry is
                removed in that case.
        """
        with self._lock:
            self._draining = True
            pending = dict(self._finished)

            outputs: list[JobOutput] = []
            for handle, token in pending.items():
                try:
                    outputs.append(self._resolve(handle, token))
                except Exception as e:
                    raise ResolutionError(
                        handle, f"Failed to resolve {handle}: {e}"
                    ) from e

            for handle in pending:
                del self._finished[handle]

            for handle, output in zip(pending, outputs):
                self._record_finished(handle, output)

        if pending:
            logger.info(f"Collected {len(outputs)} finished job(s)")
            emit_event(self._on_event, Event.jobs_drained(list(pending)))
        return outputs

    def _resolve(self, handle: str, token: Any) -> JobOutput:
        family = Family.of_handle(handle)
        monitor = self._monitors.get_monitor(family)
        resolver = self._outputs.get_resolver(family, monitor.start_time)
        return resolver.resolve(job_id_of(handle), token)

    def _record_finished(self, handle: str, output: JobOutput) -> None:
        try:
            record = self._store.get_job(output.job_id)
            if record is None:
                record = JobRecord(
                    job_id=output.job_id,
                    handle=handle,
                    family=Family.of_handle(handle),
                    version=self._target.version,
                    target="",
                )
            self._store.put_job(record.finish(output))
        except Exception as e:
            logger.warning(f"Failed to record completion of {handle}: {e}")

    def wait_for_notification(self) -> None:
        """Clear the draining flag so the client can be woken again."""
        with self._lock:
            self._draining = False

    def _due_notification(self) -> tuple[Client | None, int]:
        """Client to wake now, if any, and the number of pending jobs."""
        with self._lock:
            if self._terminated or self._draining or not self._finished:
                return None, 0
            return self._client, len(self._finished)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def terminate(self) -> None:
        """
        Stop monitors and the notifier, and close the store.

        Safe to call more than once. Releases the process-wide slot held by
        get_instance().
        """
        with self._lock:
            if self._terminated:
                return
            self._terminated = True

        self._monitors.terminate()

        self._notifier.stop()
        if self._notifier is not threading.current_thread():
            self._notifier.join()

        try:
            self._store.close()
        except Exception:
            logger.exception("Failed to close store")

        _release(self)
        logger.info("Coordinator terminated")

    def __enter__(self) -> Coordinator:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.terminate()


# =============================================================================
# Process-wide instance
# =============================================================================

_instance: Coordinator | None = None
_instance_lock = threading.Lock()


def get_instance(
    version: str | None = None,
    target: str | None = None,
    **kwargs: Any,
) -> Coordinator:
    """
    Return the process-wide coordinator, creating it on first call.

    The first call wins: once a coordinator exists, *version*, *target* and
    any keyword arguments are ignored. After terminate(), the next call
    creates a fresh coordinator.

    Raises:
        ConfigurationError: If the first construction fails.
    """
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = Coordinator(version, target, **kwargs)
        elif version or target or kwargs:
            logger.debug(
                "Coordinator already running with %s; ignoring arguments",
                _instance.target,
            )
        return _instance


def _release(coordinator: Coordinator) -> None:
    global _instance
    with _instance_lock:
        if _instance is coordinator:
            _instance = None
