"""
Monitor protocol and MonitorRegistry.

A Monitor tracks running jobs of one execution family and reports finished
ones back through a ``report`` callback (the coordinator's
``add_finished_job``). Each monitor exposes the epoch second it started at,
which output resolvers use as their reference time.

The registry creates at most one monitor per family, lazily, and stops all
of them on terminate().
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Callable, Protocol

from jobrelay.types import Family

if TYPE_CHECKING:
    from jobrelay.config import Settings

logger = logging.getLogger(__name__)

# Callback a monitor uses to report {handle: completion token}
ReportCallback = Callable[[dict[str, Any]], None]

MonitorFactory = Callable[[ReportCallback, "Settings"], "Monitor"]


class Monitor(Protocol):
    """Protocol for per-family job monitors."""

    @property
    def start_time(self) -> int:
        """Epoch second at which this monitor started."""
        ...

    def start(self) -> None:
        """Start background tracking (idempotent)."""
        ...

    def terminate(self) -> None:
        """Stop tracking and release resources."""
        ...


def _local_monitor(report: ReportCallback, settings: Settings) -> Monitor:
    from jobrelay.monitor.local import LocalMonitor

    return LocalMonitor(report, workers=int(settings.backend("local").get("workers", 4)))


def _slurm_monitor(report: ReportCallback, settings: Settings) -> Monitor:
    from jobrelay.monitor.slurm import SlurmMonitor

    return SlurmMonitor(
        report,
        poll_interval=float(settings.backend("slurm").get("poll_interval", 30.0)),
    )


DEFAULT_FACTORIES: dict[Family, MonitorFactory] = {
    Family.LOCAL: _local_monitor,
    Family.GRID: _slurm_monitor,
}


class MonitorRegistry:
    """
    One monitor per execution family.

    Args:
        report: Callback receiving ``{handle: token}`` batches.
        settings: Loaded configuration passed to monitor factories.
        factories: Family -> factory overrides (defaults: LocalMonitor, SlurmMonitor).
    """

    def __init__(
        self,
        report: ReportCallback,
        settings: Settings,
        factories: dict[Family, MonitorFactory] | None = None,
    ) -> None:
        self._report = report
        self._settings = settings
        self._factories = {**DEFAULT_FACTORIES, **(factories or {})}
        self._monitors: dict[Family, Monitor] = {}
        self._lock = threading.Lock()
        self._terminated = False

    def get_monitor(self, family: Family | str) -> Monitor:
        """
        Return the monitor for *family*, creating and starting it if needed.

        Raises:
            KeyError: If no factory is registered for the family.
            RuntimeError: If the registry has been terminated.
        """
        family = Family(family)
        with self._lock:
            monitor = self._monitors.get(family)
            if monitor is not None:
                return monitor
            if self._terminated:
                raise RuntimeError("MonitorRegistry has been terminated")
            monitor = self._factories[family](self._report, self._settings)
            monitor.start()
            self._monitors[family] = monitor
            logger.debug("Started %s monitor", family.value)
            return monitor

    def terminate(self) -> None:
        """Stop every monitor created so far."""
        with self._lock:
            self._terminated = True
            monitors = list(self._monitors.items())
        for family, monitor in monitors:
            try:
                monitor.terminate()
            except Exception:
                logger.exception("Failed to stop %s monitor", family.value)
