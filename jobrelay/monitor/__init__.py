"""
Monitor module: Per-family tracking of running jobs.

Provides:

- Monitor: Protocol for monitors
- MonitorRegistry: One lazily started monitor per family
- LocalMonitor / LocalJob: Thread-pool execution of LOCAL jobs
- SlurmMonitor / SlurmJob: sacct polling of GRID jobs
"""

from jobrelay.monitor.base import Monitor, MonitorRegistry, ReportCallback
from jobrelay.monitor.local import LocalJob, LocalMonitor
from jobrelay.monitor.slurm import SlurmJob, SlurmMonitor

__all__ = [
    "Monitor",
    "MonitorRegistry",
    "ReportCallback",
    "LocalJob",
    "LocalMonitor",
    "SlurmJob",
    "SlurmMonitor",
]
