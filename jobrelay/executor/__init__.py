"""
Executor module: Pluggable execution backends.

Provides:

- Executor: Protocol for execution backends
- ExecutorContext: Settings and monitors handed to executors
- ExecutorRegistry: (version, target) -> Executor selection
- LocalExecutor: Local execution (LOCAL family)
- SlurmExecutor: SLURM batch execution (GRID family)
- SlurmConfig: SLURM job parameters
"""

from jobrelay.executor.base import Executor, ExecutorContext
from jobrelay.executor.local import LocalExecutor
from jobrelay.executor.registry import ExecutorRegistry
from jobrelay.executor.slurm import SlurmConfig, SlurmExecutor

__all__ = [
    "Executor",
    "ExecutorContext",
    "ExecutorRegistry",
    "LocalExecutor",
    "SlurmConfig",
    "SlurmExecutor",
]
