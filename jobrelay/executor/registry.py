"""
ExecutorRegistry: (version, target) -> Executor selection.

Built-in backends are always available. Additional backends are discovered
via ``jobrelay.executors`` entry points, each mapping a target name to an
executor class exposing:

- target: ClassVar[str]
- versions: ClassVar[tuple[str, ...]]
- __init__(descriptor, context)

Example:
    registry = ExecutorRegistry(ExecutorContext(settings, monitors))
    executor = registry.get_executor("GRID", "slurm", descriptor)
"""

from __future__ import annotations

import importlib
import logging
import threading
from importlib.metadata import entry_points
from typing import TYPE_CHECKING, Any, ClassVar

from jobrelay.errors import SubmissionError

if TYPE_CHECKING:
    from jobrelay.executor.base import Executor, ExecutorContext
    from jobrelay.types import JobDescriptor

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "jobrelay.executors"

_BUILTIN: dict[str, str] = {
    "local": "jobrelay.executor.local:LocalExecutor",
    "slurm": "jobrelay.executor.slurm:SlurmExecutor",
}


def _load_ref(ref: str) -> type:
    module_name, _, attr = ref.partition(":")
    return getattr(importlib.import_module(module_name), attr)


class ExecutorRegistry:
    """
    Registry mapping target names to executor classes.

    Class-level registrations are shared by all instances; each instance
    carries the ExecutorContext handed to the executors it creates.
    """

    _classes: ClassVar[dict[str, type]] = {}
    _loaded: ClassVar[bool] = False
    _loading: ClassVar[bool] = False
    _load_lock = threading.RLock()

    def __init__(self, context: ExecutorContext) -> None:
        self._context = context

    @classmethod
    def _ensure_loaded(cls) -> None:
        """
        Load built-in and entry-point backends (once).

        Other threads block until loading finishes. A plug-in calling
        register() while being loaded re-enters on the same thread and
        returns early.
        """
        if cls._loaded:
            return
        with cls._load_lock:
            if cls._loaded or cls._loading:
                return
            cls._loading = True
            try:
                for name, ref in _BUILTIN.items():
                    cls._classes.setdefault(name, _load_ref(ref))
                for ep in entry_points(group=ENTRY_POINT_GROUP):
                    if ep.name in cls._classes:
                        continue
                    try:
                        cls._classes[ep.name] = ep.load()
                    except Exception:  # noqa: BLE001
                        logger.debug(
                            "Failed to load executor entry point %r", ep.name, exc_info=True
                        )
                cls._loaded = True
            finally:
                cls._loading = False

    @classmethod
    def register(cls, executor_class: Any) -> Any:
        """Register an executor class under its ``target``. Usable as a decorator."""
        cls._ensure_loaded()
        cls._classes[executor_class.target] = executor_class
        return executor_class

    @classmethod
    def lookup(cls, target: str) -> type | None:
        """Get the executor class for a target name."""
        cls._ensure_loaded()
        return cls._classes.get(target)

    @classmethod
    def targets(cls) -> list[str]:
        """List all registered target names."""
        cls._ensure_loaded()
        return sorted(cls._classes)

    @property
    def context(self) -> ExecutorContext:
        return self._context

    def get_executor(
        self,
        version: str,
        target: str,
        descriptor: JobDescriptor,
    ) -> Executor:
        """
        Create the executor for *(version, target)* bound to *descriptor*.

        Raises:
            SubmissionError: If no backend serves the target or the backend
                does not support the version.
        """
        executor_class = self.lookup(target)
        if executor_class is None:
            raise SubmissionError(
                f"Unknown execution target: {target!r}. Available: {self.targets()}"
            )
        versions = getattr(executor_class, "versions", ())
        if versions and version not in versions:
            raise SubmissionError(
                f"Target {target!r} does not support version {version!r} "
                f"(supported: {list(versions)})"
            )
        return executor_class(descriptor, self._context)
