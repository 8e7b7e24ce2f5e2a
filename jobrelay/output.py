"""
Output resolvers: Turn completion tokens into JobOutput values.

Provides:
- OutputResolver: Protocol for resolvers
- LocalOutputResolver: LOCAL family (write failures are local)
- GridOutputResolver: GRID family (write failures are grid-side)
- OutputResolverRegistry: family + monitor start time -> resolver

Exit status mapping follows the job wrapper (see executor.script):

    0 -> SUCCESS            1 -> ERROR_READ_GRID
    2 -> ERROR_WRITE_GRID   7 -> ERROR_WRITE_LOCAL
    other non-zero -> EXECUTION_FAILED

Backend states take precedence when no exit status is known:
CANCELLED -> EXECUTION_CANCELED, TIMEOUT -> EXECUTION_STALLED.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Protocol

from jobrelay.executor.script import (
    EXIT_GRID_WRITE_FAILED,
    EXIT_INPUT_FAILED,
    EXIT_LOCAL_WRITE_FAILED,
)
from jobrelay.types import CompletionToken, ExitCode, Family, JobOutput

logger = logging.getLogger(__name__)

_EXIT_STATUS = {
    0: ExitCode.SUCCESS,
    EXIT_INPUT_FAILED: ExitCode.ERROR_READ_GRID,
    EXIT_GRID_WRITE_FAILED: ExitCode.ERROR_WRITE_GRID,
    EXIT_LOCAL_WRITE_FAILED: ExitCode.ERROR_WRITE_LOCAL,
}

_STATES = {
    "CANCELLED": ExitCode.EXECUTION_CANCELED,
    "TIMEOUT": ExitCode.EXECUTION_STALLED,
    "DEADLINE": ExitCode.EXECUTION_STALLED,
    "PREEMPTED": ExitCode.EXECUTION_STALLED,
}


def classify(state: str, exit_code: int | None) -> ExitCode:
    """Classify a backend state and exit status."""
    state = state.upper()
    if state in _STATES:
        return _STATES[state]
    if exit_code is None:
        return ExitCode.EXECUTION_FAILED if state == "FAILED" else ExitCode.UNDEFINED
    return _EXIT_STATUS.get(exit_code, ExitCode.EXECUTION_FAILED)


class OutputResolver(Protocol):
    """Protocol for output resolvers."""

    def resolve(self, job_id: str, token: Any) -> JobOutput:
        """
        Resolve a completion token into a JobOutput keyed by *job_id*.

        Raises:
            TypeError: If the token is not understood.
        """
        ...


class _TokenResolver:
    """Resolver for CompletionToken-reporting backends."""

    family: Family

    def __init__(self, start_time: int) -> None:
        self._start_time = start_time

    @property
    def start_time(self) -> int:
        return self._start_time

    def resolve(self, job_id: str, token: Any) -> JobOutput:
        if not isinstance(token, CompletionToken):
            raise TypeError(
                f"{type(self).__name__} cannot resolve token of type {type(token).__name__}"
            )

        exit_code = classify(token.state, token.exit_code)
        finished_at = token.finished_at
        elapsed = max(0.0, finished_at.timestamp() - self._start_time)

        return JobOutput(
            job_id=job_id,
            exit_code=exit_code,
            raw_exit_code=token.exit_code,
            state=token.state,
            uploaded_results=self._uploaded(token, exit_code),
            stdout_path=token.stdout_path,
            stderr_path=token.stderr_path,
            finished_at=finished_at,
            elapsed_s=elapsed,
        )

    @staticmethod
    def _uploaded(token: CompletionToken, exit_code: ExitCode) -> tuple[str, ...]:
        """Declared uploads present in the output directory after success."""
        if exit_code != ExitCode.SUCCESS or not token.output_dir:
            return ()
        output_dir = Path(token.output_dir)
        results = []
        for name in token.uploads:
            path = output_dir / Path(name).name
            if path.exists():
                results.append(str(path))
            else:
                logger.warning(f"Declared upload {name!r} missing from {output_dir}")
        return tuple(results)


class LocalOutputResolver(_TokenResolver):
    family = Family.LOCAL


class GridOutputResolver(_TokenResolver):
    family = Family.GRID


ResolverFactory = Callable[[int], OutputResolver]


class OutputResolverRegistry:
    """
    Family -> resolver factory.

    Args:
        factories: Family -> factory overrides. A factory takes the family
            monitor's start time and returns a resolver.
    """

    def __init__(self, factories: dict[Family, ResolverFactory] | None = None) -> None:
        self._factories: dict[Family, ResolverFactory] = {
            Family.LOCAL: LocalOutputResolver,
            Family.GRID: GridOutputResolver,
            **(factories or {}),
        }

    def get_resolver(self, family: Family | str, start_time: int) -> OutputResolver:
        """
        Return a resolver for *family* anchored at *start_time*.

        Raises:
            KeyError: If no resolver is registered for the family.
        """
        return self._factories[Family(family)](start_time)
