"""
Core types for jobrelay (PUBLIC).

This module defines the data structures exchanged between the coordinator
and its collaborators:
- VariableCategory / EnvVariable / Release: release configuration entries
- JobDescriptor: immutable description of one job
- ExecutionTarget: (version, target) backend selection key
- Family: execution family (LOCAL or GRID) derived from a job handle
- CompletionToken: what a backend reports when a job finishes
- ExitCode / JobOutput: resolved, job-id-keyed result of a finished job
- JobStatus / JobRecord: persisted bookkeeping for submitted jobs
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

VERSION_GRID = "GRID"
VERSION_LOCAL = "LOCAL"
VERSIONS = (VERSION_GRID, VERSION_LOCAL)

TARGET_SLURM = "slurm"
TARGET_LOCAL = "local"

# Handle layout: "<jobId>--<backendSpecificSuffix>"
HANDLE_SEPARATOR = "--"
LOCAL_HANDLE_PREFIX = "Local-"

# Name of the SYSTEM configuration entry that overrides the target
GRID_TARGET_VARIABLE = "gridTarget"


class VariableCategory(str, Enum):
    """Category of a release configuration entry."""

    SYSTEM = "system"
    INFRASTRUCTURE = "infrastructure"
    USER = "user"


@dataclass(frozen=True)
class EnvVariable:
    """A named configuration entry attached to a release."""

    category: VariableCategory
    name: str
    value: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EnvVariable:
        return cls(
            category=VariableCategory(str(data.get("category", "user")).lower()),
            name=str(data["name"]),
            value=str(data.get("value", "")),
        )

    def to_dict(self) -> dict[str, str]:
        return {"category": self.category.value, "name": self.name, "value": self.value}


@dataclass(frozen=True)
class Release:
    """
    Release information for a job's executable.

    Attributes:
        name: Release name (informational).
        configurations: Configuration entries; SYSTEM entries tune execution.
    """

    name: str = ""
    configurations: tuple[EnvVariable, ...] = ()


@dataclass(frozen=True)
class JobDescriptor:
    """
    Immutable description of one job.

    Attributes:
        executable: Command or script to run.
        parameters: Arguments passed to the executable.
        release: Release carrying configuration entries.
        downloads: Input files staged into the job directory before running.
        uploads: Output files collected after a successful run.
        environment: Extra environment variables for the job.
        name: Human-readable job name. Defaults to the executable's stem.
    """

    executable: str
    parameters: tuple[str, ...] = ()
    release: Release = field(default_factory=Release)
    downloads: tuple[str, ...] = ()
    uploads: tuple[str, ...] = ()
    environment: dict[str, str] = field(default_factory=dict)
    name: str | None = None

    @property
    def job_name(self) -> str:
        """Name used when building job identifiers."""
        if self.name:
            return self.name
        return Path(self.executable).stem or "job"

    def system_value(self, name: str) -> str | None:
        """
        Return the value of a SYSTEM configuration entry.

        When the entry appears several times, the last occurrence wins.
        """
        value = None
        for variable in self.release.configurations:
            if variable.category == VariableCategory.SYSTEM and variable.name == name:
                value = variable.value
        return value

    @property
    def grid_target(self) -> str | None:
        """Per-job target override, if the release declares one."""
        return self.system_value(GRID_TARGET_VARIABLE)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobDescriptor:
        """
        Build a descriptor from a parsed JSON/TOML mapping.

        Raises:
            ValueError: If the mapping has no executable.
        """
        if not data.get("executable"):
            raise ValueError("Job descriptor requires an 'executable'")

        release_data = data.get("release", {}) or {}
        release = Release(
            name=str(release_data.get("name", "")),
            configurations=tuple(
                EnvVariable.from_dict(v) for v in release_data.get("configurations", [])
            ),
        )
        return cls(
            executable=str(data["executable"]),
            parameters=tuple(str(p) for p in data.get("parameters", [])),
            release=release,
            downloads=tuple(str(p) for p in data.get("downloads", [])),
            uploads=tuple(str(p) for p in data.get("uploads", [])),
            environment={str(k): str(v) for k, v in data.get("environment", {}).items()},
            name=data.get("name"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "executable": self.executable,
            "parameters": list(self.parameters),
            "release": {
                "name": self.release.name,
                "configurations": [v.to_dict() for v in self.release.configurations],
            },
            "downloads": list(self.downloads),
            "uploads": list(self.uploads),
            "environment": dict(self.environment),
            "name": self.name,
        }


@dataclass(frozen=True)
class ExecutionTarget:
    """
    Backend selection key.

    A per-job override replaces only the target component.
    """

    version: str
    target: str

    def override(self, target: str | None) -> ExecutionTarget:
        """Return a copy with *target* replaced, or self if *target* is empty."""
        if not target:
            return self
        return replace(self, target=target)

    def __str__(self) -> str:
        return f"{self.version}/{self.target}"


class Family(str, Enum):
    """Execution family owning a job handle's monitor and output resolver."""

    LOCAL = "LOCAL"
    GRID = "GRID"

    @classmethod
    def of_handle(cls, handle: str) -> Family:
        """Classify a job handle: a ``Local-`` prefix means LOCAL, else GRID."""
        return cls.LOCAL if handle.startswith(LOCAL_HANDLE_PREFIX) else cls.GRID


def handle_safe_name(name: str) -> str:
    """
    Make *name* safe to embed in a job id.

    Runs of dashes collapse to one and edge dashes are dropped, so the id
    never contains the ``--`` handle separator.
    """
    name = re.sub(r"-{2,}", "-", name).strip("-")
    return name or "job"


def job_id_of(handle: str) -> str:
    """Return the job id portion of a handle (left of the first ``--``)."""
    return handle.split(HANDLE_SEPARATOR, 1)[0]


def make_handle(job_id: str, suffix: str) -> str:
    """Build a handle from a job id and a backend-specific suffix."""
    return f"{job_id}{HANDLE_SEPARATOR}{suffix}"


@dataclass(frozen=True)
class CompletionToken:
    """
    Completion report for one finished job.

    Attributes:
        state: Backend terminal state (e.g. COMPLETED, FAILED, CANCELLED, TIMEOUT).
        exit_code: Numeric exit status of the job wrapper, if known.
        stdout_path: Path to the job's stdout log.
        stderr_path: Path to the job's stderr log.
        output_dir: Directory the job's uploads were copied to.
        uploads: Upload names the job declared.
        backend_id: Backend-specific identifier (SLURM job id, pid, ...).
        finished_at: When the backend observed completion.
    """

    state: str
    exit_code: int | None = None
    stdout_path: str | None = None
    stderr_path: str | None = None
    output_dir: str | None = None
    uploads: tuple[str, ...] = ()
    backend_id: str | None = None
    finished_at: datetime = field(default_factory=datetime.now)


class ExitCode(str, Enum):
    """Outcome classification of a finished job."""

    SUCCESS = "success"
    ERROR_READ_GRID = "error_read_grid"
    ERROR_WRITE_GRID = "error_write_grid"
    ERROR_WRITE_LOCAL = "error_write_local"
    EXECUTION_FAILED = "execution_failed"
    EXECUTION_CANCELED = "execution_canceled"
    EXECUTION_STALLED = "execution_stalled"
    UNDEFINED = "undefined"


@dataclass(frozen=True)
class JobOutput:
    """
    Resolved result of a finished job, keyed by job id.

    Attributes:
        job_id: Job id portion of the handle.
        exit_code: Classified outcome.
        raw_exit_code: Numeric exit status reported by the backend.
        state: Backend terminal state.
        uploaded_results: Paths of uploads present after the run.
        stdout_path: Path to the job's stdout log.
        stderr_path: Path to the job's stderr log.
        finished_at: When completion was observed.
        elapsed_s: Seconds between the family monitor's start and completion.
    """

    job_id: str
    exit_code: ExitCode
    raw_exit_code: int | None = None
    state: str = ""
    uploaded_results: tuple[str, ...] = ()
    stdout_path: str | None = None
    stderr_path: str | None = None
    finished_at: datetime | None = None
    elapsed_s: float | None = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == ExitCode.SUCCESS


class JobStatus(str, Enum):
    """Persisted lifecycle state of a job."""

    SUBMITTED = "submitted"
    FINISHED = "finished"


@dataclass
class JobRecord:
    """
    Persisted bookkeeping for one submitted job.

    Attributes:
        job_id: Job id portion of the handle.
        handle: Full job handle returned at submission.
        family: Execution family of the handle.
        version: Version component of the execution target.
        target: Target component actually used (after any override).
        status: Lifecycle state.
        submitted_at: When the job was submitted.
        finished_at: When the job's output was collected.
        exit_code: Classified outcome once finished.
        descriptor: Descriptor as a plain dict.
    """

    job_id: str
    handle: str
    family: Family
    version: str
    target: str
    status: JobStatus = JobStatus.SUBMITTED
    submitted_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None
    exit_code: ExitCode | None = None
    descriptor: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def submitted(
        cls,
        handle: str,
        target: ExecutionTarget,
        descriptor: JobDescriptor,
    ) -> JobRecord:
        """Factory method for a freshly submitted job."""
        return cls(
            job_id=job_id_of(handle),
            handle=handle,
            family=Family.of_handle(handle),
            version=target.version,
            target=target.target,
            descriptor=descriptor.to_dict(),
        )

    def finish(self, output: JobOutput) -> JobRecord:
        """Return a copy marked finished with *output*'s outcome."""
        return replace(
            self,
            status=JobStatus.FINISHED,
            finished_at=output.finished_at or datetime.now(),
            exit_code=output.exit_code,
        )
