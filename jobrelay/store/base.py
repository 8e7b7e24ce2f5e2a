"""
JobStore protocol: Backend-agnostic persistence of job records.

Stores keep one JobRecord per job id. Writes are idempotent: putting a
record for an existing job id replaces it.

Backend implementations:
- Filesystem (FileStore)
- PostgreSQL (PostgresStore)
"""

from __future__ import annotations

from typing import Protocol

from jobrelay.types import JobRecord, JobStatus


class JobStore(Protocol):
    """
    Protocol for job record storage backends.

    Implementations must provide atomic writes and handle concurrent
    access safely.
    """

    def put_job(self, record: JobRecord) -> None:
        """
        Persist a job record, replacing any record with the same job id.

        Args:
            record: The JobRecord to store.
        """
        ...

    def get_job(self, job_id: str) -> JobRecord | None:
        """
        Retrieve a job record by job id.

        Returns:
            The JobRecord, or None if not found.
        """
        ...

    def list_jobs(self, status: JobStatus | None = None) -> list[JobRecord]:
        """
        List job records, optionally filtered by status.

        Returns:
            Records ordered by submission time (oldest first).
        """
        ...

    def close(self) -> None:
        """Release any resources held by the store."""
        ...
