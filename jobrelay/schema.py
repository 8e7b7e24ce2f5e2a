"""
Schema versioning helpers for persisted job records.

This module provides:
- SCHEMA_VERSION constant for tracking the record format
- dump_job_record / load_job_record for the JSON form used by stores

Loaders are tolerant: missing optional fields fall back to defaults so that
older records stay readable.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from jobrelay.types import ExitCode, Family, JobRecord, JobStatus, job_id_of

# Current schema version
SCHEMA_VERSION = "0.1"


def _parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return None


def load_job_record(data: dict[str, Any]) -> JobRecord:
    """
    Load a JobRecord from a dictionary, tolerating missing fields.

    Args:
        data: Dictionary representation of a JobRecord.

    Returns:
        A JobRecord instance.

    Raises:
        KeyError: If the record has no handle.
    """
    handle = data["handle"]
    exit_code = data.get("exit_code")

    return JobRecord(
        job_id=data.get("job_id") or job_id_of(handle),
        handle=handle,
        family=Family(data.get("family") or Family.of_handle(handle).value),
        version=data.get("version", ""),
        target=data.get("target", ""),
        status=JobStatus(data.get("status", JobStatus.SUBMITTED.value)),
        submitted_at=_parse_datetime(data.get("submitted_at")) or datetime.now(),
        finished_at=_parse_datetime(data.get("finished_at")),
        exit_code=ExitCode(exit_code) if exit_code else None,
        descriptor=data.get("descriptor", {}),
    )


def dump_job_record(record: JobRecord) -> dict[str, Any]:
    """
    Convert a JobRecord to a JSON-serializable dictionary.

    Args:
        record: The JobRecord to serialize.

    Returns:
        Dictionary representation including the schema version.
    """
    return {
        "_schema_version": SCHEMA_VERSION,
        "job_id": record.job_id,
        "handle": record.handle,
        "family": record.family.value,
        "version": record.version,
        "target": record.target,
        "status": record.status.value,
        "submitted_at": record.submitted_at.isoformat(),
        "finished_at": record.finished_at.isoformat() if record.finished_at else None,
        "exit_code": record.exit_code.value if record.exit_code else None,
        "descriptor": record.descriptor,
    }
