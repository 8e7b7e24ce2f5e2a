"""Tests for job record serialization."""

from __future__ import annotations

import json
from datetime import datetime

from jobrelay.schema import SCHEMA_VERSION, dump_job_record, load_job_record
from jobrelay.types import ExitCode, Family, JobRecord, JobStatus


def _record() -> JobRecord:
    return JobRecord(
        job_id="job1",
        handle="job1--4242",
        family=Family.GRID,
        version="GRID",
        target="slurm",
        status=JobStatus.FINISHED,
        submitted_at=datetime(2024, 5, 1, 12, 0, 0),
        finished_at=datetime(2024, 5, 1, 12, 5, 0),
        exit_code=ExitCode.ERROR_WRITE_GRID,
        descriptor={"executable": "/bin/true"},
    )


class TestDump:
    def test_includes_schema_version(self):
        assert dump_job_record(_record())["_schema_version"] == SCHEMA_VERSION

    def test_json_serializable(self):
        data = json.loads(json.dumps(dump_job_record(_record())))
        assert data["exit_code"] == "error_write_grid"
        assert data["family"] == "GRID"


class TestLoad:
    def test_load_dumped(self):
        assert load_job_record(dump_job_record(_record())) == _record()

    def test_tolerates_missing_fields(self):
        record = load_job_record({"handle": "Local-a--1"})
        assert record.job_id == "Local-a"
        assert record.family == Family.LOCAL
        assert record.status == JobStatus.SUBMITTED
        assert record.exit_code is None
        assert record.finished_at is None
