"""Tests for core types."""

from __future__ import annotations

from datetime import datetime

import pytest

from jobrelay.types import (
    EnvVariable,
    ExecutionTarget,
    ExitCode,
    Family,
    JobDescriptor,
    JobOutput,
    JobRecord,
    JobStatus,
    Release,
    VariableCategory,
    handle_safe_name,
    job_id_of,
    make_handle,
)


class TestFamily:
    def test_local_prefix(self):
        assert Family.of_handle("Local-42--foo") == Family.LOCAL

    def test_anything_else_is_grid(self):
        assert Family.of_handle("job7--bar") == Family.GRID
        assert Family.of_handle("local-42--foo") == Family.GRID
        assert Family.of_handle("xLocal-42--foo") == Family.GRID


class TestHandles:
    def test_job_id_of(self):
        assert job_id_of("job1--h1") == "job1"

    def test_job_id_of_keeps_left_of_first_separator(self):
        assert job_id_of("Local-a-b--1--2") == "Local-a-b"

    def test_job_id_of_without_separator(self):
        assert job_id_of("plain") == "plain"

    def test_make_handle(self):
        assert make_handle("job1", "h1") == "job1--h1"

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("run", "run"),
            ("run--v2", "run-v2"),
            ("-a---b-", "a-b"),
            ("--", "job"),
            ("", "job"),
        ],
    )
    def test_handle_safe_name(self, name, expected):
        assert handle_safe_name(name) == expected
        assert job_id_of(make_handle(handle_safe_name(name), "1")) == expected


class TestExecutionTarget:
    def test_override_replaces_target_only(self):
        target = ExecutionTarget("GRID", "slurm")
        assert target.override("local") == ExecutionTarget("GRID", "local")

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_override_is_noop(self, value):
        target = ExecutionTarget("GRID", "slurm")
        assert target.override(value) is target

    def test_str(self):
        assert str(ExecutionTarget("LOCAL", "local")) == "LOCAL/local"


class TestJobDescriptor:
    def test_grid_target_from_system_entry(self):
        descriptor = JobDescriptor(
            executable="run.sh",
            release=Release(
                configurations=(
                    EnvVariable(VariableCategory.INFRASTRUCTURE, "gridTarget", "nope"),
                    EnvVariable(VariableCategory.SYSTEM, "gridTarget", "local"),
                )
            ),
        )
        assert descriptor.grid_target == "local"

    def test_last_system_entry_wins(self):
        descriptor = JobDescriptor(
            executable="run.sh",
            release=Release(
                configurations=(
                    EnvVariable(VariableCategory.SYSTEM, "gridTarget", "a"),
                    EnvVariable(VariableCategory.SYSTEM, "gridTarget", "b"),
                )
            ),
        )
        assert descriptor.grid_target == "b"

    def test_no_grid_target(self):
        assert JobDescriptor(executable="run.sh").grid_target is None

    def test_job_name_defaults_to_executable_stem(self):
        assert JobDescriptor(executable="/opt/bin/simulate.sh").job_name == "simulate"
        assert JobDescriptor(executable="x", name="custom").job_name == "custom"

    def test_from_dict(self):
        descriptor = JobDescriptor.from_dict(
            {
                "executable": "/bin/echo",
                "parameters": ["a", 1],
                "uploads": ["out.txt"],
                "environment": {"N": 3},
                "release": {
                    "name": "r",
                    "configurations": [
                        {"category": "SYSTEM", "name": "gridTarget", "value": "local"}
                    ],
                },
            }
        )
        assert descriptor.parameters == ("a", "1")
        assert descriptor.uploads == ("out.txt",)
        assert descriptor.environment == {"N": "3"}
        assert descriptor.grid_target == "local"

    def test_from_dict_requires_executable(self):
        with pytest.raises(ValueError, match="executable"):
            JobDescriptor.from_dict({"parameters": []})

    def test_dict_form_is_stable(self):
        data = {
            "executable": "/bin/echo",
            "parameters": ["hi"],
            "release": {
                "name": "r",
                "configurations": [
                    {"category": "system", "name": "gridTarget", "value": "local"}
                ],
            },
            "downloads": ["file:///tmp/in.txt"],
            "uploads": ["out.txt"],
            "environment": {"A": "1"},
            "name": "echo-job",
        }
        assert JobDescriptor.from_dict(data).to_dict() == data


class TestJobRecord:
    def test_submitted(self):
        descriptor = JobDescriptor(executable="/bin/true")
        record = JobRecord.submitted(
            "Local-x-1--99", ExecutionTarget("LOCAL", "local"), descriptor
        )
        assert record.job_id == "Local-x-1"
        assert record.family == Family.LOCAL
        assert record.status == JobStatus.SUBMITTED
        assert record.descriptor["executable"] == "/bin/true"

    def test_finish(self):
        record = JobRecord(
            job_id="job1", handle="job1--h1", family=Family.GRID, version="GRID", target="slurm"
        )
        finished_at = datetime(2024, 1, 2, 3, 4, 5)
        output = JobOutput(
            job_id="job1", exit_code=ExitCode.EXECUTION_FAILED, finished_at=finished_at
        )

        done = record.finish(output)

        assert done.status == JobStatus.FINISHED
        assert done.exit_code == ExitCode.EXECUTION_FAILED
        assert done.finished_at == finished_at
        assert record.status == JobStatus.SUBMITTED


class TestJobOutput:
    def test_succeeded(self):
        assert JobOutput(job_id="a", exit_code=ExitCode.SUCCESS).succeeded
        assert not JobOutput(job_id="a", exit_code=ExitCode.UNDEFINED).succeeded
