"""Tests for output resolvers."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from jobrelay.output import (
    GridOutputResolver,
    LocalOutputResolver,
    OutputResolverRegistry,
    classify,
)
from jobrelay.types import CompletionToken, ExitCode, Family


class TestClassify:
    @pytest.mark.parametrize(
        "exit_code, expected",
        [
            (0, ExitCode.SUCCESS),
            (1, ExitCode.ERROR_READ_GRID),
            (2, ExitCode.ERROR_WRITE_GRID),
            (6, ExitCode.EXECUTION_FAILED),
            (7, ExitCode.ERROR_WRITE_LOCAL),
            (137, ExitCode.EXECUTION_FAILED),
        ],
    )
    def test_exit_status(self, exit_code, expected):
        assert classify("COMPLETED", exit_code) == expected

    @pytest.mark.parametrize(
        "state, expected",
        [
            ("CANCELLED", ExitCode.EXECUTION_CANCELED),
            ("TIMEOUT", ExitCode.EXECUTION_STALLED),
            ("DEADLINE", ExitCode.EXECUTION_STALLED),
            ("PREEMPTED", ExitCode.EXECUTION_STALLED),
        ],
    )
    def test_state_wins_over_exit_status(self, state, expected):
        assert classify(state, 0) == expected

    def test_failed_without_exit_status(self):
        assert classify("FAILED", None) == ExitCode.EXECUTION_FAILED

    def test_unknown_without_exit_status(self):
        assert classify("NODE_FAIL", None) == ExitCode.UNDEFINED

    def test_state_case_insensitive(self):
        assert classify("cancelled", None) == ExitCode.EXECUTION_CANCELED


class TestResolve:
    def test_success_with_uploads(self, tmp_path: Path):
        (tmp_path / "result.csv").write_text("1,2\n")
        token = CompletionToken(
            state="COMPLETED",
            exit_code=0,
            stdout_path="/jobs/x/stdout.log",
            output_dir=str(tmp_path),
            uploads=("result.csv", "missing.csv"),
            finished_at=datetime.fromtimestamp(1_000_060),
        )

        output = LocalOutputResolver(start_time=1_000_000).resolve("Local-x", token)

        assert output.job_id == "Local-x"
        assert output.exit_code == ExitCode.SUCCESS
        assert output.raw_exit_code == 0
        assert output.uploaded_results == (str(tmp_path / "result.csv"),)
        assert output.stdout_path == "/jobs/x/stdout.log"
        assert output.elapsed_s == pytest.approx(60.0)

    def test_failed_job_has_no_uploads(self, tmp_path: Path):
        (tmp_path / "result.csv").write_text("partial")
        token = CompletionToken(
            state="FAILED", exit_code=2, output_dir=str(tmp_path), uploads=("result.csv",)
        )

        output = GridOutputResolver(start_time=0).resolve("job1", token)

        assert output.exit_code == ExitCode.ERROR_WRITE_GRID
        assert output.uploaded_results == ()

    def test_elapsed_never_negative(self):
        token = CompletionToken(state="COMPLETED", exit_code=0, finished_at=datetime.fromtimestamp(10))
        assert GridOutputResolver(start_time=100).resolve("j", token).elapsed_s == 0.0

    def test_rejects_foreign_token(self):
        with pytest.raises(TypeError):
            GridOutputResolver(start_time=0).resolve("job1", "not-a-token")


class TestRegistry:
    def test_default_resolvers(self):
        registry = OutputResolverRegistry()

        local = registry.get_resolver(Family.LOCAL, 5)
        grid = registry.get_resolver("GRID", 7)

        assert isinstance(local, LocalOutputResolver)
        assert local.start_time == 5
        assert isinstance(grid, GridOutputResolver)
        assert grid.start_time == 7

    def test_override(self):
        registry = OutputResolverRegistry({Family.GRID: lambda start: ("custom", start)})
        assert registry.get_resolver(Family.GRID, 3) == ("custom", 3)
