"""End-to-end tests running real jobs through the LOCAL backend."""

from __future__ import annotations

import time
from pathlib import Path

import pytest

from jobrelay.config import Settings
from jobrelay.coordinator import Client, Coordinator
from jobrelay.types import (
    ExecutionTarget,
    ExitCode,
    JobDescriptor,
    JobOutput,
    JobStatus,
    job_id_of,
)


@pytest.fixture
def coordinator(tmp_path: Path):
    settings = Settings(
        default_target=ExecutionTarget("LOCAL", "local"),
        work_dir=tmp_path / "work",
        notify_interval=0.05,
    )
    coord = Coordinator(settings=settings)
    yield coord
    coord.terminate()


def _collect(coordinator: Coordinator, client: Client, count: int, timeout: float = 20.0):
    outputs: list[JobOutput] = []
    deadline = time.monotonic() + timeout
    while len(outputs) < count:
        remaining = deadline - time.monotonic()
        assert remaining > 0, f"timed out with {len(outputs)} of {count} outputs"
        if client.wait(timeout=remaining):
            outputs.extend(coordinator.get_finished_jobs())
            coordinator.wait_for_notification()
    return outputs


def _shell(command: str, **kwargs) -> JobDescriptor:
    return JobDescriptor(executable="/bin/bash", parameters=("-c", command), **kwargs)


class TestLocalRoundtrip:
    def test_successful_job_with_upload(self, coordinator):
        client = Client()
        handle = coordinator.submit(
            client,
            _shell("echo hello > result.txt", name="greet", uploads=("result.txt",)),
        )

        (output,) = _collect(coordinator, client, 1)

        assert handle.startswith("Local-greet-")
        assert output.job_id == job_id_of(handle)
        assert output.exit_code == ExitCode.SUCCESS
        (result,) = output.uploaded_results
        assert Path(result).read_text() == "hello\n"

        record = coordinator.store.get_job(output.job_id)
        assert record.status == JobStatus.FINISHED
        assert record.exit_code == ExitCode.SUCCESS

    def test_failing_executable(self, coordinator):
        client = Client()
        coordinator.submit(client, _shell("echo oops >&2; exit 3", name="fail"))

        (output,) = _collect(coordinator, client, 1)

        assert output.exit_code == ExitCode.EXECUTION_FAILED
        assert output.raw_exit_code == 6
        assert "oops" in Path(output.stderr_path).read_text()

    def test_missing_input(self, coordinator, tmp_path: Path):
        client = Client()
        coordinator.submit(
            client,
            _shell("true", downloads=(f"file://{tmp_path}/does-not-exist",)),
        )

        (output,) = _collect(coordinator, client, 1)

        assert output.exit_code == ExitCode.ERROR_READ_GRID

    def test_several_jobs(self, coordinator):
        client = Client()
        handles = {
            coordinator.submit(client, _shell(f"echo {i}", name=f"n{i}")) for i in range(3)
        }

        outputs = _collect(coordinator, client, 3)

        assert {o.job_id for o in outputs} == {job_id_of(h) for h in handles}
        assert all(o.succeeded for o in outputs)
        assert coordinator.pending == 0
