"""Tests for job wrapper script generation."""

from __future__ import annotations

import os
from pathlib import Path

from jobrelay.executor.script import (
    EXIT_EXECUTION_FAILED,
    EXIT_GRID_WRITE_FAILED,
    EXIT_INPUT_FAILED,
    SCRIPT_NAME,
    render_job_script,
    write_job_script,
)
from jobrelay.types import JobDescriptor


def _render(descriptor: JobDescriptor, tmp_path: Path, **kwargs) -> str:
    return render_job_script(
        descriptor,
        job_dir=tmp_path / "job",
        output_dir=tmp_path / "job" / "outputs",
        write_error_code=EXIT_GRID_WRITE_FAILED,
        **kwargs,
    )


class TestRenderJobScript:
    def test_runs_quoted_command(self, tmp_path: Path):
        script = _render(
            JobDescriptor(executable="/bin/echo", parameters=("hello world",)), tmp_path
        )
        assert script.startswith("#!/bin/bash\n")
        assert "/bin/echo 'hello world'" in script
        assert f"exit {EXIT_EXECUTION_FAILED}" in script
        assert script.rstrip().endswith("exit 0")

    def test_stages_downloads(self, tmp_path: Path):
        script = _render(
            JobDescriptor(
                executable="run",
                downloads=("file:///data/in.txt", "https://example.org/ref.fa"),
            ),
            tmp_path,
        )
        assert f"cp -r -- /data/in.txt . || exit {EXIT_INPUT_FAILED}" in script
        assert "curl -fsSL -o ref.fa https://example.org/ref.fa" in script

    def test_collects_uploads_with_write_code(self, tmp_path: Path):
        script = _render(JobDescriptor(executable="run", uploads=("out.txt",)), tmp_path)
        output_dir = tmp_path / "job" / "outputs"
        assert f"cp -r -- out.txt {output_dir}/ || exit {EXIT_GRID_WRITE_FAILED}" in script

    def test_header_setup_and_environment(self, tmp_path: Path):
        script = _render(
            JobDescriptor(executable="run", environment={"A": "1"}),
            tmp_path,
            header=["#SBATCH --partition=gpu"],
            setup=["module load python"],
            environment={"X509_USER_PROXY": "/tmp/x509"},
        )
        lines = script.splitlines()
        assert lines[1] == "#SBATCH --partition=gpu"
        assert "module load python" in lines
        assert "export A=1" in lines
        assert "export X509_USER_PROXY=/tmp/x509" in lines


class TestWriteJobScript:
    def test_writes_executable(self, tmp_path: Path):
        path = write_job_script(tmp_path / "job", "#!/bin/bash\nexit 0\n")

        assert path == tmp_path / "job" / SCRIPT_NAME
        assert path.read_text() == "#!/bin/bash\nexit 0\n"
        assert os.access(path, os.X_OK)
