"""
Unit tests for the SLURM executor and monitor.
"""

import re
from pathlib import Path
from unittest.mock import patch

import pytest

from jobrelay.config import Settings
from jobrelay.errors import SubmissionError
from jobrelay.executor.base import ExecutorContext
from jobrelay.executor.slurm import (
    SlurmConfig,
    SlurmExecutor,
    _normalize_slurm_state,
    _parse_slurm_job_id,
    _sbatch_directives,
    sacct_job_states,
)
from jobrelay.monitor.slurm import SlurmJob, SlurmMonitor
from jobrelay.types import Family, JobDescriptor, job_id_of


class _RecordingMonitor:
    def __init__(self):
        self.jobs = []

    def add(self, job):
        self.jobs.append(job)


class _Monitors:
    def __init__(self):
        self.monitor = _RecordingMonitor()
        self.families = []

    def get_monitor(self, family):
        self.families.append(family)
        return self.monitor


class _Proxy:
    def init(self):
        return Path("/tmp/x509up_test")


@pytest.fixture
def context(tmp_path: Path) -> ExecutorContext:
    settings = Settings(
        work_dir=tmp_path,
        backends={"slurm": {"partition": "gpu", "gpus": 1, "modules": "python/3.12"}},
    )
    return ExecutorContext(settings=settings, monitors=_Monitors())


class TestSlurmConfig:
    def test_defaults(self):
        config = SlurmConfig()
        assert config.partition == "default"
        assert config.cpus == 1
        assert config.extra_sbatch == {}

    def test_from_dict_convenience_fields(self):
        config = SlurmConfig.from_dict(
            {
                "partition": "long",
                "modules": "gcc",
                "mail_user": "me@example.org",
                "poll_interval": 15,
                "extra_sbatch": {"account": "proj"},
            }
        )
        assert config.partition == "long"
        assert config.modules == ["gcc"]
        assert config.extra_sbatch == {"account": "proj", "mail_user": "me@example.org"}


class TestSlurmCommands:
    def test_parse_job_id(self):
        assert _parse_slurm_job_id("Submitted batch job 12345\n") == "12345"
        assert _parse_slurm_job_id("sbatch: error\n") is None

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("COMPLETED", "COMPLETED"),
            ("CANCELLED by 1000", "CANCELLED"),
            ("cancelled+", "CANCELLED"),
            ("", ""),
        ],
    )
    def test_normalize_state(self, raw, expected):
        assert _normalize_slurm_state(raw) == expected

    def test_sbatch_directives(self):
        config = SlurmConfig(partition="gpu", gpus=2, extra_sbatch={"mail_type": "END"})
        lines = _sbatch_directives(config, "analyze", "/work/jobs/analyze-1")

        assert "#SBATCH --job-name=analyze" in lines
        assert "#SBATCH --partition=gpu" in lines
        assert "#SBATCH --gres=gpu:2" in lines
        assert "#SBATCH --mail-type=END" in lines
        assert "#SBATCH --output=/work/jobs/analyze-1/stdout.log" in lines

    def test_sacct_states_skip_steps(self):
        output = (
            "101|COMPLETED|0:0\n"
            "101.batch|COMPLETED|0:0\n"
            "102|FAILED|6:0\n"
            "103|CANCELLED by 42|0:15\n"
        )
        with patch("jobrelay.executor.slurm.run_cmd", return_value=(0, output, "")) as run:
            states = sacct_job_states(["101", "102", "103"])

        assert states == {
            "101": ("COMPLETED", 0),
            "102": ("FAILED", 6),
            "103": ("CANCELLED", 0),
        }
        assert "101,102,103" in run.call_args.args[0]

    def test_sacct_failure_returns_empty(self):
        with patch("jobrelay.executor.slurm.run_cmd", return_value=(1, "", "down")):
            assert sacct_job_states(["101"]) == {}

    def test_sacct_no_ids(self):
        with patch("jobrelay.executor.slurm.run_cmd") as run:
            assert sacct_job_states([]) == {}
        run.assert_not_called()


class TestSlurmExecutor:
    def test_config_from_settings(self, context):
        executor = SlurmExecutor(JobDescriptor(executable="/opt/bin/analyze.sh"), context)
        assert executor.config.partition == "gpu"
        assert executor.config.modules == ["python/3.12"]

    def test_submit_returns_handle_and_tracks_job(self, context):
        descriptor = JobDescriptor(executable="/opt/bin/analyze.sh", uploads=("out.csv",))
        executor = SlurmExecutor(descriptor, context)
        executor.pre_process()

        with patch(
            "jobrelay.executor.slurm.run_cmd",
            return_value=(0, "Submitted batch job 4242\n", ""),
        ) as run:
            handle = executor.submit()

        assert re.fullmatch(r"analyze-[0-9a-f]{8}--4242", handle)
        assert Family.of_handle(handle) == Family.GRID
        assert context.monitors.families == [Family.GRID]

        (job,) = context.monitors.monitor.jobs
        assert job == SlurmJob(
            handle=handle,
            slurm_job_id="4242",
            job_dir=context.settings.jobs_dir / executor.job_id,
            uploads=("out.csv",),
        )

        script_path = Path(run.call_args.args[0][1])
        script = script_path.read_text()
        assert "#SBATCH --partition=gpu" in script
        assert "module load python/3.12" in script

    def test_proxy_exported_to_job(self, context):
        executor = SlurmExecutor(JobDescriptor(executable="run"), context)
        executor.pre_process()
        executor.set_user_proxy(_Proxy())

        with patch(
            "jobrelay.executor.slurm.run_cmd",
            return_value=(0, "Submitted batch job 7\n", ""),
        ) as run:
            executor.submit()

        script = Path(run.call_args.args[0][1]).read_text()
        assert "export X509_USER_PROXY=/tmp/x509up_test" in script

    def test_sbatch_failure(self, context):
        executor = SlurmExecutor(JobDescriptor(executable="run"), context)
        executor.pre_process()

        with patch("jobrelay.executor.slurm.run_cmd", return_value=(1, "", "invalid partition")):
            with pytest.raises(SubmissionError, match="invalid partition"):
                executor.submit()
        assert context.monitors.monitor.jobs == []

    def test_unparseable_sbatch_output(self, context):
        executor = SlurmExecutor(JobDescriptor(executable="run"), context)
        executor.pre_process()

        with patch("jobrelay.executor.slurm.run_cmd", return_value=(0, "queued\n", "")):
            with pytest.raises(SubmissionError, match="parse job ID"):
                executor.submit()


class TestSlurmMonitor:
    def _monitor(self):
        reports = []
        return SlurmMonitor(reports.append, poll_interval=3600), reports

    def test_reports_terminal_jobs(self, tmp_path: Path):
        monitor, reports = self._monitor()
        monitor.add(SlurmJob("a-1--101", "101", tmp_path / "a", uploads=("x",)))
        monitor.add(SlurmJob("b-2--102", "102", tmp_path / "b"))

        with patch(
            "jobrelay.monitor.slurm.sacct_job_states",
            return_value={"101": ("COMPLETED", 0), "102": ("RUNNING", None)},
        ):
            assert monitor.poll() == 1

        (batch,) = reports
        token = batch["a-1--101"]
        assert token.state == "COMPLETED"
        assert token.exit_code == 0
        assert token.backend_id == "101"
        assert token.uploads == ("x",)
        assert token.output_dir == str(tmp_path / "a" / "outputs")
        assert monitor.tracked == ["b-2--102"]

    def test_unknown_jobs_stay_tracked(self, tmp_path: Path):
        monitor, reports = self._monitor()
        monitor.add(SlurmJob("a-1--101", "101", tmp_path / "a"))

        with patch("jobrelay.monitor.slurm.sacct_job_states", return_value={}):
            assert monitor.poll() == 0

        assert reports == []
        assert monitor.tracked == ["a-1--101"]

    def test_poll_without_jobs_skips_sacct(self):
        monitor, _ = self._monitor()
        with patch("jobrelay.monitor.slurm.sacct_job_states") as sacct:
            assert monitor.poll() == 0
        sacct.assert_not_called()

    def test_start_and_terminate(self):
        monitor, _ = self._monitor()
        monitor.start()
        monitor.start()
        monitor.terminate()
        assert monitor.start_time > 0


class TestSlurmJobIds:
    @pytest.mark.parametrize(
        "descriptor, prefix",
        [
            (JobDescriptor(executable="/opt/bin/run--v2.sh"), "run-v2-"),
            (JobDescriptor(executable="run", name="Local-fake"), "job-Local-fake-"),
            (JobDescriptor(executable="run", name="-"), "job-"),
        ],
    )
    def test_handle_keeps_grid_job_id(self, context, descriptor, prefix):
        executor = SlurmExecutor(descriptor, context)
        executor.pre_process()

        with patch(
            "jobrelay.executor.slurm.run_cmd",
            return_value=(0, "Submitted batch job 99\n", ""),
        ):
            handle = executor.submit()

        assert executor.job_id.startswith(prefix)
        assert job_id_of(handle) == executor.job_id
        assert Family.of_handle(handle) == Family.GRID
