"""
FileStore: Filesystem-based job record storage.

Layout:
    {root}/
    ├── jobs/{job_id}.json       # JobRecord (schema-versioned)
    └── .locks/{job_id}.lock     # Per-job lock files

Concurrency guarantees:

- Atomic writes: temp file + rename
- Per-job locking: fcntl.flock() on {job_id}.lock
"""

from __future__ import annotations

import fcntl
import json
import logging
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from jobrelay.schema import dump_job_record, load_job_record
from jobrelay.types import JobRecord, JobStatus

logger = logging.getLogger(__name__)


class FileStore:
    """
    Filesystem-based job store.

    Args:
        root: Root directory of the store. Created if missing.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()
        self._jobs_dir = self._root / "jobs"
        self._locks_dir = self._root / ".locks"
        self._jobs_dir.mkdir(parents=True, exist_ok=True)
        self._locks_dir.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def locator(self) -> str:
        return f"file://{self._root}"

    def __repr__(self) -> str:
        return f"FileStore({str(self._root)!r})"

    def _job_path(self, job_id: str) -> Path:
        return self._jobs_dir / f"{job_id}.json"

    @staticmethod
    def _atomic_write(path: Path, data: bytes) -> None:
        """Write data atomically using temp file + rename."""
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(f".tmp.{uuid.uuid4().hex[:8]}")
        try:
            tmp.write_bytes(data)
            tmp.rename(path)
        except Exception:
            if tmp.exists():
                tmp.unlink()
            raise

    @contextmanager
    def _job_lock(self, job_id: str) -> Generator[None, None, None]:
        """Acquire a per-job lock using flock."""
        lock_path = self._locks_dir / f"{job_id}.lock"
        lock_path.touch()

        with lock_path.open("r") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def put_job(self, record: JobRecord) -> None:
        """Persist a job record atomically."""
        content = json.dumps(dump_job_record(record), indent=2, sort_keys=True)
        with self._job_lock(record.job_id):
            self._atomic_write(self._job_path(record.job_id), content.encode("utf-8"))

    def get_job(self, job_id: str) -> JobRecord | None:
        path = self._job_path(job_id)
        if not path.exists():
            return None
        return load_job_record(json.loads(path.read_text(encoding="utf-8")))

    def list_jobs(self, status: JobStatus | None = None) -> list[JobRecord]:
        """List job records, skipping unreadable files."""
        records = []
        for path in self._jobs_dir.glob("*.json"):
            try:
                record = load_job_record(json.loads(path.read_text(encoding="utf-8")))
            except (json.JSONDecodeError, KeyError, ValueError) as e:
                logger.warning(f"Failed to load job record {path}: {e}")
                continue
            if status is None or record.status == status:
                records.append(record)

        records.sort(key=lambda r: r.submitted_at)
        return records

    def close(self) -> None:
        pass

    def __enter__(self) -> FileStore:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()
