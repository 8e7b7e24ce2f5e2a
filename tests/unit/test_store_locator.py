"""Tests for store locator parsing and the store factory."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from jobrelay.store import FileStore, create_store, parse_locator


class TestParseLocator:
    def test_plain_path_is_file(self, tmp_path: Path):
        info = parse_locator(str(tmp_path / "store"))
        assert info.scheme == "file"
        assert info.path == str((tmp_path / "store").resolve())

    def test_file_uri(self, tmp_path: Path):
        info = parse_locator(f"file://{tmp_path}/store")
        assert info.scheme == "file"
        assert info.path == str((tmp_path / "store").resolve())

    def test_postgres_uri(self):
        info = parse_locator("postgresql://user@db.example.org:5433/jobs?schema=relay")
        assert info.scheme == "postgresql"
        assert info.host == "db.example.org"
        assert info.port == 5433
        assert info.path == "/jobs"
        assert info.params == {"schema": "relay"}


class TestCreateStore:
    def test_file_store(self, tmp_path: Path):
        store = create_store(str(tmp_path / "store"))
        assert isinstance(store, FileStore)
        assert store.root == (tmp_path / "store").resolve()
        assert (tmp_path / "store" / "jobs").is_dir()

    def test_postgres_store(self):
        with patch("jobrelay.store.postgres.PostgresStore") as store_class:
            store = create_store("postgres://localhost/db", auto_migrate=False)

        assert store is store_class.return_value
        store_class.assert_called_once_with("postgres://localhost/db", auto_migrate=False)

    def test_unsupported_scheme(self):
        with pytest.raises(ValueError, match="Unsupported store scheme"):
            create_store("s3://bucket/store")
