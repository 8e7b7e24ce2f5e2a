"""
Store module: Persistence of submitted and finished jobs.

Provides:

- JobStore: Protocol for storage backends
- FileStore: Filesystem-based storage
- PostgresStore: PostgreSQL storage (requires the ``postgres`` extra)
- parse_locator / create_store: Locator-based store construction
"""

from jobrelay.store.base import JobStore
from jobrelay.store.file import FileStore
from jobrelay.store.locator import LocatorInfo, create_store, parse_locator

__all__ = [
    "JobStore",
    "FileStore",
    "LocatorInfo",
    "create_store",
    "parse_locator",
]
