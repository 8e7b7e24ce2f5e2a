"""
Store locator: URI-based store identification and factory.

Supported locator schemes:
- file:///path/to/store           -> FileStore
- /path/to/store                  -> FileStore (implicit file://)
- postgresql://user@host:port/db  -> PostgresStore
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlparse

if TYPE_CHECKING:
    from jobrelay.store.base import JobStore

logger = logging.getLogger(__name__)

POSTGRES_SCHEMES = ("postgresql", "postgres")


@dataclass
class LocatorInfo:
    """
    Parsed store locator information.

    Attributes:
        scheme: The locator scheme (file, postgresql).
        path: Filesystem path or database name.
        host: Hostname for network stores.
        port: Port number for network stores.
        params: Additional query parameters.
        raw: The original locator string.
    """

    scheme: str
    path: str
    host: str | None = None
    port: int | None = None
    params: dict[str, str] = field(default_factory=dict)
    raw: str = ""


def parse_locator(locator: str) -> LocatorInfo:
    """
    Parse a store locator string into its components.

    Examples:
        >>> parse_locator("./jobrelay/store").scheme
        'file'
        >>> parse_locator("postgresql://user@localhost:5432/jobrelay").port
        5432
    """
    parsed = urlparse(locator)
    if not parsed.scheme:
        return LocatorInfo(scheme="file", path=str(Path(locator).resolve()), raw=locator)

    params = {}
    if parsed.query:
        for key, values in parse_qs(parsed.query).items():
            params[key] = values[0] if values else ""

    path = parsed.path
    if parsed.scheme == "file":
        path = str(Path(path).resolve()) if path else ""

    return LocatorInfo(
        scheme=parsed.scheme,
        path=path,
        host=parsed.hostname,
        port=parsed.port,
        params=params,
        raw=locator,
    )


def create_store(locator: str, **kwargs: Any) -> JobStore:
    """
    Create a store from a locator string.

    Raises:
        ValueError: If the scheme is not supported.
    """
    info = parse_locator(locator)

    if info.scheme == "file":
        from jobrelay.store.file import FileStore

        return FileStore(info.path)

    if info.scheme in POSTGRES_SCHEMES:
        from jobrelay.store.postgres import PostgresStore

        return PostgresStore(locator, **kwargs)

    raise ValueError(
        f"Unsupported store scheme {info.scheme!r}. "
        f"Expected 'file' or one of {POSTGRES_SCHEMES}"
    )
