"""
Settings: Process-wide configuration loader for jobrelay.

This module provides:

- find_config_file: Walk up directories to locate .jobrelay.toml
- deep_merge: Recursively merge two dicts (override wins for leaf values)
- LoggingSettings / SecuritySettings: Typed sub-sections
- Settings: Fully parsed configuration with defaults
- load_settings: Find, parse and merge configuration files
- setup_configuration: load_settings + validation + directory creation

Configuration is loaded from `.jobrelay.toml` with optional
`.jobrelay.local.toml` overrides deep-merged on top. When no file is found,
built-in defaults are used.

Example:
    >>> settings = setup_configuration()
    >>> settings.default_target
    ExecutionTarget(version='GRID', target='slurm')
    >>> settings.backend("slurm")
    {'partition': 'batch'}
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from jobrelay.errors import ConfigurationError
from jobrelay.types import TARGET_SLURM, VERSION_GRID, VERSIONS, ExecutionTarget

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".jobrelay.toml"
LOCAL_CONFIG_FILENAME = ".jobrelay.local.toml"

DEFAULT_NOTIFY_INTERVAL = 10.0
DEFAULT_MYPROXY_PORT = 7512
DEFAULT_VOMS_PORT = 15000
DEFAULT_WORK_DIR = "./jobrelay"


# ---------------------------------------------------------------------------
# Utility helpers
# ---------------------------------------------------------------------------


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """
    Walk up from *start_dir* to find `.jobrelay.toml`.

    Args:
        start_dir: Directory to start searching from. Defaults to ``Path.cwd()``.

    Returns:
        Path to the config file, or ``None`` if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate

        parent = current.parent
        if parent == current:
            # Reached filesystem root
            return None
        current = parent


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep-merge two dicts. *override* wins for leaf values.

    Neither input is mutated; a new dict is returned.
    """
    merged: dict[str, Any] = {}

    for key in base.keys() | override.keys():
        if key in base and key in override:
            base_val = base[key]
            over_val = override[key]
            if isinstance(base_val, dict) and isinstance(over_val, dict):
                merged[key] = deep_merge(base_val, over_val)
            else:
                merged[key] = over_val
        elif key in base:
            merged[key] = base[key]
        else:
            merged[key] = override[key]

    return merged


def parse_host_port(value: str, default_port: int) -> tuple[str, int]:
    """
    Split ``host[:port]``.

    Raises:
        ValueError: If the host is empty or the port is not a number.
    """
    host, sep, port = value.rpartition(":")
    if not sep:
        host, port = value, str(default_port)
    if not host:
        raise ValueError(f"Missing host in {value!r}")
    try:
        return host, int(port)
    except ValueError:
        raise ValueError(f"Invalid port in {value!r}") from None


def parse_voms_address(value: str) -> tuple[str, str, int]:
    """
    Split ``vo@host[:port]``.

    Raises:
        ValueError: If the VO or host is missing or the port is not a number.
    """
    vo, sep, address = value.partition("@")
    if not sep or not vo:
        raise ValueError(f"Missing VO in {value!r}; expected vo@host[:port]")
    host, port = parse_host_port(address, DEFAULT_VOMS_PORT)
    return vo, host, port


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingSettings:
    """
    Logging configuration from the ``[logging]`` table.

    Attributes:
        level: Level name for the ``jobrelay`` logger.
        file: Optional log file path.
    """

    level: str = "INFO"
    file: str | None = None


@dataclass(frozen=True)
class SecuritySettings:
    """
    Security configuration from the ``[security]`` table.

    Attributes:
        cert_dir: Trusted CA certificates directory.
        proxy_dir: Directory where delegated proxies are written.
        lifetime_hours: Requested proxy lifetime.
        myproxy: Default MyProxy server as ``host[:port]``.
        voms: Default VOMS server as ``vo@host[:port]``.
    """

    cert_dir: str | None = None
    proxy_dir: str | None = None
    lifetime_hours: int = 24
    myproxy: str | None = None
    voms: str | None = None


@dataclass(frozen=True)
class Settings:
    """
    Parsed jobrelay configuration.

    Attributes:
        default_target: Default (version, target) for submissions.
        notify_interval: Seconds between completion-notifier polls.
        work_dir: Root for job directories, scripts and logs.
        store: Persistence locator (path, ``file://`` or ``postgresql://``).
        logging: Logging configuration.
        security: Security configuration.
        backends: Per-target backend options (``[backends.NAME]``).
        source: Config file the settings came from, if any.
    """

    default_target: ExecutionTarget = field(
        default_factory=lambda: ExecutionTarget(VERSION_GRID, TARGET_SLURM)
    )
    notify_interval: float = DEFAULT_NOTIFY_INTERVAL
    work_dir: Path = field(default_factory=lambda: Path(DEFAULT_WORK_DIR).resolve())
    store: str | None = None
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    security: SecuritySettings = field(default_factory=SecuritySettings)
    backends: dict[str, dict[str, Any]] = field(default_factory=dict)
    source: Path | None = None

    @property
    def store_locator(self) -> str:
        """Persistence locator, defaulting to a FileStore under work_dir."""
        return self.store or str(self.work_dir / "store")

    @property
    def jobs_dir(self) -> Path:
        return self.work_dir / "jobs"

    @property
    def proxy_dir(self) -> Path:
        if self.security.proxy_dir:
            return Path(self.security.proxy_dir).resolve()
        return self.work_dir / "proxies"

    def backend(self, name: str) -> dict[str, Any]:
        """Return options for backend *name* (empty dict if unset)."""
        return dict(self.backends.get(name, {}))

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: Path | None = None) -> Settings:
        """
        Create Settings from a parsed TOML dict.

        Relative paths are resolved against the config file's directory
        (or the current directory when there is no file).

        Raises:
            ValueError: If a value has the wrong type or an unknown version.
        """
        base_dir = source.parent if source is not None else Path.cwd()

        coord = dict(data.get("coordinator", {}))
        version = str(coord.get("version", VERSION_GRID)).upper()
        if version not in VERSIONS:
            raise ValueError(
                f"Unknown coordinator version {version!r}. Expected one of {VERSIONS}"
            )
        target = str(coord.get("target", TARGET_SLURM))
        if not target:
            raise ValueError("coordinator.target must not be empty")

        try:
            notify_interval = float(coord.get("notify_interval", DEFAULT_NOTIFY_INTERVAL))
        except (TypeError, ValueError):
            raise ValueError(
                f"coordinator.notify_interval must be a number, "
                f"got {coord.get('notify_interval')!r}"
            ) from None
        if notify_interval <= 0:
            raise ValueError("coordinator.notify_interval must be positive")

        work_dir = (base_dir / str(coord.get("work_dir", DEFAULT_WORK_DIR))).resolve()

        log_raw = dict(data.get("logging", {}))
        level = str(log_raw.get("level", "INFO")).upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown logging level {level!r}")
        log_file = log_raw.get("file")
        log_settings = LoggingSettings(
            level=level,
            file=str((base_dir / log_file).resolve()) if log_file else None,
        )

        sec_raw = dict(data.get("security", {}))
        proxy_dir = sec_raw.get("proxy_dir")
        try:
            lifetime_hours = int(sec_raw.get("lifetime_hours", 24))
        except (TypeError, ValueError):
            raise ValueError(
                f"security.lifetime_hours must be an integer, "
                f"got {sec_raw.get('lifetime_hours')!r}"
            ) from None
        for key in ("cert_dir", "myproxy", "voms"):
            if sec_raw.get(key) is not None and not isinstance(sec_raw[key], str):
                raise ValueError(f"security.{key} must be a string")
        security = SecuritySettings(
            cert_dir=sec_raw.get("cert_dir"),
            proxy_dir=str((base_dir / proxy_dir).resolve()) if proxy_dir else None,
            lifetime_hours=lifetime_hours,
            myproxy=sec_raw.get("myproxy"),
            voms=sec_raw.get("voms"),
        )

        backends_raw = data.get("backends", {})
        if not isinstance(backends_raw, dict):
            raise ValueError("[backends] must be a table")
        for name, opts in backends_raw.items():
            if not isinstance(opts, dict):
                raise ValueError(f"[backends.{name}] must be a table")
        backends = {name: dict(opts) for name, opts in backends_raw.items()}

        store = coord.get("store")
        if store and "://" not in str(store):
            store = str((base_dir / str(store)).resolve())

        settings = cls(
            default_target=ExecutionTarget(version, target),
            notify_interval=notify_interval,
            work_dir=work_dir,
            store=store,
            logging=log_settings,
            security=security,
            backends=backends,
            source=source,
        )
        # Malformed delegation servers are load errors
        settings.myproxy_address()
        settings.voms_address()
        return settings

    def myproxy_address(self) -> tuple[str, int] | None:
        """Default MyProxy ``(host, port)``, if configured."""
        if not self.security.myproxy:
            return None
        return parse_host_port(self.security.myproxy, DEFAULT_MYPROXY_PORT)

    def voms_address(self) -> tuple[str, str, int] | None:
        """Default VOMS ``(vo, host, port)``, if configured."""
        if not self.security.voms:
            return None
        return parse_voms_address(self.security.voms)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_settings(start_dir: Path | None = None) -> Settings:
    """
    Find and load configuration.

    Walks up from *start_dir* (default: cwd) to locate ``.jobrelay.toml``,
    parses it, and deep-merges ``.jobrelay.local.toml`` from the same
    directory. Returns defaults when no config file exists.

    Raises:
        tomllib.TOMLDecodeError: If a config file is not valid TOML.
        ValueError: If a value is invalid.
    """
    config_path = find_config_file(start_dir)
    if config_path is None:
        logger.debug("No %s found; using default settings", CONFIG_FILENAME)
        return Settings()

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    local_path = config_path.parent / LOCAL_CONFIG_FILENAME
    if local_path.is_file():
        with open(local_path, "rb") as f:
            data = deep_merge(data, tomllib.load(f))

    return Settings.from_dict(data, source=config_path)


def setup_configuration(
    start_dir: Path | None = None,
    settings: Settings | None = None,
) -> Settings:
    """
    Load (unless given) and prepare configuration for a coordinator.

    Creates the work and jobs directories.

    Args:
        start_dir: Directory to start the config search from.
        settings: Pre-built settings; skips loading when provided.

    Returns:
        The ready-to-use Settings.

    Raises:
        ConfigurationError: If loading, validation or directory creation fails.
    """
    try:
        if settings is None:
            settings = load_settings(start_dir)
        settings.jobs_dir.mkdir(parents=True, exist_ok=True)
    except (OSError, TypeError, ValueError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(f"Failed to set up configuration: {e}") from e

    logger.debug(
        "Configuration ready (source=%s, work_dir=%s)",
        settings.source or "defaults",
        settings.work_dir,
    )
    return settings
