"""
User proxy delegation.

Provides:
- GridUserCredentials: DN and/or login/password of the submitting user
- MyproxyServer / VomsServer: delegation endpoints
- SecurityConfig / init_security: process-wide security settings
- Proxy: lazily delegated proxy bound to one user
- MyproxyLoginProxy: retrieval with login + passphrase (passphrase on stdin)
- MyproxyDelegatedProxy: trusted retrieval by DN, no passphrase
- delegate: pick the strategy for a set of credentials

Nothing is contacted until Proxy.init() is called, which executors do at
submission time.
"""

from __future__ import annotations

import hashlib
import logging
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from jobrelay._commands import run_cmd
from jobrelay.config import DEFAULT_MYPROXY_PORT, DEFAULT_VOMS_PORT
from jobrelay.errors import DelegationError

if TYPE_CHECKING:
    from jobrelay.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GridUserCredentials:
    """
    Credentials of the user a job runs on behalf of.

    Attributes:
        dn: Distinguished name of the user's certificate.
        login: MyProxy login.
        password: MyProxy passphrase (never shown in repr).
    """

    dn: str | None = None
    login: str | None = None
    password: str | None = field(default=None, repr=False)

    @property
    def has_login_password(self) -> bool:
        """True when both login and password are present and non-empty."""
        return bool(self.login) and bool(self.password)

    @property
    def username(self) -> str:
        """Name used to address the MyProxy server."""
        name = self.login or self.dn
        if not name:
            raise DelegationError("Credentials carry neither a login nor a DN")
        return name


@dataclass(frozen=True)
class MyproxyServer:
    host: str
    port: int = DEFAULT_MYPROXY_PORT


@dataclass(frozen=True)
class VomsServer:
    """VOMS endpoint used to add a VO extension to a proxy."""

    vo: str
    host: str
    port: int = DEFAULT_VOMS_PORT


@dataclass(frozen=True)
class SecurityConfig:
    """
    Process-wide security configuration.

    Attributes:
        proxy_dir: Directory where delegated proxies are written.
        cert_dir: Trusted CA certificates directory (exported to commands).
        lifetime_hours: Requested proxy lifetime.
        myproxy: Default MyProxy server.
        voms: Default VOMS server.
    """

    proxy_dir: Path
    cert_dir: str | None = None
    lifetime_hours: int = 24
    myproxy: MyproxyServer | None = None
    voms: VomsServer | None = None

    def command_env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self.cert_dir:
            env["X509_CERT_DIR"] = self.cert_dir
        return env


_security: SecurityConfig | None = None
_security_lock = threading.Lock()


def init_security(settings: Settings) -> SecurityConfig:
    """
    Initialise the security subsystem from *settings*.

    Creates the proxy directory and records default delegation servers.
    Re-initialising replaces the previous configuration.

    Args:
        settings: Loaded jobrelay settings.

    Returns:
        The active SecurityConfig.
    """
    global _security

    myproxy = None
    address = settings.myproxy_address()
    if address is not None:
        myproxy = MyproxyServer(*address)

    voms = None
    voms_address = settings.voms_address()
    if voms_address is not None:
        voms = VomsServer(*voms_address)

    config = SecurityConfig(
        proxy_dir=settings.proxy_dir,
        cert_dir=settings.security.cert_dir,
        lifetime_hours=settings.security.lifetime_hours,
        myproxy=myproxy,
        voms=voms,
    )
    config.proxy_dir.mkdir(parents=True, exist_ok=True)

    with _security_lock:
        _security = config
    logger.debug("Security initialised (proxy_dir=%s)", config.proxy_dir)
    return config


def get_security() -> SecurityConfig:
    """Return the active SecurityConfig, with defaults when uninitialised."""
    with _security_lock:
        if _security is not None:
            return _security
    return SecurityConfig(proxy_dir=Path.cwd() / "proxies")


class Proxy(ABC):
    """
    A delegated user proxy.

    Subclasses implement the retrieval command; init() runs it once, adds the
    VOMS extension when a VOMS server is known, and returns the proxy path.
    """

    def __init__(
        self,
        credentials: GridUserCredentials,
        myproxy_server: MyproxyServer | None = None,
        voms_server: VomsServer | None = None,
        security: SecurityConfig | None = None,
    ) -> None:
        self._credentials = credentials
        self._security = security or get_security()
        self._myproxy = myproxy_server or self._security.myproxy
        self._voms = voms_server or self._security.voms
        self._path: Path | None = None
        self._lock = threading.Lock()

    @property
    def credentials(self) -> GridUserCredentials:
        return self._credentials

    @property
    def path(self) -> Path:
        """Where the proxy file is (or will be) written."""
        digest = hashlib.sha1(self._credentials.username.encode("utf-8")).hexdigest()[:12]
        return self._security.proxy_dir / f"x509up_{digest}"

    def init(self) -> Path:
        """
        Delegate the proxy if not done yet.

        Returns:
            Path of the proxy file.

        Raises:
            DelegationError: If no MyProxy server is known or a command fails.
        """
        with self._lock:
            if self._path is not None:
                return self._path

            if self._myproxy is None:
                raise DelegationError("No MyProxy server configured for delegation")

            path = self.path
            path.parent.mkdir(parents=True, exist_ok=True)
            self._retrieve(self._myproxy, path)
            if self._voms is not None:
                self._add_voms_extension(self._voms, path)

            self._path = path
            logger.info(
                "Delegated proxy for %s via %s:%d",
                self._credentials.username,
                self._myproxy.host,
                self._myproxy.port,
            )
            return path

    @abstractmethod
    def _retrieve(self, server: MyproxyServer, path: Path) -> None:
        """Retrieve a proxy from *server* into *path*."""
        ...

    def _logon_base(self, server: MyproxyServer, path: Path) -> list[str]:
        return [
            "myproxy-logon",
            "-s",
            server.host,
            "-p",
            str(server.port),
            "-l",
            self._credentials.username,
            "-t",
            str(self._security.lifetime_hours),
            "-o",
            str(path),
        ]

    def _check(self, cmd: list[str], exit_code: int, stderr: str) -> None:
        if exit_code != 0:
            raise DelegationError(
                f"{cmd[0]} failed with exit code {exit_code}: {stderr.strip()}"
            )

    def _add_voms_extension(self, voms: VomsServer, path: Path) -> None:
        cmd = [
            "voms-proxy-init",
            "-noregen",
            "-cert",
            str(path),
            "-key",
            str(path),
            "-out",
            str(path),
            "-voms",
            voms.vo,
        ]
        exit_code, _, stderr = run_cmd(cmd, timeout=120.0, env=self._security.command_env())
        self._check(cmd, exit_code, stderr)


class MyproxyLoginProxy(Proxy):
    """Proxy retrieved with login and passphrase."""

    def _retrieve(self, server: MyproxyServer, path: Path) -> None:
        cmd = self._logon_base(server, path) + ["-S"]
        exit_code, _, stderr = run_cmd(
            cmd,
            timeout=120.0,
            input=f"{self._credentials.password}\n",
            env=self._security.command_env(),
        )
        self._check(cmd, exit_code, stderr)


class MyproxyDelegatedProxy(Proxy):
    """Proxy retrieved by DN through trusted (passphrase-less) retrieval."""

    def _retrieve(self, server: MyproxyServer, path: Path) -> None:
        cmd = self._logon_base(server, path) + ["-n"]
        exit_code, _, stderr = run_cmd(
            cmd, timeout=120.0, env=self._security.command_env()
        )
        self._check(cmd, exit_code, stderr)


def delegate(
    credentials: GridUserCredentials,
    myproxy_server: MyproxyServer | None = None,
    voms_server: VomsServer | None = None,
) -> Proxy:
    """
    Choose the delegation strategy for *credentials*.

    Non-empty login and password select MyproxyLoginProxy; anything else
    falls back to MyproxyDelegatedProxy.
    """
    if credentials.has_login_password:
        return MyproxyLoginProxy(credentials, myproxy_server, voms_server)
    return MyproxyDelegatedProxy(credentials, myproxy_server, voms_server)
