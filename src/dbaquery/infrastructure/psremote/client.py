"""
PSRemote Client - pywinrm wrapper.

Runs PowerShell on a computer: locally through powershell.exe for
localhost, remotely over WinRM otherwise.

Transport priority:
1. HTTPS (5986) with certificate validation
2. HTTPS (5986) without certificate validation
3. HTTP (5985), never with Basic auth
"""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass
from enum import Enum

import winrm  # pywinrm

from dbaquery.domain.targets import Credential, InstanceTarget

logger = logging.getLogger(__name__)


class Transport(Enum):
    """WinRM transport protocols."""

    HTTPS = "https"
    HTTP = "http"


class AuthMethod(Enum):
    """WinRM authentication methods."""

    NEGOTIATE = "negotiate"
    KERBEROS = "kerberos"
    NTLM = "ntlm"
    BASIC = "basic"


# (transport, auth, verify_ssl) in the order they are tried
CONNECTION_PLAN: list[tuple[Transport, AuthMethod, bool]] = [
    *[(Transport.HTTPS, auth, True) for auth in (AuthMethod.NEGOTIATE, AuthMethod.KERBEROS, AuthMethod.NTLM)],
    *[(Transport.HTTPS, auth, False) for auth in AuthMethod],
    *[(Transport.HTTP, auth, False) for auth in (AuthMethod.NEGOTIATE, AuthMethod.KERBEROS, AuthMethod.NTLM)],
]


@dataclass
class ConnectionConfig:
    """Configuration for a PowerShell session."""

    hostname: str
    credential: Credential | None = None
    port_http: int = 5985
    port_https: int = 5986
    timeout_seconds: int = 30
    operation_timeout_sec: int = 120


@dataclass
class PSRemoteResult:
    """Result from a PowerShell run."""

    success: bool
    stdout: str = ""
    stderr: str = ""
    return_code: int = -1
    transport_used: str = ""
    auth_used: str = ""
    error: str = ""


class PSRemoteClient:
    """
    PowerShell client for one computer.

    Tries transport+auth combinations until one works and keeps the
    working session for later calls.
    """

    def __init__(self, config: ConnectionConfig) -> None:
        self.config = config
        self._session: winrm.Session | None = None
        self._working_transport: Transport | None = None
        self._working_auth: AuthMethod | None = None
        self.is_localhost = InstanceTarget.parse(config.hostname).is_local

    def connect(self) -> bool:
        """
        Establish a WinRM session trying all combinations.

        Returns True for localhost without connecting.
        """
        if self.is_localhost:
            return True

        for transport, auth, verify_ssl in CONNECTION_PLAN:
            if self._try_connect(transport, auth, verify_ssl):
                if not verify_ssl:
                    logger.warning(
                        "Connected to %s over %s without certificate validation",
                        self.config.hostname, transport.value,
                    )
                return True

        logger.error("All connection attempts failed for %s", self.config.hostname)
        return False

    def _try_connect(self, transport: Transport, auth: AuthMethod, verify_ssl: bool) -> bool:
        """Try a single transport+auth combination."""
        port = self.config.port_https if transport is Transport.HTTPS else self.config.port_http
        endpoint = f"{transport.value}://{self.config.hostname}:{port}/wsman"
        credential = self.config.credential
        auth_pair = (
            (credential.username, credential.get_password()) if credential else (None, None)
        )

        logger.debug("Trying: %s with %s (SSL verify: %s)", endpoint, auth.value, verify_ssl)

        try:
            session = winrm.Session(
                target=endpoint,
                auth=auth_pair,
                transport=auth.value,
                server_cert_validation="validate" if verify_ssl else "ignore",
                operation_timeout_sec=self.config.operation_timeout_sec,
                read_timeout_sec=self.config.operation_timeout_sec + 10,
            )
            result = session.run_cmd("echo", ["OK"])
        except Exception as e:  # pywinrm surfaces transport errors from several libraries
            logger.debug("Attempt failed: %s - %s", type(e).__name__, str(e)[:100])
            return False

        if result.status_code == 0 and b"OK" in result.std_out:
            logger.info("Connected to %s: %s + %s", self.config.hostname, transport.value, auth.value)
            self._session = session
            self._working_transport = transport
            self._working_auth = auth
            return True
        return False

    def run_ps(self, script: str) -> PSRemoteResult:
        """Execute a PowerShell script on the configured computer."""
        if self.is_localhost:
            return self._run_local_ps(script)

        if not self._session and not self.connect():
            return PSRemoteResult(success=False, error="Failed to establish connection")

        transport = self._working_transport.value if self._working_transport else ""
        auth = self._working_auth.value if self._working_auth else ""
        try:
            result = self._session.run_ps(script)
        except Exception as e:
            logger.debug("PowerShell execution on %s failed", self.config.hostname, exc_info=True)
            return PSRemoteResult(success=False, error=str(e), transport_used=transport, auth_used=auth)

        return PSRemoteResult(
            success=result.status_code == 0,
            stdout=result.std_out.decode("utf-8", errors="replace"),
            stderr=result.std_err.decode("utf-8", errors="replace"),
            return_code=result.status_code,
            transport_used=transport,
            auth_used=auth,
        )

    def _run_local_ps(self, script: str) -> PSRemoteResult:
        """Run a script through a local powershell.exe via a temp .ps1 file."""
        with tempfile.NamedTemporaryFile(
            mode="w", suffix=".ps1", delete=False, encoding="utf-8"
        ) as f:
            f.write(script)
            script_path = f.name

        cmd = ["powershell.exe", "-NoProfile", "-ExecutionPolicy", "Bypass", "-File", script_path]
        logger.debug("Executing: %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.config.operation_timeout_sec,
            )
        except subprocess.TimeoutExpired:
            return PSRemoteResult(
                success=False,
                error=f"Script timed out after {self.config.operation_timeout_sec}s",
                transport_used="local",
                auth_used="local",
            )
        except OSError as e:
            return PSRemoteResult(success=False, error=str(e), transport_used="local", auth_used="local")
        finally:
            try:
                os.unlink(script_path)
            except OSError:
                pass

        return PSRemoteResult(
            success=result.returncode == 0,
            stdout=result.stdout,
            stderr=result.stderr,
            return_code=result.returncode,
            transport_used="local",
            auth_used="local",
        )

    def close(self) -> None:
        """Drop the session."""
        self._session = None
