"""
Target domain models.

Defines the instance descriptor accepted by every command and the credential
model used for both SQL and Windows authentication.
"""

from __future__ import annotations

import socket
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

LOCALHOST_ALIASES = frozenset({"localhost", "127.0.0.1", "::1", ".", "(local)"})


class Credential(BaseModel):
    """
    Domain model for credentials.

    Used as SQL login when connecting to an instance and as the Windows
    account when opening a remote PowerShell session.
    """

    model_config = ConfigDict(frozen=True)

    username: str = Field(..., description="Login or DOMAIN\\user name")
    password: SecretStr = Field(..., description="Password")

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        """Validate username is not empty."""
        if not v or not v.strip():
            raise ValueError("Username cannot be empty")
        return v.strip()

    def get_password(self) -> str:
        """Get the plain text password."""
        return self.password.get_secret_value()  # pylint: disable=no-member


class InstanceTarget(BaseModel):
    """
    A SQL Server instance or computer name.

    Accepts the usual spellings: ``HOST``, ``HOST\\INSTANCE``,
    ``HOST,PORT`` and ``tcp:HOST,PORT``.
    """

    model_config = ConfigDict(frozen=True)

    host: str = Field(..., description="Computer name, FQDN or IP address")
    instance: Optional[str] = Field(None, description="Named instance (None for default)")
    port: Optional[int] = Field(None, description="TCP port when not using the browser")

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Host name cannot be empty")
        return v.strip()

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and (v < 1 or v > 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @classmethod
    def parse(cls, value: "str | InstanceTarget") -> "InstanceTarget":
        """Parse an instance string, passing existing targets through."""
        if isinstance(value, InstanceTarget):
            return value
        text = str(value).strip()
        if text.lower().startswith("tcp:"):
            text = text[4:]

        port = None
        if "," in text:
            text, port_text = text.rsplit(",", 1)
            try:
                port = int(port_text.strip())
            except ValueError as e:
                raise ValueError(f"Invalid port in instance name: {value!r}") from e

        instance = None
        if "\\" in text:
            text, instance = text.split("\\", 1)
            instance = instance.strip() or None
            if instance and instance.upper() == "MSSQLSERVER":
                instance = None

        return cls(host=text, instance=instance, port=port)

    @property
    def is_local(self) -> bool:
        """True for localhost aliases and this machine's own name."""
        host = self.host.lower()
        if host in LOCALHOST_ALIASES:
            return True
        local_name = socket.gethostname().lower()
        return host == local_name or host == local_name.split(".")[0]

    @property
    def computer_name(self) -> str:
        """Computer name, with localhost aliases resolved to this machine."""
        if self.host.lower() in LOCALHOST_ALIASES:
            return socket.gethostname()
        return self.host

    @property
    def server_instance(self) -> str:
        """Value for the ODBC ``SERVER=`` keyword."""
        if self.instance and self.port:
            return f"{self.host}\\{self.instance},{self.port}"
        if self.port:
            return f"{self.host},{self.port}"
        if self.instance:
            return f"{self.host}\\{self.instance}"
        return self.host

    def __str__(self) -> str:
        return self.server_instance
