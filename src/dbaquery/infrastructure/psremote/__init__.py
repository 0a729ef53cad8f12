"""
PSRemote Infrastructure Package.

PowerShell execution on local and remote computers using pywinrm.
"""

from dbaquery.infrastructure.psremote.client import (
    ConnectionConfig,
    PSRemoteClient,
    PSRemoteResult,
)
from dbaquery.infrastructure.psremote.executor import RemoteScriptRunner

__all__ = [
    "ConnectionConfig",
    "PSRemoteClient",
    "PSRemoteResult",
    "RemoteScriptRunner",
]
