"""
Script runner - PowerShell scripts that answer in JSON.

Wraps PSRemoteClient: runs a script, then extracts and parses the JSON
document it printed.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from dbaquery.domain.errors import RemoteExecutionError
from dbaquery.domain.targets import Credential
from dbaquery.infrastructure.psremote.client import ConnectionConfig, PSRemoteClient

logger = logging.getLogger(__name__)


class RemoteScriptRunner:
    """Runs JSON-emitting PowerShell scripts on one computer."""

    def __init__(self, client: PSRemoteClient) -> None:
        self.client = client

    @classmethod
    def from_config(cls, hostname: str, credential: Credential | None = None) -> RemoteScriptRunner:
        """Create a runner from connection parameters."""
        return cls(PSRemoteClient(ConnectionConfig(hostname=hostname, credential=credential)))

    def run_json(self, script: str, script_name: str = "script") -> Any:
        """
        Execute ``script`` and parse the JSON it prints.

        Output with no JSON document is treated as an empty list.

        Raises:
            RemoteExecutionError: If the script fails or prints invalid JSON
        """
        hostname = self.client.config.hostname
        result = self.client.run_ps(script)

        if not result.success:
            raise RemoteExecutionError(
                f"{script_name} failed: {(result.stderr or result.error).strip()}",
                target=hostname,
            )

        output = result.stdout.strip()
        starts = [i for i in (output.find("["), output.find("{")) if i >= 0]
        if not starts:
            logger.debug("%s on %s printed no JSON", script_name, hostname)
            return []

        start = min(starts)
        end = max(output.rfind("]"), output.rfind("}")) + 1
        try:
            return json.loads(output[start:end])
        except json.JSONDecodeError as e:
            raise RemoteExecutionError(
                f"Failed to parse JSON from {script_name}: {e}", target=hostname
            ) from e

    def close(self) -> None:
        self.client.close()
