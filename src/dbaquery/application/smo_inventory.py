"""
SMO Inventory Service.

Lists the SQL Server Management Objects versions installed on one or more
computers. The local computer is inspected in-process; other computers are
inspected over PowerShell remoting.

Usage:
    service = SmoInventoryService()
    for record in service.get_management_object(["localhost", "SQL02"], version="16"):
        print(record.computer_name, record.version, record.load_template)
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from dbaquery.domain.enums import SmoSource
from dbaquery.domain.errors import DbaQueryError, RemoteExecutionError
from dbaquery.domain.models import SmoVersion
from dbaquery.domain.targets import Credential, InstanceTarget
from dbaquery.infrastructure.config_loader import Settings
from dbaquery.infrastructure.psremote import RemoteScriptRunner
from dbaquery.infrastructure.smo import REMOTE_SCAN_SCRIPT, gac_versions_from_names, scan_local

logger = logging.getLogger(__name__)

RunnerFactory = Callable[[str, Optional[Credential]], RemoteScriptRunner]


class SmoInventoryService:
    """Enumerates installed SMO versions per computer."""

    def __init__(
        self,
        settings: Settings | None = None,
        runner_factory: RunnerFactory = RemoteScriptRunner.from_config,
    ):
        self.settings = settings or Settings()
        self.runner_factory = runner_factory

    def get_management_object(
        self,
        computer_names: str | Iterable[str] = ("localhost",),
        version: str | int | None = None,
        credential: Credential | None = None,
        enable_exception: bool = False,
    ) -> list[SmoVersion]:
        """
        Collect SMO versions from every computer, optionally filtered.

        ``version`` is a prefix filter: "13" keeps "13.0.1.0" and drops
        "130.1" and "14.0.2.0". A computer that fails is logged and skipped
        unless ``enable_exception`` is set.
        """
        if isinstance(computer_names, str):
            computer_names = [computer_names]

        records: list[SmoVersion] = []
        for name in computer_names:
            try:
                found = self._inspect(name, credential)
            except (DbaQueryError, OSError, ValueError) as e:
                if enable_exception:
                    if isinstance(e, DbaQueryError):
                        raise
                    raise RemoteExecutionError(str(e), target=str(name)) from e
                logger.warning("Failure collecting SMO versions on %s: %s", name, e)
                continue

            matched = [record for record in found if record.matches(version)]
            logger.info(
                "%s: %d SMO versions found, %d matched", name, len(found), len(matched)
            )
            records.extend(matched)

        return records

    def _inspect(self, name: str, credential: Credential | None) -> list[SmoVersion]:
        target = InstanceTarget.parse(self.settings.resolve_target(str(name)))
        if target.is_local:
            logger.debug("Inspecting local computer %s", target.computer_name)
            return scan_local(target.computer_name, self.settings.library_dir)

        logger.debug("Inspecting %s over PowerShell remoting", target.host)
        runner = self.runner_factory(target.host, credential)
        try:
            entries = runner.run_json(REMOTE_SCAN_SCRIPT, "SMO scan")
        finally:
            runner.close()

        if isinstance(entries, dict):
            entries = [entries]
        try:
            parsed = [
                (entry["Name"], SmoSource(entry.get("Source", "gac")), entry.get("Path", ""))
                for entry in entries
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteExecutionError(f"Unexpected SMO scan output: {e}", target=target.host) from e
        return gac_versions_from_names(target.computer_name, parsed)


def get_management_object(
    computer_names: str | Iterable[str] = ("localhost",),
    version: str | int | None = None,
    credential: Credential | None = None,
    enable_exception: bool = False,
    settings: Settings | None = None,
) -> list[SmoVersion]:
    """Module-level shortcut for ``SmoInventoryService.get_management_object``."""
    return SmoInventoryService(settings).get_management_object(
        computer_names, version=version, credential=credential, enable_exception=enable_exception
    )
