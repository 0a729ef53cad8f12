"""SMO assembly discovery."""

from dbaquery.infrastructure.smo.assemblies import (
    REMOTE_SCAN_SCRIPT,
    gac_versions_from_names,
    parse_gac_dirname,
    read_file_version,
    scan_local,
)

__all__ = [
    "REMOTE_SCAN_SCRIPT",
    "gac_versions_from_names",
    "parse_gac_dirname",
    "read_file_version",
    "scan_local",
]
