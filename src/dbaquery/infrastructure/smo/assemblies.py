"""
SMO assembly probing.

Finds SQL Server Management Objects assemblies in the bundled library
directory and in both Windows GAC layouts, reads their versions, and builds
the pythonnet expression that loads each one.
"""

from __future__ import annotations

import logging
import os
import struct
import sys
from pathlib import Path

from dbaquery.domain.enums import SmoSource
from dbaquery.domain.models import SmoVersion

logger = logging.getLogger(__name__)

SMO_ASSEMBLY = "Microsoft.SqlServer.Smo"
SMO_PUBLIC_KEY_TOKEN = "89845dcd8080cc91"

# VS_FIXEDFILEINFO.dwSignature, little endian
_FIXED_FILE_INFO_SIGNATURE = b"\xbd\x04\xef\xfe"


def gac_roots(system_root: str | Path) -> list[tuple[Path, SmoSource]]:
    """SMO folders of the .NET 4 and the legacy GAC."""
    root = Path(system_root)
    return [
        (root / "Microsoft.NET" / "assembly" / "GAC_MSIL" / SMO_ASSEMBLY, SmoSource.GAC),
        (root / "assembly" / "GAC_MSIL" / SMO_ASSEMBLY, SmoSource.GAC_LEGACY),
    ]


def parse_gac_dirname(name: str) -> str | None:
    """
    Extract the version from a GAC folder name.

    ``v4.0_16.100.0.0__89845dcd8080cc91`` and ``13.0.0.0__89845dcd8080cc91``
    both carry the version before the double underscore.
    """
    version = name.split("__", 1)[0]
    if version.lower().startswith("v") and "_" in version:
        version = version.split("_", 1)[1]
    if not version or not all(part.isdigit() for part in version.split(".")):
        return None
    return version


def read_file_version(path: str | Path) -> str | None:
    """
    Read the product version from a PE file's VS_FIXEDFILEINFO block.

    Returns None when the file carries no version resource.
    """
    data = Path(path).read_bytes()
    offset = data.find(_FIXED_FILE_INFO_SIGNATURE)
    if offset < 0 or offset + 24 > len(data):
        return None
    # signature, struct version, file MS/LS, product MS/LS
    _, _, _, _, product_ms, product_ls = struct.unpack_from("<6I", data, offset)
    return "%d.%d.%d.%d" % (
        product_ms >> 16, product_ms & 0xFFFF, product_ls >> 16, product_ls & 0xFFFF,
    )


def gac_load_template(version: str) -> str:
    return (
        f'clr.AddReference("{SMO_ASSEMBLY}, Version={version}, '
        f'Culture=neutral, PublicKeyToken={SMO_PUBLIC_KEY_TOKEN}")'
    )


def library_load_template(path: str | Path) -> str:
    return f'clr.AddReference(r"{Path(path).with_suffix("")}")'


def loaded_smo_assemblies() -> tuple[set[str], set[str]]:
    """
    Versions and locations of SMO assemblies loaded in this process.

    Only looks when the caller already imported pythonnet; nothing can be
    loaded into a runtime that was never started.
    """
    if "clr" not in sys.modules:
        return set(), set()

    from System import AppDomain  # pylint: disable=import-error

    versions: set[str] = set()
    locations: set[str] = set()
    for assembly in AppDomain.CurrentDomain.GetAssemblies():
        full_name = str(assembly.FullName)
        if not full_name.startswith(f"{SMO_ASSEMBLY},"):
            continue
        versions.add(str(assembly.GetName().Version))
        if not assembly.IsDynamic and assembly.Location:
            locations.add(os.path.normcase(str(assembly.Location)))
    return versions, locations


def gac_versions_from_names(
    computer_name: str,
    entries: list[tuple[str, SmoSource, str]],
    loaded_versions: set[str] | None = None,
) -> list[SmoVersion]:
    """Build records from (folder name, source, path) GAC entries."""
    loaded_versions = loaded_versions or set()
    records = []
    for name, source, path in entries:
        version = parse_gac_dirname(name)
        if version is None:
            logger.debug("Skipping unrecognised GAC folder: %s", name)
            continue
        records.append(SmoVersion(
            computer_name=computer_name,
            version=version,
            loaded=version in loaded_versions,
            load_template=gac_load_template(version),
            source=source,
            path=path,
        ))
    return records


def scan_local(
    computer_name: str,
    library_dir: str | Path,
    system_root: str | Path | None = None,
    include_gac: bool | None = None,
) -> list[SmoVersion]:
    """
    Inspect this computer for SMO assemblies.

    The bundled library is always checked; the GAC only on Windows unless
    ``include_gac`` says otherwise.
    """
    loaded_versions, loaded_locations = loaded_smo_assemblies()
    records: list[SmoVersion] = []

    library_file = Path(library_dir) / f"{SMO_ASSEMBLY}.dll"
    if library_file.is_file():
        version = read_file_version(library_file)
        if version:
            records.append(SmoVersion(
                computer_name=computer_name,
                version=version,
                loaded=os.path.normcase(str(library_file)) in loaded_locations,
                load_template=library_load_template(library_file),
                source=SmoSource.LIBRARY,
                path=str(library_file),
            ))
        else:
            logger.warning("No version resource in %s", library_file)
    else:
        logger.debug("No bundled SMO library at %s", library_file)

    if include_gac is None:
        include_gac = sys.platform == "win32"
    if not include_gac:
        return records

    system_root = system_root or os.environ.get("SystemRoot", r"C:\Windows")
    entries = []
    for folder, source in gac_roots(system_root):
        if not folder.is_dir():
            continue
        for child in sorted(folder.iterdir(), key=lambda p: p.name, reverse=True):
            if child.is_dir():
                entries.append((child.name, source, str(child)))

    records.extend(gac_versions_from_names(computer_name, entries, loaded_versions))
    return records


# Same GAC walk as scan_local, for computers reached over WinRM
REMOTE_SCAN_SCRIPT = r"""
$ErrorActionPreference = 'Stop'
$results = @()
$roots = @(
    @{ Path = "$env:SystemRoot\Microsoft.NET\assembly\GAC_MSIL\Microsoft.SqlServer.Smo"; Source = 'gac' },
    @{ Path = "$env:SystemRoot\assembly\GAC_MSIL\Microsoft.SqlServer.Smo"; Source = 'gac_legacy' }
)
foreach ($root in $roots) {
    if (-not (Test-Path -LiteralPath $root.Path)) { continue }
    foreach ($dir in (Get-ChildItem -LiteralPath $root.Path -Directory | Sort-Object Name -Descending)) {
        $results += [pscustomobject]@{ Name = $dir.Name; Source = $root.Source; Path = $dir.FullName }
    }
}
ConvertTo-Json -InputObject @($results) -Compress
"""
