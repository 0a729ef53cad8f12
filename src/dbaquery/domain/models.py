"""
Domain records.

Contains the data structures returned by SMO discovery and query dispatch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .enums import FailureStage, SmoSource


# ============================================================================
# SMO Discovery
# ============================================================================

@dataclass
class SmoVersion:
    """
    One installed SMO assembly version on one computer.

    Attributes:
        computer_name: Computer the assembly was found on
        version: Dotted assembly or product version
        loaded: Whether this version is loaded in the current .NET runtime
        load_template: Expression that loads this exact version via pythonnet
        source: Library file or GAC layout the version came from
        path: Filesystem location on the inspected computer
    """
    computer_name: str
    version: str
    loaded: bool = False
    load_template: str = ""
    source: SmoSource = SmoSource.GAC
    path: str = ""

    def matches(self, version_filter: str | int | None) -> bool:
        """Prefix match, so "13" selects "13.0.1.0" but not "130.1"."""
        if version_filter is None or str(version_filter) == "":
            return True
        prefix = str(version_filter)
        if not prefix.endswith("."):
            prefix += "."
        return self.version.startswith(prefix)

    def to_dict(self) -> dict[str, Any]:
        return {
            "computer_name": self.computer_name,
            "version": self.version,
            "loaded": self.loaded,
            "load_template": self.load_template,
            "source": self.source.value,
            "path": self.path,
        }


# ============================================================================
# Query Results
# ============================================================================

@dataclass
class QueryTable:
    """A single result set: column names plus row tuples."""
    columns: list[str] = field(default_factory=list)
    rows: list[tuple] = field(default_factory=list)

    def as_dicts(self) -> list[dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self.rows]

    def with_column(self, name: str, value: Any) -> QueryTable:
        """Return a copy with a constant column appended."""
        return QueryTable(
            columns=[*self.columns, name],
            rows=[(*row, value) for row in self.rows],
        )

    def __len__(self) -> int:
        return len(self.rows)


@dataclass
class ServerMessage:
    """Informational message (PRINT, low severity RAISERROR) from the server."""
    server_instance: str
    text: str


@dataclass
class TargetFailure:
    """
    A per-target or per-item error that did not abort the invocation.

    Attributes:
        target: Instance, database or source identifier
        stage: Where the failure happened
        message: Human readable description
        error: Original exception
    """
    target: str
    stage: FailureStage
    message: str
    error: BaseException | None = None


@dataclass
class QueryOutcome:
    """Everything an invocation produced."""
    results: list[Any] = field(default_factory=list)
    failures: list[TargetFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures
