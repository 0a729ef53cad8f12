"""
Exception hierarchy.

Every error carries the identifier of the target or item it concerns so the
dispatcher can report it without losing context. Callers chain the original
cause with ``raise ... from exc``.
"""

from __future__ import annotations


class DbaQueryError(Exception):
    """Base class for all dbaquery errors."""

    def __init__(self, message: str, target: str | None = None) -> None:
        super().__init__(message)
        self.target = target

    def __str__(self) -> str:
        message = super().__str__()
        if self.target:
            return f"[{self.target}] {message}"
        return message


class InputValidationError(DbaQueryError):
    """Conflicting parameters, bad paths, unsupported schemes or input types."""


class SourceError(DbaQueryError):
    """A query source could not be downloaded, read or scripted."""


class ConnectionFailure(DbaQueryError):
    """A connection to an instance could not be opened."""


class ExecutionError(DbaQueryError):
    """The server rejected a query or the driver failed mid-execution."""


class RemoteExecutionError(DbaQueryError):
    """A remote PowerShell command could not be run or parsed."""
