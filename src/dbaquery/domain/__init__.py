"""
Domain layer package.

Pure data types shared by the application and infrastructure layers.
"""

from .enums import CommandType, FailureStage, ResultShape, SmoSource
from .errors import (
    ConnectionFailure,
    DbaQueryError,
    ExecutionError,
    InputValidationError,
    RemoteExecutionError,
    SourceError,
)
from .models import QueryOutcome, QueryTable, ServerMessage, SmoVersion, TargetFailure
from .options import QueryOptions
from .targets import Credential, InstanceTarget

__all__ = [
    "CommandType",
    "ConnectionFailure",
    "Credential",
    "DbaQueryError",
    "ExecutionError",
    "FailureStage",
    "InputValidationError",
    "InstanceTarget",
    "QueryOptions",
    "QueryOutcome",
    "QueryTable",
    "RemoteExecutionError",
    "ResultShape",
    "ServerMessage",
    "SmoSource",
    "SmoVersion",
    "SourceError",
    "TargetFailure",
]
