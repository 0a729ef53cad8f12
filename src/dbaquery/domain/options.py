"""
Query execution options.

Every recognised execution option lives on ``QueryOptions`` and is handed to
the execution layer by value.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import CommandType, ResultShape


class QueryOptions(BaseModel):
    """Options that shape how a query is executed and returned."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    as_: ResultShape = Field(
        ResultShape.DATAROW, alias="as", description="Output shape of the results"
    )
    query_timeout: int = Field(600, description="Seconds before a query is cancelled (0 waits forever)")
    parameters: Optional[Union[Mapping[str, Any], Sequence[Any]]] = Field(
        None, description="Named (mapping) or positional (sequence) query parameters"
    )
    command_type: CommandType = Field(CommandType.TEXT, description="Text or stored procedure")
    append_server_instance: bool = Field(
        False, description="Add a ServerInstance column to every row"
    )
    messages_to_output: bool = Field(
        False, description="Return server messages alongside results instead of logging them"
    )
    no_exec: bool = Field(False, description="Wrap execution in SET NOEXEC ON/OFF")
    read_only: bool = Field(False, description="Connect with ApplicationIntent=ReadOnly")
    append_connection_string: Optional[str] = Field(
        None, description="Extra keywords appended to the connection string"
    )
    enable_exception: bool = Field(
        False, description="Raise on the first failure instead of warning and continuing"
    )

    @field_validator("as_", mode="before")
    @classmethod
    def normalize_shape(cls, v):
        """Accept shape names case-insensitively."""
        if isinstance(v, str):
            return ResultShape(v.lower())
        return v

    @field_validator("command_type", mode="before")
    @classmethod
    def normalize_command_type(cls, v):
        if isinstance(v, str):
            return CommandType(v.lower().replace("_", ""))
        return v

    @field_validator("query_timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Query timeout cannot be negative")
        return v

    @field_validator("parameters", mode="before")
    @classmethod
    def validate_parameters(cls, v):
        """Strings are sequences too, but never a valid parameter list."""
        if isinstance(v, (str, bytes)):
            raise ValueError("Parameters must be a mapping or a sequence of values")
        if isinstance(v, Mapping):
            return {str(k).lstrip("@"): value for k, value in v.items()}
        return v
