"""
Domain enums for query dispatch and SMO discovery.

This module defines all enumeration types used in the domain layer.
"""

from enum import Enum


class ResultShape(Enum):
    """Output shapes produced by query execution."""

    DATASET = "dataset"  # every result set
    DATATABLE = "datatable"  # each result set
    DATAROW = "datarow"  # rows of the first result set
    PSOBJECT = "psobject"  # one mapping per row
    PSOBJECTARRAY = "psobjectarray"  # one list of mappings per result set
    SINGLEVALUE = "singlevalue"  # first column of the first row


class CommandType(Enum):
    """How query text is interpreted by the server."""

    TEXT = "text"
    STORED_PROCEDURE = "storedprocedure"


class SmoSource(Enum):
    """Where an SMO assembly was found."""

    LIBRARY = "library"
    GAC = "gac"  # .NET 4 GAC, v4.0_<version>__<token>
    GAC_LEGACY = "gac_legacy"  # .NET 2 GAC, <version>__<token>


class FailureStage(Enum):
    """Pipeline stage at which a target failed."""

    VALIDATION = "validation"
    SOURCE = "source"
    CONNECTION = "connection"
    EXECUTION = "execution"
