"""
SQL Server infrastructure package.

Contains connection management and query execution.
"""

from dbaquery.infrastructure.sql.connector import (
    DatabaseHandle,
    ServerSession,
    build_connection_string,
    connect_instance,
    detect_odbc_driver,
)
from dbaquery.infrastructure.sql.executor import (
    execute_query,
    shape_results,
    split_batches,
)

__all__ = [
    "DatabaseHandle",
    "ServerSession",
    "build_connection_string",
    "connect_instance",
    "detect_odbc_driver",
    "execute_query",
    "shape_results",
    "split_batches",
]
