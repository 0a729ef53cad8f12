"""
Query execution against an open session.

Splits scripts into GO batches, binds parameters, collects every result set
and server message, then shapes the output as requested.
"""

from __future__ import annotations

import datetime
import decimal
import logging
import re
import uuid
from collections import namedtuple
from typing import Any, Mapping, Sequence

import pyodbc

from dbaquery.domain.enums import CommandType, ResultShape
from dbaquery.domain.errors import ExecutionError
from dbaquery.domain.models import QueryTable, ServerMessage
from dbaquery.domain.options import QueryOptions
from dbaquery.infrastructure.sql.connector import ServerSession

logger = logging.getLogger(__name__)

SERVER_INSTANCE_COLUMN = "ServerInstance"

_GO_LINE = re.compile(r"^\s*GO(?:\s+(\d+))?\s*$", re.IGNORECASE)
_LINE_COMMENT = re.compile(r"--.*$", re.MULTILINE)
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
# Literals, quoted identifiers and comments are matched whole so a ? inside
# them is not taken for a parameter marker
_MARKER_SCAN = re.compile(
    r"'(?:[^']|'')*'|\[[^\]]*\]|\"[^\"]*\"|--[^\n]*|/\*.*?\*/|(\?)", re.DOTALL
)


def _has_sql(batch: str) -> bool:
    cleaned = _LINE_COMMENT.sub("", batch)
    cleaned = _BLOCK_COMMENT.sub("", cleaned)
    return bool(cleaned.strip())


def count_markers(batch: str) -> int:
    """Number of ``?`` parameter markers outside literals and comments."""
    return sum(1 for match in _MARKER_SCAN.finditer(batch) if match.group(1))


def split_batches(script: str) -> list[str]:
    """
    Split script content into GO-separated batches.

    ``GO n`` repeats the preceding batch n times. Empty and comment-only
    batches are dropped.
    """
    batches: list[str] = []
    current: list[str] = []

    def flush(count: int) -> None:
        batch = "\n".join(current).strip()
        if _has_sql(batch):
            batches.extend([batch] * count)

    for line in script.splitlines():
        match = _GO_LINE.match(line)
        if match:
            flush(int(match.group(1) or 1))
            current = []
        else:
            current.append(line)
    flush(1)

    return batches


def sql_type_for(value: Any) -> str:
    """T-SQL type used to declare a named parameter holding ``value``."""
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "BIT"
    if isinstance(value, int):
        return "BIGINT"
    if isinstance(value, float):
        return "FLOAT"
    if isinstance(value, decimal.Decimal):
        exponent = value.as_tuple().exponent
        scale = min(38, max(0, -exponent)) if isinstance(exponent, int) else 10
        return f"DECIMAL(38, {scale})"
    if isinstance(value, datetime.datetime):
        return "DATETIME2"
    if isinstance(value, datetime.date):
        return "DATE"
    if isinstance(value, datetime.time):
        return "TIME"
    if isinstance(value, (bytes, bytearray)):
        return "VARBINARY(MAX)"
    if isinstance(value, uuid.UUID):
        return "UNIQUEIDENTIFIER"
    return "NVARCHAR(MAX)"


def _bind_value(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def bind_parameters(
    batch: str,
    parameters: Mapping[str, Any] | Sequence[Any] | None,
    command_type: CommandType = CommandType.TEXT,
) -> tuple[str, list[Any]]:
    """
    Turn a batch plus parameters into ODBC text with ``?`` markers.

    Sequences bind positionally to batches that contain ``?`` markers;
    batches without markers get no values. Mappings bind by name: text
    batches get a ``DECLARE`` prologue for every referenced name, stored
    procedures get ``@name = ?`` arguments.
    """
    if command_type is CommandType.STORED_PROCEDURE:
        procedure = batch.strip()
        if not parameters:
            return f"EXEC {procedure}", []
        if isinstance(parameters, Mapping):
            arguments = ", ".join(f"@{name} = ?" for name in parameters)
            values = [_bind_value(v) for v in parameters.values()]
        else:
            arguments = ", ".join("?" for _ in parameters)
            values = [_bind_value(v) for v in parameters]
        return f"EXEC {procedure} {arguments}", values

    if not parameters:
        return batch, []

    if not isinstance(parameters, Mapping):
        if not count_markers(batch):
            return batch, []
        return batch, [_bind_value(v) for v in parameters]

    declarations = []
    values = []
    for name, value in parameters.items():
        if not re.search(rf"@{re.escape(name)}\b", batch, re.IGNORECASE):
            continue
        declarations.append(f"DECLARE @{name} {sql_type_for(value)} = ?;")
        values.append(_bind_value(value))

    if not declarations:
        return batch, []
    return "\n".join([*declarations, batch]), values


def _drain_messages(cursor: Any, server_instance: str, sink: list[ServerMessage]) -> None:
    # Cursor.messages is reset by every execute/nextset
    for _kind, text in getattr(cursor, "messages", None) or []:
        sink.append(ServerMessage(server_instance=server_instance, text=str(text)))


def _run_batch(
    cursor: Any, sql: str, values: list[Any], server_instance: str,
    tables: list[QueryTable], messages: list[ServerMessage],
) -> None:
    cursor.execute(sql, *values)
    while True:
        _drain_messages(cursor, server_instance, messages)
        if cursor.description:
            columns = [column[0] for column in cursor.description]
            rows = [tuple(row) for row in cursor.fetchall()]
            tables.append(QueryTable(columns=columns, rows=rows))
        if not cursor.nextset():
            break


def shape_results(tables: list[QueryTable], shape: ResultShape) -> list[Any]:
    """Convert collected result sets into output items."""
    if shape is ResultShape.DATASET:
        return [tables]
    if not tables:
        return []
    if shape is ResultShape.DATATABLE:
        return list(tables)
    if shape is ResultShape.DATAROW:
        first = tables[0]
        row_type = namedtuple("DataRow", first.columns, rename=True)
        return [row_type(*row) for row in first.rows]
    if shape is ResultShape.PSOBJECT:
        return tables[0].as_dicts()
    if shape is ResultShape.PSOBJECTARRAY:
        return [table.as_dicts() for table in tables]
    if shape is ResultShape.SINGLEVALUE:
        first = tables[0]
        if not first.rows or not first.columns:
            return []
        return [first.rows[0][0]]
    raise ValueError(f"Unknown result shape: {shape}")


def execute_query(
    session: ServerSession,
    query: str,
    options: QueryOptions | None = None,
) -> list[Any]:
    """
    Execute ``query`` on ``session`` and return shaped output items.

    Raises:
        ExecutionError: If the driver or server rejects any batch
    """
    options = options or QueryOptions()
    server_instance = session.target.server_instance
    connection = session.connection

    if options.command_type is CommandType.STORED_PROCEDURE:
        batches = [query.strip()]
    else:
        batches = split_batches(query)

    tables: list[QueryTable] = []
    messages: list[ServerMessage] = []

    previous_timeout = connection.timeout
    connection.timeout = options.query_timeout
    cursor = connection.cursor()
    try:
        if options.no_exec:
            cursor.execute("SET NOEXEC ON")
        try:
            for number, batch in enumerate(batches, start=1):
                sql, values = bind_parameters(batch, options.parameters, options.command_type)
                logger.debug("[%s] batch %d/%d", server_instance, number, len(batches))
                _run_batch(cursor, sql, values, server_instance, tables, messages)
        finally:
            if options.no_exec:
                cursor.execute("SET NOEXEC OFF")
    except pyodbc.Error as e:
        raise ExecutionError(f"Query failed: {e}", target=server_instance) from e
    finally:
        cursor.close()
        connection.timeout = previous_timeout

    logger.debug(
        "[%s] %d batches, %d result sets, %d messages",
        server_instance, len(batches), len(tables), len(messages),
    )

    if options.append_server_instance:
        tables = [table.with_column(SERVER_INSTANCE_COLUMN, server_instance) for table in tables]

    output: list[Any] = []
    if options.messages_to_output:
        output.extend(messages)
    else:
        for message in messages:
            logger.info("[%s] %s", message.server_instance, message.text)

    output.extend(shape_results(tables, options.as_))
    return output
