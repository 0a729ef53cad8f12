"""
CLI result formatters.

Renders SMO versions, query results and failures as rich tables or JSON,
keeping display logic out of the command functions.
"""

from __future__ import annotations

import json
from typing import Any, Iterable

from rich.console import Console
from rich.table import Table

from dbaquery.domain.models import QueryTable, ServerMessage, SmoVersion, TargetFailure

console = Console()
err_console = Console(stderr=True)


def to_jsonable(item: Any) -> Any:
    """Convert result items into plain JSON-friendly structures."""
    if isinstance(item, QueryTable):
        return {"columns": item.columns, "rows": [list(row) for row in item.rows]}
    if isinstance(item, ServerMessage):
        return {"server_instance": item.server_instance, "message": item.text}
    if isinstance(item, SmoVersion):
        return item.to_dict()
    if isinstance(item, tuple) and hasattr(item, "_asdict"):
        return {key: to_jsonable(value) for key, value in item._asdict().items()}
    if isinstance(item, dict):
        return {key: to_jsonable(value) for key, value in item.items()}
    if isinstance(item, (list, tuple)):
        return [to_jsonable(value) for value in item]
    return item


def print_json(items: Iterable[Any]) -> None:
    console.print_json(json.dumps([to_jsonable(item) for item in items], default=str))


def display_smo_versions(records: list[SmoVersion]) -> None:
    table = Table(title="SMO Versions")
    table.add_column("Computer", style="cyan", no_wrap=True)
    table.add_column("Version", style="green")
    table.add_column("Loaded", style="yellow")
    table.add_column("Source", style="blue")
    table.add_column("Load Template", style="white")

    for record in records:
        table.add_row(
            record.computer_name,
            record.version,
            "yes" if record.loaded else "no",
            record.source.value,
            record.load_template,
        )
    console.print(table)


def _table_from_rows(title: str | None, columns: list[str], rows: Iterable[Iterable[Any]]) -> Table:
    table = Table(title=title)
    for column in columns:
        table.add_column(column or "(no name)")
    for row in rows:
        table.add_row(*("NULL" if value is None else str(value) for value in row))
    return table


def display_query_results(items: list[Any]) -> None:
    """
    Display whatever the executor produced.

    Consecutive rows and mappings are grouped into one table; tables,
    datasets and messages print on their own.
    """
    pending_rows: list[tuple] = []
    pending_dicts: list[dict] = []

    def flush() -> None:
        if pending_rows:
            columns = list(getattr(pending_rows[0], "_fields", ()))
            if not columns:
                width = max(len(row) for row in pending_rows)
                columns = [f"Column{i + 1}" for i in range(width)]
            console.print(_table_from_rows(None, columns, pending_rows))
            pending_rows.clear()
        if pending_dicts:
            columns = list(pending_dicts[0].keys())
            console.print(_table_from_rows(None, columns, (d.values() for d in pending_dicts)))
            pending_dicts.clear()

    for item in items:
        if isinstance(item, tuple):
            pending_rows.append(item)
            continue
        if isinstance(item, dict):
            pending_dicts.append(item)
            continue
        flush()
        if isinstance(item, QueryTable):
            console.print(_table_from_rows(None, item.columns, item.rows))
        elif isinstance(item, ServerMessage):
            console.print(f"[dim]{item.server_instance}:[/dim] {item.text}")
        elif isinstance(item, list):
            for table in item:
                if isinstance(table, QueryTable):
                    console.print(_table_from_rows(None, table.columns, table.rows))
                elif isinstance(table, dict):
                    pending_dicts.append(table)
            flush()
        else:
            console.print("NULL" if item is None else str(item))
    flush()


def display_failures(failures: list[TargetFailure]) -> None:
    for failure in failures:
        err_console.print(
            f"[yellow]WARNING[/yellow] {failure.target} ({failure.stage.value}): {failure.message}"
        )
