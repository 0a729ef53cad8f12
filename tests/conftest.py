"""
Shared test fixtures.

Provides an in-memory stand-in for pyodbc connections so query execution and
dispatch can be tested without a SQL Server.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pyodbc
import pytest

sys.path.insert(0, str(Path(__file__).parents[1] / "src"))

from dbaquery.domain.targets import InstanceTarget  # noqa: E402
from dbaquery.infrastructure.config_loader import Settings  # noqa: E402
from dbaquery.infrastructure.sql.connector import ServerSession  # noqa: E402


class FakeCursor:
    """
    Cursor that replays canned result sets.

    ``connection.results`` maps SQL text to a list of (columns, rows) result
    sets; anything else returns ``connection.default_results``.
    """

    def __init__(self, connection: FakeConnection):
        self.connection = connection
        self.description = None
        self.messages: list[tuple[str, str]] = []
        self._rows: list[tuple] = []
        self._sets: list[tuple[list[str], list[tuple]]] = []

    def execute(self, sql: str, *params: Any) -> FakeCursor:
        self.connection.executed.append((sql, params))
        self.connection.timeouts.append(self.connection.timeout)
        if self.connection.fail_on and self.connection.fail_on in sql:
            raise pyodbc.ProgrammingError("42000", f"Incorrect syntax near {self.connection.fail_on}")
        if sql == "SELECT DB_NAME()":
            self._sets = [(["name"], [(self.connection.database,)])]
        else:
            self._sets = list(self.connection.results.get(sql, self.connection.default_results))
        self.messages = [("[01000] (0)", text) for text in self.connection.messages]
        self._load_next()
        return self

    def _load_next(self) -> None:
        if self._sets:
            columns, rows = self._sets.pop(0)
            self.description = [(column, None) for column in columns]
            self._rows = list(rows)
        else:
            self.description = None
            self._rows = []

    def fetchall(self) -> list[tuple]:
        rows, self._rows = self._rows, []
        return rows

    def fetchone(self) -> tuple | None:
        return self._rows.pop(0) if self._rows else None

    def nextset(self) -> bool:
        self.messages = []
        if self._sets:
            self._load_next()
            return True
        return False

    def close(self) -> None:
        pass


class FakeConnection:
    """Records executed SQL and close calls."""

    def __init__(
        self,
        database: str = "master",
        results: dict[str, list] | None = None,
        default_results: list | None = None,
        messages: list[str] | None = None,
        fail_on: str | None = None,
    ):
        self.database = database
        self.results = results or {}
        self.default_results = default_results if default_results is not None else [(["value"], [(1,)])]
        self.messages = messages or []
        self.fail_on = fail_on
        self.executed: list[tuple[str, tuple]] = []
        self.closed = False
        self.timeout = 0
        self.timeouts: list[int] = []

    def cursor(self) -> FakeCursor:
        if self.closed:
            raise pyodbc.ProgrammingError("Attempt to use a closed connection.")
        return FakeCursor(self)

    def close(self) -> None:
        self.closed = True


def make_session(instance: str = "SQL01", database: str = "master", **kwargs) -> ServerSession:
    connection = FakeConnection(database=database, **kwargs)
    return ServerSession(InstanceTarget.parse(instance), connection, database=database)


@pytest.fixture
def fake_session():
    return make_session()


@pytest.fixture
def settings(tmp_path):
    return Settings(library_dir=tmp_path / "lib", temp_dir=tmp_path / "temp")
