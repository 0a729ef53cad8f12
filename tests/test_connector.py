"""
Tests for SQL Server connection handling.

pyodbc.connect and pyodbc.drivers are patched; no server or driver is needed.
"""

from unittest.mock import MagicMock, patch

import pyodbc
import pytest

from dbaquery.domain import ConnectionFailure, Credential, InstanceTarget
from dbaquery.infrastructure.config_loader import Settings
from dbaquery.infrastructure.sql import (
    DatabaseHandle,
    build_connection_string,
    connect_instance,
    detect_odbc_driver,
)

from conftest import FakeConnection, make_session

DRIVER = "ODBC Driver 18 for SQL Server"


@pytest.fixture
def driver_settings():
    return Settings(odbc_driver=DRIVER)


class TestDetectDriver:
    """Test cases for ODBC driver detection."""

    def test_prefers_newest(self):
        with patch("pyodbc.drivers", return_value=["SQL Server", "ODBC Driver 17 for SQL Server", DRIVER]):
            assert detect_odbc_driver() == DRIVER

    def test_fallback(self):
        with patch("pyodbc.drivers", return_value=["SQL Server"]):
            assert detect_odbc_driver() == "SQL Server"

    def test_none_installed(self):
        with patch("pyodbc.drivers", return_value=["PostgreSQL Unicode"]):
            with pytest.raises(ConnectionFailure, match="No SQL Server ODBC driver"):
                detect_odbc_driver()


class TestBuildConnectionString:
    """Test cases for connection string building."""

    def test_windows_auth(self, driver_settings):
        conn_str = build_connection_string(InstanceTarget.parse("SQL01\\APPS"), settings=driver_settings)
        parts = conn_str.split(";")
        assert parts[0] == "DRIVER={ODBC Driver 18 for SQL Server}"
        assert "SERVER=SQL01\\APPS" in parts
        assert "Trusted_Connection=yes" in parts
        assert not any(p.startswith("DATABASE=") for p in parts)

    def test_sql_login_database_and_read_only(self, driver_settings):
        conn_str = build_connection_string(
            InstanceTarget.parse("SQL01,1433"),
            database="Sales",
            credential=Credential(username="app", password="p;w{d}"),
            read_only=True,
            settings=driver_settings,
        )
        assert "SERVER=SQL01,1433" in conn_str
        assert "DATABASE=Sales" in conn_str
        assert "ApplicationIntent=ReadOnly" in conn_str
        assert "UID=app" in conn_str
        assert "PWD={p;w{d}}}" in conn_str
        assert "Trusted_Connection" not in conn_str

    def test_appended_connection_string(self, driver_settings):
        conn_str = build_connection_string(
            InstanceTarget.parse("SQL01"),
            append_connection_string="MultiSubnetFailover=Yes;",
            settings=driver_settings,
        )
        assert conn_str.endswith(";MultiSubnetFailover=Yes")

    def test_driver_detected_when_not_configured(self):
        with patch("pyodbc.drivers", return_value=["ODBC Driver 17 for SQL Server"]):
            conn_str = build_connection_string(InstanceTarget.parse("SQL01"), settings=Settings())
        assert conn_str.startswith("DRIVER={ODBC Driver 17 for SQL Server}")


class TestConnectInstance:
    """Test cases for connect_instance."""

    def test_driver_pooling_disabled(self):
        assert pyodbc.pooling is False

    def test_opens_session(self, driver_settings):
        connection = FakeConnection()
        with patch("pyodbc.connect", return_value=connection) as connect:
            session = connect_instance("SQL01", database="Sales", settings=driver_settings)

        assert session.connection is connection
        assert session.target.host == "SQL01"
        assert connect.call_args.kwargs == {"autocommit": True, "timeout": 15}
        assert "DATABASE=Sales" in connect.call_args.args[0]

    def test_driver_error_wrapped(self, driver_settings):
        error = pyodbc.OperationalError("HYT00", "Login timeout expired")
        with patch("pyodbc.connect", side_effect=error):
            with pytest.raises(ConnectionFailure, match="Failure connecting") as exc:
                connect_instance("SQL01", settings=driver_settings)
        assert exc.value.target == "SQL01"

    def test_unparseable_target(self, driver_settings):
        with pytest.raises(ConnectionFailure):
            connect_instance("SQL01,port", settings=driver_settings)


class TestServerSession:
    """Test cases for ServerSession."""

    def test_database_read_from_server(self):
        session = make_session(database="Sales")
        assert session.database == "Sales"
        assert session.connection.executed[-1][0] == "SELECT DB_NAME()"

    def test_database_cached_after_close(self):
        session = make_session(database="Sales")
        session.close()
        assert not session.is_open
        assert session.database == "Sales"

    def test_database_falls_back_on_driver_error(self):
        session = make_session(database="Sales", fail_on="DB_NAME")
        assert session.database == "Sales"

    def test_close_is_idempotent(self):
        session = make_session()
        session.connection = MagicMock()
        session.connection.close.side_effect = [None, pyodbc.Error("already closed")]
        session.close()
        session.close()
        session.connection.close.assert_called_once()

    def test_context_manager_closes(self):
        with make_session() as session:
            assert session.is_open
        assert session.connection.closed

    def test_use_database(self):
        session = make_session()
        session.use_database("odd]name")
        assert session.connection.executed[-1][0] == "USE [odd]]name]"

    def test_database_handle_str(self):
        assert str(DatabaseHandle(make_session("SQL01\\APPS"), "Sales")) == "SQL01\\APPS/Sales"
