"""
SQL Server connection module.

Handles:
- ODBC driver detection and fallback
- Connection string building (database, credential, read-only intent)
- Session objects that may be reused across commands
- Opening connections outside the driver-manager pool; the caller closes them
"""

from __future__ import annotations

import logging
from typing import Any

import pyodbc

from dbaquery.domain.errors import ConnectionFailure
from dbaquery.domain.targets import Credential, InstanceTarget
from dbaquery.infrastructure.config_loader import Settings

logger = logging.getLogger(__name__)

# Process-wide and read when pyodbc allocates its environment, so it must be
# set before the first connect. close() then really closes the connection.
pyodbc.pooling = False

APP_NAME = "dbaquery"

# Newest first
PREFERRED_DRIVERS = [
    "ODBC Driver 18 for SQL Server",
    "ODBC Driver 17 for SQL Server",
    "ODBC Driver 13 for SQL Server",
    "ODBC Driver 11 for SQL Server",
]
FALLBACK_DRIVERS = [
    "SQL Server Native Client 11.0",
    "SQL Server Native Client 10.0",
    "SQL Server",
]


def detect_odbc_driver() -> str:
    """
    Detect best available ODBC driver.

    Raises:
        ConnectionFailure: If no SQL Server driver is installed
    """
    drivers = pyodbc.drivers()
    logger.debug("Available ODBC drivers: %s", drivers)

    for driver in PREFERRED_DRIVERS:
        if driver in drivers:
            logger.debug("Using ODBC driver: %s", driver)
            return driver

    for driver in FALLBACK_DRIVERS:
        if driver in drivers:
            logger.warning("Using fallback ODBC driver: %s", driver)
            return driver

    raise ConnectionFailure("No SQL Server ODBC driver found. Please install ODBC Driver 17 or 18.")


def _quote(value: str) -> str:
    """Brace-quote a connection string value when it needs it."""
    if any(ch in value for ch in ";{}=") or value != value.strip():
        return "{" + value.replace("}", "}}") + "}"
    return value


def build_connection_string(
    target: InstanceTarget,
    database: str | None = None,
    credential: Credential | None = None,
    read_only: bool = False,
    append_connection_string: str | None = None,
    settings: Settings | None = None,
) -> str:
    """Build an ODBC connection string for one instance."""
    settings = settings or Settings()
    driver = settings.odbc_driver or detect_odbc_driver()

    parts = [
        f"DRIVER={{{driver}}}",
        f"SERVER={target.server_instance}",
        f"APP={APP_NAME}",
        f"Encrypt={'yes' if settings.encrypt else 'no'}",
        f"TrustServerCertificate={'yes' if settings.trust_server_certificate else 'no'}",
    ]
    if database:
        parts.append(f"DATABASE={_quote(database)}")
    if read_only:
        parts.append("ApplicationIntent=ReadOnly")

    if credential is None:
        parts.append("Trusted_Connection=yes")
    else:
        parts.append(f"UID={_quote(credential.username)}")
        parts.append(f"PWD={_quote(credential.get_password())}")

    if append_connection_string:
        parts.append(append_connection_string.strip().strip(";"))

    logger.debug("Connection string built for %s (credentials masked)", target)
    return ";".join(parts)


class ServerSession:
    """
    An open connection to one SQL Server instance.

    Sessions handed in by a caller are reused when possible; sessions opened
    by ``connect_instance`` belong to whoever opened them and must be closed
    by them.
    """

    def __init__(
        self,
        target: InstanceTarget,
        connection: Any,
        database: str | None = None,
        read_only: bool = False,
    ):
        self.target = target
        self.connection = connection
        self.read_only = read_only
        self._database = database
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed and self.connection is not None

    @property
    def database(self) -> str | None:
        """Current database, asked from the server while the session is open."""
        if not self.is_open:
            return self._database
        try:
            cursor = self.connection.cursor()
            cursor.execute("SELECT DB_NAME()")
            row = cursor.fetchone()
            cursor.close()
        except pyodbc.Error as e:
            logger.debug("Could not read current database on %s: %s", self.target, e)
            return self._database
        if row is not None:
            self._database = row[0]
        return self._database

    def use_database(self, name: str) -> None:
        cursor = self.connection.cursor()
        cursor.execute(f"USE [{name.replace(']', ']]')}]")
        cursor.close()
        self._database = name

    def close(self) -> None:
        """Close the connection. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        try:
            self.connection.close()
        except pyodbc.Error as e:
            logger.debug("Error closing connection to %s: %s", self.target, e)
        logger.debug("Closed connection to %s", self.target)

    def __enter__(self) -> ServerSession:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __str__(self) -> str:
        return self.target.server_instance

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<ServerSession {self.target} db={self._database!r} {state}>"


class DatabaseHandle:
    """A database on an instance, reached through its parent session."""

    def __init__(self, session: ServerSession, name: str, is_accessible: bool = True):
        self.session = session
        self.name = name
        self.is_accessible = is_accessible

    def __str__(self) -> str:
        return f"{self.session}/{self.name}"

    def __repr__(self) -> str:
        return f"<DatabaseHandle {self}>"


def connect_instance(
    target: str | InstanceTarget,
    database: str | None = None,
    credential: Credential | None = None,
    read_only: bool = False,
    append_connection_string: str | None = None,
    settings: Settings | None = None,
) -> ServerSession:
    """
    Open a session to an instance.

    Raises:
        ConnectionFailure: If the connection cannot be established
    """
    settings = settings or Settings()
    try:
        target = InstanceTarget.parse(target)
    except ValueError as e:
        raise ConnectionFailure(str(e), target=str(target)) from e

    conn_str = build_connection_string(
        target,
        database=database,
        credential=credential,
        read_only=read_only,
        append_connection_string=append_connection_string,
        settings=settings,
    )

    logger.debug(
        "Connecting to %s (database=%s, read_only=%s)",
        target, database or "<default>", read_only,
    )
    try:
        connection = pyodbc.connect(
            conn_str, autocommit=True, timeout=settings.connect_timeout
        )
    except pyodbc.Error as e:
        raise ConnectionFailure(f"Failure connecting: {e}", target=str(target)) from e

    logger.info("Connected to %s", target)
    return ServerSession(
        target,
        connection,
        database=database,
        read_only=read_only,
    )
