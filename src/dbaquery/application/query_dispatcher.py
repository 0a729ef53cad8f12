"""
Query Dispatcher - runs T-SQL against one or many instances.

Flow:
1. Validate that exactly one query source and one kind of target was given
2. Normalise the source (text, files/directories/URLs, scriptable objects)
   into query texts, recording failed items and moving on
3. For each database handle / instance, reuse the open session when allowed
   or open an unpooled one, execute every query, close what was opened
4. Remove every temporary file created along the way

Usage:
    outcome = invoke_query(["SQL01", "SQL02\\APPS"], query="SELECT @@SERVERNAME")
    for row in outcome.results:
        print(row)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable, Iterable

from pydantic import BaseModel

from dbaquery.domain.enums import FailureStage
from dbaquery.domain.errors import DbaQueryError, InputValidationError, SourceError
from dbaquery.domain.models import QueryOutcome, TargetFailure
from dbaquery.domain.options import QueryOptions
from dbaquery.domain.targets import Credential
from dbaquery.infrastructure.config_loader import Settings
from dbaquery.infrastructure.scripting import Exporter, export_script, object_label, script_filename
from dbaquery.infrastructure.sources import (
    Downloader,
    TempFileScope,
    classify_source,
    download,
    read_script,
    resolve_source,
)
from dbaquery.infrastructure.sql import (
    DatabaseHandle,
    ServerSession,
    connect_instance,
    execute_query,
)

logger = logging.getLogger(__name__)


def _as_list(value: Any) -> list[Any]:
    """Accept one item or any iterable of items."""
    if value is None:
        return []
    # pydantic models iterate over their fields
    if isinstance(value, (str, bytes, os.PathLike, BaseModel)):
        return [value]
    if isinstance(value, Iterable):
        return list(value)
    return [value]


def _same_database(current: str | None, requested: str) -> bool:
    return current is not None and current.casefold() == requested.casefold()


class QueryDispatcher:
    """
    Normalises query sources and executes them per target.

    Collaborators are injectable so the connection, execution, download and
    scripting steps can be replaced.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        connector: Callable[..., ServerSession] = connect_instance,
        executor: Callable[[ServerSession, str, QueryOptions], list[Any]] = execute_query,
        downloader: Downloader = download,
        exporter: Exporter = export_script,
    ):
        self.settings = settings or Settings()
        self.connector = connector
        self.executor = executor
        self.downloader = downloader
        self.exporter = exporter

    def invoke(
        self,
        sql_instance: Any = None,
        database: str | None = None,
        query: str | None = None,
        file: Any = None,
        sql_object: Any = None,
        input_object: Any = None,
        credential: Credential | None = None,
        options: QueryOptions | None = None,
    ) -> QueryOutcome:
        """
        Execute one query source against every target.

        Raises:
            InputValidationError: For conflicting or missing parameters,
                before any target is touched
            DbaQueryError: The first per-item failure, when
                ``options.enable_exception`` is set
        """
        options = options or QueryOptions(query_timeout=self.settings.query_timeout)
        instances = _as_list(sql_instance)
        files = _as_list(file)
        objects = _as_list(sql_object)
        databases = _as_list(input_object)

        self._validate(instances, database, query, files, objects, databases)

        outcome = QueryOutcome()
        scope = TempFileScope(self.settings.temp_dir)
        try:
            queries = self._collect_queries(query, files, objects, scope, options, outcome)
            if not queries:
                logger.warning("No queries to run")
                return outcome

            for handle in databases:
                self._run_on_database(handle, queries, credential, options, outcome)
            for instance in instances:
                self._run_on_instance(instance, database, queries, credential, options, outcome)
        finally:
            scope.cleanup()

        return outcome

    # ------------------------------------------------------------------
    # Validation and normalisation
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(instances, database, query, files, objects, databases) -> None:
        given = sum(1 for source in (query, files, objects) if source)
        if given != 1:
            raise InputValidationError("Specify exactly one of query, file or sql_object")
        if databases and instances:
            raise InputValidationError("You can't use sql_instance with piped databases")
        if databases and database:
            raise InputValidationError("You can't use database with piped databases")
        if not databases and not instances:
            raise InputValidationError("You must specify sql_instance or pipe in databases")

    def _collect_queries(
        self,
        query: str | None,
        files: list[Any],
        objects: list[Any],
        scope: TempFileScope,
        options: QueryOptions,
        outcome: QueryOutcome,
    ) -> list[tuple[str, str]]:
        """Return (label, text) pairs in source order."""
        if query:
            return [("query", query)]

        paths: list[Path] = []
        for item in files:
            try:
                paths.extend(resolve_source(classify_source(item), scope, self.downloader))
            except OSError as e:
                error = SourceError(f"Cannot resolve file source: {e}", target=str(item))
                self._fail(outcome, str(item), FailureStage.SOURCE, error, options)
            except DbaQueryError as e:
                self._fail(outcome, str(item), FailureStage.SOURCE, e, options)

        for obj in objects:
            label = object_label(obj)
            try:
                paths.append(scope.create(script_filename(obj), self.exporter(obj)))
            except OSError as e:
                error = SourceError(f"Cannot write script file: {e}", target=label)
                self._fail(outcome, label, FailureStage.SOURCE, error, options)
            except DbaQueryError as e:
                self._fail(outcome, label, FailureStage.SOURCE, e, options)

        queries = []
        for path in paths:
            try:
                queries.append((str(path), read_script(path)))
            except DbaQueryError as e:
                self._fail(outcome, str(path), FailureStage.SOURCE, e, options)

        logger.debug("%d query texts collected", len(queries))
        return queries

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _run_on_instance(
        self,
        instance: Any,
        database: str | None,
        queries: list[tuple[str, str]],
        credential: Credential | None,
        options: QueryOptions,
        outcome: QueryOutcome,
    ) -> None:
        reuse = (
            isinstance(instance, ServerSession)
            and instance.is_open
            and not options.read_only
            and (not database or _same_database(instance.database, database))
        )

        if reuse:
            logger.debug("Reusing open session to %s", instance)
            self._execute_all(instance, queries, options, outcome)
            return

        if isinstance(instance, ServerSession):
            target = instance.target
        else:
            target = self.settings.resolve_target(str(instance)) if isinstance(instance, str) else instance

        self._run_on_new_session(target, database, str(target), queries, credential, options, outcome)

    def _run_on_database(
        self,
        handle: DatabaseHandle,
        queries: list[tuple[str, str]],
        credential: Credential | None,
        options: QueryOptions,
        outcome: QueryOutcome,
    ) -> None:
        if not isinstance(handle, DatabaseHandle):
            error = InputValidationError(
                f"Unsupported piped input type: {type(handle).__name__}", target=repr(handle)
            )
            self._fail(outcome, repr(handle), FailureStage.VALIDATION, error, options)
            return

        if not handle.is_accessible:
            error = InputValidationError("Database is not accessible", target=str(handle))
            self._fail(outcome, str(handle), FailureStage.VALIDATION, error, options)
            return

        parent = handle.session
        if parent.is_open and not options.read_only and _same_database(parent.database, handle.name):
            logger.debug("Reusing open session for %s", handle)
            self._execute_all(parent, queries, options, outcome)
            return

        self._run_on_new_session(parent.target, handle.name, str(handle), queries, credential, options, outcome)

    def _run_on_new_session(
        self,
        target: Any,
        database: str | None,
        label: str,
        queries: list[tuple[str, str]],
        credential: Credential | None,
        options: QueryOptions,
        outcome: QueryOutcome,
    ) -> None:
        """Open an unpooled session, run everything, always close it."""
        try:
            session = self.connector(
                target,
                database=database,
                credential=credential,
                read_only=options.read_only,
                append_connection_string=options.append_connection_string,
                settings=self.settings,
            )
        except DbaQueryError as e:
            self._fail(outcome, label, FailureStage.CONNECTION, e, options)
            return

        try:
            self._execute_all(session, queries, options, outcome)
        finally:
            session.close()

    def _execute_all(
        self,
        session: ServerSession,
        queries: list[tuple[str, str]],
        options: QueryOptions,
        outcome: QueryOutcome,
    ) -> None:
        """Run every query; the first failure skips the rest for this session."""
        for label, text in queries:
            logger.info("Executing %s on %s", label, session)
            try:
                outcome.results.extend(self.executor(session, text, options))
            except DbaQueryError as e:
                self._fail(outcome, str(session), FailureStage.EXECUTION, e, options)
                return

    @staticmethod
    def _fail(
        outcome: QueryOutcome,
        target: str,
        stage: FailureStage,
        error: Exception,
        options: QueryOptions,
    ) -> None:
        if options.enable_exception:
            raise error
        logger.warning("Failure on %s (%s): %s", target, stage.value, error)
        outcome.failures.append(
            TargetFailure(target=target, stage=stage, message=str(error), error=error)
        )


def invoke_query(
    sql_instance: Any = None,
    database: str | None = None,
    query: str | None = None,
    file: str | Path | Iterable[str | Path] | None = None,
    sql_object: Any = None,
    input_object: Any = None,
    credential: Credential | None = None,
    options: QueryOptions | None = None,
    settings: Settings | None = None,
) -> QueryOutcome:
    """Module-level shortcut for ``QueryDispatcher.invoke``."""
    return QueryDispatcher(settings).invoke(
        sql_instance=sql_instance,
        database=database,
        query=query,
        file=file,
        sql_object=sql_object,
        input_object=input_object,
        credential=credential,
        options=options,
    )
