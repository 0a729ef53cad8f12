"""
dbaquery CLI entry point.

Commands:
- ``smo``   list SMO versions installed on computers
- ``query`` run T-SQL text, files or directories against instances
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console

from dbaquery.application.query_dispatcher import QueryDispatcher
from dbaquery.application.smo_inventory import SmoInventoryService
from dbaquery.domain.enums import CommandType, ResultShape
from dbaquery.domain.errors import DbaQueryError
from dbaquery.domain.options import QueryOptions
from dbaquery.domain.targets import Credential
from dbaquery.infrastructure.config_loader import ConfigLoader, Settings
from dbaquery.infrastructure.logging_config import setup_logging
from dbaquery.interface.formatters import (
    display_failures,
    display_query_results,
    display_smo_versions,
    print_json,
)

logger = logging.getLogger(__name__)
err_console = Console(stderr=True)

EXIT_ERROR = 1
EXIT_PARTIAL = 2

app = typer.Typer(
    name="dbaquery",
    help="SQL Server query dispatch and SMO version discovery",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also log to this file (DEBUG)"),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Settings file (default: config/dbaquery.json)"
    ),
):
    """Run T-SQL across SQL Server instances and inspect installed SMO versions."""
    setup_logging(logging.DEBUG if verbose else logging.WARNING, log_file)
    try:
        ctx.obj = ConfigLoader(config).load_settings()
    except (FileNotFoundError, PermissionError, ValueError) as e:
        err_console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(EXIT_ERROR) from e


def _credential(username: Optional[str], password: Optional[str]) -> Credential | None:
    if not username:
        return None
    if password is None:
        password = typer.prompt(f"Password for {username}", hide_input=True)
    return Credential(username=username, password=password)


def _parse_parameters(values: Optional[List[str]]) -> dict[str, str] | None:
    """Parse repeated ``name=value`` options."""
    if not values:
        return None
    parameters = {}
    for value in values:
        name, sep, text = value.partition("=")
        if not sep or not name.strip():
            raise typer.BadParameter(f"Expected name=value, got {value!r}", param_hint="--param")
        parameters[name.strip()] = text
    return parameters


@app.command("smo")
def smo_command(
    ctx: typer.Context,
    computer_names: Optional[List[str]] = typer.Argument(None, help="Computers to inspect (default: localhost)"),
    version: Optional[str] = typer.Option(None, "--version", help="Major version prefix filter, e.g. 16"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Windows account for remoting"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Password (prompted when omitted)"),
    output_format: str = typer.Option("table", "--format", help="Output format: table or json"),
    enable_exception: bool = typer.Option(False, "--enable-exception", help="Stop at the first failure"),
):
    """List installed SMO versions and how to load each one."""
    settings: Settings = ctx.obj or Settings()
    service = SmoInventoryService(settings)
    try:
        records = service.get_management_object(
            computer_names or ["localhost"],
            version=version,
            credential=_credential(username, password),
            enable_exception=enable_exception,
        )
    except DbaQueryError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_ERROR) from e

    if output_format == "json":
        print_json(records)
    else:
        display_smo_versions(records)


@app.command("query")
def query_command(
    ctx: typer.Context,
    instances: Optional[List[str]] = typer.Argument(None, help="Instances or configured aliases"),
    database: Optional[str] = typer.Option(None, "--database", "-d", help="Database to run in"),
    query: Optional[str] = typer.Option(None, "--query", "-Q", help="T-SQL text"),
    files: Optional[List[str]] = typer.Option(None, "--file", "-f", help="File, directory or URL (repeatable)"),
    as_: ResultShape = typer.Option(ResultShape.DATAROW, "--as", case_sensitive=False, help="Result shape"),
    query_timeout: Optional[int] = typer.Option(None, "--timeout", help="Query timeout in seconds"),
    params: Optional[List[str]] = typer.Option(None, "--param", help="Named parameter name=value (repeatable)"),
    command_type: CommandType = typer.Option(CommandType.TEXT, "--command-type", case_sensitive=False),
    append_server_instance: bool = typer.Option(False, "--append-server-instance"),
    messages_to_output: bool = typer.Option(False, "--messages-to-output"),
    no_exec: bool = typer.Option(False, "--no-exec", help="Compile only (SET NOEXEC ON)"),
    read_only: bool = typer.Option(False, "--read-only", help="ApplicationIntent=ReadOnly"),
    append_connection_string: Optional[str] = typer.Option(None, "--append-connection-string"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="SQL login (Windows auth when omitted)"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Password (prompted when omitted)"),
    output_format: str = typer.Option("table", "--format", help="Output format: table or json"),
    enable_exception: bool = typer.Option(False, "--enable-exception", help="Stop at the first failure"),
):
    """Run a query, script files or a directory of .sql files against instances."""
    settings: Settings = ctx.obj or Settings()
    options = QueryOptions(
        as_=as_,
        query_timeout=settings.query_timeout if query_timeout is None else query_timeout,
        parameters=_parse_parameters(params),
        command_type=command_type,
        append_server_instance=append_server_instance,
        messages_to_output=messages_to_output,
        no_exec=no_exec,
        read_only=read_only,
        append_connection_string=append_connection_string,
        enable_exception=enable_exception,
    )

    dispatcher = QueryDispatcher(settings)
    try:
        outcome = dispatcher.invoke(
            sql_instance=instances,
            database=database,
            query=query,
            file=files,
            credential=_credential(username, password),
            options=options,
        )
    except DbaQueryError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_ERROR) from e

    if output_format == "json":
        print_json(outcome.results)
    else:
        display_query_results(outcome.results)

    if outcome.failures:
        display_failures(outcome.failures)
        raise typer.Exit(EXIT_PARTIAL)


def main() -> int:
    """Console script entry point."""
    app()
    return 0
