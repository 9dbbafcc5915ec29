"""Root CLI group for staffdb: schema bootstrap and store health checks.

The CLI is an operator tool around :class:`~staffdb.Store`; it is not an
application front end.
"""

from __future__ import annotations

from typing import Any

import click
from sqlalchemy.engine import make_url

from staffdb import __version__
from staffdb.config.logging import configure_logging
from staffdb.config.settings import StaffSettings
from staffdb.domain.errors import DataAccessError
from staffdb.infrastructure.database.schema import metadata
from staffdb.infrastructure.store import Store
from staffdb.result import Result, ResultError


def _display_url(settings: StaffSettings) -> str:
    return make_url(settings.store.url).render_as_string(hide_password=True)


def emit(settings: StaffSettings, result: Result) -> None:
    """Print *result*; failures go to stderr and exit with code 1."""
    if settings.json_output:
        output = result.model_dump_json(indent=2)
    else:
        lines = [f"{'OK' if result.ok else 'FAILED'}: {result.op}"]
        for key, value in result.data.items():
            lines.append(f"  {key}: {value}")
        if result.error is not None:
            lines.append(f"  [{result.error.code}] {result.error.message}")
        output = "\n".join(lines)

    if result.ok:
        click.echo(output)
    else:
        click.echo(output, err=True)
        raise SystemExit(1)


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="staffdb")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging for pool, repository and transaction events.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option(
    "--trace-sql",
    "trace_statements",
    is_flag=True,
    help="Log every executed statement (parameter names only).",
)
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.option("--url", default=None, help="Store URL (overrides config).")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    verbose: bool,
    log_json: bool,
    trace_statements: bool,
    config_path: str | None,
    url: str | None,
) -> None:
    """staffdb — departments, employees and projects data-access layer."""
    overrides: dict[str, Any] = {}
    if url:
        overrides["store"] = {"url": url}
    settings = StaffSettings.load(
        config_path=config_path,
        json_output=json_output,
        verbose=verbose,
        log_json=log_json,
        trace_statements=trace_statements,
        **overrides,
    )
    configure_logging(
        verbose=settings.verbose,
        log_json=settings.log_json,
        trace_statements=settings.trace_statements,
        store=_display_url(settings),
    )
    ctx.obj = settings
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command("init-db")
@click.pass_obj
def init_db(settings: StaffSettings) -> None:
    """Create the entity tables if they do not exist (development stores)."""
    try:
        store = Store(settings, create_schema=True)
    except DataAccessError as exc:
        emit(settings, Result.failure("init_db", exc))
        return
    with store:
        emit(
            settings,
            Result.success("init_db", url=_display_url(settings), tables=sorted(metadata.tables)),
        )


@cli.command()
@click.pass_obj
def check(settings: StaffSettings) -> None:
    """Validate the schema mapping and round-trip the store."""
    try:
        store = Store(settings)
    except DataAccessError as exc:
        emit(settings, Result.failure("check", exc))
        return
    with store:
        healthy = store.health_check()
        data = {"url": _display_url(settings), **store.stats()}
        if healthy:
            emit(settings, Result.success("check", **data))
        else:
            error = ResultError(code="CONNECTION_ERROR", message="Store health check failed")
            emit(settings, Result(ok=False, op="check", data=data, error=error))
