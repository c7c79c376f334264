from __future__ import annotations

import logging
from typing import Optional, cast

import click
from click import Command

from . import __version__
from .client import SalesforceClient
from .command_apex import apex_cmd, batch_cmd, describe_cmd, limits_cmd
from .command_common import echo_envelope, run_with_client
from .command_records import create_cmd, delete_cmd, retrieve_cmd, update_cmd, upsert_cmd
from .command_smoke import smoke_cmd
from .env_loader import load_env_files
from .logging_config import configure_logging

_logger = logging.getLogger(__name__)


@click.group(
    context_settings={"help_option_names": ["-h", "--help"]},
    invoke_without_command=True,
)
@click.version_option(__version__, "--version", prog_name="sfclient")
@click.option(
    "-v",
    "--verbose",
    "loglevel",
    flag_value=logging.INFO,
    default=None,
    help="Enable INFO logs.",
)
@click.option(
    "-vv",
    "--very-verbose",
    "loglevel",
    flag_value=logging.DEBUG,
    help="Enable DEBUG logs.",
)
@click.pass_context
def cli(ctx: click.Context, loglevel: Optional[int]) -> None:
    """Salesforce client CLI. Use subcommands like 'query' or 'retrieve'."""
    configure_logging(loglevel)
    _logger.debug("CLI start, version=%s", __version__)
    env_file = load_env_files(quiet=True)
    if env_file:
        _logger.info("Environment loaded from %s", env_file)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command("query")
@click.argument("soql")
@click.option("--first-page", is_flag=True, help="Do not follow nextRecordsUrl.")
@click.option("--pretty", is_flag=True, help="Pretty-print JSON.")
def cmd_query(soql: str, first_page: bool, pretty: bool) -> None:
    """Run a SOQL query and print the records as JSON."""

    async def go(sf: SalesforceClient):
        return await sf.query(soql, page_all=not first_page)

    env = run_with_client(go)
    if env.meta is not None:
        _logger.info(
            "%d record(s) in %d page(s), totalSize=%s, done=%s",
            env.meta.page_count,
            env.meta.pages_fetched,
            env.meta.total_size,
            env.meta.done,
        )
    echo_envelope(env, pretty)


# Cast ensures IDE knows of the Command type
for _cmd in (
    retrieve_cmd,
    create_cmd,
    update_cmd,
    upsert_cmd,
    delete_cmd,
    apex_cmd,
    batch_cmd,
    limits_cmd,
    describe_cmd,
    smoke_cmd,
):
    cli.add_command(cast(Command, _cmd))
