from __future__ import annotations

from typing import Optional

import click

from .client import SalesforceClient
from .command_common import echo_envelope, parse_json_option, run_with_client

_DATA_HELP = "Record fields as JSON, or @file.json."


@click.command("retrieve")
@click.argument("sobject")
@click.argument("record_id")
@click.option("--fields", help="Comma-separated field list (default: all fields).")
@click.option("--pretty", is_flag=True, help="Pretty-print JSON.")
def retrieve_cmd(sobject: str, record_id: str, fields: Optional[str], pretty: bool) -> None:
    """Fetch one record by Id."""
    names = [f.strip() for f in fields.split(",") if f.strip()] if fields else None

    async def go(sf: SalesforceClient):
        return await sf.retrieve(sobject, record_id, names)

    echo_envelope(run_with_client(go), pretty)


@click.command("create")
@click.argument("sobject")
@click.option("--data", "data", required=True, help=_DATA_HELP)
def create_cmd(sobject: str, data: str) -> None:
    """Create a record and print Salesforce's response (``{"id", "success"}``)."""
    record = parse_json_option(data)

    async def go(sf: SalesforceClient):
        return await sf.create(sobject, record)

    echo_envelope(run_with_client(go))


@click.command("update")
@click.argument("sobject")
@click.argument("record_id")
@click.option("--data", "data", required=True, help=_DATA_HELP)
def update_cmd(sobject: str, record_id: str, data: str) -> None:
    """Update fields on an existing record."""
    record = parse_json_option(data)

    async def go(sf: SalesforceClient):
        return await sf.update(sobject, record_id, record)

    echo_envelope(run_with_client(go))


@click.command("upsert")
@click.argument("sobject")
@click.argument("external_id_field")
@click.argument("external_id_value")
@click.option("--data", "data", required=True, help=_DATA_HELP)
def upsert_cmd(sobject: str, external_id_field: str, external_id_value: str, data: str) -> None:
    """Insert or update a record matched by an external id field."""
    record = parse_json_option(data)

    async def go(sf: SalesforceClient):
        return await sf.upsert(sobject, external_id_field, external_id_value, record)

    echo_envelope(run_with_client(go))


@click.command("delete")
@click.argument("sobject")
@click.argument("record_id")
@click.confirmation_option(prompt="Delete this record?")
def delete_cmd(sobject: str, record_id: str) -> None:
    """Delete a record by Id."""

    async def go(sf: SalesforceClient):
        return await sf.delete(sobject, record_id)

    echo_envelope(run_with_client(go))
