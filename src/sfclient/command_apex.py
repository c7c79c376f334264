from __future__ import annotations

import json
from typing import Optional, Tuple

import click

from .client import SalesforceClient
from .command_common import echo_envelope, parse_json_option, run_with_client


def _params(pairs: Tuple[str, ...]) -> Optional[dict]:
    out = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--param")
        out[key] = value
    return out or None


@click.command("apex")
@click.argument("method", type=click.Choice(["GET", "POST", "PATCH", "PUT", "DELETE"], case_sensitive=False))
@click.argument("path")
@click.option("--param", "params", multiple=True, help="Query parameter KEY=VALUE (repeatable).")
@click.option("--data", "data", help="JSON body, or @file.json.")
@click.option("--pretty", is_flag=True, help="Pretty-print JSON.")
def apex_cmd(method: str, path: str, params: Tuple[str, ...], data: Optional[str], pretty: bool) -> None:
    """Call an Apex REST endpoint, e.g. ``apex GET /HelloWorld``."""
    query = _params(params)
    body = parse_json_option(data)

    async def go(sf: SalesforceClient):
        return await sf.apex(method, path, params=query, body=body)

    echo_envelope(run_with_client(go), pretty)


@click.command("batch")
@click.argument("requests_file", type=click.File("r", encoding="utf-8"))
@click.option("--all-or-none", is_flag=True, help="Roll back every sub-request if one fails.")
@click.option("--pretty", is_flag=True, help="Pretty-print JSON.")
def batch_cmd(requests_file, all_or_none: bool, pretty: bool) -> None:
    """
    Send up to 25 sub-requests in one composite call.

    REQUESTS_FILE holds a JSON list of ``{"method", "url", "body"?, "referenceId"?}``.
    """
    try:
        requests = json.load(requests_file)
    except ValueError as e:
        raise click.BadParameter(f"invalid JSON: {e}", param_hint="REQUESTS_FILE") from e
    if not isinstance(requests, list):
        raise click.BadParameter("expected a JSON list of sub-requests", param_hint="REQUESTS_FILE")

    async def go(sf: SalesforceClient):
        return await sf.batch(requests, all_or_none=all_or_none)

    echo_envelope(run_with_client(go), pretty)


@click.command("limits")
@click.option("--all", "show_all", is_flag=True, help="Show every limit (default: only those in use).")
def limits_cmd(show_all: bool) -> None:
    """Show org limits as ``NAME used/max``."""

    async def go(sf: SalesforceClient):
        return await sf.limits()

    env = run_with_client(go)
    for name, lim in sorted((env.data or {}).items()):
        if not isinstance(lim, dict):
            continue
        limit = lim.get("Max", 0)
        used = limit - lim.get("Remaining", limit)
        if show_all or used:
            click.echo(f"{name}: {used}/{limit}")


@click.command("describe")
@click.argument("sobject", required=False)
@click.option("--all", "show_all", is_flag=True, help="List all sObjects (default: only queryable).")
def describe_cmd(sobject: Optional[str], show_all: bool) -> None:
    """List sObjects, or the fields of SOBJECT."""

    async def go(sf: SalesforceClient):
        return await sf.describe(sobject)

    data = run_with_client(go).data or {}
    if sobject:
        for f in data.get("fields", []):
            click.echo(f"{f.get('name')}\t{f.get('type')}")
        return

    names = sorted(s["name"] for s in data.get("sobjects", []) if show_all or s.get("queryable"))
    for n in names:
        click.echo(n)
