"""
End-to-end smoke run against a real org.

Creates, reads, updates and deletes real records: point it at a sandbox.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

import click

from .client import SalesforceClient
from .command_common import run_with_client
from .exceptions import SfError
from .presentation import ConsolePresenter

_logger = logging.getLogger(__name__)


@dataclass
class SmokeOptions:
    sobject: str = "Contact"
    name_field: str = "LastName"
    external_id_field: Optional[str] = None
    apex_path: Optional[str] = None
    keep: bool = False


def _stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


async def run_smoke(sf: SalesforceClient, opts: SmokeOptions, log: Callable[[str], None]) -> List[str]:
    """Run every operation once; return the ids of records left behind."""
    sobj, name = opts.sobject, opts.name_field
    created: List[str] = []

    try:
        log(f"Create {sobj}")
        env = await sf.create(sobj, {name: f"[SMOKE] {_stamp()}"})
        record_id = env.data["id"]
        created.append(record_id)
        log(f"  create: {env.status} id={record_id}")

        env = await sf.retrieve(sobj, record_id, ["Id", name])
        log(f"  retrieve: {env.status} {name}={env.data.get(name)!r}")

        env = await sf.query(f"SELECT Id, {name} FROM {sobj} WHERE Id = {sf.quote(record_id)} LIMIT 1")
        log(f"  query by id: {len(env.data)} row(s)")

        env = await sf.update(sobj, record_id, {name: f"[SMOKE UPDATE] {_stamp()}"})
        log(f"  update: {env.status}")

        if opts.external_id_field:
            ext = opts.external_id_field
            await sf.update(sobj, record_id, {ext: f"SMOKETEST-{record_id}"})
            env = await sf.upsert(sobj, ext, f"SMOKETEST-{record_id}", {name: f"[SMOKE UPSERT] {_stamp()}"})
            log(f"  upsert (update path): {env.status}")
            env = await sf.upsert(sobj, ext, f"SMOKETEST-{record_id}-NEW", {name: f"[SMOKE UPSERT NEW] {_stamp()}"})
            log(f"  upsert (insert path): {env.status}")
            if isinstance(env.data, dict) and env.data.get("id"):
                created.append(env.data["id"])
        else:
            log("  upsert skipped (no --external-id-field)")

        env = await sf.batch(
            [
                {"method": "GET", "url": f"/sobjects/{sobj}/{record_id}", "referenceId": "getCreated"},
                {
                    "method": "PATCH",
                    "url": f"/sobjects/{sobj}/{record_id}",
                    "referenceId": "updCreated",
                    "body": {name: f"[SMOKE BATCH] {_stamp()}"},
                },
            ]
        )
        per = (env.data or {}).get("compositeResponse") or []
        log("  batch: " + ", ".join(f"{p.get('referenceId')}:{p.get('httpStatusCode')}" for p in per))

        if opts.apex_path:
            env = await sf.apex("GET", opts.apex_path)
            log(f"  apex GET {opts.apex_path}: {env.status}")

        env = await sf.create_tree(
            sobj,
            [
                {"attributes": {"type": sobj, "referenceId": "tree1"}, name: f"[SMOKE TREE 1] {_stamp()}"},
                {"attributes": {"type": sobj, "referenceId": "tree2"}, name: f"[SMOKE TREE 2] {_stamp()}"},
            ],
        )
        tree_ids = [r["id"] for p in env.data or [] for r in (p or {}).get("results", []) if r.get("id")]
        created.extend(tree_ids)
        log(f"  create_tree: {env.status} ids={', '.join(tree_ids)}")
    except SfError as e:
        sf.show_error(e, ConsolePresenter())
        raise
    finally:
        if created and not opts.keep:
            for rid in list(created):
                try:
                    await sf.delete(sobj, rid)
                except SfError as e:
                    _logger.warning("Cleanup of %s %s failed: %s", sobj, rid, e.message)
                    continue
                created.remove(rid)
                log(f"  deleted {rid}")

    return created


@click.command("smoke")
@click.option("--sobject", default="Contact", show_default=True, help="Object to exercise.")
@click.option("--name-field", default="LastName", show_default=True, help="Required text field to set.")
@click.option("--external-id-field", help="External id field; enables the upsert steps.")
@click.option("--apex-path", help="Apex REST path to GET, e.g. /HelloWorld.")
@click.option("--keep", is_flag=True, help="Leave the created records behind.")
def smoke_cmd(
    sobject: str,
    name_field: str,
    external_id_field: Optional[str],
    apex_path: Optional[str],
    keep: bool,
) -> None:
    """Create/read/update/delete real records to check the connection end to end."""
    opts = SmokeOptions(sobject, name_field, external_id_field, apex_path, keep)

    async def go(sf: SalesforceClient):
        return await run_smoke(sf, opts, click.echo)

    left = run_with_client(go)
    if left:
        click.echo(f"Kept: {', '.join(left)}")
    click.echo("Smoke run complete.")
