"""Shared plumbing for the CLI commands: client construction and output."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import click

from .client import SalesforceClient
from .config import ClientConfig
from .envelope import ResponseEnvelope
from .exceptions import ConfigurationError, MissingCredentialsError, SfError
from .http_bridge import RequestsRestProxy
from .presentation import format_error

_logger = logging.getLogger(__name__)

T = TypeVar("T")

_CREDENTIALS_HELP = (
    "Set these environment variables (or create a .env file), e.g. for "
    "client-credentials auth:\n"
    "  SF_CLIENT_ID=...             # Connected App Consumer Key\n"
    "  SF_CLIENT_SECRET=...         # Connected App Client Secret\n"
    "  SF_LOGIN_URL=https://login.salesforce.com  # or your My Domain URL\n"
    "  SF_API_VERSION=v61.0         # optional; discovered if omitted\n\n"
    "or, with a token you already have:\n"
    "  SF_INSTANCE_URL=https://yourorg.my.salesforce.com\n"
    "  SF_ACCESS_TOKEN=..."
)


def build_client(**overrides: Any) -> SalesforceClient:
    """REST-mode client backed by :class:`RequestsRestProxy`, configured from SF_* env vars."""
    proxy = RequestsRestProxy.from_env()
    if not proxy.settings.token and not (proxy.client_id and proxy.client_secret):
        raise MissingCredentialsError(["SF_CLIENT_ID", "SF_CLIENT_SECRET"])

    config = ClientConfig.from_env(
        mode="rest",
        rest_proxy=proxy,
        auth_context_provider=proxy.auth_context,
        **overrides,
    )
    return SalesforceClient(config)


def run_with_client(fn: Callable[[SalesforceClient], Awaitable[T]]) -> T:
    """Build a client, run ``fn(client)`` to completion and map failures to click errors."""
    try:
        client = build_client()
        return asyncio.run(fn(client))
    except MissingCredentialsError as e:
        needed = ", ".join(e.missing)
        raise click.ClickException(f"Missing Salesforce credentials: {needed}\n\n{_CREDENTIALS_HELP}") from e
    except SfError as e:
        _logger.debug("Salesforce call failed: %r", e)
        raise click.ClickException(format_error(e)) from e
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


def parse_json_option(value: Optional[str], name: str = "--data") -> Any:
    """Decode a JSON option; ``@path`` reads the JSON from a file."""
    if value is None:
        return None
    text = value
    if value.startswith("@"):
        try:
            with open(value[1:], encoding="utf-8") as f:
                text = f.read()
        except OSError as e:
            raise click.BadParameter(f"cannot read {value[1:]}: {e}", param_hint=name) from e
    try:
        return json.loads(text)
    except ValueError as e:
        raise click.BadParameter(f"invalid JSON: {e}", param_hint=name) from e


def echo_json(data: Any, pretty: bool = False) -> None:
    click.echo(json.dumps(data, indent=2 if pretty else None, default=str))


def echo_envelope(env: ResponseEnvelope, pretty: bool = False) -> None:
    """Print the envelope's data; a failed envelope is reported on stderr and exits non-zero."""
    if not env.ok:
        message = env.error.message if env.error else "Salesforce Error"
        if env.data is not None:
            echo_json(env.data, pretty)
        raise click.ClickException(f"[{env.status}] {message}")
    if env.data is None:
        click.echo(f"OK ({env.status})")
        return
    echo_json(env.data, pretty)
