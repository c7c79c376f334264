from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import click

_logger = logging.getLogger(__name__)

ERROR_TITLE = "Salesforce Error"
TOAST_DURATION_MS = 6000


class Presenter(Protocol):
    def toast(self, text: str, duration_ms: int) -> None: ...

    def modal(self, title: str, text: str) -> None: ...


def _status(err: Any) -> int:
    # SfError carries http_status, a ResponseEnvelope carries status
    status = getattr(err, "http_status", None)
    if status is None:
        status = getattr(err, "status", 0)
    return status if isinstance(status, int) else 0


def format_error(err: Any) -> str:
    """``[status] CODE message`` plus the fields named by the first error item."""
    info = getattr(err, "error", None)
    status = _status(err)
    code = getattr(err, "code", None) or getattr(info, "code", None)
    message = getattr(err, "message", None) or getattr(info, "message", None) or str(err)
    payload = getattr(err, "payload", None)
    if payload is None:
        payload = getattr(err, "raw", None)

    text = f"{f'[{status}]' if status else ''}{f' {code}' if code else ''} {message}".strip()
    if isinstance(payload, list) and payload and isinstance(payload[0], dict) and payload[0].get("fields"):
        text += "\nFields: " + ", ".join(payload[0]["fields"])
    return text


def show_error(err: Any, presenter: Optional[Presenter] = None) -> str:
    """
    Present an error to the user and return the text shown.

    4xx errors are usually fixable input problems and get a toast; anything else
    (no response, 5xx, auth, timeouts) needs acknowledging and gets a modal.
    Without a presenter the text is only logged.
    """
    text = format_error(err)
    status = _status(err)

    if presenter is None:
        _logger.error("%s: %s", ERROR_TITLE, text)
        return text

    if 400 <= status < 500:
        _logger.error("%s: %s", ERROR_TITLE, text)
        presenter.toast(f"{ERROR_TITLE}: {text}", TOAST_DURATION_MS)
    else:
        presenter.modal(ERROR_TITLE, text)
    return text


class ConsolePresenter:
    """Terminal presenter: toasts go to stderr, modals wait for a key when interactive."""

    def __init__(self, interactive: bool = False) -> None:
        self.interactive = interactive

    def toast(self, text: str, duration_ms: int) -> None:
        click.secho(text, fg="red", err=True)

    def modal(self, title: str, text: str) -> None:
        rule = "=" * max(len(title), 40)
        click.secho(f"{rule}\n{title}\n{rule}", fg="red", bold=True, err=True)
        click.echo(text, err=True)
        if self.interactive:
            click.pause("Press any key to continue...", err=True)
