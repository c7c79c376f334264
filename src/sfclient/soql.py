from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Union


def escape_soql(value: Any) -> str:
    """
    Quote a value as a SOQL string literal.

    Example: ``O'Neil`` -> ``'O\\'Neil'``. Backslashes are escaped first so the
    literal always decodes back to ``str(value)``.
    """
    text = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{text}'"


quote = escape_soql


def format_datetime(value: Union[datetime, date, str]) -> str:
    """
    Format a datetime for SOQL / Datetime fields: ISO 8601, UTC, milliseconds, ``Z``.

    Naive datetimes are taken as UTC. Plain dates are formatted as ``YYYY-MM-DD``
    (SOQL date literal). Strings are parsed with ``datetime.fromisoformat`` first.
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)

    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"

    if isinstance(value, date):
        return value.isoformat()

    raise TypeError(f"Cannot format {type(value).__name__} as a Salesforce datetime")
