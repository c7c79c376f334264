"""
Result types shared by every transport and operation.

A transport adapter returns a :class:`CallResult`; the operation layer wraps it
into a :class:`ResponseEnvelope`. Failures are described by
:func:`parse_backend_error`, which flattens the shapes Salesforce and its
proxies use for error bodies into a single ``ErrorInfo``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .exceptions import SfError

DEFAULT_ERROR_MESSAGE = "Salesforce Error"


@dataclass(frozen=True)
class CallResult:
    """One completed transport call."""

    status: int
    payload: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True)
class ErrorInfo:
    message: str
    code: Optional[str] = None


@dataclass(frozen=True)
class QueryMeta:
    """Pagination details attached to query envelopes."""

    soql: str
    total_size: Optional[int] = None
    done: bool = True
    page_count: int = 0
    pages_fetched: int = 0
    next_records_url: Optional[str] = None


@dataclass(frozen=True)
class ResponseEnvelope:
    """
    Uniform result of every public client operation.

    ``error`` is set whenever ``ok`` is false. That includes partial failures
    returned in ``error_mode="throw"`` (a later query page, some create_tree or
    compound_batch chunks), where the gathered data comes back instead of an
    exception.
    """

    ok: bool
    status: int
    data: Any = None
    raw: Any = None
    method: Optional[str] = None
    url: Optional[str] = None
    source: Optional[str] = None
    error: Optional[ErrorInfo] = None
    meta: Optional[QueryMeta] = None

    @classmethod
    def from_error(cls, err: SfError, **overrides: Any) -> ResponseEnvelope:
        fields: dict[str, Any] = {
            "ok": False,
            "status": err.http_status,
            "data": None,
            "raw": err.payload,
            "method": err.method,
            "url": err.url,
            "source": err.source,
            "error": ErrorInfo(err.message, err.code),
        }
        fields.update(overrides)
        return cls(**fields)


def _message_from_mapping(p: Mapping[str, Any]) -> ErrorInfo:
    message = p.get("message") or p.get("error_description") or p.get("msg")
    code = p.get("errorCode") or p.get("error")
    if not isinstance(code, str):
        code = None
    return ErrorInfo(str(message) if message else json.dumps(p, default=str), code)


def parse_backend_error(payload: Any) -> ErrorInfo:
    """
    Extract ``{message, code}`` from any Salesforce-style error body.

    Handles:
    - the REST array form ``[{"message": ..., "errorCode": ...}, ...]`` (first item wins)
    - a single object, including OAuth's ``{"error", "error_description"}``
    - JSON text of either of the above
    - bare strings, bytes and empty values
    """
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8", errors="replace")

    if isinstance(payload, str):
        text = payload.strip()
        if text[:1] in ("[", "{"):
            try:
                decoded = json.loads(text)
            except ValueError:
                decoded = None
            if isinstance(decoded, (list, dict)):
                return parse_backend_error(decoded)
        return ErrorInfo(text or DEFAULT_ERROR_MESSAGE)

    if isinstance(payload, (list, tuple)):
        if not payload:
            return ErrorInfo(DEFAULT_ERROR_MESSAGE)
        first = payload[0]
        if isinstance(first, Mapping):
            info = _message_from_mapping(first)
            if not (first.get("message") or first.get("error_description") or first.get("msg")):
                info = ErrorInfo(json.dumps(list(payload), default=str), info.code)
            return info
        return ErrorInfo(str(first) or DEFAULT_ERROR_MESSAGE)

    if isinstance(payload, Mapping):
        return _message_from_mapping(payload)

    if payload is None:
        return ErrorInfo(DEFAULT_ERROR_MESSAGE)
    return ErrorInfo(str(payload) or DEFAULT_ERROR_MESSAGE)


def status_from_payload(payload: Any, default: int = 0) -> int:
    """Return the ``statusCode`` carried by the first item of an error array, if any."""
    if isinstance(payload, (list, tuple)) and payload and isinstance(payload[0], Mapping):
        value = payload[0].get("statusCode")
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.isdigit():
            return int(value)
    return default
