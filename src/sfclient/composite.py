"""
Helpers for composite requests.

Composite sub-request URLs must be rooted at ``/services/data/<version>``;
callers tend to pass bare (``sobjects/Contact/001``), root-relative
(``/sobjects/Contact/001``), version-prefixed or absolute URLs, so everything
goes through :func:`normalize_composite_url`.

Validation (:func:`prepare_subrequests`, :func:`plan_compound_batch`) needs no
API version, so it runs before any network or auth step; URLs are versioned
only when the body is built.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, TypeVar

from .exceptions import RequestValidationError

T = TypeVar("T")

# Salesforce limits
COMPOSITE_MAX_SUBREQUESTS = 25
TREE_MAX_RECORDS = 200
COLLECTION_MAX_RECORDS = 200

_ORIGIN_RE = re.compile(r"^https?://[^/]+", re.IGNORECASE)
_DATA_PREFIX_RE = re.compile(r"^/?services/data/v[\d.]+(?=/|$)")


def normalize_composite_url(url: str, version: str) -> str:
    """Return ``url`` as ``/services/data/<version>/<resource path>``."""
    path = _ORIGIN_RE.sub("", (url or "").strip())
    path = _DATA_PREFIX_RE.sub("", path)
    path = "/" + path.lstrip("/")
    return f"/services/data/{version}{path}" if path != "/" else f"/services/data/{version}"


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    for i in range(0, len(items), size):
        yield list(items[i : i + size])


def check_size(operation: str, name: str, value: int, upper: int) -> None:
    if not isinstance(value, int) or not 1 <= value <= upper:
        raise RequestValidationError(operation, [f"{name} between 1 and {upper} (got {value!r})"])


def prepare_subrequests(
    requests: Sequence[Mapping[str, Any]], *, operation: str = "batch"
) -> List[Dict[str, Any]]:
    """Check sub-requests and fill missing reference ids (``ref1``, ``ref2``...)."""
    if len(requests) > COMPOSITE_MAX_SUBREQUESTS:
        raise RequestValidationError(
            operation, [f"at most {COMPOSITE_MAX_SUBREQUESTS} requests (got {len(requests)})"]
        )

    seen: set[str] = set()
    out: List[Dict[str, Any]] = []
    for n, r in enumerate(requests, start=1):
        missing = [k for k in ("method", "url") if not r.get(k)]
        if missing:
            raise RequestValidationError(operation, [f"requests[{n - 1}].{k}" for k in missing])

        ref = r.get("referenceId") or f"ref{n}"
        if ref in seen:
            raise RequestValidationError(operation, [f"unique referenceId ({ref!r} repeated)"])
        seen.add(ref)

        sub: Dict[str, Any] = {"method": str(r["method"]).upper(), "url": r["url"], "referenceId": ref}
        if r.get("body") is not None:
            sub["body"] = r["body"]
        out.append(sub)
    return out


def build_composite_body(
    subrequests: Sequence[Mapping[str, Any]],
    version: str,
    *,
    all_or_none: bool = False,
    collate_subrequests: bool = False,
) -> Dict[str, Any]:
    """Build a ``/composite`` body from prepared sub-requests."""
    return {
        "allOrNone": all_or_none,
        "collateSubrequests": collate_subrequests,
        "compositeRequest": [
            {**sub, "url": normalize_composite_url(sub["url"], version)} for sub in subrequests
        ],
    }


def plan_compound_batch(
    records: Sequence[Mapping[str, Any]],
    *,
    batch_size: int = COLLECTION_MAX_RECORDS,
    envelope_size: int = COMPOSITE_MAX_SUBREQUESTS,
    all_or_none: bool = False,
    extra_requests: Optional[Sequence[Mapping[str, Any]]] = None,
) -> List[List[Dict[str, Any]]]:
    """
    Pack records into sObject Collections inserts, grouped per composite call.

    Each insert carries up to ``batch_size`` records; each group holds up to
    ``envelope_size`` sub-requests. ``extra_requests`` follow the inserts.
    """
    check_size("compound_batch", "batch_size", batch_size, COLLECTION_MAX_RECORDS)
    check_size("compound_batch", "envelope_size", envelope_size, COMPOSITE_MAX_SUBREQUESTS)
    untyped = [i for i, r in enumerate(records) if not (r.get("attributes") or {}).get("type")]
    if untyped:
        raise RequestValidationError("compound_batch", [f"records[{i}].attributes.type" for i in untyped[:5]])

    subrequests: List[Dict[str, Any]] = [
        {
            "method": "POST",
            "url": "/composite/sobjects",
            "referenceId": f"collection{n}",
            "body": {"allOrNone": all_or_none, "records": chunk},
        }
        for n, chunk in enumerate(chunked(records, batch_size), start=1)
    ]
    subrequests.extend(dict(r) for r in (extra_requests or ()))

    return [
        prepare_subrequests(group, operation="compound_batch")
        for group in chunked(subrequests, envelope_size)
    ]


def subrequest_failures(payload: Any) -> List[Mapping[str, Any]]:
    """Return the sub-responses of a composite payload with a non-2xx status."""
    if not isinstance(payload, Mapping):
        return []
    return [
        sub
        for sub in payload.get("compositeResponse") or []
        if not 200 <= int(sub.get("httpStatusCode") or 0) < 300
    ]
