from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional

DEFAULT_API_VERSION = "v61.0"

_ORIGIN_RE = re.compile(r"^https?://[^/]+", re.IGNORECASE)
_VERSION_RE = re.compile(r"/services/data/(v[\d.]+)(?:/|$)")


def _normalize_version(version: Optional[str]) -> Optional[str]:
    if not version:
        return None
    version = str(version).strip()
    return version if version.startswith("v") else f"v{version}"


@dataclass(frozen=True)
class Endpoints:
    """Base URLs every operation path is built from."""

    base: str
    version: str
    data_base: str
    query_url: str
    apex_base: str

    @classmethod
    def build(cls, base: str, version: str, query_url: Optional[str] = None) -> Endpoints:
        base = base.rstrip("/")
        data_base = f"{base}/services/data/{version}"
        return cls(
            base=base,
            version=version,
            data_base=data_base,
            query_url=query_url or f"{data_base}/query",
            apex_base=f"{base}/services/apexrest",
        )

    @classmethod
    def from_canvas_context(
        cls, context: Mapping[str, Any], api_version: Optional[str] = None
    ) -> Endpoints:
        """Derive endpoints from a Canvas context (``instanceUrl``, ``version``, ``links``)."""
        version = (
            _normalize_version(api_version)
            or _normalize_version(context.get("version"))
            or DEFAULT_API_VERSION
        )
        base = context.get("instanceUrl") or ""
        links = context.get("links") or {}
        query_url = links.get("queryUrl") if isinstance(links, Mapping) else None
        if query_url and query_url.startswith("/"):
            query_url = base.rstrip("/") + query_url
        return cls.build(base, version, query_url)

    @classmethod
    def from_rest_url(cls, rest_url: str, api_version: Optional[str] = None) -> Endpoints:
        """Derive endpoints from a REST URL like ``https://host/services/data/v61.0/``."""
        m = _ORIGIN_RE.match(rest_url or "")
        base = m.group(0) if m else ""
        v = _VERSION_RE.search(rest_url or "")
        version = _normalize_version(api_version) or (v.group(1) if v else DEFAULT_API_VERSION)
        return cls.build(base, version)

    def sobject_url(self, sobject: str, *parts: str) -> str:
        return "/".join([f"{self.data_base}/sobjects", sobject, *parts])

    def absolute(self, path: str) -> str:
        """Resolve a server-relative path (``/services/data/...``) against the base."""
        if _ORIGIN_RE.match(path):
            return path
        return self.base + (path if path.startswith("/") else "/" + path)
