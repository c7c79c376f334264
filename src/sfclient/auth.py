"""
Credential handling for the REST transport.

The REST proxy owns the token; this module only reads it, decides when a new
authentication round is needed, and waits for that round to finish.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .config import AuthOptions
from .exceptions import AuthTimeoutError

_logger = logging.getLogger(__name__)

# Source type id of a Salesforce source in a calendar session's source list
SALESFORCE_SOURCE_TYPE_ID = 10


@dataclass(frozen=True)
class AuthContext:
    user_id: Optional[str] = None
    source_id: Optional[str] = None


@dataclass(frozen=True)
class Credentials:
    token: str
    rest_url: str


AuthContextProvider = Callable[[], AuthContext]


def static_auth_context(options: AuthOptions) -> AuthContextProvider:
    """Provider that only uses ids passed explicitly in the auth options."""

    def provider() -> AuthContext:
        return AuthContext(options.user_id, options.source_id)

    return provider


class SessionAuthContextProvider:
    """
    Derive ``user_id`` / ``source_id`` from a host session.

    ``session`` is anything with ``get(key)``: ``get("config")`` must yield a
    mapping with ``userID`` and ``get("sources")`` a list of source mappings.
    Ids passed in ``options`` win over what the session reports.
    """

    def __init__(self, session: Any, options: Optional[AuthOptions] = None) -> None:
        self.session = session
        self.options = options or AuthOptions()

    def _user_id(self) -> Optional[str]:
        if self.options.user_id:
            return self.options.user_id
        try:
            cfg = self.session.get("config") or {}
        except (AttributeError, KeyError, TypeError):
            return None
        return cfg.get("userID") if hasattr(cfg, "get") else None

    def _source_id(self) -> Optional[str]:
        if self.options.source_id:
            return self.options.source_id
        try:
            sources = self.session.get("sources") or []
        except (AttributeError, KeyError, TypeError):
            return None
        for s in sources:
            if s.get("sourceTypeID") == SALESFORCE_SOURCE_TYPE_ID and s.get("localParent") is True:
                return s.get("id")
        return None

    def __call__(self) -> AuthContext:
        return AuthContext(self._user_id(), self._source_id())


class CredentialCache:
    """
    Shared view of the proxy's ``{token, rest_url}`` pair.

    ``read`` returns the current pair (never cached here); ``start_auth`` kicks
    off an authentication round and must call the callback it is given once
    the round has completed. Concurrent refreshes share one in-flight task.
    """

    def __init__(
        self,
        read: Callable[[], Optional[Credentials]],
        start_auth: Callable[[Callable[..., None]], None],
        options: AuthOptions,
        *,
        source: str = "rest",
    ) -> None:
        self._read = read
        self._start_auth = start_auth
        self.options = options
        self.source = source
        self._inflight: Optional[asyncio.Future] = None

    def get(self) -> Optional[Credentials]:
        return self._read()

    async def refresh(self, force: bool = False) -> Credentials:
        current = self.get()
        if current and not force and self._inflight is None:
            return current

        if self._inflight is None or self._inflight.done():
            stale = current.token if (current and force) else None
            self._inflight = asyncio.ensure_future(self._authenticate(stale))
        inflight = self._inflight
        try:
            return await asyncio.shield(inflight)
        finally:
            if inflight.done() and self._inflight is inflight:
                self._inflight = None

    async def _authenticate(self, stale_token: Optional[str]) -> Credentials:
        completed = threading.Event()

        def on_complete(*_args: Any) -> None:
            completed.set()

        _logger.info("Starting Salesforce authentication (%s)", "refresh" if stale_token else "initial")
        self._start_auth(on_complete)
        return await self._wait(stale_token, completed)

    async def _wait(self, stale_token: Optional[str], completed: threading.Event) -> Credentials:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.options.timeout_ms / 1000.0
        interval = self.options.poll_interval_ms / 1000.0
        while True:
            creds = self.get()
            if creds and (stale_token is None or completed.is_set() or creds.token != stale_token):
                _logger.info("Salesforce authentication complete: %s", creds.rest_url)
                return creds
            if loop.time() >= deadline:
                _logger.warning("Salesforce authentication timed out after %d ms", self.options.timeout_ms)
                raise AuthTimeoutError(self.options.timeout_ms, source=self.source)
            await asyncio.sleep(interval)
