"""
REST transport: calls go through a proxy's ``ajax_request(...)``.

The proxy holds ``settings.rest_url`` / ``settings.token`` and can run an
authentication round with ``auth(user_id, source_id, ...)``. Before each call
the adapter makes sure credentials exist; an expired session is refreshed
once per call and the call retried once.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Mapping, Optional

from ..auth import AuthContextProvider, CredentialCache, Credentials
from ..config import AuthOptions
from ..endpoints import Endpoints
from ..envelope import DEFAULT_ERROR_MESSAGE, CallResult, parse_backend_error, status_from_payload
from ..exceptions import ConfigurationError, SfError
from .base import TransportAdapter, run_callback_primitive

_logger = logging.getLogger(__name__)

_UNAUTHORIZED_RE = re.compile(r"unauthorized|401", re.IGNORECASE)


def _setting(settings: Any, *names: str) -> Optional[str]:
    if settings is None:
        return None
    for name in names:
        value = settings.get(name) if isinstance(settings, Mapping) else getattr(settings, name, None)
        if value:
            return value
    return None


def read_proxy_credentials(proxy: Any) -> Optional[Credentials]:
    """Return the proxy's current ``{token, rest_url}`` pair, or None if incomplete."""
    settings = getattr(proxy, "settings", None)
    token = _setting(settings, "token", "access_token")
    rest_url = _setting(settings, "rest_url", "restURL")
    if token and rest_url:
        return Credentials(token, rest_url)
    return None


def is_auth_failure(err: SfError) -> bool:
    return (
        err.code == "INVALID_SESSION_ID"
        or err.http_status == 401
        or bool(_UNAUTHORIZED_RE.search(err.message or ""))
    )


class RestAdapter(TransportAdapter):
    source = "rest"

    def __init__(
        self,
        proxy: Any,
        *,
        auth_options: Optional[AuthOptions] = None,
        auth_context_provider: Optional[AuthContextProvider] = None,
        fallback: Optional[Credentials] = None,
        api_version: Optional[str] = None,
        request_timeout: Optional[float] = None,
    ) -> None:
        super().__init__(request_timeout=request_timeout)
        self.proxy = proxy
        self.api_version = api_version
        self.auth_options = auth_options or AuthOptions()
        self.auth_context_provider = auth_context_provider
        self._fallback = fallback
        self.credentials = CredentialCache(
            self._read_credentials, self._start_auth, self.auth_options, source=self.source
        )
        self._endpoints: Optional[Endpoints] = None
        creds = self.credentials.get()
        if creds:
            self._endpoints = Endpoints.from_rest_url(creds.rest_url, api_version)

    @property
    def endpoints(self) -> Optional[Endpoints]:
        return self._endpoints

    # --------------------------- Credentials --------------------------

    def _read_credentials(self) -> Optional[Credentials]:
        return read_proxy_credentials(self.proxy) or self._fallback

    def _start_auth(self, on_complete: Callable[..., None]) -> None:
        auth = getattr(self.proxy, "auth", None)
        if not callable(auth):
            raise ConfigurationError(
                "REST mode requires a proxy with auth(...) or an explicit rest_url + access_token."
            )
        ctx = self.auth_context_provider() if self.auth_context_provider else None
        if ctx is None or not ctx.user_id or not ctx.source_id:
            raise ConfigurationError(
                "Auto-auth could not determine user_id/source_id. "
                "Pass them via AuthOptions(user_id=..., source_id=...)."
            )
        auth(
            ctx.user_id,
            ctx.source_id,
            immediate=self.auth_options.immediate,
            on_success=None,
            on_complete=on_complete,
        )

    def can_reauthenticate(self) -> bool:
        """True when the proxy can run an auth round and the ids for it are known."""
        if not callable(getattr(self.proxy, "auth", None)):
            return False
        ctx = self.auth_context_provider() if self.auth_context_provider else None
        return bool(ctx and ctx.user_id and ctx.source_id)

    async def ensure_auth(self, force: bool = False) -> Credentials:
        creds = await self.credentials.refresh(force=force)
        self._endpoints = Endpoints.from_rest_url(creds.rest_url, self.api_version)
        return creds

    async def prepare(self) -> None:
        await self.ensure_auth()

    # --------------------------- Calls --------------------------------

    async def _ajax(
        self,
        method: str,
        url: str,
        params: Optional[Mapping[str, Any]],
        body: Any,
    ) -> CallResult:
        await self.ensure_auth()
        try:
            return await self._raw(method, url, params, body)
        except SfError as e:
            if not is_auth_failure(e):
                raise
            if not self.can_reauthenticate():
                # Nothing can refresh the token, so the expired session is the failure
                _logger.warning("rest %s %s: %s, no way to re-authenticate", method, url, e.code or e.message)
                raise
            _logger.warning("rest %s %s: %s, re-authenticating once", method, url, e.code or e.message)

        await self.ensure_auth(force=True)
        return await self._raw(method, url, params, body)

    async def _raw(
        self,
        method: str,
        url: str,
        params: Optional[Mapping[str, Any]],
        body: Any,
    ) -> CallResult:
        # Always re-read: another call may have refreshed the token.
        creds = self.credentials.get()
        token = creds.token if creds else None

        def call(on_success, on_error) -> None:
            self.proxy.ajax_request(
                url=url,
                type=method,
                params=dict(params) if params else None,
                data=body,
                access_token=token,
                prevent_error_reporter=True,
                on_success=on_success,
                on_error=on_error,
            )

        _logger.debug("rest %s %s", method, url)
        try:
            ok, value = await run_callback_primitive(call)
        except Exception as e:
            raise self._error(method, url, message=str(e) or DEFAULT_ERROR_MESSAGE, payload=e) from e

        if ok:
            # The proxy does not expose the HTTP status of successful calls.
            return CallResult(200, value)
        raise self._proxy_error(method, url, value)

    def _proxy_error(self, method: str, url: str, error: Any) -> SfError:
        decoded: Any = error
        if isinstance(error, (str, bytes, bytearray)):
            try:
                decoded = json.loads(error)
            except ValueError:
                decoded = None

        if isinstance(decoded, (list, dict)):
            info = parse_backend_error(decoded)
            status = status_from_payload(decoded, 0)
            if not status and isinstance(decoded, Mapping):
                status = decoded.get("statusCode") if isinstance(decoded.get("statusCode"), int) else 0
            return self._error(
                method,
                url,
                message=info.message,
                http_status=status or 400,
                code=info.code,
                payload=decoded,
            )

        # Not a structured body: no response reached us
        return self._error(
            method,
            url,
            message=str(error) if error else DEFAULT_ERROR_MESSAGE,
            http_status=0,
            payload=error,
        )
