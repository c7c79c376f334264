"""
Canvas transport: calls go through the host bridge's ``ajax(url, settings)``.

The bridge reports through ``success`` / ``error`` callbacks in ``settings``.
Some hosts refuse PATCH/DELETE/PUT, so a 405 is retried once as POST with the
verb carried in ``_HttpMethod`` and ``X-HTTP-Method-Override``. The client
handle is fetched again for every attempt because its token can rotate.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping, Optional, Tuple

from ..endpoints import Endpoints
from ..envelope import DEFAULT_ERROR_MESSAGE, CallResult, ErrorInfo, parse_backend_error, status_from_payload
from ..exceptions import SfError
from .base import TransportAdapter, append_query, run_callback_primitive

_logger = logging.getLogger(__name__)

METHOD_OVERRIDE_PARAM = "_HttpMethod"
METHOD_OVERRIDE_HEADER = "X-HTTP-Method-Override"

_METHOD_NOT_ALLOWED_RE = re.compile(r"method not allowed", re.IGNORECASE)
_BODYLESS = ("GET", "HEAD")


def _as_status(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return 0


def _describe_failure(value: Any) -> Tuple[int, Any, ErrorInfo]:
    """Return ``(status, payload, info)`` for whatever the bridge reported."""
    if isinstance(value, Mapping):
        status = _as_status(value.get("status"))
        payload = value["payload"] if "payload" in value else value
        info = parse_backend_error(payload)
        if payload in (None, "", []) or payload is value:
            fallback = value.get("message") or value.get("statusText")
            if fallback:
                info = ErrorInfo(str(fallback), info.code)
    elif isinstance(value, BaseException):
        status, payload = 0, value
        info = ErrorInfo(str(value) or DEFAULT_ERROR_MESSAGE)
    else:
        status, payload = 0, value
        info = parse_backend_error(value)

    if not status:
        status = status_from_payload(payload, 0)
    return status, payload, info


class CanvasAdapter(TransportAdapter):
    source = "canvas"

    def __init__(
        self,
        host: Any,
        context: Mapping[str, Any],
        *,
        api_version: Optional[str] = None,
        request_timeout: Optional[float] = None,
    ) -> None:
        super().__init__(request_timeout=request_timeout)
        self.host = host
        self._endpoints = Endpoints.from_canvas_context(context, api_version)

    @property
    def endpoints(self) -> Endpoints:
        return self._endpoints

    async def _ajax(
        self,
        method: str,
        url: str,
        params: Optional[Mapping[str, Any]],
        body: Any,
    ) -> CallResult:
        return await self._send(method, append_query(url, params), body, attempt=0, override_step=0)

    def _settings(self, method: str, send_method: str, body: Any, override_step: int) -> dict:
        settings: dict[str, Any] = {
            "client": self.host.client(),
            "method": send_method,
        }
        headers: dict[str, str] = {}
        if send_method not in _BODYLESS:
            settings["contentType"] = "application/json"
            settings["data"] = json.dumps(body) if body is not None else ""
            headers["Content-Type"] = "application/json"
            headers["Accept"] = "application/json"
        if override_step:
            headers[METHOD_OVERRIDE_HEADER] = method
        settings["headers"] = headers
        return settings

    async def _send(self, method: str, url: str, body: Any, *, attempt: int, override_step: int) -> CallResult:
        send_method = method if override_step == 0 else "POST"
        target = url if override_step == 0 else append_query(url, {METHOD_OVERRIDE_PARAM: method})
        settings = self._settings(method, send_method, body, override_step)

        _logger.debug(
            "canvas %s %s (verb=%s attempt=%d override=%d)", method, target, send_method, attempt, override_step
        )

        def call(on_success, on_error) -> None:
            self.host.ajax(target, {**settings, "success": on_success, "error": on_error})

        try:
            ok, value = await run_callback_primitive(call)
        except Exception as e:
            raise self._error(method, target, message=str(e) or DEFAULT_ERROR_MESSAGE, payload=e) from e

        if ok:
            status = _as_status(value.get("status")) if isinstance(value, Mapping) else 0
            if status and status >= 400:
                # Transport success carrying an application error
                failure = _describe_failure(value)
            elif isinstance(value, Mapping) and "status" in value and "payload" in value:
                return CallResult(status or 200, value["payload"])
            else:
                return CallResult(200, value)
        else:
            failure = _describe_failure(value)

        status, payload, info = failure

        if (status == 401 or info.code == "INVALID_SESSION_ID") and attempt == 0:
            _logger.warning("canvas %s %s: session rejected, retrying with a fresh client", method, url)
            return await self._send(method, url, body, attempt=1, override_step=override_step)

        if (status == 405 or _METHOD_NOT_ALLOWED_RE.search(info.message)) and override_step == 0:
            _logger.warning("canvas %s %s: verb not allowed, retrying as POST override", method, url)
            return await self._send(method, url, body, attempt=attempt, override_step=1)

        raise SfError(
            info.message,
            http_status=status,
            code=info.code,
            payload=payload,
            method=method,
            url=target,
            source=self.source,
        )
