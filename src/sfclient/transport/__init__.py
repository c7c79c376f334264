"""Transport selection: exactly one adapter per client."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ..auth import Credentials, static_auth_context
from ..config import ClientConfig
from ..exceptions import ConfigurationError
from ..http_bridge import RequestsRestProxy
from .base import TransportAdapter
from .canvas import CanvasAdapter
from .rest import RestAdapter, read_proxy_credentials

_logger = logging.getLogger(__name__)

__all__ = ["CanvasAdapter", "RestAdapter", "TransportAdapter", "select_transport"]


def _canvas_context(host: Any) -> Optional[Mapping[str, Any]]:
    """Return the host's Canvas context if its bridge primitives are all present."""
    if host is None:
        return None
    if not all(callable(getattr(host, name, None)) for name in ("client", "context", "ajax")):
        return None
    return host.context()


def _build_canvas(config: ClientConfig) -> CanvasAdapter:
    context = _canvas_context(config.canvas_host)
    if not context:
        raise ConfigurationError("Canvas mode requires a host exposing client(), context() and ajax().")
    return CanvasAdapter(
        config.canvas_host,
        context,
        api_version=config.api_version,
        request_timeout=config.request_timeout,
    )


def _build_rest(config: ClientConfig) -> RestAdapter:
    proxy = config.rest_proxy
    fallback = None
    if config.rest_url and config.access_token:
        fallback = Credentials(config.access_token, config.rest_url)

    if proxy is None:
        if fallback is None:
            raise ConfigurationError(
                "REST mode requires a proxy with ajax_request/auth or an explicit rest_url + access_token."
            )
        proxy = RequestsRestProxy(rest_url=config.rest_url, token=config.access_token)
    elif not callable(getattr(proxy, "ajax_request", None)):
        raise ConfigurationError("REST proxy must expose ajax_request(...).")
    elif not callable(getattr(proxy, "auth", None)) and not (read_proxy_credentials(proxy) or fallback):
        raise ConfigurationError(
            "REST proxy has no credentials and no auth(...); pass rest_url + access_token."
        )

    return RestAdapter(
        proxy,
        auth_options=config.auth,
        auth_context_provider=config.auth_context_provider or static_auth_context(config.auth),
        fallback=fallback,
        api_version=config.api_version,
        request_timeout=config.request_timeout,
    )


def select_transport(config: ClientConfig) -> TransportAdapter:
    mode = config.mode
    if mode == "auto":
        mode = "canvas" if _canvas_context(config.canvas_host) else "rest"
        _logger.debug("Auto-detected transport: %s", mode)
    if mode == "canvas":
        return _build_canvas(config)
    return _build_rest(config)
