"""
requests-backed transport primitives.

These implement the callback interfaces the adapters expect, for code that
runs outside a browser host:

- :class:`RequestsRestProxy` behaves like a REST proxy (``settings``,
  ``ajax_request``, ``auth``) and authenticates with the OAuth
  client-credentials flow.
- :class:`RequestsCanvasHost` behaves like a Canvas bridge (``client``,
  ``context``, ``ajax``) for a Canvas context already in hand.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Union

import requests

from .auth import AuthContext
from .endpoints import DEFAULT_API_VERSION
from .exceptions import MissingCredentialsError

_logger = logging.getLogger(__name__)

DEFAULT_LOGIN_URL = "https://login.salesforce.com"


def _json_or_text(r: requests.Response) -> Any:
    if not r.content:
        return None
    try:
        return r.json()
    except ValueError:
        return r.text


@dataclass
class RestSettings:
    rest_url: Optional[str] = None
    token: Optional[str] = None


# ----------------------------------------------------------------------
# REST proxy
# ----------------------------------------------------------------------
class RequestsRestProxy:
    """REST proxy over a ``requests.Session``, using OAuth client-credentials."""

    def __init__(
        self,
        rest_url: Optional[str] = None,
        token: Optional[str] = None,
        *,
        login_url: str = DEFAULT_LOGIN_URL,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        api_version: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ) -> None:
        self.settings = RestSettings(rest_url=rest_url, token=token)
        self.login_url = login_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.api_version = api_version
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> RequestsRestProxy:
        """Build from SF_* environment variables (instance URL is turned into a REST URL)."""
        instance_url = os.getenv("SF_INSTANCE_URL")
        token = os.getenv("SF_ACCESS_TOKEN")
        api_version = os.getenv("SF_API_VERSION")
        rest_url = None
        if instance_url and token:
            version = api_version or DEFAULT_API_VERSION
            rest_url = f"{instance_url.rstrip('/')}/services/data/{version}/"
        return cls(
            rest_url=rest_url,
            token=token if rest_url else None,
            login_url=os.getenv("SF_LOGIN_URL", DEFAULT_LOGIN_URL),
            client_id=os.getenv("SF_CLIENT_ID"),
            client_secret=os.getenv("SF_CLIENT_SECRET"),
            api_version=api_version,
        )

    def auth_context(self) -> AuthContext:
        """The connected app acts as the user; the login URL identifies the source."""
        return AuthContext(user_id=self.client_id, source_id=self.login_url)

    # --------------------------- Requests -----------------------------

    def ajax_request(
        self,
        *,
        url: str,
        type: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        data: Any = None,
        access_token: Optional[str] = None,
        on_success: Callable[[Any], None],
        on_error: Callable[[str], None],
        prevent_error_reporter: bool = True,
    ) -> None:
        token = access_token or self.settings.token
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            r = self.session.request(
                type,
                url,
                params=params,
                json=data,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            _logger.warning("Request error for %s %s: %s", type, url, e)
            on_error(str(e))
            return

        if r.status_code < 400:
            on_success(_json_or_text(r))
            return

        detail = _json_or_text(r)
        if not prevent_error_reporter:
            _logger.error("HTTP %s error for %s: %s", r.status_code, url, detail)
        on_error(json.dumps(self._error_items(r, detail)))

    @staticmethod
    def _error_items(r: requests.Response, detail: Any) -> list:
        """Shape any error body as ``[{message, errorCode, statusCode}, ...]``."""
        if isinstance(detail, list) and detail and all(isinstance(d, dict) for d in detail):
            items = [dict(d) for d in detail]
        elif isinstance(detail, dict):
            items = [
                {
                    "message": detail.get("message") or detail.get("error_description") or r.reason,
                    "errorCode": detail.get("errorCode") or detail.get("error"),
                }
            ]
        else:
            items = [{"message": (detail or r.reason or f"HTTP {r.status_code}"), "errorCode": None}]
        for item in items:
            item.setdefault("statusCode", r.status_code)
        return items

    # --------------------------- Auth ---------------------------------

    def auth(
        self,
        user_id: Optional[str],
        source_id: Optional[str],
        *,
        immediate: bool = True,
        on_success: Optional[Callable[[RestSettings], None]] = None,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> None:
        """Start a client-credentials login in the background."""
        missing = [
            k
            for k, v in {
                "SF_CLIENT_ID": self.client_id,
                "SF_CLIENT_SECRET": self.client_secret,
                "SF_LOGIN_URL": self.login_url,
            }.items()
            if not v
        ]
        if missing:
            raise MissingCredentialsError(missing)

        _logger.debug("Auth requested for user=%s source=%s immediate=%s", user_id, source_id, immediate)

        def run() -> None:
            try:
                self._client_credentials_login()
            except (requests.RequestException, KeyError, ValueError) as e:
                _logger.error("Salesforce login failed: %s", e)
            else:
                if on_success:
                    on_success(self.settings)
            finally:
                if on_complete:
                    on_complete()

        threading.Thread(target=run, name="sfclient-auth", daemon=True).start()

    def _client_credentials_login(self) -> None:
        """Perform OAuth2 client credentials flow and publish the new settings."""
        token_url = f"{self.login_url.rstrip('/')}/services/oauth2/token"
        data = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }

        _logger.debug("Requesting access token from %s", token_url)
        r = self.session.post(token_url, data=data, timeout=self.timeout)
        r.raise_for_status()
        payload = r.json()

        token = payload["access_token"]
        instance_url = payload["instance_url"].rstrip("/")
        version = self.api_version or self._discover_latest_api_version(instance_url, token)

        self.settings.token = token
        self.settings.rest_url = f"{instance_url}/services/data/{version}/"
        _logger.info("Connected to Salesforce instance=%s api=%s", instance_url, version)

    def _discover_latest_api_version(self, instance_url: str, token: str) -> str:
        """Find the latest available API version."""
        r = self.session.get(
            f"{instance_url}/services/data/",
            headers={"Authorization": f"Bearer {token}"},
            timeout=self.timeout,
        )
        r.raise_for_status()
        versions = r.json()
        best = sorted(versions, key=lambda v: float(v.get("version", "0")), reverse=True)[0]
        version_str = best.get("url", "").rstrip("/").split("/")[-1]
        _logger.debug("Latest API version discovered: %s", version_str)
        return version_str


# ----------------------------------------------------------------------
# Canvas bridge
# ----------------------------------------------------------------------
class RequestsCanvasHost:
    """
    Canvas-style bridge for server-side code that already holds a Canvas context.

    ``client`` is the Canvas client mapping (``oauthToken``, ``instanceUrl``) or a
    callable returning a fresh one.
    """

    def __init__(
        self,
        context: Mapping[str, Any],
        client: Union[Mapping[str, Any], Callable[[], Mapping[str, Any]]],
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ) -> None:
        self._context = context
        self._client = client
        self.session = session or requests.Session()
        self.timeout = timeout

    def context(self) -> Mapping[str, Any]:
        return self._context

    def client(self) -> Mapping[str, Any]:
        return self._client() if callable(self._client) else self._client

    def ajax(self, url: str, settings: Mapping[str, Any]) -> None:
        client = settings.get("client") or self.client()
        headers = dict(settings.get("headers") or {})
        headers["Authorization"] = f"OAuth {client.get('oauthToken')}"
        if settings.get("contentType"):
            headers.setdefault("Content-Type", settings["contentType"])

        success = settings["success"]
        error = settings["error"]
        try:
            r = self.session.request(
                settings.get("method", "GET"),
                url,
                data=settings.get("data"),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            _logger.warning("Canvas request error for %s: %s", url, e)
            error({"status": 0, "payload": None, "statusText": str(e)})
            return

        payload = _json_or_text(r)
        if r.status_code < 400:
            success({"status": r.status_code, "payload": payload})
        else:
            error({"status": r.status_code, "payload": payload, "statusText": r.reason})
