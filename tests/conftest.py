import json
from collections import deque

import pytest

from sfclient import AuthOptions, ClientConfig, SalesforceClient

INSTANCE_URL = "https://example.my.salesforce.com"
REST_URL = f"{INSTANCE_URL}/services/data/v61.0/"
CANVAS_URL = "https://canvas.example.com"


def sf_error(message, code, status, **extra):
    """JSON error string the way a REST proxy reports a failed call."""
    item = {"message": message, "errorCode": code, "statusCode": status}
    item.update(extra)
    return json.dumps([item])


class FakeRestProxy:
    """
    In-memory REST proxy.

    ``responses`` is consumed one item per ``ajax_request``: ``("ok", payload)``
    or ``("err", text)``. An empty queue answers ``("ok", None)``.
    ``auth`` publishes ``next_token`` and completes immediately unless
    ``auth_publishes`` is False.
    """

    def __init__(self, responses=None, *, token="TOKEN1", rest_url=REST_URL):
        self.settings = {"token": token, "rest_url": rest_url if token else None}
        self.responses = deque(responses or [])
        self.calls = []
        self.auth_calls = []
        self.next_token = "TOKEN2"
        self.auth_publishes = True

    def ajax_request(self, *, url, type, params, data, access_token, prevent_error_reporter, on_success, on_error):
        self.calls.append(
            {
                "url": url,
                "type": type,
                "params": params,
                "data": data,
                "access_token": access_token,
                "prevent_error_reporter": prevent_error_reporter,
            }
        )
        kind, value = self.responses.popleft() if self.responses else ("ok", None)
        if kind == "ok":
            on_success(value)
        else:
            on_error(value)

    def auth(self, user_id, source_id, *, immediate=True, on_success=None, on_complete=None):
        self.auth_calls.append((user_id, source_id, immediate))
        if not self.auth_publishes:
            return
        self.settings = {"token": self.next_token, "rest_url": REST_URL}
        if on_success:
            on_success(self.settings)
        if on_complete:
            on_complete()


class FakeCanvasHost:
    """
    In-memory Canvas bridge.

    ``responses`` items are ``("ok", value)`` or ``("err", value)`` handed to the
    ``success`` / ``error`` callback of each ``ajax`` call. Every ``client()``
    call hands out a new token.
    """

    def __init__(self, responses=None, context=None):
        self._context = context or {
            "instanceUrl": CANVAS_URL,
            "version": "61.0",
            "links": {"queryUrl": "/services/data/v61.0/query"},
        }
        self.responses = deque(responses or [])
        self.calls = []
        self.client_calls = 0

    def client(self):
        self.client_calls += 1
        return {"oauthToken": f"CANVAS{self.client_calls}", "instanceUrl": CANVAS_URL}

    def context(self):
        return self._context

    def ajax(self, url, settings):
        self.calls.append((url, settings))
        kind, value = self.responses.popleft() if self.responses else ("ok", {"status": 200, "payload": None})
        settings["success" if kind == "ok" else "error"](value)


@pytest.fixture(autouse=True)
def clean_sf_env(monkeypatch, tmp_path):
    """No SF_* variables or stray .env files leak into tests."""
    import os

    for name in list(os.environ):
        if name.startswith("SF_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def fast_auth():
    return AuthOptions(user_id="005USER", source_id="SRC1", poll_interval_ms=5, timeout_ms=200)


@pytest.fixture
def rest_client(fast_auth):
    """Factory: ``rest_client(responses, **config_overrides) -> (client, proxy)``."""

    def make(responses=None, *, proxy=None, **overrides):
        proxy = proxy or FakeRestProxy(responses)
        overrides.setdefault("auth", fast_auth)
        sf = SalesforceClient(ClientConfig(mode="rest", rest_proxy=proxy, **overrides))
        return sf, proxy

    return make


@pytest.fixture
def canvas_client():
    """Factory: ``canvas_client(responses, **config_overrides) -> (client, host)``."""

    def make(responses=None, **overrides):
        host = FakeCanvasHost(responses)
        sf = SalesforceClient(ClientConfig(mode="canvas", canvas_host=host, **overrides))
        return sf, host

    return make
