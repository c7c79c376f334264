"""Tests for transport selection."""

import pytest
from conftest import REST_URL, FakeCanvasHost, FakeRestProxy

from sfclient import ClientConfig, SalesforceClient
from sfclient.exceptions import ConfigurationError
from sfclient.http_bridge import RequestsRestProxy
from sfclient.transport import CanvasAdapter, RestAdapter, select_transport


def test_auto_prefers_canvas_when_host_is_usable():
    t = select_transport(ClientConfig(canvas_host=FakeCanvasHost(), rest_proxy=FakeRestProxy()))

    assert isinstance(t, CanvasAdapter)
    assert t.source == "canvas"
    assert t.endpoints.base == "https://canvas.example.com"


def test_auto_falls_back_to_rest_without_canvas_context():
    host = FakeCanvasHost()
    host.context = lambda: None

    t = select_transport(ClientConfig(canvas_host=host, rest_proxy=FakeRestProxy()))

    assert isinstance(t, RestAdapter)
    assert t.endpoints.data_base == REST_URL.rstrip("/")


def test_auto_ignores_host_missing_primitives():
    class HalfHost:
        def context(self):
            return {"instanceUrl": "https://c.example.com"}

    t = select_transport(ClientConfig(canvas_host=HalfHost(), rest_proxy=FakeRestProxy()))

    assert isinstance(t, RestAdapter)


def test_canvas_mode_without_context_is_a_configuration_error():
    host = FakeCanvasHost()
    host.context = lambda: {}

    with pytest.raises(ConfigurationError):
        SalesforceClient(mode="canvas", canvas_host=host)


def test_rest_mode_without_proxy_or_credentials():
    with pytest.raises(ConfigurationError):
        SalesforceClient(mode="rest")


def test_rest_mode_with_explicit_credentials_builds_requests_proxy():
    sf = SalesforceClient(mode="rest", rest_url=REST_URL, access_token="TOK")

    assert isinstance(sf.transport, RestAdapter)
    assert isinstance(sf.transport.proxy, RequestsRestProxy)
    assert sf.endpoints.version == "v61.0"


def test_proxy_must_have_ajax_request():
    class NoAjax:
        settings = {"token": "t", "rest_url": REST_URL}

    with pytest.raises(ConfigurationError, match="ajax_request"):
        SalesforceClient(mode="rest", rest_proxy=NoAjax())


def test_proxy_without_auth_needs_credentials():
    class NoAuth:
        settings = {}

        def ajax_request(self, **kwargs):
            pass

    with pytest.raises(ConfigurationError):
        SalesforceClient(mode="rest", rest_proxy=NoAuth())

    sf = SalesforceClient(mode="rest", rest_proxy=NoAuth(), rest_url=REST_URL, access_token="TOK")
    assert sf.source == "rest"


def test_config_and_overrides_are_merged():
    base = ClientConfig(mode="rest", rest_proxy=FakeRestProxy())

    sf = SalesforceClient(base, error_mode="return")

    assert sf.config.error_mode == "return"
    assert sf.config.rest_proxy is base.rest_proxy
