"""Tests for batch, create_tree and compound_batch."""

import asyncio

import pytest
from conftest import sf_error

from sfclient.composite import normalize_composite_url
from sfclient.exceptions import RequestValidationError, SfError

DATA = "https://example.my.salesforce.com/services/data/v61.0"


@pytest.mark.parametrize(
    "url",
    [
        "sobjects/Account/001",
        "/sobjects/Account/001",
        "/services/data/v58.0/sobjects/Account/001",
        "services/data/v58.0/sobjects/Account/001",
        "https://example.my.salesforce.com/services/data/v61.0/sobjects/Account/001",
    ],
)
def test_normalize_composite_url(url):
    assert normalize_composite_url(url, "v61.0") == "/services/data/v61.0/sobjects/Account/001"


class TestBatch:
    def test_body_and_reference_ids(self, rest_client):
        response = {
            "compositeResponse": [
                {"referenceId": "getA", "httpStatusCode": 200, "body": {}},
                {"referenceId": "ref2", "httpStatusCode": 204, "body": None},
            ]
        }
        sf, proxy = rest_client([("ok", response)])

        env = asyncio.run(
            sf.batch(
                [
                    {"method": "get", "url": "sobjects/Account/001", "referenceId": "getA"},
                    {"method": "PATCH", "url": "/sobjects/Account/001", "body": {"Name": "B"}},
                ],
                all_or_none=True,
            )
        )

        assert env.ok
        assert env.data == response
        call = proxy.calls[0]
        assert call["type"] == "POST"
        assert call["url"] == f"{DATA}/composite"
        body = call["data"]
        assert body["allOrNone"] is True
        assert body["collateSubrequests"] is False
        assert body["compositeRequest"] == [
            {"method": "GET", "url": "/services/data/v61.0/sobjects/Account/001", "referenceId": "getA"},
            {
                "method": "PATCH",
                "url": "/services/data/v61.0/sobjects/Account/001",
                "referenceId": "ref2",
                "body": {"Name": "B"},
            },
        ]

    def test_subrequest_failures_are_logged(self, rest_client, caplog):
        response = {"compositeResponse": [{"referenceId": "ref1", "httpStatusCode": 404, "body": []}]}
        sf, _ = rest_client([("ok", response)])

        with caplog.at_level("WARNING", logger="sfclient.client"):
            env = asyncio.run(sf.batch([{"method": "GET", "url": "/sobjects/Account/nope"}]))

        assert env.ok
        assert "1 of 1 sub-requests failed (ref1)" in caplog.text

    @pytest.mark.parametrize(
        "requests",
        [
            [{"method": "GET", "url": f"/sobjects/Account/{n}"} for n in range(26)],
            [{"method": "GET"}],
            [
                {"method": "GET", "url": "/a", "referenceId": "same"},
                {"method": "GET", "url": "/b", "referenceId": "same"},
            ],
            [],
        ],
    )
    def test_invalid_batches_raise_before_any_call(self, rest_client, requests):
        sf, proxy = rest_client(error_mode="return")

        with pytest.raises(RequestValidationError):
            asyncio.run(sf.batch(requests))

        assert proxy.calls == []

    def test_mapping_form(self, rest_client):
        sf, proxy = rest_client()

        asyncio.run(sf.batch({"requests": [{"method": "GET", "url": "/limits"}], "allOrNone": True}))

        assert proxy.calls[0]["data"]["allOrNone"] is True


def tree_records(n):
    return [{"attributes": {"type": "Contact", "referenceId": f"r{i}"}, "LastName": f"L{i}"} for i in range(n)]


class TestCreateTree:
    def test_records_are_chunked(self, rest_client):
        sf, proxy = rest_client(
            [("ok", {"hasErrors": False, "results": [{"referenceId": f"c{i}"}]}) for i in range(3)]
        )

        env = asyncio.run(sf.create_tree("Contact", tree_records(450)))

        assert env.ok
        assert [len(c["data"]["records"]) for c in proxy.calls] == [200, 200, 50]
        assert {c["url"] for c in proxy.calls} == {f"{DATA}/composite/tree/Contact"}
        assert [p["results"][0]["referenceId"] for p in env.data] == ["c0", "c1", "c2"]

    def test_partial_failure_continues_and_collects(self, rest_client):
        failure = sf_error("duplicate value", "DUPLICATE_VALUE", 400)
        sf, proxy = rest_client(
            [
                ("ok", {"hasErrors": False, "results": []}),
                ("err", failure),
                ("ok", {"hasErrors": False, "results": []}),
            ]
        )

        env = asyncio.run(sf.create_tree("Contact", tree_records(5), chunk_size=2))

        assert len(proxy.calls) == 3
        assert env.ok is False
        assert env.status == 400
        assert env.error.code == "DUPLICATE_VALUE"
        assert len(env.data) == 3
        assert env.data[1][0]["errorCode"] == "DUPLICATE_VALUE"

    def test_every_chunk_failing_follows_error_mode(self, rest_client):
        failure = sf_error("bad", "INVALID_FIELD", 400)
        sf, _ = rest_client([("err", failure), ("err", failure)])

        with pytest.raises(SfError):
            asyncio.run(sf.create_tree("Contact", tree_records(3), chunk_size=2))

        sf, _ = rest_client([("err", failure), ("err", failure)], error_mode="return")
        env = asyncio.run(sf.create_tree("Contact", tree_records(3), chunk_size=2))
        assert env.ok is False
        assert len(env.data) == 2

    @pytest.mark.parametrize("size", [0, 201, "10"])
    def test_chunk_size_bounds(self, rest_client, size):
        sf, proxy = rest_client()

        with pytest.raises(RequestValidationError):
            asyncio.run(sf.create_tree("Contact", tree_records(1), chunk_size=size))
        assert proxy.calls == []


class TestCompoundBatch:
    def test_records_are_packed_into_composite_envelopes(self, rest_client):
        sf, proxy = rest_client()
        records = [{"attributes": {"type": "Contact"}, "LastName": f"L{i}"} for i in range(450)]

        env = asyncio.run(sf.compound_batch(records, batch_size=200, envelope_size=2))

        assert env.ok
        assert len(proxy.calls) == 2
        first = proxy.calls[0]["data"]["compositeRequest"]
        second = proxy.calls[1]["data"]["compositeRequest"]
        assert [s["referenceId"] for s in first] == ["collection1", "collection2"]
        assert [s["referenceId"] for s in second] == ["collection3"]
        assert first[0]["url"] == "/services/data/v61.0/composite/sobjects"
        assert [len(s["body"]["records"]) for s in first + second] == [200, 200, 50]
        assert proxy.calls[0]["url"] == f"{DATA}/composite"

    def test_extra_requests_follow_inserts(self, rest_client):
        sf, proxy = rest_client()
        records = [{"attributes": {"type": "Contact"}, "LastName": "A"}]

        asyncio.run(
            sf.compound_batch(records, extra_requests=[{"method": "GET", "url": "/limits", "referenceId": "lim"}])
        )

        refs = [s["referenceId"] for s in proxy.calls[0]["data"]["compositeRequest"]]
        assert refs == ["collection1", "lim"]

    def test_records_need_a_type(self, rest_client):
        sf, proxy = rest_client()

        with pytest.raises(RequestValidationError, match=r"records\[1\]\.attributes\.type"):
            asyncio.run(sf.compound_batch([{"attributes": {"type": "Contact"}}, {"LastName": "X"}]))
        assert proxy.calls == []
