"""Tests for sfclient.endpoints."""

from sfclient.endpoints import DEFAULT_API_VERSION, Endpoints


class TestFromRestUrl:
    def test_splits_origin_and_version(self):
        e = Endpoints.from_rest_url("https://x.my.salesforce.com/services/data/v60.0/")

        assert e.base == "https://x.my.salesforce.com"
        assert e.version == "v60.0"
        assert e.data_base == "https://x.my.salesforce.com/services/data/v60.0"
        assert e.query_url == "https://x.my.salesforce.com/services/data/v60.0/query"
        assert e.apex_base == "https://x.my.salesforce.com/services/apexrest"

    def test_api_version_override_wins(self):
        e = Endpoints.from_rest_url("https://x.my.salesforce.com/services/data/v60.0/", "62.0")

        assert e.version == "v62.0"
        assert e.data_base.endswith("/services/data/v62.0")

    def test_instance_url_without_version_uses_default(self):
        e = Endpoints.from_rest_url("https://x.my.salesforce.com")

        assert e.version == DEFAULT_API_VERSION

    def test_rebuilding_from_own_data_base_is_stable(self):
        """Deriving endpoints from an already-derived URL gives the same endpoints."""
        e = Endpoints.from_rest_url("https://x.my.salesforce.com/services/data/v60.0/")

        assert Endpoints.from_rest_url(e.data_base) == e
        assert Endpoints.from_rest_url(e.data_base + "/") == e


class TestFromCanvasContext:
    def test_relative_query_link_is_made_absolute(self):
        ctx = {
            "instanceUrl": "https://c.example.com/",
            "version": "59.0",
            "links": {"queryUrl": "/services/data/v59.0/query"},
        }

        e = Endpoints.from_canvas_context(ctx)

        assert e.base == "https://c.example.com"
        assert e.version == "v59.0"
        assert e.query_url == "https://c.example.com/services/data/v59.0/query"

    def test_missing_links_fall_back_to_data_base(self):
        e = Endpoints.from_canvas_context({"instanceUrl": "https://c.example.com"})

        assert e.version == DEFAULT_API_VERSION
        assert e.query_url == f"https://c.example.com/services/data/{DEFAULT_API_VERSION}/query"


class TestPaths:
    def test_sobject_url(self):
        e = Endpoints.build("https://x.example.com", "v61.0")

        assert e.sobject_url("Contact") == "https://x.example.com/services/data/v61.0/sobjects/Contact"
        assert (
            e.sobject_url("Contact", "003A")
            == "https://x.example.com/services/data/v61.0/sobjects/Contact/003A"
        )

    def test_absolute(self):
        e = Endpoints.build("https://x.example.com", "v61.0")

        assert e.absolute("/services/data/v61.0/query/01g-2000") == (
            "https://x.example.com/services/data/v61.0/query/01g-2000"
        )
        assert e.absolute("https://other.example.com/a") == "https://other.example.com/a"
