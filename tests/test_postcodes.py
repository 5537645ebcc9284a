import httpx
import pytest

from conftest import WESTMINSTER
from pipeline.errors import NetworkError, NotFoundError, UnknownError, classify
from pipeline.postcodes import PostcodeResolver, format_postcode, parse_postcode_input


class TestParsing:
    def test_format_strips_whitespace_and_uppercases(self):
        assert format_postcode(" sw1a  1aa ") == "SW1A1AA"

    def test_parse_splits_and_drops_empty_segments(self):
        assert parse_postcode_input("sw1a 1aa, , m1 1aa") == ["SW1A1AA", "M11AA"]

    def test_parse_blank_input(self):
        assert parse_postcode_input("  ,  ,") == []


class TestResolveOne:
    async def test_match_maps_coordinates(self, client):
        res = await PostcodeResolver(client).resolve_one("sw1a 1aa")
        assert res.valid
        assert res.postcode == "SW1A 1AA"
        assert (res.latitude, res.longitude) == WESTMINSTER

    async def test_normalises_before_lookup(self, client, fake):
        await PostcodeResolver(client).resolve_one(" sw1a 1aa ")
        assert fake.lookups() == ["SW1A1AA"]

    async def test_no_match_is_invalid(self, client):
        res = await PostcodeResolver(client).resolve_one("zz9 9zz")
        assert not res.valid
        assert res.postcode == "zz9 9zz"
        assert (res.latitude, res.longitude) == (0, 0)

    async def test_network_failure_is_invalid(self):
        def boom(request):
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(boom)) as ac:
            res = await PostcodeResolver(ac).resolve_one("SW1A1AA")
        assert not res.valid

    async def test_lookup_raises_not_found(self, client):
        with pytest.raises(NotFoundError):
            await PostcodeResolver(client).lookup("ZZ99ZZ")


class TestResolveMany:
    async def test_one_result_per_input_in_order(self, client):
        res = await PostcodeResolver(client).resolve_many(["M11AA", "BAD", "SW1A1AA"])
        assert [r.valid for r in res] == [True, False, True]
        assert [r.postcode for r in res] == ["M1 1AA", "BAD", "SW1A 1AA"]

    async def test_order_independent_of_completion(self, client, fake):
        # first lookup finishes last
        fake.delays["SW1A1AA"] = 0.05
        res = await PostcodeResolver(client).resolve_many(["SW1A1AA", "M11AA"])
        assert [r.postcode for r in res] == ["SW1A 1AA", "M1 1AA"]
        assert sorted(fake.lookups()) == ["M11AA", "SW1A1AA"]

    async def test_empty_input(self, client, fake):
        assert await PostcodeResolver(client).resolve_many([]) == []
        assert fake.requests == []


class TestClassify:
    def test_transport_error_is_network_error(self):
        request = httpx.Request("GET", "http://example.test")
        assert isinstance(classify(httpx.ReadTimeout("slow", request=request)), NetworkError)

    def test_status_error_carries_service_message(self):
        request = httpx.Request("GET", "http://example.test")
        response = httpx.Response(500, json={"error": "boom"}, request=request)
        err = classify(httpx.HTTPStatusError("500", request=request, response=response))
        assert isinstance(err, UnknownError)
        assert err.message == "boom"
        assert err.status == 500
