# tests/test_geocoding.py
import pytest
import requests

from geosync.geocoding import GeocodeCache, GeocodeClient, normalize_address, response_to_result
from geosync.google.client import GeocodeResponse, GoogleApiError
from geosync.models import ErrorKind

from conftest import FakeClock, FakeProvider, ok_response


def make_client(provider, clock=None, ttl=3600, delay=0.2):
    clock = clock or FakeClock()
    cache = GeocodeCache(ttl_sec=ttl, clock=clock)
    return GeocodeClient(provider, cache=cache, request_delay_sec=delay, sleep=clock.sleep), clock


def test_normalize_address():
    assert normalize_address("  1 Main   St,\tSpringfield ") == "1 main st, springfield"


@pytest.mark.asyncio
async def test_geocode_success_then_cache_hit():
    provider = FakeProvider()
    client, _ = make_client(provider)

    first = await client.geocode("1 Main St")
    second = await client.geocode("  1 MAIN st ")

    assert first.success
    assert first.coordinates.lat == pytest.approx(40.7128)
    assert second == first
    assert provider.calls == ["1 Main St"]


@pytest.mark.asyncio
async def test_cache_entry_expires_after_ttl():
    provider = FakeProvider()
    client, clock = make_client(provider, ttl=60)

    await client.geocode("1 Main St")
    clock.now += 59
    await client.geocode("1 Main St")
    assert len(provider.calls) == 1

    clock.now += 1
    await client.geocode("1 Main St")
    assert len(provider.calls) == 2


@pytest.mark.asyncio
async def test_empty_address_is_invalid_input_without_network():
    provider = FakeProvider()
    client, _ = make_client(provider)

    for addr in ("", "   "):
        result = await client.geocode(addr)
        assert not result.success
        assert result.error_kind is ErrorKind.INVALID_INPUT

    assert provider.calls == []
    assert client.cache_stats()["size"] == 0


@pytest.mark.asyncio
async def test_quota_exceeded_is_cached_as_failure():
    provider = FakeProvider(answers={"busy": GeocodeResponse(status="OVER_QUERY_LIMIT")})
    client, _ = make_client(provider)

    r1 = await client.geocode("busy")
    r2 = await client.geocode("busy")

    assert not r1.success
    assert r1.error_kind is ErrorKind.QUOTA_EXCEEDED
    assert "quota" in r1.error.lower()
    assert r2 == r1
    assert provider.calls == ["busy"]
    assert client.cache_stats() == {"size": 1, "success_count": 0, "failure_count": 1}


@pytest.mark.asyncio
async def test_transport_failure_becomes_result_and_is_cached():
    provider = FakeProvider(answers={
        "down": GoogleApiError("[geocode] HTTP error: 503"),
        "reset": requests.ConnectionError("connection reset"),
    })
    client, _ = make_client(provider)

    r = await client.geocode("down")
    assert not r.success and r.error_kind is ErrorKind.TRANSPORT
    r = await client.geocode("reset")
    assert not r.success and r.error_kind is ErrorKind.TRANSPORT

    await client.geocode("down")
    assert provider.calls == ["down", "reset"]


def test_response_to_result_status_mapping():
    cases = {
        "ZERO_RESULTS": ErrorKind.NO_RESULTS,
        "REQUEST_DENIED": ErrorKind.REQUEST_DENIED,
        "INVALID_REQUEST": ErrorKind.INVALID_REQUEST,
        "UNKNOWN_ERROR": ErrorKind.UNKNOWN,
        "SOMETHING_NEW": ErrorKind.UNKNOWN,
    }
    for status, kind in cases.items():
        r = response_to_result(GeocodeResponse(status=status), "x")
        assert not r.success
        assert r.error_kind is kind


def test_response_to_result_ok_without_candidates_or_bad_coords():
    r = response_to_result(GeocodeResponse(status="OK"), "x")
    assert r.error_kind is ErrorKind.UNKNOWN

    r = response_to_result(ok_response(123.0, 10.0), "x")
    assert not r.success
    assert r.error_kind is ErrorKind.INVALID_COORDINATES


@pytest.mark.asyncio
async def test_geocode_coordinates_returns_none_on_failure():
    provider = FakeProvider(answers={"nowhere": GeocodeResponse(status="ZERO_RESULTS")})
    client, _ = make_client(provider)

    assert await client.geocode_coordinates("nowhere") is None
    coords = await client.geocode_coordinates("1 Main St")
    assert (coords.lat, coords.lng) == (40.7128, -74.006)


@pytest.mark.asyncio
async def test_geocode_many_is_sequential_with_delay_between():
    provider = FakeProvider(answers={"b": GeocodeResponse(status="ZERO_RESULTS")})
    client, clock = make_client(provider, delay=0.2)

    results = await client.geocode_many(["a", "b", "c"])

    assert [r.original_address for r in results] == ["a", "b", "c"]
    assert [r.success for r in results] == [True, False, True]
    assert provider.calls == ["a", "b", "c"]
    assert clock.sleeps == [0.2, 0.2]


def test_clear_cache_and_rate_estimate():
    client, _ = make_client(FakeProvider(), delay=0.2)
    client.cache.put("x", response_to_result(ok_response(1.0, 1.0), "x"))
    assert len(client.cache) == 1
    client.clear_cache()
    assert len(client.cache) == 0
    assert client.estimated_requests_per_second() == pytest.approx(5.0)
