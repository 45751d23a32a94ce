import httpx
import pytest

from glasscast.api.location_source import IPLocationSource


def build_source(handler) -> IPLocationSource:
    source = IPLocationSource()
    source.set_client(httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    return source


@pytest.mark.asyncio
async def test_resolves_city_from_successful_lookup():
    source = build_source(lambda request: httpx.Response(200, json={"status": "success", "city": "Lisbon"}))

    assert await source.resolve_current_city() == "Lisbon"


@pytest.mark.asyncio
async def test_failed_lookup_status_returns_none():
    source = build_source(lambda request: httpx.Response(200, json={"status": "fail", "message": "private range"}))

    assert await source.resolve_current_city() is None


@pytest.mark.asyncio
async def test_network_error_returns_none():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    source = build_source(handler)

    assert await source.resolve_current_city() is None


@pytest.mark.asyncio
async def test_blank_city_returns_none():
    source = build_source(lambda request: httpx.Response(200, json={"status": "success", "city": "  "}))

    assert await source.resolve_current_city() is None
