"""Tests for StorefrontClient — retry, circuit breaker and error mapping.

Uses ``httpx.MockTransport`` so no network is involved; retry delays are
zeroed to keep the suite fast.
"""

import json

import httpx
import pytest

from errors.exceptions import StorefrontError
from services.storefront_client import (
    CIRCUIT_OPEN_THRESHOLD,
    MAX_RETRIES,
    CircuitOpenError,
    StorefrontClient,
)


def _client(handler) -> StorefrontClient:
    return StorefrontClient(
        base_url="http://storefront.test/",
        api_prefix="/api/v1",
        api_token="secret",
        transport=httpx.MockTransport(handler),
        retry_base_delay=0,
    )


@pytest.fixture
async def started():
    """Factory yielding started clients and closing them afterwards."""
    clients = []

    async def make(handler):
        client = _client(handler)
        await client.start()
        clients.append(client)
        return client

    yield make
    for client in clients:
        await client.close()


@pytest.mark.asyncio
async def test_get_sends_auth_and_params(started):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={"products": []})

    client = await started(handler)
    body = await client.get("/products/search", params={"nameQuery": "toner"})

    assert body == {"products": []}
    assert seen["url"] == "http://storefront.test/api/v1/products/search?nameQuery=toner"
    assert seen["auth"] == "Bearer secret"


@pytest.mark.asyncio
async def test_post_sends_json_body(started):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert json.loads(request.read()) == {"skinType": "oily"}
        return httpx.Response(200, json={"routine": {"steps": []}})

    client = await started(handler)
    assert await client.post("/routines/recommend", json_body={"skinType": "oily"}) == {
        "routine": {"steps": []}
    }


@pytest.mark.asyncio
async def test_empty_body_returns_empty_dict(started):
    client = await started(lambda request: httpx.Response(204))
    assert await client.put("/users/u-1/skin-profile", json_body={}) == {}


@pytest.mark.asyncio
async def test_4xx_raises_without_retry(started):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404, text="not found")

    client = await started(handler)
    with pytest.raises(StorefrontError) as exc_info:
        await client.get("/products/missing")

    assert exc_info.value.status_code == 404
    assert exc_info.value.detail == "not found"
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_5xx_retried_then_succeeds(started):
    responses = iter([httpx.Response(502), httpx.Response(200, json={"ok": True})])
    client = await started(lambda request: next(responses))

    assert await client.get("/health") == {"ok": True}


@pytest.mark.asyncio
async def test_5xx_exhausts_retries(started):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, text="boom")

    client = await started(handler)
    with pytest.raises(StorefrontError) as exc_info:
        await client.get("/products/search")

    assert exc_info.value.status_code == 500
    assert len(calls) == MAX_RETRIES


@pytest.mark.asyncio
async def test_network_errors_become_503(started):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = await started(handler)
    with pytest.raises(StorefrontError) as exc_info:
        await client.get("/products/search")

    assert exc_info.value.status_code == 503
    assert "unreachable" in exc_info.value.detail


@pytest.mark.asyncio
async def test_circuit_opens_after_consecutive_failures(started):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    client = await started(handler)
    # Each call makes MAX_RETRIES attempts; keep going until the breaker trips.
    for _ in range(-(-CIRCUIT_OPEN_THRESHOLD // MAX_RETRIES)):
        with pytest.raises(StorefrontError):
            await client.get("/products/search")

    assert client.circuit_open is True
    attempts = len(calls)
    with pytest.raises(CircuitOpenError):
        await client.get("/products/search")
    assert len(calls) == attempts


@pytest.mark.asyncio
async def test_success_resets_failure_count(started):
    responses = iter([httpx.Response(500), httpx.Response(200, json={})])
    client = await started(lambda request: next(responses))

    await client.get("/anything")

    assert client._consecutive_failures == 0


@pytest.mark.asyncio
async def test_request_before_start_raises():
    client = _client(lambda request: httpx.Response(200))
    with pytest.raises(RuntimeError, match="not started"):
        await client.get("/products/search")
