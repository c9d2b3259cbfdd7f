"""Tests for the request-id and chat concurrency middlewares."""

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient

from services.concurrency import ConcurrencyLimitMiddleware
from services.middleware import RequestIdMiddleware


async def echo_request_id(scope, receive, send):
    """Tiny ASGI app answering with the request id the middleware stored."""
    body = scope["state"]["request_id"].encode()
    await send({"type": "http.response.start", "status": 200, "headers": []})
    await send({"type": "http.response.body", "body": body})


# ── RequestIdMiddleware ─────────────────────────────────────


@pytest.fixture
async def request_id_client():
    transport = ASGITransport(app=RequestIdMiddleware(echo_request_id))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_generates_request_id(request_id_client):
    resp = await request_id_client.get("/api/health")
    request_id = resp.headers["x-request-id"]
    assert len(request_id) == 12
    assert resp.text == request_id


@pytest.mark.asyncio
async def test_reuses_client_request_id(request_id_client):
    resp = await request_id_client.get("/api/health", headers={"X-Request-ID": "client-abc-123"})
    assert resp.headers["x-request-id"] == "client-abc-123"
    assert resp.text == "client-abc-123"


@pytest.mark.asyncio
async def test_rejects_oversized_request_id(request_id_client):
    resp = await request_id_client.get("/api/health", headers={"X-Request-ID": "x" * 100})
    assert resp.headers["x-request-id"] != "x" * 100
    assert len(resp.headers["x-request-id"]) == 12


# ── ConcurrencyLimitMiddleware ──────────────────────────────


class TestConcurrencyLimit:
    """Chat requests beyond the per-worker cap get an immediate 503."""

    @pytest.mark.asyncio
    async def test_rejects_when_at_capacity(self):
        release = asyncio.Event()

        async def slow_app(scope, receive, send):
            await release.wait()
            await send({"type": "http.response.start", "status": 200, "headers": []})
            await send({"type": "http.response.body", "body": b"ok"})

        transport = ASGITransport(app=ConcurrencyLimitMiddleware(slow_app, max_streams=1, retry_after=7))
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            first = asyncio.create_task(ac.post("/api/chat", json={"message": "hi"}))
            await asyncio.sleep(0.05)

            busy = await ac.post("/api/chat", json={"message": "hi"})
            assert busy.status_code == 503
            assert busy.headers["retry-after"] == "7"
            assert "too many concurrent chats" in busy.json()["detail"]

            release.set()
            assert (await first).status_code == 200

            # The slot is free again.
            assert (await ac.post("/api/chat", json={"message": "hi"})).status_code == 200

    @pytest.mark.asyncio
    async def test_other_paths_not_limited(self):
        async def ok_app(scope, receive, send):
            await send({"type": "http.response.start", "status": 200, "headers": []})
            await send({"type": "http.response.body", "body": b"ok"})

        middleware = ConcurrencyLimitMiddleware(ok_app, max_streams=1)
        # Occupy the only chat slot.
        await middleware._get_semaphore().acquire()

        transport = ASGITransport(app=middleware)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            assert (await ac.get("/api/health")).status_code == 200
            assert (await ac.post("/api/chat", json={})).status_code == 503
