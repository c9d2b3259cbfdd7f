"""Per-worker cap on concurrent chat streams (pure ASGI).

Each chat turn holds a model call and a long-lived NDJSON response.  When a
worker already serves ``max_streams`` of them, further chat requests get an
immediate 503 with ``Retry-After`` instead of queuing.  Other paths (health)
pass through.
"""

from __future__ import annotations

import asyncio
import json
import logging

from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger(__name__)

DEFAULT_MAX_STREAMS = 15
STREAMING_PATHS = frozenset({"/api/chat"})


class ConcurrencyLimitMiddleware:
    """Reject chat requests while the worker is at capacity."""

    def __init__(
        self,
        app: ASGIApp,
        max_streams: int = DEFAULT_MAX_STREAMS,
        paths: frozenset[str] = STREAMING_PATHS,
        retry_after: int = 5,
    ) -> None:
        self.app = app
        self._max_streams = max_streams
        self._paths = paths
        self._retry_after = retry_after
        self._semaphore: asyncio.Semaphore | None = None

    def _get_semaphore(self) -> asyncio.Semaphore:
        # Created lazily so it binds to the serving event loop.
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._max_streams)
            logger.info("Chat stream semaphore initialized (max=%d)", self._max_streams)
        return self._semaphore

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("path", "") not in self._paths:
            await self.app(scope, receive, send)
            return

        sem = self._get_semaphore()
        if sem.locked():
            logger.warning("Concurrency limit reached for %s — returning 503", scope.get("path"))
            body = json.dumps(
                {"detail": "Server busy — too many concurrent chats. Please retry."}
            ).encode()
            await send({
                "type": "http.response.start",
                "status": 503,
                "headers": [
                    (b"content-type", b"application/json"),
                    (b"retry-after", str(self._retry_after).encode()),
                ],
            })
            await send({"type": "http.response.body", "body": body})
            return

        async with sem:
            await self.app(scope, receive, send)
