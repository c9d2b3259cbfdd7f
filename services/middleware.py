"""Request ID middleware (pure ASGI, streaming-safe)."""

from __future__ import annotations

import logging
import uuid

from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = b"x-request-id"
MAX_REQUEST_ID_LENGTH = 64


class RequestIdMiddleware:
    """Tag every HTTP request with an ``X-Request-ID``.

    A client-supplied id is reused when it is printable and short; otherwise a
    12-char hex id is generated.  The id is stored in ``scope["state"]`` and
    echoed on the response.  Implemented as raw ASGI so NDJSON chat streams
    are passed through unbuffered.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = _incoming_request_id(scope) or uuid.uuid4().hex[:12]
        scope.setdefault("state", {})
        scope["state"]["request_id"] = request_id

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((REQUEST_ID_HEADER, request_id.encode("latin-1")))
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_request_id)


def _incoming_request_id(scope: Scope) -> str | None:
    for name, value in scope.get("headers", []):
        if name == REQUEST_ID_HEADER:
            candidate = value.decode("latin-1").strip()
            if candidate and len(candidate) <= MAX_REQUEST_ID_LENGTH and candidate.isprintable():
                return candidate
            logger.debug("Ignoring malformed X-Request-ID header")
            return None
    return None
