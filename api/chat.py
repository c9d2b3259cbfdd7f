"""Streaming chat endpoint — ``POST /api/chat``.

The response body is NDJSON: one stream event per line, ending with exactly
one terminal event (``final``, ``skin_survey.start`` or ``error``).

Each turn runs in its own task that writes to an :class:`NDJSONStream`; the
response only drains that stream.  When the client disconnects, draining
stops but the turn task keeps running to finalize, so history writes are not
lost with the connection.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, Request
from starlette.responses import StreamingResponse

from agents.shopping_agent import ShoppingAgent
from models.chat import ChatRequest
from services.chat_handler import ChatTurnHandler
from services.ndjson_stream import MEDIA_TYPE, NDJSONStream

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

# Turns whose client went away; held so they are not garbage-collected
# before finalize completes.
_detached_turns: set[asyncio.Task[None]] = set()


def get_chat_handler(request: Request) -> ChatTurnHandler:
    """Build the turn handler from resources created in the app lifespan."""
    state = request.app.state
    provider = ShoppingAgent(state.tool_registry, storefront=state.storefront)
    return ChatTurnHandler(state.context_store, provider, settings=state.settings)


@router.post("/chat")
async def chat(
    req: ChatRequest,
    handler: ChatTurnHandler = Depends(get_chat_handler),
):
    """Run one chat turn and stream its events as NDJSON."""
    stream = NDJSONStream()
    turn = asyncio.create_task(handler.handle(req, stream), name="chat-turn")
    return StreamingResponse(
        _drain(stream, turn),
        media_type=MEDIA_TYPE,
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


async def _drain(stream: NDJSONStream, turn: asyncio.Task[None]) -> AsyncGenerator[bytes, None]:
    completed = False
    try:
        async for line in stream.iter_lines():
            yield line
        completed = True
    finally:
        if not completed:
            stream.mark_disconnected()
        if not turn.done():
            _detached_turns.add(turn)
            turn.add_done_callback(_detached_turns.discard)


async def drain_detached_turns() -> None:
    """Wait for turns still running after their client disconnected.

    Called on shutdown before the context store and storefront close, so
    their pending history writes still reach the store.
    """
    pending = [turn for turn in _detached_turns if not turn.done()]
    if not pending:
        return
    logger.info("Waiting for %d detached chat turns before shutdown", len(pending))
    await asyncio.gather(*pending, return_exceptions=True)
