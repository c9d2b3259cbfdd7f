"""Newline-delimited JSON transport for chat turns.

The chat handler runs in its own task and writes events through
:class:`NDJSONStream`; the HTTP layer drains :meth:`NDJSONStream.iter_lines`
into a ``StreamingResponse``.  Decoupling the two lets a turn finish its
persistence work even when the client has already gone away.

Lifecycle::

    open ──finalize()──▶ finalizing ──(background tasks drained)──▶ closed

``finalize()`` is the single authorized closer and may be called once.
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import AsyncIterator

from errors.exceptions import StreamStateError
from models.base import CamelModel
from models.stream_events import TERMINAL_EVENT_TYPES
from services.background import BackgroundTaskGroup

logger = logging.getLogger(__name__)

MEDIA_TYPE = "application/json; charset=utf-8"

_END = None


class StreamState(str, Enum):
    OPEN = "open"
    FINALIZING = "finalizing"
    CLOSED = "closed"


def encode_event(event: CamelModel) -> bytes:
    """Serialize one event as a JSON line."""
    line = json.dumps(event.to_wire(), ensure_ascii=False, default=str)
    return f"{line}\n".encode("utf-8")


class NDJSONStream:
    """Queue-backed event writer with best-effort delivery after disconnect."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._state = StreamState.OPEN
        self._disconnected = False
        self._dropped = 0
        self._terminal: str | None = None

    # -- writer side ---------------------------------------------------------

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def terminal_event(self) -> str | None:
        """Type of the terminal event sent, if any."""
        return self._terminal

    async def send(self, event: CamelModel) -> bool:
        """Queue one event; returns False when the client is gone.

        Events after a terminal event are rejected so a turn can never end
        with two terminal payloads.
        """
        if self._state is not StreamState.OPEN:
            raise StreamStateError(f"send() on a {self._state.value} stream")
        if self._terminal is not None:
            raise StreamStateError(f"send() after terminal '{self._terminal}' event")

        event_type = getattr(event, "type", "")
        if event_type in TERMINAL_EVENT_TYPES:
            self._terminal = event_type

        if self._disconnected:
            self._dropped += 1
            return False
        await self._queue.put(encode_event(event))
        return True

    async def finalize(self, tasks: BackgroundTaskGroup | None = None) -> None:
        """Drain *tasks*, then close the stream.  Callable exactly once."""
        if self._state is not StreamState.OPEN:
            raise StreamStateError("finalize() called on an already finalized stream")
        self._state = StreamState.FINALIZING
        try:
            if tasks is not None:
                await tasks.join_all()
        finally:
            self._state = StreamState.CLOSED
            if self._dropped:
                logger.info("Dropped %d events after client disconnect", self._dropped)
            await self._queue.put(_END)

    # -- reader side ---------------------------------------------------------

    def mark_disconnected(self) -> None:
        """Stop delivering events; the writer keeps running to completion."""
        if self._disconnected:
            return
        self._disconnected = True
        while not self._queue.empty():
            self._queue.get_nowait()
            self._dropped += 1
        logger.warning("Client disconnected mid-stream; continuing turn without delivery")

    async def iter_lines(self) -> AsyncIterator[bytes]:
        """Yield encoded lines until the stream is closed."""
        while True:
            chunk = await self._queue.get()
            if chunk is _END:
                return
            yield chunk
