"""Model orchestration loop — provider events in, stream events out.

The provider reports everything through one ``emit(event)`` coroutine.
:class:`StreamEmitter` is that coroutine for a single request: it forwards
tokens in order, normalizes product and routine payloads, and drops any
payload whose signature matches the last one sent on its channel.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from models.chat import CompletionRequest, CompletionResult
from models.provider_events import (
    Emit,
    ProductsEvent,
    ProviderEvent,
    RoutineEvent,
    SummaryEvent,
    TokenEvent,
)
from models.stream_events import (
    DeltaEvent,
    ProductsStreamEvent,
    RoutineStreamEvent,
    SummaryStreamEvent,
)
from services.ndjson_stream import NDJSONStream
from services.normalizers import sanitize_products, sanitize_routine
from services.signatures import (
    SignatureCache,
    products_signature,
    routine_signature,
    summary_signature,
)

logger = logging.getLogger(__name__)


class ModelProvider(Protocol):
    """Anything that can run one completion and report through *emit*."""

    async def call_model(
        self,
        provider: str | None,
        request: CompletionRequest,
        emit: Emit,
    ) -> CompletionResult: ...


class StreamEmitter:
    """Per-request ``emit`` handler writing deduplicated events to *stream*."""

    def __init__(self, stream: NDJSONStream, signatures: SignatureCache | None = None) -> None:
        self._stream = stream
        self._signatures = signatures or SignatureCache()
        self.suppressed = 0

    async def __call__(self, event: ProviderEvent) -> None:
        if isinstance(event, TokenEvent):
            await self._on_token(event)
        elif isinstance(event, SummaryEvent):
            await self._on_summary(event)
        elif isinstance(event, ProductsEvent):
            await self._on_products(event)
        elif isinstance(event, RoutineEvent):
            await self._on_routine(event)
        else:
            logger.warning("Ignoring unknown provider event: %r", event)

    async def _on_token(self, event: TokenEvent) -> None:
        if event.token:
            await self._stream.send(DeltaEvent(token=event.token))

    async def _on_summary(self, event: SummaryEvent) -> None:
        if not self._signatures.should_emit("summary", summary_signature(event.summary)):
            self.suppressed += 1
            return
        await self._stream.send(SummaryStreamEvent(summary=event.summary))

    async def _on_products(self, event: ProductsEvent) -> None:
        if not isinstance(event.products, list) or not event.products:
            return
        normalized = sanitize_products(event.products)
        payload: list[Any] = list(normalized) if normalized else list(event.products)
        if not self._signatures.should_emit("products", products_signature(payload)):
            self.suppressed += 1
            return
        hints = event.context.model_dump(exclude_none=True) if event.context else {}
        await self._stream.send(ProductsStreamEvent(products=payload, **hints))

    async def _on_routine(self, event: RoutineEvent) -> None:
        routine = sanitize_routine(event.routine)
        if routine is None or not routine.steps:
            return
        if not self._signatures.should_emit("routine", routine_signature(routine)):
            self.suppressed += 1
            return
        await self._stream.send(RoutineStreamEvent(routine=routine))


async def run_completion(
    provider: ModelProvider,
    provider_name: str | None,
    request: CompletionRequest,
    stream: NDJSONStream,
) -> CompletionResult:
    """Drive one provider call, wiring its events into *stream*.

    Provider exceptions propagate; the caller turns them into an ``error``
    event.  Deltas already sent stay on the wire.
    """
    emitter = StreamEmitter(stream)
    result = await provider.call_model(provider_name, request, emitter)
    if emitter.suppressed:
        logger.debug("Suppressed %d duplicate payloads (session=%s)", emitter.suppressed, request.session_id)
    return result
