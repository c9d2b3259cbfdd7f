"""Tests for the orchestration loop — provider events to deduplicated stream events."""

import json

import pytest

from agents.orchestrator import StreamEmitter, run_completion
from models.chat import ChatMessage, CompletionRequest, CompletionResult, ProductContext, ReplySummary
from models.provider_events import ProductsEvent, RoutineEvent, SummaryEvent, TokenEvent
from services.ndjson_stream import NDJSONStream


async def _lines(stream: NDJSONStream) -> list[dict]:
    await stream.finalize()
    return [json.loads(line) async for line in stream.iter_lines()]


class ScriptedProvider:
    """Emits a fixed list of provider events, then returns a result."""

    def __init__(self, events, result: CompletionResult | None = None):
        self.events = events
        self.result = result or CompletionResult(reply="done")
        self.calls = []

    async def call_model(self, provider, request, emit):
        self.calls.append((provider, request))
        for event in self.events:
            await emit(event)
        return self.result


@pytest.fixture
def completion_request() -> CompletionRequest:
    return CompletionRequest(
        messages=[ChatMessage(role="user", content="cleanser for oily skin")],
        system_prompt="system",
        model="test-model",
        session_id="sess-1",
    )


# ── StreamEmitter ──────────────────────────────────────────


@pytest.mark.asyncio
async def test_tokens_forwarded_in_order():
    stream = NDJSONStream()
    emit = StreamEmitter(stream)
    for token in ["Hel", "", "lo"]:
        await emit(TokenEvent(token=token))

    lines = await _lines(stream)
    assert lines == [{"type": "delta", "token": "Hel"}, {"type": "delta", "token": "lo"}]


@pytest.mark.asyncio
async def test_duplicate_products_suppressed_even_when_reordered(raw_products):
    stream = NDJSONStream()
    emit = StreamEmitter(stream)

    await emit(ProductsEvent(products=raw_products))
    await emit(ProductsEvent(products=list(reversed(raw_products))))

    lines = await _lines(stream)
    assert len(lines) == 1
    assert emit.suppressed == 1
    assert [p["productId"] for p in lines[0]["products"]] == ["p-1", "p-2"]


@pytest.mark.asyncio
async def test_products_carry_context_hints(raw_products):
    stream = NDJSONStream()
    emit = StreamEmitter(stream)
    context = ProductContext(headline_hint="Cleanser for Oily Skin", icon_suggestion="🛍️")

    await emit(ProductsEvent(products=raw_products, context=context))

    line = (await _lines(stream))[0]
    assert line["type"] == "products"
    assert line["headlineHint"] == "Cleanser for Oily Skin"
    assert line["iconSuggestion"] == "🛍️"
    assert "intentHeadlineHint" not in line


@pytest.mark.asyncio
async def test_unnormalizable_products_sent_raw():
    stream = NDJSONStream()
    emit = StreamEmitter(stream)

    await emit(ProductsEvent(products=[{"name": "No id at all"}]))

    line = (await _lines(stream))[0]
    assert line["products"] == [{"name": "No id at all"}]


@pytest.mark.asyncio
async def test_empty_product_batch_ignored():
    stream = NDJSONStream()
    emit = StreamEmitter(stream)
    await emit(ProductsEvent(products=[]))
    assert await _lines(stream) == []


@pytest.mark.asyncio
async def test_routine_dedup_and_empty_routine_skipped(raw_routine):
    stream = NDJSONStream()
    emit = StreamEmitter(stream)

    await emit(RoutineEvent(routine=raw_routine))
    await emit(RoutineEvent(routine=raw_routine))
    await emit(RoutineEvent(routine={"steps": []}))

    lines = await _lines(stream)
    assert len(lines) == 1
    assert lines[0]["type"] == "routine"
    assert [s.get("productId") for s in lines[0]["routine"]["steps"]] == ["p-1", "p-3"]


@pytest.mark.asyncio
async def test_summary_dedup():
    stream = NDJSONStream()
    emit = StreamEmitter(stream)
    summary = ReplySummary(headline="Cleansers")

    await emit(SummaryEvent(summary=summary))
    await emit(SummaryEvent(summary=ReplySummary(headline="Cleansers")))
    await emit(SummaryEvent(summary=ReplySummary(headline="Cleansers + Routine")))

    lines = await _lines(stream)
    assert [line["summary"]["headline"] for line in lines] == ["Cleansers", "Cleansers + Routine"]


# ── run_completion ─────────────────────────────────────────


@pytest.mark.asyncio
async def test_run_completion_wires_provider_events(completion_request, raw_products):
    stream = NDJSONStream()
    provider = ScriptedProvider([
        TokenEvent(token="Here "),
        ProductsEvent(products=raw_products),
        ProductsEvent(products=raw_products),
        TokenEvent(token="you go"),
    ])

    result = await run_completion(provider, "openai", completion_request, stream)

    assert result.reply == "done"
    assert provider.calls[0][0] == "openai"
    types = [line["type"] for line in await _lines(stream)]
    assert types == ["delta", "products", "delta"]


@pytest.mark.asyncio
async def test_run_completion_propagates_provider_errors(completion_request):
    class FailingProvider:
        async def call_model(self, provider, request, emit):
            await emit(TokenEvent(token="partial"))
            raise RuntimeError("model timeout")

    stream = NDJSONStream()
    with pytest.raises(RuntimeError, match="model timeout"):
        await run_completion(FailingProvider(), None, completion_request, stream)

    # Deltas already sent stay on the wire.
    assert await _lines(stream) == [{"type": "delta", "token": "partial"}]
