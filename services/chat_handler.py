"""One chat turn, end to end.

Control flow::

    validate → resolve session → parse inbound (quiz sentinel) → append inbound
      → get context → model orchestration (streams delta/summary/products/routine)
      → schedule final persistence → send final | skin_survey.start
      → finalize (drain background writes, close stream)

Any failure after the stream opened becomes a single ``error`` event.  Every
path ends in ``finalize()``, so persistence started during the turn always
settles before the response closes.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from agents.orchestrator import ModelProvider, run_completion
from config.llm_config import GenerationConfig
from config.settings import Settings, get_settings
from errors.exceptions import ChatInputError
from models.chat import ChatRequest, CompletionRequest, CompletionResult, Role
from models.stream_events import ErrorEvent, FinalEvent, SkinSurveyStartEvent
from services.background import BackgroundTaskGroup
from services.context_builder import build_system_prompt, build_turn_messages
from services.context_store import ContextStore
from services.ndjson_stream import NDJSONStream
from services.normalizers import sanitize_products, sanitize_routine
from services.quiz_sentinel import parse_inbound_message
from services.reply_format import FormattedReply, format_reply
from services.session_resolver import resolve_session

logger = logging.getLogger(__name__)

MISSING_MESSAGE = "Missing `message` in request body"
UNEXPECTED_ERROR = "Unexpected error occurred"
PRODUCT_TOOL_NAMES = ("searchProductsByQuery", "getProduct", "getAllProducts")
DEFAULT_PRODUCT_TOOL = "searchProductsByQuery"
ROUTINE_TOOL_NAME = "recommendRoutine"


def resolve_generation_config(request: ChatRequest, settings: Settings) -> GenerationConfig:
    """Layer request overrides on the configured defaults.

    ``maxToolRounds`` is clamped to ``0..max_tool_rounds_limit``; a provider
    switch without a model picks that provider's configured model.
    """
    rounds = request.max_tool_rounds
    if rounds is not None:
        rounds = max(0, min(rounds, settings.max_tool_rounds_limit))
    merged = settings.get_default_generation_config().merge(GenerationConfig(
        provider=request.provider,
        model=request.model,
        temperature=request.temperature,
        max_tool_rounds=rounds,
        use_tools=request.use_tools,
    ))
    if not merged.model:
        merged = merged.model_copy(update={"model": settings.model_for(merged.provider or "")})
    return merged


def latest_product_tool(completion: CompletionResult) -> str:
    for output in reversed(completion.tool_outputs):
        if output.name in PRODUCT_TOOL_NAMES:
            return output.name
    return DEFAULT_PRODUCT_TOOL


class ChatTurnHandler:
    """Runs chat turns against a context store and a model provider."""

    def __init__(
        self,
        store: ContextStore,
        provider: ModelProvider,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._settings = settings or get_settings()

    async def handle(self, request: ChatRequest, stream: NDJSONStream) -> None:
        """Run one turn, writing every event to *stream*, then finalize it."""
        tasks = BackgroundTaskGroup(name=request.session_id or "new-session")
        session_id: str | None = None
        start = time.monotonic()
        try:
            message = request.message
            if not isinstance(message, str) or not message.strip():
                raise ChatInputError(MISSING_MESSAGE)

            session_id = await resolve_session(
                self._store, request.session_id, request.user_id, request.config,
            )
            inbound = parse_inbound_message(message, request.user_id)
            _log_turn_start(session_id, request, inbound.is_quiz)

            if inbound.content:
                # Awaited so the model sees the new message; failures are
                # isolated by the task group like every other write.
                await tasks.spawn(
                    self._append(tasks, session_id, inbound.role, inbound.content),
                    label="append_inbound",
                )

            context = await self._store.get_context(session_id)
            generation = resolve_generation_config(request, self._settings)
            completion_request = CompletionRequest(
                messages=build_turn_messages(context.messages),
                system_prompt=build_system_prompt(),
                model=generation.model or "",
                temperature=generation.temperature or 0.0,
                max_tokens=generation.max_tokens,
                use_tools=bool(generation.use_tools),
                max_tool_rounds=generation.max_tool_rounds or 0,
                session_id=session_id,
                user_id=request.user_id,
            )
            completion = await run_completion(
                self._provider, generation.provider, completion_request, stream,
            )

            formatted = format_reply(completion.reply)
            self._schedule_final_persistence(tasks, session_id, completion, formatted)
            await self._send_terminal(stream, session_id, completion, formatted)
        except Exception as exc:
            if isinstance(exc, ChatInputError):
                logger.warning("Rejected chat request: %s", exc)
            else:
                logger.exception("Error generating response (session=%s)", session_id)
            if stream.terminal_event is None:
                await stream.send(ErrorEvent(message=str(exc) or UNEXPECTED_ERROR))
        finally:
            await stream.finalize(tasks)
            _log_turn_end(session_id, stream, tasks, (time.monotonic() - start) * 1000)

    # -- persistence ---------------------------------------------------------

    async def _append(
        self,
        tasks: BackgroundTaskGroup,
        session_id: str,
        role: Role,
        content: str,
    ) -> None:
        """Append one message and chain a summary recompute when one is due."""
        result = await self._store.append_message(session_id, role, content)
        if result.needs_summary:
            tasks.spawn(self._store.recompute_summaries(session_id), label="recompute_summaries")

    def _schedule_final_persistence(
        self,
        tasks: BackgroundTaskGroup,
        session_id: str,
        completion: CompletionResult,
        formatted: FormattedReply,
    ) -> None:
        products = sanitize_products(completion.products)
        if products:
            content = json.dumps({
                "name": latest_product_tool(completion),
                "products": [product.to_wire() for product in products],
            }, ensure_ascii=False)
            tasks.spawn(self._append(tasks, session_id, "tool", content), label="append_products")

        routine = sanitize_routine(completion.routine)
        if routine is not None and routine.steps:
            content = json.dumps(
                {"name": ROUTINE_TOOL_NAME, "routine": routine.to_wire()},
                ensure_ascii=False,
            )
            tasks.spawn(self._append(tasks, session_id, "tool", content), label="append_routine")

        stored = formatted.stored.strip()
        if not completion.start_skin_type_quiz and stored:
            tasks.spawn(self._append(tasks, session_id, "assistant", stored), label="append_assistant")

    # -- terminal events -----------------------------------------------------

    @staticmethod
    async def _send_terminal(
        stream: NDJSONStream,
        session_id: str,
        completion: CompletionResult,
        formatted: FormattedReply,
    ) -> None:
        if completion.start_skin_type_quiz:
            await stream.send(SkinSurveyStartEvent(session_id=session_id))
            return

        normalized = sanitize_products(completion.products)
        products: list[Any] = list(normalized) if normalized else list(completion.products)
        routine = sanitize_routine(completion.routine)
        await stream.send(FinalEvent(
            reply=formatted.reply,
            session_id=session_id,
            tool_outputs=completion.tool_outputs,
            products=products,
            result_type=completion.result_type,
            routine=routine,
            summary=completion.summary,
            suggestions=formatted.suggestions or None,
        ))


# ── Structured Logging ──────────────────────────────────────


def _log_turn_start(session_id: str, request: ChatRequest, is_quiz: bool) -> None:
    logger.info(json.dumps({
        "event": "chat_turn_start",
        "session_id": session_id,
        "user_id": request.user_id,
        "new_session": not request.session_id,
        "is_quiz": is_quiz,
        "provider": request.provider,
        "message_preview": str(request.message)[:100],
    }, ensure_ascii=False))


def _log_turn_end(
    session_id: str | None,
    stream: NDJSONStream,
    tasks: BackgroundTaskGroup,
    elapsed_ms: float,
) -> None:
    logger.info(json.dumps({
        "event": "chat_turn_end",
        "session_id": session_id,
        "terminal_event": stream.terminal_event,
        "background_tasks": len(tasks),
        "background_failures": tasks.failures,
        "total_latency_ms": round(elapsed_ms, 1),
    }, ensure_ascii=False))
