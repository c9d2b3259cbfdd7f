"""ShoppingAgent — the model provider behind a chat turn.

Runs one PydanticAI agent turn with the storefront tools:

1. Converts stored context messages into PydanticAI message history
2. Exposes the injected tool registry, bounded to ``max_tool_rounds`` model
   requests that may call tools
3. Streams reply text through ``emit(TokenEvent)``
4. Reports tool results as ``ProductsEvent`` / ``RoutineEvent`` /
   ``SummaryEvent`` while the turn is still running

The agent never writes to the client; the orchestration loop decides what
reaches the stream.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Sequence

from pydantic_ai import Agent, RunContext, UsageLimits
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelRequestPart,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    UserPromptPart,
)
from pydantic_ai.models import Model
from pydantic_ai.tools import ToolDefinition

from agents.provider import create_model, resolve_provider
from config.llm_config import GenerationConfig
from errors.exceptions import ProviderError
from models.chat import (
    ChatMessage,
    CompletionRequest,
    CompletionResult,
    ProductContext,
    ReplySummary,
    ToolOutput,
)
from models.provider_events import (
    Emit,
    ProductsEvent,
    RoutineEvent,
    SummaryEvent,
    TokenEvent,
)
from services.metrics import get_metrics_collector
from services.storefront_client import StorefrontClient
from tools.registry import RegisteredTool, ToolRegistry

logger = logging.getLogger(__name__)

EMPTY_REPLY = "Got it—let me know how you'd like me to help next."
MAX_HEADLINE_CHARS = 160
PRODUCT_ICON = "🛍️"
ROUTINE_ICON = "🧖"
CONTINUE_PROMPT = "Please continue."

ModelFactory = Callable[[str, str], "Model | str"]

# ── Agent Dependencies ──────────────────────────────────────


@dataclass
class ShoppingDeps:
    """Dependencies injected into every tool via ``RunContext[ShoppingDeps]``."""

    session_id: str
    user_id: str | None = None
    turn_id: str = ""
    storefront: StorefrontClient | None = None


# ── Headline helpers ────────────────────────────────────────


def _title(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return " ".join(word.capitalize() for word in value.strip().split())
    return None


def _titles(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [t for t in (_title(v) for v in value) if t]


def product_context(tool_name: str, arguments: dict[str, Any], products: list[Any]) -> ProductContext:
    """Presentation hints for a product batch, derived from the tool call."""
    if tool_name == "getProduct":
        first = products[0] if products and isinstance(products[0], dict) else {}
        name = first.get("name") if isinstance(first.get("name"), str) else None
        return ProductContext(
            headline_hint=name or "Product details",
            headline_source_recommendation="product",
            icon_suggestion=PRODUCT_ICON,
        )

    subject = (
        _title(arguments.get("category_query"))
        or _title(arguments.get("name_query"))
        or _title(arguments.get("brand_query"))
    )
    skin_types = _titles(arguments.get("skin_types"))
    concerns = _titles(arguments.get("skin_concerns"))

    headline = subject or "Product picks"
    if skin_types:
        headline = f"{headline} for {' & '.join(skin_types)} Skin"
    intent = None
    if concerns:
        intent = f"Targeting {', '.join(concerns)}"
    return ProductContext(
        headline_hint=headline,
        intent_headline_hint=intent,
        headline_source_recommendation="intent" if subject else "generic",
        icon_suggestion=PRODUCT_ICON,
    )


def routine_summary(routine: dict[str, Any]) -> ReplySummary:
    steps = routine.get("steps") if isinstance(routine.get("steps"), list) else []
    title = routine.get("title") if isinstance(routine.get("title"), str) else None
    concern = _title(routine.get("skinConcern"))
    headline = title or (f"{concern} Routine" if concern else "Your Skincare Routine")
    return ReplySummary(icon=ROUTINE_ICON, headline=headline, subheading=f"{len(steps)} steps")


def summary_from_reply(reply: str) -> ReplySummary | None:
    first_line = next((line.strip(" #*") for line in reply.splitlines() if line.strip(" #*")), "")
    if not first_line:
        return None
    return ReplySummary(headline=first_line[:MAX_HEADLINE_CHARS])


# ── Turn reporting ──────────────────────────────────────────


class TurnReporter:
    """Per-turn tool result bookkeeping and event emission."""

    def __init__(self, emit: Emit) -> None:
        self._emit = emit
        self.tool_outputs: list[ToolOutput] = []
        self.products: list[Any] = []
        self.routine: dict[str, Any] | None = None
        self.result_type: str | None = None
        self.start_skin_type_quiz = False
        self._product_summary: ReplySummary | None = None
        self._routine_summary: ReplySummary | None = None

    def wrap(self, registered: RegisteredTool) -> Callable[..., Any]:
        """Wrap a registered tool so its result is recorded and reported."""
        func = registered.func

        @wraps(func)
        async def reported(ctx: RunContext[ShoppingDeps], *args: Any, **kwargs: Any) -> Any:
            result = await func(ctx, *args, **kwargs)
            await self.record(registered, dict(kwargs), result)
            return result

        return reported

    async def record(self, registered: RegisteredTool, arguments: dict[str, Any], result: Any) -> None:
        self.tool_outputs.append(ToolOutput(name=registered.name, arguments=arguments, result=result))
        if registered.kind == "survey":
            self.start_skin_type_quiz = True
            return
        if not isinstance(result, dict) or result.get("status") == "error":
            return

        if registered.kind == "products":
            products = result.get("products")
            if not isinstance(products, list):
                single = result.get("product")
                products = [single] if isinstance(single, dict) else []
            if not products:
                return
            self.products = list(products)
            context = product_context(registered.name, arguments, self.products)
            self._product_summary = ReplySummary(
                icon=PRODUCT_ICON,
                headline=context.headline_hint or "Product picks",
                subheading=context.intent_headline_hint,
            )
            await self._emit(ProductsEvent(products=self.products, context=context))
            await self._emit_summary()

        elif registered.kind == "routine":
            routine = result.get("routine")
            if not isinstance(routine, dict):
                return
            self.routine = routine
            self.result_type = "routine"
            self._routine_summary = routine_summary(routine)
            await self._emit(RoutineEvent(routine=routine))
            await self._emit_summary()

    @property
    def summary(self) -> ReplySummary | None:
        """Routine and product headlines combined into one summary."""
        parts = [s for s in (self._routine_summary, self._product_summary) if s is not None]
        if not parts:
            return None
        headline = " + ".join(part.headline for part in parts)[:MAX_HEADLINE_CHARS]
        return ReplySummary(
            icon=parts[0].icon,
            headline=headline,
            subheading=next((p.subheading for p in parts if p.subheading), None),
        )

    async def _emit_summary(self) -> None:
        summary = self.summary
        if summary is not None:
            await self._emit(SummaryEvent(summary=summary))


# ── Message conversion ──────────────────────────────────────


def to_model_messages(messages: Sequence[ChatMessage]) -> list[ModelMessage]:
    """Convert stored chat messages to PydanticAI message history.

    Consecutive non-assistant messages are grouped into one ``ModelRequest``;
    ``tool`` audit records become system context describing what the user saw.
    """
    history: list[ModelMessage] = []
    pending: list[ModelRequestPart] = []

    def flush() -> None:
        if pending:
            history.append(ModelRequest(parts=list(pending)))
            pending.clear()

    for message in messages:
        if message.role == "assistant":
            flush()
            history.append(ModelResponse(parts=[TextPart(content=message.content)]))
        elif message.role == "user":
            pending.append(UserPromptPart(content=message.content))
        elif message.role == "tool":
            pending.append(SystemPromptPart(content=f"Previously shown to the user: {message.content}"))
        else:
            pending.append(SystemPromptPart(content=message.content))
    flush()
    return history


# ── Agent ───────────────────────────────────────────────────


class ShoppingAgent:
    """Model provider running the storefront tool loop for one chat turn.

    Usage::

        agent = ShoppingAgent(registry, storefront=client)
        result = await agent.call_model("openai", request, emit)
    """

    def __init__(
        self,
        registry: ToolRegistry,
        storefront: StorefrontClient | None = None,
        model_factory: ModelFactory | None = None,
    ) -> None:
        self._registry = registry
        self._storefront = storefront
        self._model_factory = model_factory or create_model

    def _create_agent(
        self,
        provider: str,
        request: CompletionRequest,
        reporter: TurnReporter,
    ) -> Agent[ShoppingDeps, str]:
        try:
            model = self._model_factory(provider, request.model)
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(provider, str(exc)) from exc

        use_tools = request.use_tools and request.max_tool_rounds > 0 and len(self._registry) > 0
        max_rounds = request.max_tool_rounds

        async def limit_tool_rounds(
            ctx: RunContext[ShoppingDeps],
            tool_defs: list[ToolDefinition],
        ) -> list[ToolDefinition]:
            # run_step counts model requests; the request after the last
            # allowed round sees no tools and must answer in text.
            if ctx.run_step > max_rounds:
                return []
            return tool_defs

        generation = GenerationConfig(
            temperature=request.temperature,
            max_tokens=request.max_tokens or None,
        )

        return Agent(
            model=model,
            instructions=request.system_prompt,
            deps_type=ShoppingDeps,
            output_type=str,
            toolsets=(
                [self._registry.toolset(reporter.wrap).prepared(limit_tool_rounds)]
                if use_tools
                else []
            ),
            model_settings=generation.to_model_settings(),
        )

    async def call_model(
        self,
        provider: str | None,
        request: CompletionRequest,
        emit: Emit,
    ) -> CompletionResult:
        """Run one turn; tokens and tool results are reported through *emit*."""
        provider_name = resolve_provider(provider)
        reporter = TurnReporter(emit)
        deps = ShoppingDeps(
            session_id=request.session_id,
            user_id=request.user_id,
            turn_id=f"turn-{uuid.uuid4().hex[:10]}",
            storefront=self._storefront,
        )
        agent = self._create_agent(provider_name, request, reporter)

        history = to_model_messages(request.messages)
        user_prompt: str | None = None
        if not history or isinstance(history[-1], ModelResponse):
            user_prompt = CONTINUE_PROMPT

        _log_turn_start(deps, provider_name, request)
        start_time = time.monotonic()
        chunks: list[str] = []

        async with agent.run_stream(
            user_prompt,
            deps=deps,
            message_history=history,
            usage_limits=UsageLimits(request_limit=request.max_tool_rounds + 2),
        ) as stream:
            async for chunk in stream.stream_text(delta=True):
                if not chunk:
                    continue
                chunks.append(chunk)
                if not reporter.start_skin_type_quiz:
                    await emit(TokenEvent(token=chunk))

        _log_turn_end(deps, provider_name, reporter, (time.monotonic() - start_time) * 1000)
        return self._build_result("".join(chunks), reporter)

    @staticmethod
    def _build_result(reply: str, reporter: TurnReporter) -> CompletionResult:
        reply = reply.strip() or EMPTY_REPLY
        summary = reporter.summary or summary_from_reply(reply)
        is_routine = reporter.result_type == "routine"
        return CompletionResult(
            reply=reply,
            start_skin_type_quiz=reporter.start_skin_type_quiz,
            tool_outputs=reporter.tool_outputs,
            products=[] if is_routine else [p for p in reporter.products if isinstance(p, dict)],
            result_type="routine" if is_routine else None,
            routine=reporter.routine,
            summary=summary,
        )


# ── Structured Logging ──────────────────────────────────────


def _log_turn_start(deps: ShoppingDeps, provider: str, request: CompletionRequest) -> None:
    logger.info(json.dumps({
        "event": "model_turn_start",
        "session_id": deps.session_id,
        "turn_id": deps.turn_id,
        "provider": provider,
        "model": request.model,
        "use_tools": request.use_tools,
        "max_tool_rounds": request.max_tool_rounds,
        "context_messages": len(request.messages),
    }, ensure_ascii=False))


def _log_turn_end(deps: ShoppingDeps, provider: str, reporter: TurnReporter, elapsed_ms: float) -> None:
    metrics = get_metrics_collector().pop_turn_summary(deps.turn_id)
    logger.info(json.dumps({
        "event": "model_turn_end",
        "session_id": deps.session_id,
        "turn_id": deps.turn_id,
        "provider": provider,
        "tools": [output.name for output in reporter.tool_outputs],
        "tool_error_count": metrics.get("tool_error_count", 0),
        "tool_latency_ms": round(metrics.get("total_latency_ms", 0.0), 1),
        "total_latency_ms": round(elapsed_ms, 1),
        "start_skin_type_quiz": reporter.start_skin_type_quiz,
    }, ensure_ascii=False))
