"""Tool registry for the shopping assistant.

Tools are plain async functions taking ``RunContext[ShoppingDeps]`` and
returning a JSON-able dict.  Each one is registered with a *kind* that tells
the agent how to surface its result:

- ``products``: result carries ``products`` (or a single ``product``)
- ``routine``: result carries a ``routine``
- ``survey``: launches the client-side skin-type quiz
- ``profile`` / ``cart``: plain data, nothing streamed

The process-wide registry is built once by :func:`build_tool_registry`
(memoized) inside the app lifespan and injected into chat turns.
"""

from __future__ import annotations

import inspect
import json
import logging
import time
from dataclasses import dataclass
from functools import lru_cache, wraps
from typing import Any, Callable, Literal

from pydantic_ai import Tool
from pydantic_ai.toolsets import FunctionToolset

from services.metrics import get_metrics_collector

logger = logging.getLogger(__name__)

ToolKind = Literal["products", "routine", "survey", "profile", "cart"]
TOOL_KINDS: tuple[str, ...] = ("products", "routine", "survey", "profile", "cart")

ToolWrapper = Callable[["RegisteredTool"], Callable[..., Any]]


@dataclass(frozen=True)
class RegisteredTool:
    """Metadata for a registered tool."""

    name: str
    func: Callable[..., Any]
    kind: str
    description: str = ""


class ToolRegistry:
    """Named, kind-classified collection of agent tools."""

    def __init__(self) -> None:
        self._tools: dict[str, RegisteredTool] = {}

    def register(
        self,
        func: Callable[..., Any],
        *,
        kind: str,
        name: str | None = None,
    ) -> RegisteredTool:
        if kind not in TOOL_KINDS:
            raise ValueError(f"Unknown tool kind: {kind!r}. Must be one of {TOOL_KINDS}")
        tool_name = name or func.__name__
        if tool_name in self._tools:
            raise ValueError(f"Tool already registered: {tool_name}")
        doc = (func.__doc__ or "").strip().split("\n")[0]
        registered = RegisteredTool(
            name=tool_name,
            func=_wrap_with_metrics(func, tool_name),
            kind=kind,
            description=doc,
        )
        self._tools[tool_name] = registered
        return registered

    def get(self, name: str) -> RegisteredTool | None:
        return self._tools.get(name)

    def names(self, kind: str | None = None) -> list[str]:
        return [rt.name for rt in self._tools.values() if kind is None or rt.kind == kind]

    def descriptions(self) -> list[dict[str, str]]:
        return [
            {"name": rt.name, "description": rt.description, "kind": rt.kind}
            for rt in self._tools.values()
        ]

    def toolset(self, wrapper: ToolWrapper | None = None) -> FunctionToolset:
        """Build a PydanticAI ``FunctionToolset`` over every registered tool.

        *wrapper*, when given, receives each :class:`RegisteredTool` and returns
        the callable actually exposed to the model (used for per-turn result
        reporting).
        """
        tools = [
            Tool(wrapper(rt) if wrapper else rt.func, name=rt.name, max_retries=1)
            for rt in self._tools.values()
        ]
        return FunctionToolset(tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


def _wrap_with_metrics(func: Callable[..., Any], tool_name: str) -> Callable[..., Any]:
    if not inspect.iscoroutinefunction(func):
        return func

    @wraps(func)
    async def wrapped(*args: Any, **kwargs: Any) -> Any:
        start = time.monotonic()
        status = "ok"
        run_ctx = args[0] if args else kwargs.get("ctx")
        deps = getattr(run_ctx, "deps", None)
        turn_id = str(getattr(deps, "turn_id", "") or "")
        session_id = str(getattr(deps, "session_id", "") or "")

        try:
            result = await func(*args, **kwargs)
            if isinstance(result, dict):
                status = str(result.get("status", "ok"))
            return result
        except Exception:
            status = "error"
            logger.exception("tool %s raised an unhandled exception", tool_name)
            raise
        finally:
            latency_ms = (time.monotonic() - start) * 1000
            get_metrics_collector().record_tool_call(
                tool_name=tool_name,
                status=status,
                latency_ms=latency_ms,
                turn_id=turn_id,
                session_id=session_id,
            )
            logger.info(json.dumps({
                "event": "tool_call",
                "tool": tool_name,
                "status": status,
                "session_id": session_id,
                "turn_id": turn_id,
                "latency_ms": round(latency_ms, 1),
            }))

    return wrapped


@lru_cache
def build_tool_registry() -> ToolRegistry:
    """Resolve the shopping tools once per process."""
    from tools.shopping_tools import register_shopping_tools

    registry = ToolRegistry()
    register_shopping_tools(registry)
    logger.info("Tool registry built: %s", ", ".join(registry.names()))
    return registry
