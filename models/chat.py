"""Chat request, conversation message and model-completion models."""

from __future__ import annotations

import time
from typing import Any, Literal

from pydantic import BaseModel, Field

from config.llm_config import ProviderName
from models.base import CamelModel

Role = Literal["user", "assistant", "system", "tool"]


class ChatRequest(CamelModel):
    """Body of ``POST /api/chat``.

    ``message`` is deliberately untyped so a missing or non-string value can
    be reported as an ``error`` stream event instead of a 422.
    """

    message: Any = None
    session_id: str | None = None
    user_id: str | None = None
    config: dict[str, Any] | None = None
    provider: ProviderName | None = None
    model: str | None = None
    temperature: float | None = None
    max_tool_rounds: int | None = None
    use_tools: bool | None = None


class ChatMessage(BaseModel):
    """One stored conversation message."""

    role: Role
    content: str
    timestamp: float = Field(default_factory=time.time)


class ToolOutput(CamelModel):
    """Raw record of a single tool invocation during a turn."""

    name: str
    arguments: Any = None
    result: Any = None


class ReplySummary(CamelModel):
    """Short headline shown above an assistant reply."""

    icon: str | None = None
    headline: str
    subheading: str | None = None


class ProductContext(CamelModel):
    """Presentation hints accompanying a product batch."""

    headline_hint: str | None = None
    intent_headline_hint: str | None = None
    headline_source_recommendation: str | None = None
    icon_suggestion: str | None = None


class CompletionRequest(BaseModel):
    """Everything the provider needs to run one turn."""

    messages: list[ChatMessage]
    system_prompt: str
    model: str
    temperature: float = 0.0
    max_tokens: int | None = None
    use_tools: bool = True
    max_tool_rounds: int = 4
    session_id: str = ""
    user_id: str | None = None


class CompletionResult(BaseModel):
    """Outcome of one provider call, after its internal tool loop finished."""

    reply: str = ""
    start_skin_type_quiz: bool = False
    tool_outputs: list[ToolOutput] = Field(default_factory=list)
    products: list[dict[str, Any]] = Field(default_factory=list)
    result_type: Literal["routine"] | None = None
    routine: dict[str, Any] | None = None
    summary: ReplySummary | None = None
