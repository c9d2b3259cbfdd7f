"""Events a model provider pushes through the single ``emit`` channel.

The provider never writes to the client directly.  It reports what happened
during its tool loop as one of these events, and the orchestration loop
decides (normalize, dedup, forward or drop) what reaches the stream.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Union

from pydantic import BaseModel, ConfigDict

from models.chat import ProductContext, ReplySummary


class _ProviderEvent(BaseModel):
    model_config = ConfigDict(frozen=True)


class TokenEvent(_ProviderEvent):
    token: str


class SummaryEvent(_ProviderEvent):
    summary: ReplySummary


class ProductsEvent(_ProviderEvent):
    """Raw tool output; normalization happens in the orchestration loop."""

    products: list[Any]
    context: ProductContext | None = None


class RoutineEvent(_ProviderEvent):
    routine: Any


ProviderEvent = Union[TokenEvent, SummaryEvent, ProductsEvent, RoutineEvent]

Emit = Callable[[ProviderEvent], Awaitable[None]]
