"""NDJSON stream event payloads for ``POST /api/chat``.

Every line of the response body is one of these objects, discriminated by
``type``:

- ``delta``: incremental reply token.
- ``summary``: headline patch for the reply.
- ``products``: deduplicated product batch.
- ``routine``: deduplicated routine.
- ``skin_survey.start``: terminal, tells the client to launch the quiz.
- ``final``: terminal, the complete turn payload.
- ``error``: terminal failure.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import Field, TypeAdapter

from models.base import CamelModel
from models.catalog import NormalizedProduct, NormalizedRoutine
from models.chat import ReplySummary, ToolOutput

TERMINAL_EVENT_TYPES = frozenset({"final", "skin_survey.start", "error"})


class DeltaEvent(CamelModel):
    type: Literal["delta"] = "delta"
    token: str


class SummaryStreamEvent(CamelModel):
    type: Literal["summary"] = "summary"
    summary: ReplySummary


class ProductsStreamEvent(CamelModel):
    """A product batch, normalized whenever at least one entry normalizes."""

    type: Literal["products"] = "products"
    products: list[NormalizedProduct | dict[str, Any]]
    headline_hint: str | None = None
    intent_headline_hint: str | None = None
    headline_source_recommendation: str | None = None
    icon_suggestion: str | None = None


class RoutineStreamEvent(CamelModel):
    type: Literal["routine"] = "routine"
    routine: NormalizedRoutine


class SkinSurveyStartEvent(CamelModel):
    type: Literal["skin_survey.start"] = "skin_survey.start"
    session_id: str


class FinalEvent(CamelModel):
    """Terminal payload of a successful turn."""

    type: Literal["final"] = "final"
    reply: str
    session_id: str
    tool_outputs: list[ToolOutput] = Field(default_factory=list)
    products: list[NormalizedProduct | dict[str, Any]] = Field(default_factory=list)
    result_type: Literal["routine"] | None = None
    routine: NormalizedRoutine | None = None
    summary: ReplySummary | None = None
    suggestions: list[str] | None = None


class ErrorEvent(CamelModel):
    type: Literal["error"] = "error"
    message: str


StreamEvent = Annotated[
    Union[
        DeltaEvent,
        SummaryStreamEvent,
        ProductsStreamEvent,
        RoutineStreamEvent,
        SkinSurveyStartEvent,
        FinalEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def parse_stream_event(payload: dict[str, Any]) -> StreamEvent:
    """Validate one decoded NDJSON line back into its event model."""
    return stream_event_adapter.validate_python(payload)
