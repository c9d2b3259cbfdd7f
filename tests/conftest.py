"""Shared pytest fixtures for chat service tests.

Provides:
- ``fake_summarizer``: deterministic summarizer, no model calls
- ``context_store``: ContextStore over a fresh in-memory backend
- ``tool_registry``: registry populated with the shopping tools
- ``metrics_collector``: fresh MetricsCollector per test
- ``raw_products`` / ``raw_routine``: storefront-shaped tool payloads
"""

from __future__ import annotations

from typing import Any, Sequence

import pytest

from models.chat import ChatMessage
from services.context_store import ContextConfig, ContextStore, InMemorySessionBackend
from services.metrics import MetricsCollector
from tools.registry import ToolRegistry
from tools.shopping_tools import register_shopping_tools


class FakeSummarizer:
    """Records calls and returns a summary naming the slice size."""

    def __init__(self) -> None:
        self.calls: list[tuple[int, str]] = []

    async def summarize(self, messages: Sequence[ChatMessage], previous: str = "") -> str:
        self.calls.append((len(messages), previous))
        if not messages:
            return previous
        return f"summary of {len(messages)} messages"


@pytest.fixture
def fake_summarizer() -> FakeSummarizer:
    return FakeSummarizer()


@pytest.fixture
def context_store(fake_summarizer) -> ContextStore:
    """Context store with small windows so summaries trigger quickly."""
    return ContextStore(
        InMemorySessionBackend(ttl_seconds=3600),
        defaults=ContextConfig(
            recent_message_count=4,
            summary_update_interval=2,
            mid_range_window=4,
        ),
        summarizer=fake_summarizer,
        # Unknown model names count with LiteLLM's bundled cl100k encoding,
        # so no tokenizer download is needed.
        token_model="local-test-model",
    )


@pytest.fixture
def tool_registry() -> ToolRegistry:
    """Fresh registry with every shopping tool (not the process singleton)."""
    registry = ToolRegistry()
    register_shopping_tools(registry)
    return registry


@pytest.fixture
def metrics_collector() -> MetricsCollector:
    """Fresh metrics collector — isolated per test."""
    return MetricsCollector()


@pytest.fixture
def raw_products() -> list[dict[str, Any]]:
    """One flat product record and one wrapping a nested ``product``."""
    return [
        {
            "_id": "p-1",
            "name": "Gentle Gel Cleanser",
            "slug": "gentle-gel-cleanser",
            "categories": [{"name": "Cleanser", "slug": "cleanser"}],
            "sizes": [{"_id": "s-1", "size": 150, "unit": "ml", "price": "12.50"}],
            "ingredients": ["Glycerin", "glycerin ", "Niacinamide"],
            "isBestseller": True,
        },
        {
            "selectionReason": "Light texture for oily skin",
            "isNew": False,
            "product": {
                "id": "p-2",
                "slug": "oil-free-moisturizer",
                "keyIngredients": ["Hyaluronic Acid"],
                "skinType": "oily",
                "isNew": True,
            },
        },
    ]


@pytest.fixture
def raw_routine() -> dict[str, Any]:
    return {
        "_id": "r-1",
        "title": "Oily Skin AM Routine",
        "skinConcern": "acne",
        "steps": [
            {
                "step": 1,
                "productId": "p-1",
                "category": "cleanser",
                "instruction": "Massage onto damp skin.",
                "timeOfDay": "am",
            },
            {
                "step": 2,
                "product": {
                    "_id": "p-3",
                    "slug": "bha-toner",
                    "categories": [{"name": "Toner", "slug": "toner"}],
                },
            },
            {"step": 3, "instruction": "Orphan step with no product reference"},
        ],
    }
