"""Canonical product and routine shapes produced by the content normalizers.

Tool results arrive in many shapes (flat product records, records wrapping a
nested ``product`` object, routine steps with embedded products).  The
normalizers in ``services/normalizers.py`` reduce all of them to these models,
which are what the stream and the conversation history carry.
"""

from __future__ import annotations

from pydantic import Field

from models.base import CamelModel

Number = int | float


class NormalizedSize(CamelModel):
    """One purchasable size/variant of a product."""

    size_id: str
    size: Number | None = None
    size_text: str | None = None
    unit: str | None = None
    label: str | None = None
    price: Number | None = None
    currency: str | None = None
    discount: Number | None = None
    stock: Number | None = None


class NormalizedProduct(CamelModel):
    """Flat product summary shown in product carousels."""

    product_id: str
    name: str | None = None
    slug: str | None = None
    brand: str | None = None
    description: str | None = None
    category_name: str | None = None
    selection_reason: str | None = None
    sizes: list[NormalizedSize] | None = None
    ingredients: list[str] | None = None
    benefits: list[str] | None = None
    skin_types: list[str] | None = None
    is_new: bool | None = None
    is_trending: bool | None = None
    is_bestseller: bool | None = None
    has_alcohol: bool | None = None
    has_fragrance: bool | None = None


class NormalizedRoutineAlternative(CamelModel):
    """A swap-in product offered for a routine step."""

    product_id: str | None = None
    product_slug: str | None = None
    description: str | None = None
    sizes: list[NormalizedSize] | None = None


class NormalizedRoutineStep(CamelModel):
    index: int | None = None
    order: int | None = None
    step: int | None = None
    product_id: str | None = None
    product_slug: str | None = None
    category: str | None = None
    category_slug: str | None = None
    category_name: str | None = None
    title: str | None = None
    instruction: str | None = None
    time_of_day: str | None = None
    sizes: list[NormalizedSize] | None = None
    alternatives: list[NormalizedRoutineAlternative] | None = None


class NormalizedRoutine(CamelModel):
    """A multi-step routine; only ever built with at least one step."""

    routine_id: str | None = None
    title: str | None = None
    skin_concern: str | None = None
    steps: list[NormalizedRoutineStep] = Field(default_factory=list)
