"""Content normalizers — reduce heterogeneous tool output to canonical shapes.

``sanitize_products`` turns raw product search/lookup results into a flat
list of :class:`NormalizedProduct`; ``sanitize_routine`` turns a routine
builder result into a :class:`NormalizedRoutine`.  Both are pure functions
and never raise on malformed input: unusable entries are filtered out.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Iterable, Sequence

from models.catalog import (
    NormalizedProduct,
    NormalizedRoutine,
    NormalizedRoutineAlternative,
    NormalizedRoutineStep,
    NormalizedSize,
)
from services.accessors import (
    as_bool,
    as_id,
    as_int,
    as_list,
    as_mapping,
    as_number,
    as_text,
    dig,
    first_of,
)

MAX_FREE_TEXT = 320

# ── Field precedence tables ─────────────────────────────────

PRODUCT_ID_KEYS = ("_id", "id", "productId")
SIZE_ID_KEYS = ("_id", "id", "sizeId")
STEP_PRODUCT_ID_KEYS = ("productId", "_id", "product._id", "product.id")
STEP_SLUG_KEYS = ("productSlug", "slug", "product.slug")
BRAND_KEYS = ("brand", "brand.name", "brandName")
NAME_KEYS = ("name", "title")
SELECTION_REASON_KEYS = ("selectionReason", "reason")
INGREDIENT_KEYS = ("ingredients", "keyIngredients")
BENEFIT_KEYS = ("benefits",)
SKIN_TYPE_KEYS = ("skinTypes", "skinType")
INSTRUCTION_KEYS = ("instruction", "instructions", "usage")
CATEGORY_NAME_KEYS = ("categoryName", "categoryLabel")
FLAG_FIELDS = {
    "is_new": "isNew",
    "is_trending": "isTrending",
    "is_bestseller": "isBestseller",
    "has_alcohol": "hasAlcohol",
    "has_fragrance": "hasFragrance",
}


def _truncate(text: str | None, limit: int = MAX_FREE_TEXT) -> str | None:
    if text is None:
        return None
    return text[:limit]


def _format_number(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _collect_strings(sources: Sequence[Any], keys: Iterable[str]) -> list[str] | None:
    """Union of string values under *keys* across *sources*, de-duplicated."""
    seen: set[str] = set()
    values: list[str] = []
    for source in sources:
        for key in keys:
            raw = dig(source, key)
            candidates = raw if isinstance(raw, list) else [raw]
            for candidate in candidates:
                text = as_text(candidate)
                if text is None or text.lower() in seen:
                    continue
                seen.add(text.lower())
                values.append(text)
    return values or None


# ── Sizes ───────────────────────────────────────────────────


def _size_label(size: int | float | None, size_text: str | None, unit: str | None) -> str | None:
    if size is not None:
        return f"{_format_number(size)} {unit}" if unit else _format_number(size)
    if size_text:
        return f"{size_text} {unit}" if unit else size_text
    return unit


def _normalize_size(raw: Any) -> NormalizedSize | None:
    if not isinstance(raw, Mapping):
        return None
    size_id = first_of([raw], SIZE_ID_KEYS, as_id)
    if size_id is None:
        return None

    size = as_number(raw.get("size"))
    size_text = as_text(raw.get("sizeText"))
    if size_text is None and size is None:
        size_text = as_text(raw.get("size"))
    unit = as_text(raw.get("unit"))
    label = first_of([raw], ("label", "name"), as_text) or _size_label(size, size_text, unit)

    return NormalizedSize(
        size_id=size_id,
        size=size,
        size_text=size_text,
        unit=unit,
        label=label,
        price=as_number(raw.get("price")),
        currency=as_text(raw.get("currency")),
        discount=as_number(raw.get("discount")),
        stock=as_number(raw.get("stock")),
    )


def _normalize_sizes(sources: Sequence[Any]) -> list[NormalizedSize] | None:
    """Sizes from the first source that carries a ``sizes`` list."""
    raw_sizes = first_of(sources, ("sizes",), as_list)
    if raw_sizes is None:
        return None
    sizes = [size for size in map(_normalize_size, raw_sizes) if size is not None]
    return sizes or None


# ── Categories ──────────────────────────────────────────────


def _scan_categories(categories: Any) -> tuple[str | None, str | None]:
    """First ``(name, slug)`` exposed by a ``categories`` array."""
    for entry in as_list(categories) or []:
        if isinstance(entry, str) and entry.strip():
            return entry.strip(), None
        if isinstance(entry, Mapping):
            name = as_text(entry.get("name"))
            slug = as_text(entry.get("slug"))
            if name or slug:
                return name, slug
    return None, None


def _product_category_name(sources: Sequence[Any]) -> str | None:
    for source in sources:
        name, _ = _scan_categories(dig(source, "categories"))
        if name:
            return name
    return first_of(sources, (*CATEGORY_NAME_KEYS, "category.name", "category"), as_text)


# ── Products ────────────────────────────────────────────────


def _product_sources(entry: Mapping[str, Any]) -> tuple[Mapping[str, Any], ...]:
    base = as_mapping(entry.get("product"))
    return (entry, base) if base is not None else (entry,)


def normalize_product(entry: Any) -> NormalizedProduct | None:
    """Normalize one raw entry; ``None`` when no product id can be resolved."""
    if not isinstance(entry, Mapping):
        return None
    sources = _product_sources(entry)
    product_id = first_of(sources, PRODUCT_ID_KEYS, as_id)
    if product_id is None:
        return None

    flags = {field: first_of(sources, (key,), as_bool) for field, key in FLAG_FIELDS.items()}
    return NormalizedProduct(
        product_id=product_id,
        name=first_of(sources, NAME_KEYS, as_text),
        slug=first_of(sources, ("slug",), as_text),
        brand=first_of(sources, BRAND_KEYS, as_text),
        description=first_of(sources, ("description",), as_text),
        category_name=_product_category_name(sources),
        selection_reason=_truncate(first_of(sources, SELECTION_REASON_KEYS, as_text)),
        sizes=_normalize_sizes(sources),
        ingredients=_collect_strings(sources, INGREDIENT_KEYS),
        benefits=_collect_strings(sources, BENEFIT_KEYS),
        skin_types=_collect_strings(sources, SKIN_TYPE_KEYS),
        **flags,
    )


def sanitize_products(items: Any) -> list[NormalizedProduct]:
    """Normalize a product batch, dropping entries without a resolvable id."""
    if not isinstance(items, list):
        return []
    products: list[NormalizedProduct] = []
    for entry in items:
        product = normalize_product(entry)
        if product is not None:
            products.append(product)
    return products


# ── Routines ────────────────────────────────────────────────


def _normalize_alternative(raw: Any) -> NormalizedRoutineAlternative | None:
    if not isinstance(raw, Mapping):
        return None
    product_id = first_of([raw], STEP_PRODUCT_ID_KEYS, as_id)
    product_slug = first_of([raw], STEP_SLUG_KEYS, as_text)
    if product_id is None and product_slug is None:
        return None
    return NormalizedRoutineAlternative(
        product_id=product_id,
        product_slug=product_slug,
        description=_truncate(first_of([raw], ("description", "reason"), as_text)),
        sizes=_normalize_sizes([raw, raw.get("product")]),
    )


def _normalize_step(raw: Any) -> NormalizedRoutineStep | None:
    if not isinstance(raw, Mapping):
        return None
    product_id = first_of([raw], STEP_PRODUCT_ID_KEYS, as_id)
    product_slug = first_of([raw], STEP_SLUG_KEYS, as_text)
    if product_id is None and product_slug is None:
        return None

    category = first_of([raw], ("category", "category.slug"), as_text)
    category_slug = first_of([raw], ("categorySlug", "category.slug"), as_text)
    category_name = first_of([raw], (*CATEGORY_NAME_KEYS, "category.name"), as_text)
    if category_name is None or category_slug is None:
        scanned_name, scanned_slug = _scan_categories(dig(raw, "product.categories"))
        category_name = category_name or scanned_name
        category_slug = category_slug or scanned_slug
    category_slug = category_slug or category
    category = category or category_slug

    alternatives = [
        alt
        for alt in map(_normalize_alternative, as_list(raw.get("alternatives")) or [])
        if alt is not None
    ]

    return NormalizedRoutineStep(
        index=as_int(raw.get("index")),
        order=as_int(raw.get("order")),
        step=as_int(raw.get("step")),
        product_id=product_id,
        product_slug=product_slug,
        category=category,
        category_slug=category_slug,
        category_name=category_name,
        title=as_text(raw.get("title")),
        instruction=_truncate(first_of([raw], INSTRUCTION_KEYS, as_text)),
        time_of_day=as_text(raw.get("timeOfDay")),
        sizes=_normalize_sizes([raw, raw.get("product")]),
        alternatives=alternatives or None,
    )


def sanitize_routine(routine: Any) -> NormalizedRoutine | None:
    """Normalize a routine; ``None`` when it has no usable step."""
    if not isinstance(routine, Mapping):
        return None
    steps: list[NormalizedRoutineStep] = []
    for raw in as_list(routine.get("steps")) or []:
        step = _normalize_step(raw)
        if step is not None:
            steps.append(step)
    if not steps:
        return None
    return NormalizedRoutine(
        routine_id=first_of([routine], ("routineId", "_id"), as_text),
        title=as_text(routine.get("title")),
        skin_concern=as_text(routine.get("skinConcern")),
        steps=steps,
    )
