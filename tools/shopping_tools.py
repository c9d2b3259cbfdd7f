"""Storefront tools exposed to the shopping assistant.

All tools return a status envelope: ``{"status": "ok", ...}`` on success and
``{"status": "error", "reason": ...}`` when the storefront rejects the call,
so the model can recover in prose instead of the turn failing.
"""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any

from pydantic import BeforeValidator, Field
from pydantic_ai import RunContext

from agents.shopping_agent import ShoppingDeps
from errors.exceptions import StorefrontError
from services.storefront_client import StorefrontClient
from tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

SEARCH_LIMIT_DEFAULT = 6


def _coerce_json_str_to_list(v: Any) -> Any:
    """LLMs sometimes double-encode a JSON array as a string."""
    if isinstance(v, str):
        stripped = v.strip()
        if stripped.startswith("["):
            try:
                parsed = json.loads(stripped)
            except json.JSONDecodeError:
                return v
            if isinstance(parsed, list):
                return parsed
        return [stripped] if stripped else None
    return v


StrList = Annotated[list[str] | None, BeforeValidator(_coerce_json_str_to_list)]


def _ok(data: dict[str, Any]) -> dict[str, Any]:
    return {"status": "ok", **data}


def _error(reason: str, **extra: Any) -> dict[str, Any]:
    return {"status": "error", "reason": reason, **extra}


def _client(ctx: RunContext[ShoppingDeps]) -> StorefrontClient:
    if ctx.deps.storefront is None:
        raise StorefrontError(503, "storefront client not configured")
    return ctx.deps.storefront


def _unwrap(body: Any, key: str) -> Any:
    """Storefront responses are either bare payloads or ``{"data": ...}``."""
    if isinstance(body, dict):
        if key in body:
            return body[key]
        data = body.get("data")
        if isinstance(data, dict) and key in data:
            return data[key]
        if data is not None:
            return data
    return body


def _drop_none(params: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in params.items() if v not in (None, [], "")}


def _acting_user(ctx: RunContext[ShoppingDeps], user_id: str | None) -> str | None:
    return user_id or ctx.deps.user_id


# ── Catalog ─────────────────────────────────────────────────


async def search_products_by_query(
    ctx: RunContext[ShoppingDeps],
    name_query: str | None = None,
    category_query: str | None = None,
    brand_query: str | None = None,
    skin_types: StrList = None,
    skin_concerns: StrList = None,
    ingredient_queries: StrList = None,
    benefits: StrList = None,
    has_alcohol: bool | None = None,
    has_fragrance: bool | None = None,
    exclude_product_ids: StrList = None,
    limit: Annotated[int, Field(ge=1, le=20)] = SEARCH_LIMIT_DEFAULT,
) -> dict[str, Any]:
    """Search the catalog by name, category, brand, skin type, concern or ingredient.

    Use one call per distinct product the user mentions.  Pass every product id
    already shown in ``exclude_product_ids`` when the user asks for more options.
    """
    params = _drop_none({
        "nameQuery": name_query,
        "categoryQuery": category_query,
        "brandQuery": brand_query,
        "skinTypes": skin_types,
        "skinConcerns": skin_concerns,
        "ingredientQueries": ingredient_queries,
        "benefits": benefits,
        "hasAlcohol": has_alcohol,
        "hasFragrance": has_fragrance,
        "excludeProductIds": exclude_product_ids,
        "limit": limit,
    })
    try:
        body = await _client(ctx).get("/products/search", params=params)
    except StorefrontError as exc:
        return _error(exc.detail, products=[])
    products = _unwrap(body, "products")
    if not isinstance(products, list):
        products = []
    return _ok({"products": products, "count": len(products)})


async def get_product(ctx: RunContext[ShoppingDeps], slug: str) -> dict[str, Any]:
    """Fetch one product by its URL slug, with sizes, ingredients and stock."""
    try:
        body = await _client(ctx).get(f"/products/{slug}")
    except StorefrontError as exc:
        if exc.status_code == 404:
            return _error(f"No product found for '{slug}'")
        return _error(exc.detail)
    product = _unwrap(body, "product")
    if not isinstance(product, dict):
        return _error(f"No product found for '{slug}'")
    return _ok({"product": product})


async def recommend_routine(
    ctx: RunContext[ShoppingDeps],
    skin_type: str,
    skin_concerns: StrList = None,
    step_count: Annotated[int, Field(ge=2, le=8)] = 4,
    user_id: str | None = None,
) -> dict[str, Any]:
    """Build a multi-step skincare routine for a skin type and its concerns.

    Only for full routines or swapping a routine step; use product search for a
    single product.
    """
    payload = _drop_none({
        "skinType": skin_type,
        "skinConcerns": skin_concerns,
        "stepCount": step_count,
        "userId": _acting_user(ctx, user_id),
    })
    try:
        body = await _client(ctx).post("/routines/recommend", json_body=payload)
    except StorefrontError as exc:
        return _error(exc.detail)
    routine = _unwrap(body, "routine")
    if not isinstance(routine, dict) or not routine.get("steps"):
        return _error("No routine could be built for that skin profile")
    return _ok({"routine": routine})


# ── Profile ─────────────────────────────────────────────────


async def get_skin_profile(
    ctx: RunContext[ShoppingDeps],
    user_id: str | None = None,
) -> dict[str, Any]:
    """Read the user's saved skin type, concerns and ingredient sensitivities."""
    acting = _acting_user(ctx, user_id)
    if not acting:
        return _error("User is not signed in")
    try:
        body = await _client(ctx).get(f"/users/{acting}/skin-profile")
    except StorefrontError as exc:
        if exc.status_code == 404:
            return _ok({"profile": None})
        return _error(exc.detail)
    return _ok({"profile": _unwrap(body, "profile")})


async def save_user_profile(
    ctx: RunContext[ShoppingDeps],
    skin_type: str | None = None,
    skin_concerns: StrList = None,
    ingredient_sensitivities: StrList = None,
    user_id: str | None = None,
) -> dict[str, Any]:
    """Update the saved skin profile.  Call only after the user confirms the change."""
    acting = _acting_user(ctx, user_id)
    if not acting:
        return _error("User is not signed in")
    payload = _drop_none({
        "skinType": skin_type,
        "skinConcerns": skin_concerns,
        "ingredientSensitivities": ingredient_sensitivities,
    })
    if not payload:
        return _error("Nothing to update")
    try:
        body = await _client(ctx).put(f"/users/{acting}/skin-profile", json_body=payload)
    except StorefrontError as exc:
        return _error(exc.detail)
    return _ok({"profile": _unwrap(body, "profile")})


async def start_skin_type_survey(ctx: RunContext[ShoppingDeps]) -> dict[str, Any]:
    """Launch the skin-type survey.  Only when the user explicitly asks to start it."""
    logger.info("Skin-type survey requested (session=%s)", ctx.deps.session_id)
    return _ok({"started": True})


# ── Cart ────────────────────────────────────────────────────


async def add_to_cart(
    ctx: RunContext[ShoppingDeps],
    product_id: str,
    size_id: str,
    quantity: Annotated[int, Field(ge=1, le=20)] = 1,
    user_id: str | None = None,
) -> dict[str, Any]:
    """Add a product size to the user's cart."""
    acting = _acting_user(ctx, user_id)
    if not acting:
        return _error("User is not signed in")
    payload = {
        "userId": acting,
        "productId": product_id,
        "sizeId": size_id,
        "quantity": quantity,
    }
    try:
        body = await _client(ctx).post("/cart", json_body=payload)
    except StorefrontError as exc:
        return _error(exc.detail)
    return _ok({"cart": _unwrap(body, "cart")})


def register_shopping_tools(registry: ToolRegistry) -> None:
    registry.register(search_products_by_query, name="searchProductsByQuery", kind="products")
    registry.register(get_product, name="getProduct", kind="products")
    registry.register(recommend_routine, name="recommendRoutine", kind="routine")
    registry.register(get_skin_profile, name="getSkinProfile", kind="profile")
    registry.register(save_user_profile, name="saveUserProfile", kind="profile")
    registry.register(start_skin_type_survey, name="startSkinTypeSurvey", kind="survey")
    registry.register(add_to_cart, name="addToCart", kind="cart")
