"""Tests for product and routine normalization."""

from models.catalog import NormalizedProduct
from services.normalizers import normalize_product, sanitize_products, sanitize_routine


# ── Products ───────────────────────────────────────────────


def test_flat_product_fields(raw_products):
    product = normalize_product(raw_products[0])

    assert product.product_id == "p-1"
    assert product.name == "Gentle Gel Cleanser"
    assert product.category_name == "Cleanser"
    assert product.is_bestseller is True
    assert product.ingredients == ["Glycerin", "Niacinamide"]
    assert len(product.sizes) == 1
    size = product.sizes[0]
    assert size.size_id == "s-1"
    assert size.price == 12.5
    assert size.label == "150 ml"


def test_nested_product_merges_outer_and_inner(raw_products):
    product = normalize_product(raw_products[1])

    assert product.product_id == "p-2"
    assert product.slug == "oil-free-moisturizer"
    assert product.selection_reason == "Light texture for oily skin"
    # The outer record takes precedence over the nested product.
    assert product.is_new is False
    assert product.ingredients == ["Hyaluronic Acid"]
    assert product.skin_types == ["oily"]


def test_flat_and_nested_shapes_normalize_identically():
    record = {
        "_id": "p-9",
        "name": "Barrier Cream",
        "slug": "barrier-cream",
        "brand": {"name": "Lumi"},
        "benefits": ["Soothing"],
    }
    assert normalize_product(record) == normalize_product({"product": dict(record)})


def test_id_precedence():
    record = {"productId": "c", "id": "b", "_id": "a"}
    assert normalize_product(record).product_id == "a"
    record.pop("_id")
    assert normalize_product(record).product_id == "b"


def test_entries_without_id_are_dropped(raw_products):
    items = [*raw_products, {"name": "No id"}, "junk", None]
    products = sanitize_products(items)

    assert [p.product_id for p in products] == ["p-1", "p-2"]
    assert all(isinstance(p, NormalizedProduct) for p in products)


def test_sanitize_products_rejects_non_list():
    assert sanitize_products({"products": []}) == []
    assert sanitize_products(None) == []


def test_sizes_without_id_are_dropped():
    product = normalize_product({
        "_id": "p-1",
        "sizes": [{"size": 30, "unit": "ml"}, {"sizeId": "s-2", "sizeText": "Travel"}],
    })
    assert [s.size_id for s in product.sizes] == ["s-2"]
    assert product.sizes[0].label == "Travel"


def test_selection_reason_truncated():
    product = normalize_product({"_id": "p-1", "reason": "x" * 1000})
    assert len(product.selection_reason) == 320


def test_wire_shape_is_camel_case(raw_products):
    wire = normalize_product(raw_products[0]).to_wire()
    assert wire["productId"] == "p-1"
    assert wire["categoryName"] == "Cleanser"
    assert wire["sizes"][0]["sizeId"] == "s-1"
    assert "description" not in wire


# ── Routines ───────────────────────────────────────────────


def test_routine_steps(raw_routine):
    routine = sanitize_routine(raw_routine)

    assert routine.routine_id == "r-1"
    assert routine.skin_concern == "acne"
    # The orphan step has neither id nor slug.
    assert len(routine.steps) == 2

    first, second = routine.steps
    assert first.product_id == "p-1"
    assert first.category == "cleanser"
    assert first.category_slug == "cleanser"
    assert first.time_of_day == "am"

    assert second.product_id == "p-3"
    assert second.product_slug == "bha-toner"
    assert second.category_name == "Toner"
    assert second.category_slug == "toner"


def test_routine_alternatives():
    routine = sanitize_routine({
        "steps": [{
            "productSlug": "serum-a",
            "alternatives": [{"productId": "alt-1", "reason": "Cheaper"}, {"reason": "no ref"}],
        }],
    })
    alternatives = routine.steps[0].alternatives
    assert len(alternatives) == 1
    assert alternatives[0].product_id == "alt-1"
    assert alternatives[0].description == "Cheaper"


def test_routine_without_usable_steps_is_none():
    assert sanitize_routine({"steps": [{"instruction": "nothing"}]}) is None
    assert sanitize_routine({"steps": "bad"}) is None
    assert sanitize_routine(["not", "a", "routine"]) is None
