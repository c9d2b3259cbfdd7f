"""Tests for ordered field-precedence lookups."""

import math

from services.accessors import (
    as_bool,
    as_id,
    as_int,
    as_list,
    as_number,
    as_text,
    dig,
    first_of,
)


class TestDig:
    def test_dotted_path(self):
        assert dig({"product": {"slug": "abc"}}, "product.slug") == "abc"

    def test_missing_segment_returns_none(self):
        assert dig({"product": None}, "product.slug") is None
        assert dig({"product": "flat"}, "product.slug") is None

    def test_non_mapping_source(self):
        assert dig(["a"], "0") is None


class TestFirstOf:
    def test_key_order_within_source(self):
        record = {"id": "second", "_id": "first"}
        assert first_of([record], ("_id", "id"), as_id) == "first"

    def test_source_order_wins_over_key_order(self):
        outer = {"id": "outer"}
        inner = {"_id": "inner"}
        assert first_of([outer, inner], ("_id", "id"), as_id) == "outer"

    def test_skips_values_rejected_by_coercer(self):
        record = {"_id": "   ", "id": 42}
        assert first_of([record], ("_id", "id"), as_id) == "42"

    def test_skips_non_mapping_sources(self):
        assert first_of([None, "x", {"name": "ok"}], ("name",), as_text) == "ok"

    def test_nothing_found(self):
        assert first_of([{}], ("a", "b"), as_text) is None


class TestCoercers:
    def test_as_text_strips_and_rejects_blank(self):
        assert as_text("  hi  ") == "hi"
        assert as_text("   ") is None
        assert as_text(3) is None

    def test_as_id_rejects_bool(self):
        assert as_id(True) is None
        assert as_id(7) == "7"

    def test_as_number(self):
        assert as_number("12.50") == 12.5
        assert as_number("150") == 150
        assert as_number(" ") is None
        assert as_number("abc") is None
        assert as_number(math.inf) is None
        assert as_number("nan") is None
        assert as_number(False) is None

    def test_as_int(self):
        assert as_int("3") == 3
        assert as_int(2.0) == 2
        assert as_int(2.5) is None

    def test_as_bool_and_list(self):
        assert as_bool(False) is False
        assert as_bool("true") is None
        assert as_list([1]) == [1]
        assert as_list((1,)) is None
