"""Ordered field-precedence lookups over loosely shaped tool payloads.

Tool results come from several generations of the storefront API, so one
logical field can live under several names (``_id`` / ``id`` / ``productId``)
and at several depths (top level or inside a nested ``product``).  Instead of
chains of conditionals, every lookup is expressed as::

    first_of(sources, ("_id", "id", "productId"), as_id)

Sources are tried in order, and within each source the keys are tried in
order; the first value the coercer accepts wins.  Keys may be dotted paths
(``"product.slug"``).  Supporting a new legacy field name is a one-line
change to the key tuple.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any, Callable, Iterable, TypeVar

T = TypeVar("T")


def dig(source: Any, path: str) -> Any:
    """Follow a dotted *path* through nested mappings; ``None`` when absent."""
    current = source
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def first_of(
    sources: Iterable[Any],
    keys: Iterable[str],
    coerce: Callable[[Any], T | None],
) -> T | None:
    """Return the first value accepted by *coerce*, trying sources then keys."""
    keys = tuple(keys)
    for source in sources:
        if not isinstance(source, Mapping):
            continue
        for key in keys:
            value = coerce(dig(source, key))
            if value is not None:
                return value
    return None


# ── Coercers ────────────────────────────────────────────────
# Each returns ``None`` for "not usable", which makes first_of move on.


def as_text(value: Any) -> str | None:
    """Non-empty stripped string."""
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def as_id(value: Any) -> str | None:
    """Identifier: non-empty string, or an integer rendered as a string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    return as_text(value)


def as_number(value: Any) -> int | float | None:
    """Finite number; numeric strings are accepted only if they parse cleanly."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = float(text)
        except ValueError:
            return None
        if not math.isfinite(parsed):
            return None
        return int(parsed) if parsed.is_integer() and "." not in text else parsed
    return None


def as_int(value: Any) -> int | None:
    number = as_number(value)
    if number is None:
        return None
    if isinstance(number, float):
        return int(number) if number.is_integer() else None
    return number


def as_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def as_list(value: Any) -> list[Any] | None:
    return value if isinstance(value, list) else None


def as_mapping(value: Any) -> Mapping[str, Any] | None:
    return value if isinstance(value, Mapping) else None
