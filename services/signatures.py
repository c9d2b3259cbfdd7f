"""Canonical fingerprints used to suppress duplicate stream payloads.

A provider may report the same product batch, routine or summary several
times across tool rounds.  Each payload is reduced to its identifying
fields, canonicalized (sorted keys, sorted id multiset, ``None`` dropped)
and hashed, so field or item reordering upstream never changes the
signature.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Sequence

from pydantic import BaseModel

from models.catalog import NormalizedRoutine
from services.accessors import as_id, as_text, first_of

PRODUCT_IDENTITY_KEYS = ("productId", "product_id", "_id", "id", "slug", "categoryName")


def _canonical(value: Any) -> Any:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, dict):
        return {str(k): _canonical(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    return value


def fingerprint(value: Any) -> str:
    """Stable hash of *value*, independent of mapping key order."""
    encoded = json.dumps(
        _canonical(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def product_identity(product: Any, index: int) -> str:
    record = _canonical(product)
    return first_of([record], PRODUCT_IDENTITY_KEYS, as_id) or f"product-{index}"


def products_signature(products: Sequence[Any]) -> str:
    return fingerprint(sorted(product_identity(p, i) for i, p in enumerate(products)))


def routine_signature(routine: NormalizedRoutine) -> str:
    ids = []
    for index, step in enumerate(routine.steps):
        position = step.step if step.step is not None else index
        ids.append(step.product_id or as_text(step.product_slug) or f"routine-{position}")
    return fingerprint(sorted(ids))


def summary_signature(summary: Any) -> str:
    return fingerprint(summary)


class SignatureCache:
    """Per-request memory of the last signature sent on each channel."""

    def __init__(self) -> None:
        self._last: dict[str, str] = {}

    def should_emit(self, channel: str, signature: str) -> bool:
        """Record *signature* and report whether it differs from the last one."""
        if self._last.get(channel) == signature:
            return False
        self._last[channel] = signature
        return True
