"""Collapse records describing the same physical facility."""

from __future__ import annotations

from functools import reduce
from typing import Iterable, TypeVar

from envrisk.common.constants import DUPLICATE_TOLERANCE_MILES

T = TypeVar("T")


def is_duplicate(a, b, tolerance_miles: float = DUPLICATE_TOLERANCE_MILES) -> bool:
    # Exact, case-sensitive names only. Spelling variants stay distinct.
    return a.name == b.name and abs(a.distance_miles - b.distance_miles) < tolerance_miles


def dedupe(records: Iterable[T], *, tolerance_miles: float = DUPLICATE_TOLERANCE_MILES) -> list[T]:
    """First occurrence wins; later duplicates are dropped."""

    def _fold(kept: tuple[T, ...], record: T) -> tuple[T, ...]:
        if any(is_duplicate(existing, record, tolerance_miles) for existing in kept):
            return kept
        return kept + (record,)

    return list(reduce(_fold, records, ()))
