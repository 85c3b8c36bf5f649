"""Sorting service for stored documents and records.

The service performs multi-key sorting, handling missing values and per-key
ascending/descending ordering without mutating the input.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, TypeVar

T = TypeVar("T")

# Canonical per-collection orderings as (field_name, ascending)
PHOTO_ORDER: list[tuple[str, bool]] = [("timestamp", False)]
COMMENT_ORDER: list[tuple[str, bool]] = [("createdAt", True)]
SCHEDULE_ORDER: list[tuple[str, bool]] = [("date", True), ("time", True)]
ALBUM_ORDER: list[tuple[str, bool]] = [("name", True)]
ACTIVITY_ORDER: list[tuple[str, bool]] = [("timestamp", False)]
GROWTH_ORDER: list[tuple[str, bool]] = [("date", True)]


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


class SortService:
    """Provides stable multi-key sorting."""

    def sort(self, items: Iterable[T], sort_keys: list[tuple[str, bool]]) -> list[T]:
        """Return `items` sorted by `sort_keys`.

        Args:
            items: Documents (dicts) or records (attribute access).
            sort_keys: List of tuples (field_name, ascending). Items missing a
                field always sort after items that have it.
        """
        result = list(items)
        if not sort_keys:
            return result

        # Stable sort from least to most significant key
        for field_name, ascending in reversed(sort_keys):
            present = [it for it in result if _field(it, field_name) not in (None, "")]
            missing = [it for it in result if _field(it, field_name) in (None, "")]
            present.sort(key=lambda it, f=field_name: _sort_value(_field(it, f)), reverse=not ascending)
            result = present + missing
        return result


def _sort_value(value: Any) -> Any:
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, (int, float)):
        return (0, value)
    return (1, str(value))
