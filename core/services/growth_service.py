"""Growth statistics over a child's measurement history."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from core.models import GrowthRecord


@dataclass
class GrowthStats:
    """Latest measurements and growth since the first record."""

    total_records: int
    latest_date: str
    latest_height: float | None
    latest_weight: float | None
    height_growth: float | None
    weight_growth: float | None
    milestones: list[tuple[str, str]] = field(default_factory=list)


def compute_growth_stats(records: Iterable[GrowthRecord]) -> GrowthStats | None:
    """Return stats for `records`, or None when there are none."""
    ordered = sorted(records, key=lambda r: r.date)
    if not ordered:
        return None
    first, latest = ordered[0], ordered[-1]

    height_growth = None
    if latest.height is not None and first.height is not None:
        height_growth = round(latest.height - first.height, 1)
    weight_growth = None
    if latest.weight is not None and first.weight is not None:
        weight_growth = round(latest.weight - first.weight, 2)

    return GrowthStats(
        total_records=len(ordered),
        latest_date=latest.date,
        latest_height=latest.height,
        latest_weight=latest.weight,
        height_growth=height_growth,
        weight_growth=weight_growth,
        milestones=[(r.date, r.milestone) for r in ordered if r.milestone],
    )
