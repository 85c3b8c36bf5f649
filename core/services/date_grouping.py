"""Date-group keys and age/D-Day labels.

All functions are pure. Invalid input never raises: it yields ``None`` so
callers can tell an unparsable timestamp apart from a real date.
"""

from __future__ import annotations

import calendar
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
import math
from typing import Any

from core.models import DayGroup, PhotoRecord

DATE_KEY_FMT = "%Y-%m-%d"
WEEKDAYS_KO = ["월", "화", "수", "목", "금", "토", "일"]


@dataclass(frozen=True)
class ElapsedAge:
    """Numeric decomposition behind an age label.

    Exactly one of the two shapes is meaningful: ``countdown_days`` is set
    for targets before the epoch, otherwise years/months/days are.
    """

    years: int = 0
    months: int = 0
    days: int = 0
    countdown_days: int | None = None

    @property
    def total_months(self) -> int:
        return self.years * 12 + self.months

    @property
    def is_countdown(self) -> bool:
        return self.countdown_days is not None


def parse_date_key(value: str | None) -> date | None:
    """Parse a ``YYYY-MM-DD`` key; None when empty or malformed."""
    if not value:
        return None
    try:
        return datetime.strptime(str(value).strip()[:10], DATE_KEY_FMT).date()
    except (ValueError, TypeError):
        return None


def days_in_month(year: int, month: int) -> int:
    """Days in `month` of `year`; month 0 means December of the previous year."""
    if month < 1:
        year, month = year - 1, month + 12
    return calendar.monthrange(year, month)[1]


class DateGroupingEngine:
    """Derive calendar-day keys and relative labels for timestamped records.

    Args:
        tz: Local zone used for day boundaries. ``None`` uses the system zone.
        epoch_key: Default reference date (e.g. a birth date) for labels.
    """

    def __init__(self, tz: tzinfo | None = None, epoch_key: str | None = None) -> None:
        self._tz = tz
        self.epoch_key = epoch_key

    def _to_local(self, value: Any) -> datetime | None:
        if isinstance(value, datetime):
            dt = value
        elif isinstance(value, date):
            return datetime(value.year, value.month, value.day)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            if math.isnan(value) or math.isinf(value):
                return None
            try:
                # Epoch milliseconds
                dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                return None
        elif isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            try:
                dt = datetime.fromisoformat(text)
            except ValueError:
                return None
        else:
            return None

        if dt.tzinfo is None:
            # Naive values are already wall-clock local time
            return dt
        return dt.astimezone(self._tz) if self._tz is not None else dt.astimezone()

    def derive_date_key(self, timestamp: Any) -> str | None:
        """Return the local calendar day of `timestamp` as ``YYYY-MM-DD``."""
        dt = self._to_local(timestamp)
        if dt is None:
            return None
        return f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"

    def folder_for(self, date_key: str) -> str | None:
        """CDN folder for a date-group key: ``YYYY/MM/DD``."""
        d = parse_date_key(date_key)
        if d is None:
            return None
        return f"{d.year:04d}/{d.month:02d}/{d.day:02d}"

    def elapsed(self, target_key: str, epoch_key: str | None = None) -> ElapsedAge | None:
        """Calendar-aware elapsed time from the epoch to `target_key`.

        The epoch day itself is day 0. Days borrow from the month before the
        target month, then months borrow from years.
        """
        target = parse_date_key(target_key)
        epoch = parse_date_key(epoch_key if epoch_key is not None else self.epoch_key)
        if target is None or epoch is None:
            return None

        if target < epoch:
            diff = datetime.combine(epoch, datetime.min.time()) - datetime.combine(
                target, datetime.min.time()
            )
            return ElapsedAge(countdown_days=math.ceil(diff / timedelta(days=1)))

        years = target.year - epoch.year
        months = target.month - epoch.month
        days = target.day - epoch.day
        if days < 0:
            months -= 1
            days += days_in_month(target.year, target.month - 1)
        if months < 0:
            years -= 1
            months += 12
        return ElapsedAge(years=years, months=months, days=days)

    def compute_relative_label(self, target_key: str, epoch_key: str | None = None) -> str | None:
        """Age label (``"3개월 5일"``, ``"12일"``) or countdown (``"D-7"``)."""
        age = self.elapsed(target_key, epoch_key)
        if age is None:
            return None
        if age.is_countdown:
            return f"D-{age.countdown_days}"
        if age.total_months > 0:
            return f"{age.total_months}개월 {age.days}일"
        return f"{age.days}일"

    def weekday_label(self, date_key: str) -> str | None:
        d = parse_date_key(date_key)
        return WEEKDAYS_KO[d.weekday()] if d else None

    def date_key_for(self, photo: PhotoRecord) -> str | None:
        """Stored date-group key, or one derived from the upload time for legacy rows."""
        if photo.date_group:
            return photo.date_group
        return self.derive_date_key(photo.uploaded_at)

    def group_by_date(self, photos: Iterable[PhotoRecord]) -> list[DayGroup]:
        """Bucket photos per calendar day, newest day first.

        Photos without any usable date are left out of the timeline.
        """
        buckets: dict[str, list[PhotoRecord]] = defaultdict(list)
        for photo in photos:
            key = self.date_key_for(photo)
            if key:
                buckets[key].append(photo)
        return [DayGroup(date_key=k, items=buckets[k]) for k in sorted(buckets, reverse=True)]
