"""Per-member activity summaries built from activity log entries."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from core.models import ActivityLogEntry

SUMMARY_WINDOW_MS = 7 * 24 * 60 * 60 * 1000


@dataclass
class MemberActivity:
    """Counters for one member within the summary window."""

    user: str
    logins: int = 0
    uploads: int = 0
    comments: int = 0
    last_seen: int | None = None


class ActivitySummaryService:
    """Aggregate recent activity per member."""

    def recent(self, logs: Iterable[ActivityLogEntry], now_ms: int) -> list[ActivityLogEntry]:
        """Entries newer than the 7-day window, newest first."""
        cutoff = now_ms - SUMMARY_WINDOW_MS
        recent = [log for log in logs if log.timestamp > cutoff]
        return sorted(recent, key=lambda log: log.timestamp, reverse=True)

    def summarize(self, logs: Iterable[ActivityLogEntry], now_ms: int) -> dict[str, MemberActivity]:
        stats: dict[str, MemberActivity] = {}
        for log in self.recent(logs, now_ms):
            user = log.user or ""
            entry = stats.setdefault(user, MemberActivity(user=user))
            if log.action == "login":
                entry.logins += 1
            elif log.action == "upload":
                entry.uploads += 1
            elif log.action == "comment":
                entry.comments += 1
            if entry.last_seen is None or log.timestamp > entry.last_seen:
                entry.last_seen = log.timestamp
        return stats
