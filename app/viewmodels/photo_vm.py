"""Lightweight view model wrapper around `PhotoRecord`."""

from __future__ import annotations

from dataclasses import dataclass

from core.models import PhotoRecord
from infrastructure.utils import is_video_url, preview_url

THUMB_SIDE = 300
HERO_SIDE = 600


@dataclass
class PhotoVM:
    """Expose convenient properties for bindings/templates."""

    record: PhotoRecord

    @property
    def key(self) -> str:
        return self.record.key

    @property
    def is_video(self) -> bool:
        return is_video_url(self.record.url)

    @property
    def thumbnail_url(self) -> str:
        return preview_url(self.record.url, THUMB_SIDE, THUMB_SIDE)

    @property
    def hero_url(self) -> str:
        return preview_url(self.record.url, HERO_SIDE, HERO_SIDE)

    @property
    def comment_count(self) -> int:
        """Cached comment count (0 when unknown)."""
        return int(self.record.comment_count or 0)

    @property
    def reaction_counts(self) -> dict[str, int]:
        """Emoji -> number of members, skipping empty reactions."""
        return {emoji: len(users) for emoji, users in self.record.reactions.items() if users}

    def reacted_by(self, member: str, emoji: str) -> bool:
        return member in self.record.reactions.get(emoji, [])
