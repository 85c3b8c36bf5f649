"""Core domain models for photos, comments, schedules and activity logs.

Each record converts to and from the stored document shape (camelCase keys)
so both storage backends persist the same layout.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None]


def _reactions(value: Any) -> dict[str, list[str]]:
    if not isinstance(value, dict):
        return {}
    return {str(emoji): _str_list(users) for emoji, users in value.items()}


def _opt_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _opt_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass
class PhotoRecord:
    """A single uploaded photo or video."""

    id: str
    url: str
    uploaded_at: str
    date_group: str
    uploader: str | None
    timestamp: int
    name_base: str = ""
    original_file_name: str = ""
    file_size: int = 0
    reactions: dict[str, list[str]] = field(default_factory=dict)
    albums: list[str] = field(default_factory=list)
    duration: str | None = None
    # Denormalized, may be absent on legacy records
    comment_count: int | None = None
    doc_id: str | None = None

    @property
    def key(self) -> str:
        """Storage identity: backend id when assigned, else the client id."""
        return self.doc_id or self.id or self.url

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "url": self.url,
            "uploadedAt": self.uploaded_at,
            "dateGroup": self.date_group,
            "uploader": self.uploader,
            "timestamp": self.timestamp,
            "nameBase": self.name_base,
            "originalFileName": self.original_file_name,
            "fileSize": self.file_size,
            "reactions": {k: list(v) for k, v in self.reactions.items()},
            "albums": list(self.albums),
            "duration": self.duration,
        }
        if self.comment_count is not None:
            data["commentCount"] = self.comment_count
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PhotoRecord:
        return cls(
            id=str(data.get("id") or data.get("public_id") or ""),
            url=str(data.get("url") or ""),
            uploaded_at=str(data.get("uploadedAt") or ""),
            date_group=str(data.get("dateGroup") or ""),
            uploader=data.get("uploader"),
            timestamp=_opt_int(data.get("timestamp")) or 0,
            name_base=str(data.get("nameBase") or ""),
            original_file_name=str(data.get("originalFileName") or ""),
            file_size=_opt_int(data.get("fileSize")) or 0,
            reactions=_reactions(data.get("reactions")),
            albums=_str_list(data.get("albums")),
            duration=data.get("duration"),
            comment_count=_opt_int(data.get("commentCount")),
            doc_id=data.get("docId"),
        )


@dataclass
class CommentRecord:
    """A comment attached to exactly one photo."""

    user: str
    text: str
    created_at: int
    doc_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"user": self.user, "text": self.text, "createdAt": self.created_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CommentRecord:
        return cls(
            user=str(data.get("user") or ""),
            text=str(data.get("text") or ""),
            created_at=_opt_int(data.get("createdAt")) or 0,
            doc_id=data.get("docId") or data.get("id"),
        )


@dataclass
class ScheduleRecord:
    """A family schedule entry."""

    id: str
    title: str
    date: str
    time: str | None = None
    memo: str = ""
    participants: list[str] = field(default_factory=list)
    created_by: str | None = None
    created_at: int = 0
    doc_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "date": self.date,
            "time": self.time,
            "memo": self.memo,
            "participants": list(self.participants),
            "createdBy": self.created_by,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScheduleRecord:
        return cls(
            id=str(data.get("id") or ""),
            title=str(data.get("title") or ""),
            date=str(data.get("date") or ""),
            time=data.get("time") or None,
            memo=str(data.get("memo") or ""),
            participants=_str_list(data.get("participants")),
            created_by=data.get("createdBy"),
            created_at=_opt_int(data.get("createdAt")) or 0,
            doc_id=data.get("docId"),
        )


@dataclass
class AlbumRecord:
    """Shared album name record used for album-list discovery."""

    name: str
    updated_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "updatedAt": self.updated_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AlbumRecord:
        return cls(name=str(data.get("name") or ""), updated_at=_opt_int(data.get("updatedAt")) or 0)


@dataclass
class ActivityLogEntry:
    """Append-only record of a member action (login, upload, comment, ...)."""

    action: str
    user: str | None
    timestamp: int
    details: dict[str, Any] = field(default_factory=dict)
    doc_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "user": self.user,
            "timestamp": self.timestamp,
            "details": dict(self.details),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActivityLogEntry:
        details = data.get("details")
        return cls(
            action=str(data.get("action") or ""),
            user=data.get("user"),
            timestamp=_opt_int(data.get("timestamp")) or 0,
            details=dict(details) if isinstance(details, dict) else {},
            doc_id=data.get("docId"),
        )


@dataclass
class GrowthRecord:
    """Child growth measurement for one date."""

    id: str
    date: str
    height: float | None = None
    weight: float | None = None
    head_circumference: float | None = None
    milestone: str = ""
    memo: str = ""
    doc_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "height": self.height,
            "weight": self.weight,
            "headCircumference": self.head_circumference,
            "milestone": self.milestone,
            "memo": self.memo,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GrowthRecord:
        return cls(
            id=str(data.get("id") or ""),
            date=str(data.get("date") or ""),
            height=_opt_float(data.get("height")),
            weight=_opt_float(data.get("weight")),
            head_circumference=_opt_float(data.get("headCircumference")),
            milestone=str(data.get("milestone") or ""),
            memo=str(data.get("memo") or ""),
            doc_id=data.get("docId"),
        )


@dataclass
class DayGroup:
    """A timeline bucket: all photos sharing one date-group key."""

    date_key: str
    items: list[PhotoRecord] = field(default_factory=list)
