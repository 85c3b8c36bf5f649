"""Core service interfaces and shared data structures.

This module defines the storage backend protocol implemented by the local
and remote backends, plus the result dataclasses used by the upload and
delete services.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

Document = dict[str, Any]
OnUpdate = Callable[[list[Document]], None]
OnError = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class Collection(str, Enum):
    """Logical entity collections shared by every backend."""

    PHOTOS = "photos"
    COMMENTS = "comments"
    SCHEDULES = "schedules"
    ALBUMS = "albums"
    ACTIVITY_LOGS = "activity_logs"
    GROWTH_RECORDS = "growth_records"


class PersistenceError(Exception):
    """A storage operation failed at the gateway boundary."""


class MediaUploadError(Exception):
    """The media CDN rejected or failed an upload."""


class MediaDeleteError(Exception):
    """The media delete proxy failed."""


class MediaUsageError(Exception):
    """The storage usage endpoint failed or answered garbage."""


class StorageBackend(Protocol):
    """Defines the operations the gateway needs from a storage backend.

    Comments are scoped by ``parent_id`` (the photo's storage id); every other
    collection ignores it.
    """

    name: str

    def create(self, collection: Collection, data: Document, parent_id: str | None = None) -> str:
        """Store a copy of `data` and return its backend-assigned id."""
        ...

    def subscribe(
        self,
        collection: Collection,
        on_update: OnUpdate,
        on_error: OnError,
        parent_id: str | None = None,
    ) -> Unsubscribe:
        """Deliver the full ordered result set on every change."""
        ...

    def update(
        self, collection: Collection, doc_id: str, fields: Document, parent_id: str | None = None
    ) -> None:
        """Merge `fields` into the stored document."""
        ...

    def delete(self, collection: Collection, doc_id: str, parent_id: str | None = None) -> None:
        """Delete one document; photos take their comments with them."""
        ...

    def count(self, collection: Collection, parent_id: str | None = None) -> int:
        """Number of documents currently in the collection."""
        ...

    def increment(
        self, collection: Collection, doc_id: str, field_name: str, amount: int = 1
    ) -> None:
        """Atomically add `amount` to a numeric field."""
        ...

    def close(self) -> None:
        """Release any connection handle."""
        ...


@dataclass
class DeleteResult:
    """Outcome of a delete operation.

    Attributes:
        success_ids: Storage ids of photos fully deleted.
        failed: Tuples of (id, reason) for failures.
    """

    success_ids: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class UploadResult:
    """Outcome of a batch upload.

    Attributes:
        uploaded: Client ids of photos stored.
        failed: Tuples of (file name, reason) for failures.
    """

    uploaded: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class StorageUsage:
    """CDN storage usage in bytes."""

    usage: int
    limit: int

    @property
    def ratio(self) -> float:
        return self.usage / self.limit if self.limit else 0.0
