"""Persistence gateway over the local and remote storage backends.

The gateway holds which backend is active as explicit state, owns the
registry of live subscriptions, and converts between stored documents and
the core record types. Remote failures switch the session to the local
backend for good; a fresh `init_remote` call is needed to retry.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
import time
from typing import Any, TypeVar

from loguru import logger

from core.models import (
    ActivityLogEntry,
    AlbumRecord,
    CommentRecord,
    GrowthRecord,
    PhotoRecord,
    ScheduleRecord,
)
from core.services.interfaces import (
    Collection,
    Document,
    OnError,
    PersistenceError,
    StorageBackend,
    Unsubscribe,
)
from infrastructure.firestore_backend import FirestoreBackend, connect
from infrastructure.local_backend import LocalBackend
from infrastructure.settings import FirebaseConfig

T = TypeVar("T")

UPLOAD_LOG_INTERVAL_SEC = 5 * 60

# Fixed at upload time; the date group is never recomputed
IMMUTABLE_PHOTO_FIELDS = frozenset({"id", "uploadedAt", "dateGroup", "timestamp"})

PHOTOS_SUBSCRIPTION = "photos"
ALBUMS_SUBSCRIPTION = "albums"
SCHEDULES_SUBSCRIPTION = "schedules"
ACTIVITY_SUBSCRIPTION = "activity_logs"
GROWTH_SUBSCRIPTION = "growth_records"


def comments_subscription(photo_key: str) -> str:
    return f"comments_{photo_key}"


class StorageMode(str, Enum):
    """Lifecycle of the gateway's backend selection."""

    UNINITIALIZED = "uninitialized"
    LOCAL_ONLY = "local_only"
    REMOTE_ATTEMPTING = "remote_attempting"
    REMOTE_ACTIVE = "remote_active"


def connect_firestore(config: FirebaseConfig) -> StorageBackend:
    return FirestoreBackend(connect(config.project_id, config.credentials_path or None))


class PersistenceGateway:
    """Uniform CRUD + subscribe surface over the active backend.

    Args:
        local: The local backend, always available.
        connector: Builds the remote backend from credentials; raising means
            the remote store is unavailable.
        clock: Seconds since the epoch; drives timestamps and rate limiting.
    """

    def __init__(
        self,
        local: LocalBackend,
        connector: Callable[[FirebaseConfig], StorageBackend] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._local = local
        self._connector = connector or connect_firestore
        self._clock = clock
        self._remote: StorageBackend | None = None
        self._mode = StorageMode.UNINITIALIZED
        self._subscriptions: dict[str, Unsubscribe] = {}
        self._last_upload_log_at: float | None = None

    # Backend selection
    @property
    def mode(self) -> StorageMode:
        return self._mode

    @property
    def is_remote(self) -> bool:
        return self._mode is StorageMode.REMOTE_ACTIVE

    @property
    def active_subscriptions(self) -> list[str]:
        return list(self._subscriptions)

    def _backend(self) -> StorageBackend:
        if self._mode is StorageMode.REMOTE_ACTIVE and self._remote is not None:
            return self._remote
        if self._mode is StorageMode.UNINITIALIZED:
            self._mode = StorageMode.LOCAL_ONLY
        return self._local

    def init_remote(self, config: FirebaseConfig) -> bool:
        """Try to open a remote session; never raises.

        Returns:
            True when the remote backend is active, False when the gateway
            stays on (or falls back to) the local backend.
        """
        self.unsubscribe_all()
        self._release_remote()
        self._mode = StorageMode.REMOTE_ATTEMPTING
        if not config.is_complete:
            logger.warning("Firebase settings missing, using local storage")
            self._mode = StorageMode.LOCAL_ONLY
            return False
        try:
            self._remote = self._connector(config)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.warning("Firebase init failed, using local storage: {}", ex)
            self._remote = None
            self._mode = StorageMode.LOCAL_ONLY
            return False
        self._mode = StorageMode.REMOTE_ACTIVE
        logger.info("Firebase initialized for project {}", config.project_id)
        return True

    def _release_remote(self) -> None:
        remote, self._remote = self._remote, None
        if remote is None:
            return
        try:
            remote.close()
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.warning("Closing remote backend failed: {}", ex)

    def _fall_back(self, reason: Exception) -> None:
        if self._mode is not StorageMode.REMOTE_ACTIVE:
            return
        logger.error("Remote storage failed, switching to local for this session: {}", reason)
        self._mode = StorageMode.LOCAL_ONLY
        self.unsubscribe_all()
        self._release_remote()

    def _run(self, op_name: str, fn: Callable[[StorageBackend], T]) -> T:
        backend = self._backend()
        try:
            return fn(backend)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.error("{} failed on {} backend: {}", op_name, backend.name, ex)
            if backend is self._remote:
                self._fall_back(ex)
            raise PersistenceError(f"{op_name} failed: {ex}") from ex

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # Subscription registry
    def _cancel(self, key: str) -> None:
        handle = self._subscriptions.pop(key, None)
        if handle is None:
            return
        try:
            handle()
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.error("Unsubscribe failed ({}): {}", key, ex)

    def unsubscribe(self, key: str) -> None:
        self._cancel(key)

    def unsubscribe_all(self) -> None:
        for key in list(self._subscriptions):
            self._cancel(key)
            logger.debug("Unsubscribed: {}", key)

    def _subscribe(
        self,
        key: str,
        collection: Collection,
        on_update: Callable[[list[Document]], None],
        on_error: OnError,
        parent_id: str | None = None,
    ) -> Unsubscribe:
        # Replace semantics: the previous listener for this key goes first
        self._cancel(key)
        backend = self._backend()

        def _handle_error(ex: Exception) -> None:
            logger.error("Subscription {} failed on {} backend: {}", key, backend.name, ex)
            if backend is self._remote:
                self._fall_back(ex)
            on_error(ex)

        try:
            handle = backend.subscribe(collection, on_update, _handle_error, parent_id)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.error("Subscribe {} failed on {} backend: {}", key, backend.name, ex)
            if backend is self._remote:
                self._fall_back(ex)
            raise PersistenceError(f"subscribe {key} failed: {ex}") from ex

        self._subscriptions[key] = handle
        done = False

        def _unsubscribe() -> None:
            nonlocal done
            if done:
                return
            done = True
            if self._subscriptions.get(key) is handle:
                self._cancel(key)

        return _unsubscribe

    # Photos
    def create_photo(self, photo: PhotoRecord) -> str:
        data = photo.to_dict()
        return self._run("create photo", lambda b: b.create(Collection.PHOTOS, data))

    def subscribe_photos(
        self, on_update: Callable[[list[PhotoRecord]], None], on_error: OnError
    ) -> Unsubscribe:
        """Newest-upload-first photos, with comment counts filled in."""

        def _deliver(docs: list[Document]) -> None:
            on_update([self._photo_from_doc(doc) for doc in docs])

        return self._subscribe(PHOTOS_SUBSCRIPTION, Collection.PHOTOS, _deliver, on_error)

    def _photo_from_doc(self, doc: Document) -> PhotoRecord:
        photo = PhotoRecord.from_dict(doc)
        if photo.comment_count is None:
            # Legacy record: count once, cache nothing beyond this load
            try:
                photo.comment_count = self._backend().count(Collection.COMMENTS, photo.key)
            except Exception as ex:  # pylint: disable=broad-exception-caught
                logger.warning("Comment count failed for {}: {}", photo.key, ex)
                photo.comment_count = 0
        return photo

    def update_photo(self, photo: PhotoRecord, fields: Document) -> None:
        """Merge mutable `fields` (reactions, albums, ...) into the stored photo.

        Raises:
            ValueError: `fields` touches an upload-time field such as ``dateGroup``.
        """
        locked = IMMUTABLE_PHOTO_FIELDS.intersection(fields)
        if locked:
            raise ValueError(f"Photo fields cannot be changed: {sorted(locked)}")
        self._run("update photo", lambda b: b.update(Collection.PHOTOS, photo.key, fields))

    def delete_photo(self, photo: PhotoRecord) -> None:
        self._cancel(comments_subscription(photo.key))
        self._run("delete photo", lambda b: b.delete(Collection.PHOTOS, photo.key))

    # Comments
    def add_comment(self, photo: PhotoRecord, comment: CommentRecord) -> str:
        data = comment.to_dict()
        doc_id = self._run(
            "add comment", lambda b: b.create(Collection.COMMENTS, data, parent_id=photo.key)
        )
        self._bump_comment_count(photo, 1)
        return doc_id

    def delete_comment(self, photo: PhotoRecord, comment_id: str) -> None:
        self._run(
            "delete comment",
            lambda b: b.delete(Collection.COMMENTS, comment_id, parent_id=photo.key),
        )
        self._bump_comment_count(photo, -1)

    def _bump_comment_count(self, photo: PhotoRecord, amount: int) -> None:
        # Best effort: the comment write stands even if the counter fails
        try:
            self._backend().increment(Collection.PHOTOS, photo.key, "commentCount", amount)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.warning("Comment count update failed for {}: {}", photo.key, ex)

    def subscribe_comments(
        self,
        photo: PhotoRecord,
        on_update: Callable[[list[CommentRecord]], None],
        on_error: OnError,
    ) -> Unsubscribe:
        """Oldest-first comments of `photo`."""
        return self._subscribe(
            comments_subscription(photo.key),
            Collection.COMMENTS,
            lambda docs: on_update([CommentRecord.from_dict(d) for d in docs]),
            on_error,
            parent_id=photo.key,
        )

    # Albums
    def add_album(self, name: str) -> str | None:
        clean = name.strip()
        if not clean:
            return None
        data = AlbumRecord(name=clean, updated_at=self._now_ms()).to_dict()
        return self._run("add album", lambda b: b.create(Collection.ALBUMS, data))

    def remove_album(self, name: str) -> None:
        clean = name.strip()
        if not clean:
            return
        self._run("remove album", lambda b: b.delete(Collection.ALBUMS, clean))

    def subscribe_albums(
        self, on_update: Callable[[list[str]], None], on_error: OnError
    ) -> Unsubscribe:
        """Sorted shared album names."""
        return self._subscribe(
            ALBUMS_SUBSCRIPTION,
            Collection.ALBUMS,
            lambda docs: on_update([AlbumRecord.from_dict(d).name for d in docs]),
            on_error,
        )

    # Schedules
    def create_schedule(self, schedule: ScheduleRecord) -> str:
        data = schedule.to_dict()
        return self._run("create schedule", lambda b: b.create(Collection.SCHEDULES, data))

    def update_schedule(self, doc_id: str, fields: Document) -> None:
        self._run("update schedule", lambda b: b.update(Collection.SCHEDULES, doc_id, fields))

    def delete_schedule(self, doc_id: str) -> None:
        self._run("delete schedule", lambda b: b.delete(Collection.SCHEDULES, doc_id))

    def subscribe_schedules(
        self, on_update: Callable[[list[ScheduleRecord]], None], on_error: OnError
    ) -> Unsubscribe:
        """Date-ascending schedules."""
        return self._subscribe(
            SCHEDULES_SUBSCRIPTION,
            Collection.SCHEDULES,
            lambda docs: on_update([ScheduleRecord.from_dict(d) for d in docs]),
            on_error,
        )

    # Growth records
    def create_growth_record(self, record: GrowthRecord) -> str:
        data = record.to_dict()
        return self._run("create growth record", lambda b: b.create(Collection.GROWTH_RECORDS, data))

    def update_growth_record(self, doc_id: str, fields: Document) -> None:
        self._run(
            "update growth record", lambda b: b.update(Collection.GROWTH_RECORDS, doc_id, fields)
        )

    def delete_growth_record(self, doc_id: str) -> None:
        self._run("delete growth record", lambda b: b.delete(Collection.GROWTH_RECORDS, doc_id))

    def subscribe_growth_records(
        self, on_update: Callable[[list[GrowthRecord]], None], on_error: OnError
    ) -> Unsubscribe:
        return self._subscribe(
            GROWTH_SUBSCRIPTION,
            Collection.GROWTH_RECORDS,
            lambda docs: on_update([GrowthRecord.from_dict(d) for d in docs]),
            on_error,
        )

    # Activity logs
    def save_activity_log(self, action: str, details: dict[str, Any] | None = None) -> str | None:
        """Append an activity log entry.

        Upload entries are dropped while the last recorded upload entry of
        this session is less than five minutes old.

        Returns:
            The stored entry id, or None when the entry was rate limited.
        """
        now = self._clock()
        if (
            action == "upload"
            and self._last_upload_log_at is not None
            and now - self._last_upload_log_at < UPLOAD_LOG_INTERVAL_SEC
        ):
            logger.debug("Upload activity log suppressed")
            return None

        payload = dict(details or {})
        entry = ActivityLogEntry(
            action=action,
            user=payload.get("user"),
            timestamp=int(now * 1000),
            details=payload,
        )
        data = entry.to_dict()
        doc_id = self._run(
            "save activity log", lambda b: b.create(Collection.ACTIVITY_LOGS, data)
        )
        if action == "upload":
            self._last_upload_log_at = now
        return doc_id

    def subscribe_activity_logs(
        self, on_update: Callable[[list[ActivityLogEntry]], None], on_error: OnError
    ) -> Unsubscribe:
        """Newest-first activity log entries."""
        return self._subscribe(
            ACTIVITY_SUBSCRIPTION,
            Collection.ACTIVITY_LOGS,
            lambda docs: on_update([ActivityLogEntry.from_dict(d) for d in docs]),
            on_error,
        )

    def cleanup(self) -> None:
        """Cancel every subscription and release the remote handle."""
        self.unsubscribe_all()
        self._release_remote()
        self._mode = StorageMode.UNINITIALIZED
