"""ViewModel for orchestrating the family album over the persistence gateway."""

from __future__ import annotations

from collections.abc import Callable
import dataclasses
import time
import uuid

from loguru import logger

from app.viewmodels.group_vm import DayGroupVM
from app.viewmodels.photo_vm import PhotoVM
from core.models import (
    ActivityLogEntry,
    CommentRecord,
    GrowthRecord,
    PhotoRecord,
    ScheduleRecord,
)
from core.services.activity_service import ActivitySummaryService, MemberActivity
from core.services.date_grouping import DateGroupingEngine, parse_date_key
from core.services.growth_service import GrowthStats, compute_growth_stats
from core.services.interfaces import MediaUsageError, PersistenceError, StorageUsage
from infrastructure.cloudinary_service import CloudinaryClient
from infrastructure.gateway import PersistenceGateway
from infrastructure.local_store import CONFIG_KEY, CURRENT_USER_KEY, LocalKeyValueStore
from infrastructure.settings import AppConfig

SCHEDULE_FIELDS = {"title", "date", "time", "memo", "participants"}


class FamilyAppVM:
    """Main application view-model.

    Holds the loaded collections, exposes timeline/calendar/album views and
    routes every user action through the gateway. Storage failures never
    propagate to the UI: they land in `last_error` and the app keeps running.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        engine: DateGroupingEngine,
        store: LocalKeyValueStore,
        config: AppConfig,
        clock: Callable[[], float] = time.time,
        cdn: CloudinaryClient | None = None,
    ) -> None:
        """Create a FamilyAppVM.

        Args:
            gateway: Persistence gateway shared by every view.
            engine: Date grouping engine; its epoch is the configured D-Day.
            store: Local store holding the configuration and current user.
            config: Application configuration.
            clock: Seconds since the epoch.
            cdn: Media CDN client for the storage quota display.
        """
        self._gateway = gateway
        self._engine = engine
        self._store = store
        self.config = config
        self._clock = clock
        self._cdn = cdn
        self._activity = ActivitySummaryService()
        self.current_user: str | None = None
        self.photos: list[PhotoRecord] = []
        self.albums: list[str] = []
        self.schedules: list[ScheduleRecord] = []
        self.growth_records: list[GrowthRecord] = []
        self.activity_logs: list[ActivityLogEntry] = []
        self.comments: dict[str, list[CommentRecord]] = {}
        self.storage_usage: StorageUsage | None = None
        self.last_error: str | None = None

    # Lifecycle
    def start(self) -> None:
        """Persist the configuration, pick the backend and restore the user."""
        stored = self._store.get_json(CONFIG_KEY, {})
        data = self.config.to_dict()
        if isinstance(stored.get("albums"), list):
            data["albums"] = stored["albums"]
        self._store.set_json(CONFIG_KEY, data)

        if self.config.use_firebase:
            self._gateway.init_remote(self.config.firebase)
        logger.info("Storage mode: {}", self.storage_mode)

        saved_user = self._store.get_item(CURRENT_USER_KEY)
        if saved_user and saved_user in self.config.members:
            self.current_user = saved_user

    def shutdown(self) -> None:
        self._gateway.cleanup()

    @property
    def storage_mode(self) -> str:
        """Status indicator text: ``"firebase"`` or ``"local"``."""
        return "firebase" if self._gateway.is_remote else "local"

    def refresh_storage_usage(self) -> StorageUsage | None:
        """Fetch CDN storage usage for the quota display."""
        if self._cdn is None:
            return None
        try:
            self.storage_usage = self._cdn.get_usage()
        except MediaUsageError as ex:
            self._report(ex)
            return None
        return self.storage_usage

    @property
    def storage_usage_percent(self) -> int | None:
        """Used share of the CDN quota, rounded to whole percent."""
        if self.storage_usage is None:
            return None
        return round(self.storage_usage.ratio * 100)

    def dismiss_error(self) -> None:
        self.last_error = None

    def _report(self, ex: Exception) -> None:
        logger.error("Operation failed: {}", ex)
        self.last_error = str(ex)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _log_activity(self, action: str, **details) -> None:
        try:
            self._gateway.save_activity_log(
                action, {"user": self.current_user, "timestamp": self._now_ms(), **details}
            )
        except PersistenceError as ex:
            logger.warning("{} activity log failed: {}", action, ex)

    def _refresh_if_local(self, reload: Callable[[], None]) -> None:
        # Local subscriptions are one-shot, so re-read after writes
        if not self._gateway.is_remote:
            reload()

    # Session
    def login(self, member: str) -> None:
        if member not in self.config.members:
            raise ValueError(f"Unknown member: {member}")
        self.current_user = member
        self._store.set_item(CURRENT_USER_KEY, member)
        self._log_activity("login")
        logger.info("Logged in: {}", member)

    def logout(self) -> None:
        if self.current_user is None:
            return
        self._log_activity("logout")
        self.current_user = None
        self._store.remove_item(CURRENT_USER_KEY)

    def _require_user(self) -> str:
        if not self.current_user:
            raise PermissionError("Select a member first")
        return self.current_user

    # Photos
    def load_photos(self) -> None:
        try:
            self._gateway.subscribe_photos(self._set_photos, self._report)
        except PersistenceError as ex:
            self._report(ex)

    def _set_photos(self, photos: list[PhotoRecord]) -> None:
        self.photos = photos

    def timeline(self) -> list[DayGroupVM]:
        """Day groups newest first, labelled against the configured D-Day."""
        groups: list[DayGroupVM] = []
        for day in self._engine.group_by_date(self.photos):
            albums: list[str] = []
            for photo in day.items:
                for album in photo.albums:
                    if album not in albums:
                        albums.append(album)
            groups.append(
                DayGroupVM(
                    date_key=day.date_key,
                    label=self._engine.compute_relative_label(day.date_key, self.config.dday),
                    weekday=self._engine.weekday_label(day.date_key),
                    items=[PhotoVM(p) for p in day.items],
                    albums=albums,
                )
            )
        return groups

    def photos_on(self, date_key: str) -> list[PhotoVM]:
        return [PhotoVM(p) for p in self.photos if self._engine.date_key_for(p) == date_key]

    def calendar_month(self, year: int, month: int) -> dict[int, int]:
        """Day of month -> number of photos for the given month."""
        counts: dict[int, int] = {}
        for photo in self.photos:
            d = parse_date_key(self._engine.date_key_for(photo))
            if d is not None and d.year == year and d.month == month:
                counts[d.day] = counts.get(d.day, 0) + 1
        return counts

    def photos_in_album(self, album: str | None) -> list[PhotoVM]:
        """Photos in `album`; ``None`` or ``"all"`` returns everything."""
        if album in (None, "all"):
            return [PhotoVM(p) for p in self.photos]
        return [PhotoVM(p) for p in self.photos if album in p.albums]

    def toggle_reaction(self, photo: PhotoRecord, emoji: str) -> None:
        user = self._require_user()
        reactions = {k: list(v) for k, v in photo.reactions.items()}
        users = reactions.get(emoji, [])
        if user in users:
            users.remove(user)
        else:
            users.append(user)
        reactions[emoji] = users
        try:
            self._gateway.update_photo(photo, {"reactions": reactions})
        except PersistenceError as ex:
            self._report(ex)
            return
        photo.reactions = reactions

    def set_album_membership(self, photo: PhotoRecord, album: str, member: bool) -> None:
        albums = [a for a in photo.albums if a != album]
        if member:
            albums.append(album)
        if albums == photo.albums:
            return
        try:
            self._gateway.update_photo(photo, {"albums": albums})
        except PersistenceError as ex:
            self._report(ex)
            return
        photo.albums = albums

    def add_to_album(self, photo: PhotoRecord, album: str) -> None:
        self.set_album_membership(photo, album, True)

    def remove_from_album(self, photo: PhotoRecord, album: str) -> None:
        self.set_album_membership(photo, album, False)

    # Comments
    def load_comments(self, photo: PhotoRecord) -> None:
        def _set(comments: list[CommentRecord]) -> None:
            self.comments[photo.key] = comments

        try:
            self._gateway.subscribe_comments(photo, _set, self._report)
        except PersistenceError as ex:
            self._report(ex)

    def add_comment(self, photo: PhotoRecord, text: str) -> str | None:
        user = self._require_user()
        body = text.strip()
        if not body:
            return None
        comment = CommentRecord(user=user, text=body, created_at=self._now_ms())
        try:
            doc_id = self._gateway.add_comment(photo, comment)
        except PersistenceError as ex:
            self._report(ex)
            return None
        photo.comment_count = (photo.comment_count or 0) + 1
        self._log_activity("comment", photoId=photo.id or photo.key)
        self._refresh_if_local(lambda: self.load_comments(photo))
        return doc_id

    # Albums
    def load_albums(self) -> None:
        def _set(albums: list[str]) -> None:
            self.albums = albums

        try:
            self._gateway.subscribe_albums(_set, self._report)
        except PersistenceError as ex:
            self._report(ex)

    def add_album(self, name: str) -> None:
        try:
            self._gateway.add_album(name)
        except PersistenceError as ex:
            self._report(ex)
            return
        self._refresh_if_local(self.load_albums)

    def remove_album(self, name: str) -> None:
        try:
            self._gateway.remove_album(name)
        except PersistenceError as ex:
            self._report(ex)
            return
        self._refresh_if_local(self.load_albums)

    # Schedules
    def load_schedules(self) -> None:
        def _set(schedules: list[ScheduleRecord]) -> None:
            self.schedules = schedules

        try:
            self._gateway.subscribe_schedules(_set, self._report)
        except PersistenceError as ex:
            self._report(ex)

    def add_schedule(
        self,
        title: str,
        date_key: str,
        time_of_day: str | None = None,
        memo: str = "",
        participants: list[str] | None = None,
    ) -> str | None:
        if not title.strip():
            raise ValueError("Schedule title is required")
        if parse_date_key(date_key) is None:
            raise ValueError(f"Invalid schedule date: {date_key!r}")
        schedule = ScheduleRecord(
            id=f"schedule_{self._now_ms()}_{uuid.uuid4().hex[:9]}",
            title=title.strip(),
            date=date_key,
            time=time_of_day or None,
            memo=memo.strip(),
            participants=list(participants or []),
            created_by=self.current_user,
            created_at=self._now_ms(),
        )
        try:
            doc_id = self._gateway.create_schedule(schedule)
        except PersistenceError as ex:
            self._report(ex)
            return None
        self._refresh_if_local(self.load_schedules)
        return doc_id

    def update_schedule(self, schedule: ScheduleRecord, **fields) -> None:
        unknown = set(fields) - SCHEDULE_FIELDS
        if unknown:
            raise ValueError(f"Unknown schedule fields: {sorted(unknown)}")
        updated = dataclasses.replace(schedule, **fields)
        updates = {k: v for k, v in updated.to_dict().items() if k in SCHEDULE_FIELDS}
        try:
            self._gateway.update_schedule(schedule.doc_id or schedule.id, updates)
        except PersistenceError as ex:
            self._report(ex)
            return
        self._refresh_if_local(self.load_schedules)

    def delete_schedule(self, schedule: ScheduleRecord) -> None:
        try:
            self._gateway.delete_schedule(schedule.doc_id or schedule.id)
        except PersistenceError as ex:
            self._report(ex)
            return
        self._refresh_if_local(self.load_schedules)

    def upcoming_schedules(self, today_key: str | None = None) -> list[ScheduleRecord]:
        today = today_key or self._engine.derive_date_key(self._now_ms())
        return [s for s in self.schedules if today is None or s.date >= today]

    # Growth
    def load_growth_records(self) -> None:
        def _set(records: list[GrowthRecord]) -> None:
            self.growth_records = records

        try:
            self._gateway.subscribe_growth_records(_set, self._report)
        except PersistenceError as ex:
            self._report(ex)

    def save_growth_record(self, record: GrowthRecord) -> None:
        """Create `record`, or update it when it already has a storage id."""
        action = "growth_edit" if record.doc_id else "growth_add"
        try:
            if record.doc_id:
                self._gateway.update_growth_record(record.doc_id, record.to_dict())
            else:
                if not record.id:
                    record.id = f"growth_{self._now_ms()}_{uuid.uuid4().hex[:9]}"
                self._gateway.create_growth_record(record)
        except PersistenceError as ex:
            self._report(ex)
            return
        self._log_activity(action, date=record.date)
        self._refresh_if_local(self.load_growth_records)

    def delete_growth_record(self, record: GrowthRecord) -> None:
        try:
            self._gateway.delete_growth_record(record.doc_id or record.id)
        except PersistenceError as ex:
            self._report(ex)
            return
        self._log_activity("growth_delete", date=record.date)
        self._refresh_if_local(self.load_growth_records)

    def growth_stats(self) -> GrowthStats | None:
        return compute_growth_stats(self.growth_records)

    # Activity
    def load_activity_logs(self) -> None:
        def _set(logs: list[ActivityLogEntry]) -> None:
            self.activity_logs = logs

        try:
            self._gateway.subscribe_activity_logs(_set, self._report)
        except PersistenceError as ex:
            self._report(ex)

    def activity_summary(self) -> dict[str, MemberActivity]:
        """Per-member counters over the last seven days."""
        return self._activity.summarize(self.activity_logs, self._now_ms())
