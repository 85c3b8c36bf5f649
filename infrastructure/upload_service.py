"""Photo/video upload pipeline: date resolution, CDN upload, record creation."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
import os
from pathlib import Path
import time

from loguru import logger

from core.models import PhotoRecord
from core.services.date_grouping import DateGroupingEngine, parse_date_key
from core.services.interfaces import MediaUploadError, PersistenceError, UploadResult
from infrastructure.cloudinary_service import CloudinaryClient
from infrastructure.gateway import PersistenceGateway
from infrastructure.utils import (
    classify_upload,
    format_duration,
    get_base_name,
    get_exif_datetime_original,
    get_file_modified_datetime,
)

MAX_VIDEO_BYTES = 500 * 1024 * 1024


@dataclass
class UploadItem:
    """One file of a batch with the metadata the picker reported for it."""

    path: str
    mime: str | None = None
    duration: float | str | None = None


class UploadService:
    """Upload local files and store them as photo records.

    Args:
        cdn: Media CDN client.
        gateway: Persistence gateway for the photo record and activity log.
        engine: Date grouping engine deriving the date-group key.
        clock: Seconds since the epoch.
    """

    def __init__(
        self,
        cdn: CloudinaryClient,
        gateway: PersistenceGateway,
        engine: DateGroupingEngine,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cdn = cdn
        self._gateway = gateway
        self._engine = engine
        self._clock = clock

    def resolve_date_key(self, path: str, date_override: str | None = None) -> str:
        """Pick the date group: explicit override, EXIF capture date, then file mtime."""
        if date_override:
            if parse_date_key(date_override) is None:
                raise ValueError(f"Invalid date override: {date_override!r}")
            logger.info("Using manual date {} for {}", date_override, path)
            return date_override

        exif_dt = get_exif_datetime_original(path)
        if exif_dt is not None:
            key = self._engine.derive_date_key(exif_dt)
            if key:
                logger.info("EXIF date {} for {}", key, path)
                return key

        mtime = get_file_modified_datetime(path)
        key = self._engine.derive_date_key(mtime if mtime is not None else self._clock() * 1000)
        if key is None:
            raise ValueError(f"No usable date for {path}")
        logger.info("File modified date {} for {}", key, path)
        return key

    def upload_file(
        self,
        path: str,
        uploader: str | None,
        mime: str | None = None,
        date_override: str | None = None,
        duration: float | str | None = None,
    ) -> PhotoRecord:
        """Upload one file and persist its record.

        `duration` is the video length, either in seconds or already as ``m:ss``.

        Raises:
            ValueError: Oversized video or unusable date override.
            MediaUploadError: The CDN rejected the upload.
            PersistenceError: The record could not be stored.
        """
        file_name = Path(path).name
        size = os.path.getsize(path)
        is_video = classify_upload(file_name, mime) == "video"
        if is_video and size > MAX_VIDEO_BYTES:
            raise ValueError("Videos must be 500MB or smaller")

        date_key = self.resolve_date_key(path, date_override)
        url = self._cdn.upload(path, date_key, is_video)

        now = self._clock()
        now_ms = int(now * 1000)
        base = get_base_name(file_name)
        photo = PhotoRecord(
            id=f"{base}_{now_ms}",
            url=url,
            uploaded_at=_iso_utc(now),
            date_group=date_key,
            uploader=uploader,
            timestamp=now_ms,
            name_base=base,
            original_file_name=file_name,
            file_size=size,
            duration=_duration_label(duration) if is_video else None,
        )
        doc_id = self._gateway.create_photo(photo)
        photo.doc_id = doc_id
        logger.info("Photo stored: {} -> {}", file_name, date_key)

        try:
            self._gateway.save_activity_log(
                "upload",
                {"user": uploader, "photoId": photo.id, "fileName": file_name, "timestamp": now_ms},
            )
        except PersistenceError as ex:
            logger.warning("Upload activity log failed: {}", ex)
        return photo

    def upload_files(
        self,
        items: Iterable[str | UploadItem],
        uploader: str | None,
        date_override: str | None = None,
    ) -> UploadResult:
        """Upload files one after another, collecting per-file failures.

        Plain paths are classified by extension; `UploadItem`s also carry the
        MIME type and video duration.
        """
        result = UploadResult()
        for item in items:
            if not isinstance(item, UploadItem):
                item = UploadItem(path=item)
            path = item.path
            try:
                photo = self.upload_file(
                    path,
                    uploader,
                    mime=item.mime,
                    date_override=date_override,
                    duration=item.duration,
                )
                result.uploaded.append(photo.id)
            except (OSError, ValueError, MediaUploadError, PersistenceError) as ex:
                logger.error("Upload failed for {}: {}", path, ex)
                result.failed.append((Path(path).name, str(ex)))
        return result


def _iso_utc(seconds: float) -> str:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def _duration_label(duration: float | str | None) -> str | None:
    if duration is None or isinstance(duration, str):
        return duration
    return format_duration(duration)
