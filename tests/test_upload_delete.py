from __future__ import annotations

from datetime import datetime, timedelta, timezone
import os
from unittest.mock import MagicMock

from PIL import Image
import pytest

from core.models import CommentRecord
from core.services.date_grouping import DateGroupingEngine
from core.services.interfaces import Collection, MediaDeleteError, MediaUploadError, PersistenceError
from infrastructure import upload_service
from infrastructure.cloudinary_service import CloudinaryClient
from infrastructure.delete_service import PhotoDeleteService
from infrastructure.local_store import comments_key
from infrastructure.upload_service import UploadItem, UploadService
from tests.conftest import make_photo

KST = timezone(timedelta(hours=9))


@pytest.fixture
def cdn() -> MagicMock:
    client = MagicMock(spec=CloudinaryClient)
    client.upload.side_effect = lambda path, date_key, is_video: (
        f"https://res.cloudinary.com/demo/{'video' if is_video else 'image'}/upload/v1/"
        f"{date_key.replace('-', '/')}/{os.path.basename(str(path))}"
    )
    return client


@pytest.fixture
def uploads(cdn, gateway, clock) -> UploadService:
    return UploadService(cdn, gateway, DateGroupingEngine(tz=KST), clock=clock)


def _touch(path, when: datetime) -> str:
    path.write_bytes(b"data")
    ts = when.timestamp()
    os.utime(path, (ts, ts))
    return str(path)


def test_upload_creates_record_from_file_mtime(uploads, cdn, local_backend, tmp_path, clock) -> None:
    path = _touch(tmp_path / "Baby.PNG", datetime(2024, 4, 30, 22, 0))

    photo = uploads.upload_file(path, "🌟 우주")

    assert photo.date_group == "2024-04-30"
    assert photo.id == f"baby_{int(clock.now * 1000)}"
    assert photo.original_file_name == "Baby.PNG"
    assert photo.file_size == 4
    assert photo.uploaded_at.endswith("Z")
    cdn.upload.assert_called_once_with(path, "2024-04-30", False)

    stored = local_backend.fetch(Collection.PHOTOS)
    assert stored[0]["docId"] == photo.doc_id
    assert stored[0]["dateGroup"] == "2024-04-30"
    assert stored[0]["url"] == photo.url
    assert local_backend.fetch(Collection.ACTIVITY_LOGS)[0]["action"] == "upload"


def test_exif_date_beats_mtime(uploads, tmp_path) -> None:
    path = tmp_path / "exif.jpg"
    exif = Image.Exif()
    exif[306] = "2023:12:24 19:00:00"
    Image.new("RGB", (4, 4)).save(path, exif=exif)

    assert uploads.resolve_date_key(str(path)) == "2023-12-24"


def test_date_override_wins_and_is_validated(uploads, tmp_path) -> None:
    path = _touch(tmp_path / "a.jpg", datetime(2024, 1, 1, 12, 0))
    assert uploads.resolve_date_key(path, "2022-02-02") == "2022-02-02"
    with pytest.raises(ValueError):
        uploads.resolve_date_key(path, "02/02/2022")


def test_video_upload_keeps_duration(uploads, cdn, tmp_path) -> None:
    path = _touch(tmp_path / "clip.mp4", datetime(2024, 5, 1, 9, 0))
    photo = uploads.upload_file(path, "엄마", mime="video/mp4", duration="0:42")
    assert photo.duration == "0:42"
    assert cdn.upload.call_args.args[2] is True


def test_oversized_video_is_rejected(uploads, cdn, tmp_path, monkeypatch) -> None:
    path = _touch(tmp_path / "long.mov", datetime(2024, 5, 1, 9, 0))
    monkeypatch.setattr(upload_service.os.path, "getsize", lambda _p: upload_service.MAX_VIDEO_BYTES + 1)
    with pytest.raises(ValueError):
        uploads.upload_file(path, "엄마")
    cdn.upload.assert_not_called()


def test_batch_upload_logs_once_and_collects_failures(uploads, cdn, local_backend, tmp_path) -> None:
    good = [_touch(tmp_path / f"p{i}.jpg", datetime(2024, 5, 1, 9, i)) for i in range(3)]
    bad = _touch(tmp_path / "bad.jpg", datetime(2024, 5, 1, 9, 0))
    original = cdn.upload.side_effect

    def _upload(path, date_key, is_video):
        if str(path) == bad:
            raise MediaUploadError("rejected")
        return original(path, date_key, is_video)

    cdn.upload.side_effect = _upload
    result = uploads.upload_files([*good, bad, str(tmp_path / "missing.jpg")], "아빠")

    assert len(result.uploaded) == 3
    assert [name for name, _ in result.failed] == ["bad.jpg", "missing.jpg"]
    assert local_backend.count(Collection.PHOTOS) == 3
    assert local_backend.count(Collection.ACTIVITY_LOGS) == 1


def test_activity_log_failure_does_not_fail_upload(cdn, tmp_path, clock) -> None:
    gateway = MagicMock()
    gateway.create_photo.return_value = "doc-1"
    gateway.save_activity_log.side_effect = PersistenceError("offline")
    service = UploadService(cdn, gateway, DateGroupingEngine(tz=KST), clock=clock)

    photo = service.upload_file(_touch(tmp_path / "x.jpg", datetime(2024, 5, 1)), "엄마")
    assert photo.doc_id == "doc-1"


def test_delete_removes_cdn_asset_then_record(gateway, local_backend, store) -> None:
    cdn = MagicMock(spec=CloudinaryClient)
    photo = make_photo()
    photo.doc_id = gateway.create_photo(photo)
    gateway.add_comment(photo, CommentRecord(user="엄마", text="hi", created_at=1))

    result = PhotoDeleteService(cdn, gateway).delete_photos([photo])

    assert result.success_ids == [photo.doc_id]
    cdn.delete_asset.assert_called_once_with("2024/05/01/img_0001", "image")
    assert local_backend.count(Collection.PHOTOS) == 0
    assert store.get_item(comments_key(photo.doc_id)) is None


def test_cdn_failure_keeps_record(gateway, local_backend) -> None:
    cdn = MagicMock(spec=CloudinaryClient)
    cdn.delete_asset.side_effect = MediaDeleteError("proxy down")
    photo = make_photo()
    photo.doc_id = gateway.create_photo(photo)

    result = PhotoDeleteService(cdn, gateway).delete_photos([photo])

    assert result.success_ids == []
    assert result.failed == [(photo.doc_id, "proxy down")]
    assert local_backend.count(Collection.PHOTOS) == 1


def test_record_without_cdn_id_is_still_deleted(gateway, local_backend) -> None:
    cdn = MagicMock(spec=CloudinaryClient)
    photo = make_photo(url="https://example.com/old.jpg")
    photo.doc_id = gateway.create_photo(photo)

    PhotoDeleteService(cdn, gateway).delete_photo(photo)

    cdn.delete_asset.assert_not_called()
    assert local_backend.count(Collection.PHOTOS) == 0


def test_batch_upload_forwards_picker_metadata(uploads, cdn, local_backend, tmp_path) -> None:
    clip = _touch(tmp_path / "clip.bin", datetime(2024, 5, 1, 9, 0))
    still = _touch(tmp_path / "live.mov", datetime(2024, 5, 1, 9, 1))

    result = uploads.upload_files(
        [UploadItem(clip, mime="video/mp4", duration=75.9), UploadItem(still, mime="image/jpeg")],
        "엄마",
    )

    assert result.failed == []
    assert [c.args[2] for c in cdn.upload.call_args_list] == [True, False]
    by_name = {d["originalFileName"]: d for d in local_backend.fetch(Collection.PHOTOS)}
    assert by_name["clip.bin"]["duration"] == "1:15"
    assert by_name["live.mov"].get("duration") is None
