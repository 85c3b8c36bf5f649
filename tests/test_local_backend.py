from __future__ import annotations

import json

import pytest

from core.services.interfaces import Collection
from infrastructure.local_backend import ACTIVITY_LOG_RETENTION, LocalBackend
from infrastructure.local_store import (
    ACTIVITY_LOGS_KEY,
    CONFIG_KEY,
    PHOTOS_KEY,
    LocalKeyValueStore,
    comments_key,
)
from tests.conftest import make_photo


def _fetch_once(backend: LocalBackend, collection: Collection, parent_id=None):
    seen = []
    unsubscribe = backend.subscribe(collection, seen.append, lambda ex: seen.append(ex), parent_id)
    unsubscribe()
    unsubscribe()
    assert len(seen) == 1
    return seen[0]


def test_store_round_trip_through_file(tmp_path) -> None:
    path = tmp_path / "store" / "family.json"
    store = LocalKeyValueStore(path)
    store.set_json(PHOTOS_KEY, [{"id": "a", "memo": "첫 사진"}])

    reopened = LocalKeyValueStore(path)
    assert reopened.get_json(PHOTOS_KEY, []) == [{"id": "a", "memo": "첫 사진"}]
    assert not path.with_suffix(".json.tmp").exists()


def test_store_malformed_and_mistyped_values_return_default(store: LocalKeyValueStore) -> None:
    store.set_item(PHOTOS_KEY, "{not json")
    assert store.get_json(PHOTOS_KEY, []) == []
    store.set_item(CONFIG_KEY, json.dumps(["wrong", "shape"]))
    assert store.get_json(CONFIG_KEY, {}) == {}

    default: list = []
    store.get_json("missing", default).append("x")
    assert default == []


def test_store_ignores_corrupt_file(tmp_path) -> None:
    path = tmp_path / "family.json"
    path.write_text("[1, 2", encoding="utf-8")
    assert LocalKeyValueStore(path).get_item(PHOTOS_KEY) is None


def test_shared_store_is_one_instance_per_path(tmp_path) -> None:
    path = tmp_path / "shared.json"
    assert LocalKeyValueStore.shared(path) is LocalKeyValueStore.shared(str(path))


def test_create_copies_input_and_assigns_id(local_backend: LocalBackend) -> None:
    data = make_photo().to_dict()
    doc_id = local_backend.create(Collection.PHOTOS, data)

    assert doc_id
    assert "docId" not in data
    docs = _fetch_once(local_backend, Collection.PHOTOS)
    assert docs[0]["docId"] == doc_id
    assert docs[0]["dateGroup"] == "2024-05-01"
    assert docs[0]["url"] == data["url"]


def test_photos_are_newest_first(local_backend: LocalBackend) -> None:
    local_backend.create(Collection.PHOTOS, make_photo("old", timestamp=1).to_dict())
    local_backend.create(Collection.PHOTOS, make_photo("new", timestamp=2).to_dict())
    docs = local_backend.fetch(Collection.PHOTOS)
    assert [d["nameBase"] for d in docs] == ["new", "old"]


def test_legacy_rows_without_doc_id_are_addressable(store, local_backend: LocalBackend) -> None:
    store.set_json(PHOTOS_KEY, [{"id": "legacy_1", "url": "u", "timestamp": 5}])
    store.set_json(comments_key("legacy_1"), [{"user": "엄마", "text": "hi", "createdAt": 1}])

    docs = local_backend.fetch(Collection.PHOTOS)
    assert docs[0]["docId"] == "legacy_1"

    local_backend.update(Collection.PHOTOS, "legacy_1", {"albums": ["100일"]})
    assert local_backend.fetch(Collection.PHOTOS)[0]["albums"] == ["100일"]

    local_backend.delete(Collection.PHOTOS, "legacy_1")
    assert local_backend.fetch(Collection.PHOTOS) == []
    assert store.get_item(comments_key("legacy_1")) is None


def test_delete_photo_removes_its_comments(store, local_backend: LocalBackend) -> None:
    doc_id = local_backend.create(Collection.PHOTOS, make_photo().to_dict())
    local_backend.create(Collection.COMMENTS, {"user": "아빠", "text": "귀엽다", "createdAt": 2}, doc_id)
    local_backend.create(Collection.COMMENTS, {"user": "엄마", "text": "최고", "createdAt": 1}, doc_id)
    assert [c["text"] for c in local_backend.fetch(Collection.COMMENTS, doc_id)] == ["최고", "귀엽다"]

    local_backend.delete(Collection.PHOTOS, doc_id)
    assert store.get_item(comments_key(doc_id)) is None
    assert local_backend.count(Collection.PHOTOS) == 0


def test_activity_log_retention_drops_oldest(store, local_backend: LocalBackend) -> None:
    for i in range(ACTIVITY_LOG_RETENTION + 5):
        local_backend.create(Collection.ACTIVITY_LOGS, {"action": "login", "timestamp": i})

    rows = store.get_json(ACTIVITY_LOGS_KEY, [])
    assert len(rows) == ACTIVITY_LOG_RETENTION
    assert rows[0]["timestamp"] == 5
    assert local_backend.fetch(Collection.ACTIVITY_LOGS)[0]["timestamp"] == ACTIVITY_LOG_RETENTION + 4


def test_albums_live_in_stored_config(store, local_backend: LocalBackend) -> None:
    assert [d["name"] for d in local_backend.fetch(Collection.ALBUMS)] == ["100일", "돌잔치"]

    assert local_backend.create(Collection.ALBUMS, {"name": " 첫 여행 "}) == "첫 여행"
    local_backend.create(Collection.ALBUMS, {"name": "첫 여행"})
    assert store.get_json(CONFIG_KEY, {})["albums"] == ["100일", "돌잔치", "첫 여행"]

    local_backend.update(Collection.ALBUMS, "돌잔치", {"name": "돌"})
    local_backend.delete(Collection.ALBUMS, "100일")
    assert [d["name"] for d in local_backend.fetch(Collection.ALBUMS)] == ["돌", "첫 여행"]


def test_increment_clamps_at_zero(local_backend: LocalBackend) -> None:
    doc_id = local_backend.create(Collection.PHOTOS, make_photo().to_dict())
    local_backend.increment(Collection.PHOTOS, doc_id, "commentCount", 1)
    local_backend.increment(Collection.PHOTOS, doc_id, "commentCount", 1)
    assert local_backend.fetch(Collection.PHOTOS)[0]["commentCount"] == 2
    for _ in range(3):
        local_backend.increment(Collection.PHOTOS, doc_id, "commentCount", -1)
    assert local_backend.fetch(Collection.PHOTOS)[0]["commentCount"] == 0


def test_schedules_ordered_by_date_and_time(local_backend: LocalBackend) -> None:
    local_backend.create(Collection.SCHEDULES, {"title": "b", "date": "2024-05-02", "time": "10:00"})
    local_backend.create(Collection.SCHEDULES, {"title": "a", "date": "2024-05-02", "time": "09:00"})
    local_backend.create(Collection.SCHEDULES, {"title": "c", "date": "2024-05-01", "time": None})
    assert [d["title"] for d in _fetch_once(local_backend, Collection.SCHEDULES)] == ["c", "a", "b"]


def test_update_of_missing_row_raises(local_backend: LocalBackend) -> None:
    local_backend.create(Collection.PHOTOS, make_photo().to_dict())
    with pytest.raises(KeyError):
        local_backend.update(Collection.PHOTOS, "gone", {"albums": ["100일"]})
    assert local_backend.fetch(Collection.PHOTOS)[0]["albums"] == []
