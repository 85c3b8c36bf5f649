"""Shared fixtures: in-memory stores, a push-based fake remote and a manual clock."""

from __future__ import annotations

from collections import defaultdict
import itertools

import pytest

from core.models import PhotoRecord
from core.services.interfaces import Collection, Document
from core.services.sort_service import (
    ACTIVITY_ORDER,
    ALBUM_ORDER,
    COMMENT_ORDER,
    GROWTH_ORDER,
    PHOTO_ORDER,
    SCHEDULE_ORDER,
    SortService,
)
from infrastructure.gateway import PersistenceGateway
from infrastructure.local_backend import LocalBackend
from infrastructure.local_store import LocalKeyValueStore
from infrastructure.settings import FirebaseConfig

ORDERS = {
    Collection.PHOTOS: PHOTO_ORDER,
    Collection.COMMENTS: COMMENT_ORDER,
    Collection.SCHEDULES: SCHEDULE_ORDER,
    Collection.ALBUMS: ALBUM_ORDER,
    Collection.ACTIVITY_LOGS: ACTIVITY_ORDER,
    Collection.GROWTH_RECORDS: GROWTH_ORDER,
}


class ManualClock:
    """Callable clock returning seconds; advance it by hand."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRemoteBackend:
    """In-memory push backend: every write notifies matching listeners."""

    name = "fake-remote"

    def __init__(self) -> None:
        self.docs: dict[tuple[Collection, str | None], dict[str, Document]] = defaultdict(dict)
        self.listeners: list[tuple[Collection, str | None, object, object]] = []
        self.fail_ops: set[str] = set()
        self.calls: list[tuple[str, Collection, str | None]] = []
        self.closed = False
        self._ids = itertools.count(1)
        self._sorter = SortService()

    def _check(self, op: str) -> None:
        if op in self.fail_ops:
            raise RuntimeError(f"{op} unavailable")

    def snapshot(self, collection: Collection, parent_id: str | None = None) -> list[Document]:
        rows = [{**doc, "docId": doc_id} for doc_id, doc in self.docs[(collection, parent_id)].items()]
        return self._sorter.sort(rows, ORDERS[collection])

    def _notify(self, collection: Collection, parent_id: str | None) -> None:
        for c, p, on_update, _ in list(self.listeners):
            if c is collection and p == parent_id:
                on_update(self.snapshot(collection, parent_id))

    def emit_error(self, ex: Exception) -> None:
        for _, _, _, on_error in list(self.listeners):
            on_error(ex)

    def create(self, collection, data, parent_id=None):
        self._check("create")
        doc_id = data["name"] if collection is Collection.ALBUMS else f"r{next(self._ids)}"
        self.docs[(collection, parent_id)][doc_id] = dict(data)
        self.calls.append(("create", collection, doc_id))
        self._notify(collection, parent_id)
        return doc_id

    def subscribe(self, collection, on_update, on_error, parent_id=None):
        self._check("subscribe")
        entry = (collection, parent_id, on_update, on_error)
        self.listeners.append(entry)
        on_update(self.snapshot(collection, parent_id))

        def _unsubscribe():
            if entry in self.listeners:
                self.listeners.remove(entry)

        return _unsubscribe

    def update(self, collection, doc_id, fields, parent_id=None):
        self._check("update")
        self.docs[(collection, parent_id)][doc_id].update(fields)
        self._notify(collection, parent_id)

    def delete(self, collection, doc_id, parent_id=None):
        self._check("delete")
        if collection is Collection.PHOTOS:
            for comment_id in list(self.docs[(Collection.COMMENTS, doc_id)]):
                del self.docs[(Collection.COMMENTS, doc_id)][comment_id]
                self.calls.append(("delete", Collection.COMMENTS, comment_id))
        self.docs[(collection, parent_id)].pop(doc_id, None)
        self.calls.append(("delete", collection, doc_id))
        self._notify(collection, parent_id)

    def count(self, collection, parent_id=None):
        self._check("count")
        return len(self.docs[(collection, parent_id)])

    def increment(self, collection, doc_id, field_name, amount=1):
        self._check("increment")
        doc = self.docs[(collection, None)][doc_id]
        doc[field_name] = (doc.get(field_name) or 0) + amount
        self._notify(collection, None)

    def close(self):
        self.closed = True


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store() -> LocalKeyValueStore:
    return LocalKeyValueStore()


@pytest.fixture
def local_backend(store: LocalKeyValueStore) -> LocalBackend:
    return LocalBackend(store, default_albums=["100일", "돌잔치"])


@pytest.fixture
def remote() -> FakeRemoteBackend:
    return FakeRemoteBackend()


@pytest.fixture
def firebase_config() -> FirebaseConfig:
    return FirebaseConfig(project_id="family-test", credentials_path="")


@pytest.fixture
def gateway(local_backend: LocalBackend, clock: ManualClock) -> PersistenceGateway:
    return PersistenceGateway(local_backend, clock=clock)


@pytest.fixture
def remote_gateway(
    local_backend: LocalBackend,
    remote: FakeRemoteBackend,
    clock: ManualClock,
    firebase_config: FirebaseConfig,
) -> PersistenceGateway:
    gw = PersistenceGateway(local_backend, connector=lambda _cfg: remote, clock=clock)
    assert gw.init_remote(firebase_config)
    return gw


def make_photo(
    name: str = "img_0001",
    date_group: str = "2024-05-01",
    timestamp: int = 1_714_550_400_000,
    **overrides,
) -> PhotoRecord:
    fields = {
        "id": f"{name}_{timestamp}",
        "url": f"https://res.cloudinary.com/demo/image/upload/v1/{date_group.replace('-', '/')}/{name}.jpg",
        "uploaded_at": "2024-05-01T03:00:00Z",
        "date_group": date_group,
        "uploader": "🌟 우주",
        "timestamp": timestamp,
        "name_base": name,
        "original_file_name": f"{name}.jpg",
        "file_size": 1234,
    }
    fields.update(overrides)
    return PhotoRecord(**fields)
