"""Local storage backend over the process-wide key-value store.

Everything is synchronous. Subscriptions are one-shot: the callback fires
once with the current result set and later changes are not pushed.
"""

from __future__ import annotations

import copy
import uuid

from loguru import logger

from core.services.interfaces import Collection, Document, OnError, OnUpdate, Unsubscribe
from core.services.sort_service import (
    ACTIVITY_ORDER,
    COMMENT_ORDER,
    GROWTH_ORDER,
    PHOTO_ORDER,
    SCHEDULE_ORDER,
    SortService,
)
from infrastructure.local_store import (
    ACTIVITY_LOGS_KEY,
    CONFIG_KEY,
    GROWTH_KEY,
    PHOTOS_KEY,
    SCHEDULES_KEY,
    LocalKeyValueStore,
    comments_key,
)

ACTIVITY_LOG_RETENTION = 1000

_LIST_KEYS = {
    Collection.PHOTOS: PHOTOS_KEY,
    Collection.SCHEDULES: SCHEDULES_KEY,
    Collection.ACTIVITY_LOGS: ACTIVITY_LOGS_KEY,
    Collection.GROWTH_RECORDS: GROWTH_KEY,
}

_ORDERS = {
    Collection.PHOTOS: PHOTO_ORDER,
    Collection.COMMENTS: COMMENT_ORDER,
    Collection.SCHEDULES: SCHEDULE_ORDER,
    Collection.ACTIVITY_LOGS: ACTIVITY_ORDER,
    Collection.GROWTH_RECORDS: GROWTH_ORDER,
}


def _identity(doc: Document) -> str:
    """Stable identity for stored rows, including legacy rows without docId."""
    return str(doc.get("docId") or doc.get("id") or doc.get("public_id") or doc.get("url") or "")


def _noop() -> None:
    return None


class LocalBackend:
    """Key-value backed implementation of `StorageBackend`."""

    name = "local"

    def __init__(self, store: LocalKeyValueStore, default_albums: list[str] | None = None) -> None:
        self._store = store
        self._sorter = SortService()
        self._default_albums = list(default_albums or [])

    # List plumbing
    def _key(self, collection: Collection, parent_id: str | None) -> str:
        if collection is Collection.COMMENTS:
            if not parent_id:
                raise ValueError("comments require a parent photo id")
            return comments_key(parent_id)
        return _LIST_KEYS[collection]

    def _load(self, collection: Collection, parent_id: str | None) -> list[Document]:
        rows = self._store.get_json(self._key(collection, parent_id), [])
        return [r for r in rows if isinstance(r, dict)]

    def _save(self, collection: Collection, parent_id: str | None, rows: list[Document]) -> None:
        self._store.set_json(self._key(collection, parent_id), rows)

    # Albums live inside the stored app configuration
    def _load_config(self) -> Document:
        return self._store.get_json(CONFIG_KEY, {})

    def _album_names(self) -> list[str]:
        albums = self._load_config().get("albums")
        if isinstance(albums, list):
            return [str(a) for a in albums]
        return list(self._default_albums)

    def _save_album_names(self, names: list[str]) -> None:
        config = self._load_config()
        config["albums"] = names
        self._store.set_json(CONFIG_KEY, config)

    # StorageBackend
    def create(self, collection: Collection, data: Document, parent_id: str | None = None) -> str:
        if collection is Collection.ALBUMS:
            name = str(data.get("name", "")).strip()
            names = self._album_names()
            if name and name not in names:
                names.append(name)
                self._save_album_names(names)
                logger.info("Local album added: {}", name)
            return name

        doc = copy.deepcopy(data)
        doc_id = uuid.uuid4().hex
        doc["docId"] = doc_id
        rows = self._load(collection, parent_id)
        if collection is Collection.PHOTOS:
            rows.insert(0, doc)
        else:
            rows.append(doc)
        if collection is Collection.ACTIVITY_LOGS and len(rows) > ACTIVITY_LOG_RETENTION:
            # Oldest entries sit at the head
            rows = rows[-ACTIVITY_LOG_RETENTION:]
        self._save(collection, parent_id, rows)
        logger.debug("Local {} created: {}", collection.value, doc_id)
        return doc_id

    def fetch(self, collection: Collection, parent_id: str | None = None) -> list[Document]:
        """Current ordered result set for `collection`."""
        if collection is Collection.ALBUMS:
            return [{"name": n, "docId": n} for n in sorted(self._album_names())]
        rows = []
        for row in self._load(collection, parent_id):
            doc = dict(row)
            doc["docId"] = _identity(row)
            rows.append(doc)
        return self._sorter.sort(rows, _ORDERS[collection])

    def subscribe(
        self,
        collection: Collection,
        on_update: OnUpdate,
        on_error: OnError,
        parent_id: str | None = None,
    ) -> Unsubscribe:
        try:
            docs = self.fetch(collection, parent_id)
        except (ValueError, TypeError, OSError) as ex:
            logger.error("Local {} load failed: {}", collection.value, ex)
            on_error(ex)
            return _noop
        on_update(docs)
        return _noop

    def update(
        self, collection: Collection, doc_id: str, fields: Document, parent_id: str | None = None
    ) -> None:
        if collection is Collection.ALBUMS:
            new_name = str(fields.get("name", "")).strip()
            names = self._album_names()
            if new_name and doc_id in names:
                names[names.index(doc_id)] = new_name
                self._save_album_names(names)
            return

        rows = self._load(collection, parent_id)
        for row in rows:
            if _identity(row) == doc_id:
                row.update(copy.deepcopy(fields))
                self._save(collection, parent_id, rows)
                logger.debug("Local {} updated: {}", collection.value, doc_id)
                return
        logger.warning("Local {} not found for update: {}", collection.value, doc_id)
        raise KeyError(doc_id)

    def delete(self, collection: Collection, doc_id: str, parent_id: str | None = None) -> None:
        if collection is Collection.ALBUMS:
            names = self._album_names()
            if doc_id in names:
                names.remove(doc_id)
                self._save_album_names(names)
                logger.info("Local album removed: {}", doc_id)
            return

        rows = self._load(collection, parent_id)
        if collection is Collection.PHOTOS:
            # Children first so no comment list outlives its photo
            aliases = {doc_id}
            for target in rows:
                if _identity(target) == doc_id:
                    aliases.update(str(target[k]) for k in ("id", "public_id", "url") if target.get(k))
            for alias in aliases:
                self._store.remove_item(comments_key(alias))
        kept = [r for r in rows if _identity(r) != doc_id]
        self._save(collection, parent_id, kept)
        logger.debug("Local {} deleted: {}", collection.value, doc_id)

    def count(self, collection: Collection, parent_id: str | None = None) -> int:
        if collection is Collection.ALBUMS:
            return len(self._album_names())
        return len(self._load(collection, parent_id))

    def increment(
        self, collection: Collection, doc_id: str, field_name: str, amount: int = 1
    ) -> None:
        rows = self._load(collection, None)
        for row in rows:
            if _identity(row) == doc_id:
                current = row.get(field_name)
                base = current if isinstance(current, int) and not isinstance(current, bool) else 0
                row[field_name] = max(0, base + amount)
                self._save(collection, None, rows)
                return

    def close(self) -> None:
        return None
