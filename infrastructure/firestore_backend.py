"""Remote storage backend on Cloud Firestore via firebase_admin.

Each collection is a Firestore collection; comments are a sub-collection of
their photo document. Subscriptions are ``on_snapshot`` watches that push
the full ordered result set on every change.
"""

from __future__ import annotations

import threading
from typing import Any
import uuid

import firebase_admin
from firebase_admin import credentials, firestore
from loguru import logger

from core.services.interfaces import Collection, Document, OnError, OnUpdate, Unsubscribe

PHOTOS_COLLECTION = "family-photos"
COMMENTS_COLLECTION = "comments"
ALBUMS_COLLECTION = "shared_albums"
SCHEDULES_COLLECTION = "schedules"
ACTIVITY_LOGS_COLLECTION = "activity_logs"
GROWTH_COLLECTION = "growth_records"

_COLLECTION_NAMES = {
    Collection.PHOTOS: PHOTOS_COLLECTION,
    Collection.ALBUMS: ALBUMS_COLLECTION,
    Collection.SCHEDULES: SCHEDULES_COLLECTION,
    Collection.ACTIVITY_LOGS: ACTIVITY_LOGS_COLLECTION,
    Collection.GROWTH_RECORDS: GROWTH_COLLECTION,
}

# (field, direction) ordering per collection
_ORDER_BY: dict[Collection, list[tuple[str, str]]] = {
    Collection.PHOTOS: [("timestamp", "DESCENDING")],
    Collection.COMMENTS: [("createdAt", "ASCENDING")],
    Collection.SCHEDULES: [("date", "ASCENDING")],
    Collection.ACTIVITY_LOGS: [("timestamp", "DESCENDING")],
    Collection.GROWTH_RECORDS: [("date", "ASCENDING")],
    Collection.ALBUMS: [],
}


def connect(project_id: str, credentials_path: str | None = None) -> Any:
    """Initialize a dedicated firebase app and return its Firestore client.

    Raises whatever firebase_admin raises for bad or missing credentials.
    """
    if not project_id:
        raise ValueError("Firebase project id is not configured")
    cred = (
        credentials.Certificate(credentials_path)
        if credentials_path
        else credentials.ApplicationDefault()
    )
    app = firebase_admin.initialize_app(
        cred, {"projectId": project_id}, name=f"family-album-{uuid.uuid4().hex[:8]}"
    )
    return firestore.client(app)


class FirestoreBackend:
    """Firestore implementation of `StorageBackend`."""

    name = "firestore"

    def __init__(self, db: Any) -> None:
        self._db = db

    def _collection(self, collection: Collection, parent_id: str | None = None) -> Any:
        if collection is Collection.COMMENTS:
            if not parent_id:
                raise ValueError("comments require a parent photo id")
            return (
                self._db.collection(PHOTOS_COLLECTION)
                .document(parent_id)
                .collection(COMMENTS_COLLECTION)
            )
        return self._db.collection(_COLLECTION_NAMES[collection])

    def _query(self, collection: Collection, parent_id: str | None) -> Any:
        query = self._collection(collection, parent_id)
        for field_name, direction in _ORDER_BY[collection]:
            query = query.order_by(field_name, direction=getattr(firestore.Query, direction))
        return query

    def create(self, collection: Collection, data: Document, parent_id: str | None = None) -> str:
        payload = {k: v for k, v in data.items() if k != "docId"}
        if collection is Collection.ALBUMS:
            name = str(payload.get("name", "")).strip()
            self._collection(collection).document(name).set(payload)
            logger.info("Firestore album added: {}", name)
            return name
        _, doc_ref = self._collection(collection, parent_id).add(payload)
        logger.info("Firestore {} created: {}", collection.value, doc_ref.id)
        return doc_ref.id

    def _documents(self, collection: Collection, snapshots: Any) -> list[Document]:
        docs: list[Document] = []
        for snap in snapshots:
            data = snap.to_dict() or {}
            if collection is Collection.ALBUMS and not data.get("name"):
                continue
            docs.append({**data, "docId": snap.id})
        if collection is Collection.ALBUMS:
            docs.sort(key=lambda d: str(d.get("name")))
        return docs

    def subscribe(
        self,
        collection: Collection,
        on_update: OnUpdate,
        on_error: OnError,
        parent_id: str | None = None,
    ) -> Unsubscribe:
        query = self._query(collection, parent_id)
        callback_threads: set[int] = set()

        def _on_snapshot(snapshots, _changes, _read_time) -> None:
            callback_threads.add(threading.get_ident())
            try:
                docs = self._documents(collection, snapshots)
            except Exception as ex:  # pylint: disable=broad-exception-caught
                logger.error("Firestore {} snapshot failed: {}", collection.value, ex)
                on_error(ex)
                return
            on_update(docs)

        watch = query.on_snapshot(_on_snapshot)
        closed = False

        def _unsubscribe() -> None:
            nonlocal closed
            if closed:
                return
            closed = True
            if threading.get_ident() in callback_threads:
                # The watch joins its consumer thread on close, which cannot
                # happen from inside that thread
                threading.Thread(
                    target=watch.unsubscribe, name="firestore-unsubscribe", daemon=True
                ).start()
            else:
                watch.unsubscribe()

        return _unsubscribe

    def update(
        self, collection: Collection, doc_id: str, fields: Document, parent_id: str | None = None
    ) -> None:
        payload = {k: v for k, v in fields.items() if k != "docId"}
        self._collection(collection, parent_id).document(doc_id).update(payload)
        logger.info("Firestore {} updated: {}", collection.value, doc_id)

    def delete(self, collection: Collection, doc_id: str, parent_id: str | None = None) -> None:
        doc_ref = self._collection(collection, parent_id).document(doc_id)
        if collection is Collection.PHOTOS:
            # Children first so no comment collection outlives its photo
            for comment in doc_ref.collection(COMMENTS_COLLECTION).stream():
                comment.reference.delete()
        doc_ref.delete()
        logger.info("Firestore {} deleted: {}", collection.value, doc_id)

    def count(self, collection: Collection, parent_id: str | None = None) -> int:
        return sum(1 for _ in self._collection(collection, parent_id).stream())

    def increment(
        self, collection: Collection, doc_id: str, field_name: str, amount: int = 1
    ) -> None:
        self._collection(collection).document(doc_id).update({field_name: firestore.Increment(amount)})

    def close(self) -> None:
        close = getattr(self._db, "close", None)
        if callable(close):
            close()
        self._db = None
