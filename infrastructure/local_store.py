"""Process-wide key-value store persisted as one JSON file.

Values are JSON-serialized blobs under fixed key names. Reads of malformed
or missing data return the caller's default instead of raising.
"""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any, ClassVar

from loguru import logger

# Fixed key names of the persisted blobs
CONFIG_KEY = "familyAppConfig"
CURRENT_USER_KEY = "currentUser"
PHOTOS_KEY = "familyPhotos"
SCHEDULES_KEY = "familySchedules"
GROWTH_KEY = "growthRecords"
ACTIVITY_LOGS_KEY = "activityLogs"
COMMENTS_KEY_PREFIX = "comments_"


def comments_key(photo_id: str) -> str:
    return COMMENTS_KEY_PREFIX + photo_id


class LocalKeyValueStore:
    """Synchronous durable key-value store.

    Each key maps to a JSON string, mirroring browser local storage. With
    ``path=None`` the store lives in memory only.
    """

    _shared: ClassVar[dict[str, LocalKeyValueStore]] = {}

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path else None
        self._items: dict[str, str] = {}
        if self._path is not None and self._path.exists():
            try:
                with self._path.open("r", encoding="utf-8") as f:
                    raw = json.load(f)
                if isinstance(raw, dict):
                    self._items = {str(k): v for k, v in raw.items() if isinstance(v, str)}
                else:
                    logger.warning("Local store {} is not an object, starting empty", self._path)
            except (OSError, ValueError) as ex:
                logger.error("Local store load failed for {}: {}", self._path, ex)

    @classmethod
    def shared(cls, path: str | Path | None) -> LocalKeyValueStore:
        """Return the one store instance for `path` in this process."""
        key = os.path.abspath(path) if path else ":memory:"
        store = cls._shared.get(key)
        if store is None:
            store = cls(path)
            cls._shared[key] = store
        return store

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._flush()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._flush()

    def get_json(self, key: str, default: Any) -> Any:
        """Decode the blob under `key`; malformed or mistyped data yields `default`."""
        raw = self._items.get(key)
        if raw is None:
            return copy.deepcopy(default)
        try:
            value = json.loads(raw)
        except ValueError as ex:
            logger.error("Malformed JSON under {}: {}", key, ex)
            return copy.deepcopy(default)
        if default is not None and not isinstance(value, type(default)):
            logger.error("Unexpected {} under {}", type(value).__name__, key)
            return copy.deepcopy(default)
        return value

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value, ensure_ascii=False))

    def _flush(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(self._items, f, ensure_ascii=False)
        os.replace(tmp, self._path)
