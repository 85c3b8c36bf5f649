"""Settings access helpers for JSON-based configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import os
from pathlib import Path
from typing import Any

DEFAULT_MEMBERS = ["👨‍💼 아빠", "👩‍💼 엄마", "🌟 우주", "👵 할머니", "👴 할아버지", "👩‍🦰 고모"]
DEFAULT_ALBUMS = ["100일", "첫걸음마", "돌잔치", "어린이집"]
DEFAULT_DDAY = "2023-06-26"


class JsonSettings:
    """Lightweight JSON settings reader with dotted-key access."""

    def __init__(self, settings_path: str | Path) -> None:
        self._path = Path(settings_path)
        if not self._path.exists():
            raise FileNotFoundError(f"settings.json not found: {self._path}")
        with self._path.open("r", encoding="utf-8") as f:
            self._data = json.load(f)

    def get(self, key: str, default: Any | None = None) -> Any:
        """Return value for dotted `key`, or `default` if not present."""
        parts = key.split(".")
        node: Any = self._data
        for part in parts:
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node


@dataclass
class FirebaseConfig:
    """Remote document store credentials."""

    project_id: str = ""
    credentials_path: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.project_id)

    def to_dict(self) -> dict[str, Any]:
        return {"projectId": self.project_id, "credentialsPath": self.credentials_path}


@dataclass
class CloudinaryConfig:
    """Media CDN upload settings."""

    cloud_name: str = "dawj0jy9t"
    image_preset: str = "woojoo_img"
    video_preset: str = "woojoo_fam"
    api_base: str = "https://api.cloudinary.com/v1_1"
    functions_base: str = "/.netlify/functions"


@dataclass
class AppConfig:
    """Application configuration with the family defaults."""

    firebase: FirebaseConfig = field(default_factory=FirebaseConfig)
    cloudinary: CloudinaryConfig = field(default_factory=CloudinaryConfig)
    use_firebase: bool = False
    members: list[str] = field(default_factory=lambda: list(DEFAULT_MEMBERS))
    dday: str = DEFAULT_DDAY
    theme: str = "default"
    albums: list[str] = field(default_factory=lambda: list(DEFAULT_ALBUMS))
    local_store_path: str | None = None
    log_dir: str | None = None
    log_level: str = "INFO"

    def to_dict(self) -> dict[str, Any]:
        """Shape persisted under the local app-configuration key."""
        return {
            "firebase": self.firebase.to_dict(),
            "cloudinary": {
                "cloudName": self.cloudinary.cloud_name,
                "uploadPreset": self.cloudinary.video_preset,
                "imagePreset": self.cloudinary.image_preset,
            },
            "useFirebase": self.use_firebase,
            "members": list(self.members),
            "dday": self.dday,
            "theme": self.theme,
            "albums": list(self.albums),
        }


def _str_list(value: Any, default: list[str]) -> list[str]:
    if isinstance(value, list) and value:
        return [str(v) for v in value]
    return list(default)


def load_app_config(settings: JsonSettings | None = None) -> AppConfig:
    """Build `AppConfig` from `settings`, falling back to defaults per key.

    ``FIREBASE_PROJECT_ID`` and ``GOOGLE_APPLICATION_CREDENTIALS`` fill in the
    remote credentials when the settings file leaves them empty.
    """
    cfg = AppConfig()
    if settings is None:
        return cfg

    cfg.firebase = FirebaseConfig(
        project_id=str(settings.get("firebase.project_id", "") or os.environ.get("FIREBASE_PROJECT_ID", "")),
        credentials_path=os.path.expandvars(
            str(
                settings.get("firebase.credentials_path", "")
                or os.environ.get("GOOGLE_APPLICATION_CREDENTIALS", "")
            )
        ),
    )
    defaults = CloudinaryConfig()
    cfg.cloudinary = CloudinaryConfig(
        cloud_name=str(settings.get("cloudinary.cloud_name", defaults.cloud_name) or defaults.cloud_name),
        image_preset=str(settings.get("cloudinary.image_preset", defaults.image_preset) or defaults.image_preset),
        video_preset=str(settings.get("cloudinary.video_preset", defaults.video_preset) or defaults.video_preset),
        api_base=str(settings.get("cloudinary.api_base", defaults.api_base) or defaults.api_base).rstrip("/"),
        functions_base=str(
            settings.get("cloudinary.functions_base", defaults.functions_base) or defaults.functions_base
        ).rstrip("/"),
    )
    cfg.use_firebase = settings.get("use_firebase", False) is True
    cfg.members = _str_list(settings.get("members"), DEFAULT_MEMBERS)
    cfg.dday = str(settings.get("dday", DEFAULT_DDAY) or DEFAULT_DDAY)
    cfg.theme = str(settings.get("theme", "default") or "default")
    cfg.albums = _str_list(settings.get("albums"), DEFAULT_ALBUMS)

    raw_store = settings.get("storage.local_path")
    if isinstance(raw_store, str) and raw_store:
        cfg.local_store_path = os.path.expanduser(os.path.expandvars(raw_store))
    raw_log_dir = settings.get("logging.dir")
    if isinstance(raw_log_dir, str) and raw_log_dir:
        cfg.log_dir = os.path.expanduser(os.path.expandvars(raw_log_dir))
    cfg.log_level = str(settings.get("logging.level", "INFO") or "INFO").upper()
    return cfg
