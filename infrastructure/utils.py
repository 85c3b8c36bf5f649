"""Utilities for date extraction (EXIF and filesystem) and media URLs.

This module centralizes capture-date lookup and media classification so the
rest of the app can depend on a single behavior. It uses best-effort parsing
and will not raise on errors; callers should expect `None` when data is not
available.
"""

from __future__ import annotations

from datetime import datetime
import os
from pathlib import Path
import re
from typing import Any

from loguru import logger
from PIL import Image

# Optional HEIC/HEIF decoding for Pillow
try:  # pragma: no cover - optional dependency
    from pillow_heif import register_heif_opener  # type: ignore

    register_heif_opener()
except ImportError:  # pragma: no cover - optional dependency
    pass

IMAGE_EXTENSIONS = {
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic", ".heif", ".avif", ".bmp", ".tif", ".tiff",
}
VIDEO_EXTENSIONS = {".mp4", ".mov", ".m4v", ".avi", ".mkv", ".webm"}
_VIDEO_URL_RX = re.compile(r"\.(mp4|mov|webm|m4v)(\?|$)", re.IGNORECASE)
_VERSION_RX = re.compile(r"/v\d+/")

EXIF_DATETIME_ORIGINAL = 36867
EXIF_DATETIME = 306
EXIF_IFD_POINTER = 0x8769


def get_base_name(name: str) -> str:
    """File name without its last extension, lower-cased."""
    return re.sub(r"\.[^.]+$", "", name or "").lower()


def classify_upload(name: str, mime: str | None = None) -> str:
    """Return ``"video"`` or ``"image"`` for an upload.

    Video only when the MIME type says so, or the extension does and the MIME
    type does not claim an image. Anything ambiguous is an image.
    """
    ext = Path(name or "").suffix.lower()
    mime = (mime or "").lower()
    if mime.startswith("video/"):
        return "video"
    if ext in VIDEO_EXTENSIONS and not mime.startswith("image/"):
        return "video"
    return "image"


def is_video_url(url: str | None) -> bool:
    return isinstance(url, str) and ("/video/upload/" in url or bool(_VIDEO_URL_RX.search(url)))


def derive_public_id_from_url(url: str | None) -> str | None:
    """Extract the CDN public id (folder path, no version, no extension)."""
    if not url or "/upload/" not in url:
        return None
    tail = url.split("/upload/", 1)[1].split("?", 1)[0]
    tail = re.sub(r"\.[a-z0-9]+$", "", tail, flags=re.IGNORECASE)
    match = _VERSION_RX.search(tail)
    if match:
        tail = tail[match.end():]
    elif re.match(r"^v\d+/", tail):
        tail = tail.split("/", 1)[1]
    return tail or None


def optimize_url(url: str, width: int, height: int) -> str:
    """Insert a fill/auto-format delivery transform into a CDN image URL."""
    if url and "cloudinary.com" in url:
        return url.replace("/upload/", f"/upload/w_{width},h_{height},c_fill,f_auto,q_auto/", 1)
    return url


def video_thumbnail_url(url: str, width: int, height: int) -> str:
    """JPEG poster frame URL for a CDN video."""
    if not is_video_url(url) or "/video/upload/" not in url:
        return url
    out = url.replace(
        "/video/upload/", f"/video/upload/so_1,w_{width},h_{height},c_fill,f_jpg,q_auto/", 1
    )
    return re.sub(r"\.(mp4|mov|webm|m4v)(\?.*)?$", r".jpg\2", out, flags=re.IGNORECASE)


def preview_url(url: str, width: int, height: int) -> str:
    return video_thumbnail_url(url, width, height) if is_video_url(url) else optimize_url(url, width, height)


def format_duration(seconds: float | None) -> str:
    """Format a duration as ``m:ss`` (``0:00`` when unknown)."""
    if seconds is None or seconds < 0:
        return "0:00"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"


def get_file_modified_datetime(path: str) -> datetime | None:
    """Best-effort file modification time as a naive local datetime."""
    try:
        return datetime.fromtimestamp(os.path.getmtime(path))
    except (OSError, ValueError) as ex:
        logger.debug("getmtime failed for {}: {}", path, ex)
        return None


def _parse_exif_datetime(value: Any) -> datetime | None:
    val_str = str(value).strip().strip("\x00")
    # Common EXIF format: "YYYY:MM:DD HH:MM:SS"
    if len(val_str) >= 19 and val_str[4] == ":" and val_str[7] == ":":
        return datetime.strptime(val_str[:19], "%Y:%m:%d %H:%M:%S")
    return datetime.fromisoformat(val_str.replace("/", "-"))


def get_exif_datetime_original(path: str) -> datetime | None:
    """Extract EXIF DateTimeOriginal (falling back to DateTime) via Pillow."""
    try:
        with Image.open(path) as im:
            data = im.getexif()
            if not data:
                return None
            val = data.get_ifd(EXIF_IFD_POINTER).get(EXIF_DATETIME_ORIGINAL) or data.get(
                EXIF_DATETIME_ORIGINAL
            ) or data.get(EXIF_DATETIME)
            if not val:
                return None
            return _parse_exif_datetime(val)
    except (OSError, ValueError, TypeError) as ex:
        logger.debug("EXIF read failed for {}: {}", path, ex)
        return None
