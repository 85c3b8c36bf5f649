"""Media CDN client: unsigned uploads plus the delete/usage proxy endpoints."""

from __future__ import annotations

from pathlib import Path

from loguru import logger
import requests

from core.services.date_grouping import DateGroupingEngine
from core.services.interfaces import (
    MediaDeleteError,
    MediaUploadError,
    MediaUsageError,
    StorageUsage,
)
from infrastructure.settings import CloudinaryConfig

DEFAULT_TIMEOUT = 120


class CloudinaryClient:
    """Upload media and reach the serverless delete/usage endpoints.

    Delete credentials never live here: deletion goes through the
    same-origin ``/delete-cloudinary`` function.
    """

    def __init__(
        self,
        config: CloudinaryConfig,
        engine: DateGroupingEngine | None = None,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._config = config
        self._engine = engine or DateGroupingEngine()
        self._session = session or requests.Session()
        self._timeout = timeout

    def upload_url(self, resource_type: str) -> str:
        return f"{self._config.api_base}/{self._config.cloud_name}/{resource_type}/upload"

    def upload(self, path: str | Path, date_key: str, is_video: bool) -> str:
        """Upload `path` into the date folder and return its ``secure_url``."""
        resource_type = "video" if is_video else "image"
        preset = self._config.video_preset if is_video else self._config.image_preset
        folder = self._engine.folder_for(date_key)
        if folder is None:
            raise MediaUploadError(f"Invalid date group: {date_key!r}")

        file_path = Path(path)
        logger.info(
            "Uploading {} as {} (preset={}, folder={})", file_path.name, resource_type, preset, folder
        )
        try:
            with file_path.open("rb") as fh:
                res = self._session.post(
                    self.upload_url(resource_type),
                    files={"file": (file_path.name, fh)},
                    data={"upload_preset": preset, "folder": folder},
                    timeout=self._timeout,
                )
        except (OSError, requests.RequestException) as ex:
            logger.error("Upload failed for {}: {}", file_path.name, ex)
            raise MediaUploadError(str(ex)) from ex

        try:
            payload = res.json()
        except ValueError:
            payload = {}
        secure_url = payload.get("secure_url") if isinstance(payload, dict) else None
        if not res.ok or not secure_url:
            message = (payload.get("error") or {}).get("message") if isinstance(payload, dict) else None
            logger.error("Upload rejected for {}: {}", file_path.name, message or res.status_code)
            raise MediaUploadError(message or f"Upload failed ({res.status_code})")

        logger.info("Upload ok: {}", secure_url)
        return secure_url

    def delete_asset(self, public_id: str, resource_type: str = "image") -> None:
        """Ask the delete proxy to destroy `public_id`."""
        try:
            res = self._session.post(
                f"{self._config.functions_base}/delete-cloudinary",
                json={"publicId": public_id, "resourceType": resource_type},
                timeout=self._timeout,
            )
            res.raise_for_status()
        except requests.RequestException as ex:
            logger.error("CDN delete failed for {}: {}", public_id, ex)
            raise MediaDeleteError(str(ex)) from ex
        logger.info("CDN asset deleted: {}", public_id)

    def get_usage(self) -> StorageUsage:
        """Storage usage/limit in bytes from the usage endpoint."""
        try:
            res = self._session.get(
                f"{self._config.functions_base}/cloudinary-usage", timeout=self._timeout
            )
            res.raise_for_status()
            payload = res.json() or {}
            return StorageUsage(
                usage=int(payload.get("usage") or 0), limit=int(payload.get("limit") or 0)
            )
        except (requests.RequestException, ValueError, TypeError, AttributeError) as ex:
            logger.error("Storage usage lookup failed: {}", ex)
            raise MediaUsageError(str(ex)) from ex
