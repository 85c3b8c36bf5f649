"""Photo deletion service.

Removes the media asset from the CDN through the delete proxy, then deletes
the photo record (comments cascade in the gateway), reporting per-photo
results.
"""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger

from core.models import PhotoRecord
from core.services.interfaces import DeleteResult, MediaDeleteError, PersistenceError
from infrastructure.cloudinary_service import CloudinaryClient
from infrastructure.gateway import PersistenceGateway
from infrastructure.utils import derive_public_id_from_url, is_video_url


class PhotoDeleteService:
    """Coordinates CDN and record deletion."""

    def __init__(self, cdn: CloudinaryClient, gateway: PersistenceGateway) -> None:
        self._cdn = cdn
        self._gateway = gateway

    def delete_photo(self, photo: PhotoRecord) -> None:
        """Delete one photo; the record stays when the CDN delete fails."""
        public_id = derive_public_id_from_url(photo.url)
        if public_id:
            self._cdn.delete_asset(public_id, "video" if is_video_url(photo.url) else "image")
        else:
            logger.warning("No CDN public id for {}, deleting record only", photo.url)
        self._gateway.delete_photo(photo)
        logger.info("Photo deleted: {}", photo.key)

    def delete_photos(self, photos: Iterable[PhotoRecord]) -> DeleteResult:
        """Delete each photo and report per-photo results."""
        result = DeleteResult()
        for photo in photos:
            try:
                self.delete_photo(photo)
                result.success_ids.append(photo.key)
            except (MediaDeleteError, PersistenceError) as ex:
                logger.error("Delete failed for {}: {}", photo.key, ex)
                result.failed.append((photo.key, str(ex)))
        logger.info(
            "Delete finished ({} success, {} failed)", len(result.success_ids), len(result.failed)
        )
        return result
