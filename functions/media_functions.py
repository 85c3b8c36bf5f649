"""Serverless handlers for CDN storage usage and asset deletion.

Handlers take a function-style ``event`` dict and return
``{"statusCode": int, "body": str}``. Credentials come from
``CLOUDINARY_CLOUD_NAME``, ``CLOUDINARY_API_KEY`` and
``CLOUDINARY_API_SECRET``; without them both handlers answer with neutral
success payloads.
"""

from __future__ import annotations

import json
import os
from typing import Any

import cloudinary
import cloudinary.api
import cloudinary.exceptions
import cloudinary.uploader
from loguru import logger


def _credentials() -> dict[str, str] | None:
    cloud_name = os.environ.get("CLOUDINARY_CLOUD_NAME")
    api_key = os.environ.get("CLOUDINARY_API_KEY")
    api_secret = os.environ.get("CLOUDINARY_API_SECRET")
    if not (cloud_name and api_key and api_secret):
        return None
    return {"cloud_name": cloud_name, "api_key": api_key, "api_secret": api_secret}


def _configure() -> bool:
    creds = _credentials()
    if creds is None:
        return False
    cloudinary.config(**creds)
    return True


def _response(status: int, body: Any) -> dict[str, Any]:
    return {"statusCode": status, "body": body if isinstance(body, str) else json.dumps(body)}


def usage_handler(event: dict[str, Any] | None = None) -> dict[str, Any]:  # pylint: disable=unused-argument
    """``GET /cloudinary-usage`` -> ``{usage, limit}`` storage bytes."""
    if not _configure():
        return _response(200, {"usage": 0, "limit": 0})
    try:
        result = cloudinary.api.usage()
    except (cloudinary.exceptions.Error, OSError) as ex:
        logger.error("Cloudinary usage failed: {}", ex)
        return _response(500, {"error": str(ex)})
    storage = result.get("storage") or {}
    return _response(200, {"usage": storage.get("usage"), "limit": storage.get("limit")})


def delete_handler(event: dict[str, Any]) -> dict[str, Any]:
    """``POST /delete-cloudinary`` with ``{publicId, resourceType}``."""
    if event.get("httpMethod") != "POST":
        return _response(405, "Method Not Allowed")
    if not _configure():
        return _response(200, {"ok": True})
    try:
        payload = json.loads(event.get("body") or "{}")
    except ValueError:
        return _response(400, "invalid JSON body")
    public_id = payload.get("publicId") if isinstance(payload, dict) else None
    if not public_id:
        return _response(400, "publicId required")
    resource_type = payload.get("resourceType") or "image"
    try:
        result = cloudinary.uploader.destroy(public_id, invalidate=True, resource_type=resource_type)
    except (cloudinary.exceptions.Error, OSError) as ex:
        logger.error("Cloudinary destroy failed for {}: {}", public_id, ex)
        return _response(500, {"error": str(ex)})
    logger.info("Cloudinary destroy {}: {}", public_id, result.get("result"))
    return _response(200, result)
