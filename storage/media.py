"""Object storage for answer media.

Media arrives inline as a base64 ``data:`` URI. Large payloads are moved to
object storage (S3 via boto3, or a local directory when S3 is not configured)
and replaced by a reference URL.
"""
from __future__ import annotations

import base64
import binascii
import logging
import os
from typing import Optional, Protocol, Tuple

from config.settings import settings

logger = logging.getLogger(__name__)


class MediaError(ValueError):
    """Raised when an inline media payload cannot be decoded."""


class ObjectStorage(Protocol):
    def put(self, path: str, data: bytes, content_type: str) -> str:
        """Store ``data`` at ``path`` and return a durable reference URL."""


class LocalObjectStorage:
    """Writes objects under a local directory."""

    def __init__(self, root: str, base_url: str = "") -> None:
        self.root = root
        self.base_url = base_url.rstrip("/")

    def put(self, path: str, data: bytes, content_type: str) -> str:
        target = os.path.join(self.root, *path.split("/"))
        os.makedirs(os.path.dirname(target), exist_ok=True)
        with open(target, "wb") as handle:
            handle.write(data)
        logger.info("Stored media locally: %s (%d bytes, %s)", target, len(data), content_type)
        if self.base_url:
            return f"{self.base_url}/{path}"
        return "file://" + os.path.abspath(target)


class S3ObjectStorage:
    """Stores objects in an S3 bucket."""

    def __init__(self, bucket: str, client=None) -> None:
        self.bucket = bucket
        self._client = client

    def _get_client(self):
        if self._client is None:
            import boto3

            self._client = boto3.client(
                "s3",
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                region_name=settings.AWS_REGION,
            )
        return self._client

    def put(self, path: str, data: bytes, content_type: str) -> str:
        self._get_client().put_object(Bucket=self.bucket, Key=path, Body=data, ContentType=content_type)
        url = f"https://{self.bucket}.s3.amazonaws.com/{path}"
        logger.info("Uploaded media to S3: %s (%d bytes)", url, len(data))
        return url


def get_object_storage() -> ObjectStorage:
    """Storage selected by ``MEDIA_BACKEND``; S3 without credentials falls back to local."""

    if settings.MEDIA_BACKEND == "s3":
        if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY and settings.AWS_S3_BUCKET:
            return S3ObjectStorage(settings.AWS_S3_BUCKET)
        logger.warning("S3 not configured; media stays on the local filesystem under %s", settings.MEDIA_LOCAL_DIR)
    return LocalObjectStorage(settings.MEDIA_LOCAL_DIR, settings.MEDIA_BASE_URL)


def is_data_uri(value: Optional[str]) -> bool:
    return bool(value) and value.startswith("data:")


def estimated_size(data_uri: str) -> float:
    # base64 carries 3 bytes per 4 characters
    return len(data_uri) * 3 / 4


def is_data_uri_too_large(data_uri: str, limit: Optional[int] = None) -> bool:
    threshold = settings.MEDIA_INLINE_LIMIT_BYTES if limit is None else limit
    return estimated_size(data_uri) > threshold


def decode_data_uri(data_uri: str) -> Tuple[str, bytes]:
    """Return ``(mime, payload)`` for a base64 data URI."""

    if not is_data_uri(data_uri) or "," not in data_uri:
        raise MediaError("not a data URI")
    header, encoded = data_uri[5:].split(",", 1)
    parts = header.split(";")
    mime = parts[0] or "application/octet-stream"
    if "base64" not in parts[1:]:
        raise MediaError("only base64 data URIs are supported")
    try:
        return mime, base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MediaError(f"invalid base64 payload: {exc}") from exc


def media_type_for(mime: str) -> str:
    return "audio" if mime.startswith("audio/") else "video"


def media_path(session_id: str, question_index: int, media_type: str) -> str:
    return f"submissions/{session_id}/Q{question_index + 1}_{media_type}.webm"


__all__ = [
    "LocalObjectStorage",
    "MediaError",
    "ObjectStorage",
    "S3ObjectStorage",
    "decode_data_uri",
    "estimated_size",
    "get_object_storage",
    "is_data_uri",
    "is_data_uri_too_large",
    "media_path",
    "media_type_for",
]
