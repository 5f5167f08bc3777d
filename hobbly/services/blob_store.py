"""Blob store for activity images (Supabase Storage)."""

import re
import time
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import unquote

from supabase import AsyncClient

from hobbly.models.activity import ImageUpload
from hobbly.services.supabase_client import SupabaseClient, execute
from hobbly.utils.catalog_config import CatalogConfig
from hobbly.utils.errors import CatalogValidationError
from hobbly.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

IMAGE_FOLDER = "activities"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class BlobStore(ABC):
    """Stores a file and hands back a URL-like reference."""

    @abstractmethod
    async def upload(self, image: ImageUpload) -> str:
        """Store the image and return its public reference."""

    @abstractmethod
    async def delete(self, reference: str) -> None:
        """Remove the object behind a reference returned by upload()."""


def image_path(filename: str, timestamp_ms: Optional[int] = None) -> str:
    """Object path: activities/<epoch millis>-<filename>."""
    timestamp_ms = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    safe_name = _UNSAFE_FILENAME_CHARS.sub("_", filename).strip("_") or "image"
    return f"{IMAGE_FOLDER}/{timestamp_ms}-{safe_name}"


def public_url(path: str, bucket: Optional[str] = None) -> str:
    bucket = bucket or CatalogConfig.STORAGE_BUCKET
    return f"{CatalogConfig.SUPABASE_URL.rstrip('/')}/storage/v1/object/public/{bucket}/{path}"


def path_from_url(reference: str, bucket: Optional[str] = None) -> str:
    """Object path inside the bucket for a public URL (or a bare path)."""
    bucket = bucket or CatalogConfig.STORAGE_BUCKET
    marker = f"/storage/v1/object/public/{bucket}/"
    if marker in reference:
        return unquote(reference.split(marker, 1)[1].split("?", 1)[0])
    return reference.lstrip("/")


class SupabaseBlobStore(BlobStore):
    """Images in the public `activities` bucket."""

    def __init__(self, client: Optional[AsyncClient] = None, bucket: Optional[str] = None):
        self._client = client
        self.bucket = bucket or CatalogConfig.STORAGE_BUCKET

    async def upload(self, image: ImageUpload) -> str:
        if not image.content:
            raise CatalogValidationError("Image file is empty")

        path = image_path(image.filename)
        options = {"content-type": image.content_type or "application/octet-stream"}

        async with SupabaseClient(self._client) as client:
            await execute(
                client.storage.from_(self.bucket).upload(path, image.content, options),
                "storage upload"
            )

        logger.info("Image uploaded", path=path, size=len(image.content))
        return public_url(path, self.bucket)

    async def delete(self, reference: str) -> None:
        path = path_from_url(reference, self.bucket)
        async with SupabaseClient(self._client) as client:
            await execute(client.storage.from_(self.bucket).remove([path]), "storage remove")
        logger.info("Image removed", path=path)
