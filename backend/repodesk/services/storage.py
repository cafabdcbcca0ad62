"""
Object cache for file bytes, backed by a Supabase Storage bucket.

Keys are derived from (repository id, normalized path) so every catalog row
owns exactly one object. Storage SDK failures are translated into
ObjectNotFoundError (key absent) or StorageUnavailableError (anything else).
"""

import logging
import os

from dotenv import load_dotenv
from supabase import Client

from repodesk.exceptions import ObjectNotFoundError, StorageUnavailableError

load_dotenv()

logger = logging.getLogger(__name__)

BUCKET_NAME = os.environ.get("STORAGE_BUCKET", "repo-files")
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def storage_key(repository_id: int, path: str) -> str:
    """Cache key for a normalized path: '{repository_id}/{path}'."""
    return f"{repository_id}/{path}"


def _is_missing_object_error(e: Exception) -> bool:
    """storage3 reports absent keys as a 404/400 'not_found' StorageException."""
    status = str(getattr(e, "status", "") or getattr(e, "code", ""))
    text = str(e).lower()
    return status == "404" or "not_found" in text or "not found" in text


class ObjectCacheStore:
    """put / get / delete of opaque bytes keyed by storage key."""

    def __init__(self, supabase: Client, bucket: str = BUCKET_NAME):
        self.supabase = supabase
        self.bucket = bucket

    def _bucket(self):
        return self.supabase.storage.from_(self.bucket)

    def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        """Write (or overwrite) the object under key."""
        try:
            self._bucket().upload(
                path=key,
                file=data,
                file_options={
                    "content-type": content_type or DEFAULT_CONTENT_TYPE,
                    "upsert": "true",
                },
            )
        except Exception as e:
            logger.error(f"Storage upload failed for {key}: {e}")
            raise StorageUnavailableError(f"put {key}", str(e)) from e

        logger.debug(f"Cached object {key} ({len(data)} bytes)")

    def get(self, key: str) -> bytes:
        """
        Read the object under key.

        Raises:
            ObjectNotFoundError: key absent
            StorageUnavailableError: bucket unreachable or call rejected
        """
        try:
            return self._bucket().download(key)
        except Exception as e:
            if _is_missing_object_error(e):
                raise ObjectNotFoundError(key) from e
            logger.error(f"Storage download failed for {key}: {e}")
            raise StorageUnavailableError(f"get {key}", str(e)) from e

    def delete(self, key: str) -> None:
        """Remove the object; an already-absent key is not an error."""
        try:
            self._bucket().remove([key])
        except Exception as e:
            if _is_missing_object_error(e):
                logger.debug(f"Object {key} already absent")
                return
            logger.error(f"Storage delete failed for {key}: {e}")
            raise StorageUnavailableError(f"delete {key}", str(e)) from e

        logger.debug(f"Removed cached object {key}")
