"""Object storage for receipt images.

Objects live in a single S3-compatible bucket under
``<folder>/<uuid>_<filename>``. Each stored object is addressed by a public
URL of the form ``<base url>/<key>``; the record keeps that URL and the
service derives the key back from it when the object is fetched or deleted.
"""

import logging
import uuid
from io import BytesIO

from minio import Minio
from minio.error import MinioException
from urllib3.exceptions import HTTPError

from fueltrack.config import Settings
from fueltrack.services.errors import InvalidReferenceError, StorageError

logger = logging.getLogger(__name__)

RECEIPTS_FOLDER = "receipts"

_CLIENT_ERRORS = (MinioException, HTTPError)


class ObjectStorage:
    """Upload, fetch and delete receipt images in the configured bucket."""

    def __init__(self, settings: Settings, client: Minio | None = None) -> None:
        self.bucket = settings.storage_bucket
        self.base_url = settings.storage_base_url
        self._client = client or Minio(
            settings.storage_endpoint,
            access_key=settings.storage_access_key,
            secret_key=settings.storage_secret_key,
            region=settings.storage_region,
            secure=settings.storage_secure,
        )

    @staticmethod
    def _normalise_filename(filename: str) -> str:
        """Remove characters that would break the object key or its URL."""
        keepchars = {"-", "_", "."}
        return "".join(c for c in filename if c.isalnum() or c in keepchars) or "receipt"

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def key_from_url(self, url: str) -> str:
        """Reverse ``url_for``; reject URLs outside this bucket."""
        prefix = f"{self.base_url}/"
        if not url or not url.startswith(prefix) or len(url) == len(prefix):
            raise InvalidReferenceError(f"URL does not reference bucket {self.bucket}: {url}")
        return url[len(prefix) :]

    def put(
        self,
        data: bytes,
        filename: str | None,
        content_type: str | None,
        folder: str = RECEIPTS_FOLDER,
    ) -> str:
        """Store ``data`` under a fresh key and return its public URL."""
        key = f"{folder}/{uuid.uuid4().hex}_{self._normalise_filename(filename or 'receipt')}"
        try:
            self._client.put_object(
                self.bucket,
                key,
                BytesIO(data),
                len(data),
                content_type=content_type or "application/octet-stream",
            )
        except _CLIENT_ERRORS as e:
            logger.error(f"Upload of {key} to bucket {self.bucket} failed: {e}")
            raise StorageError(f"Failed to upload {key}") from e

        url = self.url_for(key)
        logger.info(f"Stored object {key} ({len(data)} bytes)")
        return url

    def get(self, key: str) -> bytes:
        """Read a whole object into memory (receipt images are small)."""
        try:
            response = self._client.get_object(self.bucket, key)
            try:
                return response.read()
            finally:
                response.close()
                response.release_conn()
        except _CLIENT_ERRORS as e:
            logger.error(f"Download of {key} from bucket {self.bucket} failed: {e}")
            raise StorageError(f"Failed to download {key}") from e

    def delete(self, url: str, folder: str = RECEIPTS_FOLDER) -> None:
        """Delete the object behind ``url``.

        The key is rebuilt as ``folder/`` plus the last path segment of the
        URL, which only holds because keys sit exactly one level below the
        folder. URLs outside this bucket raise ``InvalidReferenceError``.
        """
        key = f"{folder}/{self.key_from_url(url).rsplit('/', 1)[-1]}"
        try:
            self._client.remove_object(self.bucket, key)
        except _CLIENT_ERRORS as e:
            logger.error(f"Delete of {key} from bucket {self.bucket} failed: {e}")
            raise StorageError(f"Failed to delete {key}") from e
        logger.info(f"Deleted object {key}")
