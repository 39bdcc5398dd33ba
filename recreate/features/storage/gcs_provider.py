"""
Google Cloud Storage implementation of StorageProvider.

Uses V4 signed URLs; the bucket itself stays private.
"""
import logging
from datetime import timedelta
from typing import BinaryIO, Optional

from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage

from recreate.features.storage.provider import StorageError

logger = logging.getLogger("recreate")


class GCSStorageProvider:
    """GCS implementation of StorageProvider protocol."""

    def __init__(
        self,
        bucket_name: Optional[str],
        project: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[storage.Client] = None,
    ):
        """
        Initialize GCS provider.

        Args:
            bucket_name: Bucket holding deliverables (GCS_BUCKET)
            project: GCP project (GCS_PROJECT); defaults to the ambient credentials' project
            timeout: Per-request timeout in seconds
            client: Pre-built client (tests inject a mock here)
        """
        if not bucket_name:
            raise StorageError("GCS_BUCKET not configured")
        self.bucket_name = bucket_name
        self.timeout = timeout
        self.client = client or storage.Client(project=project)
        self.bucket = self.client.bucket(bucket_name)

    def put(self, key: str, data: BinaryIO, content_type: Optional[str] = None, size: Optional[int] = None) -> None:
        blob = self.bucket.blob(key)
        try:
            blob.upload_from_file(
                data,
                size=size,
                content_type=content_type or "application/octet-stream",
                rewind=True,
                timeout=self.timeout,
            )
        except gcs_exceptions.GoogleAPIError as e:
            raise StorageError(f"GCS upload failed: {e}")
        logger.info("storage.put", extra={"path": key})

    def sign_get(self, key: str, ttl_seconds: int, download_name: Optional[str] = None) -> str:
        blob = self.bucket.blob(key)
        disposition = f'attachment; filename="{download_name}"' if download_name else None
        try:
            return blob.generate_signed_url(
                version="v4",
                expiration=timedelta(seconds=ttl_seconds),
                method="GET",
                response_disposition=disposition,
            )
        except (gcs_exceptions.GoogleAPIError, ValueError, AttributeError) as e:
            # AttributeError: credentials without a signing key
            raise StorageError(f"GCS URL signing failed: {e}")

    def sign_put(self, key: str, ttl_seconds: int, content_type: Optional[str] = None) -> str:
        blob = self.bucket.blob(key)
        try:
            return blob.generate_signed_url(
                version="v4",
                expiration=timedelta(seconds=ttl_seconds),
                method="PUT",
                content_type=content_type or "application/octet-stream",
            )
        except (gcs_exceptions.GoogleAPIError, ValueError, AttributeError) as e:
            raise StorageError(f"GCS URL signing failed: {e}")

    def exists(self, key: str) -> bool:
        try:
            return bool(self.bucket.blob(key).exists(timeout=self.timeout))
        except gcs_exceptions.GoogleAPIError as e:
            raise StorageError(f"GCS lookup failed: {e}")

    def delete(self, key: str) -> None:
        try:
            self.bucket.blob(key).delete(timeout=self.timeout)
        except gcs_exceptions.NotFound:
            return
        except gcs_exceptions.GoogleAPIError as e:
            raise StorageError(f"GCS delete failed: {e}")
