"""
Object storage provider protocol.

Deliverables live in a private bucket and are only ever handed out through
short-lived signed URLs. Swapping GCS for another store means implementing
this protocol; the work engine only sees keys.
"""
from typing import Protocol, BinaryIO, Optional


class StorageProvider(Protocol):
    """
    Protocol for deliverable storage.

    Implementations must handle:
    - Uploading a file under a caller-chosen key
    - Signing time-limited GET (download) and PUT (direct upload) URLs
    - Existence checks and best-effort deletes
    """

    def put(self, key: str, data: BinaryIO, content_type: Optional[str] = None, size: Optional[int] = None) -> None:
        """
        Store `data` under `key`, overwriting any existing object.

        Raises:
            StorageError: If the upload fails
        """
        ...

    def sign_get(self, key: str, ttl_seconds: int, download_name: Optional[str] = None) -> str:
        """
        Return a URL granting read access to `key` for `ttl_seconds`.

        Raises:
            StorageError: If signing fails
        """
        ...

    def sign_put(self, key: str, ttl_seconds: int, content_type: Optional[str] = None) -> str:
        """
        Return a URL the client can PUT the object to directly.

        Raises:
            StorageError: If signing fails
        """
        ...

    def exists(self, key: str) -> bool:
        ...

    def delete(self, key: str) -> None:
        """Delete `key`; missing objects are not an error."""
        ...


class StorageError(Exception):
    """Base exception for storage provider errors."""
    pass
