"""
Object Storage Interfaces

Abstract interfaces for the physical storage backends and for fetching
object bytes through a signed URL. These keep the domain layer
infrastructure-agnostic: the local filesystem store and the S3-compatible
store both implement IObjectStorage, and the domain only ever talks to the
StorageBackends registry.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from ..errors import ConfigError
from .value_objects import FileMetadata, StorageBackend


class IObjectStorage(ABC):
    """
    Interface for one storage backend.

    Contract Guarantees:
    - delete() is idempotent: deleting a missing object succeeds
    - head_metadata() returns None for missing objects (no exceptions)
    - Signed URLs are short-lived and carry their own authorization
    """

    backend: StorageBackend

    @abstractmethod
    def generate_upload_url(self, storage_id: Optional[str] = None) -> str:
        """
        Generate a signed URL a client can upload bytes to.

        Args:
            storage_id: Key the object must be written under. Required for
                backends that need a key at signing time, ignored by
                backends that assign the identifier after the upload.

        Returns:
            Signed upload URL
        """
        pass  # pragma: no cover

    @abstractmethod
    def signed_read_url(self, storage_id: str) -> Optional[str]:
        """
        Generate a short-lived signed URL for reading an object.

        Returns:
            Signed read URL, or None if the backend cannot serve the object
        """
        pass  # pragma: no cover

    @abstractmethod
    def put(self, storage_id: Optional[str], content: bytes,
            content_type: Optional[str] = None) -> str:
        """
        Write object bytes.

        Args:
            storage_id: Pre-allocated key, or None to let the backend assign one
            content: Full object content
            content_type: MIME type to store alongside the object

        Returns:
            The storage ID the object was written under
        """
        pass  # pragma: no cover

    @abstractmethod
    def delete(self, storage_id: str) -> None:
        """Delete an object. Succeeds if the object does not exist."""
        pass  # pragma: no cover

    @abstractmethod
    def head_metadata(self, storage_id: str) -> Optional[FileMetadata]:
        """Return size, sha256 and content type of an object, or None if missing."""
        pass  # pragma: no cover


class StorageBackends:
    """
    Registry resolving a backend name to its IObjectStorage implementation.

    The local backend is always present; the S3 backend is only registered
    when its bucket and credentials are configured.
    """

    def __init__(self, local: IObjectStorage, s3: Optional[IObjectStorage] = None):
        self._backends: Dict[StorageBackend, IObjectStorage] = {StorageBackend.LOCAL: local}
        if s3 is not None:
            self._backends[StorageBackend.S3] = s3

    def get(self, backend: StorageBackend) -> IObjectStorage:
        """
        Resolve a backend.

        Raises:
            ConfigError: If the S3 backend is requested but not configured
        """
        backend = StorageBackend.parse(backend)
        storage = self._backends.get(backend)
        if storage is None:
            raise ConfigError(
                f"Storage backend '{backend.value}' is not configured; "
                "set S3_BUCKET_NAME, S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY"
            )
        return storage

    def is_configured(self, backend: StorageBackend) -> bool:
        return StorageBackend.parse(backend) in self._backends

    def require(self, *backends: StorageBackend) -> None:
        """Raise ConfigError unless every named backend is configured."""
        for backend in backends:
            self.get(backend)


@dataclass(frozen=True)
class FetchedObject:
    """Bytes read back through a signed URL."""

    content: bytes
    content_type: Optional[str] = None


class IObjectFetcher(ABC):
    """Interface for downloading an object fully into memory."""

    @abstractmethod
    def fetch(self, url: str) -> FetchedObject:
        """
        Fetch the object behind a URL.

        Raises:
            NotFoundError: If the URL is unreachable or answers with a non-2xx status
        """
        pass  # pragma: no cover
