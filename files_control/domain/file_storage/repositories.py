"""
File Storage Repositories

Repository interfaces for the four ledger tables. Each table has its own
interface; FileLedgerRepository combines them so multi-table commits
(register, cascade delete, transfer repoint) can be atomic in a single store.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional

from .entities import DownloadGrant, PendingUpload, StoredFile
from .value_objects import Page


class FileRepository(ABC):
    """Persistence for file records."""

    @abstractmethod
    def get_file(self, storage_id: str) -> Optional[StoredFile]:
        """
        Retrieve a file by storage ID.

        Args:
            storage_id: Backend-scoped storage identifier

        Returns:
            StoredFile if found, None otherwise
        """
        pass  # pragma: no cover

    @abstractmethod
    def get_file_by_virtual_path(self, virtual_path: str) -> Optional[StoredFile]:
        """Retrieve a file by its virtual path alias."""
        pass  # pragma: no cover

    @abstractmethod
    def insert_file(self, file: StoredFile, access_keys: Iterable[str],
                    consume_upload_token: Optional[str] = None) -> None:
        """
        Atomically insert a file row and one access entry per key.

        When consume_upload_token is given, the pending upload with that
        token is deleted in the same commit.

        Raises:
            ConflictError: If the storage ID or virtual path is already taken
        """
        pass  # pragma: no cover

    @abstractmethod
    def update_file(self, file: StoredFile) -> None:
        """
        Persist changes to expiration or virtual path of an existing file.

        Raises:
            NotFoundError: If the file no longer exists
            ConflictError: If the new virtual path belongs to another file
        """
        pass  # pragma: no cover

    @abstractmethod
    def delete_file_cascade(self, storage_id: str) -> Optional[StoredFile]:
        """
        Atomically delete a file row, its access entries and its grants.

        Returns:
            The deleted file, or None if it did not exist
        """
        pass  # pragma: no cover

    @abstractmethod
    def repoint_file(self, old_storage_id: str, file: StoredFile,
                     expected_backend) -> StoredFile:
        """
        Commit step of a transfer.

        Re-points the file row, every access entry and every grant from
        old_storage_id to file.storage_id in one atomic update.

        Args:
            old_storage_id: Storage ID the records currently reference
            file: File record carrying the new storage ID, backend and path
            expected_backend: Backend the file must still be on

        Raises:
            NotFoundError: If the file disappeared
            ConflictError: If the backend changed concurrently, or the new
                storage ID or virtual path belongs to another file
        """
        pass  # pragma: no cover

    @abstractmethod
    def list_files(self, cursor: Optional[str] = None, limit: int = 100) -> Page[StoredFile]:
        """List files, most recently created first."""
        pass  # pragma: no cover

    @abstractmethod
    def find_expired_files(self, now: datetime, limit: int) -> List[StoredFile]:
        """Return up to limit files whose expires_at is <= now."""
        pass  # pragma: no cover


class FileAccessRepository(ABC):
    """Persistence for the access index."""

    @abstractmethod
    def add_access_key(self, storage_id: str, access_key: str) -> None:
        """
        Grant an access key read eligibility for a file.

        Raises:
            NotFoundError: If the file does not exist
            ConflictError: If the key is already present
        """
        pass  # pragma: no cover

    @abstractmethod
    def remove_access_key(self, storage_id: str, access_key: str) -> None:
        """
        Revoke an access key. Never removes the last key of a file.

        Raises:
            NotFoundError: If the file or the key does not exist
            ConflictError: If the key is the last one on the file
        """
        pass  # pragma: no cover

    @abstractmethod
    def has_access_key(self, storage_id: str, access_key: str) -> bool:
        pass  # pragma: no cover

    @abstractmethod
    def list_access_keys(self, storage_id: str) -> List[str]:
        pass  # pragma: no cover

    @abstractmethod
    def list_files_by_access_key(self, access_key: str, cursor: Optional[str] = None,
                                 limit: int = 100) -> Page[StoredFile]:
        """List files readable with a key, in access index insertion order."""
        pass  # pragma: no cover


class DownloadGrantRepository(ABC):
    """Persistence for download grants."""

    @abstractmethod
    def insert_grant(self, grant: DownloadGrant) -> None:
        pass  # pragma: no cover

    @abstractmethod
    def get_grant(self, grant_id: str) -> Optional[DownloadGrant]:
        pass  # pragma: no cover

    @abstractmethod
    def delete_grant(self, grant_id: str) -> bool:
        """Delete a grant. Returns True if it existed."""
        pass  # pragma: no cover

    @abstractmethod
    def record_grant_use(self, grant_id: str, expected_use_count: int,
                         delete: bool = False) -> bool:
        """
        Compare-and-swap the use count of a grant.

        Increments use_count only if it still equals expected_use_count.
        When delete is True the grant is removed instead of patched.

        Returns:
            True if the swap happened, False if the grant changed or vanished
        """
        pass  # pragma: no cover

    @abstractmethod
    def list_grants(self, cursor: Optional[str] = None, limit: int = 100) -> Page[DownloadGrant]:
        """List grants, most recently created first."""
        pass  # pragma: no cover

    @abstractmethod
    def find_expired_grants(self, now: datetime, limit: int) -> List[DownloadGrant]:
        pass  # pragma: no cover


class PendingUploadRepository(ABC):
    """Persistence for pending upload tickets."""

    @abstractmethod
    def insert_pending_upload(self, pending: PendingUpload) -> None:
        pass  # pragma: no cover

    @abstractmethod
    def get_pending_upload(self, upload_token: str) -> Optional[PendingUpload]:
        pass  # pragma: no cover

    @abstractmethod
    def delete_pending_upload(self, upload_token: str) -> bool:
        pass  # pragma: no cover

    @abstractmethod
    def find_expired_pending_uploads(self, now: datetime, limit: int) -> List[PendingUpload]:
        pass  # pragma: no cover


class FileLedgerRepository(FileRepository, FileAccessRepository,
                           DownloadGrantRepository, PendingUploadRepository):
    """
    The complete ledger: files, fileAccess, downloadGrants, pendingUploads.

    Implementations must make every multi-table method atomic.
    """
