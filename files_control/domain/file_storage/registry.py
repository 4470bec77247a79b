"""
File Registry

Domain service owning file records and the access index that decides
which access keys may read each file.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from ..errors import ConflictError, NotFoundError, ValidationError
from ..events import (
    AccessKeyAddedEvent,
    AccessKeyRemovedEvent,
    FileDeletedEvent,
    FileRegisteredEvent,
)
from .entities import StoredFile, utc_now
from .repositories import FileLedgerRepository
from .storage_repository import StorageBackends
from .task_runner import ITaskRunner
from .value_objects import (
    FileMetadata,
    FileSummary,
    Page,
    StorageBackend,
    normalize_access_key,
    normalize_access_keys,
    normalize_virtual_path,
    require_future_expiration,
)

logger = logging.getLogger(__name__)


class FileRegistry:
    """
    Domain service for registering, inspecting and deleting files.

    Every multi-row change (registration, cascade delete) is a single
    atomic ledger commit; storage objects are only touched after the
    commit succeeds.
    """

    def __init__(
        self,
        ledger: FileLedgerRepository,
        backends: StorageBackends,
        task_runner: ITaskRunner,
        event_publisher=None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize FileRegistry.

        Args:
            ledger: Repository for the four ledger tables
            backends: Registry of configured storage backends
            task_runner: Executor for retried storage deletes
            event_publisher: Optional publisher for domain events
            clock: Callable returning the current UTC time
        """
        self.ledger = ledger
        self.backends = backends
        self.task_runner = task_runner
        self.event_publisher = event_publisher
        self.clock = clock

    def register(
        self,
        storage_id: str,
        backend: StorageBackend,
        access_keys: Iterable[str],
        expires_at: Optional[datetime] = None,
        metadata: Optional[FileMetadata] = None,
        virtual_path: Optional[str] = None,
        consume_upload_token: Optional[str] = None,
    ) -> FileSummary:
        """
        Register an already-uploaded storage object.

        Args:
            storage_id: Backend-scoped storage identifier
            backend: Backend holding the bytes
            access_keys: Keys allowed to read the file (at least one)
            expires_at: Optional expiration, strictly in the future
            metadata: Optional metadata; fetched from the local backend if omitted
            virtual_path: Optional unique alias
            consume_upload_token: Pending upload deleted in the same commit

        Returns:
            Summary of the registered file

        Raises:
            ValidationError: No usable access key, blank storage ID or past expiration
            ConflictError: Storage ID or virtual path already registered
            NotFoundError: Local object missing when metadata must be fetched
        """
        backend = StorageBackend.parse(backend)
        keys = normalize_access_keys(access_keys)
        if not keys:
            raise ValidationError("At least one access key is required.")

        storage_id = (storage_id or "").strip()
        if not storage_id:
            raise ValidationError("Storage ID cannot be empty.")

        now = self.clock()
        require_future_expiration(expires_at, now)

        virtual_path = normalize_virtual_path(virtual_path)

        if self.ledger.get_file(storage_id) is not None:
            raise ConflictError(f"File already registered: {storage_id}")
        if virtual_path and self.ledger.get_file_by_virtual_path(virtual_path) is not None:
            raise ConflictError(f"Virtual path already in use: {virtual_path}")

        if metadata is None and backend is StorageBackend.LOCAL:
            metadata = self.backends.get(backend).head_metadata(storage_id)
            if metadata is None:
                raise NotFoundError(f"Storage file not found: {storage_id}")

        file = StoredFile.create(
            storage_id=storage_id,
            backend=backend,
            expires_at=expires_at,
            metadata=metadata,
            virtual_path=virtual_path,
            now=now,
        )
        self.ledger.insert_file(file, keys, consume_upload_token=consume_upload_token)

        logger.info(f"Registered file {storage_id} on {backend.value} with {len(keys)} access key(s)")
        self._publish(FileRegisteredEvent(
            aggregate_id=storage_id,
            occurred_at=now,
            backend=backend.value,
            access_key_count=len(keys),
            virtual_path=virtual_path,
        ))
        return file.to_summary()

    def add_access_key(self, storage_id: str, access_key: str) -> str:
        """
        Grant read eligibility for a file to one more access key.

        Returns:
            The normalized access key

        Raises:
            ValidationError: Key is blank
            NotFoundError: File does not exist
            ConflictError: Key already present on the file
        """
        key = normalize_access_key(access_key)
        if not key:
            raise ValidationError("Access key cannot be empty.")

        self.ledger.add_access_key(storage_id, key)
        self._publish(AccessKeyAddedEvent(
            aggregate_id=storage_id, occurred_at=self.clock(), access_key=key
        ))
        return key

    def remove_access_key(self, storage_id: str, access_key: str) -> None:
        """
        Revoke an access key from a file.

        Raises:
            ValidationError: Key is blank
            NotFoundError: File or key does not exist
            ConflictError: Key is the last one on the file
        """
        key = normalize_access_key(access_key)
        if not key:
            raise ValidationError("Access key cannot be empty.")

        self.ledger.remove_access_key(storage_id, key)
        self._publish(AccessKeyRemovedEvent(
            aggregate_id=storage_id, occurred_at=self.clock(), access_key=key
        ))

    def update_expiration(self, storage_id: str, expires_at: Optional[datetime]) -> Optional[datetime]:
        """
        Set or clear a file's expiration.

        Raises:
            NotFoundError: File does not exist
            ValidationError: Expiration is not strictly in the future
        """
        file = self.ledger.get_file(storage_id)
        if file is None:
            raise NotFoundError(f"File not found: {storage_id}")

        require_future_expiration(expires_at, self.clock())

        self.ledger.update_file(replace(file, expires_at=expires_at))
        return expires_at

    def get_file(self, storage_id: str) -> Optional[FileSummary]:
        file = self.ledger.get_file(storage_id)
        return file.to_summary() if file else None

    def get_file_by_virtual_path(self, virtual_path: str) -> Optional[FileSummary]:
        path = normalize_virtual_path(virtual_path)
        if not path:
            return None
        file = self.ledger.get_file_by_virtual_path(path)
        return file.to_summary() if file else None

    def has_access_key(self, storage_id: str, access_key: str) -> bool:
        key = normalize_access_key(access_key)
        if not key:
            return False
        return self.ledger.has_access_key(storage_id, key)

    def list_access_keys(self, storage_id: str) -> List[str]:
        return self.ledger.list_access_keys(storage_id)

    def list_files(self, cursor: Optional[str] = None, limit: int = 100) -> Page[FileSummary]:
        """List files, most recently created first."""
        page = self.ledger.list_files(cursor=cursor, limit=limit)
        return Page(items=[f.to_summary() for f in page.items], cursor=page.cursor)

    def list_files_by_access_key(self, access_key: str, cursor: Optional[str] = None,
                                 limit: int = 100) -> Page[FileSummary]:
        """List files readable with an access key, in access index order."""
        key = normalize_access_key(access_key)
        if not key:
            return Page()
        page = self.ledger.list_files_by_access_key(key, cursor=cursor, limit=limit)
        return Page(items=[f.to_summary() for f in page.items], cursor=page.cursor)

    def delete_file(self, storage_id: str, reason: str = "deleted") -> bool:
        """
        Cascading delete of a file.

        Access entries, grants and the file row go in one commit; the storage
        object is deleted afterwards. An object delete failure is handed to the
        task runner and never undoes the committed row deletion.

        Returns:
            True if the file existed, False otherwise

        Raises:
            ConfigError: The file lives on an unconfigured backend
        """
        file = self.ledger.get_file(storage_id)
        if file is None:
            return False

        # Resolve before mutating so a missing backend leaves the rows intact
        storage = self.backends.get(file.backend)

        deleted = self.ledger.delete_file_cascade(storage_id)
        if deleted is None:
            return False

        try:
            storage.delete(deleted.storage_id)
        except Exception as e:
            logger.warning(
                f"Deleting storage object {deleted.storage_id} on {deleted.backend.value} "
                f"failed, scheduling retry: {e}"
            )
            self.task_runner.delete_storage_object(deleted.backend, deleted.storage_id)

        logger.info(f"Deleted file {storage_id} ({reason})")
        self._publish(FileDeletedEvent(
            aggregate_id=storage_id,
            occurred_at=self.clock(),
            backend=deleted.backend.value,
            reason=reason,
        ))
        return True

    def _publish(self, event) -> None:
        if self.event_publisher is not None:
            self.event_publisher.publish(event)
