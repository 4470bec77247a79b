"""
Transfer Orchestrator

Moves a file's bytes between storage backends while keeping its access
entries and download grants.

A transfer runs in three steps. prepare() validates and plans without side
effects, execute() copies the bytes to the target backend, and commit()
re-points every ledger row in one atomic update. The source object is
reclaimed through the task runner only after the commit.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..errors import ConflictError, NotFoundError, ValidationError
from ..events import FileTransferredEvent
from .entities import StoredFile, utc_now
from .repositories import FileLedgerRepository
from .storage_repository import IObjectFetcher, StorageBackends
from .task_runner import ITaskRunner
from .value_objects import (
    FileSummary,
    StorageBackend,
    basename_from_path,
    normalize_virtual_path,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferPlan:
    """
    Validated transfer, ready to execute.

    Attributes:
        file: File record as read during planning
        target_backend: Backend the bytes move to
        virtual_path: Resolved virtual path, None to keep the current one
        planned_storage_id: Key pre-allocated on the target (S3 only)
        rename_only: True when only the virtual path changes
    """
    file: StoredFile
    target_backend: StorageBackend
    virtual_path: Optional[str] = None
    planned_storage_id: Optional[str] = None
    rename_only: bool = False

    @property
    def source_backend(self) -> StorageBackend:
        return self.file.backend

    @property
    def next_virtual_path(self) -> Optional[str]:
        return self.virtual_path if self.virtual_path is not None else self.file.virtual_path


class TransferOrchestrator:
    """
    Domain service for cross-backend transfers and virtual path renames.

    Failures before commit() leave the ledger untouched. Concurrent transfers
    of the same file race on the commit; the loser gets ConflictError.
    """

    def __init__(
        self,
        ledger: FileLedgerRepository,
        backends: StorageBackends,
        fetcher: IObjectFetcher,
        task_runner: ITaskRunner,
        event_publisher=None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize TransferOrchestrator.

        Args:
            ledger: Repository for the four ledger tables
            backends: Registry of configured storage backends
            fetcher: Downloads source bytes through a signed URL
            task_runner: Executor for retried storage deletes
            event_publisher: Optional publisher for domain events
            clock: Callable returning the current UTC time
        """
        self.ledger = ledger
        self.backends = backends
        self.fetcher = fetcher
        self.task_runner = task_runner
        self.event_publisher = event_publisher
        self.clock = clock

    def transfer(self, storage_id: str, target_backend: StorageBackend,
                 virtual_path: Optional[str] = None) -> FileSummary:
        """
        Move a file to another backend, optionally renaming it.

        Args:
            storage_id: File to move
            target_backend: Destination backend
            virtual_path: New virtual path; a trailing '/' keeps the current file name

        Returns:
            Summary of the file at its new location

        Raises:
            NotFoundError: File or source object missing
            ValidationError: Blank path, or no file name to infer
            ConflictError: Path or key taken, no-op transfer, or lost commit race
            ConfigError: S3 involved but not configured
        """
        plan = self.prepare(storage_id, target_backend, virtual_path)
        if plan.rename_only:
            return self._rename(plan)

        new_storage_id = self.execute(plan)
        return self.commit(plan, new_storage_id)

    def prepare(self, storage_id: str, target_backend: StorageBackend,
                virtual_path: Optional[str] = None) -> TransferPlan:
        """Validate a transfer and pre-allocate its destination. Side-effect free."""
        target_backend = StorageBackend.parse(target_backend)

        file = self.ledger.get_file(storage_id)
        if file is None:
            raise NotFoundError(f"File not found: {storage_id}")

        resolved = None
        if virtual_path is not None:
            resolved = normalize_virtual_path(virtual_path)
            if not resolved:
                raise ValidationError("Virtual path cannot be empty.")

        if resolved and resolved.endswith("/"):
            name = basename_from_path(file.virtual_path) or basename_from_path(file.storage_id)
            if not name:
                raise ValidationError(
                    "Virtual path ends with '/' but a file name could not be inferred. "
                    "Provide a full path."
                )
            resolved = f"{resolved.rstrip('/')}/{name}"

        if resolved:
            existing = self.ledger.get_file_by_virtual_path(resolved)
            if existing is not None and existing.file_id != file.file_id:
                raise ConflictError(f"Virtual path already in use: {resolved}")

        same_backend = file.backend is target_backend
        if same_backend and (resolved is None or resolved == file.virtual_path):
            raise ConflictError(f"File already stored on {target_backend.value}.")

        if same_backend and target_backend is StorageBackend.LOCAL:
            return TransferPlan(file=file, target_backend=target_backend,
                                virtual_path=resolved, rename_only=True)

        self.backends.require(file.backend, target_backend)

        planned_storage_id = None
        if target_backend is StorageBackend.S3:
            planned_storage_id = resolved or file.virtual_path or str(uuid.uuid4())
            if same_backend and planned_storage_id == file.storage_id:
                return TransferPlan(file=file, target_backend=target_backend,
                                    virtual_path=resolved, rename_only=True)
            existing = self.ledger.get_file(planned_storage_id)
            if existing is not None and existing.file_id != file.file_id:
                raise ConflictError(f"Storage ID already in use: {planned_storage_id}")

        return TransferPlan(
            file=file,
            target_backend=target_backend,
            virtual_path=resolved,
            planned_storage_id=planned_storage_id,
        )

    def execute(self, plan: TransferPlan) -> str:
        """
        Copy the source bytes to the target backend.

        The whole object is buffered in memory. Ledger state is not touched.

        Returns:
            Storage ID of the written object
        """
        source = self.backends.get(plan.source_backend)
        target = self.backends.get(plan.target_backend)

        source_url = source.signed_read_url(plan.file.storage_id)
        if not source_url:
            raise NotFoundError(f"Source object not found: {plan.file.storage_id}")

        fetched = self.fetcher.fetch(source_url)
        new_storage_id = target.put(plan.planned_storage_id, fetched.content, fetched.content_type)
        logger.debug(
            f"Copied {len(fetched.content)} bytes from {plan.source_backend.value}:"
            f"{plan.file.storage_id} to {plan.target_backend.value}:{new_storage_id}"
        )
        return new_storage_id

    def commit(self, plan: TransferPlan, new_storage_id: str) -> FileSummary:
        """
        Atomically re-point the file, its access entries and its grants.

        On success the source object is handed to the task runner for
        deletion. If the commit fails, the freshly written destination object
        is scheduled for deletion instead and the error propagates.
        """
        updated = plan.file.repointed(new_storage_id, plan.target_backend, plan.next_virtual_path)
        try:
            committed = self.ledger.repoint_file(
                plan.file.storage_id, updated, expected_backend=plan.source_backend
            )
        except Exception as e:
            logger.error(f"Transfer commit failed for {plan.file.storage_id}: {e}")
            self._discard_destination(plan, new_storage_id)
            raise

        self.task_runner.delete_storage_object(plan.source_backend, plan.file.storage_id)

        logger.info(
            f"Transferred {plan.file.storage_id} from {plan.source_backend.value} "
            f"to {plan.target_backend.value}:{new_storage_id}"
        )
        self._publish(FileTransferredEvent(
            aggregate_id=new_storage_id,
            occurred_at=self.clock(),
            previous_storage_id=plan.file.storage_id,
            source_backend=plan.source_backend.value,
            target_backend=plan.target_backend.value,
            virtual_path=committed.virtual_path,
        ))
        return committed.to_summary()

    def _rename(self, plan: TransferPlan) -> FileSummary:
        updated = plan.file.repointed(plan.file.storage_id, plan.file.backend, plan.next_virtual_path)
        self.ledger.update_file(updated)
        logger.info(f"Renamed {plan.file.storage_id} to {plan.next_virtual_path}")
        return updated.to_summary()

    def _discard_destination(self, plan: TransferPlan, new_storage_id: str) -> None:
        # Another file may have claimed the key; its object must survive
        owner = self.ledger.get_file(new_storage_id)
        if owner is not None and owner.backend is plan.target_backend:
            logger.warning(f"Not discarding {new_storage_id}: it belongs to another file")
            return
        self.task_runner.delete_storage_object(plan.target_backend, new_storage_id)

    def _publish(self, event) -> None:
        if self.event_publisher is not None:
            self.event_publisher.publish(event)
