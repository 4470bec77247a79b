"""
Upload Ledger

Two-phase upload protocol: a signed upload destination is issued together
with a pending upload ticket, and the ticket is consumed when the caller
commits the uploaded object to the registry.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from ..errors import (
    ConflictError,
    ExpiredError,
    MismatchError,
    NotFoundError,
    ValidationError,
)
from .entities import PendingUpload, utc_now
from .registry import FileRegistry
from .value_objects import (
    FileMetadata,
    FileSummary,
    StorageBackend,
    UploadTicket,
    normalize_virtual_path,
)

logger = logging.getLogger(__name__)

DEFAULT_PENDING_UPLOAD_TTL_SECONDS = 3600


class UploadLedger:
    """
    Domain service tracking in-flight uploads.

    The ledger never sees file bytes. Clients upload straight to the signed
    destination; the ticket lets the registry verify that a commit matches an
    upload it authorized.
    """

    def __init__(
        self,
        registry: FileRegistry,
        ttl_seconds: int = DEFAULT_PENDING_UPLOAD_TTL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.registry = registry
        self.ledger = registry.ledger
        self.backends = registry.backends
        self.ttl_seconds = ttl_seconds
        self.clock = clock or registry.clock

    def begin_upload(self, backend: StorageBackend,
                     virtual_path: Optional[str] = None) -> UploadTicket:
        """
        Issue a signed upload destination and a pending upload ticket.

        For S3 the storage ID is chosen now (the virtual path, else a random
        UUID) because presigning needs the key. The local backend assigns the
        storage ID itself once the bytes are written.

        Raises:
            ValidationError: Virtual path is blank
            ConflictError: Virtual path or chosen storage ID already in use
            ConfigError: S3 requested but not configured
        """
        backend = StorageBackend.parse(backend)

        path = None
        if virtual_path is not None:
            path = normalize_virtual_path(virtual_path)
            if not path:
                raise ValidationError("Virtual path cannot be empty.")
            if self.ledger.get_file_by_virtual_path(path) is not None:
                raise ConflictError(f"Virtual path already in use: {path}")

        storage = self.backends.get(backend)

        storage_id = None
        if backend is StorageBackend.S3:
            storage_id = path or str(uuid.uuid4())
            if self.ledger.get_file(storage_id) is not None:
                raise ConflictError(f"Storage ID already in use: {storage_id}")

        now = self.clock()
        pending = PendingUpload.create(
            backend=backend,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
            storage_id=storage_id,
            virtual_path=path,
            now=now,
        )
        upload_url = storage.generate_upload_url(storage_id)
        self.ledger.insert_pending_upload(pending)

        logger.debug(f"Issued upload ticket {pending.upload_token} for {backend.value}")
        return UploadTicket(
            upload_url=upload_url,
            upload_token=pending.upload_token,
            token_expires_at=pending.expires_at,
            backend=backend,
            storage_id=storage_id,
            virtual_path=path,
        )

    def finalize(
        self,
        upload_token: str,
        storage_id: str,
        access_keys: Iterable[str],
        expires_at: Optional[datetime] = None,
        metadata: Optional[FileMetadata] = None,
        virtual_path: Optional[str] = None,
    ) -> FileSummary:
        """
        Commit an uploaded object and consume its ticket atomically.

        Raises:
            NotFoundError: Unknown upload token
            ExpiredError: Ticket past its expiry
            MismatchError: Storage ID differs from the one chosen at issuance
            ValidationError: Virtual path differs from the ticket's own
        """
        pending = self.ledger.get_pending_upload(upload_token)
        if pending is None:
            raise NotFoundError("Upload token not found.")

        if pending.is_expired(self.clock()):
            raise ExpiredError("Upload token expired.")

        if pending.storage_id is not None and pending.storage_id != storage_id:
            raise MismatchError(
                f"Storage ID {storage_id!r} does not match the issued {pending.storage_id!r}"
            )

        path = normalize_virtual_path(virtual_path)
        if path and pending.virtual_path and path != pending.virtual_path:
            raise ValidationError("Virtual path does not match the upload ticket.")

        return self.registry.register(
            storage_id=storage_id,
            backend=pending.backend,
            access_keys=access_keys,
            expires_at=expires_at,
            metadata=metadata,
            virtual_path=path or pending.virtual_path,
            consume_upload_token=pending.upload_token,
        )
