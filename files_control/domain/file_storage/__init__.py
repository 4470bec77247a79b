"""
File Storage Domain

Handles file registration, access control, download grants, cross-backend
transfers and expiration cleanup.
"""

from .credentials import hash_password, verify_password
from .entities import DownloadGrant, PendingUpload, StoredFile
from .grants import DownloadGrantManager
from .registry import FileRegistry
from .repositories import FileLedgerRepository
from .signed_url_service import SignedUrl, SignedUrlService
from .storage_repository import FetchedObject, IObjectFetcher, IObjectStorage, StorageBackends
from .sweeper import CleanupSweeper
from .task_runner import ITaskRunner
from .transfer import TransferOrchestrator, TransferPlan
from .upload_ledger import UploadLedger
from .value_objects import (
    ConsumeResult,
    ConsumeStatus,
    FileMetadata,
    FileSummary,
    Page,
    PasswordRecord,
    StorageBackend,
    SweepResult,
    UploadTicket,
)

__all__ = [
    "CleanupSweeper",
    "ConsumeResult",
    "ConsumeStatus",
    "DownloadGrant",
    "DownloadGrantManager",
    "FetchedObject",
    "FileLedgerRepository",
    "FileMetadata",
    "FileRegistry",
    "FileSummary",
    "IObjectFetcher",
    "IObjectStorage",
    "ITaskRunner",
    "Page",
    "PasswordRecord",
    "PendingUpload",
    "SignedUrl",
    "SignedUrlService",
    "StorageBackend",
    "StorageBackends",
    "StoredFile",
    "SweepResult",
    "TransferOrchestrator",
    "TransferPlan",
    "UploadLedger",
    "UploadTicket",
    "hash_password",
    "verify_password",
]
