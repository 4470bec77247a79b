"""
Domain Events

Immutable records of significant state changes in the ledger.
Events decouple side effects (logging, auditing) from core business logic.
"""

from abc import ABC
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class DomainEvent(ABC):
    """
    Base class for all domain events.

    Attributes:
        aggregate_id: ID of the aggregate that generated the event
            (a storage ID for file events, a grant ID for grant events)
        occurred_at: Timestamp when the event occurred
    """
    aggregate_id: str
    occurred_at: datetime

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert event to dictionary for serialization.

        Returns:
            Dictionary representation of the event
        """
        return {
            "event_type": self.event_type,
            "aggregate_id": self.aggregate_id,
            "occurred_at": self.occurred_at.isoformat(),
        }


@dataclass(frozen=True)
class FileRegisteredEvent(DomainEvent):
    """
    Event emitted when a file is committed to the registry.

    Attributes:
        aggregate_id: Storage ID
        backend: Backend holding the bytes
        access_key_count: Number of access entries written
        virtual_path: Optional alias
    """
    backend: str
    access_key_count: int
    virtual_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        base_dict = super().to_dict()
        base_dict.update({
            "backend": self.backend,
            "access_key_count": self.access_key_count,
            "virtual_path": self.virtual_path,
        })
        return base_dict


@dataclass(frozen=True)
class FileDeletedEvent(DomainEvent):
    """Event emitted when a file and everything referencing it is deleted."""
    backend: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({"backend": self.backend, "reason": self.reason})
        return base_dict


@dataclass(frozen=True)
class AccessKeyAddedEvent(DomainEvent):
    """Event emitted when an access key is granted on a file."""
    access_key: str

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict["access_key"] = self.access_key
        return base_dict


@dataclass(frozen=True)
class AccessKeyRemovedEvent(DomainEvent):
    """Event emitted when an access key is revoked from a file."""
    access_key: str

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict["access_key"] = self.access_key
        return base_dict


@dataclass(frozen=True)
class DownloadGrantIssuedEvent(DomainEvent):
    """
    Event emitted when a download grant is issued.

    Attributes:
        aggregate_id: Grant ID
        storage_id: File the grant refers to
        max_uses: Use limit, None for unlimited
        shareable: Whether access key checks are skipped
        has_password: Whether the grant is password protected
    """
    storage_id: str
    max_uses: Optional[int]
    shareable: bool
    has_password: bool

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        base_dict = super().to_dict()
        base_dict.update({
            "storage_id": self.storage_id,
            "max_uses": self.max_uses,
            "shareable": self.shareable,
            "has_password": self.has_password,
        })
        return base_dict


@dataclass(frozen=True)
class DownloadGrantConsumedEvent(DomainEvent):
    """
    Event emitted for every grant consumption attempt, successful or not.

    Attributes:
        aggregate_id: Grant ID
        status: ConsumeStatus value
        storage_id: File the grant referred to, when known
    """
    status: str
    storage_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        base_dict = super().to_dict()
        base_dict.update({"status": self.status, "storage_id": self.storage_id})
        return base_dict


@dataclass(frozen=True)
class FileTransferredEvent(DomainEvent):
    """
    Event emitted when a transfer commit re-points a file.

    Attributes:
        aggregate_id: New storage ID
        previous_storage_id: Storage ID before the transfer
        source_backend: Backend the bytes came from
        target_backend: Backend the bytes now live on
        virtual_path: Resolved virtual path after the transfer
    """
    previous_storage_id: str
    source_backend: str
    target_backend: str
    virtual_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        base_dict = super().to_dict()
        base_dict.update({
            "previous_storage_id": self.previous_storage_id,
            "source_backend": self.source_backend,
            "target_backend": self.target_backend,
            "virtual_path": self.virtual_path,
        })
        return base_dict


@dataclass(frozen=True)
class SweepCompletedEvent(DomainEvent):
    """
    Event emitted after one bounded sweep.

    Attributes:
        aggregate_id: Always "sweep"
        deleted_count: Rows removed across all tables
        has_more: Whether a scan was truncated by the limit
    """
    deleted_count: int
    has_more: bool

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({"deleted_count": self.deleted_count, "has_more": self.has_more})
        return base_dict
