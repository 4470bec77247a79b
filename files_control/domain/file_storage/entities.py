"""
File Storage Entities

Domain entities for the four ledger tables: files, access entries,
download grants and pending uploads.
"""

import secrets
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .value_objects import (
    FileMetadata,
    FileSummary,
    PasswordRecord,
    StorageBackend,
)


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class StoredFile:
    """
    Entity representing a registered file.

    A file is identified by its backend-scoped storage ID. The optional
    virtual path is a human-readable alias, unique across all files.
    """
    storage_id: str
    backend: StorageBackend
    created_at: datetime
    file_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    virtual_path: Optional[str] = None
    expires_at: Optional[datetime] = None
    metadata: Optional[FileMetadata] = None

    @classmethod
    def create(cls, storage_id: str, backend: StorageBackend,
               expires_at: Optional[datetime] = None,
               metadata: Optional[FileMetadata] = None,
               virtual_path: Optional[str] = None,
               now: Optional[datetime] = None) -> 'StoredFile':
        """
        Factory method to create a new file record.

        Args:
            storage_id: Backend-scoped storage identifier
            backend: Backend holding the bytes
            expires_at: Optional absolute expiration
            metadata: Optional object metadata
            virtual_path: Optional unique alias
            now: Creation time (defaults to current UTC time)

        Returns:
            New StoredFile instance
        """
        return cls(
            storage_id=storage_id,
            backend=backend,
            created_at=now or utc_now(),
            virtual_path=virtual_path,
            expires_at=expires_at,
            metadata=metadata,
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """
        Check if the file has passed its expiration time.

        Returns:
            True if expired, False otherwise (files without expiration never expire)
        """
        if self.expires_at is None:
            return False
        return (now or utc_now()) >= self.expires_at

    def repointed(self, storage_id: str, backend: StorageBackend,
                  virtual_path: Optional[str]) -> 'StoredFile':
        """Copy of this file pointing at a new storage location."""
        return replace(self, storage_id=storage_id, backend=backend, virtual_path=virtual_path)

    def to_summary(self) -> FileSummary:
        return FileSummary(
            storage_id=self.storage_id,
            backend=self.backend,
            virtual_path=self.virtual_path,
            expires_at=self.expires_at,
            metadata=self.metadata,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "file_id": self.file_id,
            "storage_id": self.storage_id,
            "backend": self.backend.value,
            "virtual_path": self.virtual_path,
            "expires_at": _to_iso(self.expires_at),
            "created_at": _to_iso(self.created_at),
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'StoredFile':
        """Create StoredFile from dictionary."""
        return cls(
            file_id=data["file_id"],
            storage_id=data["storage_id"],
            backend=StorageBackend(data["backend"]),
            virtual_path=data.get("virtual_path"),
            expires_at=_from_iso(data.get("expires_at")),
            created_at=_from_iso(data["created_at"]),
            metadata=FileMetadata.from_dict(data.get("metadata")),
        )


@dataclass
class DownloadGrant:
    """
    Entity representing a revocable download credential for one file.

    Grants may be limited in uses and time, protected by a password, and
    marked shareable to skip access key checks.
    """
    grant_id: str
    storage_id: str
    created_at: datetime
    max_uses: Optional[int] = 1
    use_count: int = 0
    expires_at: Optional[datetime] = None
    shareable: bool = False
    password: Optional[PasswordRecord] = None

    @classmethod
    def create(cls, storage_id: str, max_uses: Optional[int] = 1,
               expires_at: Optional[datetime] = None,
               password: Optional[PasswordRecord] = None,
               shareable: bool = False,
               now: Optional[datetime] = None) -> 'DownloadGrant':
        """Factory method to create a new grant with a fresh download token."""
        return cls(
            grant_id=cls._generate_token(),
            storage_id=storage_id,
            created_at=now or utc_now(),
            max_uses=max_uses,
            use_count=0,
            expires_at=expires_at,
            shareable=shareable,
            password=password,
        )

    @staticmethod
    def _generate_token(length: int = 32) -> str:
        """
        Generate a cryptographically secure random token.

        Args:
            length: Token length in bytes (default: 32)

        Returns:
            URL-safe token string
        """
        return secrets.token_urlsafe(length)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utc_now()) >= self.expires_at

    def is_exhausted(self) -> bool:
        return self.max_uses is not None and self.use_count >= self.max_uses

    @property
    def has_password(self) -> bool:
        return self.password is not None and bool(self.password.hash)

    def to_summary(self) -> Dict[str, Any]:
        """Summary safe to hand to callers; never includes the password hash."""
        return {
            "grant_id": self.grant_id,
            "storage_id": self.storage_id,
            "expires_at": _to_iso(self.expires_at),
            "max_uses": self.max_uses,
            "use_count": self.use_count,
            "shareable": self.shareable,
            "has_password": self.has_password,
        }

    def to_dict(self) -> dict:
        return {
            "grant_id": self.grant_id,
            "storage_id": self.storage_id,
            "created_at": _to_iso(self.created_at),
            "max_uses": self.max_uses,
            "use_count": self.use_count,
            "expires_at": _to_iso(self.expires_at),
            "shareable": self.shareable,
            "password": self.password.to_dict() if self.password else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'DownloadGrant':
        return cls(
            grant_id=data["grant_id"],
            storage_id=data["storage_id"],
            created_at=_from_iso(data["created_at"]),
            max_uses=data.get("max_uses"),
            use_count=int(data.get("use_count", 0)),
            expires_at=_from_iso(data.get("expires_at")),
            shareable=bool(data.get("shareable", False)),
            password=PasswordRecord.from_dict(data.get("password")),
        )


@dataclass
class PendingUpload:
    """
    Ephemeral ticket bridging upload URL issuance and the registry commit.

    For the S3 backend the storage ID is chosen at issuance; for the local
    backend it is assigned by the backend after the bytes are written.
    """
    upload_token: str
    backend: StorageBackend
    expires_at: datetime
    created_at: datetime
    storage_id: Optional[str] = None
    virtual_path: Optional[str] = None

    @classmethod
    def create(cls, backend: StorageBackend, expires_at: datetime,
               storage_id: Optional[str] = None,
               virtual_path: Optional[str] = None,
               now: Optional[datetime] = None) -> 'PendingUpload':
        return cls(
            upload_token=uuid.uuid4().hex,
            backend=backend,
            expires_at=expires_at,
            created_at=now or utc_now(),
            storage_id=storage_id,
            virtual_path=virtual_path,
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= self.expires_at

    def to_dict(self) -> dict:
        return {
            "upload_token": self.upload_token,
            "backend": self.backend.value,
            "expires_at": _to_iso(self.expires_at),
            "created_at": _to_iso(self.created_at),
            "storage_id": self.storage_id,
            "virtual_path": self.virtual_path,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'PendingUpload':
        return cls(
            upload_token=data["upload_token"],
            backend=StorageBackend(data["backend"]),
            expires_at=_from_iso(data["expires_at"]),
            created_at=_from_iso(data["created_at"]),
            storage_id=data.get("storage_id"),
            virtual_path=data.get("virtual_path"),
        )
