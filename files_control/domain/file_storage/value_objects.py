"""
File Storage Value Objects

Immutable value objects and normalization helpers for type safety and validation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, Iterable, List, Optional, TypeVar

from ..errors import ValidationError

T = TypeVar("T")


class StorageBackend(str, Enum):
    """The two interchangeable storage providers."""

    LOCAL = "local"
    S3 = "s3"

    @classmethod
    def parse(cls, value: Any) -> "StorageBackend":
        """Convert a raw backend name into a StorageBackend."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown storage backend: {value!r}")


class ConsumeStatus(str, Enum):
    """Outcome of a download grant consumption attempt."""

    OK = "ok"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    FILE_MISSING = "file_missing"
    FILE_EXPIRED = "file_expired"
    ACCESS_DENIED = "access_denied"
    PASSWORD_REQUIRED = "password_required"
    INVALID_PASSWORD = "invalid_password"

    @property
    def http_status(self) -> int:
        """HTTP status code a route layer should answer with."""
        if self is ConsumeStatus.OK:
            return 200
        if self in (ConsumeStatus.EXPIRED, ConsumeStatus.EXHAUSTED, ConsumeStatus.FILE_EXPIRED):
            return 410
        if self is ConsumeStatus.PASSWORD_REQUIRED:
            return 401
        if self in (ConsumeStatus.ACCESS_DENIED, ConsumeStatus.INVALID_PASSWORD):
            return 403
        return 404


def normalize_access_keys(access_keys: Iterable[str]) -> List[str]:
    """
    Trim, drop blanks and de-duplicate access keys, preserving first-seen order.

    Args:
        access_keys: Raw caller-supplied access keys

    Returns:
        Normalized list of access keys (case preserved)
    """
    seen = []
    for key in access_keys:
        if key is None:
            continue
        trimmed = str(key).strip()
        if trimmed and trimmed not in seen:
            seen.append(trimmed)
    return seen


def normalize_access_key(access_key: Optional[str]) -> Optional[str]:
    """Normalize a single access key; returns None for blank input."""
    normalized = normalize_access_keys([access_key] if access_key is not None else [])
    return normalized[0] if normalized else None


def require_future_expiration(expires_at: Optional[datetime], now: datetime) -> None:
    """
    Check that an expiration is timezone-aware and strictly after now.

    Raises:
        ValidationError: Naive datetime, or not in the future
    """
    if expires_at is None:
        return
    if expires_at.tzinfo is None or expires_at.utcoffset() is None:
        raise ValidationError("Expiration must include a timezone.")
    if expires_at <= now:
        raise ValidationError("Expiration must be in the future.")


def normalize_virtual_path(virtual_path: Optional[str]) -> Optional[str]:
    """Trim a virtual path; returns None when nothing is left."""
    if virtual_path is None:
        return None
    trimmed = virtual_path.strip()
    return trimmed or None


def basename_from_path(value: Optional[str]) -> Optional[str]:
    """
    Return the last non-empty segment of a slash separated path.

    >>> basename_from_path("/docs/report.pdf")
    'report.pdf'
    >>> basename_from_path("///") is None
    True
    """
    if not value:
        return None
    trimmed = value.rstrip("/")
    if not trimmed:
        return None
    return trimmed.split("/")[-1] or None


@dataclass(frozen=True)
class FileMetadata:
    """Backend-native metadata of a stored object."""

    size: int
    sha256: str
    content_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"size": self.size, "sha256": self.sha256, "content_type": self.content_type}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["FileMetadata"]:
        if not data:
            return None
        return cls(
            size=int(data["size"]),
            sha256=data["sha256"],
            content_type=data.get("content_type"),
        )


@dataclass(frozen=True)
class PasswordRecord:
    """
    Salted password hash as stored on a download grant.

    All binary fields are base64 encoded.
    """

    hash: str
    salt: str
    iterations: int
    algorithm: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.hash,
            "salt": self.salt,
            "iterations": self.iterations,
            "algorithm": self.algorithm,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["PasswordRecord"]:
        if not data:
            return None
        return cls(
            hash=data.get("hash") or "",
            salt=data.get("salt") or "",
            iterations=int(data.get("iterations") or 0),
            algorithm=data.get("algorithm"),
        )


@dataclass(frozen=True)
class FileSummary:
    """Public view of a registered file."""

    storage_id: str
    backend: StorageBackend
    virtual_path: Optional[str]
    expires_at: Optional[datetime]
    metadata: Optional[FileMetadata] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "storage_id": self.storage_id,
            "backend": self.backend.value,
            "virtual_path": self.virtual_path,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }


@dataclass(frozen=True)
class UploadTicket:
    """Signed upload destination handed out by the upload ledger."""

    upload_url: str
    upload_token: str
    token_expires_at: datetime
    backend: StorageBackend
    storage_id: Optional[str] = None
    virtual_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "upload_url": self.upload_url,
            "upload_token": self.upload_token,
            "token_expires_at": self.token_expires_at.isoformat(),
            "backend": self.backend.value,
            "storage_id": self.storage_id,
            "virtual_path": self.virtual_path,
        }


@dataclass(frozen=True)
class ConsumeResult:
    """Result of a download grant consumption attempt."""

    status: ConsumeStatus
    download_url: Optional[str] = None
    storage_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ConsumeStatus.OK


@dataclass(frozen=True)
class SweepResult:
    """One bounded unit of cleanup work."""

    deleted_count: int
    has_more: bool


@dataclass(frozen=True)
class Page(Generic[T]):
    """A page of results addressed by an opaque cursor."""

    items: List[T] = field(default_factory=list)
    cursor: Optional[str] = None

    @property
    def is_done(self) -> bool:
        return self.cursor is None
