"""
Local Object Storage Implementation

Filesystem-backed implementation of IObjectStorage for the platform-managed
backend. The backend assigns storage IDs itself once bytes are written, keeps
a JSON metadata sidecar next to every object, and hands out HMAC-signed URLs
served by the storage blueprint.
"""

import hashlib
import json
import logging
import os
import re
import tempfile
import uuid
from pathlib import Path
from typing import BinaryIO, Iterable, Optional

from ..domain.errors import ValidationError
from ..domain.file_storage.signed_url_service import SignedUrlService
from ..domain.file_storage.storage_repository import IObjectStorage
from ..domain.file_storage.value_objects import FileMetadata, StorageBackend

logger = logging.getLogger(__name__)

_STORAGE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
CHUNK_SIZE = 8192


class LocalObjectStorage(IObjectStorage):
    """
    Local filesystem implementation of IObjectStorage.

    Objects live under base_path/objects as {storage_id} with a
    {storage_id}.json sidecar holding size, sha256 and content type.
    Writes go to a temporary file first and are moved into place, so a
    reader never sees a partial object.

    Attributes:
        base_path: Base directory for object storage
        signer: SignedUrlService producing upload and read URLs
    """

    backend = StorageBackend.LOCAL

    def __init__(self, base_path: str, signer: SignedUrlService):
        """
        Initialize the local object store.

        Args:
            base_path: Base directory for object storage
            signer: Signs upload and read URLs for the storage endpoints
        """
        self.base_path = Path(base_path)
        self.objects_path = self.base_path / "objects"
        self.signer = signer
        self._ensure_base_directory()

    def _ensure_base_directory(self) -> None:
        try:
            self.objects_path.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise PermissionError(
                f"Insufficient permissions to create storage directory: {self.objects_path}"
            ) from e

    @staticmethod
    def is_valid_storage_id(storage_id: Optional[str]) -> bool:
        return bool(storage_id) and bool(_STORAGE_ID_PATTERN.match(storage_id))

    def _object_path(self, storage_id: str) -> Path:
        if not self.is_valid_storage_id(storage_id):
            raise ValidationError(f"Invalid local storage ID: {storage_id!r}")
        return self.objects_path / storage_id

    def _sidecar_path(self, storage_id: str) -> Path:
        return self.objects_path / f"{storage_id}.json"

    # IObjectStorage interface methods

    def generate_upload_url(self, storage_id: Optional[str] = None) -> str:
        # The storage ID is assigned when the upload lands
        return self.signer.upload_url().url

    def signed_read_url(self, storage_id: str) -> Optional[str]:
        if not self.is_valid_storage_id(storage_id) or not self._object_path(storage_id).is_file():
            return None
        return self.signer.read_url(storage_id).url

    def put(self, storage_id: Optional[str], content: bytes,
            content_type: Optional[str] = None) -> str:
        return self.store_chunks([content], content_type, storage_id=storage_id)

    def store_stream(self, stream: BinaryIO, content_type: Optional[str] = None) -> str:
        """
        Store an upload body read from a stream under a fresh storage ID.

        Returns:
            The assigned storage ID
        """
        return self.store_chunks(iter(lambda: stream.read(CHUNK_SIZE), b""), content_type)

    def store_chunks(self, chunks: Iterable[bytes], content_type: Optional[str] = None,
                     storage_id: Optional[str] = None) -> str:
        """
        Write an object from byte chunks, computing its metadata on the way.

        Args:
            chunks: Object content
            content_type: MIME type to record
            storage_id: Explicit ID; a new one is assigned when omitted

        Returns:
            The storage ID the object was written under
        """
        storage_id = storage_id or uuid.uuid4().hex
        target = self._object_path(storage_id)

        digest = hashlib.sha256()
        size = 0
        fd, tmp_name = tempfile.mkstemp(dir=self.objects_path, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as f:
                for chunk in chunks:
                    digest.update(chunk)
                    size += len(chunk)
                    f.write(chunk)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        metadata = FileMetadata(size=size, sha256=digest.hexdigest(), content_type=content_type)
        self._sidecar_path(storage_id).write_text(json.dumps(metadata.to_dict()))
        logger.debug(f"Stored local object {storage_id} ({size} bytes)")
        return storage_id

    def delete(self, storage_id: str) -> None:
        if not self.is_valid_storage_id(storage_id):
            return
        self._object_path(storage_id).unlink(missing_ok=True)
        self._sidecar_path(storage_id).unlink(missing_ok=True)

    def head_metadata(self, storage_id: str) -> Optional[FileMetadata]:
        if not self.is_valid_storage_id(storage_id):
            return None
        path = self._object_path(storage_id)
        if not path.is_file():
            return None

        sidecar = self._sidecar_path(storage_id)
        if sidecar.is_file():
            try:
                return FileMetadata.from_dict(json.loads(sidecar.read_text()))
            except (ValueError, KeyError) as e:
                logger.warning(f"Unreadable metadata sidecar for {storage_id}: {e}")

        # No usable sidecar: derive it from the bytes
        digest = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                digest.update(chunk)
        return FileMetadata(size=path.stat().st_size, sha256=digest.hexdigest())

    def object_path(self, storage_id: str) -> Optional[Path]:
        """Filesystem path of an object for streaming, or None if missing."""
        if not self.is_valid_storage_id(storage_id):
            return None
        path = self._object_path(storage_id)
        return path if path.is_file() else None
