"""S3-compatible object storage backend (AWS S3 / MinIO / Cloudflare R2)."""

import hashlib
import logging
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from ..domain.errors import ValidationError
from ..domain.file_storage.storage_repository import IObjectStorage
from ..domain.file_storage.value_objects import FileMetadata, StorageBackend

logger = logging.getLogger(__name__)

_MISSING_CODES = ("404", "NoSuchKey", "NotFound")


def _is_missing(exc: ClientError) -> bool:
    response = getattr(exc, "response", {}) or {}
    status_code = (response.get("ResponseMetadata") or {}).get("HTTPStatusCode")
    error_code = str((response.get("Error") or {}).get("Code") or "")
    return status_code == 404 or error_code in _MISSING_CODES


class S3ObjectStorage(IObjectStorage):
    """
    S3 storage backend with lazy client initialization.

    Keys are chosen by the caller before an upload URL is presigned. The
    object's sha256 is stored as user metadata on put() so head_metadata()
    can report it.
    """

    backend = StorageBackend.S3

    def __init__(self, *, bucket: str, region: Optional[str] = None,
                 endpoint_url: Optional[str] = None,
                 access_key_id: Optional[str] = None,
                 secret_access_key: Optional[str] = None,
                 url_ttl_seconds: int = 600, client=None):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.url_ttl_seconds = url_ttl_seconds
        self._client = client

    def _get_client(self):
        if self._client is not None:
            return self._client

        client_kwargs = {"service_name": "s3"}
        if self.region:
            client_kwargs["region_name"] = self.region
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url
        if self.access_key_id:
            client_kwargs["aws_access_key_id"] = self.access_key_id
        if self.secret_access_key:
            client_kwargs["aws_secret_access_key"] = self.secret_access_key
        client_kwargs["config"] = Config(signature_version="s3v4")

        self._client = boto3.client(**client_kwargs)
        return self._client

    def generate_upload_url(self, storage_id: Optional[str] = None) -> str:
        if not storage_id:
            raise ValidationError("S3 uploads need a storage ID before signing.")
        return self._get_client().generate_presigned_url(
            "put_object",
            Params={"Bucket": self.bucket, "Key": storage_id},
            ExpiresIn=int(self.url_ttl_seconds),
        )

    def signed_read_url(self, storage_id: str) -> Optional[str]:
        return self._get_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": storage_id},
            ExpiresIn=int(self.url_ttl_seconds),
        )

    def put(self, storage_id: Optional[str], content: bytes,
            content_type: Optional[str] = None) -> str:
        if not storage_id:
            raise ValidationError("S3 writes need a pre-allocated storage ID.")
        extra = {"Metadata": {"sha256": hashlib.sha256(content).hexdigest()}}
        if content_type:
            extra["ContentType"] = content_type
        self._get_client().put_object(Bucket=self.bucket, Key=storage_id, Body=content, **extra)
        logger.debug(f"Stored s3 object {storage_id} ({len(content)} bytes)")
        return storage_id

    def delete(self, storage_id: str) -> None:
        # S3 DeleteObject succeeds for missing keys
        self._get_client().delete_object(Bucket=self.bucket, Key=storage_id)

    def head_metadata(self, storage_id: str) -> Optional[FileMetadata]:
        try:
            data = self._get_client().head_object(Bucket=self.bucket, Key=storage_id)
        except ClientError as exc:
            if _is_missing(exc):
                return None
            raise
        return FileMetadata(
            size=int(data.get("ContentLength") or 0),
            sha256=(data.get("Metadata") or {}).get("sha256", ""),
            content_type=data.get("ContentType"),
        )
