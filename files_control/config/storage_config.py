"""
Storage Configuration

Settings for the local object store, the S3-compatible backend and the
ledger lifetimes, read from the environment.
"""

import os
from typing import Optional


class StorageConfig:
    """Local backend and ledger settings."""

    def __init__(self):
        self.local_storage_dir = os.getenv("LOCAL_STORAGE_DIR", "/tmp/files-control")
        # Public base URL of this service; signed local URLs are built on it
        self.local_base_url = os.getenv("LOCAL_STORAGE_BASE_URL", "http://localhost:8000")
        self.secret_key = os.getenv("SECRET_KEY")
        self.signed_url_ttl_seconds = int(os.getenv("SIGNED_URL_TTL_SECONDS", 600))
        self.pending_upload_ttl_seconds = int(os.getenv("PENDING_UPLOAD_TTL_SECONDS", 3600))
        self.sweep_batch_limit = int(os.getenv("SWEEP_BATCH_LIMIT", 500))
        self.fetch_timeout_seconds = float(os.getenv("FETCH_TIMEOUT_SECONDS", 60))


class S3Config:
    """
    S3-compatible backend settings.

    S3_ENDPOINT_URL wins over S3_ACCOUNT_ID; with only an account ID the
    Cloudflare R2 endpoint is derived from it.
    """

    def __init__(self):
        self.bucket_name = os.getenv("S3_BUCKET_NAME")
        self.access_key_id = os.getenv("S3_ACCESS_KEY_ID")
        self.secret_access_key = os.getenv("S3_SECRET_ACCESS_KEY")
        self.region = os.getenv("S3_REGION") or None
        self.account_id = os.getenv("S3_ACCOUNT_ID")
        self.endpoint_url = os.getenv("S3_ENDPOINT_URL") or self._r2_endpoint(self.account_id)

    @staticmethod
    def _r2_endpoint(account_id: Optional[str]) -> Optional[str]:
        if not account_id:
            return None
        return f"https://{account_id}.r2.cloudflarestorage.com"

    @property
    def is_configured(self) -> bool:
        """True when bucket and credentials are all present."""
        return bool(self.bucket_name and self.access_key_id and self.secret_access_key)

    def missing_fields(self) -> list:
        fields = {
            "S3_BUCKET_NAME": self.bucket_name,
            "S3_ACCESS_KEY_ID": self.access_key_id,
            "S3_SECRET_ACCESS_KEY": self.secret_access_key,
        }
        return [name for name, value in fields.items() if not value]
