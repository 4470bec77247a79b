"""
Local Object URL Signing

Generates and validates time-limited HMAC signed URLs for the local
object store. A signature covers the action, the object (for reads) and the
expiry timestamp, so a URL cannot be reused for another object or after it
lapses.
"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote, urlencode

from .entities import utc_now

UPLOAD_ACTION = "upload"
READ_ACTION = "read"


@dataclass
class SignedUrl:
    """A URL plus the expiry and signature embedded in its query string."""

    url: str
    expires_at: datetime
    signature: str

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True once expires_at has been reached."""
        return (now or utc_now()) >= self.expires_at

    def get_remaining_seconds(self, now: Optional[datetime] = None) -> int:
        """Whole seconds left, never negative."""
        remaining = self.expires_at - (now or utc_now())
        return max(0, int(remaining.total_seconds()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "expires_at": self.expires_at.isoformat(),
            "expires_in": self.get_remaining_seconds(),
            "signature": self.signature,
        }


class SignedUrlService:
    """
    HMAC-SHA256 signer for the local store endpoints.

    Provides time-limited access to the local object store's upload and
    read endpoints using HMAC-SHA256 signatures.
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: str = "",
        ttl_seconds: int = 600,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            secret_key: Secret key for HMAC signing (generated if not provided)
            base_url: Public base URL of the local object store endpoints;
                an empty value yields relative URLs
            ttl_seconds: Lifetime of generated URLs
            clock: Callable returning the current UTC time
        """
        self.secret_key = secret_key or self._generate_secret_key()
        self.base_url = base_url.rstrip("/")
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @staticmethod
    def _generate_secret_key(length: int = 32) -> str:
        return secrets.token_hex(length)

    def upload_url(self) -> SignedUrl:
        """Signed URL for POSTing a new object to the local store."""
        return self._sign(f"{self.base_url}/storage/upload", UPLOAD_ACTION, "")

    def read_url(self, storage_id: str) -> SignedUrl:
        """Signed URL for reading one object from the local store."""
        return self._sign(
            f"{self.base_url}/storage/files/{quote(storage_id, safe='')}",
            READ_ACTION,
            storage_id,
        )

    def _sign(self, path: str, action: str, subject: str) -> SignedUrl:
        expires_at = self._clock() + timedelta(seconds=self.ttl_seconds)
        expires = int(expires_at.timestamp())
        signature = self._generate_signature(action, subject, expires)
        query = urlencode({"expires": expires, "signature": signature})
        return SignedUrl(
            url=f"{path}?{query}",
            expires_at=datetime.fromtimestamp(expires, tz=timezone.utc),
            signature=signature,
        )

    def _generate_signature(self, action: str, subject: str, expires: int) -> str:
        """
        Generate HMAC signature for an action, its subject and expiration.

        Returns:
            HMAC signature as hex string
        """
        message = f"{action}:{subject}:{expires}"
        return hmac.new(
            self.secret_key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256
        ).hexdigest()

    def validate(self, action: str, subject: str, expires: Any,
                 signature: Optional[str]) -> bool:
        """
        Validate a signature taken from a request's query string.

        Args:
            action: 'upload' or 'read'
            subject: Storage ID for reads, empty for uploads
            expires: Raw 'expires' query value (epoch seconds)
            signature: Raw 'signature' query value

        Returns:
            True if the signature matches and has not expired
        """
        if not signature:
            return False
        try:
            expires = int(expires)
        except (TypeError, ValueError):
            return False

        expected = self._generate_signature(action, subject, expires)
        # Constant-time comparison to prevent timing attacks
        if not hmac.compare_digest(signature, expected):
            return False

        return self._clock().timestamp() < expires
