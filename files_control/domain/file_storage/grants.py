"""
Download Grant Manager

Issues and consumes time, use and password limited download credentials.
Every consumption re-derives the outcome from current state; nothing is
pre-validated or cached.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from ..errors import ExpiredError, NotFoundError, ValidationError
from ..events import DownloadGrantConsumedEvent, DownloadGrantIssuedEvent
from .credentials import hash_password, verify_password
from .entities import DownloadGrant, utc_now
from .repositories import FileLedgerRepository
from .storage_repository import StorageBackends
from .task_runner import ITaskRunner
from .value_objects import (
    ConsumeResult,
    ConsumeStatus,
    Page,
    normalize_access_key,
    require_future_expiration,
)

logger = logging.getLogger(__name__)

# Lost compare-and-swap races tolerated before a consumption gives up
MAX_CONSUME_ATTEMPTS = 5


class DownloadGrantManager:
    """
    Domain service for download grants.

    Consumption never raises: every outcome, including denial, is a
    ConsumeStatus. Expired and exhausted grants are deleted lazily by the
    consumption attempt that discovers them.
    """

    def __init__(
        self,
        ledger: FileLedgerRepository,
        backends: StorageBackends,
        task_runner: ITaskRunner,
        event_publisher=None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.ledger = ledger
        self.backends = backends
        self.task_runner = task_runner
        self.event_publisher = event_publisher
        self.clock = clock

    def issue(
        self,
        storage_id: str,
        max_uses: Optional[int] = 1,
        expires_at: Optional[datetime] = None,
        password: Optional[str] = None,
        shareable: bool = False,
    ) -> DownloadGrant:
        """
        Create a download grant for a file.

        Args:
            storage_id: File the grant refers to
            max_uses: Maximum successful consumptions, None for unlimited
            expires_at: Optional expiration, strictly in the future
            password: Optional password; only its hash is stored
            shareable: Skip access key checks on consumption

        Returns:
            The new grant; its grant_id is the download token

        Raises:
            NotFoundError: File does not exist
            ExpiredError: File already expired
            ValidationError: Bad max_uses, past expiration or blank password
        """
        now = self.clock()
        file = self.ledger.get_file(storage_id)
        if file is None:
            raise NotFoundError(f"File not found: {storage_id}")

        if file.is_expired(now):
            raise ExpiredError(f"File expired: {storage_id}")

        if max_uses is not None and max_uses <= 0:
            raise ValidationError("max_uses must be at least 1 or None for unlimited.")

        require_future_expiration(expires_at, now)

        record = None
        if password is not None:
            if not password.strip():
                raise ValidationError("Password cannot be empty.")
            record = hash_password(password)

        grant = DownloadGrant.create(
            storage_id=storage_id,
            max_uses=max_uses,
            expires_at=expires_at,
            password=record,
            shareable=shareable,
            now=now,
        )
        self.ledger.insert_grant(grant)

        self._publish(DownloadGrantIssuedEvent(
            aggregate_id=grant.grant_id,
            occurred_at=now,
            storage_id=storage_id,
            max_uses=max_uses,
            shareable=shareable,
            has_password=grant.has_password,
        ))
        return grant

    def consume(self, grant_id: str, access_key: Optional[str] = None,
                password: Optional[str] = None) -> ConsumeResult:
        """
        Attempt to consume a grant and obtain a signed download URL.

        Args:
            grant_id: Download token
            access_key: Caller's access key (ignored for shareable grants)
            password: Caller-supplied password for protected grants

        Returns:
            ConsumeResult; download_url is set only when status is OK
        """
        for _ in range(MAX_CONSUME_ATTEMPTS):
            result = self._attempt(grant_id, access_key, password)
            if result is not None:
                break
        else:
            logger.warning(f"Grant {grant_id} lost {MAX_CONSUME_ATTEMPTS} use-count races")
            result = ConsumeResult(ConsumeStatus.EXHAUSTED)

        self._publish(DownloadGrantConsumedEvent(
            aggregate_id=grant_id,
            occurred_at=self.clock(),
            status=result.status.value,
            storage_id=result.storage_id,
        ))
        return result

    def _attempt(self, grant_id: str, access_key: Optional[str],
                 password: Optional[str]) -> Optional[ConsumeResult]:
        """One pass of the state machine; None means the use-count swap lost a race."""
        now = self.clock()
        grant = self.ledger.get_grant(grant_id) if grant_id else None
        if grant is None:
            return ConsumeResult(ConsumeStatus.NOT_FOUND)

        if grant.is_expired(now):
            self.ledger.delete_grant(grant.grant_id)
            return ConsumeResult(ConsumeStatus.EXPIRED)

        if grant.is_exhausted():
            self.ledger.delete_grant(grant.grant_id)
            return ConsumeResult(ConsumeStatus.EXHAUSTED)

        file = self.ledger.get_file(grant.storage_id)

        if not grant.shareable:
            key = normalize_access_key(access_key)
            if not key:
                if file is None:
                    self.ledger.delete_grant(grant.grant_id)
                    return ConsumeResult(ConsumeStatus.FILE_MISSING)
                return ConsumeResult(ConsumeStatus.ACCESS_DENIED)
            if file is not None and not self.ledger.has_access_key(grant.storage_id, key):
                return ConsumeResult(ConsumeStatus.ACCESS_DENIED)

        if file is None:
            self.ledger.delete_grant(grant.grant_id)
            return ConsumeResult(ConsumeStatus.FILE_MISSING)

        if grant.has_password:
            if not password or not password.strip():
                return ConsumeResult(ConsumeStatus.PASSWORD_REQUIRED)
            if not verify_password(password, grant.password):
                return ConsumeResult(ConsumeStatus.INVALID_PASSWORD)

        if file.is_expired(now):
            try:
                self.task_runner.delete_file_cascade(file.storage_id)
            except Exception as e:
                # The sweep reclaims the file later
                logger.warning(f"Could not schedule cascade delete of {file.storage_id}: {e}")
            return ConsumeResult(ConsumeStatus.FILE_EXPIRED)

        try:
            download_url = self.backends.get(file.backend).signed_read_url(file.storage_id)
        except Exception as e:
            logger.warning(f"No download URL for {file.storage_id}: {e}")
            download_url = None
        if not download_url:
            return ConsumeResult(ConsumeStatus.FILE_MISSING)

        next_use_count = grant.use_count + 1
        exhausting = grant.max_uses is not None and next_use_count >= grant.max_uses
        if not self.ledger.record_grant_use(grant.grant_id, grant.use_count, delete=exhausting):
            return None

        return ConsumeResult(
            ConsumeStatus.OK, download_url=download_url, storage_id=file.storage_id
        )

    def get_grant(self, grant_id: str) -> Optional[DownloadGrant]:
        return self.ledger.get_grant(grant_id)

    def list_grants(self, cursor: Optional[str] = None, limit: int = 100) -> Page[dict]:
        """List grant summaries, newest first. Password hashes are never exposed."""
        page = self.ledger.list_grants(cursor=cursor, limit=limit)
        return Page(items=[g.to_summary() for g in page.items], cursor=page.cursor)

    def delete_grant(self, grant_id: str) -> bool:
        return self.ledger.delete_grant(grant_id)

    def _publish(self, event) -> None:
        if self.event_publisher is not None:
            self.event_publisher.publish(event)
