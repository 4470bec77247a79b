"""
Cleanup Sweeper

Bounded sweep of expired pending uploads, grants and files.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from ..errors import DomainError
from ..events import SweepCompletedEvent
from .registry import FileRegistry
from .value_objects import SweepResult

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_LIMIT = 500


class CleanupSweeper:
    """
    Domain service deleting everything past its expiry.

    A sweep is one bounded unit of work. It does not reschedule itself;
    the caller decides what to do with has_more.
    """

    def __init__(self, registry: FileRegistry, event_publisher=None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.registry = registry
        self.ledger = registry.ledger
        self.event_publisher = event_publisher
        self.clock = clock or registry.clock

    def sweep(self, limit: int = DEFAULT_SWEEP_LIMIT) -> SweepResult:
        """
        Delete up to limit expired rows from each table.

        Pending uploads and grants are deleted directly. Expired files go
        through the same cascading delete as a manual delete.

        Args:
            limit: Maximum rows scanned per table

        Returns:
            SweepResult with the number of rows deleted and whether any
            scan was truncated by the limit
        """
        now = self.clock()

        expired_uploads = self.ledger.find_expired_pending_uploads(now, limit)
        expired_grants = self.ledger.find_expired_grants(now, limit)
        expired_files = self.ledger.find_expired_files(now, limit)

        deleted_count = 0
        for pending in expired_uploads:
            if self.ledger.delete_pending_upload(pending.upload_token):
                deleted_count += 1

        for grant in expired_grants:
            if self.ledger.delete_grant(grant.grant_id):
                deleted_count += 1

        for file in expired_files:
            try:
                if self.registry.delete_file(file.storage_id, reason="expired"):
                    deleted_count += 1
            except DomainError as e:
                logger.error(f"Failed to delete expired file {file.storage_id}: {e.message}")

        has_more = any(
            len(rows) == limit for rows in (expired_uploads, expired_grants, expired_files)
        )

        if deleted_count:
            logger.info(f"Sweep deleted {deleted_count} expired record(s), has_more={has_more}")
        if self.event_publisher is not None:
            self.event_publisher.publish(SweepCompletedEvent(
                aggregate_id="sweep",
                occurred_at=now,
                deleted_count=deleted_count,
                has_more=has_more,
            ))
        return SweepResult(deleted_count=deleted_count, has_more=has_more)
