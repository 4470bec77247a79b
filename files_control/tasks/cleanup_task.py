"""
Cleanup Task

Celery beat task that sweeps expired ledger records.
Thin wrapper that delegates to CleanupSweeper.
"""

import logging
from typing import Optional

from ..celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="tasks.sweep_expired_records")
def sweep_expired_records(self, limit: Optional[int] = None):
    """
    Periodic task that removes expired pending uploads, grants and files.

    Runs hourly from the beat schedule. One run is one bounded sweep; when
    the sweeper reports more work, a continuation is scheduled right away
    instead of looping inside a single worker slot.

    Args:
        limit: Per-table scan limit, defaults to SWEEP_BATCH_LIMIT

    Returns:
        dict: deleted_count and has_more
    """
    from ..celery_app import flask_app
    from ..domain.file_storage import CleanupSweeper, ITaskRunner

    if limit is None:
        limit = flask_app.config.get("SWEEP_BATCH_LIMIT", 500)

    container = flask_app.container
    sweeper = container.resolve(CleanupSweeper)
    result = sweeper.sweep(limit=limit)

    logger.info(
        f"Sweep finished - deleted: {result.deleted_count}, has_more: {result.has_more}"
    )

    if result.has_more:
        container.resolve(ITaskRunner).schedule_sweep(limit)

    return {"deleted_count": result.deleted_count, "has_more": result.has_more}
