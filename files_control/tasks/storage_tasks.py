"""
Storage Tasks

Retried background work for storage objects and cascade deletes. Both tasks
are idempotent so a retry after partial success is harmless.
"""

import logging

from ..celery_app import celery_app

logger = logging.getLogger(__name__)

RETRY_BACKOFF_MAX_SECONDS = 600


@celery_app.task(
    bind=True,
    name="tasks.delete_storage_object",
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=RETRY_BACKOFF_MAX_SECONDS,
    retry_jitter=True,
    max_retries=None,
)
def delete_storage_object(self, backend: str, storage_id: str):
    """
    Delete one object from a storage backend, retrying until it succeeds.

    Args:
        backend: StorageBackend value ("local" or "s3")
        storage_id: Object identifier on that backend
    """
    from ..celery_app import flask_app
    from ..domain.file_storage import StorageBackend, StorageBackends

    backends = flask_app.container.resolve(StorageBackends)
    storage = backends.get(StorageBackend.parse(backend))
    storage.delete(storage_id)

    logger.info(f"Deleted {backend} object {storage_id} (attempt {self.request.retries + 1})")
    return {"backend": backend, "storage_id": storage_id}


@celery_app.task(
    bind=True,
    name="tasks.delete_file_cascade",
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=RETRY_BACKOFF_MAX_SECONDS,
    retry_jitter=True,
    max_retries=None,
)
def delete_file_cascade(self, storage_id: str):
    """
    Cascade-delete a file row and everything hanging off it.

    A file on an unconfigured backend is left in place without retrying;
    the sweep picks it up again once the backend is configured.

    Args:
        storage_id: File to delete

    Returns:
        dict: Whether a row was actually removed
    """
    from ..celery_app import flask_app
    from ..domain.errors import ConfigError
    from ..domain.file_storage import FileRegistry

    registry = flask_app.container.resolve(FileRegistry)
    try:
        deleted = registry.delete_file(storage_id, reason="expired")
    except ConfigError as e:
        logger.warning(f"Skipping cascade delete of {storage_id}: {e}")
        return {"storage_id": storage_id, "deleted": False}
    return {"storage_id": storage_id, "deleted": deleted}
