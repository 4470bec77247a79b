"""
Celery Task Runner

ITaskRunner implementation that enqueues the storage and cleanup tasks.
"""

import logging

from ..domain.file_storage.task_runner import ITaskRunner
from ..domain.file_storage.value_objects import StorageBackend

logger = logging.getLogger(__name__)


class CeleryTaskRunner(ITaskRunner):
    """
    Enqueues work on the Celery broker.

    Task modules are imported on first use; they import the Celery app,
    which is itself built by the app factory that creates this runner.
    """

    def delete_storage_object(self, backend: StorageBackend, storage_id: str) -> None:
        from .storage_tasks import delete_storage_object

        delete_storage_object.delay(StorageBackend.parse(backend).value, storage_id)
        logger.debug(f"Queued delete of {backend} object {storage_id}")

    def delete_file_cascade(self, storage_id: str) -> None:
        from .storage_tasks import delete_file_cascade

        delete_file_cascade.delay(storage_id)

    def schedule_sweep(self, limit: int) -> None:
        from .cleanup_task import sweep_expired_records

        sweep_expired_records.apply_async(kwargs={"limit": limit}, countdown=0)
