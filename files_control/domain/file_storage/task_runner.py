"""
Task Runner Interface

Deferred work the domain hands off to a retrying background executor.
"""

from abc import ABC, abstractmethod

from .value_objects import StorageBackend


class ITaskRunner(ABC):
    """
    Interface for scheduling deferred, idempotent work.

    Implementations guarantee eventual execution with backoff; the domain
    never waits on the result.
    """

    @abstractmethod
    def delete_storage_object(self, backend: StorageBackend, storage_id: str) -> None:
        """Schedule an idempotent delete of a storage object, retried until it succeeds."""
        pass  # pragma: no cover

    @abstractmethod
    def delete_file_cascade(self, storage_id: str) -> None:
        """Schedule the cascading delete of a file found expired."""
        pass  # pragma: no cover

    @abstractmethod
    def schedule_sweep(self, limit: int) -> None:
        """Schedule an immediate continuation of a truncated sweep."""
        pass  # pragma: no cover
