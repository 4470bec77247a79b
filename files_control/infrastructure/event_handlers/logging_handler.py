"""
Logging Event Handler

Infrastructure event handler for logging domain events.
Domain layer remains unaware of logging infrastructure.
"""

import logging

from ...domain.events import (
    AccessKeyAddedEvent,
    AccessKeyRemovedEvent,
    DomainEvent,
    DownloadGrantConsumedEvent,
    DownloadGrantIssuedEvent,
    FileDeletedEvent,
    FileRegisteredEvent,
    FileTransferredEvent,
    SweepCompletedEvent,
)


class LoggingEventHandler:
    """
    Infrastructure event handler for logging domain events.

    Subscribes to domain events and logs them at a level matching their
    significance.
    """

    def __init__(self, logger: logging.Logger):
        """
        Initialize with logger instance.

        Args:
            logger: Python logging.Logger instance
        """
        self.logger = logger

    def handle(self, event: DomainEvent) -> None:
        """
        Handle domain event by logging it.

        Args:
            event: Domain event to log
        """
        try:
            if isinstance(event, FileRegisteredEvent):
                self._handle_file_registered(event)
            elif isinstance(event, FileDeletedEvent):
                self._handle_file_deleted(event)
            elif isinstance(event, (AccessKeyAddedEvent, AccessKeyRemovedEvent)):
                self._handle_access_changed(event)
            elif isinstance(event, DownloadGrantIssuedEvent):
                self._handle_grant_issued(event)
            elif isinstance(event, DownloadGrantConsumedEvent):
                self._handle_grant_consumed(event)
            elif isinstance(event, FileTransferredEvent):
                self._handle_file_transferred(event)
            elif isinstance(event, SweepCompletedEvent):
                self._handle_sweep_completed(event)
            else:
                self.logger.debug(
                    f"Unhandled event: {event.__class__.__name__} "
                    f"(aggregate_id={event.aggregate_id})"
                )
        except Exception as e:
            # Log handler errors but don't fail the operation
            self.logger.error(
                f"Error in logging event handler for {event.__class__.__name__}: {e}",
                exc_info=True,
            )

    def _handle_file_registered(self, event: FileRegisteredEvent) -> None:
        self.logger.info(
            f"File registered: storage_id={event.aggregate_id}, backend={event.backend}, "
            f"access_keys={event.access_key_count}, virtual_path={event.virtual_path}"
        )

    def _handle_file_deleted(self, event: FileDeletedEvent) -> None:
        self.logger.info(
            f"File deleted: storage_id={event.aggregate_id}, backend={event.backend}, "
            f"reason={event.reason}"
        )

    def _handle_access_changed(self, event) -> None:
        action = "added" if isinstance(event, AccessKeyAddedEvent) else "removed"
        # Access keys themselves are never logged
        self.logger.info(f"Access key {action}: storage_id={event.aggregate_id}")

    def _handle_grant_issued(self, event: DownloadGrantIssuedEvent) -> None:
        self.logger.info(
            f"Download grant issued: storage_id={event.storage_id}, "
            f"max_uses={event.max_uses}, shareable={event.shareable}, "
            f"password={event.has_password}"
        )

    def _handle_grant_consumed(self, event: DownloadGrantConsumedEvent) -> None:
        """Successful downloads at INFO, refusals at DEBUG since they are routine."""
        if event.status == "ok":
            self.logger.info(f"Download grant consumed: storage_id={event.storage_id}")
        else:
            self.logger.debug(f"Download grant refused: status={event.status}")

    def _handle_file_transferred(self, event: FileTransferredEvent) -> None:
        self.logger.info(
            f"File transferred: {event.source_backend}:{event.previous_storage_id} -> "
            f"{event.target_backend}:{event.aggregate_id}"
        )

    def _handle_sweep_completed(self, event: SweepCompletedEvent) -> None:
        level = logging.INFO if event.deleted_count else logging.DEBUG
        self.logger.log(
            level,
            f"Sweep completed: deleted={event.deleted_count}, has_more={event.has_more}",
        )
