"""
Event Publisher

Fans domain events out to subscribed handlers after the ledger commit that
produced them has succeeded.
"""

import logging
from threading import Lock
from typing import Callable, List, Tuple, Type

from ..domain.events import DomainEvent

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], None]


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class EventPublisher:
    """
    Synchronous in-process event dispatch.

    A subscription to a type also matches its subclasses, so subscribing to
    DomainEvent receives everything. Handlers run in subscription order and
    a failing handler is logged and skipped; the ledger change that raised
    the event is already committed and is never rolled back.
    """

    def __init__(self):
        self._subscriptions: List[Tuple[Type[DomainEvent], Handler]] = []
        self._lock = Lock()

    def subscribe(self, event_type: Type[DomainEvent], handler: Handler) -> None:
        with self._lock:
            self._subscriptions.append((event_type, handler))

    def subscribers(self, event_type: Type[DomainEvent]) -> List[Handler]:
        """Handlers that would receive an event of the given type."""
        with self._lock:
            return [h for t, h in self._subscriptions if issubclass(event_type, t)]

    def publish(self, event: DomainEvent) -> None:
        handlers = self.subscribers(type(event))
        if not handlers:
            logger.debug(f"No handlers for {event.event_type}")
            return

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Event handler {_handler_name(handler)} failed on "
                    f"{event.event_type} ({event.aggregate_id}): {e}",
                    exc_info=True,
                )
