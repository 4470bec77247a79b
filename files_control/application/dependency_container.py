"""
Dependency Injection Container

One container is built per Flask app by app_factory and attached as
app.container. Blueprints and Celery tasks look up the ledger, storage
backends and domain services through it instead of importing globals.
"""

import logging
import threading
from typing import Any, Callable, Dict, Iterable, Optional, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')

EVENTS_LOGGER = "files_control.events"


class DependencyNotFoundError(Exception):
    """Raised when a service type was never registered."""


class _Provider:
    """How one service type is produced: a fixed instance or a factory."""

    __slots__ = ("factory", "shared", "instance")

    def __init__(self, factory: Optional[Callable[[], Any]] = None,
                 shared: bool = True, instance: Any = None):
        self.factory = factory
        self.shared = shared
        self.instance = instance

    def get(self) -> Any:
        if self.factory is None:
            return self.instance
        if not self.shared:
            return self.factory()
        if self.instance is None:
            self.instance = self.factory()
        return self.instance


class DependencyContainer:
    """
    Service registry keyed by interface type.

    Three registration styles are supported:
        - register_singleton: an already built instance
        - register_lazy: a factory called once, on first resolve
        - register_transient: a factory called on every resolve

    Overrides replace any registration and exist for tests.
    """

    def __init__(self):
        self._providers: Dict[Type, _Provider] = {}
        self._overrides: Dict[Type, Any] = {}
        # Re-entrant: lazy factories resolve their own dependencies
        self._lock = threading.RLock()

    def register_singleton(self, interface: Type[T], implementation: T) -> None:
        """
        Register a ready instance, e.g.::

            container.register_singleton(FileLedgerRepository, ledger)
        """
        self._register(interface, _Provider(instance=implementation))

    def register_lazy(self, interface: Type[T], factory: Callable[[], T]) -> None:
        """Register a factory whose result is built once and then shared."""
        self._register(interface, _Provider(factory=factory, shared=True))

    def register_transient(self, interface: Type[T], factory: Callable[[], T]) -> None:
        """Register a factory that builds a new instance per resolve."""
        self._register(interface, _Provider(factory=factory, shared=False))

    def _register(self, interface: Type, provider: _Provider) -> None:
        with self._lock:
            if interface in self._providers:
                logger.debug(f"Replacing registration for {interface.__name__}")
            self._providers[interface] = provider

    def resolve(self, interface: Type[T]) -> T:
        """
        Look up a service.

        Raises:
            DependencyNotFoundError: Nothing is registered for the type
        """
        with self._lock:
            if interface in self._overrides:
                return self._overrides[interface]
            provider = self._providers.get(interface)
            if provider is None:
                raise DependencyNotFoundError(
                    f"No registration found for type: {interface.__name__}"
                )
            return provider.get()

    def override(self, interface: Type[T], implementation: T) -> None:
        with self._lock:
            self._overrides[interface] = implementation

    def clear_overrides(self) -> None:
        with self._lock:
            self._overrides.clear()

    def is_registered(self, interface: Type) -> bool:
        with self._lock:
            return interface in self._providers or interface in self._overrides

    def subscribe_event_handlers(self, event_publisher, handlers: Iterable = None) -> None:
        """
        Subscribe infrastructure handlers to every domain event.

        Args:
            event_publisher: EventPublisher receiving the subscriptions
            handlers: Objects with a handle(event) method; defaults to a
                LoggingEventHandler writing to the files_control.events logger
        """
        from ..domain.events import DomainEvent
        from ..infrastructure.event_handlers.logging_handler import LoggingEventHandler

        if handlers is None:
            handlers = [LoggingEventHandler(logging.getLogger(EVENTS_LOGGER))]

        for handler in handlers:
            event_publisher.subscribe(DomainEvent, handler.handle)
            logger.debug(f"Subscribed {type(handler).__name__} to domain events")
