"""
Application Services Layer

Wires domain services together and dispatches domain events.
"""

from .dependency_container import DependencyContainer, DependencyNotFoundError
from .event_publisher import EventPublisher

__all__ = [
    'DependencyContainer',
    'DependencyNotFoundError',
    'EventPublisher',
]
