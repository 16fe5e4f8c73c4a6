"""
Process-wide event publisher.

The lifecycle engine publishes through get_publisher() after each commit;
applications and tests swap the implementation with set_publisher().
"""
from .publisher import EventPublisher, ROSTER_CHANNEL, entity_channel
from .in_memory import InMemoryEventPublisher

_publisher: EventPublisher = InMemoryEventPublisher()


def get_publisher() -> EventPublisher:
    return _publisher


def set_publisher(publisher: EventPublisher) -> None:
    global _publisher
    _publisher = publisher
