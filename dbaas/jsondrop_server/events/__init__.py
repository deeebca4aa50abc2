"""
Change broadcasting for JSONDrop.

This module handles:
- Typed change events (insert, update, delete, schema created/deleted)
- The listener registry and fan-out to live subscribers
- Server-Sent Events wire formatting

Delivery is at-most-once and best-effort: a listener whose queue is full
misses the event, and publishers never block or see delivery errors.
"""

from .broadcaster import Broadcaster, Listener, ListenerRegistry
from .sse import format_connected, format_ping, format_sse
from .types import (
    ChangeEvent,
    DeleteEvent,
    EventKind,
    EventPublisher,
    InsertEvent,
    SchemaCreatedEvent,
    SchemaDeletedEvent,
    UpdateEvent,
)

__all__ = [
    "Broadcaster",
    "Listener",
    "ListenerRegistry",
    "format_connected",
    "format_ping",
    "format_sse",
    "ChangeEvent",
    "DeleteEvent",
    "EventKind",
    "EventPublisher",
    "InsertEvent",
    "SchemaCreatedEvent",
    "SchemaDeletedEvent",
    "UpdateEvent",
]
