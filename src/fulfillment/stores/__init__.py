"""Append-only storage for order event streams."""

from fulfillment.stores.in_memory import InMemoryEventStore
from fulfillment.stores.interface import (
    NEW_STREAM,
    EventPublisher,
    EventStore,
    EventStream,
    ensure_version,
)

__all__ = [
    "NEW_STREAM",
    "EventPublisher",
    "EventStore",
    "EventStream",
    "InMemoryEventStore",
    "ensure_version",
]
