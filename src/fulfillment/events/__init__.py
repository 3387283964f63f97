"""Domain events and the event type registry."""

from fulfillment.events.base import DomainEvent
from fulfillment.events.orders import (
    ORDER_AGGREGATE_TYPE,
    ManualRecoveryStarted,
    OrderAbandoned,
    OrderClosed,
    OrderCreated,
    OrderPaid,
    PaymentRequested,
    ProofRequested,
    ProofSubmitted,
)
from fulfillment.events.registry import (
    DuplicateEventTypeError,
    EventRegistry,
    EventTypeNotFoundError,
    default_registry,
    register_event,
)

__all__ = [
    "ORDER_AGGREGATE_TYPE",
    "DomainEvent",
    "DuplicateEventTypeError",
    "EventRegistry",
    "EventTypeNotFoundError",
    "ManualRecoveryStarted",
    "OrderAbandoned",
    "OrderClosed",
    "OrderCreated",
    "OrderPaid",
    "PaymentRequested",
    "ProofRequested",
    "ProofSubmitted",
    "default_registry",
    "register_event",
]
