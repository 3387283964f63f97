"""Event-sourced aggregates and their repository."""

from fulfillment.aggregates.base import AggregateRoot
from fulfillment.aggregates.order import (
    ALLOWED_TRANSITIONS,
    OrderAggregate,
    OrderState,
    OrderStatus,
)
from fulfillment.aggregates.repository import OrderRepository

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AggregateRoot",
    "OrderAggregate",
    "OrderRepository",
    "OrderState",
    "OrderStatus",
]
