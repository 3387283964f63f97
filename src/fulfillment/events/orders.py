"""
Domain events of the order lifecycle.

Every transition of a delivery record is captured by one of these events.
They are registered in the default registry so stored streams can be
deserialized by type name.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import Field

from fulfillment.events.base import DomainEvent
from fulfillment.events.registry import register_event

ORDER_AGGREGATE_TYPE = "Order"

OrderOrigin = Literal["purchase", "gift", "manual"]


@register_event
class OrderCreated(DomainEvent):
    """A buyer asked for an item; the item name and price are snapshotted here."""

    aggregate_type: str = ORDER_AGGREGATE_TYPE
    buyer_id: str
    item_id: str
    item_name: str
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(ge=1)
    origin: OrderOrigin = "purchase"
    ticket_channel_id: str | None = None
    gift_code: str | None = None


@register_event
class PaymentRequested(DomainEvent):
    """The order now waits for payment of amount."""

    aggregate_type: str = ORDER_AGGREGATE_TYPE
    amount: Decimal = Field(ge=0)
    txid: str | None = None


@register_event
class OrderPaid(DomainEvent):
    """
    Payment was confirmed.

    reference is the provider transaction id, the gift code for gift orders,
    or "manual" when an administrator confirmed delivery of an unpaid order.
    """

    aggregate_type: str = ORDER_AGGREGATE_TYPE
    reference: str
    delivery_channel_id: str | None = None


@register_event
class ManualRecoveryStarted(DomainEvent):
    """An administrator synthesized this order after correlation failed."""

    aggregate_type: str = ORDER_AGGREGATE_TYPE
    requested_by: str
    channel_id: str
    missing_order_id: int | None = None


@register_event
class ProofRequested(DomainEvent):
    aggregate_type: str = ORDER_AGGREGATE_TYPE
    upload_url: str


@register_event
class ProofSubmitted(DomainEvent):
    aggregate_type: str = ORDER_AGGREGATE_TYPE
    photo_url: str
    note: str | None = None


@register_event
class OrderClosed(DomainEvent):
    """Terminal success; reason is "reviewed" or "review_timeout"."""

    aggregate_type: str = ORDER_AGGREGATE_TYPE
    reason: str


@register_event
class OrderAbandoned(DomainEvent):
    """Terminal failure; reason is "payment_timeout" or "ticket_closed"."""

    aggregate_type: str = ORDER_AGGREGATE_TYPE
    reason: str


__all__ = [
    "ORDER_AGGREGATE_TYPE",
    "ManualRecoveryStarted",
    "OrderAbandoned",
    "OrderClosed",
    "OrderCreated",
    "OrderOrigin",
    "OrderPaid",
    "PaymentRequested",
    "ProofRequested",
    "ProofSubmitted",
]
