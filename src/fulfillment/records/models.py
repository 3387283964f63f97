"""
Record models for the fulfillment engine.

Stock items, coupons and gift codes are shared resources; reviews attach
one-to-one to orders; the configuration row holds operator settings; and
delivery records are the queryable projection of order events.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from pydantic import Field

from fulfillment.records.base import Record


def normalize_item_id(value: str) -> str:
    """
    Item ids are uppercase with whitespace runs replaced by underscores.

    Example:
        >>> normalize_item_id("mr carrot")
        'MR_CARROT'
    """
    return "_".join(str(value).upper().split())


class StockItem(Record):
    """An item for sale with its stock level."""

    id: str
    name: str
    emoji: str = ""
    price: Decimal = Field(ge=0)
    quantity: int = Field(default=0, ge=0)
    max_quantity: int = Field(default=100, ge=0)


class Coupon(Record):
    """
    Discount coupon keyed by its code.

    A coupon is redeemable while it is active and has uses left.
    """

    id: str
    discount_percentage: Decimal = Field(ge=0, le=100)
    uses_left: int = Field(default=1, ge=0)
    is_active: bool = True

    @property
    def code(self) -> str:
        return self.id

    @property
    def redeemable(self) -> bool:
        return self.is_active and self.uses_left > 0


class GiftCode(Record):
    """Single-use code that yields one unit of an item."""

    id: str
    item_id: str
    redeemed: bool = False
    redeemed_by: str | None = None
    redeemed_at: datetime | None = None

    __indexes__: ClassVar[list[list[str]]] = [["item_id"]]

    @property
    def code(self) -> str:
        return self.id


class Review(Record):
    """Buyer review; ``id`` is the reviewed order's id."""

    id: int
    buyer_id: str
    rating: int = Field(ge=1, le=5)
    text: str = ""

    @property
    def order_id(self) -> int:
        return self.id


class Configuration(Record):
    """Operator channel and role settings, stored as the single row with id 1."""

    id: int = 1
    main_channel_id: str | None = None
    delivery_channel_id: str | None = None
    reviews_channel_id: str | None = None
    client_role_id: str | None = None


class DeliveryRecord(Record):
    """
    Read model of an order, maintained from the order's event stream.

    Attributes:
        status: OrderStatus value
        status_code: 200 when closed, 410 when abandoned, 102 otherwise
        ticket_channel_id: Channel used for the payment phase
        delivery_channel_id: Channel created once the order is paid
    """

    id: int
    buyer_id: str
    item_id: str
    item_name: str
    unit_price: Decimal = Decimal("0")
    quantity: int = Field(default=1, ge=1)
    origin: str = "purchase"
    status: str = "created"
    status_code: int = 102
    ticket_channel_id: str | None = None
    delivery_channel_id: str | None = None
    txid: str | None = None
    payment_reference: str | None = None
    gift_code: str | None = None
    photo_url: str | None = None
    note: str | None = None
    close_reason: str | None = None
    paid_at: datetime | None = None
    closed_at: datetime | None = None

    __indexes__: ClassVar[list[list[str]]] = [
        ["ticket_channel_id"],
        ["item_id"],
        ["status"],
    ]

    @property
    def order_id(self) -> int:
        return self.id

    @property
    def total(self) -> Decimal:
        return self.unit_price * self.quantity


__all__ = [
    "Configuration",
    "Coupon",
    "DeliveryRecord",
    "GiftCode",
    "Review",
    "StockItem",
    "normalize_item_id",
]
