"""
Shared test builders for the fulfillment tests.

Usage:
    from tests.fixtures import (
        build_order,
        coupon,
        delivery_record,
        seed_order,
        stock_item,
    )
"""

from tests.fixtures.orders import build_order, seed_order
from tests.fixtures.records import coupon, delivery_record, stock_item

__all__ = [
    "build_order",
    "coupon",
    "delivery_record",
    "seed_order",
    "stock_item",
]
