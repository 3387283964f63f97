"""
Record storage for the fulfillment engine.

The SQLite repository lives in ``fulfillment.records.sqlite`` and is not
imported here so that aiosqlite stays optional for in-memory use.
"""

from fulfillment.records.base import Record
from fulfillment.records.in_memory import InMemoryRecordRepository
from fulfillment.records.models import (
    Configuration,
    Coupon,
    DeliveryRecord,
    GiftCode,
    Review,
    StockItem,
    normalize_item_id,
)
from fulfillment.records.query import Filter, Query
from fulfillment.records.repository import RecordRepository, TModel
from fulfillment.records.schema import generate_full_schema, generate_schema

__all__ = [
    "Configuration",
    "Coupon",
    "DeliveryRecord",
    "Filter",
    "GiftCode",
    "InMemoryRecordRepository",
    "Query",
    "Record",
    "RecordRepository",
    "Review",
    "StockItem",
    "TModel",
    "generate_full_schema",
    "generate_schema",
    "normalize_item_id",
]
