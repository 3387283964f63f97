"""
Inventory store.

Stock items keyed by normalized id. Orders snapshot the item name and
price at creation, and stock is only changed through ``update_stock``;
creating an order reserves nothing.
"""

import logging
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from fulfillment.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    ItemInUseError,
    ItemNotFoundError,
    ValidationError,
)
from fulfillment.observability import ATTR_ITEM_ID, Tracer, create_tracer
from fulfillment.records.models import DeliveryRecord, GiftCode, StockItem, normalize_item_id
from fulfillment.records.query import Filter, Query
from fulfillment.records.repository import RecordRepository

logger = logging.getLogger(__name__)

DEFAULT_STOCK: list[dict[str, Any]] = [
    {"id": "TOMATRIO", "name": "TOMATRIO", "emoji": "🍅", "quantity": 202, "price": "0.50", "max_quantity": 300},
    {"id": "MANGO", "name": "MANGO", "emoji": "🥭", "quantity": 260, "price": "0.70", "max_quantity": 300},
    {"id": "MR_CARROT", "name": "MR CARROT", "emoji": "🥕", "quantity": 74, "price": "0.40", "max_quantity": 150},
    {"id": "PLANTA", "name": "PLANTA (100k ~ 500k DPS)", "emoji": "🌱", "quantity": 12, "price": "7.50", "max_quantity": 20},
]


def parse_quantity(value: Any) -> int:
    """
    Parse a requested quantity.

    Raises:
        InvalidQuantityError: If the value is not a positive integer
    """
    if isinstance(value, bool):
        raise InvalidQuantityError(value)
    if isinstance(value, int):
        quantity = value
    elif isinstance(value, str) and value.strip().isdecimal():
        quantity = int(value.strip())
    else:
        raise InvalidQuantityError(value)
    if quantity <= 0:
        raise InvalidQuantityError(value)
    return quantity


def parse_price(value: Any) -> Decimal:
    try:
        price = Decimal(str(value).strip().replace(",", "."))
    except InvalidOperation as e:
        raise ValidationError(f"Invalid price: {value!r}") from e
    if not price.is_finite() or price < 0:
        raise ValidationError(f"Invalid price: {value!r}")
    return price


def _parse_stock_level(value: Any) -> int:
    text = str(value).strip()
    if not text.isdecimal():
        raise ValidationError(f"Invalid stock quantity: {value!r}")
    return int(text)


class InventoryStore:
    """
    Stock items plus the referential-integrity guard on deletion.

    Example:
        >>> inventory = InventoryStore(items, deliveries, gift_codes)
        >>> await inventory.seed_defaults()
        4
        >>> item = await inventory.reserve_check("MANGO", 10)
    """

    def __init__(
        self,
        items: RecordRepository[StockItem],
        deliveries: RecordRepository[DeliveryRecord],
        gift_codes: RecordRepository[GiftCode],
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._items = items
        self._deliveries = deliveries
        self._gift_codes = gift_codes

    async def get_item(self, item_id: str) -> StockItem:
        item = await self._items.get(normalize_item_id(item_id))
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    async def list_items(self) -> list[StockItem]:
        return await self._items.find(Query(order_by="name"))

    async def list_buyable_items(self) -> list[StockItem]:
        """Items with stock on hand, for the purchase menu."""
        return await self._items.find(Query(filters=[Filter.gt("quantity", 0)], order_by="name"))

    async def reserve_check(self, item_id: str, quantity: Any) -> StockItem:
        """
        Validate a purchase request against current stock without reserving.

        Raises:
            InvalidQuantityError: quantity is not a positive integer
            ItemNotFoundError: no such item
            InsufficientStockError: quantity exceeds stock on hand
        """
        requested = parse_quantity(quantity)
        item = await self.get_item(item_id)
        if requested > item.quantity:
            raise InsufficientStockError(item.id, requested, item.quantity)
        return item

    async def add_item(
        self,
        item_id: str,
        name: str,
        emoji: str = "",
        price: Any = 0,
        quantity: Any = 0,
        max_quantity: Any = None,
    ) -> StockItem:
        """
        Add a new stock item.

        Raises:
            ValidationError: id or name missing, or bad numbers
            DuplicateRecordError: an item with the normalized id exists
        """
        if not str(item_id).strip() or not str(name).strip():
            raise ValidationError("Item id and name are required")

        stock = _parse_stock_level(quantity) if quantity not in (None, "") else 0
        if max_quantity in (None, "", 0, "0"):
            ceiling = stock or 100
        else:
            ceiling = _parse_stock_level(max_quantity)

        item = StockItem(
            id=normalize_item_id(item_id),
            name=str(name).strip().upper(),
            emoji=emoji or "",
            price=parse_price(price) if price not in (None, "") else Decimal("0"),
            quantity=stock,
            max_quantity=ceiling,
        )
        with self._tracer.span("fulfillment.inventory.add_item", {ATTR_ITEM_ID: item.id}):
            await self._items.insert(item)
        logger.info("Added stock item %s", item.id, extra={"item_id": item.id})
        return item

    async def update_stock(self, changes: Mapping[str, Any]) -> list[StockItem]:
        """
        Apply ``<ID>_quantity`` / ``<ID>_price`` form keys in one transaction.

        Keys for unknown items are ignored. Returns the updated items.
        """
        updated: list[StockItem] = []
        for item in await self._items.find():
            quantity_key = f"{item.id}_quantity"
            price_key = f"{item.id}_price"
            touched = False
            if changes.get(quantity_key) not in (None, ""):
                item.quantity = _parse_stock_level(changes[quantity_key])
                touched = True
            if changes.get(price_key) not in (None, ""):
                item.price = parse_price(changes[price_key])
                touched = True
            if touched:
                updated.append(item)

        if updated:
            with self._tracer.span("fulfillment.inventory.update_stock"):
                await self._items.save_many(updated)
            logger.info("Updated %d stock item(s)", len(updated))
        return updated

    async def delete_item(self, item_id: str) -> None:
        """
        Delete an item that no order or gift code references.

        Raises:
            ItemNotFoundError: no such item
            ItemInUseError: the item has orders or gift codes
        """
        item = await self.get_item(item_id)
        orders = await self._deliveries.count(Query(filters=[Filter.eq("item_id", item.id)]))
        gifts = await self._gift_codes.count(Query(filters=[Filter.eq("item_id", item.id)]))
        if orders or gifts:
            raise ItemInUseError(item.id, orders, gifts)
        await self._items.delete(item.id)
        logger.info("Deleted stock item %s", item.id, extra={"item_id": item.id})

    async def seed_defaults(self) -> int:
        """Populate the default stock when the store is empty."""
        if await self._items.count() > 0:
            return 0
        logger.info("Stock is empty, seeding default items")
        await self._items.save_many([StockItem(**data) for data in DEFAULT_STOCK])
        return len(DEFAULT_STOCK)


__all__ = [
    "DEFAULT_STOCK",
    "InventoryStore",
    "parse_price",
    "parse_quantity",
]
