"""
Record builders for tests.
"""

from decimal import Decimal

from fulfillment.records.models import Coupon, DeliveryRecord, StockItem


def stock_item(
    item_id: str = "MANGO",
    price: str = "0.70",
    quantity: int = 260,
    emoji: str = "🥭",
    name: str | None = None,
) -> StockItem:
    return StockItem(
        id=item_id,
        name=name or item_id.replace("_", " "),
        emoji=emoji,
        price=Decimal(price),
        quantity=quantity,
        max_quantity=max(quantity, 100),
    )


def coupon(code: str = "PROMO10", discount: str = "10", uses: int = 5, active: bool = True) -> Coupon:
    return Coupon(id=code, discount_percentage=Decimal(discount), uses_left=uses, is_active=active)


def delivery_record(
    order_id: int,
    item_name: str = "MANGO",
    unit_price: str = "0.70",
    quantity: int = 10,
    status: str = "closed",
    **fields: object,
) -> DeliveryRecord:
    return DeliveryRecord(
        id=order_id,
        buyer_id="buyer-1",
        item_id=item_name.replace(" ", "_"),
        item_name=item_name,
        unit_price=Decimal(unit_price),
        quantity=quantity,
        status=status,
        status_code=200 if status == "closed" else 102,
        **fields,  # type: ignore[arg-type]
    )


__all__ = ["coupon", "delivery_record", "stock_item"]
