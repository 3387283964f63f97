"""
Unit tests for record repositories.

Tests cover:
- Record table naming and item id normalization
- CRUD (insert, get, save, delete, exists) and duplicate detection
- Query filters, ordering, limit and count
- Conditional updates (decrement, update_where) used by coupons and gifts
- The same contract for InMemoryRecordRepository and SQLiteRecordRepository
"""

import asyncio
from decimal import Decimal
from typing import Any

import pytest

from fulfillment.exceptions import DuplicateRecordError, RecordNotFoundError
from fulfillment.records.in_memory import InMemoryRecordRepository
from fulfillment.records.models import (
    Configuration,
    Coupon,
    DeliveryRecord,
    GiftCode,
    StockItem,
    normalize_item_id,
)
from fulfillment.records.query import Filter, Query
from tests.conftest import skip_if_no_aiosqlite
from tests.fixtures import coupon, stock_item

# =============================================================================
# Models
# =============================================================================


class TestModels:
    def test_table_names(self) -> None:
        assert StockItem.table_name() == "stock_items"
        assert Coupon.table_name() == "coupons"
        assert GiftCode.table_name() == "gift_codes"
        assert DeliveryRecord.table_name() == "delivery_records"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("mr carrot", "MR_CARROT"), ("  Mango ", "MANGO"), ("a  b\tc", "A_B_C")],
    )
    def test_normalize_item_id(self, raw: str, expected: str) -> None:
        assert normalize_item_id(raw) == expected

    def test_coupon_redeemable(self) -> None:
        assert coupon(uses=1).redeemable
        assert not coupon(uses=0).redeemable
        assert not coupon(active=False).redeemable

    def test_configuration_defaults_to_row_one(self) -> None:
        assert Configuration().id == 1

    def test_delivery_record_total(self) -> None:
        record = DeliveryRecord(
            id=1,
            buyer_id="b",
            item_id="MANGO",
            item_name="MANGO",
            unit_price=Decimal("0.70"),
            quantity=10,
        )
        assert record.total == Decimal("7.00")
        assert record.status_code == 102


# =============================================================================
# Repository contract
# =============================================================================


class RecordRepositoryContract:
    """Subclasses provide ``items`` and ``coupons`` repository fixtures."""

    @pytest.mark.asyncio
    async def test_insert_and_get(self, items: Any) -> None:
        await items.insert(stock_item("MANGO", "0.70", 260))

        item = await items.get("MANGO")

        assert item is not None
        assert item.price == Decimal("0.70")
        assert item.quantity == 260

    @pytest.mark.asyncio
    async def test_insert_duplicate_raises(self, items: Any) -> None:
        await items.insert(stock_item("MANGO"))

        with pytest.raises(DuplicateRecordError):
            await items.insert(stock_item("MANGO"))

    @pytest.mark.asyncio
    async def test_get_missing(self, items: Any) -> None:
        assert await items.get("NOPE") is None
        with pytest.raises(RecordNotFoundError):
            await items.get_or_raise("NOPE")

    @pytest.mark.asyncio
    async def test_save_upserts(self, items: Any) -> None:
        await items.save(stock_item("MANGO", quantity=10))
        item = await items.get("MANGO")
        item.quantity = 3
        await items.save(item)

        updated = await items.get("MANGO")
        assert updated.quantity == 3
        assert updated.version == 2

    @pytest.mark.asyncio
    async def test_delete(self, items: Any) -> None:
        await items.insert(stock_item("MANGO"))

        assert await items.delete("MANGO")
        assert not await items.delete("MANGO")
        assert not await items.exists("MANGO")

    @pytest.mark.asyncio
    async def test_find_filters_and_orders(self, items: Any) -> None:
        await items.save_many(
            [
                stock_item("TOMATRIO", "0.50", 202),
                stock_item("MANGO", "0.70", 0),
                stock_item("MR_CARROT", "0.40", 74),
            ]
        )

        in_stock = await items.find(
            Query(filters=[Filter.gt("quantity", 0)], order_by="quantity", descending=True)
        )

        assert [i.id for i in in_stock] == ["TOMATRIO", "MR_CARROT"]

    @pytest.mark.asyncio
    async def test_find_limit_and_count(self, items: Any) -> None:
        await items.save_many([stock_item(f"ITEM_{n}", quantity=n) for n in range(1, 6)])

        page = await items.find(Query(order_by="quantity", limit=2, offset=1))

        assert [i.quantity for i in page] == [2, 3]
        assert await items.count() == 5
        assert await items.count(Query(filters=[Filter.in_("id", ["ITEM_1", "ITEM_2"])])) == 2

    @pytest.mark.asyncio
    async def test_decrement_when_enough(self, coupons: Any) -> None:
        await coupons.insert(coupon("PROMO10", uses=2))

        updated = await coupons.decrement("PROMO10", "uses_left", 1, where=[Filter.eq("is_active", True)])

        assert updated is not None
        assert updated.uses_left == 1
        assert (await coupons.get("PROMO10")).uses_left == 1

    @pytest.mark.asyncio
    async def test_decrement_refuses_below_zero(self, coupons: Any) -> None:
        await coupons.insert(coupon("LAST", uses=0))

        assert await coupons.decrement("LAST", "uses_left") is None
        assert (await coupons.get("LAST")).uses_left == 0

    @pytest.mark.asyncio
    async def test_decrement_respects_where(self, coupons: Any) -> None:
        await coupons.insert(coupon("OFF", uses=3, active=False))

        result = await coupons.decrement("OFF", "uses_left", where=[Filter.eq("is_active", True)])

        assert result is None

    @pytest.mark.asyncio
    async def test_decrement_missing_row(self, coupons: Any) -> None:
        assert await coupons.decrement("GHOST", "uses_left") is None

    @pytest.mark.asyncio
    async def test_concurrent_decrements_never_oversell(self, coupons: Any) -> None:
        await coupons.insert(coupon("RACE", uses=3))

        results = await asyncio.gather(
            *(coupons.decrement("RACE", "uses_left") for _ in range(10))
        )

        assert sum(1 for r in results if r is not None) == 3
        assert (await coupons.get("RACE")).uses_left == 0

    @pytest.mark.asyncio
    async def test_update_where(self, coupons: Any) -> None:
        await coupons.insert(coupon("PROMO10"))

        changed = await coupons.update_where("PROMO10", {"is_active": False}, [Filter.eq("is_active", True)])
        again = await coupons.update_where("PROMO10", {"is_active": False}, [Filter.eq("is_active", True)])

        assert changed is not None
        assert changed.is_active is False
        assert again is None


class TestInMemoryRecordRepository(RecordRepositoryContract):
    @pytest.fixture
    def items(self) -> InMemoryRecordRepository[StockItem]:
        return InMemoryRecordRepository(StockItem, enable_tracing=False)

    @pytest.fixture
    def coupons(self) -> InMemoryRecordRepository[Coupon]:
        return InMemoryRecordRepository(Coupon, enable_tracing=False)

    @pytest.mark.asyncio
    async def test_returns_copies(self, items: InMemoryRecordRepository[StockItem]) -> None:
        await items.insert(stock_item("MANGO", quantity=10))

        item = await items.get("MANGO")
        item.quantity = 0

        assert (await items.get("MANGO")).quantity == 10


@pytest.mark.sqlite
@skip_if_no_aiosqlite
class TestSQLiteRecordRepository(RecordRepositoryContract):
    @pytest.fixture
    async def items(self, sqlite_connection: Any) -> Any:
        from fulfillment.records.sqlite import SQLiteRecordRepository

        repo = SQLiteRecordRepository(sqlite_connection, StockItem, enable_tracing=False)
        await repo.create_table()
        return repo

    @pytest.fixture
    async def coupons(self, sqlite_connection: Any) -> Any:
        from fulfillment.records.sqlite import SQLiteRecordRepository

        repo = SQLiteRecordRepository(sqlite_connection, Coupon, enable_tracing=False)
        await repo.create_table()
        return repo

    @pytest.mark.asyncio
    async def test_decimal_round_trip(self, items: Any) -> None:
        await items.insert(stock_item("PLANTA", "7.50", 12))

        item = await items.get("PLANTA")

        assert item.price == Decimal("7.50")

    @pytest.mark.asyncio
    async def test_unknown_filter_field(self, items: Any) -> None:
        with pytest.raises(ValueError):
            await items.find(Query(filters=[Filter.eq("colour", "red")]))

    @pytest.mark.asyncio
    async def test_nullable_datetime_round_trip(self, sqlite_connection: Any) -> None:
        from fulfillment.records.sqlite import SQLiteRecordRepository

        gifts = SQLiteRecordRepository(sqlite_connection, GiftCode, enable_tracing=False)
        await gifts.create_table()
        await gifts.insert(GiftCode(id="PRESENTE-ABCD1234", item_id="MANGO"))

        gift = await gifts.get("PRESENTE-ABCD1234")

        assert gift.redeemed is False
        assert gift.redeemed_at is None
