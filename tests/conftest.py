"""
Shared pytest fixtures for the fulfillment tests.

This module provides:
- Harness fixtures (harness, engine, dispatcher, chat) wired to fake collaborators
- Event store and order repository fixtures (event_store, order_repo, deliveries)
- Record repository fixtures (stock_items, coupons_repo, gift_codes_repo, reviews_repo)
- Service fixtures (inventory, coupon_ledger, gift_book, review_book)
- SQLite fixtures (sqlite_connection, sqlite_event_store)
- Tracing fixtures (recording_tracer)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING, Any

import pytest
import pytest_asyncio

from fulfillment.aggregates.repository import OrderRepository
from fulfillment.collaborators import ChatUser
from fulfillment.coupons import CouponLedger
from fulfillment.dispatch import InteractionDispatcher
from fulfillment.engine import OrderLifecycleEngine
from fulfillment.gifts import GiftCodeBook
from fulfillment.inventory import InventoryStore
from fulfillment.observability import RecordingTracer
from fulfillment.projections import DeliveryRecordProjection
from fulfillment.records.in_memory import InMemoryRecordRepository
from fulfillment.records.models import Coupon, DeliveryRecord, GiftCode, Review, StockItem
from fulfillment.reviews import ReviewBook
from fulfillment.stores.in_memory import InMemoryEventStore
from fulfillment.testing import FakeChatPlatform, FulfillmentTestHarness

if TYPE_CHECKING:
    import aiosqlite

# ============================================================================
# SQLite Availability Check
# ============================================================================

AIOSQLITE_AVAILABLE = False
try:
    import aiosqlite

    AIOSQLITE_AVAILABLE = True
except ImportError:
    aiosqlite = None  # type: ignore[assignment]


def pytest_configure(config: Any) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "sqlite: tests that require aiosqlite")


skip_if_no_aiosqlite = pytest.mark.skipif(
    not AIOSQLITE_AVAILABLE,
    reason="aiosqlite not installed",
)


# ============================================================================
# Harness Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def harness() -> AsyncGenerator[FulfillmentTestHarness, None]:
    """
    Started in-memory fulfillment app with fake chat and payment collaborators.

    Default stock is seeded and the cleanup delay is zero.
    """
    h = FulfillmentTestHarness()
    await h.start()
    yield h
    await h.stop()


@pytest.fixture
def engine(harness: FulfillmentTestHarness) -> OrderLifecycleEngine:
    """The harness engine."""
    return harness.engine


@pytest.fixture
def dispatcher(harness: FulfillmentTestHarness) -> InteractionDispatcher:
    """The harness interaction dispatcher."""
    return harness.dispatcher


@pytest.fixture
def chat(harness: FulfillmentTestHarness) -> FakeChatPlatform:
    """The harness chat platform."""
    return harness.chat


@pytest.fixture
def buyer(harness: FulfillmentTestHarness) -> ChatUser:
    """A registered buyer."""
    return harness.buyer("buyer-1", "alice")


# ============================================================================
# Event Store Fixtures
# ============================================================================


@pytest.fixture
def event_store() -> InMemoryEventStore:
    """Fresh in-memory event store without tracing."""
    return InMemoryEventStore(enable_tracing=False)


@pytest.fixture
def deliveries() -> InMemoryRecordRepository[DeliveryRecord]:
    """Delivery record read model."""
    return InMemoryRecordRepository(DeliveryRecord, enable_tracing=False)


@pytest.fixture
def projection(
    deliveries: InMemoryRecordRepository[DeliveryRecord],
) -> DeliveryRecordProjection:
    """Projection feeding the deliveries fixture."""
    return DeliveryRecordProjection(deliveries, enable_tracing=False)


@pytest.fixture
def order_repo(
    event_store: InMemoryEventStore,
    projection: DeliveryRecordProjection,
) -> OrderRepository:
    """Order repository publishing to the delivery projection."""
    return OrderRepository(event_store, event_publisher=projection, enable_tracing=False)


# ============================================================================
# Record Repository Fixtures
# ============================================================================


@pytest.fixture
def stock_items() -> InMemoryRecordRepository[StockItem]:
    return InMemoryRecordRepository(StockItem, enable_tracing=False)


@pytest.fixture
def coupons_repo() -> InMemoryRecordRepository[Coupon]:
    return InMemoryRecordRepository(Coupon, enable_tracing=False)


@pytest.fixture
def gift_codes_repo() -> InMemoryRecordRepository[GiftCode]:
    return InMemoryRecordRepository(GiftCode, enable_tracing=False)


@pytest.fixture
def reviews_repo() -> InMemoryRecordRepository[Review]:
    return InMemoryRecordRepository(Review, enable_tracing=False)


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def inventory(
    stock_items: InMemoryRecordRepository[StockItem],
    deliveries: InMemoryRecordRepository[DeliveryRecord],
    gift_codes_repo: InMemoryRecordRepository[GiftCode],
) -> InventoryStore:
    """Inventory seeded with the default stock."""
    store = InventoryStore(stock_items, deliveries, gift_codes_repo, enable_tracing=False)
    await store.seed_defaults()
    return store


@pytest.fixture
def coupon_ledger(coupons_repo: InMemoryRecordRepository[Coupon]) -> CouponLedger:
    return CouponLedger(coupons_repo, enable_tracing=False)


@pytest.fixture
def gift_book(
    gift_codes_repo: InMemoryRecordRepository[GiftCode],
    inventory: InventoryStore,
) -> GiftCodeBook:
    return GiftCodeBook(gift_codes_repo, inventory, enable_tracing=False)


@pytest.fixture
def review_book(reviews_repo: InMemoryRecordRepository[Review]) -> ReviewBook:
    return ReviewBook(reviews_repo)


# ============================================================================
# Tracing Fixtures
# ============================================================================


@pytest.fixture
def recording_tracer() -> RecordingTracer:
    """Tracer that records span names and attributes."""
    return RecordingTracer()


# ============================================================================
# SQLite Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def sqlite_connection() -> AsyncGenerator[aiosqlite.Connection, None]:
    """In-memory SQLite connection, closed after the test."""
    if not AIOSQLITE_AVAILABLE:
        pytest.skip("aiosqlite not installed")
    connection = await aiosqlite.connect(":memory:")
    yield connection
    await connection.close()


@pytest_asyncio.fixture
async def sqlite_event_store(tmp_path: Any) -> AsyncGenerator[Any, None]:
    """Initialized file-backed SQLiteEventStore."""
    if not AIOSQLITE_AVAILABLE:
        pytest.skip("aiosqlite not installed")
    from fulfillment.stores.sqlite import SQLiteEventStore

    store = SQLiteEventStore(str(tmp_path / "events.db"), enable_tracing=False)
    await store.initialize()
    yield store
    await store.close()
