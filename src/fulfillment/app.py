"""
Application wiring.

FulfillmentApp builds the stores, services, engine and dispatcher around a
chat platform and an optional payment provider. ``in_memory`` is used by
tests and local runs; ``open_sqlite`` persists events and records in one
SQLite file (events and records use separate connections, WAL mode).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiosqlite

from fulfillment.aggregates.repository import OrderRepository
from fulfillment.collaborators import ChatPlatform, PaymentProvider
from fulfillment.config import ConfigurationStore, Settings
from fulfillment.coupons import CouponLedger
from fulfillment.dispatch import InteractionDispatcher
from fulfillment.engine import OrderLifecycleEngine
from fulfillment.gifts import GiftCodeBook
from fulfillment.inventory import InventoryStore
from fulfillment.observability import Tracer, create_tracer
from fulfillment.payments import ChargeIssuer, PaymentCorrelationAdapter
from fulfillment.projections import DeliveryRecordProjection
from fulfillment.records.in_memory import InMemoryRecordRepository
from fulfillment.records.models import (
    Configuration,
    Coupon,
    DeliveryRecord,
    GiftCode,
    Review,
    StockItem,
)
from fulfillment.records.repository import RecordRepository
from fulfillment.records.sqlite import SQLiteRecordRepository
from fulfillment.reports import SalesReporter
from fulfillment.reviews import ReviewBook
from fulfillment.stores.in_memory import InMemoryEventStore
from fulfillment.stores.interface import EventStore
from fulfillment.stores.sqlite import SQLiteEventStore

logger = logging.getLogger(__name__)

RECORD_MODELS: tuple[type[Any], ...] = (
    StockItem,
    Coupon,
    GiftCode,
    Review,
    Configuration,
    DeliveryRecord,
)


class FulfillmentApp:
    """
    The assembled fulfillment engine.

    Example:
        >>> app = FulfillmentApp.in_memory(Settings(owner_id="1"), chat=platform)
        >>> await app.start()
        >>> reply = await app.dispatcher.dispatch(interaction)
        >>> await app.stop()
    """

    def __init__(
        self,
        *,
        settings: Settings,
        event_store: EventStore,
        repositories: dict[type[Any], RecordRepository[Any]],
        chat: ChatPlatform,
        payment_provider: PaymentProvider | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

        self.settings = settings
        self.event_store = event_store
        self.chat = chat
        self.payment_provider = payment_provider

        self.deliveries: RecordRepository[DeliveryRecord] = repositories[DeliveryRecord]
        self.projection = DeliveryRecordProjection(self.deliveries, tracer=self._tracer)
        self.orders = OrderRepository(
            event_store,
            event_publisher=self.projection,
            tracer=self._tracer,
        )

        self.inventory = InventoryStore(
            repositories[StockItem],
            self.deliveries,
            repositories[GiftCode],
            tracer=self._tracer,
        )
        self.coupons = CouponLedger(repositories[Coupon], tracer=self._tracer)
        self.gifts = GiftCodeBook(repositories[GiftCode], self.inventory, tracer=self._tracer)
        self.reviews = ReviewBook(repositories[Review])
        self.configuration = ConfigurationStore(repositories[Configuration], settings)
        self.reports = SalesReporter(self.deliveries, tracer=self._tracer)

        self.engine = OrderLifecycleEngine(
            orders=self.orders,
            deliveries=self.deliveries,
            inventory=self.inventory,
            coupons=self.coupons,
            gifts=self.gifts,
            reviews=self.reviews,
            chat=chat,
            charges=ChargeIssuer(
                payment_provider,
                expiry_seconds=settings.charge_expiry_seconds,
                tracer=self._tracer,
            ),
            settings=settings,
            tracer=self._tracer,
        )
        self.payments = PaymentCorrelationAdapter(self.engine, tracer=self._tracer)
        self.dispatcher = InteractionDispatcher(
            self.engine,
            self.inventory,
            self.coupons,
            tracer=self._tracer,
        )

        self._closers: list[Any] = []

    @classmethod
    def in_memory(
        cls,
        settings: Settings,
        chat: ChatPlatform,
        payment_provider: PaymentProvider | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> FulfillmentApp:
        tracer = tracer or create_tracer(__name__, enable_tracing)
        return cls(
            settings=settings,
            event_store=InMemoryEventStore(tracer=tracer),
            repositories={
                model: InMemoryRecordRepository(model, tracer=tracer) for model in RECORD_MODELS
            },
            chat=chat,
            payment_provider=payment_provider,
            tracer=tracer,
        )

    @classmethod
    async def open_sqlite(
        cls,
        settings: Settings,
        chat: ChatPlatform,
        payment_provider: PaymentProvider | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> FulfillmentApp:
        """Open (and create if needed) the SQLite database at ``settings.database``."""
        tracer = tracer or create_tracer(__name__, enable_tracing)

        event_store = SQLiteEventStore(settings.database, tracer=tracer)
        await event_store.initialize()

        connection = await aiosqlite.connect(settings.database)
        await connection.execute("PRAGMA busy_timeout = 5000")
        lock = asyncio.Lock()
        repositories: dict[type[Any], RecordRepository[Any]] = {}
        for model in RECORD_MODELS:
            repository = SQLiteRecordRepository(connection, model, tracer=tracer, lock=lock)
            await repository.create_table()
            repositories[model] = repository

        app = cls(
            settings=settings,
            event_store=event_store,
            repositories=repositories,
            chat=chat,
            payment_provider=payment_provider,
            tracer=tracer,
        )
        app._closers = [event_store.close, connection.close]
        logger.info("Opened SQLite database %s", settings.database)
        return app

    async def start(self, seed: bool = True) -> Configuration:
        """Load configuration, seed stock, re-arm timers and register the webhook."""
        config = await self.configuration.load()
        self.engine.reconfigure(config)
        if seed:
            await self.inventory.seed_defaults()
        await self.engine.restore_timers()

        webhook_url = self.settings.url_for("efi-webhook")
        if self.payment_provider is not None and self.payment_provider.enabled and webhook_url:
            try:
                await self.payment_provider.configure_webhook(webhook_url)
            except Exception:
                logger.warning("Could not register payment webhook %s", webhook_url, exc_info=True)
        return config

    async def reload_configuration(self) -> Configuration:
        config = await self.configuration.reload()
        self.engine.reconfigure(config)
        return config

    async def save_configuration(self, config: Configuration) -> bool:
        """Persist and apply a configuration; False when managed externally."""
        saved = await self.configuration.save(config)
        if saved:
            self.engine.reconfigure(config)
        return saved

    async def rebuild_projections(self) -> int:
        return await self.projection.rebuild(self.event_store)

    async def stop(self) -> None:
        await self.engine.shutdown()
        for close in self._closers:
            await close()
        self._closers = []


__all__ = ["FulfillmentApp", "RECORD_MODELS"]
