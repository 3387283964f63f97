"""
Order persistence.

Loading replays the order's stream; saving appends whatever the aggregate
recorded since it was loaded and then hands those events to the publisher
(the delivery record projection). Nothing is published for an append that
lost an optimistic-lock race.
"""

import asyncio
import logging

from fulfillment.aggregates.order import OrderAggregate
from fulfillment.events.orders import ORDER_AGGREGATE_TYPE
from fulfillment.exceptions import OrderNotFoundError
from fulfillment.observability import Tracer, create_tracer
from fulfillment.observability.attributes import (
    ATTR_AGGREGATE_ID,
    ATTR_EVENT_COUNT,
    ATTR_ORDER_STATUS,
    ATTR_VERSION,
)
from fulfillment.stores.interface import EventPublisher, EventStore

logger = logging.getLogger(__name__)


class OrderRepository:
    """
    Example:
        >>> repo = OrderRepository(store, event_publisher=projection)
        >>> order = repo.create_new(await repo.next_id())
        >>> order.create(buyer_id="42", item_id="MANGO", ...)
        >>> await repo.save(order)
    """

    aggregate_type = ORDER_AGGREGATE_TYPE

    def __init__(
        self,
        event_store: EventStore,
        event_publisher: EventPublisher | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

        self._store = event_store
        self._publisher = event_publisher
        self._last_id = 0
        self._id_lock = asyncio.Lock()

    async def next_id(self) -> int:
        """
        Order ids only grow: one past the larger of the last id handed out
        here and the highest id already stored.
        """
        async with self._id_lock:
            stored = await self._store.max_aggregate_id(self.aggregate_type)
            self._last_id = max(self._last_id, stored) + 1
            return self._last_id

    def create_new(self, order_id: int) -> OrderAggregate:
        return OrderAggregate(order_id)

    async def load(self, order_id: int) -> OrderAggregate:
        """
        Raises:
            OrderNotFoundError: the order has no events
        """
        with self._tracer.span("fulfillment.repository.load", {ATTR_AGGREGATE_ID: order_id}):
            stream = await self._store.read_stream(self.aggregate_type, order_id)
            if not stream.events:
                raise OrderNotFoundError(order_id)
            order = OrderAggregate(order_id)
            order.load_from_history(stream.events)
        logger.debug("Loaded order %s at version %d", order_id, order.version)
        return order

    async def get(self, order_id: int) -> OrderAggregate | None:
        try:
            return await self.load(order_id)
        except OrderNotFoundError:
            return None

    async def exists(self, order_id: int) -> bool:
        return await self._store.stream_version(self.aggregate_type, order_id) > 0

    async def save(self, order: OrderAggregate) -> None:
        """
        Raises:
            OptimisticLockError: the stream moved on since ``order`` was loaded
        """
        pending = order.uncommitted_events
        if not pending:
            return

        with self._tracer.span(
            "fulfillment.repository.save",
            {
                ATTR_AGGREGATE_ID: order.aggregate_id,
                ATTR_EVENT_COUNT: len(pending),
                ATTR_VERSION: order.version,
                ATTR_ORDER_STATUS: order.status.value,
            },
        ):
            await self._store.append(
                self.aggregate_type,
                order.aggregate_id,
                pending,
                expected_version=order.version - len(pending),
            )
            order.mark_events_as_committed()
            if self._publisher is not None:
                await self._publisher.publish(pending)


__all__ = ["OrderRepository"]
