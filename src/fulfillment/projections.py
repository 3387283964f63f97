"""
Delivery record projection.

Keeps the DeliveryRecord read model in step with order events. The order
repository publishes committed events here; ``rebuild`` replays the whole
order history from the event store.
"""

import logging
from typing import Any

from fulfillment.aggregates.order import OrderStatus
from fulfillment.events.base import DomainEvent
from fulfillment.events.orders import (
    ORDER_AGGREGATE_TYPE,
    ManualRecoveryStarted,
    OrderAbandoned,
    OrderClosed,
    OrderCreated,
    OrderPaid,
    PaymentRequested,
    ProofRequested,
    ProofSubmitted,
)
from fulfillment.exceptions import UnhandledEventError
from fulfillment.handlers import collect_handlers, handles
from fulfillment.observability import (
    ATTR_EVENT_TYPE,
    ATTR_ORDER_ID,
    Tracer,
    create_tracer,
)
from fulfillment.records.models import DeliveryRecord
from fulfillment.records.repository import RecordRepository
from fulfillment.stores.interface import EventStore

logger = logging.getLogger(__name__)


class DeliveryRecordProjection:
    """
    Projects order events onto DeliveryRecord rows.

    Handlers are declared with @handles and discovered when the class is
    created. Events for orders without a record (other than OrderCreated)
    are logged and skipped.

    Example:
        >>> projection = DeliveryRecordProjection(InMemoryRecordRepository(DeliveryRecord))
        >>> repo = OrderRepository(store, event_publisher=projection)
    """

    unregistered_event_handling = "ignore"

    def __init__(
        self,
        repository: RecordRepository[DeliveryRecord],
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._repository = repository
        self._handlers = collect_handlers(type(self))

    @property
    def repository(self) -> RecordRepository[DeliveryRecord]:
        return self._repository

    async def publish(self, events: list[DomainEvent]) -> None:
        for event in events:
            await self.handle(event)

    async def handle(self, event: DomainEvent) -> None:
        handler_name = self._handlers.get(type(event))
        if handler_name is None:
            if self.unregistered_event_handling == "error":
                raise UnhandledEventError(
                    event.event_type,
                    type(self).__name__,
                    sorted(t.__name__ for t in self._handlers),
                )
            return

        with self._tracer.span(
            "fulfillment.projection.handle",
            {ATTR_EVENT_TYPE: event.event_type, ATTR_ORDER_ID: event.aggregate_id},
        ):
            await getattr(self, handler_name)(event)

    async def rebuild(self, event_store: EventStore) -> int:
        """Replay every order event; returns the number of events applied."""
        events = await event_store.read_all(ORDER_AGGREGATE_TYPE)
        await self.publish(events)
        logger.info("Rebuilt delivery records from %d events", len(events))
        return len(events)

    async def _update(self, event: DomainEvent, **changes: Any) -> None:
        record = await self._repository.get(event.aggregate_id)
        if record is None:
            logger.warning(
                "No delivery record for order %s, skipping %s",
                event.aggregate_id,
                event.event_type,
                extra={"order_id": event.aggregate_id},
            )
            return
        status = changes.get("status")
        for name, value in changes.items():
            setattr(record, name, value.value if isinstance(value, OrderStatus) else value)
        if isinstance(status, OrderStatus):
            record.status_code = status.status_code
        await self._repository.save(record)

    @handles(OrderCreated)
    async def _on_created(self, event: OrderCreated) -> None:
        await self._repository.save(
            DeliveryRecord(
                id=event.aggregate_id,
                buyer_id=event.buyer_id,
                item_id=event.item_id,
                item_name=event.item_name,
                unit_price=event.unit_price,
                quantity=event.quantity,
                origin=event.origin,
                status=OrderStatus.CREATED.value,
                status_code=OrderStatus.CREATED.status_code,
                ticket_channel_id=event.ticket_channel_id,
                gift_code=event.gift_code,
                created_at=event.occurred_at,
            )
        )

    @handles(PaymentRequested)
    async def _on_payment_requested(self, event: PaymentRequested) -> None:
        await self._update(event, status=OrderStatus.PENDING_PAYMENT, txid=event.txid)

    @handles(OrderPaid)
    async def _on_paid(self, event: OrderPaid) -> None:
        await self._update(
            event,
            status=OrderStatus.PAID,
            payment_reference=event.reference,
            delivery_channel_id=event.delivery_channel_id,
            paid_at=event.occurred_at,
        )

    @handles(ManualRecoveryStarted)
    async def _on_manual_recovery(self, event: ManualRecoveryStarted) -> None:
        await self._update(
            event,
            status=OrderStatus.MANUAL_RECOVERY,
            ticket_channel_id=event.channel_id,
        )

    @handles(ProofRequested)
    async def _on_proof_requested(self, event: ProofRequested) -> None:
        await self._update(event, status=OrderStatus.PROOF_REQUESTED)

    @handles(ProofSubmitted)
    async def _on_proof_submitted(self, event: ProofSubmitted) -> None:
        await self._update(
            event,
            status=OrderStatus.DELIVERED_PENDING_REVIEW,
            photo_url=event.photo_url,
            note=event.note,
        )

    @handles(OrderClosed)
    async def _on_closed(self, event: OrderClosed) -> None:
        await self._update(
            event,
            status=OrderStatus.CLOSED,
            close_reason=event.reason,
            closed_at=event.occurred_at,
        )

    @handles(OrderAbandoned)
    async def _on_abandoned(self, event: OrderAbandoned) -> None:
        await self._update(
            event,
            status=OrderStatus.ABANDONED,
            close_reason=event.reason,
            closed_at=event.occurred_at,
        )


__all__ = ["DeliveryRecordProjection"]
