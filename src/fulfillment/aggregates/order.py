"""
Order aggregate: the delivery-record state machine.

    Created -> PendingPayment -> Paid -> ProofRequested
            -> DeliveredPendingReview -> Closed

Abandoned is absorbing and reachable from Created/PendingPayment.
ManualRecovery is entered when an administrator synthesizes an order
after payment correlation failed; it continues into ProofRequested.
Gift orders go from Created straight to Paid.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel

from fulfillment.aggregates.base import AggregateRoot
from fulfillment.events.orders import (
    ORDER_AGGREGATE_TYPE,
    ManualRecoveryStarted,
    OrderAbandoned,
    OrderClosed,
    OrderCreated,
    OrderOrigin,
    OrderPaid,
    PaymentRequested,
    ProofRequested,
    ProofSubmitted,
)
from fulfillment.exceptions import InvalidTransitionError
from fulfillment.handlers import handles


class OrderStatus(str, Enum):
    CREATED = "created"
    PENDING_PAYMENT = "pending_payment"
    PAID = "paid"
    MANUAL_RECOVERY = "manual_recovery"
    PROOF_REQUESTED = "proof_requested"
    DELIVERED_PENDING_REVIEW = "delivered_pending_review"
    CLOSED = "closed"
    ABANDONED = "abandoned"

    @property
    def status_code(self) -> int:
        """Numeric code mirrored on the delivery record."""
        return STATUS_CODES.get(self, 102)

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.CLOSED, OrderStatus.ABANDONED)

    @property
    def is_finalized(self) -> bool:
        """Proof has been accepted or the order is over."""
        return self in (
            OrderStatus.DELIVERED_PENDING_REVIEW,
            OrderStatus.CLOSED,
            OrderStatus.ABANDONED,
        )


STATUS_CODES: dict[OrderStatus, int] = {
    OrderStatus.CLOSED: 200,
    OrderStatus.ABANDONED: 410,
}

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.CREATED: frozenset(
        {
            OrderStatus.PENDING_PAYMENT,
            OrderStatus.PAID,
            OrderStatus.MANUAL_RECOVERY,
            OrderStatus.ABANDONED,
        }
    ),
    OrderStatus.PENDING_PAYMENT: frozenset({OrderStatus.PAID, OrderStatus.ABANDONED}),
    OrderStatus.PAID: frozenset({OrderStatus.PROOF_REQUESTED}),
    OrderStatus.MANUAL_RECOVERY: frozenset({OrderStatus.PROOF_REQUESTED}),
    OrderStatus.PROOF_REQUESTED: frozenset({OrderStatus.DELIVERED_PENDING_REVIEW}),
    OrderStatus.DELIVERED_PENDING_REVIEW: frozenset({OrderStatus.CLOSED}),
    OrderStatus.CLOSED: frozenset(),
    OrderStatus.ABANDONED: frozenset(),
}


class OrderState(BaseModel):
    order_id: int
    buyer_id: str = ""
    item_id: str = ""
    item_name: str = ""
    unit_price: Decimal = Decimal("0")
    quantity: int = 0
    origin: OrderOrigin = "purchase"
    status: OrderStatus = OrderStatus.CREATED
    ticket_channel_id: str | None = None
    delivery_channel_id: str | None = None
    txid: str | None = None
    payment_reference: str | None = None
    gift_code: str | None = None
    upload_url: str | None = None
    photo_url: str | None = None
    note: str | None = None
    close_reason: str | None = None
    created_at: datetime | None = None
    paid_at: datetime | None = None
    closed_at: datetime | None = None

    @property
    def total(self) -> Decimal:
        return self.unit_price * self.quantity


class OrderAggregate(AggregateRoot[OrderState]):
    """
    Event-sourced order.

    Command methods validate the transition against ALLOWED_TRANSITIONS and
    raise InvalidTransitionError before any event is recorded.
    """

    aggregate_type = ORDER_AGGREGATE_TYPE
    unregistered_event_handling = "warn"

    def initial_state(self) -> OrderState:
        return OrderState(order_id=self.aggregate_id)

    @property
    def current(self) -> OrderState:
        """Current state; the initial state until OrderCreated is applied."""
        return self._state

    @property
    def status(self) -> OrderStatus:
        return self.current.status

    @property
    def is_paid(self) -> bool:
        return self.current.paid_at is not None

    def can_transition(self, target: OrderStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def _ensure_transition(self, target: OrderStatus) -> None:
        if not self.can_transition(target):
            raise InvalidTransitionError(self.aggregate_id, self.status.value, target.value)

    # =========================================================================
    # Commands
    # =========================================================================

    def create(
        self,
        buyer_id: str,
        item_id: str,
        item_name: str,
        unit_price: Decimal,
        quantity: int,
        origin: OrderOrigin = "purchase",
        ticket_channel_id: str | None = None,
        gift_code: str | None = None,
        actor_id: str | None = None,
    ) -> None:
        if self.version > 0:
            raise InvalidTransitionError(self.aggregate_id, self.status.value, "created")
        self._record(
            OrderCreated(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                actor_id=actor_id,
                buyer_id=buyer_id,
                item_id=item_id,
                item_name=item_name,
                unit_price=unit_price,
                quantity=quantity,
                origin=origin,
                ticket_channel_id=ticket_channel_id,
                gift_code=gift_code,
            )
        )

    def request_payment(self, txid: str | None = None) -> None:
        self._ensure_transition(OrderStatus.PENDING_PAYMENT)
        self._record(
            PaymentRequested(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                amount=self.current.total,
                txid=txid,
            )
        )

    def mark_paid(
        self,
        reference: str,
        delivery_channel_id: str | None = None,
        actor_id: str | None = None,
    ) -> None:
        self._ensure_transition(OrderStatus.PAID)
        self._record(
            OrderPaid(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                actor_id=actor_id,
                reference=reference,
                delivery_channel_id=delivery_channel_id,
            )
        )

    def start_manual_recovery(
        self,
        requested_by: str,
        channel_id: str,
        missing_order_id: int | None = None,
    ) -> None:
        self._ensure_transition(OrderStatus.MANUAL_RECOVERY)
        self._record(
            ManualRecoveryStarted(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                actor_id=requested_by,
                requested_by=requested_by,
                channel_id=channel_id,
                missing_order_id=missing_order_id,
            )
        )

    def request_proof(self, upload_url: str, actor_id: str | None = None) -> None:
        self._ensure_transition(OrderStatus.PROOF_REQUESTED)
        self._record(
            ProofRequested(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                actor_id=actor_id,
                upload_url=upload_url,
            )
        )

    def submit_proof(self, photo_url: str, note: str | None = None) -> None:
        self._ensure_transition(OrderStatus.DELIVERED_PENDING_REVIEW)
        self._record(
            ProofSubmitted(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                photo_url=photo_url,
                note=note,
            )
        )

    def close(self, reason: str) -> None:
        self._ensure_transition(OrderStatus.CLOSED)
        self._record(
            OrderClosed(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                reason=reason,
            )
        )

    def abandon(self, reason: str) -> None:
        self._ensure_transition(OrderStatus.ABANDONED)
        self._record(
            OrderAbandoned(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                reason=reason,
            )
        )

    # =========================================================================
    # Event handlers
    # =========================================================================

    def _update(self, **changes: object) -> None:
        self._state = self.current.model_copy(update=changes)

    @handles(OrderCreated)
    def _on_created(self, event: OrderCreated) -> None:
        self._state = OrderState(
            order_id=self.aggregate_id,
            buyer_id=event.buyer_id,
            item_id=event.item_id,
            item_name=event.item_name,
            unit_price=event.unit_price,
            quantity=event.quantity,
            origin=event.origin,
            ticket_channel_id=event.ticket_channel_id,
            gift_code=event.gift_code,
            created_at=event.occurred_at,
        )

    @handles(PaymentRequested)
    def _on_payment_requested(self, event: PaymentRequested) -> None:
        self._update(status=OrderStatus.PENDING_PAYMENT, txid=event.txid)

    @handles(OrderPaid)
    def _on_paid(self, event: OrderPaid) -> None:
        self._update(
            status=OrderStatus.PAID,
            payment_reference=event.reference,
            delivery_channel_id=event.delivery_channel_id,
            paid_at=event.occurred_at,
        )

    @handles(ManualRecoveryStarted)
    def _on_manual_recovery(self, event: ManualRecoveryStarted) -> None:
        self._update(
            status=OrderStatus.MANUAL_RECOVERY,
            ticket_channel_id=self.current.ticket_channel_id or event.channel_id,
        )

    @handles(ProofRequested)
    def _on_proof_requested(self, event: ProofRequested) -> None:
        self._update(status=OrderStatus.PROOF_REQUESTED, upload_url=event.upload_url)

    @handles(ProofSubmitted)
    def _on_proof_submitted(self, event: ProofSubmitted) -> None:
        self._update(
            status=OrderStatus.DELIVERED_PENDING_REVIEW,
            photo_url=event.photo_url,
            note=event.note,
        )

    @handles(OrderClosed)
    def _on_closed(self, event: OrderClosed) -> None:
        self._update(
            status=OrderStatus.CLOSED,
            close_reason=event.reason,
            closed_at=event.occurred_at,
        )

    @handles(OrderAbandoned)
    def _on_abandoned(self, event: OrderAbandoned) -> None:
        self._update(
            status=OrderStatus.ABANDONED,
            close_reason=event.reason,
            closed_at=event.occurred_at,
        )


__all__ = [
    "ALLOWED_TRANSITIONS",
    "STATUS_CODES",
    "OrderAggregate",
    "OrderState",
    "OrderStatus",
]
