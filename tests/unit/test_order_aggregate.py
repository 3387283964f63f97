"""
Unit tests for the order aggregate.

Tests cover:
- Status codes and terminal/finalized flags
- The allowed transition table
- Command validation (InvalidTransitionError before any event is recorded)
- State reconstruction from history
- Gift and manual recovery paths
"""

from decimal import Decimal

import pytest

from fulfillment.aggregates.order import (
    ALLOWED_TRANSITIONS,
    OrderAggregate,
    OrderStatus,
)
from fulfillment.events.orders import OrderCreated, OrderPaid, PaymentRequested
from fulfillment.exceptions import InvalidTransitionError
from tests.fixtures import build_order

# =============================================================================
# OrderStatus
# =============================================================================


class TestOrderStatus:
    def test_closed_maps_to_200(self) -> None:
        assert OrderStatus.CLOSED.status_code == 200

    def test_abandoned_maps_to_410(self) -> None:
        assert OrderStatus.ABANDONED.status_code == 410

    @pytest.mark.parametrize(
        "status",
        [s for s in OrderStatus if s not in (OrderStatus.CLOSED, OrderStatus.ABANDONED)],
    )
    def test_open_statuses_map_to_102(self, status: OrderStatus) -> None:
        assert status.status_code == 102

    def test_terminal_statuses(self) -> None:
        assert {s for s in OrderStatus if s.is_terminal} == {
            OrderStatus.CLOSED,
            OrderStatus.ABANDONED,
        }

    def test_finalized_includes_pending_review(self) -> None:
        assert OrderStatus.DELIVERED_PENDING_REVIEW.is_finalized
        assert not OrderStatus.PROOF_REQUESTED.is_finalized

    def test_terminal_statuses_have_no_exits(self) -> None:
        assert ALLOWED_TRANSITIONS[OrderStatus.CLOSED] == frozenset()
        assert ALLOWED_TRANSITIONS[OrderStatus.ABANDONED] == frozenset()

    def test_abandoned_only_reachable_before_payment(self) -> None:
        sources = {s for s, targets in ALLOWED_TRANSITIONS.items() if OrderStatus.ABANDONED in targets}
        assert sources == {OrderStatus.CREATED, OrderStatus.PENDING_PAYMENT}


# =============================================================================
# Purchase path
# =============================================================================


class TestPurchasePath:
    def test_create_snapshots_item(self) -> None:
        order = build_order(7, OrderStatus.CREATED)

        state = order.current
        assert state.order_id == 7
        assert state.status == OrderStatus.CREATED
        assert state.unit_price == Decimal("0.70")
        assert state.quantity == 10
        assert state.total == Decimal("7.00")
        assert state.created_at is not None

    def test_request_payment_records_txid(self) -> None:
        order = build_order(3, OrderStatus.PENDING_PAYMENT)

        assert order.status == OrderStatus.PENDING_PAYMENT
        assert order.current.txid == "TICKET3T1700000000000"
        events = order.uncommitted_events
        assert isinstance(events[-1], PaymentRequested)
        assert events[-1].amount == Decimal("7.00")

    def test_mark_paid_sets_paid_at_and_channel(self) -> None:
        order = build_order(1, OrderStatus.PAID)

        assert order.is_paid
        assert order.current.delivery_channel_id == "delivery-1"
        assert order.current.payment_reference == "TICKET-test"

    def test_full_path_reaches_closed(self) -> None:
        order = build_order(1, OrderStatus.CLOSED)

        assert order.status == OrderStatus.CLOSED
        assert order.current.close_reason == "reviewed"
        assert order.current.closed_at is not None
        assert order.version == 6

    def test_versions_are_sequential(self) -> None:
        order = build_order(1, OrderStatus.DELIVERED_PENDING_REVIEW)

        assert [e.aggregate_version for e in order.uncommitted_events] == [1, 2, 3, 4, 5]


# =============================================================================
# Guarded transitions
# =============================================================================


class TestGuardedTransitions:
    def test_cannot_create_twice(self) -> None:
        order = build_order(1, OrderStatus.CREATED)

        with pytest.raises(InvalidTransitionError):
            order.create(
                buyer_id="b",
                item_id="MANGO",
                item_name="MANGO",
                unit_price=Decimal("1"),
                quantity=1,
            )

    def test_paid_order_cannot_be_paid_again(self) -> None:
        order = build_order(1, OrderStatus.PAID)
        events_before = len(order.uncommitted_events)

        with pytest.raises(InvalidTransitionError) as exc_info:
            order.mark_paid("again")

        assert exc_info.value.current_status == "paid"
        assert len(order.uncommitted_events) == events_before

    def test_paid_order_cannot_be_abandoned(self) -> None:
        order = build_order(1, OrderStatus.PAID)

        with pytest.raises(InvalidTransitionError):
            order.abandon("timeout")

    def test_abandoned_order_rejects_payment(self) -> None:
        order = build_order(1, OrderStatus.ABANDONED)

        assert order.status == OrderStatus.ABANDONED
        assert not order.can_transition(OrderStatus.PAID)
        with pytest.raises(InvalidTransitionError):
            order.mark_paid("late")

    def test_proof_requires_proof_request(self) -> None:
        order = build_order(1, OrderStatus.PAID)

        with pytest.raises(InvalidTransitionError):
            order.submit_proof("https://shop.test/p.png")

    def test_closed_order_rejects_everything(self) -> None:
        order = build_order(1, OrderStatus.CLOSED)

        for target in OrderStatus:
            assert not order.can_transition(target)


# =============================================================================
# Alternate paths
# =============================================================================


class TestAlternatePaths:
    def test_gift_order_skips_pending_payment(self) -> None:
        order = OrderAggregate(5)
        order.create(
            buyer_id="redeemer",
            item_id="MANGO",
            item_name="MANGO",
            unit_price=Decimal("0.70"),
            quantity=1,
            origin="gift",
            gift_code="PRESENTE-ABCD1234",
        )
        order.mark_paid("gift:PRESENTE-ABCD1234")

        assert order.status == OrderStatus.PAID
        assert order.current.origin == "gift"
        assert order.current.gift_code == "PRESENTE-ABCD1234"

    def test_manual_recovery_continues_to_proof(self) -> None:
        order = OrderAggregate(9)
        order.create(
            buyer_id="buyer",
            item_id="MANGO",
            item_name="MANGO",
            unit_price=Decimal("0.70"),
            quantity=1,
            origin="manual",
        )
        order.start_manual_recovery("owner", "channel-7", missing_order_id=4)

        assert order.status == OrderStatus.MANUAL_RECOVERY
        assert order.current.ticket_channel_id == "channel-7"

        order.request_proof("https://shop.test/upload-proof/9")
        assert order.status == OrderStatus.PROOF_REQUESTED


# =============================================================================
# History
# =============================================================================


class TestLoadFromHistory:
    def test_rebuilds_state(self) -> None:
        source = build_order(2, OrderStatus.PAID)
        events = list(source.uncommitted_events)

        replayed = OrderAggregate(2)
        replayed.load_from_history(events)

        assert replayed.version == 3
        assert replayed.current == source.current
        assert not replayed.has_uncommitted_events

    def test_history_types(self) -> None:
        order = build_order(2, OrderStatus.PAID)

        assert [type(e) for e in order.uncommitted_events] == [
            OrderCreated,
            PaymentRequested,
            OrderPaid,
        ]
