"""
Order lifecycle engine.

Owns every order transition:

    create_order -> PendingPayment --(payment | admin)--> Paid
        --confirm_delivery--> ProofRequested --submit_proof--> DeliveredPendingReview
        --submit_review--> Closed

Idle timers abandon unpaid orders and close orders whose review never
arrives. Each transition runs under the order's lock and re-reads the
order from its event stream, so a timer that fires after the order moved
on does nothing.

Collaborator calls are either critical (ticket and delivery channel
creation, the delivery confirmation post) and abort the transition with
UpstreamError, or best-effort (notices, role grants, channel cleanup) and
only logged on failure.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any

from fulfillment import messages
from fulfillment.aggregates.order import OrderAggregate, OrderState, OrderStatus
from fulfillment.aggregates.repository import OrderRepository
from fulfillment.collaborators import ChatPlatform, ChatUser, Message
from fulfillment.config import Settings
from fulfillment.coupons import CouponLedger, PriceQuote
from fulfillment.exceptions import (
    AlreadyFinalizedError,
    AlreadyReviewedError,
    ChannelBusyError,
    InvalidTransitionError,
    MissingProofError,
    NotFoundError,
    OrderNotFoundError,
    UnauthorizedError,
    UpstreamError,
    ValidationError,
)
from fulfillment.gifts import GiftCodeBook
from fulfillment.inventory import InventoryStore, parse_quantity
from fulfillment.locks import KeyedLockManager
from fulfillment.observability import (
    ATTR_ACTOR_ID,
    ATTR_CHANNEL_ID,
    ATTR_ITEM_ID,
    ATTR_ORDER_ID,
    ATTR_ORDER_STATUS,
    Tracer,
    create_tracer,
)
from fulfillment.payments import ChargeIssuer, ChargeResult
from fulfillment.records.models import Configuration, DeliveryRecord, GiftCode, Review, StockItem
from fulfillment.records.query import Filter, Query
from fulfillment.records.repository import RecordRepository
from fulfillment.reviews import ReviewBook, parse_rating
from fulfillment.scheduling import TimerRegistry
from fulfillment.tasks import BackgroundTaskManager

logger = logging.getLogger(__name__)

PAYMENT_TIMER = "payment"
REVIEW_TIMER = "review"

PRE_PAYMENT = frozenset({OrderStatus.CREATED, OrderStatus.PENDING_PAYMENT})
ACTIVE_STATUSES = [s.value for s in OrderStatus if not s.is_terminal]


@dataclass(frozen=True)
class OrderTicket:
    """A new order together with the channel opened for it."""

    order: OrderState
    ticket_channel_id: str
    charge: ChargeResult | None = None


@dataclass(frozen=True)
class DeliveryConfirmation:
    """
    Outcome of an administrator delivery confirmation.

    Either ``upload_url`` is set (the order now waits for proof) or
    ``recovery_menu`` is set (the order was not found and the administrator
    must pick the delivered item).
    """

    order_id: int | None = None
    upload_url: str | None = None
    recovery_menu: Message | None = None

    @property
    def needs_recovery(self) -> bool:
        return self.recovery_menu is not None


class OrderLifecycleEngine:
    """
    Order state machine plus the collaborator side effects of each transition.

    Example:
        >>> ticket = await engine.create_order(buyer, "MANGO", 10)
        >>> ticket.order.status
        <OrderStatus.PENDING_PAYMENT: 'pending_payment'>
        >>> await engine.confirm_payment(ticket.order.order_id, "TICKET1T1700000000000")
        True
    """

    def __init__(
        self,
        *,
        orders: OrderRepository,
        deliveries: RecordRepository[DeliveryRecord],
        inventory: InventoryStore,
        coupons: CouponLedger,
        gifts: GiftCodeBook,
        reviews: ReviewBook,
        chat: ChatPlatform,
        charges: ChargeIssuer,
        settings: Settings,
        configuration: Configuration | None = None,
        timers: TimerRegistry | None = None,
        tasks: BackgroundTaskManager | None = None,
        locks: KeyedLockManager | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

        self._orders = orders
        self._deliveries = deliveries
        self._inventory = inventory
        self._coupons = coupons
        self._gifts = gifts
        self._reviews = reviews
        self._chat = chat
        self._charges = charges
        self._settings = settings
        self._config = configuration or Configuration()
        self._timers = timers or TimerRegistry(tracer=self._tracer)
        self._tasks = tasks or BackgroundTaskManager()
        self._locks = locks or KeyedLockManager(tracer=self._tracer)

    # =========================================================================
    # Configuration
    # =========================================================================

    @property
    def configuration(self) -> Configuration:
        return self._config

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def timers(self) -> TimerRegistry:
        return self._timers

    @property
    def tasks(self) -> BackgroundTaskManager:
        return self._tasks

    def reconfigure(self, configuration: Configuration) -> None:
        """Swap in a new configuration snapshot."""
        self._config = configuration.model_copy()
        logger.info("Engine reconfigured")

    def is_owner(self, actor_id: str | None) -> bool:
        return bool(self._settings.owner_id) and actor_id == self._settings.owner_id

    def require_owner(self, actor_id: str, action: str) -> None:
        """
        Raises:
            UnauthorizedError: actor is not the configured owner
        """
        if not self.is_owner(actor_id):
            logger.warning(
                "Rejected %s by non-owner %s",
                action,
                actor_id,
                extra={"actor_id": actor_id},
            )
            raise UnauthorizedError(actor_id, action)

    # =========================================================================
    # Collaborator helpers
    # =========================================================================

    async def _critical(self, operation: str, call: Awaitable[Any]) -> Any:
        try:
            return await call
        except Exception as e:
            logger.error("Critical call %s failed: %s", operation, e, exc_info=True)
            raise UpstreamError(operation, e) from e

    async def _best_effort(self, operation: str, call: Awaitable[Any], order_id: int | None = None) -> Any:
        try:
            return await call
        except Exception:
            logger.warning(
                "Best-effort call %s failed",
                operation,
                exc_info=True,
                extra={"order_id": order_id},
            )
            return None

    async def _post(self, channel_id: str | None, message: Message, order_id: int | None = None) -> None:
        if channel_id:
            await self._best_effort("send_message", self._chat.send_message(channel_id, message), order_id)

    async def _delete_channel(self, channel_id: str, reason: str) -> None:
        await self._best_effort("delete_channel", self._chat.delete_channel(channel_id, reason))

    def _delete_channel_later(self, channel_id: str | None, reason: str) -> None:
        if not channel_id:
            return
        self._tasks.submit(
            self._delete_channel(channel_id, reason),
            delay=self._settings.cleanup_delay,
            name=f"delete-channel-{channel_id}",
        )

    def _require_base_url(self, path: str) -> str:
        url = self._settings.url_for(path)
        if url is None:
            raise ValidationError("BASE_URL is not configured; cannot build links")
        return url

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_order(self, order_id: int) -> OrderState:
        """
        Raises:
            OrderNotFoundError: no such order
        """
        return (await self._orders.load(order_id)).current

    async def list_buyable_items(self) -> list[StockItem]:
        return await self._inventory.list_buyable_items()

    async def active_order_for_channel(self, channel_id: str) -> DeliveryRecord | None:
        found = await self._deliveries.find(
            Query(
                filters=[
                    Filter.eq("ticket_channel_id", channel_id),
                    Filter.in_("status", ACTIVE_STATUSES),
                ],
                order_by="id",
                descending=True,
                limit=1,
            )
        )
        return found[0] if found else None

    # =========================================================================
    # Purchase
    # =========================================================================

    async def create_order(self, buyer: ChatUser, item_id: str, quantity: Any) -> OrderTicket:
        """
        Open a ticket and an order in PendingPayment.

        Raises:
            InvalidQuantityError: quantity not a positive integer
            ItemNotFoundError: no such item
            InsufficientStockError: quantity above stock on hand
            UpstreamError: the ticket channel could not be created
        """
        item = await self._inventory.reserve_check(item_id, quantity)
        requested = parse_quantity(quantity)

        with self._tracer.span(
            "fulfillment.engine.create_order",
            {ATTR_ITEM_ID: item.id, ATTR_ACTOR_ID: buyer.id},
        ):
            members = [buyer.id] + ([self._settings.owner_id] if self._settings.owner_id else [])
            channel_id: str = await self._critical(
                "create_channel",
                self._chat.create_channel(
                    messages.ticket_channel_name(item.name, buyer.username),
                    members,
                ),
            )

            order_id = await self._orders.next_id()
            order = self._orders.create_new(order_id)
            order.create(
                buyer_id=buyer.id,
                item_id=item.id,
                item_name=item.name,
                unit_price=item.price,
                quantity=requested,
                origin="purchase",
                ticket_channel_id=channel_id,
                actor_id=buyer.id,
            )
            charge = await self._charges.issue(order_id, order.current.total)
            order.request_payment(txid=charge.txid)

            async with self._locks.acquire(order_id):
                try:
                    await self._orders.save(order)
                except Exception:
                    if charge.txid:
                        logger.error(
                            "Order %s was not saved; charge %s has no order behind it",
                            order_id,
                            charge.txid,
                            extra={"order_id": order_id, "txid": charge.txid},
                        )
                    self._delete_channel_later(channel_id, "Order could not be saved")
                    raise
                self._timers.schedule(
                    order_id,
                    PAYMENT_TIMER,
                    self._settings.payment_timeout,
                    lambda: self.expire_payment(order_id),
                )

        logger.info(
            "Created order %s: %dx %s for %s",
            order_id,
            requested,
            item.id,
            buyer.id,
            extra={"order_id": order_id, "item_id": item.id, "channel_id": channel_id},
        )

        await self._best_effort(
            "set_topic",
            self._chat.set_topic(channel_id, f"Purchase ticket for {buyer.username} (Record ID: {order_id})"),
            order_id,
        )
        if charge.qr_message is not None:
            await self._post(channel_id, charge.qr_message, order_id)
        await self._post(
            channel_id,
            messages.ticket_welcome(
                order_id,
                buyer.id,
                self._settings.owner_id,
                item,
                requested,
                order.current.total,
                charge.payment_text,
            ),
            order_id,
        )
        if self._settings.owner_id:
            await self._post(
                channel_id,
                messages.owner_delivery_prompt(order_id, self._settings.owner_id),
                order_id,
            )

        return OrderTicket(order=order.current, ticket_channel_id=channel_id, charge=charge)

    async def expire_payment(self, order_id: int) -> bool:
        """
        Payment timer expiry: abandon the order if it is still unpaid.

        Returns True if the order was abandoned.
        """
        async with self._locks.acquire(order_id):
            order = await self._orders.get(order_id)
            if order is None or order.status not in PRE_PAYMENT:
                return False
            order.abandon("payment timeout")
            await self._orders.save(order)

        state = order.current
        logger.info(
            "Order %s abandoned after payment timeout",
            order_id,
            extra={"order_id": order_id, "channel_id": state.ticket_channel_id},
        )
        await self._post(state.ticket_channel_id, messages.INACTIVE_TICKET, order_id)
        self._delete_channel_later(state.ticket_channel_id, "Closed for payment inactivity")
        return True

    async def close_ticket(self, channel_id: str, actor_id: str | None = None) -> int | None:
        """
        Close a ticket channel; an unpaid order in it is abandoned.

        Returns the abandoned order id, if any.
        """
        abandoned: int | None = None
        with self._tracer.span(
            "fulfillment.engine.close_ticket",
            {ATTR_CHANNEL_ID: channel_id, ATTR_ACTOR_ID: actor_id or ""},
        ):
            record = await self.active_order_for_channel(channel_id)
            if record is not None:
                async with self._locks.acquire(record.id):
                    order = await self._orders.get(record.id)
                    if order is not None and order.status in PRE_PAYMENT:
                        order.abandon("ticket closed")
                        await self._orders.save(order)
                        self._timers.cancel(record.id, PAYMENT_TIMER)
                        abandoned = record.id

        logger.info(
            "Ticket %s closed by %s",
            channel_id,
            actor_id,
            extra={"channel_id": channel_id, "order_id": abandoned},
        )
        self._delete_channel_later(channel_id, "Ticket closed manually")
        return abandoned

    # =========================================================================
    # Coupons
    # =========================================================================

    async def apply_coupon(self, order_id: int, code: str) -> PriceQuote:
        """
        Consume a coupon use and quote the discounted total.

        The quote is advisory: the order keeps its price snapshot.

        Raises:
            OrderNotFoundError: no such order
            InvalidTransitionError: the order is no longer awaiting payment
            CouponInvalidError: unknown, inactive or exhausted coupon
        """
        async with self._locks.acquire(order_id):
            order = await self._orders.load(order_id)
            if order.status not in PRE_PAYMENT:
                raise InvalidTransitionError(order_id, order.status.value, "apply_coupon")
            coupon = await self._coupons.redeem(code)

        state = order.current
        quote = PriceQuote.compute(
            coupon.code,
            state.unit_price,
            state.quantity,
            coupon.discount_percentage,
        )
        logger.info(
            "Coupon %s quoted %s -> %s for order %s",
            coupon.code,
            quote.original,
            quote.final,
            order_id,
            extra={"order_id": order_id},
        )
        await self._post(state.ticket_channel_id, messages.coupon_applied(quote), order_id)
        return quote

    # =========================================================================
    # Payment
    # =========================================================================

    async def confirm_payment(self, order_id: int, reference: str) -> bool:
        """
        Apply a payment notification. Unknown and already-paid orders are ignored.

        Returns True if the order transitioned to Paid.
        """
        async with self._locks.acquire(order_id):
            order = await self._orders.get(order_id)
            if order is None:
                logger.info("Payment %s references unknown order %s", reference, order_id)
                return False
            if order.status not in PRE_PAYMENT:
                if order.status == OrderStatus.ABANDONED:
                    logger.warning(
                        "Payment %s arrived for abandoned order %s",
                        reference,
                        order_id,
                        extra={"order_id": order_id},
                    )
                return False
            await self._pay(order, reference)
        await self._after_paid(order)
        return True

    async def mark_paid(self, order_id: int, reference: str = "manual", actor_id: str | None = None) -> bool:
        """
        Transition an order to Paid. A second call is a no-op returning False.

        Raises:
            OrderNotFoundError: no such order
            InvalidTransitionError: the order was abandoned
            UpstreamError: the delivery channel could not be created
        """
        async with self._locks.acquire(order_id):
            order = await self._orders.load(order_id)
            if order.is_paid:
                return False
            await self._pay(order, reference, actor_id)
        await self._after_paid(order)
        return True

    async def _pay(self, order: OrderAggregate, reference: str, actor_id: str | None = None) -> None:
        """Create the delivery channel and record the payment. Caller holds the lock."""
        if not order.can_transition(OrderStatus.PAID):
            raise InvalidTransitionError(order.aggregate_id, order.status.value, OrderStatus.PAID.value)

        state = order.current
        with self._tracer.span(
            "fulfillment.engine.mark_paid",
            {ATTR_ORDER_ID: order.aggregate_id, ATTR_ORDER_STATUS: state.status.value},
        ):
            buyer = await self._best_effort("fetch_user", self._chat.fetch_user(state.buyer_id))
            username = buyer.username if buyer else state.buyer_id
            members = [state.buyer_id] + ([self._settings.owner_id] if self._settings.owner_id else [])
            delivery_channel_id: str = await self._critical(
                "create_channel",
                self._chat.create_channel(
                    messages.delivery_channel_name(state.item_name, username),
                    members,
                    topic=f"Delivery channel for {username} (Record ID: {order.aggregate_id})",
                ),
            )
            order.mark_paid(reference, delivery_channel_id=delivery_channel_id, actor_id=actor_id)
            try:
                await self._orders.save(order)
            except Exception:
                self._delete_channel_later(delivery_channel_id, "Payment could not be saved")
                raise
            self._timers.cancel(order.aggregate_id, PAYMENT_TIMER)

        logger.info(
            "Order %s paid (%s)",
            order.aggregate_id,
            reference,
            extra={"order_id": order.aggregate_id, "channel_id": delivery_channel_id},
        )

    async def _after_paid(self, order: OrderAggregate) -> None:
        state = order.current
        order_id = order.aggregate_id
        if state.delivery_channel_id:
            await self._post(
                state.ticket_channel_id,
                messages.payment_accepted(state.buyer_id, state.delivery_channel_id),
                order_id,
            )
            item_emoji = await self._item_emoji(state.item_id)
            await self._post(
                state.delivery_channel_id,
                messages.delivery_control(
                    order_id,
                    self._settings.owner_id,
                    state.buyer_id,
                    item_emoji,
                    state.item_name,
                    state.quantity,
                ),
                order_id,
            )
        if self._config.client_role_id:
            await self._best_effort(
                "add_role",
                self._chat.add_role(state.buyer_id, self._config.client_role_id),
                order_id,
            )

    async def _item_emoji(self, item_id: str) -> str:
        try:
            return (await self._inventory.get_item(item_id)).emoji
        except NotFoundError:
            return ""

    # =========================================================================
    # Delivery
    # =========================================================================

    async def confirm_delivery(
        self,
        order_id: int,
        actor_id: str,
        channel_id: str | None = None,
    ) -> DeliveryConfirmation:
        """
        Administrator confirms delivery and receives the proof upload link.

        An unpaid order is first marked paid manually. A missing order
        starts the manual recovery path instead: the result carries a menu
        for picking the delivered item.

        Raises:
            UnauthorizedError: actor is not the owner (nothing is changed)
            AlreadyFinalizedError: proof was already accepted
        """
        self.require_owner(actor_id, "confirm deliveries")
        upload_url = self._require_base_url(f"upload-proof/{order_id}")

        with self._tracer.span(
            "fulfillment.engine.confirm_delivery",
            {ATTR_ORDER_ID: order_id, ATTR_ACTOR_ID: actor_id},
        ):
            paid_now = False
            async with self._locks.acquire(order_id):
                order = await self._orders.get(order_id)
                if order is None:
                    return await self._start_recovery(order_id, actor_id, channel_id)

                if order.status.is_finalized:
                    raise AlreadyFinalizedError(order_id, order.status.value)
                if order.status == OrderStatus.PROOF_REQUESTED:
                    return DeliveryConfirmation(order_id=order_id, upload_url=upload_url)

                if order.status in PRE_PAYMENT:
                    await self._pay(order, "manual", actor_id)
                    paid_now = True
                order.request_proof(upload_url, actor_id=actor_id)
                await self._orders.save(order)

        if paid_now:
            await self._after_paid(order)
        logger.info(
            "Delivery of order %s confirmed by %s",
            order_id,
            actor_id,
            extra={"order_id": order_id},
        )
        return DeliveryConfirmation(order_id=order_id, upload_url=upload_url)

    async def _start_recovery(
        self,
        missing_order_id: int,
        actor_id: str,
        channel_id: str | None,
    ) -> DeliveryConfirmation:
        logger.warning(
            "Order %s not found; starting manual recovery",
            missing_order_id,
            extra={"order_id": missing_order_id, "channel_id": channel_id},
        )
        if not channel_id:
            raise OrderNotFoundError(missing_order_id)

        members = await self._critical("list_channel_members", self._chat.list_channel_members(channel_id))
        buyer = next(
            (m for m in members if not m.is_bot and m.id != self._settings.owner_id and m.id != actor_id),
            None,
        )
        if buyer is None:
            raise NotFoundError(f"Could not identify the buyer in channel {channel_id}")

        items = await self._inventory.list_items()
        return DeliveryConfirmation(recovery_menu=messages.recovery_menu(buyer.id, items))

    async def complete_manual_recovery(
        self,
        actor_id: str,
        buyer_id: str,
        item_id: str,
        channel_id: str,
        missing_order_id: int | None = None,
    ) -> DeliveryConfirmation:
        """
        Synthesize a quantity-1 order for an item the administrator picked.

        This is a distinct, logged path: the original order is not revived.

        Raises:
            UnauthorizedError: actor is not the owner
            ItemNotFoundError: no such item
            ChannelBusyError: the channel already has an active order
        """
        self.require_owner(actor_id, "complete manual deliveries")
        item = await self._inventory.get_item(item_id)

        active = await self.active_order_for_channel(channel_id)
        if active is not None:
            raise ChannelBusyError(channel_id, active.id)

        order_id = await self._orders.next_id()
        upload_url = self._require_base_url(f"upload-proof/{order_id}")
        order = self._orders.create_new(order_id)
        order.create(
            buyer_id=buyer_id,
            item_id=item.id,
            item_name=item.name,
            unit_price=item.price,
            quantity=1,
            origin="manual",
            actor_id=actor_id,
        )
        order.start_manual_recovery(actor_id, channel_id, missing_order_id)
        order.request_proof(upload_url, actor_id=actor_id)
        async with self._locks.acquire(order_id):
            await self._orders.save(order)

        logger.warning(
            "Manual recovery created order %s (%s for %s, replacing %s)",
            order_id,
            item.id,
            buyer_id,
            missing_order_id,
            extra={"order_id": order_id, "item_id": item.id, "channel_id": channel_id},
        )
        return DeliveryConfirmation(order_id=order_id, upload_url=upload_url)

    async def submit_proof(self, order_id: int, photo_url: str | None, note: str | None = None) -> OrderState:
        """
        Record the delivery proof and post the delivery confirmation.

        Raises:
            OrderNotFoundError: no such order
            AlreadyFinalizedError: proof was already accepted or the order is over
            MissingProofError: no photo
            InvalidTransitionError: the order has not been paid
            UpstreamError: the delivery confirmation could not be posted
        """
        with self._tracer.span("fulfillment.engine.submit_proof", {ATTR_ORDER_ID: order_id}):
            async with self._locks.acquire(order_id):
                order = await self._orders.load(order_id)
                if order.status.is_finalized:
                    raise AlreadyFinalizedError(order_id, order.status.value)
                if not photo_url:
                    raise MissingProofError(order_id)

                if order.status in (OrderStatus.PAID, OrderStatus.MANUAL_RECOVERY):
                    order.request_proof(self._settings.url_for(f"upload-proof/{order_id}") or "")
                order.submit_proof(photo_url, note)

                state = order.current
                target = (
                    self._config.delivery_channel_id
                    or state.delivery_channel_id
                    or state.ticket_channel_id
                )
                if target:
                    emoji = await self._item_emoji(state.item_id)
                    await self._critical(
                        "send_message",
                        self._chat.send_message(
                            target,
                            messages.delivery_confirmation(state, emoji, photo_url, note),
                        ),
                    )
                else:
                    logger.warning(
                        "No delivery channel configured; confirmation for order %s not posted",
                        order_id,
                        extra={"order_id": order_id},
                    )
                await self._orders.save(order)
                self._timers.schedule(
                    order_id,
                    REVIEW_TIMER,
                    self._settings.review_timeout,
                    lambda: self.expire_review(order_id),
                )

        logger.info("Proof received for order %s", order_id, extra={"order_id": order_id})
        review_url = self._settings.url_for(f"avaliar/{order_id}")
        if review_url:
            await self._post(
                state.delivery_channel_id or state.ticket_channel_id,
                messages.review_request(state.buyer_id, review_url),
                order_id,
            )
        return state

    # =========================================================================
    # Review
    # =========================================================================

    async def submit_review(self, order_id: int, rating: Any, text: str) -> Review:
        """
        Store the review, close the order and clean up its channels.

        Raises:
            AlreadyReviewedError: the order already has a review
            InvalidRatingError: rating outside 1-5
            OrderNotFoundError: no such order
            InvalidTransitionError: the order is not awaiting a review
        """
        if await self._reviews.exists(order_id):
            raise AlreadyReviewedError(order_id)
        value = parse_rating(rating)

        with self._tracer.span("fulfillment.engine.submit_review", {ATTR_ORDER_ID: order_id}):
            async with self._locks.acquire(order_id):
                order = await self._orders.load(order_id)
                if order.status != OrderStatus.DELIVERED_PENDING_REVIEW:
                    raise InvalidTransitionError(order_id, order.status.value, OrderStatus.CLOSED.value)
                state = order.current
                review = await self._reviews.create(order_id, state.buyer_id, value, text)
                order.close("reviewed")
                try:
                    await self._orders.save(order)
                except Exception:
                    await self._reviews.delete(order_id)
                    raise
                self._timers.cancel(order_id, REVIEW_TIMER)

        logger.info(
            "Order %s closed with a %d-star review",
            order_id,
            value,
            extra={"order_id": order_id},
        )
        self._delete_channel_later(state.ticket_channel_id, "Purchase finished with review")
        self._delete_channel_later(state.delivery_channel_id, "Purchase finished with review")
        if self._config.reviews_channel_id:
            user = await self._best_effort("fetch_user", self._chat.fetch_user(state.buyer_id), order_id)
            await self._post(
                self._config.reviews_channel_id,
                messages.review_summary(user, state.item_name, value, text),
                order_id,
            )
        return review

    async def expire_review(self, order_id: int) -> bool:
        """
        Review timer expiry: close an unreviewed order and delete its channels.

        Returns True if the order was closed.
        """
        async with self._locks.acquire(order_id):
            order = await self._orders.get(order_id)
            if order is None or order.status != OrderStatus.DELIVERED_PENDING_REVIEW:
                return False
            if await self._reviews.exists(order_id):
                return False
            order.close("review timeout")
            await self._orders.save(order)

        state = order.current
        logger.info(
            "Order %s closed after review timeout",
            order_id,
            extra={"order_id": order_id},
        )
        await self._post(state.delivery_channel_id, messages.INACTIVE_DELIVERY, order_id)
        self._delete_channel_later(state.delivery_channel_id, "Closed for review inactivity")
        self._delete_channel_later(state.ticket_channel_id, "Closed for review inactivity")
        return True

    # =========================================================================
    # Gifts
    # =========================================================================

    async def issue_gift(self, actor_id: str, item_id: str) -> GiftCode:
        """
        Raises:
            UnauthorizedError: actor is not the owner
            ItemNotFoundError: no such item
        """
        self.require_owner(actor_id, "create gift codes")
        return await self._gifts.issue(item_id)

    async def redeem_gift(self, code: str, redeemer: ChatUser) -> OrderTicket:
        """
        Redeem a gift code into a paid quantity-1 order with its own ticket.

        If the ticket or the order cannot be created the code is released
        and any new ticket channel removed, so the code stays redeemable.

        Raises:
            GiftInvalidError: unknown or already redeemed
            UpstreamError: the ticket channel could not be created
        """
        gift = await self._gifts.claim(code, redeemer.id)
        try:
            item = await self._inventory.get_item(gift.item_id)
            members = [redeemer.id] + ([self._settings.owner_id] if self._settings.owner_id else [])
            channel_id: str = await self._critical(
                "create_channel",
                self._chat.create_channel(
                    messages.ticket_channel_name(item.name, redeemer.username, prefix="🎁"),
                    members,
                    topic=f"Gift ticket for {redeemer.username} | Code: {gift.code}",
                ),
            )
        except Exception:
            await self._gifts.release(gift.code)
            raise

        try:
            order_id = await self._orders.next_id()
            order = self._orders.create_new(order_id)
            order.create(
                buyer_id=redeemer.id,
                item_id=item.id,
                item_name=item.name,
                unit_price=item.price,
                quantity=1,
                origin="gift",
                ticket_channel_id=channel_id,
                gift_code=gift.code,
                actor_id=redeemer.id,
            )
            order.mark_paid(f"gift:{gift.code}", actor_id=redeemer.id)
            async with self._locks.acquire(order_id):
                await self._orders.save(order)
        except Exception:
            await self._gifts.release(gift.code)
            self._delete_channel_later(channel_id, "Gift order could not be saved")
            raise

        logger.info(
            "Gift %s redeemed by %s as order %s",
            gift.code,
            redeemer.id,
            order_id,
            extra={"order_id": order_id, "item_id": item.id, "channel_id": channel_id},
        )
        await self._best_effort(
            "set_topic",
            self._chat.set_topic(
                channel_id,
                f"Gift ticket for {redeemer.username} | Code: {gift.code} | Record ID: {order_id}",
            ),
            order_id,
        )
        await self._post(
            channel_id,
            messages.gift_welcome(order_id, redeemer.id, self._settings.owner_id, gift.code, item),
            order_id,
        )
        return OrderTicket(order=order.current, ticket_channel_id=channel_id)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def restore_timers(self) -> int:
        """Re-arm timers for orders that were waiting when the process stopped."""
        count = 0
        waiting = await self._deliveries.find(
            Query(
                filters=[
                    Filter.in_(
                        "status",
                        [
                            OrderStatus.PENDING_PAYMENT.value,
                            OrderStatus.DELIVERED_PENDING_REVIEW.value,
                        ],
                    )
                ]
            )
        )
        for record in waiting:
            order_id = record.id
            if record.status == OrderStatus.PENDING_PAYMENT.value:
                self._timers.schedule(
                    order_id,
                    PAYMENT_TIMER,
                    self._settings.payment_timeout,
                    lambda oid=order_id: self.expire_payment(oid),
                )
            else:
                self._timers.schedule(
                    order_id,
                    REVIEW_TIMER,
                    self._settings.review_timeout,
                    lambda oid=order_id: self.expire_review(oid),
                )
            count += 1
        if count:
            logger.info("Restored %d order timer(s)", count)
        return count

    async def shutdown(self, timeout: float | None = 10.0) -> None:
        await self._timers.shutdown()
        await self._tasks.await_all(timeout=timeout)


__all__ = [
    "ACTIVE_STATUSES",
    "DeliveryConfirmation",
    "OrderLifecycleEngine",
    "OrderTicket",
    "PAYMENT_TIMER",
    "PRE_PAYMENT",
    "REVIEW_TIMER",
]
