"""
Interaction dispatch.

Raw chat interactions (button clicks, menu selections, form submissions and
slash commands) are parsed once into typed commands and routed through a
lookup table keyed by command type. Handlers are plain async methods marked
with @handles, the same way projections declare their event handlers.

Taxonomy errors raised by a handler become ephemeral replies; the state
they were guarding is untouched. Anything else propagates.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from fulfillment import messages
from fulfillment.collaborators import ChatUser, Message, Modal
from fulfillment.coupons import CouponLedger
from fulfillment.engine import OrderLifecycleEngine
from fulfillment.exceptions import (
    AuthorizationError,
    ConflictError,
    FulfillmentError,
    InsufficientStockError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from fulfillment.handlers import collect_handlers, handles
from fulfillment.inventory import InventoryStore
from fulfillment.observability import ATTR_ACTOR_ID, ATTR_CHANNEL_ID, Tracer, create_tracer

logger = logging.getLogger(__name__)

InteractionKind = Literal["button", "select", "modal", "command"]

CREATE_COUPON_COMMAND = "create-coupon"
DELETE_COUPON_COMMAND = "delete-coupon"
CREATE_GIFT_COMMAND = "create-gift"
DASHBOARD_COMMAND = "dashboard"


@dataclass(frozen=True)
class Interaction:
    """
    A raw interaction as delivered by the chat platform adapter.

    ``custom_id`` is the component id for buttons, menus and forms, and the
    command name for slash commands. ``values`` holds menu selections and
    ``fields`` holds form inputs or command options.
    """

    kind: InteractionKind
    custom_id: str
    actor: ChatUser
    channel_id: str | None = None
    values: tuple[str, ...] = ()
    fields: Mapping[str, Any] = field(default_factory=dict)

    def field_value(self, name: str) -> str:
        value = self.fields.get(name)
        return "" if value is None else str(value).strip()


@dataclass(frozen=True)
class Reply:
    """Response to an interaction: text, a message, or a form to show."""

    content: str = ""
    message: Message | None = None
    modal: Modal | None = None
    ephemeral: bool = True
    error: bool = False


# =============================================================================
# Commands
# =============================================================================


@dataclass(frozen=True)
class OpenPurchaseMenu:
    pass


@dataclass(frozen=True)
class ChooseItem:
    item_id: str


@dataclass(frozen=True)
class SubmitQuantity:
    item_id: str
    quantity: str


@dataclass(frozen=True)
class RequestCoupon:
    order_id: int


@dataclass(frozen=True)
class SubmitCoupon:
    order_id: int
    code: str


@dataclass(frozen=True)
class ConfirmDelivery:
    order_id: int


@dataclass(frozen=True)
class ManualDelivery:
    buyer_id: str
    item_id: str


@dataclass(frozen=True)
class CloseTicket:
    pass


@dataclass(frozen=True)
class OpenGiftRedemption:
    pass


@dataclass(frozen=True)
class RedeemGift:
    code: str


@dataclass(frozen=True)
class ChooseGiftItem:
    item_id: str


@dataclass(frozen=True)
class CreateCoupon:
    code: str
    discount: Any
    uses: Any


@dataclass(frozen=True)
class DeleteCoupon:
    code: str


@dataclass(frozen=True)
class CreateGift:
    pass


@dataclass(frozen=True)
class ShowDashboard:
    pass


Command = (
    OpenPurchaseMenu
    | ChooseItem
    | SubmitQuantity
    | RequestCoupon
    | SubmitCoupon
    | ConfirmDelivery
    | ManualDelivery
    | CloseTicket
    | OpenGiftRedemption
    | RedeemGift
    | ChooseGiftItem
    | CreateCoupon
    | DeleteCoupon
    | CreateGift
    | ShowDashboard
)


def _order_id(custom_id: str, prefix: str) -> int | None:
    suffix = custom_id[len(prefix) :]
    return int(suffix) if suffix.isdecimal() else None


def _first_value(interaction: Interaction) -> str | None:
    return interaction.values[0] if interaction.values else None


def parse_interaction(interaction: Interaction) -> Command | None:
    """
    Turn a raw interaction into a typed command.

    Returns None for anything this bot does not handle, including known
    prefixes with a malformed suffix.
    """
    kind = interaction.kind
    cid = interaction.custom_id

    if kind == "command":
        if cid == CREATE_COUPON_COMMAND:
            return CreateCoupon(
                code=interaction.field_value("code"),
                discount=interaction.fields.get("discount"),
                uses=interaction.fields.get("uses"),
            )
        if cid == DELETE_COUPON_COMMAND:
            return DeleteCoupon(code=interaction.field_value("code"))
        if cid == CREATE_GIFT_COMMAND:
            return CreateGift()
        if cid == DASHBOARD_COMMAND:
            return ShowDashboard()
        return None

    if kind == "button":
        if cid == messages.BUY_ITEM_BUTTON:
            return OpenPurchaseMenu()
        if cid == messages.REDEEM_GIFT_BUTTON:
            return OpenGiftRedemption()
        if cid == messages.CLOSE_TICKET:
            return CloseTicket()
        for prefix in (messages.CONFIRM_DELIVERY_PREFIX, messages.ADMIN_CONFIRM_DELIVERY_PREFIX):
            if cid.startswith(prefix):
                order_id = _order_id(cid, prefix)
                return ConfirmDelivery(order_id) if order_id is not None else None
        if cid.startswith(messages.APPLY_COUPON_PREFIX):
            order_id = _order_id(cid, messages.APPLY_COUPON_PREFIX)
            return RequestCoupon(order_id) if order_id is not None else None
        return None

    if kind == "select":
        value = _first_value(interaction)
        if value is None:
            return None
        if cid == messages.SELECT_ITEM_TO_BUY:
            return ChooseItem(value)
        if cid == messages.SELECT_GIFT_ITEM:
            return ChooseGiftItem(value)
        if cid.startswith(messages.MANUAL_DELIVERY_PREFIX):
            buyer_id = cid[len(messages.MANUAL_DELIVERY_PREFIX) :]
            return ManualDelivery(buyer_id=buyer_id, item_id=value) if buyer_id else None
        return None

    if kind == "modal":
        if cid == messages.REDEEM_GIFT_MODAL:
            return RedeemGift(interaction.field_value(messages.GIFT_CODE_INPUT))
        if cid.startswith(messages.QUANTITY_MODAL_PREFIX):
            item_id = cid[len(messages.QUANTITY_MODAL_PREFIX) :]
            if not item_id:
                return None
            return SubmitQuantity(item_id, interaction.field_value(messages.QUANTITY_INPUT))
        if cid.startswith(messages.COUPON_MODAL_PREFIX):
            order_id = _order_id(cid, messages.COUPON_MODAL_PREFIX)
            if order_id is None:
                return None
            return SubmitCoupon(order_id, interaction.field_value(messages.COUPON_CODE_INPUT))
        return None

    return None


def error_reply(error: FulfillmentError) -> Reply:
    """Render a taxonomy error as an ephemeral reply."""
    if isinstance(error, AuthorizationError):
        return Reply(content="⛔ Only the bot owner can do that.", error=True)
    if isinstance(error, UpstreamError):
        return Reply(
            content="❌ Something went wrong talking to an external service. Please try again.",
            error=True,
        )
    if isinstance(error, (ValidationError, NotFoundError)):
        return Reply(content=f"❌ {error}", error=True)
    if isinstance(error, ConflictError):
        return Reply(content=f"⚠️ {error}", error=True)
    return Reply(content="❌ Unable to complete the request.", error=True)


class InteractionDispatcher:
    """
    Routes parsed commands to their handlers.

    Example:
        >>> dispatcher = InteractionDispatcher(engine, inventory, coupons)
        >>> reply = await dispatcher.dispatch(
        ...     Interaction(kind="button", custom_id="close_ticket", actor=user, channel_id="c1")
        ... )
    """

    def __init__(
        self,
        engine: OrderLifecycleEngine,
        inventory: InventoryStore,
        coupons: CouponLedger,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._engine = engine
        self._inventory = inventory
        self._coupons = coupons
        self._routes = collect_handlers(type(self))

    @property
    def routes(self) -> dict[type, str]:
        return dict(self._routes)

    async def dispatch(self, interaction: Interaction) -> Reply | None:
        """
        Parse and handle an interaction.

        Returns None for interactions that are not ours.
        """
        command = parse_interaction(interaction)
        if command is None:
            logger.debug("Ignoring %s interaction %r", interaction.kind, interaction.custom_id)
            return None

        handler_name = self._routes.get(type(command))
        if handler_name is None:
            logger.debug("No handler for %s", type(command).__name__)
            return None

        with self._tracer.span(
            f"fulfillment.dispatch.{type(command).__name__}",
            {
                ATTR_ACTOR_ID: interaction.actor.id,
                ATTR_CHANNEL_ID: interaction.channel_id or "",
            },
        ):
            try:
                return await getattr(self, handler_name)(command, interaction)
            except FulfillmentError as e:
                logger.info(
                    "%s rejected for %s: %s",
                    type(command).__name__,
                    interaction.actor.id,
                    e,
                    extra={"channel_id": interaction.channel_id},
                )
                return error_reply(e)

    # =========================================================================
    # Purchase
    # =========================================================================

    @handles(OpenPurchaseMenu)
    async def _open_purchase_menu(self, command: OpenPurchaseMenu, interaction: Interaction) -> Reply:
        items = await self._engine.list_buyable_items()
        if not items:
            return Reply(content="Sorry, no items are in stock right now.")
        return Reply(message=messages.purchase_menu(items))

    @handles(ChooseItem)
    async def _choose_item(self, command: ChooseItem, interaction: Interaction) -> Reply:
        item = await self._inventory.get_item(command.item_id)
        if item.quantity <= 0:
            raise InsufficientStockError(item.id, 1, 0)
        return Reply(modal=messages.quantity_modal(item))

    @handles(SubmitQuantity)
    async def _submit_quantity(self, command: SubmitQuantity, interaction: Interaction) -> Reply:
        ticket = await self._engine.create_order(interaction.actor, command.item_id, command.quantity)
        return Reply(content=f"Your ticket was created: <#{ticket.ticket_channel_id}>")

    @handles(CloseTicket)
    async def _close_ticket(self, command: CloseTicket, interaction: Interaction) -> Reply:
        if not interaction.channel_id:
            raise ValidationError("close_ticket requires a channel")
        await self._engine.close_ticket(interaction.channel_id, interaction.actor.id)
        delay = self._engine.settings.cleanup_delay
        return Reply(content=f"This ticket will be closed in {delay:g} seconds.", ephemeral=False)

    # =========================================================================
    # Coupons
    # =========================================================================

    @handles(RequestCoupon)
    async def _request_coupon(self, command: RequestCoupon, interaction: Interaction) -> Reply:
        return Reply(modal=messages.coupon_modal(command.order_id))

    @handles(SubmitCoupon)
    async def _submit_coupon(self, command: SubmitCoupon, interaction: Interaction) -> Reply:
        await self._engine.apply_coupon(command.order_id, command.code)
        return Reply(content="✅ Coupon applied! The new price is shown in the ticket.")

    @handles(CreateCoupon)
    async def _create_coupon(self, command: CreateCoupon, interaction: Interaction) -> Reply:
        self._engine.require_owner(interaction.actor.id, "create coupons")
        coupon = await self._coupons.create_coupon(command.code, command.discount, command.uses)
        return Reply(
            content=(
                f"✅ Coupon **{coupon.code}** created!\n"
                f"- **Discount:** {coupon.discount_percentage.normalize():f}%\n"
                f"- **Uses:** {coupon.uses_left}"
            )
        )

    @handles(DeleteCoupon)
    async def _delete_coupon(self, command: DeleteCoupon, interaction: Interaction) -> Reply:
        self._engine.require_owner(interaction.actor.id, "delete coupons")
        await self._coupons.delete_coupon(command.code)
        return Reply(content=f"✅ Coupon **{command.code.upper()}** deleted.")

    # =========================================================================
    # Delivery
    # =========================================================================

    @handles(ConfirmDelivery)
    async def _confirm_delivery(self, command: ConfirmDelivery, interaction: Interaction) -> Reply:
        result = await self._engine.confirm_delivery(
            command.order_id,
            interaction.actor.id,
            channel_id=interaction.channel_id,
        )
        if result.upload_url is None:
            return Reply(message=result.recovery_menu)
        return Reply(message=messages.upload_link(result.upload_url))

    @handles(ManualDelivery)
    async def _manual_delivery(self, command: ManualDelivery, interaction: Interaction) -> Reply:
        if not interaction.channel_id:
            raise ValidationError("manual delivery requires a channel")
        result = await self._engine.complete_manual_recovery(
            interaction.actor.id,
            command.buyer_id,
            command.item_id,
            interaction.channel_id,
        )
        if result.upload_url is None:
            raise ConflictError(f"Manual delivery in {interaction.channel_id} produced no upload link")
        return Reply(message=messages.upload_link(result.upload_url, manual=True))

    # =========================================================================
    # Gifts
    # =========================================================================

    @handles(OpenGiftRedemption)
    async def _open_gift_redemption(self, command: OpenGiftRedemption, interaction: Interaction) -> Reply:
        return Reply(modal=messages.redeem_gift_modal())

    @handles(RedeemGift)
    async def _redeem_gift(self, command: RedeemGift, interaction: Interaction) -> Reply:
        ticket = await self._engine.redeem_gift(command.code, interaction.actor)
        return Reply(
            content=f"🎁 Gift redeemed! Continue in your ticket: <#{ticket.ticket_channel_id}>"
        )

    @handles(CreateGift)
    async def _create_gift(self, command: CreateGift, interaction: Interaction) -> Reply:
        self._engine.require_owner(interaction.actor.id, "create gift codes")
        items = await self._inventory.list_items()
        if not items:
            return Reply(content="There are no stock items to create a gift for.")
        return Reply(message=messages.gift_item_menu(items))

    @handles(ChooseGiftItem)
    async def _choose_gift_item(self, command: ChooseGiftItem, interaction: Interaction) -> Reply:
        gift = await self._engine.issue_gift(interaction.actor.id, command.item_id)
        return Reply(content=f"🎁 Gift code created! **Code: `{gift.code}`**")

    @handles(ShowDashboard)
    async def _show_dashboard(self, command: ShowDashboard, interaction: Interaction) -> Reply:
        self._engine.require_owner(interaction.actor.id, "view the dashboard")
        url = self._engine.settings.url_for("admin/dashboard")
        if url is None:
            raise ValidationError("BASE_URL is not configured; cannot build the dashboard link")
        return Reply(content=f"Here is the link to your statistics panel: {url}")


__all__ = [
    "CREATE_COUPON_COMMAND",
    "CREATE_GIFT_COMMAND",
    "ChooseGiftItem",
    "ChooseItem",
    "CloseTicket",
    "Command",
    "ConfirmDelivery",
    "CreateCoupon",
    "CreateGift",
    "DASHBOARD_COMMAND",
    "DELETE_COUPON_COMMAND",
    "DeleteCoupon",
    "Interaction",
    "InteractionDispatcher",
    "ManualDelivery",
    "OpenGiftRedemption",
    "OpenPurchaseMenu",
    "RedeemGift",
    "Reply",
    "RequestCoupon",
    "ShowDashboard",
    "SubmitCoupon",
    "SubmitQuantity",
    "error_reply",
    "parse_interaction",
]
