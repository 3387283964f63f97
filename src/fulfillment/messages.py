"""
Chat message builders and component ids.

Component custom ids are the contract between the messages the engine
posts and the interactions that come back through ``fulfillment.dispatch``.
"""

import re
from collections.abc import Sequence
from decimal import Decimal

from fulfillment.collaborators import (
    Button,
    ChatUser,
    Embed,
    EmbedField,
    Message,
    Modal,
    SelectMenu,
    SelectOption,
    TextInput,
)
from fulfillment.aggregates.order import OrderState
from fulfillment.coupons import PriceQuote, format_money
from fulfillment.records.models import StockItem
from fulfillment.reviews import render_stars

BUY_ITEM_BUTTON = "buy_item_button"
REDEEM_GIFT_BUTTON = "redeem_gift_button"
SELECT_ITEM_TO_BUY = "select_item_to_buy"
SELECT_GIFT_ITEM = "select_gift_item"
REDEEM_GIFT_MODAL = "redeem_gift_modal"
CLOSE_TICKET = "close_ticket"
QUANTITY_MODAL_PREFIX = "quantity_modal_"
APPLY_COUPON_PREFIX = "apply_coupon_"
COUPON_MODAL_PREFIX = "coupon_modal_"
CONFIRM_DELIVERY_PREFIX = "confirm_delivery_"
ADMIN_CONFIRM_DELIVERY_PREFIX = "admin_confirm_delivery_"
MANUAL_DELIVERY_PREFIX = "manual_delivery_"

QUANTITY_INPUT = "quantity_input"
COUPON_CODE_INPUT = "coupon_code_input"
GIFT_CODE_INPUT = "gift_code_input"

STORE_COLOR = 0xFFA500
GREEN = 0x22C55E
BLUE = 0x3B82F6
YELLOW = 0xFACC15
DELIVERY_GREEN = 0x2ECC71


def _slug(text: str, limit: int) -> str:
    return re.sub(r"[^a-z0-9]", "-", text.lower())[:limit]


def ticket_channel_name(item_name: str, username: str, prefix: str = "🛒") -> str:
    return f"{prefix}-{_slug(item_name, 20)}-{username[:10]}"


def delivery_channel_name(item_name: str, username: str) -> str:
    return f"📦-delivery-{_slug(item_name, 40)}-{username[:10]}"


def _item_options(items: Sequence[StockItem]) -> list[SelectOption]:
    return [
        SelectOption(
            label=item.name,
            value=item.id,
            description=f"Price: R${format_money(item.price)} | Stock: {item.quantity}",
            emoji=item.emoji or None,
        )
        for item in items
    ]


def storefront(items: Sequence[StockItem]) -> Message:
    """Price table with the buy and redeem buttons."""
    return Message(
        embeds=[
            Embed(
                title="STORE | PRICE TABLE",
                color=STORE_COLOR,
                fields=[
                    EmbedField(
                        name=f"{item.emoji} {item.name}".strip(),
                        value=(
                            f"**Price:** R${format_money(item.price)}\n"
                            f"**Stock:** {item.quantity if item.quantity > 0 else 'SOLD OUT'}"
                        ),
                    )
                    for item in items
                ],
            )
        ],
        buttons=[
            Button(label="🛒 Buy", custom_id=BUY_ITEM_BUTTON, style="success"),
            Button(label="🎁 Redeem Gift", custom_id=REDEEM_GIFT_BUTTON, style="secondary"),
        ],
    )


def purchase_menu(items: Sequence[StockItem]) -> Message:
    if not items:
        return Message(content="Sorry, all of our items are sold out right now.")
    return Message(
        content="Please select the item you want to buy:",
        select=SelectMenu(
            custom_id=SELECT_ITEM_TO_BUY,
            placeholder="Select an item to buy",
            options=_item_options(items),
        ),
    )


def gift_item_menu(items: Sequence[StockItem]) -> Message:
    if not items:
        return Message(content="There are no items in stock to create a gift from.")
    return Message(
        content="Please select the item to give as a gift:",
        select=SelectMenu(
            custom_id=SELECT_GIFT_ITEM,
            placeholder="Select the gift item",
            options=_item_options(items),
        ),
    )


def recovery_menu(buyer_id: str, items: Sequence[StockItem]) -> Message:
    return Message(
        content=(
            "⚠️ **Could not find the order record.**\n"
            "Please select the item that was delivered to continue manually:"
        ),
        select=SelectMenu(
            custom_id=f"{MANUAL_DELIVERY_PREFIX}{buyer_id}",
            placeholder="Select the delivered item",
            options=_item_options(items),
        ),
    )


def quantity_modal(item: StockItem) -> Modal:
    return Modal(
        custom_id=f"{QUANTITY_MODAL_PREFIX}{item.id}",
        title=f"Buy {item.name}"[:45],
        inputs=[
            TextInput(
                custom_id=QUANTITY_INPUT,
                label=f"Quantity (in stock: {item.quantity})",
                placeholder="e.g. 10",
            )
        ],
    )


def coupon_modal(order_id: int) -> Modal:
    return Modal(
        custom_id=f"{COUPON_MODAL_PREFIX}{order_id}",
        title="Apply Discount Coupon",
        inputs=[TextInput(custom_id=COUPON_CODE_INPUT, label="Coupon code")],
    )


def redeem_gift_modal() -> Modal:
    return Modal(
        custom_id=REDEEM_GIFT_MODAL,
        title="Redeem Gift Code",
        inputs=[
            TextInput(
                custom_id=GIFT_CODE_INPUT,
                label="Your gift code",
                placeholder="e.g. PRESENTE-ABC123",
            )
        ],
    )


def ticket_welcome(
    order_id: int,
    buyer_id: str,
    owner_id: str | None,
    item: StockItem,
    quantity: int,
    total: Decimal,
    payment_text: str,
) -> Message:
    greeting = f"Hello <@{buyer_id}>" + (f" and <@{owner_id}>" if owner_id else "")
    return Message(
        content=(
            f"{greeting}! This is your ticket for **{quantity}x {item.emoji} {item.name}**.\n\n"
            f"**Total:** R$ {format_money(total)}\n\n"
            f"{payment_text}\n\n"
            "If you have a coupon, apply it BEFORE paying. "
            "Once the payment is confirmed the administrator will confirm the delivery."
        ),
        buttons=[
            Button(
                label="Apply Coupon",
                custom_id=f"{APPLY_COUPON_PREFIX}{order_id}",
                style="secondary",
                emoji="🎟️",
            ),
            Button(label="Close Ticket", custom_id=CLOSE_TICKET, style="danger"),
        ],
    )


def owner_delivery_prompt(order_id: int, owner_id: str) -> Message:
    return Message(
        content=f"<@{owner_id}>, has the order been delivered?",
        buttons=[
            Button(
                label="Confirm Delivery",
                custom_id=f"{CONFIRM_DELIVERY_PREFIX}{order_id}",
                style="success",
            )
        ],
    )


def gift_welcome(
    order_id: int,
    redeemer_id: str,
    owner_id: str | None,
    code: str,
    item: StockItem,
) -> Message:
    greeting = f"Hello <@{redeemer_id}>" + (f" and <@{owner_id}>" if owner_id else "")
    return Message(
        content=f"{greeting}!",
        embeds=[
            Embed(
                title="🎁 Gift Redemption",
                color=GREEN,
                description=f"<@{redeemer_id}> redeemed the code **{code}**.",
                fields=[
                    EmbedField(name="Prize", value=f"{item.emoji} **{item.name}**"),
                    EmbedField(name="Status", value="Waiting for delivery by the administrator."),
                ],
                footer="Please confirm the delivery to register the proof.",
            )
        ],
        buttons=[
            Button(
                label="Confirm Delivery",
                custom_id=f"{CONFIRM_DELIVERY_PREFIX}{order_id}",
                style="success",
            )
        ],
    )


def payment_accepted(buyer_id: str, delivery_channel_id: str) -> Message:
    return Message(
        content=(
            f"✅ **Payment accepted!**\nHappy to help, <@{buyer_id}>! "
            f"Continue in your delivery channel: <#{delivery_channel_id}>."
        )
    )


def delivery_control(
    order_id: int,
    owner_id: str | None,
    buyer_id: str,
    emoji: str,
    item_name: str,
    quantity: int,
) -> Message:
    owner = f"<@{owner_id}>" if owner_id else "Administrator"
    return Message(
        content=f"{owner}, here are the order details.",
        embeds=[
            Embed(
                title="📦 Processing Delivery",
                color=BLUE,
                description=f"{owner}, the payment from <@{buyer_id}> was confirmed.",
                fields=[
                    EmbedField(name="Product", value=f"{emoji} {item_name}".strip()),
                    EmbedField(name="Quantity", value=str(quantity)),
                ],
                footer="Waiting for delivery confirmation.",
            )
        ],
        buttons=[
            Button(
                label="✅ Confirm Delivery",
                custom_id=f"{ADMIN_CONFIRM_DELIVERY_PREFIX}{order_id}",
                style="success",
            )
        ],
    )


def upload_link(upload_url: str, manual: bool = False) -> Message:
    label = "Send Proof (Manual)" if manual else "Send Proof"
    return Message(
        content="Click the button below to send the delivery photo and a note.",
        buttons=[Button(label=label, style="link", url=upload_url, emoji="📸")],
    )


def coupon_applied(quote: PriceQuote) -> Message:
    return Message(
        embeds=[
            Embed(
                title="🎟️ Coupon Applied!",
                color=GREEN,
                description=f"Coupon **{quote.code}** was applied.",
                fields=[
                    EmbedField(name="Discount", value=f"{quote.discount_percentage.normalize():f}%"),
                    EmbedField(name="Original Price", value=f"R$ {format_money(quote.original)}"),
                    EmbedField(name="New Price", value=f"**R$ {format_money(quote.final)}**"),
                ],
                footer="The administrator was notified of the new price.",
            )
        ]
    )


def delivery_confirmation(
    order: OrderState,
    emoji: str,
    photo_url: str,
    note: str | None,
) -> Message:
    return Message(
        content=f"<@{order.buyer_id}>",
        embeds=[
            Embed(
                title="📦 Delivery Confirmed",
                color=DELIVERY_GREEN,
                description=note or None,
                image_url=photo_url,
                fields=[
                    EmbedField(name="Recipient", value=f"<@{order.buyer_id}>"),
                    EmbedField(name="Product", value=f"{emoji} {order.item_name}".strip()),
                    EmbedField(name="Quantity", value=str(order.quantity)),
                    EmbedField(name="Unit Price", value=f"R${format_money(order.unit_price)}"),
                ],
                footer="Delivery",
            )
        ],
    )


def review_request(buyer_id: str, review_url: str) -> Message:
    return Message(
        content=(
            f"Thank you for your purchase, <@{buyer_id}>! Could you leave a review? "
            "This channel will be closed after you review."
        ),
        buttons=[Button(label="Leave a Review", style="link", url=review_url, emoji="⭐")],
    )


def review_summary(user: ChatUser | None, item_name: str, rating: int, text: str) -> Message:
    author = user.username if user else "a customer"
    return Message(
        embeds=[
            Embed(
                title=f"Review for {item_name}",
                color=YELLOW,
                description=f"**Rating:** {render_stars(rating)}\n\n>>> {text}",
                footer=f"Verified customer · review by {author}",
            )
        ]
    )


INACTIVE_TICKET = Message(
    content="This ticket was closed due to inactivity. Please start a new purchase if you wish."
)
INACTIVE_DELIVERY = Message(content="This channel was closed due to inactivity. Thank you!")


__all__ = [
    "ADMIN_CONFIRM_DELIVERY_PREFIX",
    "APPLY_COUPON_PREFIX",
    "BUY_ITEM_BUTTON",
    "CLOSE_TICKET",
    "CONFIRM_DELIVERY_PREFIX",
    "COUPON_CODE_INPUT",
    "COUPON_MODAL_PREFIX",
    "GIFT_CODE_INPUT",
    "INACTIVE_DELIVERY",
    "INACTIVE_TICKET",
    "MANUAL_DELIVERY_PREFIX",
    "QUANTITY_INPUT",
    "QUANTITY_MODAL_PREFIX",
    "REDEEM_GIFT_BUTTON",
    "REDEEM_GIFT_MODAL",
    "SELECT_GIFT_ITEM",
    "SELECT_ITEM_TO_BUY",
    "coupon_applied",
    "coupon_modal",
    "delivery_channel_name",
    "delivery_confirmation",
    "delivery_control",
    "gift_item_menu",
    "gift_welcome",
    "owner_delivery_prompt",
    "payment_accepted",
    "purchase_menu",
    "quantity_modal",
    "recovery_menu",
    "redeem_gift_modal",
    "review_request",
    "review_summary",
    "storefront",
    "ticket_channel_name",
    "ticket_welcome",
    "upload_link",
]
