"""
Unit tests for chat message builders.

Tests cover:
- Channel names
- Component ids round-trip through parse_interaction
- Storefront and menus
"""

from decimal import Decimal

from fulfillment import messages
from fulfillment.collaborators import ChatUser
from fulfillment.coupons import PriceQuote
from fulfillment.dispatch import ConfirmDelivery, Interaction, ManualDelivery, parse_interaction
from tests.fixtures import stock_item

USER = ChatUser(id="buyer-1", username="alice")


class TestChannelNames:
    def test_ticket_name(self) -> None:
        assert messages.ticket_channel_name("MR CARROT", "alice_the_great") == "🛒-mr-carrot-alice_the_"

    def test_gift_ticket_prefix(self) -> None:
        assert messages.ticket_channel_name("MANGO", "bob", prefix="🎁").startswith("🎁-mango")

    def test_delivery_name(self) -> None:
        assert messages.delivery_channel_name("MANGO", "bob") == "📦-delivery-mango-bob"


class TestComponents:
    def test_delivery_buttons_parse(self) -> None:
        prompt = messages.owner_delivery_prompt(445, "owner")
        control = messages.delivery_control(445, "owner", "buyer-1", "🥭", "MANGO", 10)

        for button_id in prompt.button_ids() + control.button_ids():
            parsed = parse_interaction(Interaction(kind="button", custom_id=button_id, actor=USER))
            assert parsed == ConfirmDelivery(445)

    def test_recovery_menu_parses(self) -> None:
        menu = messages.recovery_menu("buyer-7", [stock_item()])

        parsed = parse_interaction(
            Interaction(kind="select", custom_id=menu.select.custom_id, actor=USER, values=("MANGO",))
        )

        assert parsed == ManualDelivery(buyer_id="buyer-7", item_id="MANGO")

    def test_quantity_modal_title_is_truncated(self) -> None:
        modal = messages.quantity_modal(stock_item("X" * 60))

        assert len(modal.title) == 45
        assert modal.custom_id == f"{messages.QUANTITY_MODAL_PREFIX}{'X' * 60}"


class TestMenus:
    def test_storefront_marks_sold_out(self) -> None:
        message = messages.storefront([stock_item(), stock_item("PLANTA", "7.50", 0, "🌱")])

        fields = message.embeds[0].fields
        assert "R$0.70" in fields[0].value
        assert "SOLD OUT" in fields[1].value
        assert message.button_ids() == [messages.BUY_ITEM_BUTTON, messages.REDEEM_GIFT_BUTTON]

    def test_empty_purchase_menu(self) -> None:
        assert messages.purchase_menu([]).select is None

    def test_purchase_menu_options(self) -> None:
        menu = messages.purchase_menu([stock_item()])

        option = menu.select.options[0]
        assert option.value == "MANGO"
        assert option.emoji == "🥭"
        assert "Stock: 260" in (option.description or "")

    def test_coupon_applied(self) -> None:
        quote = PriceQuote.compute("PROMO10", Decimal("0.70"), 10, Decimal("10"))

        embed = messages.coupon_applied(quote).embeds[0]

        assert [f.value for f in embed.fields] == ["10%", "R$ 7.00", "**R$ 6.30**"]

    def test_upload_link_is_a_link_button(self) -> None:
        button = messages.upload_link("https://shop.test/upload-proof/1", manual=True).buttons[0]

        assert button.style == "link"
        assert button.url == "https://shop.test/upload-proof/1"
        assert "Manual" in button.label
