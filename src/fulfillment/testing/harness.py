"""
Test harness providing a fully wired in-memory fulfillment app.

Example:
    >>> async with FulfillmentTestHarness() as harness:
    ...     buyer = harness.buyer()
    ...     ticket = await harness.engine.create_order(buyer, "MANGO", 10)
    ...     await harness.engine.confirm_payment(ticket.order.order_id, "TICKET1T1")
"""

from __future__ import annotations

from typing import Any

from fulfillment.app import FulfillmentApp
from fulfillment.collaborators import ChatUser
from fulfillment.config import Settings
from fulfillment.dispatch import Interaction, InteractionDispatcher, InteractionKind
from fulfillment.engine import OrderLifecycleEngine, OrderTicket
from fulfillment.records.models import Configuration
from fulfillment.testing.fakes import FakeChatPlatform, FakePaymentProvider

OWNER_ID = "owner"
BASE_URL = "https://shop.test"


def make_settings(**overrides: Any) -> Settings:
    """Settings with an owner, a base URL and no cleanup delay."""
    values: dict[str, Any] = {
        "owner_id": OWNER_ID,
        "base_url": BASE_URL,
        "cleanup_delay": 0.0,
        "panel_user": "admin",
        "panel_password": "secret",
    }
    values.update(overrides)
    return Settings(**values)


class FulfillmentTestHarness:
    """
    In-memory FulfillmentApp with fake collaborators.

    Tracing is disabled. Use one harness per test.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        provider: FakePaymentProvider | None = None,
        **overrides: Any,
    ) -> None:
        self.settings = settings or make_settings(**overrides)
        self.chat = FakeChatPlatform()
        self.provider = provider or FakePaymentProvider()
        self.owner = self.chat.add_user(ChatUser(id=self.settings.owner_id or OWNER_ID, username="owner"))
        self.app = FulfillmentApp.in_memory(
            self.settings,
            chat=self.chat,
            payment_provider=self.provider,
            enable_tracing=False,
        )
        self._buyers = 0

    async def __aenter__(self) -> FulfillmentTestHarness:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    @property
    def engine(self) -> OrderLifecycleEngine:
        return self.app.engine

    @property
    def dispatcher(self) -> InteractionDispatcher:
        return self.app.dispatcher

    async def start(self, seed: bool = True) -> None:
        await self.app.start(seed=seed)

    async def stop(self) -> None:
        await self.app.stop()

    async def configure(self, **fields: Any) -> Configuration:
        """Save and apply an operator configuration."""
        config = Configuration(**fields)
        await self.app.save_configuration(config)
        return config

    async def settle(self) -> None:
        """Wait for background work such as delayed channel deletion."""
        await self.engine.tasks.await_all(timeout=5.0)

    def buyer(self, user_id: str | None = None, username: str | None = None) -> ChatUser:
        self._buyers += 1
        user_id = user_id or f"buyer-{self._buyers}"
        return self.chat.add_user(ChatUser(id=user_id, username=username or user_id))

    def interaction(
        self,
        kind: InteractionKind,
        custom_id: str,
        actor: ChatUser | None = None,
        channel_id: str | None = None,
        values: tuple[str, ...] = (),
        fields: dict[str, Any] | None = None,
    ) -> Interaction:
        return Interaction(
            kind=kind,
            custom_id=custom_id,
            actor=actor or self.owner,
            channel_id=channel_id,
            values=values,
            fields=fields or {},
        )

    async def pending_order(
        self,
        item_id: str = "MANGO",
        quantity: int = 10,
        buyer: ChatUser | None = None,
    ) -> OrderTicket:
        return await self.engine.create_order(buyer or self.buyer(), item_id, quantity)

    async def paid_order(
        self,
        item_id: str = "MANGO",
        quantity: int = 10,
        buyer: ChatUser | None = None,
    ) -> OrderTicket:
        ticket = await self.pending_order(item_id, quantity, buyer)
        txid = ticket.order.txid or f"TICKET{ticket.order.order_id}T0"
        await self.engine.confirm_payment(ticket.order.order_id, txid)
        return ticket

    async def delivered_order(
        self,
        item_id: str = "MANGO",
        quantity: int = 10,
        buyer: ChatUser | None = None,
    ) -> OrderTicket:
        """An order that is waiting for its review."""
        ticket = await self.paid_order(item_id, quantity, buyer)
        order_id = ticket.order.order_id
        await self.engine.confirm_delivery(order_id, self.owner.id)
        await self.engine.submit_proof(order_id, f"{BASE_URL}/uploads/proof-{order_id}.png", "delivered")
        return ticket


__all__ = ["BASE_URL", "FulfillmentTestHarness", "OWNER_ID", "make_settings"]
