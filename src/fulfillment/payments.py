"""
Payment correlation and charge issuing.

Charges are created with a transaction id ``TICKET<order id>T<epoch ms>``.
Inbound notifications carry that id back; the order id is recovered with
``^TICKET(\\d+)`` and the order is marked paid if it is still waiting for
payment. Notifications that do not parse or do not match an order are
ignored, since providers deliver at least once and send test pings.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from fulfillment.collaborators import Attachment, Message, PaymentProvider
from fulfillment.observability import ATTR_ORDER_ID, ATTR_TXID, Tracer, create_tracer

logger = logging.getLogger(__name__)

TXID_PATTERN = re.compile(r"^TICKET(\d+)")
TEST_PING_EVENT = "teste_webhook"
COMPLETED_STATUS = "CONCLUIDA"


def make_txid(order_id: int, now: datetime | None = None) -> str:
    moment = now or datetime.now(UTC)
    return f"TICKET{order_id}T{int(moment.timestamp() * 1000)}"


def parse_order_id(txid: str | None) -> int | None:
    """
    Extract the order id embedded in a transaction id.

    Example:
        >>> parse_order_id("TICKET445-16999999")
        445
        >>> parse_order_id("unrelated") is None
        True
    """
    if not txid:
        return None
    match = TXID_PATTERN.match(txid)
    return int(match.group(1)) if match else None


class PixNotification(BaseModel):
    model_config = ConfigDict(extra="allow")

    txid: str | None = None
    status: str | None = None


class WebhookNotification(BaseModel):
    """Provider notification body; unknown keys are kept but unused."""

    model_config = ConfigDict(extra="allow")

    evento: str | None = None
    pix: list[PixNotification] = []

    @property
    def is_test_ping(self) -> bool:
        return self.evento == TEST_PING_EVENT


@dataclass
class WebhookOutcome:
    test_ping: bool = False
    paid_orders: list[int] = field(default_factory=list)
    ignored_txids: list[str] = field(default_factory=list)


class PaymentConfirmer(Protocol):
    async def confirm_payment(self, order_id: int, reference: str) -> bool:
        """Mark a pre-payment order paid; False when nothing changed."""
        ...


class PaymentCorrelationAdapter:
    """
    Maps payment notifications back to orders.

    Example:
        >>> adapter = PaymentCorrelationAdapter(engine)
        >>> await adapter.correlate("TICKET445-16999999")
        445
    """

    def __init__(
        self,
        confirmer: PaymentConfirmer,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._confirmer = confirmer

    async def correlate(self, txid: str) -> int | None:
        """Returns the order id that transitioned to Paid, or None."""
        order_id = parse_order_id(txid)
        if order_id is None:
            logger.debug("Ignoring unparseable txid %r", txid)
            return None

        with self._tracer.span(
            "fulfillment.payments.correlate",
            {ATTR_TXID: txid, ATTR_ORDER_ID: order_id},
        ):
            if await self._confirmer.confirm_payment(order_id, txid):
                logger.info(
                    "Payment %s confirmed for order %s",
                    txid,
                    order_id,
                    extra={"order_id": order_id},
                )
                return order_id
        return None

    async def handle_notification(self, payload: Mapping[str, Any]) -> WebhookOutcome:
        """
        Process a webhook body. Never raises: a failure on one txid is logged
        and the txid is reported as ignored.
        """
        outcome = WebhookOutcome()
        try:
            notification = WebhookNotification.model_validate(payload)
        except PydanticValidationError:
            logger.warning("Ignoring malformed payment notification")
            return outcome

        if notification.is_test_ping:
            logger.info("Payment webhook test ping received")
            outcome.test_ping = True
            return outcome

        for pix in notification.pix:
            if pix.status != COMPLETED_STATUS or not pix.txid:
                continue
            try:
                order_id = await self.correlate(pix.txid)
            except Exception:
                logger.exception("Failed to apply payment %s", pix.txid)
                order_id = None
            if order_id is None:
                outcome.ignored_txids.append(pix.txid)
            else:
                outcome.paid_orders.append(order_id)
        return outcome


PIX_DISABLED_TEXT = "Pix generation is disabled. Please pay the administrator directly."
PIX_FAILED_TEXT = "Could not generate the Pix QR code. Please contact an administrator."


@dataclass(frozen=True)
class ChargeResult:
    """
    What to tell the buyer about paying.

    ``txid`` is None when no charge exists and payment is manual.
    """

    payment_text: str
    txid: str | None = None
    qr_message: Message | None = None


class ChargeIssuer:
    """Creates a provider charge for an order; failures degrade to manual payment."""

    def __init__(
        self,
        provider: PaymentProvider | None,
        expiry_seconds: int = 3600,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._provider = provider
        self._expiry_seconds = expiry_seconds

    @property
    def enabled(self) -> bool:
        return self._provider is not None and self._provider.enabled

    async def issue(self, order_id: int, amount: Decimal) -> ChargeResult:
        if self._provider is None or not self._provider.enabled:
            return ChargeResult(payment_text=PIX_DISABLED_TEXT)

        txid = make_txid(order_id)
        amount_cents = int((amount * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))
        try:
            with self._tracer.span(
                "fulfillment.payments.create_charge",
                {ATTR_ORDER_ID: order_id, ATTR_TXID: txid},
            ):
                charge = await self._provider.create_charge(
                    amount_cents, txid, self._expiry_seconds
                )
                qr = await self._provider.generate_qr_code(charge)
        except Exception:
            logger.warning(
                "Charge creation failed for order %s",
                order_id,
                exc_info=True,
                extra={"order_id": order_id},
            )
            return ChargeResult(payment_text=PIX_FAILED_TEXT)

        qr_message = None
        if qr.image_png:
            qr_message = Message(
                content=(
                    "Here is the QR code for payment. "
                    f"It expires in {self._expiry_seconds // 60} minutes."
                ),
                attachments=[Attachment(filename="qrcode.png", data=qr.image_png)],
            )
        return ChargeResult(
            payment_text=f"**Pix copy and paste:**\n```{qr.copy_paste}```",
            txid=txid,
            qr_message=qr_message,
        )


__all__ = [
    "COMPLETED_STATUS",
    "ChargeIssuer",
    "ChargeResult",
    "PIX_DISABLED_TEXT",
    "PIX_FAILED_TEXT",
    "PaymentConfirmer",
    "PaymentCorrelationAdapter",
    "PixNotification",
    "TEST_PING_EVENT",
    "TXID_PATTERN",
    "WebhookNotification",
    "WebhookOutcome",
    "make_txid",
    "parse_order_id",
]
