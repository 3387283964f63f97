"""
Gift codes.

A gift code is issued for one item and can be claimed exactly once; the
claim is a conditional update on ``redeemed = false``. The engine turns a
successful claim into a quantity-1 order that skips payment.
"""

import logging
import secrets
from datetime import UTC, datetime

from fulfillment.exceptions import DuplicateRecordError, GiftInvalidError
from fulfillment.inventory import InventoryStore
from fulfillment.observability import ATTR_GIFT_CODE, Tracer, create_tracer
from fulfillment.records.models import GiftCode
from fulfillment.records.query import Filter
from fulfillment.records.repository import RecordRepository

logger = logging.getLogger(__name__)

GIFT_CODE_PREFIX = "PRESENTE-"


def generate_gift_code() -> str:
    """``PRESENTE-`` followed by 8 uppercase hex characters."""
    return GIFT_CODE_PREFIX + secrets.token_hex(4).upper()


class GiftCodeBook:
    """Issues and claims gift codes."""

    def __init__(
        self,
        repository: RecordRepository[GiftCode],
        inventory: InventoryStore,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._repository = repository
        self._inventory = inventory

    async def get(self, code: str) -> GiftCode | None:
        return await self._repository.get(code.strip().upper())

    async def issue(self, item_id: str, code: str | None = None) -> GiftCode:
        """
        Create an unredeemed gift code for an existing item.

        Raises:
            ItemNotFoundError: no such item
            DuplicateRecordError: an explicit ``code`` already exists
        """
        item = await self._inventory.get_item(item_id)
        for _ in range(5):
            gift = GiftCode(id=(code or generate_gift_code()).strip().upper(), item_id=item.id)
            try:
                await self._repository.insert(gift)
            except DuplicateRecordError:
                if code is not None:
                    raise
                continue
            logger.info(
                "Issued gift code %s for %s",
                gift.id,
                item.id,
                extra={"item_id": item.id, "gift_code": gift.id},
            )
            return gift
        raise DuplicateRecordError(gift.id, "GiftCode")

    async def claim(self, code: str, redeemer_id: str) -> GiftCode:
        """
        Mark a code redeemed by ``redeemer_id``.

        Raises:
            GiftInvalidError: unknown or already redeemed
        """
        normalized = code.strip().upper()
        with self._tracer.span("fulfillment.gifts.claim", {ATTR_GIFT_CODE: normalized}):
            gift = await self._repository.update_where(
                normalized,
                {
                    "redeemed": True,
                    "redeemed_by": redeemer_id,
                    "redeemed_at": datetime.now(UTC),
                },
                where=[Filter.eq("redeemed", False)],
            )
        if gift is None:
            logger.info("Rejected gift code %s", normalized, extra={"gift_code": normalized})
            raise GiftInvalidError(normalized)
        logger.info(
            "Gift code %s redeemed by %s",
            normalized,
            redeemer_id,
            extra={"gift_code": normalized},
        )
        return gift

    async def release(self, code: str) -> None:
        """Undo a claim whose order could not be created."""
        await self._repository.update_where(
            code,
            {"redeemed": False, "redeemed_by": None, "redeemed_at": None},
            where=[Filter.eq("redeemed", True)],
        )
        logger.warning("Released gift code %s after failed redemption", code)


__all__ = ["GIFT_CODE_PREFIX", "GiftCodeBook", "generate_gift_code"]
