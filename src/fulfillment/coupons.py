"""
Coupon ledger.

Redemption is a single conditional decrement of ``uses_left`` guarded by
``is_active`` and ``uses_left >= 1``, so two buyers racing for the last
use cannot both win.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from fulfillment.exceptions import CouponInvalidError, CouponNotFoundError, ValidationError
from fulfillment.observability import ATTR_COUPON_CODE, Tracer, create_tracer
from fulfillment.records.models import Coupon
from fulfillment.records.query import Filter
from fulfillment.records.repository import RecordRepository

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def normalize_code(code: str) -> str:
    return str(code).strip().upper()


def format_money(amount: Decimal) -> str:
    """Two-decimal display form, e.g. ``7.00``."""
    return str(amount.quantize(CENTS, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PriceQuote:
    """
    Advisory price after a coupon; the order itself keeps its snapshot.

    Attributes:
        original: unit price times quantity
        discount_percentage: coupon discount, 0-100
        final: original * (1 - discount / 100), rounded to cents
    """

    code: str
    original: Decimal
    discount_percentage: Decimal
    final: Decimal

    @classmethod
    def compute(
        cls,
        code: str,
        unit_price: Decimal,
        quantity: int,
        discount_percentage: Decimal,
    ) -> "PriceQuote":
        original = unit_price * quantity
        final = original * (1 - discount_percentage / Decimal(100))
        return cls(
            code=code,
            original=original.quantize(CENTS, rounding=ROUND_HALF_UP),
            discount_percentage=discount_percentage,
            final=final.quantize(CENTS, rounding=ROUND_HALF_UP),
        )


class CouponLedger:
    """Coupon codes with their discount and remaining uses."""

    def __init__(
        self,
        repository: RecordRepository[Coupon],
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._repository = repository

    async def get(self, code: str) -> Coupon | None:
        return await self._repository.get(normalize_code(code))

    async def list_coupons(self) -> list[Coupon]:
        return await self._repository.find()

    async def create_coupon(self, code: str, discount_percentage: Any, uses: Any) -> Coupon:
        """
        Raises:
            ValidationError: discount outside 0-100 or negative uses
            DuplicateRecordError: the code already exists
        """
        normalized = normalize_code(code)
        if not normalized:
            raise ValidationError("Coupon code is required")
        try:
            discount = Decimal(str(discount_percentage))
            uses_left = int(uses)
        except (ArithmeticError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid coupon values: {discount_percentage!r}, {uses!r}") from e
        if not discount.is_finite() or not Decimal(0) <= discount <= Decimal(100):
            raise ValidationError(f"Discount must be between 0 and 100, got {discount_percentage!r}")
        if uses_left < 0:
            raise ValidationError(f"Uses must not be negative, got {uses!r}")

        coupon = Coupon(id=normalized, discount_percentage=discount, uses_left=uses_left)
        await self._repository.insert(coupon)
        logger.info(
            "Created coupon %s (%s%%, %d uses)",
            normalized,
            discount,
            uses_left,
            extra={"coupon_code": normalized},
        )
        return coupon

    async def delete_coupon(self, code: str) -> None:
        """
        Raises:
            CouponNotFoundError: no such coupon
        """
        normalized = normalize_code(code)
        if not await self._repository.delete(normalized):
            raise CouponNotFoundError(normalized)
        logger.info("Deleted coupon %s", normalized, extra={"coupon_code": normalized})

    async def deactivate(self, code: str) -> Coupon:
        normalized = normalize_code(code)
        coupon = await self._repository.update_where(normalized, {"is_active": False}, [])
        if coupon is None:
            raise CouponNotFoundError(normalized)
        return coupon

    async def redeem(self, code: str) -> Coupon:
        """
        Consume one use of a coupon.

        Returns the coupon after the decrement.

        Raises:
            CouponInvalidError: unknown, inactive or exhausted
        """
        normalized = normalize_code(code)
        with self._tracer.span("fulfillment.coupons.redeem", {ATTR_COUPON_CODE: normalized}):
            coupon = await self._repository.decrement(
                normalized,
                "uses_left",
                1,
                where=[Filter.eq("is_active", True)],
            )
        if coupon is None:
            logger.info("Rejected coupon %s", normalized, extra={"coupon_code": normalized})
            raise CouponInvalidError(normalized)
        logger.info(
            "Redeemed coupon %s, %d use(s) left",
            normalized,
            coupon.uses_left,
            extra={"coupon_code": normalized},
        )
        return coupon


__all__ = [
    "CENTS",
    "CouponLedger",
    "PriceQuote",
    "format_money",
    "normalize_code",
]
