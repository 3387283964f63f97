"""Reviews: one per order, rating 1-5."""

import logging
from typing import Any

from fulfillment.exceptions import AlreadyReviewedError, DuplicateRecordError, InvalidRatingError
from fulfillment.records.models import Review
from fulfillment.records.repository import RecordRepository

logger = logging.getLogger(__name__)


def parse_rating(value: Any) -> int:
    """
    Raises:
        InvalidRatingError: not an integer between 1 and 5
    """
    if isinstance(value, bool):
        raise InvalidRatingError(value)
    if isinstance(value, str) and value.strip().isdecimal():
        value = int(value.strip())
    if not isinstance(value, int) or not 1 <= value <= 5:
        raise InvalidRatingError(value)
    return value


def render_stars(rating: int) -> str:
    return "⭐" * rating + "🌑" * (5 - rating)


class ReviewBook:
    def __init__(self, repository: RecordRepository[Review]) -> None:
        self._repository = repository

    async def get(self, order_id: int) -> Review | None:
        return await self._repository.get(order_id)

    async def exists(self, order_id: int) -> bool:
        return await self._repository.exists(order_id)

    async def create(self, order_id: int, buyer_id: str, rating: Any, text: str) -> Review:
        """
        Raises:
            InvalidRatingError: rating outside 1-5
            AlreadyReviewedError: the order already has a review
        """
        review = Review(id=order_id, buyer_id=buyer_id, rating=parse_rating(rating), text=text or "")
        try:
            await self._repository.insert(review)
        except DuplicateRecordError as e:
            raise AlreadyReviewedError(order_id) from e
        logger.info(
            "Stored %d-star review for order %s",
            review.rating,
            order_id,
            extra={"order_id": order_id},
        )
        return review

    async def delete(self, order_id: int) -> bool:
        return await self._repository.delete(order_id)


__all__ = ["ReviewBook", "parse_rating", "render_stars"]
