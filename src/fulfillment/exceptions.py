"""
Exceptions for the fulfillment package.

The hierarchy follows five families that the interaction and HTTP
boundaries translate into user-visible messages:

- ValidationError: bad input (quantity, rating, coupon code)
- NotFoundError: a referenced order, item, coupon or record is missing
- ConflictError: the request contradicts current state
- AuthorizationError: a non-administrator attempted a gated action
- UpstreamError: a collaborator call (chat platform, payment provider) failed
"""

from __future__ import annotations

from typing import Any


class FulfillmentError(Exception):
    """Base exception for the fulfillment package."""

    pass


# =============================================================================
# Families
# =============================================================================


class ValidationError(FulfillmentError):
    """Raised when input fails validation."""

    pass


class NotFoundError(FulfillmentError):
    """Raised when a referenced entity does not exist."""

    pass


class ConflictError(FulfillmentError):
    """Raised when a request conflicts with the current state."""

    pass


class AuthorizationError(FulfillmentError):
    """Raised when the caller is not allowed to perform an action."""

    pass


class UpstreamError(FulfillmentError):
    """
    Raised when an external collaborator call fails.

    Attributes:
        operation: Name of the collaborator operation that failed
        cause: The original exception, if any
    """

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Upstream call '{operation}' failed{detail}")


# =============================================================================
# Validation
# =============================================================================


class InvalidQuantityError(ValidationError):
    """Raised when a requested quantity is not a positive integer."""

    def __init__(self, quantity: Any) -> None:
        self.quantity = quantity
        super().__init__(f"Invalid quantity: {quantity!r}")


class InsufficientStockError(ValidationError):
    """Raised when a requested quantity exceeds the item's stock."""

    def __init__(self, item_id: str, requested: int, available: int) -> None:
        self.item_id = item_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Requested quantity ({requested}) of {item_id} exceeds "
            f"available stock ({available})"
        )


class InvalidRatingError(ValidationError):
    """Raised when a review rating is outside 1-5."""

    def __init__(self, rating: Any) -> None:
        self.rating = rating
        super().__init__(f"Rating must be an integer between 1 and 5, got {rating!r}")


class CouponInvalidError(ValidationError):
    """Raised when a coupon is unknown, inactive or exhausted."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Coupon {code!r} is invalid, expired or already used")


class MissingProofError(ValidationError):
    """Raised when a proof submission carries no photo."""

    def __init__(self, order_id: int) -> None:
        self.order_id = order_id
        super().__init__(f"Proof for order {order_id} requires a photo")


# =============================================================================
# Not found
# =============================================================================


class RecordNotFoundError(NotFoundError):
    """Raised when a record cannot be found in a record repository."""

    def __init__(self, record_id: Any, record_type: str | None = None) -> None:
        self.record_id = record_id
        self.record_type = record_type
        type_info = f"{record_type} " if record_type else "Record "
        super().__init__(f"{type_info}not found: {record_id}")


class OrderNotFoundError(NotFoundError):
    """Raised when an order has no event history."""

    def __init__(self, order_id: int) -> None:
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class ItemNotFoundError(NotFoundError):
    """Raised when a stock item does not exist."""

    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"Item not found: {item_id}")


class CouponNotFoundError(NotFoundError):
    """Raised when a coupon code does not exist."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Coupon not found: {code}")


# =============================================================================
# Conflict
# =============================================================================


class DuplicateRecordError(ConflictError):
    """Raised when an insert violates a unique identifier."""

    def __init__(self, record_id: Any, record_type: str | None = None) -> None:
        self.record_id = record_id
        self.record_type = record_type
        type_info = f" {record_type}" if record_type else ""
        super().__init__(f"Duplicate{type_info} record: {record_id}")


class OptimisticLockError(ConflictError):
    """Raised when there's a version conflict during event append."""

    def __init__(self, aggregate_id: int, expected_version: int | None, actual_version: int) -> None:
        self.aggregate_id = aggregate_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Optimistic lock error for aggregate {aggregate_id}: "
            f"expected version {expected_version}, but current version is {actual_version}"
        )


class InvalidTransitionError(ConflictError):
    """
    Raised when an order cannot move to the requested state.

    Attributes:
        order_id: The order being transitioned
        current_status: Status the order is in
        target_status: Status that was requested
    """

    def __init__(self, order_id: int, current_status: str, target_status: str) -> None:
        self.order_id = order_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Order {order_id} cannot move from {current_status} to {target_status}"
        )


class AlreadyFinalizedError(ConflictError):
    """Raised when proof is submitted for an order that is already delivered or closed."""

    def __init__(self, order_id: int, status: str) -> None:
        self.order_id = order_id
        self.status = status
        super().__init__(f"Order {order_id} is already finalized ({status})")


class AlreadyReviewedError(ConflictError):
    """Raised when a second review is submitted for the same order."""

    def __init__(self, order_id: int) -> None:
        self.order_id = order_id
        super().__init__(f"Order {order_id} has already been reviewed")


class GiftInvalidError(ConflictError):
    """Raised when a gift code is unknown or already redeemed."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Gift code {code!r} is invalid or already redeemed")


class ItemInUseError(ConflictError):
    """Raised when deleting an item that orders or gift codes still reference."""

    def __init__(self, item_id: str, orders: int, gift_codes: int) -> None:
        self.item_id = item_id
        self.orders = orders
        self.gift_codes = gift_codes
        super().__init__(
            f"Item {item_id} has {orders} order(s) and {gift_codes} gift code(s); "
            "set its stock to zero instead of deleting it"
        )


class ChannelBusyError(ConflictError):
    """Raised when a ticket channel already has an active order."""

    def __init__(self, channel_id: str, order_id: int) -> None:
        self.channel_id = channel_id
        self.order_id = order_id
        super().__init__(f"Channel {channel_id} already has active order {order_id}")


class UnhandledEventError(FulfillmentError):
    """
    Raised when an event has no registered handler and strict mode is enabled.

    Attributes:
        event_type: The name of the event type that wasn't handled
        handler_class: Name of the aggregate/projection class
        available_handlers: List of event type names that have handlers
    """

    def __init__(
        self,
        event_type: str,
        handler_class: str,
        available_handlers: list[str],
    ) -> None:
        self.event_type = event_type
        self.handler_class = handler_class
        self.available_handlers = available_handlers
        handlers_str = ", ".join(available_handlers) if available_handlers else "none"
        super().__init__(
            f"No handler registered for event type '{event_type}' "
            f"in {handler_class}. Available handlers: {handlers_str}."
        )


class EventVersionError(FulfillmentError):
    """Raised when a new event's version does not follow the aggregate version."""

    def __init__(self, aggregate_id: int, expected_version: int, actual_version: int) -> None:
        self.aggregate_id = aggregate_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Event version mismatch for aggregate {aggregate_id}: "
            f"expected version {expected_version}, got {actual_version}"
        )


# =============================================================================
# Authorization
# =============================================================================


class UnauthorizedError(AuthorizationError):
    """Raised when a non-owner attempts an administrator action."""

    def __init__(self, actor_id: str, action: str) -> None:
        self.actor_id = actor_id
        self.action = action
        super().__init__(f"User {actor_id} is not allowed to {action}")


class LockTimeoutError(FulfillmentError):
    """Raised when a keyed lock cannot be acquired in time."""

    def __init__(self, key: Any, timeout: float) -> None:
        self.key = key
        self.timeout = timeout
        super().__init__(f"Failed to acquire lock for {key!r} within {timeout}s")


__all__ = [
    "AlreadyFinalizedError",
    "AlreadyReviewedError",
    "AuthorizationError",
    "ChannelBusyError",
    "ConflictError",
    "CouponInvalidError",
    "CouponNotFoundError",
    "DuplicateRecordError",
    "EventVersionError",
    "FulfillmentError",
    "GiftInvalidError",
    "InsufficientStockError",
    "InvalidQuantityError",
    "InvalidRatingError",
    "InvalidTransitionError",
    "ItemInUseError",
    "ItemNotFoundError",
    "LockTimeoutError",
    "MissingProofError",
    "NotFoundError",
    "OptimisticLockError",
    "OrderNotFoundError",
    "RecordNotFoundError",
    "UnauthorizedError",
    "UnhandledEventError",
    "UpstreamError",
    "ValidationError",
]
