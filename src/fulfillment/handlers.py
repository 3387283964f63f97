"""
Handler decorator.

The @handles decorator marks a method as the handler of one message type.
AggregateRoot (sync state mutation), DeliveryRecordProjection
(async read-model updates) and InteractionDispatcher (typed chat commands)
discover decorated methods when the class is defined.
"""

from collections.abc import Callable
from typing import Any, TypeVar

F = TypeVar("F", bound=Callable[..., Any])


def handles(message_type: type) -> Callable[[F], F]:
    """
    Decorator to mark a method as the handler for a specific type.

    Example:
        >>> class OrderAggregate(AggregateRoot[OrderState]):
        ...     @handles(OrderPaid)
        ...     def _on_paid(self, event: OrderPaid) -> None:
        ...         ...
    """

    def decorator(func: F) -> F:
        func._handles_type = message_type  # type: ignore[attr-defined]
        return func

    return decorator


def collect_handlers(cls: type) -> dict[type, str]:
    """Map each decorated type on cls to the handling method's name."""
    found: dict[type, str] = {}
    for name in dir(cls):
        try:
            method = getattr(cls, name)
        except AttributeError:
            continue
        message_type = getattr(method, "_handles_type", None)
        if message_type is not None:
            found[message_type] = name
    return found


__all__ = ["collect_handlers", "handles"]
