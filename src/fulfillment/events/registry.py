"""
Event type registry used to rebuild order events from storage.

A stored event row only knows its type name. The registry maps that name
back to the pydantic class that validates the payload, so every order
event class is decorated with @register_event where it is defined.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from fulfillment.events.base import DomainEvent

logger = logging.getLogger(__name__)

TEvent = TypeVar("TEvent", bound="DomainEvent")


class EventTypeNotFoundError(KeyError):
    """A stored event names a type nobody registered."""

    def __init__(self, event_type: str, known: list[str]) -> None:
        self.event_type = event_type
        self.known = known
        super().__init__(f"Unknown event type {event_type!r} (known: {', '.join(known) or 'none'})")


class DuplicateEventTypeError(ValueError):
    """Two different classes claim the same event type name."""

    def __init__(self, event_type: str, existing: type, new: type) -> None:
        self.event_type = event_type
        super().__init__(
            f"{new.__name__} cannot use event type {event_type!r}: already taken by {existing.__name__}"
        )


class EventRegistry:
    """
    Event type name -> event class.

    Registering the same class twice is harmless; registering a second
    class under a taken name is an error.
    """

    def __init__(self) -> None:
        self._classes: dict[str, type[DomainEvent]] = {}

    def register(self, event_class: type[TEvent], event_type: str | None = None) -> type[TEvent]:
        name = event_type or _type_name(event_class)
        existing = self._classes.get(name)
        if existing is not None and existing is not event_class:
            raise DuplicateEventTypeError(name, existing, event_class)
        if existing is None:
            self._classes[name] = event_class
            logger.debug("Registered event type %s", name, extra={"event_type": name})
        return event_class

    def get(self, event_type: str) -> type[DomainEvent]:
        """
        Raises:
            EventTypeNotFoundError: the name was never registered
        """
        try:
            return self._classes[event_type]
        except KeyError:
            raise EventTypeNotFoundError(event_type, self.list_types()) from None

    def list_types(self) -> list[str]:
        return sorted(self._classes)

    def __contains__(self, event_type: object) -> bool:
        return event_type in self._classes

    def __iter__(self) -> Iterator[str]:
        return iter(self.list_types())

    def __len__(self) -> int:
        return len(self._classes)


def _type_name(event_class: type[DomainEvent]) -> str:
    field = event_class.model_fields.get("event_type")
    if field is not None and isinstance(field.default, str) and field.default:
        return field.default
    return event_class.__name__


default_registry = EventRegistry()


def register_event(
    event_class: type[TEvent] | None = None,
    *,
    event_type: str | None = None,
    registry: EventRegistry | None = None,
) -> type[TEvent] | Callable[[type[TEvent]], type[TEvent]]:
    """Class decorator, usable bare or as ``@register_event(event_type=...)``."""
    target = registry or default_registry

    def decorator(cls: type[TEvent]) -> type[TEvent]:
        return target.register(cls, event_type)

    return decorator(event_class) if event_class is not None else decorator


__all__ = [
    "DuplicateEventTypeError",
    "EventRegistry",
    "EventTypeNotFoundError",
    "default_registry",
    "register_event",
]
