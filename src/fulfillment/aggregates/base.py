"""
Event-sourced aggregate root.

An aggregate never assigns its state directly from a command. Commands
build an event and pass it to ``_record``; the ``@handles`` method for that
event type is the only place state changes, which is also what happens
when the repository replays the stream on load.
"""

import logging
from abc import ABC, abstractmethod
from typing import ClassVar, Generic, Literal, TypeVar

from pydantic import BaseModel

from fulfillment.events.base import DomainEvent
from fulfillment.exceptions import EventVersionError, UnhandledEventError
from fulfillment.handlers import collect_handlers

TState = TypeVar("TState", bound=BaseModel)
UnregisteredEventHandling = Literal["ignore", "warn", "error"]

logger = logging.getLogger(__name__)


class AggregateRoot(Generic[TState], ABC):
    """
    Subclasses provide ``initial_state()`` and one ``@handles`` method per
    event type they understand.

    ``unregistered_event_handling`` decides what happens to a stored event
    with no handler: skip it, log a warning, or raise UnhandledEventError.
    """

    aggregate_type: ClassVar[str] = "Unknown"
    unregistered_event_handling: ClassVar[UnregisteredEventHandling] = "ignore"

    _event_handlers: ClassVar[dict[type, str]] = {}

    def __init_subclass__(cls, **kwargs: object) -> None:
        super().__init_subclass__(**kwargs)
        cls._event_handlers = collect_handlers(cls)

    def __init__(self, aggregate_id: int) -> None:
        self._aggregate_id = aggregate_id
        self._version = 0
        self._pending: list[DomainEvent] = []
        self._state: TState = self.initial_state()

    @abstractmethod
    def initial_state(self) -> TState: ...

    @property
    def aggregate_id(self) -> int:
        return self._aggregate_id

    @property
    def version(self) -> int:
        """Version of the last applied event, 0 for a fresh aggregate."""
        return self._version

    @property
    def state(self) -> TState:
        return self._state

    @property
    def uncommitted_events(self) -> list[DomainEvent]:
        return list(self._pending)

    @property
    def has_uncommitted_events(self) -> bool:
        return bool(self._pending)

    def get_next_version(self) -> int:
        return self._version + 1

    def load_from_history(self, events: list[DomainEvent]) -> None:
        for event in events:
            self._mutate(event)

    def mark_events_as_committed(self) -> None:
        self._pending.clear()

    def _record(self, event: DomainEvent) -> None:
        """Apply a freshly built event and queue it for the next save."""
        if event.aggregate_version != self._version + 1:
            raise EventVersionError(self._aggregate_id, self._version + 1, event.aggregate_version)
        self._mutate(event)
        self._pending.append(event)

    def _mutate(self, event: DomainEvent) -> None:
        self._version = event.aggregate_version
        handler_name = self._event_handlers.get(type(event))
        if handler_name is not None:
            getattr(self, handler_name)(event)
            return

        event_type = type(event).__name__
        known = sorted(t.__name__ for t in self._event_handlers)
        if self.unregistered_event_handling == "error":
            raise UnhandledEventError(event_type, type(self).__name__, known)
        if self.unregistered_event_handling == "warn":
            logger.warning(
                "%s %s has no handler for %s; skipped",
                self.aggregate_type,
                self._aggregate_id,
                event_type,
                extra={"aggregate_id": self._aggregate_id, "event_type": event_type},
            )

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self._aggregate_id} "
            f"v{self._version} pending={len(self._pending)}>"
        )


__all__ = ["AggregateRoot", "UnregisteredEventHandling"]
