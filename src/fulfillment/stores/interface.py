"""
Event store contract.

Every order is one stream keyed by ``(aggregate_type, aggregate_id)`` whose
events carry versions 1..n without gaps. Writers state the version they
loaded; a store that has moved on since rejects the append with
OptimisticLockError, which is how two handlers racing on one order are
kept from both committing a transition.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from fulfillment.events.base import DomainEvent
from fulfillment.exceptions import OptimisticLockError

NEW_STREAM = 0
"""Expected version for the first append to a stream."""


@dataclass(frozen=True)
class EventStream:
    aggregate_id: int
    aggregate_type: str
    events: list[DomainEvent] = field(default_factory=list)
    version: int = 0
    """Version of the newest stored event, even when ``events`` was cut by ``after_version``."""


def ensure_version(aggregate_id: int, expected: int | None, current: int) -> None:
    """``expected=None`` skips the check."""
    if expected is not None and expected != current:
        raise OptimisticLockError(aggregate_id, expected, current)


class EventStore(ABC):
    @abstractmethod
    async def append(
        self,
        aggregate_type: str,
        aggregate_id: int,
        events: Sequence[DomainEvent],
        expected_version: int | None,
    ) -> int:
        """
        Append events atomically and return the stream's new version.

        Events whose id is already stored are skipped, so re-sending a batch
        after a lost acknowledgement is harmless.

        Raises:
            OptimisticLockError: the stream is not at ``expected_version``
        """

    @abstractmethod
    async def read_stream(
        self,
        aggregate_type: str,
        aggregate_id: int,
        after_version: int = 0,
    ) -> EventStream: ...

    @abstractmethod
    async def read_all(self, aggregate_type: str) -> list[DomainEvent]:
        """Every event of one aggregate type in commit order, for rebuilding read models."""

    @abstractmethod
    async def contains(self, event_id: UUID) -> bool: ...

    @abstractmethod
    async def max_aggregate_id(self, aggregate_type: str) -> int:
        """0 when nothing of that type is stored."""

    async def stream_version(self, aggregate_type: str, aggregate_id: int) -> int:
        return (await self.read_stream(aggregate_type, aggregate_id)).version


class EventPublisher(Protocol):
    """Receives events right after they are committed."""

    async def publish(self, events: list[DomainEvent]) -> None: ...


__all__ = [
    "NEW_STREAM",
    "EventPublisher",
    "EventStore",
    "EventStream",
    "ensure_version",
]
