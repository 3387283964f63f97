"""Event store kept in process memory, for tests and the test harness."""

import asyncio
from collections.abc import Sequence
from uuid import UUID

from fulfillment.events.base import DomainEvent
from fulfillment.observability import (
    ATTR_AGGREGATE_ID,
    ATTR_AGGREGATE_TYPE,
    ATTR_EVENT_COUNT,
    ATTR_EXPECTED_VERSION,
    Tracer,
    create_tracer,
)
from fulfillment.stores.interface import EventStore, EventStream, ensure_version

StreamKey = tuple[str, int]


class InMemoryEventStore(EventStore):
    """
    Streams live in a dict keyed by ``(aggregate_type, aggregate_id)``; a
    second list keeps commit order across streams for ``read_all``.
    """

    def __init__(self, *, tracer: Tracer | None = None, enable_tracing: bool = True) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

        self._streams: dict[StreamKey, list[DomainEvent]] = {}
        self._log: list[DomainEvent] = []
        self._ids: set[UUID] = set()
        self._lock = asyncio.Lock()

    async def append(
        self,
        aggregate_type: str,
        aggregate_id: int,
        events: Sequence[DomainEvent],
        expected_version: int | None,
    ) -> int:
        with self._tracer.span(
            "fulfillment.inmemory_event_store.append",
            {
                ATTR_AGGREGATE_ID: aggregate_id,
                ATTR_AGGREGATE_TYPE: aggregate_type,
                ATTR_EVENT_COUNT: len(events),
                ATTR_EXPECTED_VERSION: -1 if expected_version is None else expected_version,
            },
        ):
            async with self._lock:
                key = (aggregate_type, aggregate_id)
                stream = self._streams.get(key, [])
                ensure_version(aggregate_id, expected_version, len(stream))
                fresh = [e for e in events if e.event_id not in self._ids]
                if fresh:
                    self._streams[key] = stream + fresh
                    self._log.extend(fresh)
                    self._ids.update(e.event_id for e in fresh)
                return len(stream) + len(fresh)

    async def read_stream(
        self,
        aggregate_type: str,
        aggregate_id: int,
        after_version: int = 0,
    ) -> EventStream:
        async with self._lock:
            stored = list(self._streams.get((aggregate_type, aggregate_id), ()))
        return EventStream(
            aggregate_id=aggregate_id,
            aggregate_type=aggregate_type,
            events=[e for e in stored if e.aggregate_version > after_version],
            version=len(stored),
        )

    async def read_all(self, aggregate_type: str) -> list[DomainEvent]:
        async with self._lock:
            return [e for e in self._log if e.aggregate_type == aggregate_type]

    async def contains(self, event_id: UUID) -> bool:
        return event_id in self._ids

    async def max_aggregate_id(self, aggregate_type: str) -> int:
        async with self._lock:
            return max((key[1] for key in self._streams if key[0] == aggregate_type), default=0)

    async def stream_version(self, aggregate_type: str, aggregate_id: int) -> int:
        return len(self._streams.get((aggregate_type, aggregate_id), ()))

    async def clear(self) -> None:
        async with self._lock:
            self._streams.clear()
            self._log.clear()
            self._ids.clear()


__all__ = ["InMemoryEventStore"]
