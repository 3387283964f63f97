"""
Event store in a single SQLite file via aiosqlite.

Payloads are the events' JSON dumps; the ``event_type`` column picks the
class from the event registry when rows are read back, so Decimal prices
and datetimes survive the round trip through pydantic validation.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any
from uuid import UUID

import aiosqlite

from fulfillment.events.base import DomainEvent
from fulfillment.events.registry import EventRegistry, default_registry
from fulfillment.exceptions import OptimisticLockError
from fulfillment.observability import (
    ATTR_AGGREGATE_ID,
    ATTR_AGGREGATE_TYPE,
    ATTR_DB_NAME,
    ATTR_DB_SYSTEM,
    ATTR_EVENT_COUNT,
    ATTR_EVENT_TYPE,
    Tracer,
    create_tracer,
)
from fulfillment.stores.interface import EventStore, EventStream, ensure_version

logger = logging.getLogger(__name__)

EVENTS_SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    position INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id TEXT NOT NULL UNIQUE,
    event_type TEXT NOT NULL,
    aggregate_type TEXT NOT NULL,
    aggregate_id INTEGER NOT NULL,
    version INTEGER NOT NULL,
    actor_id TEXT,
    occurred_at TEXT NOT NULL,
    payload TEXT NOT NULL,
    UNIQUE (aggregate_type, aggregate_id, version)
);
CREATE INDEX IF NOT EXISTS idx_events_stream ON events (aggregate_type, aggregate_id);
"""


class SQLiteEventStore(EventStore):
    """
    Example:
        >>> async with SQLiteEventStore("fulfillment.db") as store:
        ...     await store.append("Order", 1, order.uncommitted_events, NEW_STREAM)
    """

    def __init__(
        self,
        database: str,
        event_registry: EventRegistry | None = None,
        *,
        busy_timeout_ms: int = 5000,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._database = database
        self._registry = event_registry or default_registry
        self._busy_timeout_ms = busy_timeout_ms
        self._db: aiosqlite.Connection | None = None

        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

    async def __aenter__(self) -> SQLiteEventStore:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def initialize(self) -> None:
        """Open the database and create the events table. Safe to call twice."""
        if self._db is None:
            self._db = await aiosqlite.connect(self._database)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout_ms)}")
            await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.executescript(EVENTS_SCHEMA)
        await self._db.commit()
        logger.info("Event store ready at %s", self._database)

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    @property
    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("SQLiteEventStore used before initialize()")
        return self._db

    async def _scalar(self, sql: str, params: Sequence[Any]) -> int:
        cursor = await self._conn.execute(sql, params)
        row = await cursor.fetchone()
        return int(row[0]) if row and row[0] is not None else 0

    async def stream_version(self, aggregate_type: str, aggregate_id: int) -> int:
        return await self._scalar(
            "SELECT MAX(version) FROM events WHERE aggregate_type = ? AND aggregate_id = ?",
            (aggregate_type, aggregate_id),
        )

    async def append(
        self,
        aggregate_type: str,
        aggregate_id: int,
        events: Sequence[DomainEvent],
        expected_version: int | None,
    ) -> int:
        with self._tracer.span(
            "fulfillment.sqlite_event_store.append",
            {
                ATTR_AGGREGATE_ID: aggregate_id,
                ATTR_AGGREGATE_TYPE: aggregate_type,
                ATTR_EVENT_COUNT: len(events),
                ATTR_EVENT_TYPE: ",".join(e.event_type for e in events),
                ATTR_DB_SYSTEM: "sqlite",
                ATTR_DB_NAME: self._database,
            },
        ):
            conn = self._conn
            version = await self.stream_version(aggregate_type, aggregate_id)
            ensure_version(aggregate_id, expected_version, version)
            try:
                for event in events:
                    if await self.contains(event.event_id):
                        logger.debug("Skipping stored event %s", event.event_id)
                        continue
                    version += 1
                    await conn.execute(
                        "INSERT INTO events (event_id, event_type, aggregate_type, aggregate_id,"
                        " version, actor_id, occurred_at, payload) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                        (
                            str(event.event_id),
                            event.event_type,
                            aggregate_type,
                            aggregate_id,
                            version,
                            event.actor_id,
                            event.occurred_at.isoformat(),
                            json.dumps(event.to_dict()),
                        ),
                    )
                await conn.commit()
            except aiosqlite.IntegrityError as e:
                # another writer committed the same version first
                await conn.rollback()
                current = await self.stream_version(aggregate_type, aggregate_id)
                raise OptimisticLockError(aggregate_id, expected_version, current) from e

            logger.debug(
                "Appended %d event(s) to %s %s, now at version %d",
                len(events),
                aggregate_type,
                aggregate_id,
                version,
                extra={"order_id": aggregate_id},
            )
            return version

    async def read_stream(
        self,
        aggregate_type: str,
        aggregate_id: int,
        after_version: int = 0,
    ) -> EventStream:
        cursor = await self._conn.execute(
            "SELECT event_type, version, payload FROM events"
            " WHERE aggregate_type = ? AND aggregate_id = ? ORDER BY version",
            (aggregate_type, aggregate_id),
        )
        rows = list(await cursor.fetchall())
        return EventStream(
            aggregate_id=aggregate_id,
            aggregate_type=aggregate_type,
            events=[self._decode(row) for row in rows if row["version"] > after_version],
            version=rows[-1]["version"] if rows else 0,
        )

    async def read_all(self, aggregate_type: str) -> list[DomainEvent]:
        cursor = await self._conn.execute(
            "SELECT event_type, payload FROM events WHERE aggregate_type = ? ORDER BY position",
            (aggregate_type,),
        )
        return [self._decode(row) for row in await cursor.fetchall()]

    async def contains(self, event_id: UUID) -> bool:
        return bool(
            await self._scalar("SELECT COUNT(*) FROM events WHERE event_id = ?", (str(event_id),))
        )

    async def max_aggregate_id(self, aggregate_type: str) -> int:
        return await self._scalar(
            "SELECT MAX(aggregate_id) FROM events WHERE aggregate_type = ?", (aggregate_type,)
        )

    def _decode(self, row: aiosqlite.Row) -> DomainEvent:
        return self._registry.get(row["event_type"]).model_validate(json.loads(row["payload"]))


__all__ = ["EVENTS_SCHEMA", "SQLiteEventStore"]
