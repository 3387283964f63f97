"""
Record repository over one aiosqlite connection.

Column encoding: Decimal prices and datetimes as TEXT, booleans as 0/1,
dict and list fields as JSON. Saves are upserts on ``id``, and the
conditional updates (``decrement``, ``update_where``) are single UPDATE
statements so two buyers cannot both take the last coupon use or
redeem the same gift code.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Generic, get_origin

import aiosqlite

from fulfillment.exceptions import DuplicateRecordError, RecordNotFoundError
from fulfillment.observability import Tracer, create_tracer
from fulfillment.observability.attributes import (
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_QUERY_LIMIT,
    ATTR_RECORD_ID,
    ATTR_RECORD_TYPE,
)
from fulfillment.records.query import Filter, Query
from fulfillment.records.repository import TModel
from fulfillment.records.schema import unwrap_optional, generate_full_schema

logger = logging.getLogger(__name__)


def _sql_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime | date):
        return value.isoformat()
    return value


class SQLiteRecordRepository(Generic[TModel]):
    """
    SQLite implementation of RecordRepository.

    Repositories that share a connection should share ``lock`` so their
    transactions do not interleave on it.

    Example:
        >>> async with aiosqlite.connect("fulfillment.db") as db:
        ...     repo = SQLiteRecordRepository(db, Coupon)
        ...     await repo.create_table()
        ...     await repo.insert(Coupon(id="PROMO10", discount_percentage=10, uses_left=5))
    """

    def __init__(
        self,
        connection: aiosqlite.Connection,
        model_class: type[TModel],
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
        lock: asyncio.Lock | None = None,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._connection = connection
        self._model_class = model_class
        self._table_name = model_class.table_name()
        self._field_names = model_class.field_names()
        self._json_fields = {
            name
            for name, info in model_class.model_fields.items()
            if get_origin(unwrap_optional(info.annotation)[0]) in (dict, list)
            or unwrap_optional(info.annotation)[0] in (dict, list)
        }
        self._lock = lock or asyncio.Lock()

    @property
    def model_class(self) -> type[TModel]:
        return self._model_class

    def _span(self, operation: str, sql_operation: str, record_id: Any = None) -> Any:
        attributes: dict[str, Any] = {
            ATTR_RECORD_TYPE: self._model_class.__name__,
            ATTR_DB_SYSTEM: "sqlite",
            ATTR_DB_OPERATION: sql_operation,
        }
        if record_id is not None:
            attributes[ATTR_RECORD_ID] = str(record_id)
        return self._tracer.span(f"fulfillment.records.{operation}", attributes)

    async def create_table(self) -> None:
        """Create the table and its indexes if they do not exist."""
        async with self._lock:
            await self._connection.executescript(generate_full_schema(self._model_class))
            await self._connection.commit()
        logger.debug("Ensured table %s", self._table_name)

    async def get(self, id: Any) -> TModel | None:
        with self._span("get", "SELECT", id):
            query = f"""
                SELECT {", ".join(self._field_names)}
                FROM {self._table_name}
                WHERE id = ?
            """  # nosec B608
            async with self._lock:
                cursor = await self._connection.execute(query, (id,))
                row = await cursor.fetchone()
            return self._row_to_model(row) if row is not None else None

    async def get_or_raise(self, id: Any) -> TModel:
        model = await self.get(id)
        if model is None:
            raise RecordNotFoundError(id, self._model_class.__name__)
        return model

    async def insert(self, model: TModel) -> None:
        with self._span("insert", "INSERT", model.id):
            columns = ", ".join(self._field_names)
            placeholders = ", ".join("?" * len(self._field_names))
            query = f"""
                INSERT INTO {self._table_name} ({columns})
                VALUES ({placeholders})
            """  # nosec B608
            now = datetime.now(UTC)
            async with self._lock:
                try:
                    await self._connection.execute(query, self._model_to_values(model, now))
                    await self._connection.commit()
                except aiosqlite.IntegrityError as e:
                    await self._connection.rollback()
                    raise DuplicateRecordError(model.id, self._model_class.__name__) from e
            model.updated_at = now

    def _upsert_sql(self) -> str:
        columns = ", ".join(self._field_names)
        placeholders = ", ".join("?" * len(self._field_names))
        update_fields = [
            f for f in self._field_names if f not in ("id", "created_at", "version")
        ]
        update_clause = ", ".join(f"{f} = excluded.{f}" for f in update_fields)
        return f"""
            INSERT INTO {self._table_name} ({columns})
            VALUES ({placeholders})
            ON CONFLICT(id) DO UPDATE SET
                {update_clause},
                version = version + 1
        """  # nosec B608

    async def save(self, model: TModel) -> None:
        await self.save_many([model])

    async def save_many(self, models: list[TModel]) -> None:
        """Upsert all models in a single transaction; nothing is written on failure."""
        if not models:
            return

        with self._span("save_many" if len(models) > 1 else "save", "UPSERT"):
            query = self._upsert_sql()
            now = datetime.now(UTC)
            async with self._lock:
                try:
                    for model in models:
                        await self._connection.execute(query, self._model_to_values(model, now))
                    await self._connection.commit()
                except Exception:
                    await self._connection.rollback()
                    raise
            for model in models:
                model.updated_at = now

    async def delete(self, id: Any) -> bool:
        with self._span("delete", "DELETE", id):
            query = f"DELETE FROM {self._table_name} WHERE id = ?"  # nosec B608
            async with self._lock:
                cursor = await self._connection.execute(query, (id,))
                await self._connection.commit()
                return cursor.rowcount > 0

    async def exists(self, id: Any) -> bool:
        query = f"SELECT 1 FROM {self._table_name} WHERE id = ?"  # nosec B608
        async with self._lock:
            cursor = await self._connection.execute(query, (id,))
            return await cursor.fetchone() is not None

    async def find(self, query: Query | None = None) -> list[TModel]:
        if query is None:
            query = Query()
        with self._tracer.span(
            "fulfillment.records.find",
            {
                ATTR_RECORD_TYPE: self._model_class.__name__,
                ATTR_QUERY_LIMIT: query.limit if query.limit is not None else -1,
                ATTR_DB_SYSTEM: "sqlite",
                ATTR_DB_OPERATION: "SELECT",
            },
        ):
            sql, params = self._build_select_query(query)
            async with self._lock:
                cursor = await self._connection.execute(sql, params)
                rows = await cursor.fetchall()
            return [self._row_to_model(row) for row in rows]

    async def count(self, query: Query | None = None) -> int:
        if query is None:
            query = Query()
        where, params = self._build_where(query.filters)
        sql = f"SELECT COUNT(*) FROM {self._table_name}{where}"  # nosec B608
        async with self._lock:
            cursor = await self._connection.execute(sql, params)
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def decrement(
        self,
        id: Any,
        field: str,
        amount: int = 1,
        where: list[Filter] | None = None,
    ) -> TModel | None:
        """
        Conditionally subtract ``amount`` from an integer column.

        The row is only touched when ``field >= amount`` and every filter in
        ``where`` holds, evaluated by SQLite in the same statement.
        """
        with self._span("decrement", "UPDATE", id):
            conditions, params = self._build_where(
                [Filter.eq("id", id), Filter.gte(field, amount), *(where or [])]
            )
            sql = f"""
                UPDATE {self._table_name}
                SET {field} = {field} - ?, version = version + 1, updated_at = ?
                {conditions}
            """  # nosec B608 - table_name and field from trusted class
            return await self._conditional_update(
                id, sql, (amount, datetime.now(UTC).isoformat(), *params)
            )

    async def update_where(
        self,
        id: Any,
        changes: dict[str, Any],
        where: list[Filter],
    ) -> TModel | None:
        with self._span("update_where", "UPDATE", id):
            unknown = set(changes) - set(self._field_names)
            if unknown:
                raise ValueError(f"Unknown fields for {self._model_class.__name__}: {unknown}")
            conditions, params = self._build_where([Filter.eq("id", id), *where])
            set_clause = ", ".join(f"{name} = ?" for name in changes)
            sql = f"""
                UPDATE {self._table_name}
                SET {set_clause}, version = version + 1, updated_at = ?
                {conditions}
            """  # nosec B608 - table_name and fields from trusted class
            values = [
                json.dumps(v) if name in self._json_fields else _sql_value(v)
                for name, v in changes.items()
            ]
            return await self._conditional_update(
                id, sql, (*values, datetime.now(UTC).isoformat(), *params)
            )

    async def _conditional_update(
        self, id: Any, sql: str, params: tuple[Any, ...]
    ) -> TModel | None:
        select = f"""
            SELECT {", ".join(self._field_names)}
            FROM {self._table_name}
            WHERE id = ?
        """  # nosec B608
        async with self._lock:
            try:
                cursor = await self._connection.execute(sql, params)
                if cursor.rowcount == 0:
                    await self._connection.rollback()
                    return None
                cursor = await self._connection.execute(select, (id,))
                row = await cursor.fetchone()
                await self._connection.commit()
            except Exception:
                await self._connection.rollback()
                raise
        return self._row_to_model(row) if row is not None else None

    def _row_to_model(self, row: Sequence[Any]) -> TModel:
        data: dict[str, Any] = {}
        for i, field_name in enumerate(self._field_names):
            value = row[i]
            if field_name in self._json_fields and isinstance(value, str):
                value = json.loads(value)
            data[field_name] = value
        return self._model_class.model_validate(data)

    def _model_to_values(self, model: TModel, updated_at: datetime) -> tuple[Any, ...]:
        values: list[Any] = []
        data = model.model_dump(mode="json")
        for field_name in self._field_names:
            value = data.get(field_name)
            if field_name == "updated_at":
                value = updated_at.isoformat()
            elif isinstance(value, dict | list):
                value = json.dumps(value)
            elif isinstance(value, bool):
                value = int(value)
            values.append(value)
        return tuple(values)

    def _build_where(self, filters: list[Filter]) -> tuple[str, tuple[Any, ...]]:
        if not filters:
            return "", ()
        clauses: list[str] = []
        params: list[Any] = []
        for filter_ in filters:
            clause, filter_params = self._filter_to_sql(filter_)
            clauses.append(clause)
            params.extend(filter_params)
        return " WHERE " + " AND ".join(clauses), tuple(params)

    def _build_select_query(self, query: Query) -> tuple[str, tuple[Any, ...]]:
        where, params = self._build_where(query.filters)
        parts = [f"SELECT {', '.join(self._field_names)} FROM {self._table_name}{where}"]  # nosec B608
        if query.order_by:
            parts.append(f"ORDER BY {query.order_by} {'DESC' if query.descending else 'ASC'}")
        if query.limit is not None:
            parts.append(f"LIMIT {query.limit}")
        if query.offset:
            if query.limit is None:
                parts.append("LIMIT -1")
            parts.append(f"OFFSET {query.offset}")
        return " ".join(parts), params

    def _filter_to_sql(self, filter_: Filter) -> tuple[str, list[Any]]:
        field = filter_.field
        if field not in self._field_names:
            raise ValueError(f"Unknown field for {self._model_class.__name__}: {field}")

        if filter_.operator == "in":
            values = [_sql_value(v) for v in filter_.value]
            return f"{field} IN ({','.join('?' * len(values))})", values

        value = _sql_value(filter_.value)
        if value is None and filter_.operator == "eq":
            return f"{field} IS NULL", []
        if value is None and filter_.operator == "ne":
            return f"{field} IS NOT NULL", []

        return f"{field} {filter_.sql_operator} ?", [value]

    def __repr__(self) -> str:
        return f"<SQLiteRecordRepository {self._table_name}>"


__all__ = ["SQLiteRecordRepository"]
