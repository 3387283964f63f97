"""
In-memory implementation of the record repository.

Provides a simple, fast repository for testing and development.
All data is stored in memory and lost when the process terminates.
"""

import asyncio
from datetime import UTC, datetime
from typing import Any, Generic

from fulfillment.exceptions import DuplicateRecordError, RecordNotFoundError
from fulfillment.observability import Tracer, create_tracer
from fulfillment.observability.attributes import (
    ATTR_QUERY_LIMIT,
    ATTR_RECORD_ID,
    ATTR_RECORD_TYPE,
)
from fulfillment.records.query import Filter, Query
from fulfillment.records.repository import TModel


class InMemoryRecordRepository(Generic[TModel]):
    """
    In-memory RecordRepository backed by a dict and an asyncio.Lock.

    Example:
        >>> repo = InMemoryRecordRepository(StockItem)
        >>> await repo.insert(StockItem(id="MANGO", name="MANGO", price=Decimal("0.70"), ...))
        >>> item = await repo.get("MANGO")
    """

    def __init__(
        self,
        model_class: type[TModel],
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

        self._model_class = model_class
        self._models: dict[Any, TModel] = {}
        self._lock = asyncio.Lock()

    @property
    def model_class(self) -> type[TModel]:
        return self._model_class

    def _span(self, operation: str, record_id: Any = None) -> Any:
        attributes: dict[str, Any] = {ATTR_RECORD_TYPE: self._model_class.__name__}
        if record_id is not None:
            attributes[ATTR_RECORD_ID] = str(record_id)
        return self._tracer.span(f"fulfillment.records.{operation}", attributes)

    async def get(self, id: Any) -> TModel | None:
        with self._span("get", id):
            async with self._lock:
                model = self._models.get(id)
                return model.model_copy(deep=True) if model is not None else None

    async def get_or_raise(self, id: Any) -> TModel:
        model = await self.get(id)
        if model is None:
            raise RecordNotFoundError(id, self._model_class.__name__)
        return model

    async def insert(self, model: TModel) -> None:
        with self._span("insert", model.id):
            async with self._lock:
                if model.id in self._models:
                    raise DuplicateRecordError(model.id, self._model_class.__name__)
                model.updated_at = datetime.now(UTC)
                self._models[model.id] = model.model_copy(deep=True)

    def _upsert(self, model: TModel, now: datetime) -> None:
        existing = self._models.get(model.id)
        if existing is not None:
            model.version = existing.version + 1
            model.created_at = existing.created_at
        model.updated_at = now
        self._models[model.id] = model.model_copy(deep=True)

    async def save(self, model: TModel) -> None:
        with self._span("save", model.id):
            async with self._lock:
                self._upsert(model, datetime.now(UTC))

    async def save_many(self, models: list[TModel]) -> None:
        with self._span("save_many"):
            async with self._lock:
                now = datetime.now(UTC)
                for model in models:
                    self._upsert(model, now)

    async def delete(self, id: Any) -> bool:
        with self._span("delete", id):
            async with self._lock:
                return self._models.pop(id, None) is not None

    async def exists(self, id: Any) -> bool:
        async with self._lock:
            return id in self._models

    def _select(self, query: Query) -> list[TModel]:
        results = [
            m
            for m in self._models.values()
            if all(f.matches(getattr(m, f.field, None)) for f in query.filters)
        ]
        if query.order_by:
            results.sort(
                key=lambda m: getattr(m, query.order_by),  # type: ignore[arg-type]
                reverse=query.descending,
            )
        if query.offset:
            results = results[query.offset :]
        if query.limit is not None:
            results = results[: query.limit]
        return results

    async def find(self, query: Query | None = None) -> list[TModel]:
        if query is None:
            query = Query()
        with self._tracer.span(
            "fulfillment.records.find",
            {
                ATTR_RECORD_TYPE: self._model_class.__name__,
                ATTR_QUERY_LIMIT: query.limit if query.limit is not None else -1,
            },
        ):
            async with self._lock:
                return [m.model_copy(deep=True) for m in self._select(query)]

    async def count(self, query: Query | None = None) -> int:
        if query is None:
            query = Query()
        async with self._lock:
            return len(self._select(Query(filters=query.filters)))

    async def decrement(
        self,
        id: Any,
        field: str,
        amount: int = 1,
        where: list[Filter] | None = None,
    ) -> TModel | None:
        conditions = [Filter.gte(field, amount), *(where or [])]
        with self._span("decrement", id):
            async with self._lock:
                model = self._models.get(id)
                if model is None or not all(
                    f.matches(getattr(model, f.field, None)) for f in conditions
                ):
                    return None
                updated = model.model_copy(deep=True)
                setattr(updated, field, getattr(model, field) - amount)
                self._upsert(updated, datetime.now(UTC))
                return updated.model_copy(deep=True)

    async def update_where(
        self,
        id: Any,
        changes: dict[str, Any],
        where: list[Filter],
    ) -> TModel | None:
        with self._span("update_where", id):
            async with self._lock:
                model = self._models.get(id)
                if model is None or not all(
                    f.matches(getattr(model, f.field, None)) for f in where
                ):
                    return None
                updated = model.model_copy(deep=True)
                for name, value in changes.items():
                    setattr(updated, name, value)
                self._upsert(updated, datetime.now(UTC))
                return updated.model_copy(deep=True)

    async def clear(self) -> None:
        async with self._lock:
            self._models.clear()

    def __len__(self) -> int:
        return len(self._models)


__all__ = ["InMemoryRecordRepository"]
