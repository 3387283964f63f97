"""
Protocol for record repositories.

Record repositories are the generic transactional store behind inventory,
coupons, gift codes, reviews, configuration and delivery records. The same
service code runs against the in-memory and SQLite implementations.
"""

from __future__ import annotations

from typing import Any, Protocol, TypeVar, runtime_checkable

from fulfillment.records.base import Record
from fulfillment.records.query import Filter, Query

TModel = TypeVar("TModel", bound=Record)


@runtime_checkable
class RecordRepository(Protocol[TModel]):
    """
    Protocol for record persistence.

    Key Design Decisions:
        - `insert()` fails on an existing id; `save()` upserts
        - `save_many()` is all-or-nothing
        - `decrement()` and `update_where()` are single conditional updates,
          so concurrent callers cannot both succeed against the same row state
        - Returned models are copies; mutate them and save to persist
    """

    @property
    def model_class(self) -> type[TModel]: ...

    async def get(self, id: Any) -> TModel | None:
        """Get a record by id, or None."""
        ...

    async def get_or_raise(self, id: Any) -> TModel:
        """
        Get a record by id.

        Raises:
            RecordNotFoundError: If no record has this id
        """
        ...

    async def insert(self, model: TModel) -> None:
        """
        Insert a new record.

        Raises:
            DuplicateRecordError: If a record with the same id exists
        """
        ...

    async def save(self, model: TModel) -> None:
        """Insert or update a record (upsert); bumps version on update."""
        ...

    async def save_many(self, models: list[TModel]) -> None:
        """Upsert several records in one transaction."""
        ...

    async def delete(self, id: Any) -> bool:
        """Delete a record. Returns False if it did not exist."""
        ...

    async def find(self, query: Query | None = None) -> list[TModel]: ...

    async def count(self, query: Query | None = None) -> int: ...

    async def exists(self, id: Any) -> bool: ...

    async def decrement(
        self,
        id: Any,
        field: str,
        amount: int = 1,
        where: list[Filter] | None = None,
    ) -> TModel | None:
        """
        Atomically subtract amount from an integer field.

        Applies only when the current value is at least amount and every
        filter in ``where`` matches. Returns the updated record, or None
        when the condition did not hold (or the record does not exist).
        """
        ...

    async def update_where(
        self,
        id: Any,
        changes: dict[str, Any],
        where: list[Filter],
    ) -> TModel | None:
        """
        Atomically apply changes when every filter in ``where`` matches.

        Returns the updated record, or None when the condition did not hold.
        """
        ...


__all__ = ["RecordRepository", "TModel"]
