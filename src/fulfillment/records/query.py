"""
Filters and queries shared by the record repositories.

A filter is a field, an operator name and a value. The in-memory repository
evaluates it with the Python function registered for the operator; the
SQLite repository renders the matching SQL operator with a bound parameter.
"""

import operator
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

Operator = Literal["eq", "ne", "gt", "gte", "lt", "lte", "in"]

# name -> (python predicate, sql operator)
OPERATORS: dict[str, tuple[Callable[[Any, Any], bool], str]] = {
    "eq": (operator.eq, "="),
    "ne": (operator.ne, "!="),
    "gt": (operator.gt, ">"),
    "gte": (operator.ge, ">="),
    "lt": (operator.lt, "<"),
    "lte": (operator.le, "<="),
    "in": (lambda value, options: value in options, "IN"),
}


@dataclass(frozen=True)
class Filter:
    field: str
    operator: Operator
    value: Any

    @classmethod
    def eq(cls, field: str, value: Any) -> "Filter":
        return cls(field, "eq", value)

    @classmethod
    def ne(cls, field: str, value: Any) -> "Filter":
        return cls(field, "ne", value)

    @classmethod
    def gt(cls, field: str, value: Any) -> "Filter":
        return cls(field, "gt", value)

    @classmethod
    def gte(cls, field: str, value: Any) -> "Filter":
        return cls(field, "gte", value)

    @classmethod
    def lt(cls, field: str, value: Any) -> "Filter":
        return cls(field, "lt", value)

    @classmethod
    def lte(cls, field: str, value: Any) -> "Filter":
        return cls(field, "lte", value)

    @classmethod
    def in_(cls, field: str, values: Sequence[Any]) -> "Filter":
        return cls(field, "in", tuple(values))

    @property
    def sql_operator(self) -> str:
        return OPERATORS[self.operator][1]

    def matches(self, value: Any) -> bool:
        """
        Ordering comparisons never match a missing (None) value, as in SQL
        where ``NULL > 0`` is not true.
        """
        predicate = OPERATORS[self.operator][0]
        if value is None and self.operator not in ("eq", "ne", "in"):
            return False
        return bool(predicate(value, self.value))


@dataclass
class Query:
    """
    Filters are ANDed together.

    Example:
        >>> Query(filters=[Filter.eq("status", "closed")], order_by="closed_at", descending=True)
    """

    filters: list[Filter] = field(default_factory=list)
    order_by: str | None = None
    descending: bool = False
    limit: int | None = None
    offset: int = 0


__all__ = ["OPERATORS", "Filter", "Operator", "Query"]
