"""
SQLite schema generation for records.

Generates CREATE TABLE statements from Record class definitions.

Example:
    >>> print(generate_schema(Coupon))
    CREATE TABLE IF NOT EXISTS coupons (
        id TEXT PRIMARY KEY,
        created_at TEXT NOT NULL,
        ...
        uses_left INTEGER NOT NULL DEFAULT 1,
        is_active INTEGER NOT NULL DEFAULT 1
    );
"""

import types
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Literal, Union, get_args, get_origin

from pydantic.fields import FieldInfo

from fulfillment.records.base import Record

# Decimal is kept as TEXT so prices round-trip exactly
SQLITE_TYPE_MAP: dict[type, str] = {
    str: "TEXT",
    int: "INTEGER",
    float: "REAL",
    Decimal: "TEXT",
    bool: "INTEGER",
    datetime: "TEXT",
    date: "TEXT",
    dict: "TEXT",
    list: "TEXT",
    bytes: "BLOB",
}


def unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    """Return (inner type, nullable) for X | None annotations."""
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(annotation) if a is not type(None)]
        nullable = len(args) != len(get_args(annotation))
        if len(args) == 1:
            return args[0], nullable
        return annotation, nullable
    return annotation, False


def sqlite_type(annotation: Any) -> str | None:
    """SQLite column type for a field annotation; None means no declared type."""
    inner, _ = unwrap_optional(annotation)
    origin = get_origin(inner)
    if origin is Literal:
        return "TEXT"
    if origin in (Union, types.UnionType):
        return None
    if origin in (dict, list):
        return "TEXT"
    if isinstance(inner, type):
        if issubclass(inner, Enum):
            return "TEXT"
        for python_type, sql_type in SQLITE_TYPE_MAP.items():
            if issubclass(inner, python_type):
                return sql_type
    return "TEXT"


def _sql_default(value: Any) -> str | None:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int | float):
        return str(value)
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    if isinstance(value, Decimal):
        return f"'{value}'"
    return None


def _generate_column(field_name: str, field_info: FieldInfo) -> str:
    column_type = sqlite_type(field_info.annotation)
    _, nullable = unwrap_optional(field_info.annotation)
    parts = [field_name]
    if column_type:
        parts.append(column_type)

    if field_name == "id":
        parts.append("PRIMARY KEY")
        return " ".join(parts)

    if not nullable:
        parts.append("NOT NULL")
    if not field_info.is_required() and field_info.default_factory is None:
        default = _sql_default(field_info.default)
        if default is not None:
            parts.append(f"DEFAULT {default}")
    return " ".join(parts)


def generate_schema(model_class: type[Record], if_not_exists: bool = True) -> str:
    """
    Generate CREATE TABLE SQL for a Record class.

    Args:
        model_class: The Record subclass to generate schema for
        if_not_exists: Include IF NOT EXISTS clause (default True)
    """
    columns = [
        _generate_column(name, info) for name, info in model_class.model_fields.items()
    ]
    exists_clause = "IF NOT EXISTS " if if_not_exists else ""
    columns_sql = ",\n    ".join(columns)
    return f"""CREATE TABLE {exists_clause}{model_class.table_name()} (
    {columns_sql}
);"""


def generate_indexes(model_class: type[Record]) -> list[str]:
    """
    CREATE INDEX statements for fields listed in ``__indexes__``.

    Example:
        >>> class DeliveryRecord(Record):
        ...     __indexes__ = [["ticket_channel_id"], ["status"]]
    """
    table_name = model_class.table_name()
    statements = []
    for fields in getattr(model_class, "__indexes__", []):
        if not fields:
            continue
        idx_name = f"idx_{table_name}_{'_'.join(fields)}"
        statements.append(
            f"CREATE INDEX IF NOT EXISTS {idx_name} ON {table_name}({', '.join(fields)});"
        )
    return statements


def generate_full_schema(model_class: type[Record]) -> str:
    return "\n\n".join([generate_schema(model_class), *generate_indexes(model_class)])


__all__ = [
    "SQLITE_TYPE_MAP",
    "generate_full_schema",
    "generate_indexes",
    "generate_schema",
    "sqlite_type",
    "unwrap_optional",
]
