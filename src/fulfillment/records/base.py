"""
Base model for mutable rows.

Stock items, coupons, gift codes, reviews, the configuration row and the
projected delivery records are all Records: pydantic models validated on
every assignment, saved whole through a RecordRepository, with ``version``
bumped by the repository on each save.
"""

import re
from datetime import UTC, datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Record(BaseModel):
    """
    Subclasses narrow ``id``: item ids and codes are strings, order ids and
    the configuration row are integers.
    """

    model_config = ConfigDict(validate_assignment=True, from_attributes=True)

    id: int | str
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    version: int = Field(default=1, ge=1)

    __table_name__: ClassVar[str | None] = None

    @classmethod
    def table_name(cls) -> str:
        """``__table_name__`` if set, else ``StockItem`` -> ``stock_items``."""
        if cls.__table_name__:
            return cls.__table_name__
        return _WORD_BOUNDARY.sub("_", cls.__name__).lower() + "s"

    @classmethod
    def field_names(cls) -> list[str]:
        return list(cls.model_fields)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def __str__(self) -> str:
        return f"{type(self).__name__}[{self.id}] v{self.version}"


__all__ = ["Record"]
