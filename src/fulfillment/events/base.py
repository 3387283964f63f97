"""
Base model for order events.

Events are frozen pydantic models. Their JSON form (``to_dict``) is what the
SQLite store writes, and ``event_type`` is what the registry reads back to
pick the class when a stream is loaded.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _utcnow() -> datetime:
    return datetime.now(UTC)


class DomainEvent(BaseModel):
    """
    Something that happened to one aggregate.

    ``event_type`` defaults to the class name. ``aggregate_version`` is the
    aggregate's version once this event is applied, so the first event of a
    stream carries 1.

    Example:
        >>> class OrderPaid(DomainEvent):
        ...     aggregate_type: str = "Order"
        ...     reference: str
        >>> OrderPaid(aggregate_id=445, reference="TICKET445T1").event_type
        'OrderPaid'
    """

    model_config = ConfigDict(frozen=True)

    event_id: UUID = Field(default_factory=uuid4)
    event_type: str = ""
    occurred_at: datetime = Field(default_factory=_utcnow)

    aggregate_id: int = Field(ge=1)
    aggregate_type: str
    aggregate_version: int = Field(default=1, ge=1)

    actor_id: str | None = None
    """Chat user id behind the command, None for timers and webhooks."""

    @model_validator(mode="before")
    @classmethod
    def _stamp_event_type(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("event_type"):
            declared = cls.model_fields["event_type"].default
            data = {**data, "event_type": declared or cls.__name__}
        return data

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def __str__(self) -> str:
        return f"{self.event_type}#{self.aggregate_id}@v{self.aggregate_version}"


__all__ = ["DomainEvent"]
