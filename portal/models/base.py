"""Base entity class for stored domain records."""

from datetime import UTC, datetime
from typing import Any, Self
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def new_id() -> str:
    """Opaque identifier for newly created entities."""
    return uuid4().hex


def utc_now() -> datetime:
    return datetime.now(UTC)


class BaseEntity(BaseModel):
    """Stored record with an opaque id, timestamps and a write version.

    Records are treated as values: changes go through ``revise`` which
    returns a new copy, leaving the original untouched for event payloads
    that need the previous state. ``version`` is owned by the store and
    bumped on every write.
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
    )

    id: str = Field(default_factory=new_id, min_length=1)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(default=0, ge=0)

    def revise(self, **changes: Any) -> Self:
        """Copy with ``changes`` applied and ``updated_at`` refreshed."""
        return self.model_copy(update={**changes, "updated_at": utc_now()})


def assume_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones pass through."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
