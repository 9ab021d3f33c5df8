"""Base Event class for domain events published on the TopicBus."""

from datetime import UTC, datetime
from typing import Any, ClassVar
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class Event(BaseModel):
    """Base class for all domain events.

    Events are immutable records of things that happened. They travel on
    the bus as plain dict payloads (see ``to_payload``) so local handlers
    and remote websocket clients receive the same shape.

    Attributes:
        event_id: Unique identifier for this event instance
        timestamp: When the event occurred
        aggregate_id: ID of the entity this event relates to
        metadata: Additional context about the event
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
    )

    name: ClassVar[str] = "event"

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier",
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the event occurred",
    )
    aggregate_id: str | None = Field(
        default=None,
        description="ID of the related entity",
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event context",
    )

    @property
    def event_type(self) -> str:
        """Dotted event name, e.g. ``meeting.created``."""
        return self.name

    def to_payload(self) -> dict[str, Any]:
        """Convert event to a JSON-safe dict for publishing."""
        return {
            "event": self.event_type,
            **self.model_dump(mode="json"),
        }
