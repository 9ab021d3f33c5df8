"""Command inputs for the meeting state machine."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from portal.models.base import assume_utc


class ParticipantInput(BaseModel):
    """A participant as named by the caller; the role is implied by the slot."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(min_length=1)
    name: str = ""


class MeetingCreate(BaseModel):
    """Input for scheduling a meeting.

    Everything is optional at the type level so the state machine can
    report every missing required field in one error.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str | None = None
    description: str = ""
    organizer: ParticipantInput | None = None
    parent: ParticipantInput | None = None
    student: ParticipantInput | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    meeting_type: str = Field(default="offline", description="offline/online or 线下/线上")
    location: str | None = None
    link: str | None = None
    notes: str = ""


class MeetingReschedule(BaseModel):
    """Changes to a meeting's time, venue or details.

    Fields left as None keep their current value. Status is not part of
    this command; it moves through the status transitions only.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str | None = None
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    meeting_type: str | None = Field(default=None, description="offline/online or 线下/线上")
    location: str | None = None
    link: str | None = None
    notes: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def times_are_aware(cls, v: datetime | None) -> datetime | None:
        return assume_utc(v) if v is not None else None
