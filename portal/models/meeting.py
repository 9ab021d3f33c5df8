"""Parent-teacher meeting model.

The venue of a meeting is a tagged union keyed by ``meeting_type``:
offline meetings always carry a location, online meetings a link.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from portal.models.base import BaseEntity, assume_utc
from portal.models.participant import Role, UserRef


class MeetingStatus(str, Enum):
    """Lifecycle status of a meeting."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @classmethod
    def _missing_(cls, value: object) -> "MeetingStatus | None":
        # Accept the Chinese display labels used by the web and mobile clients
        if isinstance(value, str):
            for member, label in _STATUS_LABELS.items():
                if value.strip() in (label, member.value.upper()):
                    return member
        return None

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]

    @property
    def is_terminal(self) -> bool:
        return self in (MeetingStatus.CANCELLED, MeetingStatus.COMPLETED)


_STATUS_LABELS = {
    MeetingStatus.SCHEDULED: "待确认",
    MeetingStatus.CONFIRMED: "已确认",
    MeetingStatus.CANCELLED: "已取消",
    MeetingStatus.COMPLETED: "已完成",
}


class MeetingType(str, Enum):
    """Whether the meeting happens in person or over a video call."""

    OFFLINE = "offline"
    ONLINE = "online"

    @classmethod
    def _missing_(cls, value: object) -> "MeetingType | None":
        aliases = {"线下": cls.OFFLINE, "线上": cls.ONLINE}
        if isinstance(value, str):
            return aliases.get(value.strip())
        return None


class OfflineVenue(BaseModel):
    """In-person meeting place."""

    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    meeting_type: Literal["offline"] = "offline"
    location: str = Field(min_length=1, max_length=500)


class OnlineVenue(BaseModel):
    """Remote meeting reached through a call link."""

    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    meeting_type: Literal["online"] = "online"
    link: str = Field(min_length=1, max_length=2000)


Venue = Annotated[OfflineVenue | OnlineVenue, Field(discriminator="meeting_type")]


class Meeting(BaseEntity):
    """A scheduled parent-teacher meeting.

    The organizer (teacher or admin) owns scheduling changes; the parent
    (and student, when present) are participants who may confirm
    attendance.
    """

    title: str = Field(min_length=1, max_length=500)
    description: str = Field(default="", max_length=5000)
    organizer: UserRef
    parent: UserRef
    student: UserRef | None = None
    start_time: datetime
    end_time: datetime
    venue: Venue
    status: MeetingStatus = MeetingStatus.SCHEDULED
    notes: str = Field(default="", max_length=2000)
    feedback: str | None = Field(default=None, max_length=5000)

    @field_validator("start_time", "end_time")
    @classmethod
    def times_are_aware(cls, v: datetime) -> datetime:
        return assume_utc(v)

    @model_validator(mode="after")
    def check_times_and_roles(self) -> "Meeting":
        if self.end_time <= self.start_time:
            msg = "结束时间必须晚于开始时间"
            raise ValueError(msg)
        if not self.organizer.role.can_organize:
            msg = "Meeting organizer must be a teacher or admin"
            raise ValueError(msg)
        if self.parent.role != Role.PARENT:
            msg = "Meeting parent participant must have the parent role"
            raise ValueError(msg)
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status_label(self) -> str:
        return self.status.label

    @property
    def meeting_type(self) -> MeetingType:
        return MeetingType(self.venue.meeting_type)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def is_organizer(self, user_id: str) -> bool:
        return self.organizer.id == user_id

    def is_participant(self, user_id: str) -> bool:
        """Designated attendee: the parent, or the student when one is set."""
        if self.parent.id == user_id:
            return True
        return self.student is not None and self.student.id == user_id

    def involves(self, user_id: str) -> bool:
        return self.is_organizer(user_id) or self.is_participant(user_id)
