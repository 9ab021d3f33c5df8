"""Typed event definitions.

Meeting events are produced by the state machine:
- MeetingCreated: a new meeting was scheduled
- MeetingStatusChanged: organizer or admin moved the meeting to a new status
- MeetingAttendanceConfirmed: the designated participant confirmed
- MeetingRescheduled: time, venue or details changed before the meeting

Dashboard update payloads are produced by external services and consumed
by the DashboardAggregator. They are validated leniently: unknown keys are
kept, but the subject id needed to route the merge is mandatory.
"""

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from portal.events.base import Event
from portal.models.meeting import Meeting, MeetingStatus


class MeetingEvent(Event):
    """Common fields for events about a single meeting."""

    organizer_id: str = Field(description="Organizer user id")
    parent_id: str = Field(description="Parent participant user id")
    student_id: str | None = Field(default=None, description="Student user id")
    title: str = Field(description="Meeting title")
    status: MeetingStatus = Field(description="Status after the event")

    @classmethod
    def from_meeting(cls, meeting: Meeting, /, **extra: Any) -> "MeetingEvent":
        return cls(
            aggregate_id=meeting.id,
            organizer_id=meeting.organizer.id,
            parent_id=meeting.parent.id,
            student_id=meeting.student.id if meeting.student else None,
            title=meeting.title,
            status=meeting.status,
            **extra,
        )


class MeetingCreated(MeetingEvent):
    """Emitted when a teacher or admin schedules a meeting."""

    name: ClassVar[str] = "meeting.created"

    meeting: dict[str, Any] = Field(description="Serialized meeting record")


class MeetingStatusChanged(MeetingEvent):
    """Emitted after a successful status update."""

    name: ClassVar[str] = "meeting.statusChanged"

    old_status: MeetingStatus
    new_status: MeetingStatus
    changed_by: str = Field(description="User id that made the change")


class MeetingAttendanceConfirmed(MeetingEvent):
    """Emitted when the designated participant confirms attendance."""

    name: ClassVar[str] = "meeting.attendanceConfirmed"

    confirmed_by: str = Field(description="Participant user id")


class MeetingRescheduled(MeetingEvent):
    """Emitted when the organizer moves a meeting or changes its details."""

    name: ClassVar[str] = "meeting.rescheduled"

    meeting: dict[str, Any] = Field(description="Serialized meeting record after the change")
    changed_fields: list[str] = Field(default_factory=list)
    changed_by: str = Field(description="User id that made the change")


class UpdatePayload(BaseModel):
    """Base for inbound dashboard update payloads."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class MeetingUpdate(UpdatePayload):
    """``meetings-<userId>``: a meeting event as published by the state machine.

    Events that carry the full ``meeting`` record replace the dashboard's copy
    field by field; the others only move its status.
    """

    event: str = Field(min_length=1)
    aggregate_id: str = Field(min_length=1)
    status: MeetingStatus
    meeting: dict[str, Any] | None = None


class StudentTrendsUpdate(UpdatePayload):
    """``student-trends-update``: new score trends for one student."""

    student_id: str = Field(alias="studentId", min_length=1)
    trends_data: dict[str, Any] | None = Field(default=None, alias="trendsData")


class ClassUpdate(UpdatePayload):
    """``class-update-<classId>``: tagged change inside a class."""

    HOMEWORK_STATUS_CHANGED: ClassVar[str] = "HOMEWORK_STATUS_CHANGED"
    NEW_STUDENT_ALERT: ClassVar[str] = "NEW_STUDENT_ALERT"
    CLASS_STATS_CHANGED: ClassVar[str] = "CLASS_STATS_CHANGED"

    type: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)


class StudentDataUpdate(UpdatePayload):
    """``student-data-update-<childId>``: partial study data for a child."""

    updated_fields: dict[str, Any] = Field(alias="updatedFields")


class SystemAlert(UpdatePayload):
    """``system-alert``: an admin-facing alert."""

    id: str = Field(min_length=1)
    type: str | None = None
    message: str | None = None
    severity: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v
