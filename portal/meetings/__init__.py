"""Meeting coordination: state machine and command inputs."""

from portal.meetings.schemas import MeetingCreate, MeetingReschedule, ParticipantInput
from portal.meetings.state_machine import (
    TRANSITIONS,
    MeetingStateMachine,
    can_transition,
    parse_status,
)

__all__ = [
    "MeetingCreate",
    "MeetingReschedule",
    "ParticipantInput",
    "MeetingStateMachine",
    "TRANSITIONS",
    "can_transition",
    "parse_status",
]
