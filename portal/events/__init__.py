"""Event infrastructure for the portal.

Provides:
- Topic: typed topic families and channel builders
- Event: Base class for domain events
- TopicBus / Subscription: in-process pub/sub with disposable handles
- ConnectionHub: websocket push transport for remote subscribers
"""

from portal.events.base import Event
from portal.events.bus import PushTransport, Subscription, TopicBus
from portal.events.hub import ConnectionHub
from portal.events.topics import (
    Topic,
    channel_name,
    class_update,
    parse_channel,
    student_data_update,
    user_meetings,
)
from portal.events.types import (
    ClassUpdate,
    MeetingAttendanceConfirmed,
    MeetingCreated,
    MeetingEvent,
    MeetingRescheduled,
    MeetingStatusChanged,
    MeetingUpdate,
    StudentDataUpdate,
    StudentTrendsUpdate,
    SystemAlert,
)

__all__ = [
    # Base
    "Event",
    # Topics
    "Topic",
    "channel_name",
    "class_update",
    "parse_channel",
    "student_data_update",
    "user_meetings",
    # Infrastructure
    "TopicBus",
    "Subscription",
    "PushTransport",
    "ConnectionHub",
    # Meeting events
    "MeetingEvent",
    "MeetingCreated",
    "MeetingStatusChanged",
    "MeetingAttendanceConfirmed",
    "MeetingRescheduled",
    # Dashboard update payloads
    "MeetingUpdate",
    "StudentTrendsUpdate",
    "ClassUpdate",
    "StudentDataUpdate",
    "SystemAlert",
]
