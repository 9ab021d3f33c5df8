"""Canonical data models for the portal.

- BaseEntity: stored record with id, timestamps and write version
- Role, UserRef, ActingUser: role-tagged identities
- Meeting: parent-teacher meeting with a tagged venue union
"""

from portal.models.base import BaseEntity, new_id
from portal.models.meeting import (
    Meeting,
    MeetingStatus,
    MeetingType,
    OfflineVenue,
    OnlineVenue,
    Venue,
)
from portal.models.participant import ActingUser, Role, UserRef

__all__ = [
    # Base
    "BaseEntity",
    "new_id",
    # Identities
    "Role",
    "UserRef",
    "ActingUser",
    # Meeting
    "Meeting",
    "MeetingStatus",
    "MeetingType",
    "OfflineVenue",
    "OnlineVenue",
    "Venue",
]
