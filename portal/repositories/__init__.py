"""Persistence for portal entities."""

from portal.repositories.meeting_repo import MeetingFilter, MeetingRepository

__all__ = ["MeetingFilter", "MeetingRepository"]
