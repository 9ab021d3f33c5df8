"""Shared FastAPI dependencies."""

from fastapi import Header, HTTPException, Request

from portal.dashboard.sources import DashboardSource
from portal.events.bus import TopicBus
from portal.meetings.state_machine import MeetingStateMachine
from portal.models.participant import ActingUser, Role


def get_state_machine(request: Request) -> MeetingStateMachine:
    """Dependency to get MeetingStateMachine from app state."""
    state_machine = getattr(request.app.state, "state_machine", None)
    if state_machine is None:
        raise HTTPException(status_code=500, detail="MeetingStateMachine not initialized")
    return state_machine


def get_topic_bus(request: Request) -> TopicBus:
    """Dependency to get TopicBus from app state."""
    return request.app.state.topic_bus


def get_acting_user(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
    x_user_name: str | None = Header(default=None),
) -> ActingUser:
    """Identity asserted by the upstream auth layer.

    Raises:
        HTTPException: 401 if the id or role header is missing or invalid
    """
    if not x_user_id or not x_user_id.strip() or not x_user_role:
        raise HTTPException(status_code=401, detail="未提供用户身份")
    try:
        role = Role(x_user_role.strip().lower())
    except ValueError:
        raise HTTPException(status_code=401, detail="无效的用户角色") from None
    return ActingUser(id=x_user_id, role=role, name=x_user_name or "")


def get_dashboard_source(request: Request) -> DashboardSource:
    """Dependency to get the shared bulk-fetch source from app state."""
    source = getattr(request.app.state, "dashboard_source", None)
    if source is None:
        raise HTTPException(status_code=500, detail="DashboardSource not initialized")
    return source
