"""Live role-specific dashboards."""

from portal.dashboard.aggregator import DashboardAggregator
from portal.dashboard.sources import DashboardSource, HttpDashboardSource
from portal.dashboard.state import (
    AdminDashboard,
    ChildStudyData,
    DashboardState,
    ParentDashboard,
    StudentDashboard,
    TeacherDashboard,
    empty_state,
)
from portal.dashboard.strategies import RoleStrategy, build_strategies

__all__ = [
    "DashboardAggregator",
    "DashboardSource",
    "HttpDashboardSource",
    "DashboardState",
    "StudentDashboard",
    "ParentDashboard",
    "ChildStudyData",
    "TeacherDashboard",
    "AdminDashboard",
    "empty_state",
    "RoleStrategy",
    "build_strategies",
]
