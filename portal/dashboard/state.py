"""Role-specific dashboard projections.

Every slice has a fixed shape with empty defaults, so a projection is
never partially undefined: a slice whose fetch failed is just empty.
Items inside list slices stay plain dicts because their fields come from
external services and are merged field by field.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from portal.models.participant import Role

Item = dict[str, Any]


class DashboardState(BaseModel):
    """Base for per-role projections.

    Every role also sees the meetings it takes part in, keyed by meeting id.
    """

    model_config = ConfigDict(validate_assignment=True)

    role: Role
    meetings: list[Item] = Field(default_factory=list)


class StudentDashboard(DashboardState):
    role: Role = Role.STUDENT
    recent_scores: list[Item] = Field(default_factory=list)
    homework_list: list[Item] = Field(default_factory=list)
    notifications: list[Item] = Field(default_factory=list)
    progress_data: list[Item] = Field(default_factory=list)
    overall_progress: float = 0.0
    completed_homework: int = 0
    total_homework: int = 0
    pending_homework: int = 0
    average_score: float = 0.0


class HomeworkStatus(BaseModel):
    completed: int = 0
    pending: int = 0
    overdue: int = 0


class Attendance(BaseModel):
    present: int = 0
    absent: int = 0
    late: int = 0


class ChildStudyData(BaseModel):
    """Study data the parent view shows for one child."""

    model_config = ConfigDict(extra="allow")

    recent_scores: list[Item] = Field(default_factory=list)
    homework_status: HomeworkStatus = Field(default_factory=HomeworkStatus)
    attendance: Attendance = Field(default_factory=Attendance)
    teacher_comments: list[Item] = Field(default_factory=list)
    average_score: float = 0.0


class ParentDashboard(DashboardState):
    role: Role = Role.PARENT
    children: list[Item] = Field(default_factory=list)
    study_data: dict[str, ChildStudyData] = Field(default_factory=dict)

    def child_ids(self) -> list[str]:
        return [str(c["id"]) for c in self.children if c.get("id") is not None]


class TeacherDashboard(DashboardState):
    role: Role = Role.TEACHER
    class_stats: list[Item] = Field(default_factory=list)
    recent_homework: list[Item] = Field(default_factory=list)
    student_alerts: list[Item] = Field(default_factory=list)


class AdminDashboard(DashboardState):
    role: Role = Role.ADMIN
    school_stats: dict[str, Any] = Field(default_factory=dict)
    grade_performance: list[Item] = Field(default_factory=list)
    system_alerts: list[Item] = Field(default_factory=list)


STATE_TYPES: dict[Role, type[DashboardState]] = {
    Role.STUDENT: StudentDashboard,
    Role.PARENT: ParentDashboard,
    Role.TEACHER: TeacherDashboard,
    Role.ADMIN: AdminDashboard,
}


def empty_state(role: Role) -> DashboardState:
    """Fully-shaped projection with every slice empty."""
    return STATE_TYPES[role]()
