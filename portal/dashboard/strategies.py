"""Per-role hydration plans.

A strategy names the endpoints to bulk-fetch for a role and turns the raw
responses into that role's projection. Raw results map slice name to the
response body, or to None when the fetch failed. Each slice is built on
its own: a missing or unreadable body empties that slice and nothing else.
"""

from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import Any, TypeVar

import structlog

from portal.config import Settings, get_settings
from portal.dashboard.state import (
    AdminDashboard,
    Attendance,
    ChildStudyData,
    DashboardState,
    HomeworkStatus,
    ParentDashboard,
    StudentDashboard,
    TeacherDashboard,
)
from portal.models.participant import Role

RawResults = dict[str, Any]
Endpoints = dict[str, str]

logger = structlog.get_logger()

T = TypeVar("T")

_TREND_LABELS = {"上升": "up", "下降": "down"}


@dataclass(frozen=True)
class RoleStrategy:
    """Fetch plan and projection builder for one role."""

    role: Role
    endpoints: Callable[[str], Endpoints]
    build: Callable[[RawResults], DashboardState]
    # Parent only: second fan-out, one plan per child id
    child_ids: Callable[[RawResults], list[str]] | None = None
    child_endpoints: Callable[[str], Endpoints] | None = None


# Response extraction


def section(raw: RawResults, slice_name: str, key: str, default: Any) -> Any:
    """Pull ``key`` out of one slice's body, or ``default`` if unusable."""
    body = raw.get(slice_name)
    if not isinstance(body, dict):
        return default
    value = body.get(key)
    if not isinstance(value, type(default)):
        return default
    return value


def guarded(slice_name: str, build: Callable[[], T], default: T) -> T:
    """Build one slice, falling back to ``default`` if its body is unreadable."""
    try:
        return build()
    except Exception as e:
        logger.warning("unreadable dashboard slice", slice=slice_name, error=str(e))
        return default


def _dict_items(values: list) -> list[dict[str, Any]]:
    return [v for v in values if isinstance(v, dict)]


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _number(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    return 0.0


def scores_from_trends(trends_data: dict[str, Any], limit: int) -> list[dict[str, Any]]:
    """One recent-score row per subject: latest score and its trend direction."""
    rows = []
    for subject, data in trends_data.items():
        data = data if isinstance(data, dict) else {}
        scores = data.get("scores")
        scores = scores if isinstance(scores, list) else []
        latest = scores[-1] if scores and isinstance(scores[-1], dict) else {}
        trend = data.get("trend")
        rows.append(
            {
                "subject": subject,
                "score": latest.get("score", 0),
                "date": latest.get("date", ""),
                "trend": _TREND_LABELS.get(trend, "stable") if isinstance(trend, str) else "stable",
            }
        )
    return rows[:limit]


def progress_rows(progress_data: dict[str, Any]) -> list[dict[str, Any]]:
    return [
        {
            "subject": subject,
            "progress": (data.get("completionRate") if isinstance(data, dict) else None)
            or 0,
        }
        for subject, data in progress_data.items()
    ]


def _count_status(homework: list[dict[str, Any]], status: str) -> int:
    return sum(1 for hw in homework if hw.get("status") == status)


# Builders


def build_student(raw: RawResults, score_limit: int) -> StudentDashboard:
    recent_scores = guarded(
        "trends",
        lambda: scores_from_trends(section(raw, "trends", "trendsData", {}), score_limit),
        [],
    )
    progress_data = guarded(
        "progress", lambda: progress_rows(section(raw, "progress", "progressData", {})), []
    )
    homework = _dict_items(section(raw, "homework", "homeworks", []))
    completed = _count_status(homework, "completed")

    return StudentDashboard(
        recent_scores=recent_scores,
        homework_list=homework,
        notifications=_dict_items(section(raw, "notifications", "notifications", [])),
        progress_data=progress_data,
        overall_progress=_mean([_number(row["progress"]) for row in progress_data]),
        completed_homework=completed,
        total_homework=len(homework),
        pending_homework=len(homework) - completed,
        average_score=_mean([_number(row["score"]) for row in recent_scores]),
    )


def _attendance(raw: RawResults) -> Attendance:
    attendance = section(raw, "trends", "attendance", {})
    return Attendance(**{k: v for k, v in attendance.items() if k in Attendance.model_fields})


def build_child(raw: RawResults, score_limit: int) -> ChildStudyData:
    recent_scores = guarded(
        "trends",
        lambda: scores_from_trends(section(raw, "trends", "trendsData", {}), score_limit),
        [],
    )
    homework = _dict_items(section(raw, "homework", "homeworks", []))

    return ChildStudyData(
        recent_scores=recent_scores,
        homework_status=HomeworkStatus(
            completed=_count_status(homework, "completed"),
            pending=_count_status(homework, "pending"),
            overdue=_count_status(homework, "overdue"),
        ),
        attendance=guarded("attendance", lambda: _attendance(raw), Attendance()),
        teacher_comments=_dict_items(section(raw, "comments", "comments", [])),
        average_score=round(_mean([_number(row["score"]) for row in recent_scores]), 1),
    )


def build_parent(raw: RawResults, score_limit: int) -> ParentDashboard:
    dashboard = ParentDashboard(children=_dict_items(section(raw, "children", "children", [])))
    per_child = raw.get("per_child")
    per_child = per_child if isinstance(per_child, dict) else {}
    dashboard.study_data = {
        child_id: guarded(
            f"child:{child_id}",
            lambda child_id=child_id: build_child(per_child.get(child_id) or {}, score_limit),
            ChildStudyData(),
        )
        for child_id in dashboard.child_ids()
    }
    return dashboard


def parent_child_ids(raw: RawResults) -> list[str]:
    children = _dict_items(section(raw, "children", "children", []))
    return ParentDashboard(children=children).child_ids()


def build_teacher(raw: RawResults) -> TeacherDashboard:
    return TeacherDashboard(
        class_stats=_dict_items(section(raw, "class_stats", "classStats", [])),
        recent_homework=_dict_items(section(raw, "recent_homework", "recentHomework", [])),
        student_alerts=_dict_items(section(raw, "student_alerts", "studentAlerts", [])),
    )


def build_admin(raw: RawResults) -> AdminDashboard:
    return AdminDashboard(
        school_stats=section(raw, "school_stats", "schoolStats", {}),
        grade_performance=_dict_items(
            section(raw, "grade_performance", "gradePerformance", [])
        ),
        system_alerts=_dict_items(section(raw, "system_alerts", "systemAlerts", [])),
    )


# Endpoint plans


def student_endpoints(student_id: str) -> Endpoints:
    return {
        "trends": f"/api/analytics/trends/student/{student_id}",
        "progress": f"/api/analytics/progress/student/{student_id}",
        "homework": f"/api/homework/student/{student_id}",
        "notifications": f"/api/notifications/user/{student_id}",
    }


def parent_endpoints(parent_id: str) -> Endpoints:
    return {"children": f"/api/users/parent/{parent_id}/children"}


def child_endpoints(child_id: str) -> Endpoints:
    return {
        "trends": f"/api/analytics/trends/student/{child_id}",
        "homework": f"/api/homework/student/{child_id}",
        "comments": f"/api/comments/student/{child_id}",
    }


def teacher_endpoints(teacher_id: str) -> Endpoints:
    return {
        "class_stats": f"/api/analytics/teacher/{teacher_id}/class-stats",
        "recent_homework": f"/api/homework/teacher/{teacher_id}/recent",
        "student_alerts": f"/api/alerts/teacher/{teacher_id}/students",
    }


def admin_endpoints(_admin_id: str) -> Endpoints:
    return {
        "school_stats": "/api/analytics/admin/school-stats",
        "grade_performance": "/api/analytics/admin/grade-performance",
        "system_alerts": "/api/alerts/admin/system",
    }


def build_strategies(settings: Settings | None = None) -> dict[Role, RoleStrategy]:
    """Strategy table keyed by role."""
    settings = settings or get_settings()
    return {
        Role.STUDENT: RoleStrategy(
            role=Role.STUDENT,
            endpoints=student_endpoints,
            build=partial(build_student, score_limit=settings.student_recent_score_limit),
        ),
        Role.PARENT: RoleStrategy(
            role=Role.PARENT,
            endpoints=parent_endpoints,
            build=partial(build_parent, score_limit=settings.parent_recent_score_limit),
            child_ids=parent_child_ids,
            child_endpoints=child_endpoints,
        ),
        Role.TEACHER: RoleStrategy(
            role=Role.TEACHER,
            endpoints=teacher_endpoints,
            build=build_teacher,
        ),
        Role.ADMIN: RoleStrategy(
            role=Role.ADMIN,
            endpoints=admin_endpoints,
            build=build_admin,
        ),
    }
