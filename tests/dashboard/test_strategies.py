"""Tests for per-role hydration strategies."""

from portal.dashboard.state import ChildStudyData, StudentDashboard
from portal.dashboard.strategies import (
    build_admin,
    build_parent,
    build_strategies,
    build_student,
    build_teacher,
    scores_from_trends,
)
from portal.models.participant import Role

TRENDS = {
    "trendsData": {
        "语文": {
            "scores": [{"score": 80, "date": "2024-10-01"}, {"score": 92, "date": "2024-10-15"}],
            "trend": "上升",
        },
        "数学": {"scores": [{"score": 88, "date": "2024-10-12"}], "trend": "下降"},
        "英语": {"scores": [], "trend": "平稳"},
    }
}


class TestScoresFromTrends:
    """Tests for trend flattening."""

    def test_latest_score_and_direction(self) -> None:
        rows = scores_from_trends(TRENDS["trendsData"], limit=4)

        assert rows[0] == {"subject": "语文", "score": 92, "date": "2024-10-15", "trend": "up"}
        assert rows[1]["trend"] == "down"
        assert rows[2] == {"subject": "英语", "score": 0, "date": "", "trend": "stable"}

    def test_limit(self) -> None:
        assert len(scores_from_trends(TRENDS["trendsData"], limit=2)) == 2

    def test_malformed_subject_bodies(self) -> None:
        """Non-list scores and non-string trends read as no score, stable."""
        rows = scores_from_trends(
            {
                "语文": {"scores": [{"score": 70, "date": "d"}], "trend": ["up"]},
                "数学": {"scores": {"x": 1}, "trend": "上升"},
                "英语": "garbage",
            },
            limit=5,
        )

        assert rows == [
            {"subject": "语文", "score": 70, "date": "d", "trend": "stable"},
            {"subject": "数学", "score": 0, "date": "", "trend": "up"},
            {"subject": "英语", "score": 0, "date": "", "trend": "stable"},
        ]


class TestStudentStrategy:
    """Tests for the student projection."""

    def test_aggregates(self) -> None:
        raw = {
            "trends": TRENDS,
            "progress": {
                "progressData": {"语文": {"completionRate": 80}, "数学": {"completionRate": 60}}
            },
            "homework": {
                "homeworks": [
                    {"id": 1, "status": "completed"},
                    {"id": 2, "status": "pending"},
                    {"id": 3, "status": "completed"},
                ]
            },
            "notifications": {"notifications": [{"id": 1, "title": "期中考试通知"}]},
        }

        state = build_student(raw, score_limit=4)

        assert state.overall_progress == 70
        assert state.completed_homework == 2
        assert state.total_homework == 3
        assert state.pending_homework == 1
        assert state.average_score == (92 + 88 + 0) / 3
        assert state.progress_data == [
            {"subject": "语文", "progress": 80},
            {"subject": "数学", "progress": 60},
        ]

    def test_failed_slices_are_empty(self) -> None:
        """None (failed fetch) and malformed bodies degrade to defaults."""
        state = build_student(
            {"trends": None, "progress": {"progressData": "oops"}, "homework": [1, 2]},
            score_limit=4,
        )

        assert state == StudentDashboard()

    def test_bad_trends_keep_other_slices(self) -> None:
        """An unreadable trends body never empties homework or progress."""
        raw = {
            "trends": {"trendsData": {"语文": {"scores": [{"score": 90}], "trend": ["up"]}}},
            "progress": {"progressData": {"语文": {"completionRate": 40}}},
            "homework": {"homeworks": [{"id": 1, "status": "completed"}]},
        }

        state = build_student(raw, score_limit=4)

        assert state.total_homework == 1
        assert state.completed_homework == 1
        assert state.overall_progress == 40
        assert state.recent_scores[0]["trend"] == "stable"


class TestParentStrategy:
    """Tests for the parent projection."""

    def test_per_child_data(self) -> None:
        raw = {
            "children": {"children": [{"id": "c1", "name": "张小明"}, {"id": "c2"}]},
            "per_child": {
                "c1": {
                    "trends": TRENDS,
                    "homework": {
                        "homeworks": [
                            {"status": "completed"},
                            {"status": "pending"},
                            {"status": "overdue"},
                            {"status": "overdue"},
                        ]
                    },
                    "comments": {"comments": [{"id": 1, "content": "表现很好"}]},
                },
                "c2": {"trends": None, "homework": None, "comments": None},
            },
        }

        state = build_parent(raw, score_limit=3)

        c1 = state.study_data["c1"]
        assert len(c1.recent_scores) == 3
        assert c1.homework_status.model_dump() == {"completed": 1, "pending": 1, "overdue": 2}
        assert c1.teacher_comments == [{"id": 1, "content": "表现很好"}]
        assert c1.average_score == round((92 + 88 + 0) / 3, 1)
        assert state.study_data["c2"] == ChildStudyData()

    def test_unreadable_child_degrades_only_that_child(self) -> None:
        """A child whose bodies cannot be read gets empty study data."""
        raw = {
            "children": {"children": [{"id": "c1"}, {"id": "c2"}, {"id": "c3"}]},
            "per_child": {
                "c1": {"homework": {"homeworks": [{"status": "pending"}]}},
                "c2": "garbage",
                "c3": {"trends": {"attendance": {"present": "many", "late": 1}}},
            },
        }

        state = build_parent(raw, score_limit=3)

        assert state.study_data["c1"].homework_status.pending == 1
        assert state.study_data["c2"] == ChildStudyData()
        assert state.study_data["c3"].attendance.model_dump() == {
            "present": 0,
            "absent": 0,
            "late": 0,
        }

    def test_per_child_not_a_mapping(self) -> None:
        state = build_parent(
            {"children": {"children": [{"id": "c1"}]}, "per_child": ["c1"]}, score_limit=3
        )
        assert state.study_data == {"c1": ChildStudyData()}

    def test_children_fetch_failed(self) -> None:
        state = build_parent({"children": None}, score_limit=3)
        assert state.children == []
        assert state.study_data == {}


class TestTeacherAndAdmin:
    """Tests for teacher and admin projections."""

    def test_teacher(self) -> None:
        state = build_teacher(
            {
                "class_stats": {"classStats": [{"classId": "c1", "avgScore": 87.5}]},
                "recent_homework": None,
                "student_alerts": {"studentAlerts": [{"id": 1, "issue": "未交作业"}]},
            }
        )
        assert state.class_stats == [{"classId": "c1", "avgScore": 87.5}]
        assert state.recent_homework == []
        assert len(state.student_alerts) == 1

    def test_admin(self) -> None:
        state = build_admin(
            {
                "school_stats": {"schoolStats": {"studentCount": 1250}},
                "grade_performance": {"gradePerformance": "bad"},
                "system_alerts": {"systemAlerts": [{"id": 1, "message": "备份完成"}]},
            }
        )
        assert state.school_stats == {"studentCount": 1250}
        assert state.grade_performance == []
        assert state.system_alerts[0]["message"] == "备份完成"


class TestStrategyTable:
    """Tests for role dispatch."""

    def test_every_role_has_a_strategy(self, settings) -> None:
        strategies = build_strategies(settings)
        assert set(strategies) == set(Role)

    def test_student_endpoints(self, settings) -> None:
        endpoints = build_strategies(settings)[Role.STUDENT].endpoints("s1")
        assert endpoints["trends"] == "/api/analytics/trends/student/s1"
        assert endpoints["notifications"] == "/api/notifications/user/s1"

    def test_parent_has_child_plan(self, settings) -> None:
        parent = build_strategies(settings)[Role.PARENT]
        assert parent.child_endpoints("c1")["comments"] == "/api/comments/student/c1"
