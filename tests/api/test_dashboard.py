"""Tests for the dashboard snapshot endpoint."""

from collections.abc import Iterator
from typing import Any

import pytest
from httpx import AsyncClient

from portal.main import app

TEACHER = {"X-User-Id": "t1", "X-User-Role": "teacher", "X-User-Name": "李老师"}
PARENT = {"X-User-Id": "p1", "X-User-Role": "parent"}


class StaticSource:
    """Answers known paths; everything else fails."""

    def __init__(self, responses: dict[str, Any]):
        self.responses = responses

    async def fetch(self, path: str) -> dict[str, Any]:
        if path not in self.responses:
            raise ConnectionError(f"no route to {path}")
        return self.responses[path]


@pytest.fixture
def dashboard_source(client: AsyncClient) -> Iterator[StaticSource]:
    source = StaticSource(
        {
            "/api/homework/teacher/t1/recent": {
                "recentHomework": [{"id": 1, "title": "语文作文", "submittedCount": 38}]
            },
        }
    )
    app.state.dashboard_source = source
    yield source
    del app.state.dashboard_source


async def create_meeting(client: AsyncClient) -> dict:
    response = await client.post(
        "/meetings",
        json={
            "title": "期中家长会",
            "teacher": "t1",
            "parent": "p1",
            "student": "s1",
            "start_time": "2030-03-04T09:00:00Z",
            "end_time": "2030-03-04T09:30:00Z",
            "meeting_type": "online",
        },
        headers=TEACHER,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestGetDashboard:
    """Tests for GET /dashboard."""

    async def test_teacher_projection(
        self, client: AsyncClient, dashboard_source: StaticSource
    ) -> None:
        """Fetched slices, upcoming meetings and topics come back together."""
        meeting = await create_meeting(client)

        response = await client.get("/dashboard?class_id=c1", headers=TEACHER)

        assert response.status_code == 200
        data = response.json()
        assert data["role"] == "teacher"
        assert data["recent_homework"][0]["title"] == "语文作文"
        assert data["class_stats"] == []
        assert [m["id"] for m in data["meetings"]] == [meeting["id"]]
        assert data["topics"] == ["class-update-c1", "meetings-t1"]

    async def test_subscriptions_released(
        self, client: AsyncClient, dashboard_source: StaticSource
    ) -> None:
        await client.get("/dashboard", headers=PARENT)

        assert app.state.topic_bus.subscriber_count("meetings-p1") == 0

    async def test_parent_without_children(
        self, client: AsyncClient, dashboard_source: StaticSource
    ) -> None:
        """A failed children fetch still returns a complete, empty projection."""
        response = await client.get("/dashboard", headers=PARENT)

        assert response.status_code == 200
        data = response.json()
        assert data["children"] == []
        assert data["study_data"] == {}
        assert data["topics"] == ["meetings-p1"]

    async def test_requires_identity(
        self, client: AsyncClient, dashboard_source: StaticSource
    ) -> None:
        response = await client.get("/dashboard")
        assert response.status_code == 401

    async def test_source_not_configured(self, client: AsyncClient) -> None:
        response = await client.get("/dashboard", headers=TEACHER)

        assert response.status_code == 500
        assert response.json()["detail"] == "DashboardSource not initialized"
