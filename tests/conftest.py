"""Pytest configuration and fixtures."""

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from portal.config import Settings
from portal.db.turso import TursoClient
from portal.events.bus import TopicBus
from portal.events.hub import ConnectionHub
from portal.main import app
from portal.meetings.schemas import MeetingCreate, ParticipantInput
from portal.meetings.state_machine import MeetingStateMachine
from portal.models.participant import ActingUser, Role
from portal.repositories.meeting_repo import MeetingRepository

# Far enough ahead that "upcoming" queries always include it
BASE_TIME = datetime(2030, 3, 4, 9, 0, tzinfo=UTC)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_env="test",
        meeting_link_base="https://meet.test/room",
        dashboard_api_base_url="http://dashboard.test",
        dashboard_fetch_retries=1,
    )


@pytest.fixture
async def db(tmp_path: Path) -> AsyncIterator[TursoClient]:
    """Connected client on a fresh file database."""
    client = TursoClient(url=f"file:{tmp_path / 'test_portal.db'}")
    await client.connect()
    yield client
    await client.close()


@pytest.fixture
async def meeting_repo(db: TursoClient) -> MeetingRepository:
    repo = MeetingRepository(db)
    await repo.initialize()
    return repo


@pytest.fixture
def bus() -> TopicBus:
    return TopicBus()


@pytest.fixture
def state_machine(
    meeting_repo: MeetingRepository, bus: TopicBus, settings: Settings
) -> MeetingStateMachine:
    return MeetingStateMachine(meeting_repo, bus, settings)


@pytest.fixture
def teacher() -> ActingUser:
    return ActingUser(id="t1", role=Role.TEACHER, name="李老师")


@pytest.fixture
def parent() -> ActingUser:
    return ActingUser(id="p1", role=Role.PARENT, name="张家长")


@pytest.fixture
def student() -> ActingUser:
    return ActingUser(id="s1", role=Role.STUDENT, name="张小明")


@pytest.fixture
def admin() -> ActingUser:
    return ActingUser(id="a1", role=Role.ADMIN, name="管理员")


def _make_meeting_input(
    start: datetime = BASE_TIME,
    duration: timedelta = timedelta(minutes=30),
    **overrides,
) -> MeetingCreate:
    """Valid offline meeting command between t1, p1 and s1."""
    data = {
        "title": "期中家长会",
        "organizer": ParticipantInput(id="t1", name="李老师"),
        "parent": ParticipantInput(id="p1", name="张家长"),
        "student": ParticipantInput(id="s1", name="张小明"),
        "start_time": start,
        "end_time": start + duration,
        "meeting_type": "offline",
        "location": "三年级2班教室",
    }
    data.update(overrides)
    return MeetingCreate(**data)


@pytest.fixture
def meeting_input():
    """Factory for valid meeting commands; keyword overrides replace fields."""
    return _make_meeting_input


@pytest.fixture
async def client(tmp_path: Path) -> AsyncIterator[AsyncClient]:
    """Create async test client for FastAPI app with database."""
    db_path = tmp_path / "test_api.db"
    db = TursoClient(url=f"file:{db_path}")
    await db.connect()

    meeting_repo = MeetingRepository(db)
    await meeting_repo.initialize()

    # Set up app state
    hub = ConnectionHub()
    topic_bus = TopicBus(transport=hub)
    app.state.db = db
    app.state.hub = hub
    app.state.topic_bus = topic_bus
    app.state.state_machine = MeetingStateMachine(meeting_repo, topic_bus)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Cleanup
    await db.close()
    del app.state.db
    del app.state.hub
    del app.state.topic_bus
    del app.state.state_machine
