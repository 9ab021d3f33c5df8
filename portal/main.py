"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from portal.api.router import api_router
from portal.config import settings
from portal.dashboard.sources import HttpDashboardSource
from portal.db.turso import TursoClient
from portal.events.bus import TopicBus
from portal.events.hub import ConnectionHub
from portal.meetings.state_machine import MeetingStateMachine
from portal.repositories.meeting_repo import MeetingRepository

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan management.

    Startup:
    - Connect the meeting store and create its schema
    - Wire the topic bus to the websocket hub
    - Build the meeting state machine

    Shutdown:
    - Close the dashboard HTTP client and database connection
    """
    logger.info(f"Starting {settings.app_name}...")

    db = TursoClient()
    await db.connect()
    app.state.db = db
    logger.info(f"Database connected: {db.url}")

    meeting_repo = MeetingRepository(db)
    await meeting_repo.initialize()
    app.state.meeting_repo = meeting_repo

    hub = ConnectionHub()
    topic_bus = TopicBus(transport=hub)
    app.state.hub = hub
    app.state.topic_bus = topic_bus
    logger.info("Topic bus initialized with websocket transport")

    app.state.state_machine = MeetingStateMachine(meeting_repo, topic_bus)
    # Shared bulk-fetch client for dashboard aggregators
    app.state.dashboard_source = HttpDashboardSource()

    yield

    logger.info(f"Shutting down {settings.app_name}...")
    await app.state.dashboard_source.aclose()
    await db.close()
    logger.info("Database connection closed")


app = FastAPI(
    title=settings.app_name,
    description="Parent-teacher meeting coordination and live dashboards",
    version=settings.app_version,
    lifespan=lifespan,
)

app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "portal.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
