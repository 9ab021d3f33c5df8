"""Health check endpoints for monitoring and orchestration."""

from datetime import UTC, datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel

from portal.config import settings

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    """Service identity plus how many remote dashboards are attached."""

    status: str
    timestamp: datetime
    version: str
    environment: str
    realtime_connections: int = 0


class LivenessResponse(BaseModel):
    status: str


class ReadinessResponse(BaseModel):
    status: str
    checks: dict[str, str]


@router.get("/", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    hub = getattr(request.app.state, "hub", None)
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=settings.app_version,
        environment=settings.app_env,
        realtime_connections=hub.total_connections() if hub is not None else 0,
    )


@router.get("/live", response_model=LivenessResponse)
async def liveness() -> LivenessResponse:
    return LivenessResponse(status="alive")


async def _database_check(request: Request) -> str:
    db = getattr(request.app.state, "db", None)
    if db is None:
        return "not_configured"
    try:
        return "ok" if await db.is_healthy() else "failed"
    except Exception:
        return "failed"


@router.get("/ready", response_model=ReadinessResponse)
async def readiness(request: Request) -> ReadinessResponse:
    """Readiness check: the meeting store answers and the bus can deliver.

    The realtime hub is reported but optional; without it events still reach
    in-process subscribers.
    """
    state = request.app.state
    checks = {
        "database": await _database_check(request),
        "topic_bus": "ok" if getattr(state, "topic_bus", None) is not None else "not_configured",
        "realtime": "ok" if getattr(state, "hub", None) is not None else "disabled",
    }

    required = ("database", "topic_bus")
    status = "ready" if all(checks[name] == "ok" for name in required) else "not_ready"
    return ReadinessResponse(status=status, checks=checks)
