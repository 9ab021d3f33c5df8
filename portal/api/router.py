"""API router aggregation."""

from fastapi import APIRouter

from portal.api.dashboard import router as dashboard_router
from portal.api.health import router as health_router
from portal.api.meetings import router as meetings_router
from portal.api.realtime import router as realtime_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(meetings_router)
api_router.include_router(dashboard_router)
# Push channel for bus topics
api_router.include_router(realtime_router)
