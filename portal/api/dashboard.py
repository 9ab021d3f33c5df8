"""Role dashboard snapshot endpoint."""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from portal.api.deps import (
    get_acting_user,
    get_dashboard_source,
    get_state_machine,
    get_topic_bus,
)
from portal.config import get_settings
from portal.dashboard.aggregator import DashboardAggregator
from portal.dashboard.sources import DashboardSource
from portal.events.bus import TopicBus
from portal.meetings.state_machine import MeetingStateMachine
from portal.models.participant import ActingUser

logger = structlog.get_logger()
router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("")
async def get_dashboard(
    class_id: list[str] = Query(default=[], description="Teacher class ids to include"),
    acting_user: ActingUser = Depends(get_acting_user),
    topic_bus: TopicBus = Depends(get_topic_bus),
    source: DashboardSource = Depends(get_dashboard_source),
    state_machine: MeetingStateMachine = Depends(get_state_machine),
) -> dict[str, Any]:
    """Hydrate the caller's role projection once and return it.

    Clients that want live updates follow the projection's topics on
    ``/ws/topics`` and merge them the same way the aggregator does.
    """
    aggregator = DashboardAggregator(
        topic_bus, source, get_settings(), meetings=state_machine
    )
    try:
        state = await aggregator.hydrate(
            acting_user.id,
            acting_user.role,
            class_ids=class_id or acting_user.class_ids,
        )
        topics = aggregator.channels
    finally:
        aggregator.teardown()

    if state is None:
        raise HTTPException(status_code=503, detail="获取仪表盘失败")
    return {"topics": topics, **state.model_dump(mode="json")}
