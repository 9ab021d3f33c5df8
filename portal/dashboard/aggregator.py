"""Live dashboard projection for one session.

The aggregator hydrates a role-specific projection with one concurrent
bulk fetch, then keeps it current by merging update payloads from the
TopicBus. Updates are merged field by field into what is already there;
they never replace a slice wholesale.
"""

import asyncio
from collections.abc import Callable
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from portal.config import Settings, get_settings
from portal.dashboard.merge import merge_by_id, merge_fields, prepend_unique, snake_keys
from portal.dashboard.sources import DashboardSource, MeetingFeed
from portal.dashboard.state import (
    AdminDashboard,
    ChildStudyData,
    DashboardState,
    ParentDashboard,
    StudentDashboard,
    TeacherDashboard,
    empty_state,
)
from portal.dashboard.strategies import RawResults, RoleStrategy, build_strategies, scores_from_trends
from portal.events.bus import Subscription, TopicBus
from portal.events.topics import (
    Topic,
    class_update,
    parse_channel,
    student_data_update,
    user_meetings,
)
from portal.events.types import (
    ClassUpdate,
    MeetingUpdate,
    StudentDataUpdate,
    StudentTrendsUpdate,
    SystemAlert,
)
from portal.models.participant import Role

logger = structlog.get_logger()

StateObserver = Callable[[DashboardState], None]


class MalformedUpdate(ValueError):
    """Update payload is missing what is needed to route the merge."""


class DashboardAggregator:
    """Hydrates and live-updates one user's dashboard projection.

    Usage:
        aggregator = DashboardAggregator(bus, HttpDashboardSource())
        await aggregator.hydrate("s1", Role.STUDENT)
        dispose = aggregator.observe(render)
        ...
        aggregator.teardown()
    """

    def __init__(
        self,
        bus: TopicBus,
        source: DashboardSource,
        settings: Settings | None = None,
        meetings: MeetingFeed | None = None,
    ):
        """Initialize aggregator.

        Args:
            bus: Topic bus to subscribe to for live updates
            source: Bulk-fetch source for hydration
            settings: Settings override (defaults to cached settings)
            meetings: Where the meetings slice hydrates from; without one it
                starts empty and only fills from meeting events
        """
        self._bus = bus
        self._source = source
        self._meetings = meetings
        self._settings = settings or get_settings()
        self._strategies = build_strategies(self._settings)

        self.user_id: str | None = None
        self.role: Role | None = None
        self.state: DashboardState | None = None
        self.ready = False

        self._class_ids: tuple[str, ...] = ()
        self._subscriptions: dict[str, Subscription] = {}
        self._observers: list[StateObserver] = []
        # Bumped on every hydrate and teardown; a hydrate only lands if
        # its token is still current when its fetches resolve.
        self._token = 0

    # Hydration

    async def hydrate(
        self,
        user_id: str,
        role: Role | str,
        class_ids: tuple[str, ...] | list[str] = (),
    ) -> DashboardState | None:
        """Fetch the full projection for a user and subscribe to its topics.

        Failed slices fall back to empty defaults. If another hydrate or a
        teardown starts before this one resolves, its results are discarded.

        Returns:
            The new projection, or None if this hydrate was superseded
        """
        role = Role(role)
        self._token += 1
        token = self._token

        if (user_id, role) != (self.user_id, self.role):
            self._dispose_subscriptions()
            self.user_id = user_id
            self.role = role
            self.state = None
            self.ready = False
        self._class_ids = tuple(class_ids)

        log = logger.bind(user_id=user_id, role=role.value)
        log.info("hydrating dashboard")
        result, meetings = await asyncio.gather(
            self._fetch_state(self._strategies[role], user_id),
            self._fetch_meetings(user_id, role),
            return_exceptions=True,
        )
        if isinstance(result, BaseException):
            log.error("dashboard hydration failed", error=str(result))
            result = empty_state(role)
        if isinstance(meetings, BaseException):
            meetings = []
        state = result.model_copy(update={"meetings": meetings})

        if token != self._token:
            log.info("discarding stale dashboard hydration")
            return None

        self.state = state
        self.ready = True
        self._sync_subscriptions()
        log.info("dashboard hydrated", topics=sorted(self._subscriptions))
        self._notify()
        return state

    async def _fetch_state(self, strategy: RoleStrategy, user_id: str) -> DashboardState:
        raw = await self._fetch_slices(strategy.endpoints(user_id))
        if strategy.child_ids is not None and strategy.child_endpoints is not None:
            ids = strategy.child_ids(raw)
            per_child = await asyncio.gather(
                *(self._fetch_slices(strategy.child_endpoints(cid)) for cid in ids)
            )
            raw["per_child"] = dict(zip(ids, per_child))
        return strategy.build(raw)

    async def _fetch_meetings(self, user_id: str, role: Role) -> list[dict[str, Any]]:
        if self._meetings is None:
            return []
        try:
            meetings = await self._meetings.upcoming(
                user_id, role, limit=self._settings.dashboard_meeting_limit
            )
        except Exception as e:
            logger.warning("dashboard slice unavailable", slice="meetings", error=str(e))
            return []
        return [meeting.model_dump(mode="json") for meeting in meetings]

    async def _fetch_slices(self, endpoints: dict[str, str]) -> RawResults:
        """Fetch every endpoint concurrently; failures become None."""
        names = list(endpoints)
        results = await asyncio.gather(
            *(self._source.fetch(endpoints[name]) for name in names),
            return_exceptions=True,
        )
        raw: RawResults = {}
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "dashboard slice unavailable",
                    slice=name,
                    path=endpoints[name],
                    error=str(result),
                )
                raw[name] = None
            else:
                raw[name] = result
        return raw

    # Subscriptions

    def _desired_channels(self) -> set[str]:
        if self.user_id is None:
            return set()
        channels = {user_meetings(self.user_id)}
        if self.role == Role.STUDENT:
            channels.add(Topic.STUDENT_TRENDS_UPDATE.channel())
        elif self.role == Role.PARENT and isinstance(self.state, ParentDashboard):
            channels.update(student_data_update(cid) for cid in self.state.child_ids())
        elif self.role == Role.TEACHER:
            channels.update(class_update(cid) for cid in self._class_ids)
        elif self.role == Role.ADMIN:
            channels.add(Topic.SYSTEM_ALERT.channel())
        return channels

    def _sync_subscriptions(self) -> None:
        """Diff current subscriptions against the role's channels."""
        desired = self._desired_channels()
        for channel in set(self._subscriptions) - desired:
            self._subscriptions.pop(channel).dispose()
        for channel in desired - set(self._subscriptions):
            self._subscriptions[channel] = self._bus.subscribe(
                channel, self._handler_for(channel)
            )

    def _handler_for(self, channel: str) -> Callable[[dict[str, Any]], None]:
        def handle(payload: dict[str, Any]) -> None:
            self.apply_event(channel, payload)

        return handle

    def _dispose_subscriptions(self) -> None:
        for subscription in self._subscriptions.values():
            subscription.dispose()
        self._subscriptions.clear()

    @property
    def channels(self) -> list[str]:
        """Channels this aggregator is currently subscribed to."""
        return sorted(self._subscriptions)

    def teardown(self) -> None:
        """Dispose every subscription and invalidate in-flight hydrations."""
        self._token += 1
        self._dispose_subscriptions()
        self.ready = False
        logger.info("dashboard torn down", user_id=self.user_id)

    # Live updates

    def apply_event(self, channel: str, payload: Any) -> bool:
        """Merge one update payload into the projection.

        Malformed or misrouted updates are logged and dropped.

        Returns:
            True if the projection changed
        """
        if self.state is None:
            logger.warning("dropping update before hydration", channel=channel)
            return False
        parsed = parse_channel(channel)
        mergers = {
            Topic.STUDENT_TRENDS_UPDATE: self._merge_student_trends,
            Topic.CLASS_UPDATE: self._merge_class_update,
            Topic.STUDENT_DATA_UPDATE: self._merge_student_data,
            Topic.SYSTEM_ALERT: self._merge_system_alert,
            Topic.USER_MEETINGS: self._merge_meeting,
        }
        merger = mergers.get(parsed[0]) if parsed else None
        if merger is None:
            logger.warning("dropping update on unhandled channel", channel=channel)
            return False
        if not isinstance(payload, dict):
            logger.warning("dropping malformed update", channel=channel, error="not an object")
            return False

        try:
            new_state = merger(self.state, parsed[1], payload)
        except (PydanticValidationError, MalformedUpdate) as e:
            logger.warning("dropping malformed update", channel=channel, error=str(e))
            return False
        except Exception as e:
            logger.warning("failed to merge update", channel=channel, error=str(e))
            return False

        if new_state is None:
            return False
        self.state = new_state
        self._notify()
        return True

    def _merge_student_trends(
        self, state: DashboardState, _subject: str | None, payload: dict[str, Any]
    ) -> DashboardState | None:
        if not isinstance(state, StudentDashboard):
            return None
        update = StudentTrendsUpdate.model_validate(payload)
        if update.student_id != self.user_id:
            logger.debug("ignoring trends for another student", student_id=update.student_id)
            return None

        changes = {
            key: value
            for key, value in snake_keys(update.model_extra or {}).items()
            if key in StudentDashboard.model_fields and key != "role"
        }
        if update.trends_data is not None:
            changes["recent_scores"] = scores_from_trends(
                update.trends_data, self._settings.student_recent_score_limit
            )
        if not changes:
            return None
        return StudentDashboard.model_validate(merge_fields(state.model_dump(), changes))

    def _merge_class_update(
        self, state: DashboardState, class_id: str | None, payload: dict[str, Any]
    ) -> DashboardState | None:
        if not isinstance(state, TeacherDashboard):
            return None
        update = ClassUpdate.model_validate(payload)
        body = update.payload

        if update.type == ClassUpdate.HOMEWORK_STATUS_CHANGED:
            homework_id, changes = body.get("homeworkId"), body.get("changes")
            if homework_id is None or not isinstance(changes, dict):
                raise MalformedUpdate("HOMEWORK_STATUS_CHANGED needs homeworkId and changes")
            merged = merge_by_id(state.recent_homework, homework_id, changes)
            if merged is None:
                logger.debug("homework not on dashboard", homework_id=homework_id)
                return None
            return state.model_copy(update={"recent_homework": merged})

        if update.type == ClassUpdate.NEW_STUDENT_ALERT:
            alert = body.get("alert")
            if not isinstance(alert, dict):
                raise MalformedUpdate("NEW_STUDENT_ALERT needs an alert object")
            alerts = prepend_unique(state.student_alerts, alert)
            return state.model_copy(update={"student_alerts": alerts})

        if update.type == ClassUpdate.CLASS_STATS_CHANGED:
            target, changes = body.get("classId") or class_id, body.get("changes")
            if not isinstance(changes, dict):
                raise MalformedUpdate("CLASS_STATS_CHANGED needs changes")
            merged = merge_by_id(state.class_stats, target, changes, ("classId", "id"))
            if merged is None:
                logger.debug("class stats not on dashboard", class_id=target)
                return None
            return state.model_copy(update={"class_stats": merged})

        raise MalformedUpdate(f"Unknown class update type {update.type}")

    def _merge_student_data(
        self, state: DashboardState, child_id: str | None, payload: dict[str, Any]
    ) -> DashboardState | None:
        if not isinstance(state, ParentDashboard) or child_id is None:
            return None
        if child_id not in state.child_ids():
            logger.debug("ignoring update for unknown child", child_id=child_id)
            return None
        update = StudentDataUpdate.model_validate(payload)

        existing = state.study_data.get(child_id) or ChildStudyData()
        child = ChildStudyData.model_validate(
            merge_fields(existing.model_dump(), snake_keys(update.updated_fields))
        )
        return state.model_copy(update={"study_data": {**state.study_data, child_id: child}})

    def _merge_system_alert(
        self, state: DashboardState, _subject: str | None, payload: dict[str, Any]
    ) -> DashboardState | None:
        if not isinstance(state, AdminDashboard):
            return None
        alert = SystemAlert.model_validate(payload).model_dump(exclude_none=True)
        alerts = prepend_unique(state.system_alerts, alert)
        return state.model_copy(update={"system_alerts": alerts})

    def _merge_meeting(
        self, state: DashboardState, user_id: str | None, payload: dict[str, Any]
    ) -> DashboardState | None:
        if user_id != self.user_id:
            return None
        update = MeetingUpdate.model_validate(payload)

        if update.meeting is not None:
            if str(update.meeting.get("id")) != update.aggregate_id:
                raise MalformedUpdate("meeting record does not match aggregate_id")
            meetings = prepend_unique(state.meetings, update.meeting)
        else:
            meetings = merge_by_id(
                state.meetings,
                update.aggregate_id,
                {"status": update.status.value, "status_label": update.status.label},
            )
            if meetings is None:
                logger.debug("meeting not on dashboard", meeting_id=update.aggregate_id)
                return None
        return state.model_copy(update={"meetings": meetings})

    # Observation

    def observe(self, callback: StateObserver) -> Callable[[], None]:
        """Call ``callback`` with the projection after every hydrate and merge.

        Returns:
            Function that stops the callbacks
        """
        self._observers.append(callback)

        def dispose() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return dispose

    def _notify(self) -> None:
        if self.state is None:
            return
        for callback in list(self._observers):
            try:
                callback(self.state)
            except Exception as e:
                logger.error("dashboard observer failed", error=str(e))

    def snapshot(self) -> DashboardState | None:
        """Deep copy of the current projection."""
        return self.state.model_copy(deep=True) if self.state is not None else None
