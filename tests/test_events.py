"""Tests for event infrastructure."""

from typing import ClassVar
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from portal.errors import TransportError
from portal.events import (
    ConnectionHub,
    Event,
    SystemAlert,
    StudentTrendsUpdate,
    Topic,
    TopicBus,
    class_update,
    parse_channel,
    student_data_update,
    user_meetings,
)


class TestEvent:
    """Tests for base Event class."""

    def test_creates_with_defaults(self) -> None:
        """Event generates event_id and timestamp."""

        class Pinged(Event):
            message: str

        e = Pinged(message="hi")
        assert e.event_id is not None
        assert e.timestamp is not None
        assert e.event_type == "event"

    def test_is_immutable(self) -> None:
        """Events are frozen (immutable)."""

        class Pinged(Event):
            message: str

        e = Pinged(message="hi")
        with pytest.raises(ValidationError):
            e.message = "changed"  # type: ignore[misc]

    def test_to_payload_is_json_safe(self) -> None:
        """Payload carries the event name and string ids."""

        class Pinged(Event):
            name: ClassVar[str] = "test.pinged"
            message: str

        payload = Pinged(aggregate_id="m1", message="hi").to_payload()
        assert payload["event"] == "test.pinged"
        assert payload["aggregate_id"] == "m1"
        assert isinstance(payload["event_id"], str)


class TestUpdatePayloads:
    """Tests for inbound dashboard payload validation."""

    def test_trends_update_requires_student_id(self) -> None:
        with pytest.raises(ValidationError):
            StudentTrendsUpdate.model_validate({"trendsData": {}})

    def test_trends_update_keeps_unknown_fields(self) -> None:
        update = StudentTrendsUpdate.model_validate(
            {"studentId": "s1", "averageScore": 90}
        )
        assert update.student_id == "s1"
        assert update.model_extra == {"averageScore": 90}

    def test_system_alert_coerces_numeric_id(self) -> None:
        assert SystemAlert.model_validate({"id": 7, "message": "x"}).id == "7"


class TestTopics:
    """Tests for topic naming."""

    def test_keyed_channels(self) -> None:
        assert class_update("c1") == "class-update-c1"
        assert student_data_update("s2") == "student-data-update-s2"
        assert user_meetings("p1") == "meetings-p1"

    def test_global_topic_rejects_subject(self) -> None:
        with pytest.raises(ValueError):
            Topic.SYSTEM_ALERT.channel("x")

    def test_keyed_topic_requires_subject(self) -> None:
        with pytest.raises(ValueError):
            Topic.CLASS_UPDATE.channel()

    def test_parse_channel(self) -> None:
        assert parse_channel("class-update-c1") == (Topic.CLASS_UPDATE, "c1")
        assert parse_channel("system-alert") == (Topic.SYSTEM_ALERT, None)
        assert parse_channel("student-trends-update") == (
            Topic.STUDENT_TRENDS_UPDATE,
            None,
        )
        assert parse_channel("unknown-topic") is None


class TestTopicBus:
    """Tests for TopicBus."""

    async def test_publish_to_subscribers(self) -> None:
        """Handlers on the exact channel receive the payload."""
        bus = TopicBus()
        received: list[dict] = []

        bus.subscribe("class-update-c1", received.append)
        delivered = await bus.publish("class-update-c1", {"type": "X"})

        assert delivered == 1
        assert received == [{"type": "X"}]

    async def test_channels_are_exact(self) -> None:
        """A keyed channel doesn't leak to its siblings."""
        bus = TopicBus()
        received: list[dict] = []
        bus.subscribe("class-update-c1", received.append)

        await bus.publish("class-update-c2", {"type": "X"})

        assert received == []

    async def test_delivery_in_registration_order(self) -> None:
        bus = TopicBus()
        order: list[str] = []

        async def second(_payload: dict) -> None:
            order.append("second")

        bus.subscribe(Topic.SYSTEM_ALERT, lambda _p: order.append("first"))
        bus.subscribe(Topic.SYSTEM_ALERT, second)
        await bus.publish(Topic.SYSTEM_ALERT, {"id": "1"})

        assert order == ["first", "second"]

    async def test_disposed_subscription_not_invoked(self) -> None:
        """After dispose the handler never runs again."""
        bus = TopicBus()
        handler = MagicMock()
        subscription = bus.subscribe("system-alert", handler)

        subscription.dispose()
        subscription.dispose()  # idempotent
        await bus.publish("system-alert", {"id": "1"})

        handler.assert_not_called()
        assert not subscription.active
        assert bus.subscriber_count("system-alert") == 0

    async def test_dispose_during_publish_skips_handler(self) -> None:
        """A subscription disposed by an earlier handler is skipped in-flight."""
        bus = TopicBus()
        late = MagicMock()
        late_sub = None

        def first(_payload: dict) -> None:
            late_sub.dispose()

        bus.subscribe("system-alert", first)
        late_sub = bus.subscribe("system-alert", late)

        delivered = await bus.publish("system-alert", {"id": "1"})

        late.assert_not_called()
        assert delivered == 1

    async def test_handler_error_isolation(self) -> None:
        """One handler failure doesn't affect others."""
        bus = TopicBus()
        received: list[dict] = []

        def failing(_payload: dict) -> None:
            raise RuntimeError("boom")

        bus.subscribe("system-alert", failing)
        bus.subscribe("system-alert", received.append)

        await bus.publish("system-alert", {"id": "1"})

        assert received == [{"id": "1"}]

    async def test_transport_receives_publish(self) -> None:
        transport = MagicMock()
        transport.connected = True
        transport.send = AsyncMock()
        bus = TopicBus(transport=transport)

        await bus.publish("meetings-p1", {"event": "meeting.created"})

        transport.send.assert_awaited_once_with("meetings-p1", {"event": "meeting.created"})

    async def test_transport_failure_keeps_local_delivery(self) -> None:
        """A failing transport is logged; local handlers still get the payload."""
        transport = MagicMock()
        transport.connected = True
        transport.send = AsyncMock(side_effect=TransportError("down"))
        bus = TopicBus(transport=transport)
        received: list[dict] = []
        bus.subscribe("meetings-p1", received.append)

        delivered = await bus.publish("meetings-p1", {"event": "x"})

        assert delivered == 1
        assert received == [{"event": "x"}]

    async def test_disconnected_transport_skipped(self) -> None:
        transport = MagicMock()
        transport.connected = False
        transport.send = AsyncMock()
        bus = TopicBus(transport=transport)

        await bus.publish("meetings-p1", {"event": "x"})

        transport.send.assert_not_awaited()

    def test_topics_lists_active_channels(self) -> None:
        bus = TopicBus()
        bus.subscribe("b", print)
        bus.subscribe("a", print)
        assert bus.topics() == ["a", "b"]


class TestConnectionHub:
    """Tests for the websocket push transport."""

    async def test_sends_frames_to_joined_sockets(self) -> None:
        hub = ConnectionHub()
        socket = MagicMock()
        socket.send_json = AsyncMock()
        hub.join(socket, "meetings-p1")

        await hub.send("meetings-p1", {"event": "x"})

        socket.send_json.assert_awaited_once_with(
            {"topic": "meetings-p1", "payload": {"event": "x"}}
        )
        assert hub.connected

    async def test_dead_socket_dropped_and_reported(self) -> None:
        """A failing socket is removed and the send raises TransportError."""
        hub = ConnectionHub()
        good, dead = MagicMock(), MagicMock()
        good.send_json = AsyncMock()
        dead.send_json = AsyncMock(side_effect=RuntimeError("closed"))
        hub.join(good, "system-alert")
        hub.join(dead, "system-alert")

        with pytest.raises(TransportError):
            await hub.send("system-alert", {"id": "1"})

        good.send_json.assert_awaited_once()
        assert hub.connection_count("system-alert") == 1

    def test_leave_all_channels(self) -> None:
        hub = ConnectionHub()
        socket = MagicMock()
        hub.join(socket, "a")
        hub.join(socket, "b")

        hub.leave(socket)

        assert not hub.connected
