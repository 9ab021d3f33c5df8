"""Process-wide topic pub/sub.

Each topic string is one channel. Publishing delivers the payload to the
handlers registered for that exact channel, in registration order, within
the calling task. Delivery is at-most-once and best-effort: nothing is
persisted, and remote peers only see what the push transport manages to
send while it is connected.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from portal.errors import TransportError
from portal.events.topics import Topic, channel_name

logger = logging.getLogger(__name__)

Payload = dict[str, Any]
TopicHandler = Callable[[Payload], None] | Callable[[Payload], Awaitable[None]]


@runtime_checkable
class PushTransport(Protocol):
    """Connection that forwards published payloads to remote subscribers."""

    @property
    def connected(self) -> bool:
        """Whether the transport currently has a live connection."""
        ...

    async def send(self, topic: str, payload: Payload) -> None:
        """Forward one payload. May raise TransportError."""
        ...


class Subscription:
    """Handle for one (topic, handler) registration.

    ``dispose()`` removes the registration; once disposed, the handler is
    never invoked again, including by a publish already in flight.
    """

    def __init__(self, bus: "TopicBus", topic: str, handler: TopicHandler):
        self._bus = bus
        self.topic = topic
        self.handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def dispose(self) -> None:
        """Unregister the handler. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self._bus._remove(self)

    def __repr__(self) -> str:
        state = "active" if self._active else "disposed"
        return f"<Subscription {self.topic} {state}>"


class TopicBus:
    """In-process topic bus with an optional push transport.

    Features:
    - Subscription handles with explicit disposal
    - Sync and async handler support
    - Per-topic delivery order
    - Error isolation (one handler failure doesn't affect others)
    """

    def __init__(self, transport: PushTransport | None = None):
        """Initialize topic bus.

        Args:
            transport: Optional push transport for remote subscribers
        """
        self._subscribers: dict[str, list[Subscription]] = {}
        self.transport = transport

    def subscribe(self, topic: Topic | str, handler: TopicHandler) -> Subscription:
        """Register a handler for one channel.

        Args:
            topic: Channel string, or a global Topic member
            handler: Function called with each published payload

        Returns:
            Subscription handle; call ``dispose()`` to unregister
        """
        channel = channel_name(topic)
        subscription = Subscription(self, channel, handler)
        self._subscribers.setdefault(channel, []).append(subscription)
        logger.debug(f"Subscribed handler to {channel}")
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        handlers = self._subscribers.get(subscription.topic)
        if not handlers:
            return
        try:
            handlers.remove(subscription)
        except ValueError:
            return
        if not handlers:
            del self._subscribers[subscription.topic]
        logger.debug(f"Disposed subscription on {subscription.topic}")

    async def publish(self, topic: Topic | str, payload: Payload) -> int:
        """Publish a payload to every current subscriber of a channel.

        Args:
            topic: Channel string, or a global Topic member
            payload: JSON-safe dict

        Returns:
            Number of local handlers that received the payload
        """
        channel = channel_name(topic)
        # Snapshot so subscribe/dispose during delivery doesn't disturb iteration
        snapshot = list(self._subscribers.get(channel, []))
        logger.debug(f"Publishing on {channel} to {len(snapshot)} handler(s)")

        delivered = 0
        for subscription in snapshot:
            if not subscription.active:
                continue
            try:
                result = subscription.handler(payload)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                logger.error(f"Handler error on {channel}: {e}")

        await self._forward(channel, payload)
        return delivered

    async def _forward(self, channel: str, payload: Payload) -> None:
        """Send to remote peers; failures are logged, never raised."""
        if self.transport is None:
            return
        if not self.transport.connected:
            logger.debug(f"Push transport disconnected, {channel} delivered locally only")
            return
        try:
            await self.transport.send(channel, payload)
        except TransportError as e:
            logger.warning(f"Push transport failed for {channel}: {e}")
        except Exception as e:
            logger.warning(f"Unexpected push transport error for {channel}: {e}")

    def subscriber_count(self, topic: Topic | str) -> int:
        """Get number of active subscribers for a channel."""
        return len(self._subscribers.get(channel_name(topic), []))

    def topics(self) -> list[str]:
        """Channels that currently have at least one subscriber."""
        return sorted(self._subscribers)
