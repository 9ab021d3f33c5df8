"""Websocket connection hub acting as the bus's push transport.

Remote clients join channels through ``/ws/topics``; every payload the
TopicBus publishes on a joined channel is sent to them as
``{"topic": ..., "payload": ...}``.
"""

from typing import Any, Protocol

import structlog

from portal.errors import TransportError

logger = structlog.get_logger()


class SocketLike(Protocol):
    """The part of a websocket the hub needs."""

    async def send_json(self, data: Any, mode: str = "text") -> None: ...


class ConnectionHub:
    """Tracks websocket connections per channel and fans out payloads."""

    def __init__(self) -> None:
        self._channels: dict[str, set[SocketLike]] = {}

    @property
    def connected(self) -> bool:
        """True while at least one remote client is joined."""
        return any(self._channels.values())

    def join(self, socket: SocketLike, channel: str) -> None:
        self._channels.setdefault(channel, set()).add(socket)
        logger.debug("socket joined channel", channel=channel)

    def leave(self, socket: SocketLike, channel: str | None = None) -> None:
        """Remove a socket from one channel, or from all when channel is None."""
        channels = [channel] if channel else list(self._channels)
        for name in channels:
            members = self._channels.get(name)
            if not members:
                continue
            members.discard(socket)
            if not members:
                del self._channels[name]

    def connection_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    def total_connections(self) -> int:
        """Distinct sockets joined to any channel."""
        return len(set().union(*self._channels.values()))

    async def send(self, topic: str, payload: dict[str, Any]) -> None:
        """Send one payload to every socket joined to ``topic``.

        Sockets that fail are dropped. Raises TransportError after trying
        everyone if any send failed.
        """
        members = list(self._channels.get(topic, ()))
        failed = 0
        for socket in members:
            try:
                await socket.send_json({"topic": topic, "payload": payload})
            except Exception as e:
                failed += 1
                logger.warning("dropping dead socket", channel=topic, error=str(e))
                self.leave(socket)
        if failed:
            msg = f"{failed} of {len(members)} sockets failed on {topic}"
            raise TransportError(msg)
