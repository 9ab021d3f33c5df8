"""Websocket endpoint that relays TopicBus channels to remote clients."""

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from portal.events.hub import ConnectionHub

logger = structlog.get_logger()
router = APIRouter(prefix="/ws", tags=["realtime"])


@router.websocket("/topics")
async def topics_socket(
    websocket: WebSocket,
    topic: list[str] = Query(default=[]),
) -> None:
    """Stream ``{"topic", "payload"}`` frames for the joined channels.

    Channels given as ``?topic=`` are joined on connect. Afterwards the
    client may send ``{"action": "join" | "leave", "topic": "..."}``.
    """
    hub: ConnectionHub = websocket.app.state.hub
    await websocket.accept()
    for channel in topic:
        hub.join(websocket, channel)

    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                await websocket.send_json({"error": "invalid JSON"})
                continue
            action = message.get("action") if isinstance(message, dict) else None
            channel = message.get("topic") if isinstance(message, dict) else None
            if not channel or action not in ("join", "leave"):
                await websocket.send_json({"error": "expected {action, topic}"})
                continue
            if action == "join":
                hub.join(websocket, channel)
            else:
                hub.leave(websocket, channel)
            await websocket.send_json({"ok": True, "action": action, "topic": channel})
    except WebSocketDisconnect:
        logger.debug("websocket disconnected")
    finally:
        hub.leave(websocket)
