"""WebSocket endpoints — bind Starlette sockets to broadcast hubs.

Learn: Each client connects to either the root endpoint (the process-wide
"global" channel) or /api/v1/events/{event_id}/reviews/ws (that event's
review stream). The handler:
1. Registers the socket with the channel's hub (before accepting, so a
   client whose handshake completed is already a fan-out target)
2. Relays every inbound frame through hub.on_message, one at a time
3. Unregisters on disconnect or error, releasing the channel when empty

This is a long-lived connection — one per event page per browser tab.
"""

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from reviewrelay.realtime.hub import HubFullError, HubRegistry, event_channel

logger = structlog.get_logger()
router = APIRouter()

# RFC 6455 "Try Again Later"
CLOSE_TRY_AGAIN_LATER = 1013


class WebSocketConnection:
    """Adapts a Starlette WebSocket to the hub's Connection protocol."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_text(self, data: str) -> None:
        await self.websocket.send_text(data)


async def relay(websocket: WebSocket, channel: str) -> None:
    """Run one client's session against the channel's hub."""
    hubs: HubRegistry = websocket.app.state.hubs
    hub = hubs.get(channel)
    connection = WebSocketConnection(websocket)

    try:
        hub.on_connect(connection)
    except HubFullError as e:
        hubs.release(channel)
        # A close before accept becomes an HTTP 403 handshake rejection
        await websocket.accept()
        await websocket.close(code=CLOSE_TRY_AGAIN_LATER, reason=str(e))
        return

    try:
        await websocket.accept()
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await hub.on_message(connection, raw)
    except WebSocketDisconnect:
        hub.on_close(connection)
    except Exception as e:
        hub.on_error(connection, e)
        if (
            websocket.application_state == WebSocketState.CONNECTED
            and websocket.client_state == WebSocketState.CONNECTED
        ):
            await websocket.close(code=1011)
    finally:
        # on_close/on_error already ran; this covers cancellation
        if connection in hub:
            hub.on_close(connection)
        hubs.release(channel)


@router.websocket("/")
async def global_websocket(websocket: WebSocket):
    """Relay endpoint for the process-wide channel."""
    await relay(websocket, "global")


@router.websocket("/api/v1/events/{event_id}/reviews/ws")
async def event_reviews_websocket(websocket: WebSocket, event_id: str):
    """Relay endpoint for one event's live review stream."""
    await relay(websocket, event_channel(event_id))
