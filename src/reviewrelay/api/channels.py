"""Channel API — inspect live channels and publish into them.

Learn: Routes:
- GET /channels → every channel with at least one live connection
- POST /channels/:event_id/messages → relay a JSON object to everyone
  following that event's review stream

Server-side publish is how the REST backend pushes a review it just saved:
unlike a client frame, nobody is excluded from the fan-out.
"""

from typing import Any

import structlog
from fastapi import APIRouter, Body, Request

from reviewrelay.realtime.hub import HubRegistry, event_channel
from reviewrelay.schemas.channel import ChannelRead, PublishResult

logger = structlog.get_logger()
router = APIRouter()


def _hubs(request: Request) -> HubRegistry:
    return request.app.state.hubs


@router.get("/channels", response_model=list[ChannelRead])
async def list_channels(request: Request):
    """List live channels and their connection counts."""
    return [
        ChannelRead(channel=name, connections=count)
        for name, count in _hubs(request).stats().items()
    ]


@router.post(
    "/channels/{event_id}/messages",
    response_model=PublishResult,
    status_code=202,
)
async def publish_message(
    event_id: str,
    request: Request,
    payload: dict[str, Any] = Body(...),
):
    """Relay ``payload`` to every client on the event's review channel."""
    channel = event_channel(event_id)
    hub = _hubs(request).find(channel)
    delivered = await hub.broadcast(payload) if hub is not None else 0
    logger.info("channels.published", channel=channel, delivered=delivered)
    return PublishResult(channel=channel, delivered=delivered)
