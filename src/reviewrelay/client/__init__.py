"""Client side of the relay — live connector, polling fallback, feed."""

from reviewrelay.client.connector import (
    ConnectorStatus,
    LiveState,
    ResilientConnector,
    build_ws_url,
    reconnect_delay,
)
from reviewrelay.client.feed import LiveFeed, status_label
from reviewrelay.client.polling import PollingFallback, PollState

__all__ = [
    "ConnectorStatus",
    "LiveFeed",
    "LiveState",
    "PollState",
    "PollingFallback",
    "ResilientConnector",
    "build_ws_url",
    "reconnect_delay",
    "status_label",
]
