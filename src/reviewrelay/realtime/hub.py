"""Broadcast hub — relays each client's message to every other client.

Learn: A hub owns one set of live connections (a "channel"). Whatever one
connection sends is parsed as JSON and re-sent, serialized once, to every
*other* open connection. The sender never gets its own message back.

State is in-memory and process-scoped: a restart drops every connection.
There is no persistence, no auth, and no ordering across senders — only
per-sender FIFO, because each connection's frames are relayed one at a time
by that connection's own receive loop.

Channel naming: "global" for the root endpoint, "event:{event_id}" for an
event's review stream. HubRegistry keeps one hub per channel so review
streams for different events never cross-talk.
"""

import json
from typing import Any, Optional, Protocol

import structlog

logger = structlog.get_logger()


class HubFullError(Exception):
    """Raised when a hub is at its connection bound."""


class Connection(Protocol):
    """What the hub needs from a transport session."""

    @property
    def is_open(self) -> bool: ...

    async def send_text(self, data: str) -> None: ...


class BroadcastHub:
    """Fan-out group for one channel."""

    def __init__(self, channel: str = "global", max_connections: Optional[int] = None):
        self.channel = channel
        self.max_connections = max_connections
        self._connections: set[Connection] = set()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def __contains__(self, connection: object) -> bool:
        return connection in self._connections

    def on_connect(self, connection: Connection) -> None:
        """Register a newly established connection."""
        if (
            self.max_connections is not None
            and len(self._connections) >= self.max_connections
        ):
            logger.warning(
                "hub.full",
                channel=self.channel,
                max_connections=self.max_connections,
            )
            raise HubFullError(
                f"Channel {self.channel!r} is full ({self.max_connections} connections)"
            )
        self._connections.add(connection)
        logger.info(
            "hub.connected",
            channel=self.channel,
            connections=len(self._connections),
        )

    async def on_message(self, connection: Connection, raw: str | bytes) -> int:
        """Relay one inbound frame to every other connection.

        Malformed frames are logged and dropped; nothing is sent back to
        the sender. Returns the number of peers the message reached.
        """
        try:
            payload = json.loads(raw)
        except (ValueError, RecursionError) as e:
            logger.warning(
                "hub.message_dropped",
                channel=self.channel,
                reason="invalid_json",
                error=str(e),
            )
            return 0

        return await self.broadcast(payload, exclude=connection)

    async def broadcast(self, payload: Any, exclude: Optional[Connection] = None) -> int:
        """Send ``payload`` to every open connection except ``exclude``.

        Non-open connections are skipped, not removed — removal only happens
        through on_close/on_error. A failed send is logged and delivery
        continues with the remaining peers.
        """
        message = json.dumps(payload)
        delivered = 0

        # Snapshot: a send may yield to a handler that mutates the set
        for peer in list(self._connections):
            if peer is exclude or not peer.is_open:
                continue
            try:
                await peer.send_text(message)
                delivered += 1
            except Exception as e:
                logger.warning(
                    "hub.send_failed",
                    channel=self.channel,
                    error=str(e),
                )

        return delivered

    def on_close(self, connection: Connection) -> None:
        """Forget a connection that closed."""
        self._connections.discard(connection)
        logger.info(
            "hub.disconnected",
            channel=self.channel,
            connections=len(self._connections),
        )

    def on_error(self, connection: Connection, error: BaseException) -> None:
        """Forget a connection that failed. Errors are logged, never re-raised."""
        self._connections.discard(connection)
        logger.error(
            "hub.connection_error",
            channel=self.channel,
            error=str(error),
            connections=len(self._connections),
        )


class HubRegistry:
    """One BroadcastHub per channel, created on demand.

    Learn: The registry is the only place hubs live. It's built once in
    create_app() and stored on app.state, so tests can spin up as many
    independent registries as they like.
    """

    def __init__(self, max_connections_per_channel: int = 0):
        # 0 means unbounded
        self.max_connections_per_channel = max_connections_per_channel or None
        self._hubs: dict[str, BroadcastHub] = {}

    def get(self, channel: str) -> BroadcastHub:
        hub = self._hubs.get(channel)
        if hub is None:
            hub = BroadcastHub(channel, max_connections=self.max_connections_per_channel)
            self._hubs[channel] = hub
        return hub

    def find(self, channel: str) -> Optional[BroadcastHub]:
        return self._hubs.get(channel)

    def release(self, channel: str) -> None:
        """Drop a channel's hub once nobody is connected to it."""
        hub = self._hubs.get(channel)
        if hub is not None and hub.connection_count == 0:
            del self._hubs[channel]

    def stats(self) -> dict[str, int]:
        return {name: hub.connection_count for name, hub in sorted(self._hubs.items())}

    @property
    def total_connections(self) -> int:
        return sum(hub.connection_count for hub in self._hubs.values())


def event_channel(event_id: str) -> str:
    """Channel name for one event's review stream."""
    return f"event:{event_id}"
