"""Live feed — one event's reviews, live when possible, polled otherwise.

Learn: This is the pairing the event page uses. It follows the event's
review channel with a ResilientConnector; once the connector gives up
(terminated after max_reconnect_attempts) the PollingFallback takes over
against the REST reviews endpoint. If the live channel comes back (manual
reconnect), polling pauses again.
"""

from typing import Any, Callable, Optional

import httpx
import structlog

from reviewrelay.client.connector import (
    ConnectorStatus,
    ResilientConnector,
    SocketFactory,
    build_ws_url,
)
from reviewrelay.client.polling import PollingFallback, PollState
from reviewrelay.config import Settings, settings as default_settings

logger = structlog.get_logger()

LIVE_LABEL = "Live updates connected"
FALLBACK_LABEL = "Using fallback updates"


def status_label(is_connected: bool) -> str:
    return LIVE_LABEL if is_connected else FALLBACK_LABEL


def event_reviews_ws_path(event_id: str) -> str:
    return f"/api/v1/events/{event_id}/reviews/ws"


class LiveFeed:
    """Live review updates for one event, with a polling fallback."""

    def __init__(
        self,
        event_id: str,
        *,
        settings: Optional[Settings] = None,
        live: bool = True,
        open_socket: Optional[SocketFactory] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        on_update: Optional[Callable[[str, Any], None]] = None,
    ):
        cfg = settings or default_settings
        self.event_id = event_id
        self.live = live
        self._on_update = on_update
        self._latest: Any = None

        self.ws_url = build_ws_url(cfg.ws_base_url, event_reviews_ws_path(event_id))
        self.poll_url = cfg.api_base_url.rstrip("/") + cfg.reviews_poll_path.format(
            event_id=event_id
        )

        self.connector = ResilientConnector(
            self.ws_url,
            max_reconnect_attempts=cfg.max_reconnect_attempts,
            base_delay_ms=cfg.reconnect_base_delay_ms,
            max_delay_ms=cfg.reconnect_max_delay_ms,
            open_socket=open_socket,
            on_message=self._live_message,
            on_state_change=self._connector_changed,
        )
        self.polling = PollingFallback(
            self.poll_url,
            interval_ms=cfg.poll_interval_ms,
            enabled=False,
            client=http_client,
            timeout=cfg.poll_timeout_seconds,
            on_update=self._polled,
        )

    def start(self) -> None:
        if self.live:
            self.connector.start()
        else:
            self.polling.set_enabled(True)

    async def close(self) -> None:
        await self.connector.close()
        await self.polling.stop()

    def latest(self) -> Any:
        """Newest payload from either source."""
        return self._latest

    def status(self) -> dict[str, Any]:
        state = self.connector.state
        error = state.error or self.polling.state.error
        return {
            "label": status_label(state.is_connected),
            "isConnected": state.is_connected,
            "error": error,
            "reconnectAttempts": state.reconnect_attempts,
            "maxReconnectAttempts": state.max_reconnect_attempts,
        }

    # ─── Callbacks ──────────────────────────────────────────

    def _connector_changed(self, connector: ResilientConnector) -> None:
        if connector.status == ConnectorStatus.TERMINATED and connector.should_reconnect:
            # Retries exhausted while we still want updates
            if not self.polling.enabled:
                logger.info("feed.fallback_to_polling", event_id=self.event_id)
                self.polling.set_enabled(True)
        elif connector.status == ConnectorStatus.CONNECTED and self.polling.enabled:
            logger.info("feed.live_restored", event_id=self.event_id)
            self.polling.set_enabled(False)

    def _live_message(self, payload: Any) -> None:
        self._emit("live", payload)

    def _polled(self, state: PollState) -> None:
        if state.error is None:
            self._emit("poll", state.data)

    def _emit(self, source: str, payload: Any) -> None:
        self._latest = payload
        if self._on_update is not None:
            self._on_update(source, payload)
