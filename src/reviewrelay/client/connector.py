"""Resilient client connector — a live WebSocket that survives drops.

Learn: One connector follows one resource (e.g. one event's review stream).
It is an explicit state machine:

  idle → connecting → connected → disconnected → (connecting | terminated)

On every disconnect it decides whether to try again. Retries use
exponential backoff — min(base * 2^attempt, cap) — and stop after
max_reconnect_attempts; after that the connector is terminated and the
caller is expected to fall back to polling (see client.polling).

Everything runs on the event loop: one task owns the live socket, and at
most one loop.call_later() handle waits to reconnect. Teardown clears
should_reconnect *before* closing the socket, so the close it triggers can
never schedule a new attempt.

Failures never raise into the caller — they become LiveState.error.
"""

import asyncio
import enum
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import structlog
import websockets
from websockets.exceptions import ConnectionClosed, InvalidURI, WebSocketException

logger = structlog.get_logger()

INIT_ERROR = "Failed to initialize WebSocket connection"
CONNECT_ERROR = "Failed to connect to live updates"


class ConnectorStatus(str, enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    TERMINATED = "terminated"


@dataclass
class LiveState:
    """What the consumer sees of the live channel."""

    is_connected: bool = False
    last_message: Any = None
    error: Optional[str] = None
    reconnect_attempts: int = 0
    max_reconnect_attempts: int = 3

    def as_dict(self) -> dict[str, Any]:
        return {
            "isConnected": self.is_connected,
            "lastMessage": self.last_message,
            "error": self.error,
            "reconnectAttempts": self.reconnect_attempts,
            "maxReconnectAttempts": self.max_reconnect_attempts,
        }


def reconnect_delay(attempt: int, base_ms: int = 1000, cap_ms: int = 30000) -> int:
    """Backoff delay in milliseconds for a 0-indexed reconnect attempt."""
    return min(base_ms * (2 ** attempt), cap_ms)


def build_ws_url(base_url: Optional[str], endpoint: Optional[str]) -> Optional[str]:
    """Turn an endpoint into a full ws:// or wss:// URL.

    Full ws URLs pass through, http(s) URLs switch scheme, and paths are
    joined onto ``base_url``. Returns None for an empty endpoint.
    """
    if not endpoint:
        return None
    if endpoint.startswith(("ws://", "wss://")):
        return endpoint
    if endpoint.startswith("http://"):
        return "ws" + endpoint[len("http"):]
    if endpoint.startswith("https://"):
        return "wss" + endpoint[len("https"):]
    if not base_url:
        return None
    base = build_ws_url(None, base_url) or base_url
    return f"{base.rstrip('/')}/{endpoint.lstrip('/')}"


async def open_websocket(url: str):
    """Default socket factory — a websockets client connection."""
    return await websockets.connect(url, open_timeout=10)


SocketFactory = Callable[[str], Awaitable[Any]]


@dataclass
class _Handles:
    task: Optional[asyncio.Task] = None
    timer: Optional[asyncio.TimerHandle] = None
    socket: Any = None


class ResilientConnector:
    """Keeps a best-effort live connection to one relay channel."""

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        max_reconnect_attempts: int = 3,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 30000,
        open_socket: Optional[SocketFactory] = None,
        on_message: Optional[Callable[[Any], None]] = None,
        on_state_change: Optional[Callable[["ResilientConnector"], None]] = None,
    ):
        self.url = url
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.state = LiveState(max_reconnect_attempts=max_reconnect_attempts)
        self.status = ConnectorStatus.IDLE
        self.should_reconnect = False
        self._open_socket = open_socket or open_websocket
        self._on_message = on_message
        self._on_state_change = on_state_change
        self._handles = _Handles()

    # ─── Public API ─────────────────────────────────────────

    @property
    def reconnect_pending(self) -> bool:
        return self._handles.timer is not None

    def start(self, url: Optional[str] = None) -> None:
        """Begin following ``url`` (idle → connecting)."""
        if url is not None:
            self.url = url
        if not self.url:
            logger.warning("connector.no_url")
            return
        self.should_reconnect = True
        self.connect()

    def connect(self) -> None:
        """Open a connection unless one is live or a reconnect is pending."""
        if self.status == ConnectorStatus.TERMINATED and not self.should_reconnect:
            return
        if self._handles.timer is not None:
            return
        if self._handles.task is not None and not self._handles.task.done():
            return
        loop = asyncio.get_running_loop()
        self._handles.task = loop.create_task(self._run(self.url))

    def reconnect(self) -> None:
        """Manual retry: reset the attempt budget and connect now."""
        self._cancel_timer()
        self.state.reconnect_attempts = 0
        self.should_reconnect = True
        if self.status == ConnectorStatus.TERMINATED:
            self._set_status(ConnectorStatus.DISCONNECTED)
        self.connect()

    async def send(self, message: Any) -> bool:
        """JSON-encode and send ``message``. False if not connected."""
        socket = self._handles.socket
        if socket is None or not self.state.is_connected:
            logger.warning("connector.send_not_connected", url=self.url)
            return False
        try:
            await socket.send(json.dumps(message))
            return True
        except (TypeError, ValueError) as e:
            logger.warning("connector.send_unserializable", url=self.url, error=str(e))
            return False
        except (ConnectionClosed, OSError) as e:
            logger.warning("connector.send_failed", url=self.url, error=str(e))
            return False

    async def close(self) -> None:
        """Tear down: no reconnect may fire after this returns."""
        self.should_reconnect = False
        self._cancel_timer()

        task = self._handles.task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._handles.task = None

        await self._close_socket()
        self.state.is_connected = False
        self._set_status(ConnectorStatus.TERMINATED)

    async def retarget(self, url: Optional[str]) -> None:
        """Follow a different resource; state starts over."""
        await self.close()
        self.state = LiveState(max_reconnect_attempts=self.state.max_reconnect_attempts)
        self._set_status(ConnectorStatus.IDLE)
        if url:
            self.start(url)

    # ─── Connection task ────────────────────────────────────

    async def _run(self, url: str) -> None:
        self._set_status(ConnectorStatus.CONNECTING)
        logger.info("connector.connecting", url=url, attempt=self.state.reconnect_attempts)

        try:
            socket = await self._open_socket(url)
        except InvalidURI as e:
            self._fail(INIT_ERROR, e)
            return
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            self._fail(CONNECT_ERROR, e)
            return
        except Exception as e:
            self._fail(INIT_ERROR, e)
            return

        self._handles.socket = socket
        self.state.is_connected = True
        self.state.error = None
        self.state.reconnect_attempts = 0
        self._set_status(ConnectorStatus.CONNECTED)
        logger.info("connector.connected", url=url)

        try:
            async for frame in socket:
                self._handle_frame(frame)
        except ConnectionClosed as e:
            logger.info("connector.closed", url=url, code=getattr(e.rcvd, "code", None))
        except (OSError, WebSocketException) as e:
            logger.warning("connector.transport_error", url=url, error=str(e))
            self.state.error = CONNECT_ERROR
        except Exception:
            logger.exception("connector.receive_failed", url=url)
            self.state.error = CONNECT_ERROR
        finally:
            self._handles.socket = None
            self.state.is_connected = False
            await self._close_quietly(socket)

        logger.info("connector.disconnected", url=url)
        self._after_disconnect()

    def _handle_frame(self, frame: str | bytes) -> None:
        try:
            payload = json.loads(frame)
        except (ValueError, RecursionError) as e:
            logger.warning("connector.bad_frame", url=self.url, error=str(e))
            return
        self.state.last_message = payload
        if self._on_message is not None:
            try:
                self._on_message(payload)
            except Exception:
                logger.exception("connector.on_message_failed", url=self.url)
        self._notify()

    def _fail(self, error: str, exc: BaseException) -> None:
        logger.warning("connector.connect_failed", url=self.url, error=str(exc))
        self.state.error = error
        self.state.is_connected = False
        self._after_disconnect()

    def _after_disconnect(self) -> None:
        self._set_status(ConnectorStatus.DISCONNECTED)

        if not self.should_reconnect:
            self._set_status(ConnectorStatus.TERMINATED)
            return

        attempts = self.state.reconnect_attempts
        if attempts >= self.state.max_reconnect_attempts:
            logger.warning(
                "connector.gave_up",
                url=self.url,
                attempts=attempts,
            )
            self._set_status(ConnectorStatus.TERMINATED)
            return

        delay_ms = reconnect_delay(attempts, self.base_delay_ms, self.max_delay_ms)
        self.state.reconnect_attempts = attempts + 1
        logger.info(
            "connector.reconnect_scheduled",
            url=self.url,
            delay_ms=delay_ms,
            attempt=attempts + 1,
            max_attempts=self.state.max_reconnect_attempts,
        )
        loop = asyncio.get_running_loop()
        self._handles.timer = loop.call_later(delay_ms / 1000, self._fire_reconnect)
        self._notify()

    def _fire_reconnect(self) -> None:
        self._handles.timer = None
        if not self.should_reconnect:
            return
        self.connect()

    # ─── Helpers ────────────────────────────────────────────

    def _cancel_timer(self) -> None:
        if self._handles.timer is not None:
            self._handles.timer.cancel()
            self._handles.timer = None

    async def _close_socket(self) -> None:
        socket, self._handles.socket = self._handles.socket, None
        if socket is not None:
            await self._close_quietly(socket)

    async def _close_quietly(self, socket: Any) -> None:
        try:
            await socket.close()
        except (ConnectionClosed, OSError) as e:
            logger.debug("connector.close_failed", url=self.url, error=str(e))

    def _set_status(self, status: ConnectorStatus) -> None:
        if self.status == status:
            return
        self.status = status
        self._notify()

    def _notify(self) -> None:
        if self._on_state_change is None:
            return
        try:
            self._on_state_change(self)
        except Exception:
            logger.exception("connector.on_state_change_failed", url=self.url)
