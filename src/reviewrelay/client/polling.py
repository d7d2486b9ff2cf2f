"""Polling fallback — refresh a REST resource on a fixed interval.

Learn: When the live channel is down (or live updates are switched off),
the consumer still needs fresh data. PollingFallback GETs a JSON endpoint
immediately, then every interval_ms, and exposes {data, error, is_loading}.

No retry or backoff beyond the interval: a failed fetch keeps the last good
data, sets error, and the next tick simply tries again.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx
import structlog

logger = structlog.get_logger()


@dataclass
class PollState:
    data: Any = None
    error: Optional[str] = None
    is_loading: bool = True

    def as_dict(self) -> dict[str, Any]:
        return {"data": self.data, "error": self.error, "isLoading": self.is_loading}


class PollingFallback:
    """Periodically fetches ``url`` while enabled."""

    def __init__(
        self,
        url: str,
        *,
        interval_ms: int = 10000,
        enabled: bool = True,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        on_update: Optional[Callable[[PollState], None]] = None,
    ):
        self.url = url
        self.interval_ms = interval_ms
        self.enabled = enabled
        self.state = PollState()
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._on_update = on_update
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def fetch_once(self) -> None:
        """One GET. Failures keep the previous data and set error."""
        if not self.enabled:
            return

        self.state.is_loading = True
        try:
            resp = await self._http().get(self.url)
            if not resp.is_success:
                self.state.error = f"Failed to fetch {self.url}: HTTP {resp.status_code}"
                logger.warning("polling.bad_status", url=self.url, status=resp.status_code)
                return
            data = resp.json()
            self.state.data = data
            self.state.error = None
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            self.state.error = str(e) or type(e).__name__
            logger.warning("polling.fetch_failed", url=self.url, error=self.state.error)
        finally:
            self.state.is_loading = False
            self._notify()

    def start(self) -> None:
        """Fetch now, then every interval_ms, until disabled or stopped."""
        if not self.enabled or self.running:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._poll_loop())
        logger.info("polling.started", url=self.url, interval_ms=self.interval_ms)

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        if enabled:
            self.start()
        elif self._task is not None:
            self._task.cancel()
            self._task = None
            logger.info("polling.paused", url=self.url)

    async def stop(self) -> None:
        """Cancel the schedule and release the HTTP client if we made it."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _poll_loop(self) -> None:
        while True:
            await self.fetch_once()
            await asyncio.sleep(self.interval_ms / 1000)

    def _notify(self) -> None:
        if self._on_update is None:
            return
        try:
            self._on_update(self.state)
        except Exception:
            logger.exception("polling.on_update_failed", url=self.url)
