"""Review Relay CLI — run the hub, follow a channel, publish into it.

Usage:
    reviewrelay serve                              # Start the relay server
    reviewrelay listen 42                          # Follow event 42's reviews live
    reviewrelay listen 42 --poll-only              # ...via REST polling only
    reviewrelay publish 42 '{"type":"comment"}'    # Push a message to event 42
    reviewrelay channels                           # Live channels + connection counts
    reviewrelay poll http://localhost:3001/api/v1/reviews/event/42
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from typing import Any, Optional

import click
import httpx

from reviewrelay import __version__
from reviewrelay.config import settings

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


def _relay_url() -> str:
    default = f"http://localhost:{settings.port}"
    return os.environ.get("RELAY_SERVER_URL", default).rstrip("/")


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the relay server."""
    return httpx.AsyncClient(base_url=_relay_url(), timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _pretty_json(data: Any) -> str:
    return json.dumps(data, indent=2, default=str)


def _parse_payload(raw: str) -> dict:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="PAYLOAD")
    if not isinstance(payload, dict):
        raise click.BadParameter("must be a JSON object", param_hint="PAYLOAD")
    return payload


def _fail(message: str) -> None:
    click.secho(f"Error: {message}", fg="red", err=True)
    sys.exit(1)


async def _wait_forever(stop_after: Optional[float]) -> None:
    if stop_after is None:
        await asyncio.Event().wait()
    else:
        await asyncio.sleep(stop_after)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="reviewrelay")
def main():
    """Review Relay — real-time review updates over WebSockets."""


# ---------------------------------------------------------------------------
# reviewrelay serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: RELAY_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: RELAY_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Start the relay server."""
    import uvicorn

    uvicorn.run(
        "reviewrelay.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_config=None,
    )


# ---------------------------------------------------------------------------
# reviewrelay listen
# ---------------------------------------------------------------------------


@main.command()
@click.argument("event_id")
@click.option("--poll-only", is_flag=True, help="Skip the WebSocket; poll the REST endpoint")
@click.option("--seconds", type=float, default=None, help="Stop after N seconds")
def listen(event_id: str, poll_only: bool, seconds: Optional[float]):
    """Follow an event's review stream, falling back to polling."""
    try:
        asyncio.run(_listen_impl(event_id, poll_only, seconds))
    except KeyboardInterrupt:
        pass


async def _listen_impl(event_id: str, poll_only: bool, seconds: Optional[float]):
    from reviewrelay.client.feed import LiveFeed

    def on_update(source: str, payload: Any) -> None:
        click.secho(f"[{source}]", fg="cyan", nl=False)
        click.echo(f" {json.dumps(payload, default=str)}")

    feed = LiveFeed(event_id, live=not poll_only, on_update=on_update)

    click.echo(f"Following event {event_id}")
    click.echo(f"  live: {feed.ws_url}")
    click.echo(f"  poll: {feed.poll_url}")
    feed.start()

    async def report_status():
        shown = None
        while True:
            status = feed.status()
            if status["label"] != shown:
                shown = status["label"]
                color = "green" if status["isConnected"] else "yellow"
                click.secho(status["label"], fg=color)
            await asyncio.sleep(0.5)

    reporter = asyncio.create_task(report_status())
    try:
        await _wait_forever(seconds)
    finally:
        reporter.cancel()
        await feed.close()


# ---------------------------------------------------------------------------
# reviewrelay publish
# ---------------------------------------------------------------------------


@main.command()
@click.argument("event_id")
@click.argument("payload")
def publish(event_id: str, payload: str):
    """Relay PAYLOAD (a JSON object) to everyone following EVENT_ID."""
    body = _parse_payload(payload)
    asyncio.run(_publish_impl(event_id, body))


async def _publish_impl(event_id: str, body: dict):
    async with _client() as c:
        try:
            resp = await c.post(f"/api/v1/channels/{event_id}/messages", json=body)
        except httpx.HTTPError as e:
            _fail(f"relay not reachable at {_relay_url()}: {e}")
            return
    if resp.status_code != 202:
        _fail(f"publish failed: {resp.status_code} {resp.text}")
        return
    result = resp.json()
    click.secho(
        f"Delivered to {result['delivered']} connection(s) on {result['channel']}",
        fg="green",
    )


# ---------------------------------------------------------------------------
# reviewrelay channels
# ---------------------------------------------------------------------------


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Raw JSON output")
def channels(as_json: bool):
    """List live channels and their connection counts."""
    asyncio.run(_channels_impl(as_json))


async def _channels_impl(as_json: bool):
    async with _client() as c:
        try:
            resp = await c.get("/api/v1/channels")
        except httpx.HTTPError as e:
            _fail(f"relay not reachable at {_relay_url()}: {e}")
            return
    if resp.status_code != 200:
        _fail(f"{resp.status_code} {resp.text}")
        return
    rows = resp.json()
    if as_json:
        click.echo(_pretty_json(rows))
        return
    if not rows:
        click.echo("No live channels.")
        return
    header = f"{'CHANNEL'.ljust(40)}  CONNECTIONS"
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        click.echo(f"{row['channel'][:40].ljust(40)}  {row['connections']}")


# ---------------------------------------------------------------------------
# reviewrelay poll
# ---------------------------------------------------------------------------


@main.command()
@click.argument("url")
@click.option("--interval", type=int, default=None, help="Milliseconds between fetches")
@click.option("--count", type=int, default=None, help="Stop after N fetches")
def poll(url: str, interval: Optional[int], count: Optional[int]):
    """Poll a JSON endpoint the way the fallback does."""
    try:
        asyncio.run(_poll_impl(url, interval or settings.poll_interval_ms, count))
    except KeyboardInterrupt:
        pass


async def _poll_impl(url: str, interval_ms: int, count: Optional[int]):
    from reviewrelay.client.polling import PollingFallback

    fetched = asyncio.Event()
    seen = 0

    def on_update(state) -> None:
        nonlocal seen
        seen += 1
        if state.error:
            click.secho(f"error: {state.error}", fg="red")
        else:
            click.echo(_pretty_json(state.data))
        if count is not None and seen >= count:
            fetched.set()

    poller = PollingFallback(
        url,
        interval_ms=interval_ms,
        timeout=settings.poll_timeout_seconds,
        on_update=on_update,
    )
    poller.start()
    try:
        await fetched.wait()
    finally:
        await poller.stop()
