"""Live feed tests — live first, polling once the live channel gives up."""

import httpx
import pytest

from reviewrelay.client.connector import ConnectorStatus
from reviewrelay.client.feed import FALLBACK_LABEL, LIVE_LABEL, LiveFeed, status_label

from conftest import make_settings
from fakes import FakeServer, FakeSocket, wait_until


@pytest.fixture()
def feed_settings():
    return make_settings(
        ws_base_url="ws://relay.test",
        api_base_url="http://api.test/",
        reconnect_base_delay_ms=1,
        max_reconnect_attempts=2,
        poll_interval_ms=20,
    )


@pytest.fixture()
def reviews_api():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=[{"rating": 5, "comment": "loved it"}])

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client.requests = requests
    return client


def test_status_label():
    assert status_label(True) == LIVE_LABEL == "Live updates connected"
    assert status_label(False) == FALLBACK_LABEL == "Using fallback updates"


def test_urls_follow_settings(feed_settings):
    feed = LiveFeed("42", settings=feed_settings)

    assert feed.ws_url == "ws://relay.test/api/v1/events/42/reviews/ws"
    assert feed.poll_url == "http://api.test/api/v1/reviews/event/42"


@pytest.mark.asyncio
async def test_live_messages_without_polling(feed_settings, reviews_api):
    updates = []
    sock = FakeSocket('{"type": "review.created", "rating": 4}')
    feed = LiveFeed(
        "42",
        settings=feed_settings,
        open_socket=FakeServer(sock),
        http_client=reviews_api,
        on_update=lambda source, payload: updates.append((source, payload)),
    )

    feed.start()
    await wait_until(lambda: updates)

    assert updates == [("live", {"type": "review.created", "rating": 4})]
    assert feed.status()["label"] == LIVE_LABEL
    assert feed.status()["isConnected"] is True
    assert reviews_api.requests == []

    await feed.close()
    await reviews_api.aclose()


@pytest.mark.asyncio
async def test_falls_back_to_polling_after_retries_exhausted(feed_settings, reviews_api):
    server = FakeServer()
    feed = LiveFeed(
        "42",
        settings=feed_settings,
        open_socket=server,
        http_client=reviews_api,
    )

    feed.start()
    await wait_until(lambda: feed.latest() is not None)

    assert feed.connector.status == ConnectorStatus.TERMINATED
    assert len(server.calls) == 3
    assert feed.latest() == [{"rating": 5, "comment": "loved it"}]
    status = feed.status()
    assert status["label"] == FALLBACK_LABEL
    assert status["reconnectAttempts"] == 2
    assert status["maxReconnectAttempts"] == 2
    assert status["error"] == "Failed to connect to live updates"
    assert str(reviews_api.requests[0].url) == feed.poll_url

    await feed.close()
    await reviews_api.aclose()


@pytest.mark.asyncio
async def test_polling_pauses_when_live_channel_returns(feed_settings, reviews_api):
    server = FakeServer()
    feed = LiveFeed("42", settings=feed_settings, open_socket=server, http_client=reviews_api)

    feed.start()
    await wait_until(lambda: feed.polling.running)

    server.script.append(FakeSocket())
    feed.connector.reconnect()
    await wait_until(lambda: feed.connector.state.is_connected)

    assert not feed.polling.enabled
    assert not feed.polling.running
    await feed.close()
    await reviews_api.aclose()


@pytest.mark.asyncio
async def test_poll_only_mode_never_opens_a_socket(feed_settings, reviews_api):
    server = FakeServer(FakeSocket())
    feed = LiveFeed(
        "42",
        settings=feed_settings,
        live=False,
        open_socket=server,
        http_client=reviews_api,
    )

    feed.start()
    await wait_until(lambda: feed.latest() is not None)

    assert server.calls == []
    assert feed.status()["label"] == FALLBACK_LABEL
    await feed.close()
    await reviews_api.aclose()


@pytest.mark.asyncio
async def test_close_does_not_start_polling(feed_settings, reviews_api):
    feed = LiveFeed(
        "42",
        settings=feed_settings,
        open_socket=FakeServer(FakeSocket()),
        http_client=reviews_api,
    )

    feed.start()
    await wait_until(lambda: feed.connector.state.is_connected)
    await feed.close()

    assert not feed.polling.enabled
    assert reviews_api.requests == []
    await reviews_api.aclose()
