"""Broadcast hub tests — fan-out, no echo, failure isolation.

Learn: The hub only needs `is_open` and `send_text`, so these tests drive
it with in-memory connections and never open a socket.
"""

import json

import pytest

from reviewrelay.realtime.hub import (
    BroadcastHub,
    HubFullError,
    HubRegistry,
    event_channel,
)


class FakeConnection:
    def __init__(self, name: str, is_open: bool = True, fail: bool = False):
        self.name = name
        self.is_open = is_open
        self.fail = fail
        self.inbox: list[str] = []

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionResetError(f"{self.name} went away")
        self.inbox.append(data)

    def received(self) -> list:
        return [json.loads(m) for m in self.inbox]


def connect_all(hub: BroadcastHub, *names: str) -> list[FakeConnection]:
    conns = [FakeConnection(n) for n in names]
    for c in conns:
        hub.on_connect(c)
    return conns


# ═══════════════════════════════════════════════════════════
# Fan-out
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
@pytest.mark.parametrize("n", [1, 2, 3, 6])
async def test_message_reaches_every_peer_but_sender(n):
    """N connections → exactly N-1 deliveries, never to the sender."""
    hub = BroadcastHub()
    conns = connect_all(hub, *[f"c{i}" for i in range(n)])
    sender = conns[0]

    delivered = await hub.on_message(sender, '{"type": "ping"}')

    assert delivered == n - 1
    assert sender.inbox == []
    for peer in conns[1:]:
        assert peer.received() == [{"type": "ping"}]


@pytest.mark.asyncio
async def test_three_clients_then_one_leaves():
    """A, B, C connect; A speaks; B leaves; A speaks again → only C hears."""
    hub = BroadcastHub()
    a, b, c = connect_all(hub, "A", "B", "C")
    first = {"type": "comment", "text": "hi"}

    await hub.on_message(a, json.dumps(first))

    assert b.received() == [first]
    assert c.received() == [first]
    assert a.inbox == []

    hub.on_close(b)
    second = {"type": "comment", "text": "still here?"}
    await hub.on_message(a, json.dumps(second))

    assert b.received() == [first]
    assert c.received() == [first, second]
    assert a.inbox == []
    assert hub.connection_count == 2


@pytest.mark.asyncio
async def test_broadcast_serializes_once():
    """Every peer gets the identical serialized frame."""
    hub = BroadcastHub()
    a, b, c = connect_all(hub, "A", "B", "C")

    await hub.broadcast({"rating": 5, "text": "great show"}, exclude=a)

    assert b.inbox == c.inbox
    assert len(b.inbox) == 1


@pytest.mark.asyncio
async def test_server_broadcast_without_exclusion_reaches_everyone():
    hub = BroadcastHub()
    conns = connect_all(hub, "A", "B")

    delivered = await hub.broadcast({"type": "review.created"})

    assert delivered == 2
    assert all(c.received() == [{"type": "review.created"}] for c in conns)


@pytest.mark.asyncio
async def test_bytes_frames_are_relayed():
    hub = BroadcastHub()
    a, b = connect_all(hub, "A", "B")

    await hub.on_message(a, b'{"type": "binary"}')

    assert b.received() == [{"type": "binary"}]


# ═══════════════════════════════════════════════════════════
# Failure handling
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_malformed_message_is_dropped():
    """Invalid JSON is not relayed and nothing goes back to the sender."""
    hub = BroadcastHub()
    a, b = connect_all(hub, "A", "B")

    delivered = await hub.on_message(a, "this is not json")

    assert delivered == 0
    assert a.inbox == []
    assert b.inbox == []
    assert hub.connection_count == 2


@pytest.mark.asyncio
async def test_too_deeply_nested_message_is_dropped():
    hub = BroadcastHub()
    a, b = connect_all(hub, "A", "B")

    delivered = await hub.on_message(a, "[" * 200000 + "]" * 200000)

    assert delivered == 0
    assert b.inbox == []
    assert a in hub


@pytest.mark.asyncio
async def test_non_open_peers_are_skipped_not_removed():
    hub = BroadcastHub()
    a, b = connect_all(hub, "A", "B")
    closing = FakeConnection("closing", is_open=False)
    hub.on_connect(closing)

    delivered = await hub.on_message(a, '{"n": 1}')

    assert delivered == 1
    assert closing.inbox == []
    assert closing in hub


@pytest.mark.asyncio
async def test_failed_send_does_not_stop_delivery():
    """One broken peer must not starve the peers after it."""
    hub = BroadcastHub()
    a = FakeConnection("A")
    broken = FakeConnection("broken", fail=True)
    c = FakeConnection("C")
    for conn in (a, broken, c):
        hub.on_connect(conn)

    delivered = await hub.on_message(a, '{"n": 1}')

    assert delivered == 1
    assert c.received() == [{"n": 1}]


@pytest.mark.asyncio
async def test_no_delivery_after_error():
    hub = BroadcastHub()
    a, b, c = connect_all(hub, "A", "B", "C")

    hub.on_error(b, ConnectionResetError("reset by peer"))
    await hub.on_message(a, '{"n": 2}')

    assert b not in hub
    assert b.inbox == []
    assert c.received() == [{"n": 2}]


def test_removing_unknown_connection_is_noop():
    hub = BroadcastHub()
    hub.on_close(FakeConnection("stranger"))
    hub.on_error(FakeConnection("stranger"), RuntimeError("boom"))
    assert hub.connection_count == 0


def test_connection_bound_is_enforced():
    hub = BroadcastHub("event:1", max_connections=2)
    connect_all(hub, "A", "B")

    with pytest.raises(HubFullError):
        hub.on_connect(FakeConnection("C"))
    assert hub.connection_count == 2


def test_unbounded_by_default():
    hub = BroadcastHub()
    connect_all(hub, *[f"c{i}" for i in range(50)])
    assert hub.connection_count == 50


# ═══════════════════════════════════════════════════════════
# Registry
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_channels_do_not_cross_talk():
    hubs = HubRegistry()
    one = hubs.get(event_channel("1"))
    two = hubs.get(event_channel("2"))
    a, b = connect_all(one, "A", "B")
    (c,) = connect_all(two, "C")

    await one.on_message(a, '{"event": 1}')

    assert b.received() == [{"event": 1}]
    assert c.inbox == []


def test_registry_reuses_and_releases_hubs():
    hubs = HubRegistry(max_connections_per_channel=5)
    hub = hubs.get("event:9")
    assert hubs.get("event:9") is hub
    assert hub.max_connections == 5

    conn = FakeConnection("A")
    hub.on_connect(conn)
    hubs.release("event:9")
    assert hubs.find("event:9") is hub  # still in use

    hub.on_close(conn)
    hubs.release("event:9")
    assert hubs.find("event:9") is None


def test_registry_stats():
    hubs = HubRegistry()
    connect_all(hubs.get("event:2"), "A", "B")
    connect_all(hubs.get("global"), "C")

    assert hubs.stats() == {"event:2": 2, "global": 1}
    assert hubs.total_connections == 3


def test_zero_bound_means_unbounded():
    assert HubRegistry(0).get("global").max_connections is None
