#!/usr/bin/env python3
"""
Review Relay Quickstart — two browsers on one event page, in one script.

Connects two clients to event 42's review stream, has one post a comment,
shows the other receiving it, then pushes a server-side review via REST.
Run with: python examples/quickstart.py

Relay must be running: reviewrelay serve  (http://localhost:3003)
"""

import asyncio
import sys

import httpx

from reviewrelay.client.connector import ResilientConnector

BASE = "http://localhost:3003"
EVENT_WS = "ws://localhost:3003/api/v1/events/42/reviews/ws"


async def wait_connected(*clients: ResilientConnector, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not all(c.state.is_connected for c in clients):
        if loop.time() > deadline:
            print("Could not connect to the relay.")
            sys.exit(1)
        await asyncio.sleep(0.05)


async def main():
    # ── Health check ──────────────────────────────────────────────
    print("Checking relay health...")
    async with httpx.AsyncClient(base_url=BASE, timeout=10) as http:
        try:
            resp = await http.get("/api/v1/health")
        except httpx.ConnectError:
            print(f"Relay not reachable at {BASE}")
            sys.exit(1)
        health = resp.json()
        print(f"  Status:      {health['status']}")
        print(f"  Connections: {health['connections']}")

        # ── Two clients on the same event ─────────────────────────────
        alice = ResilientConnector(
            EVENT_WS, on_message=lambda m: print(f"   alice got: {m}")
        )
        bob = ResilientConnector(
            EVENT_WS, on_message=lambda m: print(f"   bob got:   {m}")
        )
        alice.start()
        bob.start()
        await wait_connected(alice, bob)
        print("\n1. Alice and Bob are following event 42")

        # ── Client-to-client relay (no echo) ──────────────────────────
        print("\n2. Alice comments — only Bob should see it")
        await alice.send({"type": "comment", "text": "hi"})
        await asyncio.sleep(0.3)

        # ── Server-side publish reaches everyone ──────────────────────
        print("\n3. The backend publishes a new review — both see it")
        resp = await http.post(
            "/api/v1/channels/42/messages",
            json={"type": "review.created", "rating": 5, "comment": "Great show"},
        )
        print(f"   delivered to {resp.json()['delivered']} connection(s)")
        await asyncio.sleep(0.3)

        await alice.close()
        await bob.close()

    print("\nDone.")


if __name__ == "__main__":
    asyncio.run(main())
