"""Real-time infrastructure — broadcast hubs + WebSocket transport.

Learn: Messages flow through two layers:
1. WebSocket endpoint → hub.on_message (one task per connected client)
2. Hub → every other open connection on the same channel (fan-out)

The hub knows nothing about Starlette; the transport module adapts
sockets to the small Connection protocol the hub relays through.
"""
