"""Review Relay — real-time review updates for the ticketing platform.

A broadcast hub that fans WebSocket messages out to every other client on
the same channel, plus the client side that keeps a live connection alive
and falls back to REST polling when it cannot.
"""

__version__ = "0.1.0"
