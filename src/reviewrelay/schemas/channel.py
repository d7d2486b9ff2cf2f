"""Pydantic schemas for relay channels.

Learn: The hub relays arbitrary JSON, so there is no message schema here —
only the shapes of the REST responses that describe channels.
"""

from pydantic import BaseModel, Field


class ChannelRead(BaseModel):
    """One live channel and how many clients follow it."""
    channel: str = Field(..., description='Channel name, e.g. "event:42"')
    connections: int


class PublishResult(BaseModel):
    """Outcome of a server-side publish."""
    channel: str
    delivered: int = Field(..., description="Connections the message reached")
