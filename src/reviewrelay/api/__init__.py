"""API route aggregation.

All routers registered here get mounted in main.py under /api/v1.
WebSocket routes live in realtime.websocket and are mounted separately.
"""

from fastapi import APIRouter

from reviewrelay.api.channels import router as channels_router
from reviewrelay.api.health import router as health_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(channels_router, tags=["channels"])
