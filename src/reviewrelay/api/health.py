"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running, reports
how many clients the hubs are holding, and whether the Redis store behind
rate limiting is reachable.
"""

from fastapi import APIRouter, Request

from reviewrelay import __version__
from reviewrelay.redis_pool import get_redis

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Check server health and dependency connectivity."""
    hubs = request.app.state.hubs
    checks = {
        "server": "ok",
        "version": __version__,
        "channels": len(hubs.stats()),
        "connections": hubs.total_connections,
    }

    # Check Redis (optional — only rate limiting depends on it)
    try:
        await get_redis().ping()
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = f"error: {e}"

    status = "healthy" if checks["redis"] == "ok" else "degraded"
    return {"status": status, **checks}
