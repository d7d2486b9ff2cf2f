"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (Redis for rate limiting).
The HubRegistry is built here and stored on app.state, so each app
instance owns its own channels — no process-wide connection set.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reviewrelay import __version__
from reviewrelay.api import api_router
from reviewrelay.config import Settings, settings as default_settings
from reviewrelay.logging_config import configure_logging
from reviewrelay.realtime.hub import HubRegistry

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown. Hubs need no teardown — when the process exits, every
    connection goes with it.
    """
    cfg: Settings = app.state.settings
    logger.info(
        "relay.starting",
        version=__version__,
        environment=cfg.environment,
        port=cfg.port,
        max_connections_per_channel=cfg.max_connections_per_channel or "unbounded",
    )

    from reviewrelay.redis_pool import close_redis, init_redis
    try:
        await init_redis(cfg.redis_url)
        logger.info("relay.redis_connected", url=cfg.redis_url)
    except Exception as e:
        logger.warning("relay.redis_unavailable", error=str(e))
        # Redis is optional — only rate limiting is lost

    yield

    logger.info(
        "relay.shutdown",
        open_connections=app.state.hubs.total_connections,
    )
    await close_redis()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build and return the FastAPI application."""
    cfg = settings or default_settings
    configure_logging(cfg)

    app = FastAPI(
        title="Review Relay",
        description="Real-time review updates — WebSocket broadcast hub",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.hubs = HubRegistry(cfg.max_connections_per_channel)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → RateLimit → CORS → handler

    from reviewrelay.middleware.rate_limit import RateLimitMiddleware
    from reviewrelay.middleware.request_id import RequestIdMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=cfg.rate_limit_rpm,
        publish_rpm=cfg.rate_limit_publish_rpm,
    )
    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router)

    from reviewrelay.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: reviewrelay.main:app)
app = create_app()
