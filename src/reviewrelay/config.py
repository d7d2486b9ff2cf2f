"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with RELAY_ prefix.
No YAML files, no file-based config — just env vars (12-factor app style).

Learn: the same Settings object configures both sides of the relay. The
server reads host/port/connection bounds, the client side reads the
reconnect backoff and polling cadence.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All relay configuration. Set via RELAY_* env vars."""

    # Server
    environment: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 3003

    # Logging
    log_level: str = "info"
    log_format: str = "console"  # "console" or "json"

    # CORS
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Redis (rate limiting only — the hub itself is in-memory)
    redis_url: str = "redis://localhost:6379/0"
    rate_limit_rpm: int = 100  # requests per minute per IP
    rate_limit_publish_rpm: int = 30  # stricter limit for server-side publish

    # Hub
    max_connections_per_channel: int = 0  # 0 = unbounded

    # Client connector
    ws_base_url: str = "ws://localhost:3003"
    max_reconnect_attempts: int = 3
    reconnect_base_delay_ms: int = 1000
    reconnect_max_delay_ms: int = 30000

    # Polling fallback
    api_base_url: str = "http://localhost:3001"
    reviews_poll_path: str = "/api/v1/reviews/event/{event_id}"
    poll_interval_ms: int = 10000
    poll_timeout_seconds: float = 30.0

    model_config = {"env_prefix": "RELAY_"}

    @model_validator(mode="after")
    def validate_settings(self):
        """Reject values the relay cannot run with."""
        if self.max_reconnect_attempts < 0:
            raise ValueError("RELAY_MAX_RECONNECT_ATTEMPTS must be >= 0")
        if self.reconnect_base_delay_ms <= 0:
            raise ValueError("RELAY_RECONNECT_BASE_DELAY_MS must be positive")
        if self.reconnect_max_delay_ms < self.reconnect_base_delay_ms:
            raise ValueError(
                "RELAY_RECONNECT_MAX_DELAY_MS must be >= RELAY_RECONNECT_BASE_DELAY_MS"
            )
        if self.poll_interval_ms <= 0:
            raise ValueError("RELAY_POLL_INTERVAL_MS must be positive")
        if self.max_connections_per_channel < 0:
            raise ValueError("RELAY_MAX_CONNECTIONS_PER_CHANNEL must be >= 0")
        if (
            self.environment != "development"
            and self.max_connections_per_channel == 0
        ):
            raise ValueError(
                "RELAY_MAX_CONNECTIONS_PER_CHANNEL must be set in "
                "non-development environments (fan-out has no backpressure)."
            )
        return self


# Singleton — import this everywhere
settings = Settings()
