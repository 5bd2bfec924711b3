"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Polymarket Whale Tracker application, loading and validating
environment variables at startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class DatabaseSettings(BaseSettings):
    """Database connection settings (persistence sink)."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="DATABASE_URL",
        description="PostgreSQL (or SQLite) connection string; persistence is disabled when unset",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate database URL format."""
        if v is None:
            return v
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or sqlite+aiosqlite connection string")
        return v

    @property
    def enabled(self) -> bool:
        return self.url is not None


class RedisSettings(BaseSettings):
    """Redis connection settings (live broadcast sink)."""

    model_config = SettingsConfigDict(env_prefix="REDIS_", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection string; broadcasting is disabled when unset",
    )
    whale_channel: str = Field(
        default="polymarket:whales",
        alias="REDIS_WHALE_CHANNEL",
        description="Pub/sub channel for whale alerts",
    )
    status_channel: str = Field(
        default="polymarket:status",
        alias="REDIS_STATUS_CHANNEL",
        description="Pub/sub channel for push-feed connection status",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v

    @property
    def enabled(self) -> bool:
        return self.url is not None


class PolymarketSettings(BaseSettings):
    """Polymarket API settings."""

    model_config = SettingsConfigDict(env_prefix="POLYMARKET_", extra="ignore")

    market_ws_url: str = Field(
        default="wss://ws-subscriptions-clob.polymarket.com/ws/market",
        alias="POLYMARKET_MARKET_WS_URL",
        description="CLOB market-channel WebSocket URL (push feed)",
    )
    data_api_url: str = Field(
        default="https://data-api.polymarket.com",
        alias="POLYMARKET_DATA_API_URL",
        description="Data API host (recent trades polling)",
    )
    gamma_api_url: str = Field(
        default="https://gamma-api.polymarket.com",
        alias="POLYMARKET_GAMMA_API_URL",
        description="Gamma API host (market metadata)",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        alias="POLYMARKET_REQUEST_TIMEOUT_SECONDS",
        gt=0,
        le=120,
        description="Timeout applied to every outbound request and feed connect",
    )
    requests_per_second: float = Field(
        default=10.0,
        alias="POLYMARKET_REQUESTS_PER_SECOND",
        gt=0,
        le=100,
        description="Client-side rate limit for HTTP requests",
    )

    @field_validator("market_ws_url")
    @classmethod
    def validate_ws_url(cls, v: str) -> str:
        """Validate WebSocket URL format."""
        if not v.startswith(("ws://", "wss://")):
            raise ValueError("WebSocket URL must start with ws:// or wss://")
        return v

    @field_validator("data_api_url", "gamma_api_url")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("API host must be an HTTP(S) endpoint")
        return v.rstrip("/")


class FeedSettings(BaseSettings):
    """Push feed (market WebSocket) settings."""

    model_config = SettingsConfigDict(env_prefix="FEED_", extra="ignore")

    enabled: bool = Field(
        default=True,
        alias="FEED_ENABLED",
        description="Run the market WebSocket push feed",
    )
    ping_interval_seconds: float = Field(
        default=30.0,
        alias="FEED_PING_INTERVAL_SECONDS",
        gt=0,
        le=300,
        description="Heartbeat interval while the link is open",
    )
    reconnect_delay_seconds: float = Field(
        default=5.0,
        alias="FEED_RECONNECT_DELAY_SECONDS",
        gt=0,
        le=300,
        description="Fixed delay before every reconnect attempt",
    )
    subscribe_market_limit: int = Field(
        default=50,
        alias="FEED_SUBSCRIBE_MARKET_LIMIT",
        ge=1,
        le=500,
        description="Active markets fetched for subscription on each connect",
    )
    max_subscribed_assets: int = Field(
        default=100,
        alias="FEED_MAX_SUBSCRIBED_ASSETS",
        ge=1,
        le=5_000,
        description="Maximum asset ids subscribed per session",
    )


class PollSettings(BaseSettings):
    """Data API polling settings."""

    model_config = SettingsConfigDict(env_prefix="POLL_", extra="ignore")

    enabled: bool = Field(
        default=True,
        alias="POLL_ENABLED",
        description="Run the Data API trade poller",
    )
    interval_seconds: float = Field(
        default=5.0,
        alias="POLL_INTERVAL_SECONDS",
        gt=0,
        le=3600,
        description="Trade poll cadence",
    )
    initial_delay_seconds: float = Field(
        default=2.0,
        alias="POLL_INITIAL_DELAY_SECONDS",
        ge=0,
        le=300,
        description="Delay before the first poll (lets the market list load)",
    )
    market_refresh_seconds: float = Field(
        default=300.0,
        alias="POLL_MARKET_REFRESH_SECONDS",
        gt=0,
        le=86_400,
        description="Top-volume market list refresh cadence",
    )
    recent_limit: int = Field(
        default=100,
        alias="POLL_RECENT_LIMIT",
        ge=1,
        le=10_000,
        description="Page size of the global recent-trades fetch",
    )
    market_limit: int = Field(
        default=20,
        alias="POLL_MARKET_LIMIT",
        ge=1,
        le=10_000,
        description="Page size of each per-market fetch",
    )
    top_markets: int = Field(
        default=10,
        alias="POLL_TOP_MARKETS",
        ge=0,
        le=100,
        description="How many top-volume markets get a dedicated fetch per poll",
    )
    tracked_markets: int = Field(
        default=50,
        alias="POLL_TRACKED_MARKETS",
        ge=1,
        le=1_000,
        description="How many top-volume markets are kept for title lookup",
    )


class DetectionSettings(BaseSettings):
    """Rolling statistics, dedup and whale classification settings."""

    model_config = SettingsConfigDict(env_prefix="DETECTION_", extra="ignore")

    global_window: int = Field(
        default=5000,
        alias="DETECTION_GLOBAL_WINDOW",
        ge=10,
        le=1_000_000,
        description="Capacity of the global notional window",
    )
    market_window: int = Field(
        default=500,
        alias="DETECTION_MARKET_WINDOW",
        ge=10,
        le=100_000,
        description="Capacity of each per-market notional window",
    )
    min_observations: int = Field(
        default=10,
        alias="DETECTION_MIN_OBSERVATIONS",
        ge=2,
        le=10_000,
        description="Observations required before a window yields a z-score",
    )
    dedup_max_keys: int = Field(
        default=10_000,
        alias="DETECTION_DEDUP_MAX_KEYS",
        ge=2,
        le=10_000_000,
        description="Dedup cache ceiling that triggers a trim",
    )
    dedup_retain_keys: int = Field(
        default=5_000,
        alias="DETECTION_DEDUP_RETAIN_KEYS",
        ge=1,
        le=10_000_000,
        description="Most recent keys kept after a trim",
    )
    push_emit_anomalies: bool = Field(
        default=True,
        alias="DETECTION_PUSH_EMIT_ANOMALIES",
        description="Emit whales seen only on the push feed (false: push feeds baselines only)",
    )

    @field_validator("dedup_retain_keys")
    @classmethod
    def validate_retain(cls, v: int, info: ValidationInfo) -> int:
        max_keys = info.data.get("dedup_max_keys")
        if max_keys is not None and v >= max_keys:
            raise ValueError("DETECTION_DEDUP_RETAIN_KEYS must be smaller than DETECTION_DEDUP_MAX_KEYS")
        return v


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from polymarket_whale_tracker.config import get_settings

        settings = get_settings()
        print(settings.polymarket.market_ws_url)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # Nested configuration groups
    #
    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    polymarket: PolymarketSettings = Field(
        default_factory=lambda: PolymarketSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    feed: FeedSettings = Field(
        default_factory=lambda: FeedSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    poll: PollSettings = Field(
        default_factory=lambda: PollSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    detection: DetectionSettings = Field(
        default_factory=lambda: DetectionSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Classify and log whales without calling the sinks",
    )
    queue_size: int = Field(
        default=10_000,
        alias="PIPELINE_QUEUE_SIZE",
        ge=1,
        le=1_000_000,
        description="Capacity of the producer -> pipeline event queue",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url) if self.database.url else "(not set)",
            "redis_url": self._redact_url(self.redis.url) if self.redis.url else "(not set)",
            "polymarket": {
                "market_ws_url": self.polymarket.market_ws_url,
                "data_api_url": self.polymarket.data_api_url,
                "gamma_api_url": self.polymarket.gamma_api_url,
                "request_timeout_seconds": str(self.polymarket.request_timeout_seconds),
            },
            "feed": {
                "enabled": str(self.feed.enabled),
                "ping_interval_seconds": str(self.feed.ping_interval_seconds),
                "reconnect_delay_seconds": str(self.feed.reconnect_delay_seconds),
            },
            "poll": {
                "enabled": str(self.poll.enabled),
                "interval_seconds": str(self.poll.interval_seconds),
                "top_markets": str(self.poll.top_markets),
            },
            "detection": {
                "global_window": str(self.detection.global_window),
                "market_window": str(self.detection.market_window),
                "push_emit_anomalies": str(self.detection.push_emit_anomalies),
            },
            "log_level": self.log_level,
            "dry_run": str(self.dry_run),
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            # URL has credentials - redact the password
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
