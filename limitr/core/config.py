"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from limitr.schemas.options import (
    EdgeConfig,
    MongoConfig,
    PostgresConfig,
    RateLimitOptions,
    RedisConfig,
    StorageKind,
    UpstashConfig,
    WebhookConfig,
)
from limitr.schemas.usage import RateLimitStrategy


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level name")
    format: Literal["json", "plain"] = Field(
        "json",
        description="json for machine-friendly lines, plain for local reading",
    )
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (default logs/app.log)",
    )
    max_bytes: int = Field(
        0,
        description="Rotate the log file at this size; 0 disables rotation",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration for the bundled service."""

    api_key_required: bool = Field(
        True,
        description="Whether the operator endpoints require an API key",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid API keys for the operator endpoints",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Rate limiting configuration for the bundled application."""

    enabled: bool = Field(
        True,
        description="Enable the rate limiting middleware",
    )
    limit: int = Field(
        100,
        description="Maximum number of requests allowed per window (per client and path)",
        ge=0,
    )
    window_ms: int = Field(
        60_000,
        description="Rate limit window size in milliseconds",
        ge=1,
    )
    strategy: RateLimitStrategy = Field(
        RateLimitStrategy.FIXED_WINDOW,
        description="Counting strategy tag (only fixed-window is enforced)",
    )
    storage: StorageKind = Field(
        "memory",
        description="Storage backend: memory, redis, mongodb, postgresql, edge",
    )
    redis_url: str | None = Field(None, description="redis:// URL for redis storage")
    mongo_uri: str | None = Field(None, description="MongoDB URI for mongodb storage")
    mongo_db: str = Field("limitr", description="MongoDB database name")
    mongo_collection: str = Field("rate_limits", description="MongoDB collection name")
    postgres_url: str | None = Field(None, description="Database URL for postgresql storage")
    upstash_url: str | None = Field(None, description="Upstash REST URL for edge storage")
    upstash_token: str | None = Field(None, description="Upstash REST token")
    webhook_url: str | None = Field(
        None,
        description="URL notified when a request exceeds its limit",
    )
    exempt_paths: list[str] = Field(
        default_factory=lambda: ["/health"],
        description="Paths never counted (JSON list in the environment)",
    )

    model_config = SettingsConfigDict(
        env_prefix="LIMITR_",
        case_sensitive=False,
    )

    def to_options(self) -> RateLimitOptions:
        """Translate settings into pipeline options.

        Only the connection settings of the selected storage are passed on.
        Missing ones are reported by the storage factory at startup.
        """
        values: dict[str, Any] = {
            "limit": self.limit,
            "window_ms": self.window_ms,
            "strategy": self.strategy,
            "storage": self.storage,
        }

        if self.storage == "redis" and self.redis_url:
            values["redis_config"] = RedisConfig(url=self.redis_url)
        elif self.storage == "mongodb" and self.mongo_uri:
            values["mongo_config"] = MongoConfig(
                uri=self.mongo_uri,
                db=self.mongo_db,
                collection=self.mongo_collection,
            )
        elif self.storage == "postgresql" and self.postgres_url:
            values["postgres_config"] = PostgresConfig(connection_string=self.postgres_url)
        elif self.storage == "edge" and self.upstash_url:
            values["edge_config"] = EdgeConfig(
                kind="upstash",
                upstash=UpstashConfig(url=self.upstash_url, token=self.upstash_token),
            )

        if self.webhook_url:
            values["webhook"] = WebhookConfig(url=self.webhook_url)

        exempt = frozenset(self.exempt_paths)
        if exempt:
            values["skip"] = lambda request: request.url.path in exempt

        return RateLimitOptions(**values)


def _build_log_settings() -> LogSettings:
    return LogSettings()  # type: ignore[call-arg]


def _build_app_settings() -> AppSettings:
    return AppSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> RateLimitSettings:
    """Build rate limit settings from environment.

    Nested settings are created via default_factory so environment loading
    happens for each group with its own prefix.
    """

    return RateLimitSettings()  # type: ignore[call-arg]


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if a setting is invalid.

    Environments:
    - development: Local development
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=_build_log_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
