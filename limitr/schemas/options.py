"""Pydantic schemas for rate limiter configuration.

``RateLimitOptions`` is the effective configuration of one pipeline. Callers
may pass it (only explicitly set fields take part in merging) or a plain
mapping with the same keys. Backend connection settings are nested models so
that route overrides can adjust them key by key.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Literal

from pydantic import BaseModel, ConfigDict, Field

from limitr.schemas.usage import RateLimitStrategy

StorageKind = Literal["memory", "redis", "mongodb", "postgresql", "edge"]


class RedisConfig(BaseModel):
    """Connection settings for an internally created Redis client."""

    url: str | None = Field(
        default=None,
        description="Full redis:// or rediss:// URL. Takes precedence over host/port.",
    )
    host: str = Field(default="127.0.0.1", description="Redis host.")
    port: int = Field(default=6379, description="Redis port.")
    password: str | None = Field(default=None, description="Redis password.")
    db: int = Field(default=0, description="Redis logical database index.")
    tls: bool = Field(default=False, description="Connect with TLS.")

    model_config = ConfigDict(extra="forbid")


class MongoConfig(BaseModel):
    """Connection settings for an internally created MongoDB client."""

    uri: str | None = Field(
        default=None,
        description="MongoDB connection string. Built from host/port when omitted.",
    )
    host: str = Field(default="127.0.0.1", description="MongoDB host.")
    port: int = Field(default=27017, description="MongoDB port.")
    db: str = Field(default="limitr", description="Database holding the counters.")
    collection: str = Field(default="rate_limits", description="Counter collection.")
    options: Dict[str, Any] = Field(
        default_factory=dict,
        description="Extra keyword arguments for the MongoDB client.",
    )

    model_config = ConfigDict(extra="forbid")


class PostgresConfig(BaseModel):
    """Connection settings for an internally created SQLAlchemy engine."""

    connection_string: str | None = Field(
        default=None,
        description="Database URL. postgresql:// URLs are switched to the asyncpg driver.",
    )
    host: str = Field(default="127.0.0.1", description="PostgreSQL host.")
    port: int = Field(default=5432, description="PostgreSQL port.")
    user: str | None = Field(default=None, description="Database user.")
    password: str | None = Field(default=None, description="Database password.")
    database: str | None = Field(default=None, description="Database name.")
    max: int | None = Field(default=None, description="Connection pool size.", ge=1)
    auto_create_table: bool = Field(
        default=True,
        description="Create the counter table and index on first use when missing.",
    )

    model_config = ConfigDict(extra="forbid")


class UpstashConfig(BaseModel):
    """Upstash REST endpoint settings."""

    url: str = Field(..., description="REST URL, e.g. https://us1-xxxxx.upstash.io")
    token: str | None = Field(default=None, description="REST bearer token.")
    timeout_seconds: float = Field(default=5.0, description="HTTP timeout in seconds.")

    model_config = ConfigDict(extra="forbid")


class EdgeConfig(BaseModel):
    """Edge storage selector: Upstash REST or a Cloudflare-KV-like namespace."""

    kind: Literal["upstash", "cloudflare"] = Field(..., description="Edge backend kind.")
    upstash: UpstashConfig | None = Field(
        default=None, description="Required when kind is 'upstash'."
    )
    kv: Any = Field(
        default=None,
        description="Namespace object with async get/put/delete (and optional list).",
    )

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)


class WebhookConfig(BaseModel):
    """Where and how to send limit-exceeded notifications."""

    url: str = Field(..., description="Notification endpoint.")
    method: str = Field(default="POST", description="HTTP method.")
    headers: Dict[str, str] = Field(
        default_factory=dict, description="Extra request headers."
    )
    payload: Callable[..., Any] | None = Field(
        default=None,
        description="Callable(request, usage) returning the JSON body to send.",
    )
    timeout_seconds: float = Field(default=5.0, description="HTTP timeout in seconds.")

    model_config = ConfigDict(extra="forbid")


class RateLimitOptions(BaseModel):
    """Effective configuration of a rate limiting pipeline."""

    limit: int = Field(default=100, description="Requests allowed per window.", ge=0)
    window_ms: int = Field(default=60_000, description="Window length in milliseconds.", ge=1)
    strategy: RateLimitStrategy = Field(
        default=RateLimitStrategy.FIXED_WINDOW,
        description="Counting strategy tag. Storage always counts fixed windows.",
    )

    storage: StorageKind = Field(default="memory", description="Storage backend kind.")
    redis_config: RedisConfig | None = None
    redis_client: Any = None
    mongo_config: MongoConfig | None = None
    mongo_client: Any = None
    postgres_config: PostgresConfig | None = None
    postgres_client: Any = None
    edge_config: EdgeConfig | None = None

    webhook: WebhookConfig | None = None
    on_limit_reached: Callable[..., Any] | None = Field(
        default=None, description="Callable(request, usage) run when a request is denied."
    )

    handler: Callable[..., Any] | None = Field(
        default=None, description="Callable(request, usage) producing the deny response."
    )
    key_generator: Callable[..., Any] | None = Field(
        default=None, description="Callable(request) returning the counter key."
    )
    get_limit_for_request: Callable[..., Any] | None = Field(
        default=None, description="Callable(request) returning the limit to enforce."
    )
    skip: Callable[..., Any] | None = Field(
        default=None, description="Callable(request) returning True to bypass limiting."
    )

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)
