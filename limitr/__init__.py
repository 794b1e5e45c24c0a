"""limitr - fixed-window rate limiting for Starlette/FastAPI handlers."""

from limitr.adapters.notify.webhook import WebhookNotifier
from limitr.adapters.storage import (
    KVStorage,
    MemoryStorage,
    MongoStorage,
    PostgresStorage,
    RedisStorage,
    StorageAdapter,
    UpstashStorage,
    create_storage,
)
from limitr.core.errors import ConfigurationAppError, MalformedReplyAppError, StorageAppError
from limitr.core.pipeline import RateLimiter, with_rate_limit
from limitr.core.resolver import resolve_options
from limitr.schemas.options import (
    EdgeConfig,
    MongoConfig,
    PostgresConfig,
    RateLimitOptions,
    RedisConfig,
    UpstashConfig,
    WebhookConfig,
)
from limitr.schemas.usage import RateLimitStrategy, RateLimitUsage

__all__ = [
    "ConfigurationAppError",
    "EdgeConfig",
    "KVStorage",
    "MalformedReplyAppError",
    "MemoryStorage",
    "MongoConfig",
    "MongoStorage",
    "PostgresConfig",
    "PostgresStorage",
    "RateLimitOptions",
    "RateLimitStrategy",
    "RateLimitUsage",
    "RateLimiter",
    "RedisConfig",
    "RedisStorage",
    "StorageAdapter",
    "StorageAppError",
    "UpstashConfig",
    "UpstashStorage",
    "WebhookConfig",
    "WebhookNotifier",
    "create_storage",
    "resolve_options",
    "with_rate_limit",
]
