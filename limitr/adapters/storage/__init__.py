"""Counter storage adapters - one fixed-window contract over several backends."""

from limitr.adapters.storage.base import KEY_PREFIX, StorageAdapter
from limitr.adapters.storage.edge import KVNamespace, KVStorage, UpstashStorage
from limitr.adapters.storage.factory import create_storage
from limitr.adapters.storage.in_memory import MemoryStorage
from limitr.adapters.storage.mongodb import MongoStorage
from limitr.adapters.storage.postgresql import PostgresStorage
from limitr.adapters.storage.redis_storage import RedisStorage

__all__ = [
    "KEY_PREFIX",
    "KVNamespace",
    "KVStorage",
    "MemoryStorage",
    "MongoStorage",
    "PostgresStorage",
    "RedisStorage",
    "StorageAdapter",
    "UpstashStorage",
    "create_storage",
]
