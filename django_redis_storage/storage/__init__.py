# Storages (do actual Redis operations)
from django_redis_storage.storage.cluster import (
    KeyValueClusterStorage,
    RedisClusterStorage,
    ValkeyClusterStorage,
)
from django_redis_storage.storage.default import (
    DEFAULT_TTL,
    KeyValueStorage,
    RedisStorage,
    ValkeyStorage,
)

__all__ = [
    "DEFAULT_TTL",
    "KeyValueClusterStorage",
    "KeyValueStorage",
    "RedisClusterStorage",
    "RedisStorage",
    "ValkeyClusterStorage",
    "ValkeyStorage",
]
