"""Cache module - provides cache backend classes.

These are the classes to use as BACKEND in Django's CACHES setting.
"""

from django_redis_storage.cache.cluster import (
    KeyValueClusterCache,
    RedisClusterCache,
    ValkeyClusterCache,
)
from django_redis_storage.cache.default import (
    KeyValueCache,
    RedisCache,
    ValkeyCache,
)

__all__ = [
    "KeyValueCache",
    "KeyValueClusterCache",
    "RedisCache",
    "RedisClusterCache",
    "ValkeyCache",
    "ValkeyClusterCache",
]
