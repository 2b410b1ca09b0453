"""Cluster cache backends for Redis-compatible backends."""

from __future__ import annotations

from django_redis_storage.cache.default import KeyValueCache
from django_redis_storage.storage.cluster import KeyValueClusterStorage, RedisClusterStorage, ValkeyClusterStorage


class KeyValueClusterCache(KeyValueCache):
    """Cluster cache backend base class.

    ``LOCATION`` holds the seed nodes (``"host:port,host:port"`` or a list);
    leave it empty and set the ``name`` option to use a cluster configured in
    ``settings.REDIS_STORAGE_CLUSTERS``. Subclasses set `_class` to their
    specific cluster storage.
    """

    _class: type[KeyValueClusterStorage] = KeyValueClusterStorage


class RedisClusterCache(KeyValueClusterCache):
    """Django cache backend for Redis Cluster mode.

    Provides automatic sharding across multiple Redis nodes using hash slots.
    """

    _class = RedisClusterStorage


class ValkeyClusterCache(KeyValueClusterCache):
    """Django cache backend for Valkey Cluster mode.

    Provides automatic sharding across multiple Valkey nodes using hash slots.
    """

    _class = ValkeyClusterStorage


__all__ = [
    "KeyValueClusterCache",
    "RedisClusterCache",
    "ValkeyClusterCache",
]
