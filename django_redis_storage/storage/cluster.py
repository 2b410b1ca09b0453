"""Key-value storage on a Redis-compatible cluster.

Extends KeyValueStorage with slot-aware batch operations and cluster-wide
destructive operations that tolerate unreachable primaries.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any, override

from django_redis_storage.exceptions import ConfigurationError, ConnectionInterruptedError, _main_exceptions
from django_redis_storage.options import ClusterStorageOptions
from django_redis_storage.pool import ClusterConnectionManager
from django_redis_storage.storage.default import DEFAULT_TTL, KeyValueStorage, ttl_seconds

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from django_redis_storage.types import KeyT, TtlT

logger = logging.getLogger(__name__)


class KeyValueClusterStorage(KeyValueStorage):
    """Storage adapter for a cluster.

    Subclasses must set, in addition to the KeyValueStorage attributes:
    - _cluster_class: The cluster client class (e.g., redis.cluster.RedisCluster)
    - _node_class: The startup node class (e.g., redis.cluster.ClusterNode)
    - _key_slot_func: Function to calculate the hash slot of a key
    """

    _cluster_class: type[Any] | None = None
    _node_class: type[Any] | None = None
    _key_slot_func: Any = None

    _options_class = ClusterStorageOptions

    _manager: ClusterConnectionManager

    @override
    def _create_manager(self, options: Any) -> ClusterConnectionManager:
        if self._cluster_class is None:
            msg = f"{type(self).__name__} has no cluster library; use RedisClusterStorage or ValkeyClusterStorage."
            raise ConfigurationError(msg)
        return ClusterConnectionManager(
            options,
            lib=self._lib,
            cluster_class=self._cluster_class,
            node_class=self._node_class,  # type: ignore[arg-type]
            client_class=self._client_class,  # type: ignore[arg-type]
        )

    @property
    def _cluster(self) -> type[Any]:
        """Get the cluster class, asserting it's configured."""
        assert self._cluster_class is not None, "Subclasses must set _cluster_class"  # noqa: S101
        return self._cluster_class

    def _group_keys_by_slot(self, keys: Iterable[KeyT | bytes]) -> dict[int, list[KeyT | bytes]]:
        """Group keys by their cluster slot."""
        slots: dict[int, list[KeyT | bytes]] = defaultdict(list)
        for key in keys:
            key_bytes = key.encode() if isinstance(key, str) else key
            slot = self._key_slot_func(key_bytes)
            slots[slot].append(key)
        return dict(slots)

    @override
    def _mget(self, client: Any, pkeys: list[str]) -> list[Any]:
        # mget_nonatomic handles slot splitting
        return client.mget_nonatomic(pkeys)

    @override
    def get_total_space(self) -> int:
        """Memory used by all primaries in bytes."""
        client = self.get_client()

        try:
            info = client.info("memory", target_nodes=self._cluster.PRIMARIES)
        except _main_exceptions as e:
            raise ConnectionInterruptedError(connection=client) from e

        if "used_memory" in info:
            return int(info["used_memory"])
        return sum(int(node_info.get("used_memory", 0)) for node_info in info.values())

    @override
    def set_many(self, data: Mapping[KeyT, Any], ttl: TtlT | object = DEFAULT_TTL) -> list[KeyT]:
        """Store many values one key at a time; returns the keys that could not be stored."""
        if not data:
            return []

        handle = self._handle()
        client = handle.client
        ttl = self._resolve_ttl(ttl, "set_many")

        # Invalid keys or values fail the batch before anything is written
        entries = [(key, self._key(key), self._encode(handle, value)) for key, value in data.items()]

        failed = []
        for key, pkey, nvalue in entries:
            try:
                ok = client.setex(pkey, ttl_seconds(ttl), nvalue) if ttl else client.set(pkey, nvalue)
            except _main_exceptions:
                logger.warning("Failed to store key %r", pkey, exc_info=True)
                ok = False
            if not ok:
                failed.append(key)

        if failed:
            logger.warning("Failed to store %d of %d keys", len(failed), len(data))
        return failed

    @override
    def flush(self) -> bool:
        """FLUSHALL every primary, connecting to each directly.

        Unreachable primaries are logged and skipped; the flush succeeds if
        at least one primary was flushed.
        """
        client = self.get_client()

        try:
            primaries = client.get_primaries()
        except _main_exceptions as e:
            raise ConnectionInterruptedError(connection=client) from e

        flushed = 0
        for node in primaries:
            node_client = self._manager.node_client(node.host, node.port)
            try:
                node_client.flushall()
            except _main_exceptions:
                logger.warning("Skipping unreachable primary %s:%s", node.host, node.port, exc_info=True)
            else:
                flushed += 1
            finally:
                node_client.close()

        return flushed > 0

    @override
    def _delete_matching(self, pattern: str) -> bool:
        """KEYS across all primaries, then DEL grouped by slot."""
        client = self.get_client()

        try:
            keys = client.keys(pattern, target_nodes=self._cluster.PRIMARIES)
            if not keys:
                return True
            deleted = sum(client.delete(*slot_keys) for slot_keys in self._group_keys_by_slot(keys).values())
        except _main_exceptions as e:
            raise ConnectionInterruptedError(connection=client) from e

        if deleted != len(keys):
            logger.warning("Deleted %d of %d keys matching %r", deleted, len(keys), pattern)
        return deleted == len(keys)


# Try to import Redis Cluster
try:
    import redis
    from redis.cluster import ClusterNode, RedisCluster
    from redis.cluster import key_slot as redis_key_slot

    class RedisClusterStorage(KeyValueClusterStorage):
        """Cluster storage using redis-py."""

        _lib = redis
        _client_class = redis.Redis  # Direct node connections for flush
        _cluster_class = RedisCluster
        _node_class = ClusterNode
        _key_slot_func = staticmethod(redis_key_slot)

except ImportError:

    class RedisClusterStorage(KeyValueClusterStorage):  # type: ignore[no-redef]
        """Cluster storage (requires redis-py to be installed)."""

        def __init__(self, *args: Any, **kwargs: Any) -> None:
            raise ImportError(
                "RedisClusterStorage requires redis-py to be installed. Install it with: pip install redis",
            )


# Try to import Valkey Cluster
try:
    import valkey
    from valkey.cluster import ClusterNode as ValkeyClusterNode
    from valkey.cluster import ValkeyCluster
    from valkey.cluster import key_slot as valkey_key_slot

    class ValkeyClusterStorage(KeyValueClusterStorage):
        """Cluster storage using valkey-py."""

        _lib = valkey
        _client_class = valkey.Valkey  # Direct node connections for flush
        _cluster_class = ValkeyCluster
        _node_class = ValkeyClusterNode
        _key_slot_func = staticmethod(valkey_key_slot)

except ImportError:

    class ValkeyClusterStorage(KeyValueClusterStorage):  # type: ignore[no-redef]
        """Cluster storage (requires valkey-py with cluster support)."""

        def __init__(self, *args: Any, **kwargs: Any) -> None:
            raise ImportError(
                "ValkeyClusterStorage requires valkey-py with cluster support. Install it with: pip install valkey",
            )


__all__ = [
    "KeyValueClusterStorage",
    "RedisClusterStorage",
    "ValkeyClusterStorage",
]
