"""Django cache backends backed by a storage adapter.

The backend only forwards calls: Django's key making (KEY_PREFIX, VERSION,
KEY_FUNCTION) happens here, namespacing, TTL handling and version quirks
happen in the storage.
"""

from __future__ import annotations

import logging
from functools import cached_property
from typing import TYPE_CHECKING, Any, override

from django.core.cache.backends.base import DEFAULT_TIMEOUT, BaseCache

from django_redis_storage.omit_exception import omit_exception
from django_redis_storage.options import LibraryOption, normalize_lib_options
from django_redis_storage.storage.default import KeyValueStorage, RedisStorage, ValkeyStorage

if TYPE_CHECKING:
    import builtins
    from collections.abc import Mapping

    from django_redis_storage.options import BaseStorageOptions
    from django_redis_storage.types import KeyT, Metadata

# Sentinel value for methods with dynamic return values (e.g., get() returns default arg)
CONNECTION_INTERRUPTED = object()

# Django caches store Python objects; without a configured serializer values are pickled.
DEFAULT_SERIALIZER = "pickle"

# Options read by the backend itself, not passed to the storage.
_BACKEND_ONLY_OPTIONS = frozenset({"close_connection"})


def storage_options(options: Mapping[str, Any]) -> dict[str, Any]:
    """Backend ``OPTIONS`` with the default serializer filled in."""
    options = {key.lower(): value for key, value in options.items()}
    lib_options = normalize_lib_options(options.get("lib_options"))
    if options.get("serializer") is None and LibraryOption.SERIALIZER not in lib_options:
        options["serializer"] = DEFAULT_SERIALIZER
    return options


# =============================================================================
# KeyValueCache - base class extending Django's BaseCache
# =============================================================================


class KeyValueCache(BaseCache):
    """Django cache backend for a single Redis/Valkey server.

    ``LOCATION`` is the server (URI, socket path); ``OPTIONS`` are
    ``StorageOptions`` fields (``namespace``, ``lib_options``,
    ``serializer``, ``ssl_context``, ``ignore_exceptions`` ...).
    """

    # Class attribute - subclasses override this
    _class: builtins.type[KeyValueStorage] = KeyValueStorage

    def __init__(self, server: Any, params: dict[str, Any]) -> None:
        super().__init__(params)
        self._server = server
        self._options = storage_options(params.get("OPTIONS", {}))

        # Exception handling config (from OPTIONS)
        self._ignore_exceptions = self._options.get("ignore_exceptions", False)
        self._log_ignored_exceptions = self._options.get("log_ignored_exceptions", False)
        self._logger = logging.getLogger(__name__) if self._log_ignored_exceptions else None

    @cached_property
    def storage(self) -> KeyValueStorage:
        """The storage adapter (created on first use)."""
        params = {key: value for key, value in self._options.items() if key not in _BACKEND_ONLY_OPTIONS}
        options: BaseStorageOptions = self._class._options_class.from_params(self._server, params)  # type: ignore[attr-defined]
        return self._class(options)

    def get_backend_timeout(self, timeout: float | None = DEFAULT_TIMEOUT) -> int | None:
        """Convert timeout to backend format.

        Negative values are clamped to 0, causing immediate key deletion.
        None keeps the key forever.
        """
        if timeout == DEFAULT_TIMEOUT:
            timeout = self.default_timeout
        return None if timeout is None else max(0, int(timeout))

    def get_client(self) -> Any:
        """Return the underlying redis-py (or valkey-py) client."""
        return self.storage.get_client()

    # =========================================================================
    # Core Cache Operations (Django's BaseCache interface)
    # =========================================================================

    @omit_exception(return_value=False)
    @override
    def add(
        self,
        key: KeyT,
        value: Any,
        timeout: float | None = DEFAULT_TIMEOUT,
        version: int | None = None,
    ) -> bool:
        """Set a value only if the key doesn't exist."""
        key = self.make_and_validate_key(key, version=version)
        timeout = self.get_backend_timeout(timeout)
        if timeout == 0:
            if ret := self.storage.add(key, value, ttl=None):
                self.storage.remove(key)
            return ret
        return self.storage.add(key, value, ttl=timeout)

    @omit_exception(return_value=CONNECTION_INTERRUPTED)
    def _get(self, key: KeyT, default: Any, version: int | None = None) -> Any:
        """Internal get with exception handling."""
        key = self.make_and_validate_key(key, version=version)
        return self.storage.get(key, default)

    @override
    def get(self, key: KeyT, default: Any = None, version: int | None = None) -> Any:
        """Fetch a value from the cache."""
        value = self._get(key, default, version=version)
        if value is CONNECTION_INTERRUPTED:
            return default
        return value

    @omit_exception
    @override
    def set(
        self,
        key: KeyT,
        value: Any,
        timeout: float | None = DEFAULT_TIMEOUT,
        version: int | None = None,
    ) -> None:
        """Set a value in the cache."""
        key = self.make_and_validate_key(key, version=version)
        timeout = self.get_backend_timeout(timeout)
        if timeout == 0:
            self.storage.remove(key)
        else:
            self.storage.set(key, value, ttl=timeout)

    @omit_exception(return_value=False)
    @override
    def touch(self, key: KeyT, timeout: float | None = DEFAULT_TIMEOUT, version: int | None = None) -> bool:
        """Update the timeout on a key."""
        key = self.make_and_validate_key(key, version=version)
        timeout = self.get_backend_timeout(timeout)
        if timeout == 0:
            return self.storage.remove(key)
        return self.storage.touch(key, ttl=timeout)

    @omit_exception(return_value=False)
    @override
    def delete(self, key: KeyT, version: int | None = None) -> bool:
        """Remove a key from the cache."""
        key = self.make_and_validate_key(key, version=version)
        return self.storage.remove(key)

    @omit_exception(return_value={})
    def _get_many(self, keys: list[KeyT], version: int | None = None) -> dict[KeyT, Any]:
        """Internal get_many with exception handling."""
        key_map = {self.make_and_validate_key(key, version=version): key for key in keys}
        ret = self.storage.get_many(key_map.keys())
        return {key_map[k]: v for k, v in ret.items()}

    @override
    def get_many(self, keys: list[KeyT], version: int | None = None) -> dict[KeyT, Any]:  # type: ignore[override]
        """Retrieve many keys."""
        return self._get_many(keys, version=version)

    @omit_exception(return_value=False)
    @override
    def has_key(self, key: KeyT, version: int | None = None) -> bool:
        """Check if a key exists."""
        key = self.make_and_validate_key(key, version=version)
        return self.storage.has(key)

    @omit_exception(return_value=[])
    @override
    def set_many(
        self,
        data: Mapping[KeyT, Any],
        timeout: float | None = DEFAULT_TIMEOUT,
        version: int | None = None,
    ) -> list:
        """Set multiple values; returns the keys that failed to insert."""
        if not data:
            return []
        key_map = {self.make_and_validate_key(key, version=version): key for key in data}
        timeout = self.get_backend_timeout(timeout)
        if timeout == 0:
            for made_key in key_map:
                self.storage.remove(made_key)
            return []
        failed = self.storage.set_many({made_key: data[key] for made_key, key in key_map.items()}, ttl=timeout)
        return [key_map[made_key] for made_key in failed]

    @omit_exception(return_value=0)
    @override
    def delete_many(self, keys: list[KeyT], version: int | None = None) -> int:
        """Delete multiple keys from the cache."""
        keys = list(keys)  # Convert generator to list
        safe_keys = [self.make_and_validate_key(key, version=version) for key in keys]
        return sum(self.storage.remove(key) for key in safe_keys)

    @omit_exception(return_value=False)
    @override
    def clear(self) -> bool:
        """Remove this cache's keys.

        With a ``namespace`` option only that namespace is cleared; without
        one the whole database (every primary, on a cluster) is flushed.
        """
        namespace = self.storage.options.namespace
        if namespace:
            return self.storage.clear_by_namespace(namespace)
        return self.storage.flush()

    @override
    def close(self, **kwargs: Any) -> None:
        """Keep the connection for the next request unless ``close_connection`` is set."""
        if self._options.get("close_connection", False) and "storage" in self.__dict__:
            self.storage.close()

    # =========================================================================
    # Extended Methods (beyond Django's BaseCache)
    # =========================================================================

    def get_metadata(self, key: KeyT, version: int | None = None) -> Metadata | None:
        """Remaining time to live of a key; None if it does not exist."""
        key = self.make_and_validate_key(key, version=version)
        return self.storage.get_metadata(key)

    def ttl(self, key: KeyT, version: int | None = None) -> int | None:
        """Seconds until the key expires; -1 if it never expires, None if it does not exist."""
        metadata = self.get_metadata(key, version=version)
        return None if metadata is None else metadata.remaining_time_to_live

    def clear_by_prefix(self, prefix: str) -> bool:
        """Remove all keys of this cache's namespace starting with ``prefix`` (a made key prefix)."""
        return self.storage.clear_by_prefix(prefix)

    def flush_db(self) -> bool:
        """Flush the entire database, regardless of namespace."""
        return self.storage.flush()


# =============================================================================
# RedisCache / ValkeyCache - concrete implementations
# =============================================================================


class RedisCache(KeyValueCache):
    """Django cache backend using redis-py."""

    _class = RedisStorage


class ValkeyCache(KeyValueCache):
    """Django cache backend using valkey-py."""

    _class = ValkeyStorage


__all__ = [
    "KeyValueCache",
    "RedisCache",
    "ValkeyCache",
]
