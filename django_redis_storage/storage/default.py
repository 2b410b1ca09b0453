"""Key-value storage on a single Redis-compatible server.

Architecture:
- KeyValueStorage: Base class with all logic, library-agnostic
- RedisStorage: Sets class attributes for redis-py
- ValkeyStorage: Sets class attributes for valkey-py

A logical operation maps the key through the Namespacer, takes the live
handle from the connection manager, issues the version-correct command and
interprets the reply with the TTL strategy and the existence check. The
capability descriptor of the connected server gates TTL-bearing writes.
"""

from __future__ import annotations

import logging
import math
import numbers
from typing import TYPE_CHECKING, Any, Final

from django_redis_storage.capabilities import CapabilityDescriptor, ServerVersion, resolve_capabilities
from django_redis_storage.exceptions import (
    ConfigurationError,
    ConnectionInterruptedError,
    UnsupportedOperationError,
    _main_exceptions,
)
from django_redis_storage.existence import is_absent
from django_redis_storage.namespace import Namespacer
from django_redis_storage.options import StorageOptions
from django_redis_storage.pool import ConnectionHandle, ConnectionManager
from django_redis_storage.ttl import ttl_strategy_for
from django_redis_storage.types import Metadata

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from django_redis_storage.options import BaseStorageOptions
    from django_redis_storage.types import KeyT, TtlT

logger = logging.getLogger(__name__)

# Use the configured `ttl` option.
DEFAULT_TTL: Final[Any] = object()

# Oldest server version with EXPIRE/SETEX.
TTL_REQUIRED_VERSION: Final = "2.0"


def to_raw(value: Any) -> str | bytes:
    """Pre-encode a value for raw (serializer-less) storage.

    Redis only stores strings, so scalars are stored as their string form:
    True as "1", False and None as "", numbers as decimal text. Containers
    cannot be represented without a serializer.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else ""
    if isinstance(value, (str, bytes)):
        return value
    if isinstance(value, numbers.Number):
        return str(value)
    msg = f"Cannot store a {type(value).__name__} without a serializer; configure one to store structured values."
    raise TypeError(msg)


def ttl_seconds(ttl: float) -> int:
    """Whole seconds for EXPIRE/SETEX; fractions round up so a TTL never becomes 0."""
    return max(1, math.ceil(ttl))


# =============================================================================
# KeyValueStorage - base class (library-agnostic)
# =============================================================================


class KeyValueStorage:
    """Storage adapter for one Redis-compatible server.

    Subclasses must set:
    - _lib: The library module (e.g., redis or valkey)
    - _client_class: The client class (e.g., redis.Redis)
    - _pool_class: The connection pool class

    Example:
        storage = RedisStorage(server="redis://localhost:6379/0", namespace="app")
        storage.set("greeting", "hello", ttl=60)
        storage.get("greeting")  # "hello"
    """

    # Class attributes - subclasses override these
    _lib: Any = None
    _client_class: type | None = None
    _pool_class: type | None = None

    _options_class: type[BaseStorageOptions] = StorageOptions

    def __init__(self, options: BaseStorageOptions | None = None, **kwargs: Any) -> None:
        if options is None:
            options = self._options_class(**kwargs)
        elif kwargs:
            options = options.replace(**kwargs)
        self._check_options(options)

        self._options = options
        self._namespacer = Namespacer(options.namespace, options.namespace_separator)
        self._manager = self._create_manager(options)
        self._capabilities: tuple[tuple[ServerVersion, bool], CapabilityDescriptor] | None = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._manager.describe()} namespace={self._options.namespace!r}>"

    def _check_options(self, options: BaseStorageOptions) -> None:
        if not isinstance(options, self._options_class):
            msg = f"{type(self).__name__} expects {self._options_class.__name__}; {type(options).__name__} given."
            raise ConfigurationError(msg)

    def _create_manager(self, options: Any) -> ConnectionManager:
        if self._lib is None:
            msg = f"{type(self).__name__} has no client library; use RedisStorage or ValkeyStorage."
            raise ConfigurationError(msg)
        return ConnectionManager(
            options,
            lib=self._lib,
            client_class=self._client_class,  # type: ignore[arg-type]
            pool_class=self._pool_class,  # type: ignore[arg-type]
        )

    # =========================================================================
    # Configuration and connection
    # =========================================================================

    @property
    def options(self) -> BaseStorageOptions:
        return self._options

    def set_options(self, options: BaseStorageOptions | None = None, **changes: Any) -> None:
        """Reconfigure the storage.

        Changes to anything a connection depends on reconnect on next use;
        namespace, separator and ttl changes never do.
        """
        new = options if options is not None else self._options
        if changes:
            new = new.replace(**changes)
        self._check_options(new)

        if self._manager.configure(new):
            logger.debug("Connection options of %r changed; reconnecting on next use", self)
        self._namespacer.configure(new.namespace, new.namespace_separator)
        self._capabilities = None
        self._options = new

    def _handle(self) -> ConnectionHandle:
        return self._manager.acquire()

    def get_client(self) -> Any:
        """Return the underlying redis-py (or valkey-py) client."""
        return self._handle().client

    def get_redis_version(self) -> str:
        return str(self._handle().version)

    def get_persistent_id(self) -> str | None:
        return self._manager.persistent_id

    def get_lib_option(self, option: int | str, default: Any = None) -> Any:
        return self._manager.get_lib_option(option, default)

    @property
    def has_serialization_support(self) -> bool:
        return self._options.has_serialization_support

    def get_capabilities(self) -> CapabilityDescriptor:
        version = self._handle().version
        memo_key = (version, self.has_serialization_support)
        if self._capabilities is None or self._capabilities[0] != memo_key:
            self._capabilities = (memo_key, resolve_capabilities(version, self.has_serialization_support))
        return self._capabilities[1]

    def close(self) -> None:
        self._manager.close()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _key(self, key: KeyT) -> str:
        if not isinstance(key, str):
            raise TypeError(f"Key must be a string; {type(key).__name__} given.")
        if key == "":
            raise ValueError("An empty key isn't allowed.")
        physical = self._namespacer.key(key)
        max_length = self.get_capabilities().max_key_length
        # Server limits count bytes, not characters
        if len(physical.encode()) > max_length:
            raise ValueError(f"Key '{physical[:64]}...' is longer than the {max_length} bytes allowed.")
        return physical

    def _resolve_ttl(self, ttl: TtlT | object, operation: str) -> float:
        """Return the TTL in seconds to write with (0 for none), rejecting it if unsupported."""
        if ttl is DEFAULT_TTL:
            ttl = self._options.ttl
        if ttl is None:
            return 0
        if isinstance(ttl, bool) or not isinstance(ttl, (int, float)) or ttl < 0:
            raise ValueError(f"TTL must be a non-negative number of seconds; {ttl!r} given.")
        if ttl and not self.get_capabilities().ttl_supported:
            raise UnsupportedOperationError(operation, self._manager.describe(), required=TTL_REQUIRED_VERSION)
        return ttl

    def _encode(self, handle: ConnectionHandle, value: Any) -> bytes | str:
        if not handle.serialization_active:
            value = to_raw(value)
        return handle.encode(value)

    def _exists(self, client: Any) -> Any:
        return lambda key: bool(client.exists(key))

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, key: KeyT, default: Any = None) -> Any:
        """Fetch a value; ``default`` if the key does not exist."""
        handle = self._handle()
        client = handle.client
        pkey = self._key(key)

        try:
            raw = client.get(pkey)
            if is_absent(raw, pkey, handle.serialization_active, self._exists(client)):
                return default
        except _main_exceptions as e:
            raise ConnectionInterruptedError(connection=client) from e

        return None if raw is None else handle.decode(raw)

    def get_many(self, keys: Iterable[KeyT]) -> dict[KeyT, Any]:
        """Fetch many values; missing keys are left out of the result."""
        keys = list(keys)
        if not keys:
            return {}

        handle = self._handle()
        client = handle.client
        pkeys = [self._key(key) for key in keys]

        try:
            results = self._mget(client, pkeys)
            exists = self._exists(client)
            return {
                key: None if raw is None else handle.decode(raw)
                for key, pkey, raw in zip(keys, pkeys, results, strict=True)
                if not is_absent(raw, pkey, handle.serialization_active, exists)
            }
        except _main_exceptions as e:
            raise ConnectionInterruptedError(connection=client) from e

    def _mget(self, client: Any, pkeys: list[str]) -> list[Any]:
        return client.mget(pkeys)

    def has(self, key: KeyT) -> bool:
        """Check if a key exists."""
        client = self.get_client()
        pkey = self._key(key)

        try:
            return bool(client.exists(pkey))
        except _main_exceptions as e:
            raise ConnectionInterruptedError(connection=client) from e

    def get_metadata(self, key: KeyT) -> Metadata | None:
        """Remaining time to live of a key, or None if it does not exist."""
        handle = self._handle()
        client = handle.client
        pkey = self._key(key)
        strategy = ttl_strategy_for(handle.version)

        try:
            remaining = strategy.fetch(client, pkey, lambda: bool(client.exists(pkey)))
        except _main_exceptions as e:
            raise ConnectionInterruptedError(connection=client) from e

        if remaining is None:
            return None
        return Metadata(remaining_time_to_live=remaining)

    def get_total_space(self) -> int:
        """Memory used by the server in bytes (INFO ``used_memory``)."""
        client = self.get_client()

        try:
            info = client.info("memory")
        except _main_exceptions as e:
            raise ConnectionInterruptedError(connection=client) from e

        return int(info["used_memory"])

    # =========================================================================
    # Writes
    # =========================================================================

    def set(self, key: KeyT, value: Any, ttl: TtlT | object = DEFAULT_TTL) -> bool:
        """Store a value, replacing any existing one."""
        handle = self._handle()
        client = handle.client
        pkey = self._key(key)
        ttl = self._resolve_ttl(ttl, "set")
        nvalue = self._encode(handle, value)

        try:
            if ttl:
                return bool(client.setex(pkey, ttl_seconds(ttl), nvalue))
            return bool(client.set(pkey, nvalue))
        except _main_exceptions as e:
            raise ConnectionInterruptedError(connection=client) from e

    def set_many(self, data: Mapping[KeyT, Any], ttl: TtlT | object = DEFAULT_TTL) -> list[KeyT]:
        """Store many values; returns the keys that could not be stored."""
        if not data:
            return []

        handle = self._handle()
        client = handle.client
        ttl = self._resolve_ttl(ttl, "set_many")
        prepared = {self._key(key): self._encode(handle, value) for key, value in data.items()}

        try:
            if ttl:
                seconds = ttl_seconds(ttl)
                pipe = client.pipeline(transaction=True)
                for pkey, nvalue in prepared.items():
                    pipe.setex(pkey, seconds, nvalue)
                results = pipe.execute()
                failed = [key for key, ok in zip(data, results, strict=True) if not ok]
            else:
                failed = [] if client.mset(prepared) else list(data)
        except _main_exceptions as e:
            raise ConnectionInterruptedError(connection=client) from e

        if failed:
            logger.warning("Failed to store %d of %d keys", len(failed), len(prepared))
        return failed

    def add(self, key: KeyT, value: Any, ttl: TtlT | object = DEFAULT_TTL) -> bool:
        """Store a value only if the key does not exist yet."""
        handle = self._handle()
        client = handle.client
        pkey = self._key(key)
        ttl = self._resolve_ttl(ttl, "add")
        nvalue = self._encode(handle, value)

        try:
            if not client.setnx(pkey, nvalue):
                return False
            if ttl:
                client.expire(pkey, ttl_seconds(ttl))
        except _main_exceptions as e:
            raise ConnectionInterruptedError(connection=client) from e
        return True

    def touch(self, key: KeyT, ttl: TtlT | object = DEFAULT_TTL) -> bool:
        """Reset the expiry of an existing key; without a TTL the key is made persistent."""
        client = self.get_client()
        pkey = self._key(key)
        ttl = self._resolve_ttl(ttl, "touch")

        try:
            if ttl:
                return bool(client.expire(pkey, ttl_seconds(ttl)))
            if self.get_capabilities().ttl_supported:
                client.persist(pkey)
            return bool(client.exists(pkey))
        except _main_exceptions as e:
            raise ConnectionInterruptedError(connection=client) from e

    def remove(self, key: KeyT) -> bool:
        """Remove a key; False if it did not exist."""
        client = self.get_client()
        pkey = self._key(key)

        try:
            return bool(client.delete(pkey))
        except _main_exceptions as e:
            raise ConnectionInterruptedError(connection=client) from e

    # =========================================================================
    # Clearing
    # =========================================================================

    def flush(self) -> bool:
        """Remove every key of the selected database."""
        client = self.get_client()

        try:
            return bool(client.flushdb())
        except _main_exceptions as e:
            raise ConnectionInterruptedError(connection=client) from e

    def clear_by_namespace(self, namespace: str) -> bool:
        """Remove every key stored under ``namespace``."""
        if not namespace:
            raise ValueError("No namespace given.")
        return self._delete_matching(self._namespacer.namespace_pattern(namespace))

    def clear_by_prefix(self, prefix: str) -> bool:
        """Remove every key of the current namespace starting with ``prefix``."""
        if not prefix:
            raise ValueError("No prefix given.")
        return self._delete_matching(self._namespacer.prefix_pattern(prefix))

    def _delete_matching(self, pattern: str) -> bool:
        client = self.get_client()

        try:
            keys = client.keys(pattern)
            if not keys:
                return True
            deleted = client.delete(*keys)
        except _main_exceptions as e:
            raise ConnectionInterruptedError(connection=client) from e

        if deleted != len(keys):
            logger.warning("Deleted %d of %d keys matching %r", deleted, len(keys), pattern)
        return deleted == len(keys)


# =============================================================================
# RedisStorage - concrete implementation for redis-py
# =============================================================================

try:
    import redis

    class RedisStorage(KeyValueStorage):
        """Storage using redis-py."""

        _lib = redis
        _client_class = redis.Redis
        _pool_class = redis.ConnectionPool

except ImportError:

    class RedisStorage(KeyValueStorage):  # type: ignore[no-redef]
        """Storage using redis-py (requires redis-py)."""

        def __init__(self, *args: Any, **kwargs: Any) -> None:
            msg = "RedisStorage requires redis-py. Install with: pip install redis"
            raise ImportError(msg)


# =============================================================================
# ValkeyStorage - concrete implementation for valkey-py
# =============================================================================

try:
    import valkey

    class ValkeyStorage(KeyValueStorage):
        """Storage using valkey-py."""

        _lib = valkey
        _client_class = valkey.Valkey
        _pool_class = valkey.ConnectionPool

except ImportError:

    class ValkeyStorage(KeyValueStorage):  # type: ignore[no-redef]
        """Storage using valkey-py (requires valkey-py)."""

        def __init__(self, *args: Any, **kwargs: Any) -> None:
            raise ImportError("ValkeyStorage requires valkey-py. Install with: pip install valkey")


__all__ = [
    "DEFAULT_TTL",
    "KeyValueStorage",
    "RedisStorage",
    "ValkeyStorage",
    "to_raw",
]
