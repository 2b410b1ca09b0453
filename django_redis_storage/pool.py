"""Connection management for single-server and cluster storages.

A storage owns one manager. ``acquire()`` returns a cached, live
``ConnectionHandle`` for as long as the connection-relevant part of the
options stays the same; any change there invalidates the handle and the next
``acquire()`` reconnects. Connections are established eagerly (a PING right
after setup) so wrong addresses, credentials and databases surface as
``ConnectionFailedError`` instead of failing the first real command.

Persistent connection pools are shared process-wide by persistent id, and
persistent cluster clients by seed list, the same way pools are cached
process-globally by URL elsewhere in Django cache backends.
"""

from __future__ import annotations

import logging
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, ClassVar

from django_redis_storage.capabilities import UNKNOWN, ServerVersion
from django_redis_storage.compat import create_compressor, create_serializer
from django_redis_storage.exceptions import (
    CompressorError,
    ConfigurationError,
    ConnectionFailedError,
    _main_exceptions,
)
from django_redis_storage.options import LibraryOption
from django_redis_storage.ssl import pinned_connection_class
from django_redis_storage.types import ValueEncoding

if TYPE_CHECKING:
    from types import ModuleType

    from django_redis_storage.options import BaseStorageOptions, ClusterStorageOptions, StorageOptions

logger = logging.getLogger(__name__)

# Errors raised while connecting, besides the library's own.
_connect_exceptions = (*_main_exceptions, OSError)

# Library options a connection pool understands; the rest only live on the handle.
_CONNECTION_KWARG_OPTIONS = {
    LibraryOption.READ_TIMEOUT: "socket_timeout",
    LibraryOption.TCP_KEEPALIVE: "socket_keepalive",
}

_RETRY_OPTIONS = frozenset(
    {
        LibraryOption.MAX_RETRIES,
        LibraryOption.BACKOFF_ALGORITHM,
        LibraryOption.BACKOFF_BASE,
        LibraryOption.BACKOFF_CAP,
    },
)

_CODEC_OPTIONS = frozenset({LibraryOption.SERIALIZER, LibraryOption.COMPRESSION, LibraryOption.COMPRESSION_LEVEL})

# Backoff algorithm ids as used by the library option, by name.
_BACKOFF_ALGORITHMS = {
    0: "default",
    1: "decorrelated_jitter",
    2: "full_jitter",
    3: "equal_jitter",
    4: "exponential",
    6: "constant",
}


class ConnectionState(Enum):
    UNINITIALIZED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    INVALIDATED = auto()


def _read_timeout(value: Any) -> float | None:
    """Library read timeouts below zero mean "wait forever"."""
    if value is None:
        return None
    value = float(value)
    return None if value < 0 else value


def _backoff(lib: ModuleType, algorithm: Any, base_ms: Any, cap_ms: Any) -> Any:
    """Build a library backoff object; base and cap are given in milliseconds."""
    backoff = lib.backoff
    if isinstance(algorithm, int) and not isinstance(algorithm, bool):
        if algorithm not in _BACKOFF_ALGORITHMS:
            raise ConfigurationError(f"Unsupported backoff algorithm {algorithm}.")
        algorithm = _BACKOFF_ALGORITHMS[algorithm]
    name = str(algorithm or "default").lower().replace("-", "_")

    base = backoff.DEFAULT_BASE if base_ms is None else base_ms / 1000
    cap = backoff.DEFAULT_CAP if cap_ms is None else cap_ms / 1000

    if name == "default":
        return backoff.default_backoff()
    if name == "none":
        return backoff.NoBackoff()
    if name == "constant":
        return backoff.ConstantBackoff(base)
    classes = {
        "exponential": backoff.ExponentialBackoff,
        "full_jitter": backoff.FullJitterBackoff,
        "equal_jitter": backoff.EqualJitterBackoff,
        "decorrelated_jitter": backoff.DecorrelatedJitterBackoff,
    }
    if name not in classes:
        raise ConfigurationError(f"Unsupported backoff algorithm '{algorithm}'.")
    return classes[name](cap=cap, base=base)


# =============================================================================
# ConnectionHandle
# =============================================================================


class ConnectionHandle:
    """A live client together with the codecs and options it was set up with.

    ``set_option`` applies one library option: pool options (read timeout,
    keepalive) change the kwargs new connections are created with, retry
    options install a new ``Retry`` on the client, codec options rebuild the
    serializer or compressor. Other ids are stored so ``get_option`` returns
    them, but have no effect on a redis-py client.
    """

    def __init__(
        self,
        client: Any,
        options: BaseStorageOptions,
        lib: ModuleType,
        *,
        version: ServerVersion = UNKNOWN,
        connection_kwargs: dict[str, Any] | None = None,
        shared: bool = False,
    ) -> None:
        self.client = client
        self.options = options
        self.lib = lib
        self.version = version
        # None when the connection kwargs were fixed at construction (clusters)
        self.connection_kwargs = connection_kwargs
        # Shared handles belong to the process-wide registry and stay open on close()
        self.shared = shared
        self._lib_options: dict[int, Any] = {}
        self.serializer: Any = None
        self.compressor: Any = None
        self._build_codecs()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} client={self.client!r} version={self.version}>"

    # =========================================================================
    # Library options
    # =========================================================================

    def set_option(self, option: int | str, value: Any) -> None:
        option = LibraryOption.resolve(option)
        self._lib_options[option] = value

        if option in _CONNECTION_KWARG_OPTIONS:
            if self.connection_kwargs is not None:
                kwarg = _CONNECTION_KWARG_OPTIONS[option]
                if option == LibraryOption.READ_TIMEOUT:
                    value = _read_timeout(value)
                else:
                    value = bool(value)
                self.connection_kwargs[kwarg] = value
        elif option in _RETRY_OPTIONS:
            self._apply_retry()
        elif option in _CODEC_OPTIONS:
            self._build_codecs()
        else:
            logger.debug("Library option %r stored without effect on %s", option, type(self.client).__name__)

    def get_option(self, option: int | str, default: Any = None) -> Any:
        return self._lib_options.get(LibraryOption.resolve(option), default)

    def _apply_retry(self) -> None:
        retries = int(self._lib_options.get(LibraryOption.MAX_RETRIES, 0) or 0)
        backoff = _backoff(
            self.lib,
            self._lib_options.get(LibraryOption.BACKOFF_ALGORITHM),
            self._lib_options.get(LibraryOption.BACKOFF_BASE),
            self._lib_options.get(LibraryOption.BACKOFF_CAP),
        )
        self.client.set_retry(self.lib.retry.Retry(backoff, retries))

    def _build_codecs(self) -> None:
        serializer = self.options.serializer
        if serializer is None:
            serializer = self._lib_options.get(LibraryOption.SERIALIZER, self.options.serializer_config)
        compressor = self.options.compressor
        if compressor is None:
            compressor = self._lib_options.get(LibraryOption.COMPRESSION, self.options.compressor_config)
        level = self._lib_options.get(LibraryOption.COMPRESSION_LEVEL, self.options.get_lib_option("compression_level"))

        kwargs = {"level": level} if level is not None else {}
        self.serializer = create_serializer(serializer) if self.serialization_active else None
        self.compressor = create_compressor(compressor, **kwargs)

    # =========================================================================
    # Encoding/Decoding
    # =========================================================================

    @property
    def serialization_active(self) -> bool:
        return self.options.value_encoding is ValueEncoding.SERIALIZER

    def encode(self, value: Any) -> bytes | str:
        """Encode a value for storage (serialize or stringify, then compress)."""
        if self.serializer is not None:
            data: bytes | str = self.serializer.dumps(value)
        else:
            data = value
        if self.compressor is not None:
            if isinstance(data, str):
                data = data.encode()
            return self.compressor.compress(data)
        return data

    def decode(self, value: bytes | str) -> Any:
        """Decode a stored value (decompress, then deserialize or return as text)."""
        if self.compressor is not None and isinstance(value, bytes):
            try:
                value = self.compressor.decompress(value)
            except CompressorError:
                # Written before compression was enabled
                pass
        if self.serializer is not None:
            return self.serializer.loads(value)
        if isinstance(value, bytes):
            try:
                return value.decode()
            except UnicodeDecodeError:
                return value
        return value

    def close(self) -> None:
        if self.shared:
            return
        self.client.close()
        pool = getattr(self.client, "connection_pool", None)
        if pool is not None:
            pool.disconnect()


# =============================================================================
# ConnectionManager
# =============================================================================


class ConnectionManager:
    """Owns the connection of one single-server storage."""

    # persistent id -> (connection fingerprint, pool)
    _pools: ClassVar[dict[str, tuple[tuple[Any, ...], Any]]] = {}

    def __init__(self, options: StorageOptions, *, lib: ModuleType, client_class: type, pool_class: type) -> None:
        self.options = options
        self.lib = lib
        self.client_class = client_class
        self.pool_class = pool_class
        self.state = ConnectionState.UNINITIALIZED
        self._handle: ConnectionHandle | None = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.describe()} state={self.state.name}>"

    def describe(self) -> str:
        return str(self.options.endpoint)

    @property
    def persistent_id(self) -> str | None:
        return self.options.effective_persistent_id

    @property
    def has_serialization_support(self) -> bool:
        return self.options.has_serialization_support

    def get_lib_option(self, option: int | str, default: Any = None) -> Any:
        if self._handle is not None:
            return self._handle.get_option(option, default)
        return self.options.get_lib_option(option, default)

    def configure(self, options: BaseStorageOptions) -> bool:
        """Swap in new options; return True if the connection was invalidated."""
        old, self.options = self.options, options  # type: ignore[assignment]
        if old.connection_fingerprint == options.connection_fingerprint:
            if self._handle is not None:
                self._handle.options = options
                if old.redis_version != options.redis_version:
                    self._handle.version = self._detect_version(self._handle.client)
            return False
        self.invalidate()
        return True

    def invalidate(self) -> None:
        if self._handle is not None:
            logger.debug("Invalidating connection to %s", self.describe())
            self._release(self._handle)
            self._handle = None
            self.state = ConnectionState.INVALIDATED

    def close(self) -> None:
        if self._handle is not None:
            self._release(self._handle)
            self._handle = None
        self.state = ConnectionState.UNINITIALIZED

    def _release(self, handle: ConnectionHandle) -> None:
        try:
            handle.close()
        except _connect_exceptions:
            logger.debug("Error while closing connection to %s", self.describe(), exc_info=True)

    def acquire(self) -> ConnectionHandle:
        """Return the live handle, connecting first if needed."""
        if self._handle is not None and self.state is ConnectionState.CONNECTED:
            return self._handle

        self.state = ConnectionState.CONNECTING
        try:
            handle = self._connect()
        except BaseException:
            self.state = ConnectionState.UNINITIALIZED
            raise
        self._handle = handle
        self.state = ConnectionState.CONNECTED
        return handle

    def _connect(self) -> ConnectionHandle:
        logger.debug("Connecting to %s", self.describe())
        pool, shared = self._get_pool()
        try:
            client = self._create_client(pool)
            handle = ConnectionHandle(
                client,
                self.options,
                self.lib,
                connection_kwargs=getattr(client.connection_pool, "connection_kwargs", None),
                shared=shared,
            )
            for option, value in self.options.lib_options.items():
                handle.set_option(option, value)
            client.ping()
            handle.version = self._detect_version(client)
        except _connect_exceptions as e:
            self._discard(pool, shared)
            raise ConnectionFailedError.from_exception(e, prefix=f"Could not connect to {self.describe()}") from e
        except Exception:
            self._discard(pool, shared)
            raise
        logger.debug("Connected to %s (redis_version=%s)", self.describe(), handle.version)
        return handle

    def _detect_version(self, client: Any) -> ServerVersion:
        if self.options.redis_version:
            return ServerVersion.parse(self.options.redis_version)
        try:
            info = client.info("server")
        except _main_exceptions:
            logger.warning("Could not read INFO from %s; server version unknown", self.describe(), exc_info=True)
            return UNKNOWN
        version = ServerVersion.from_info(info)
        logger.debug("Detected redis_version %s on %s", version, self.describe())
        return version

    # =========================================================================
    # Pools
    # =========================================================================

    def _get_pool(self) -> tuple[Any, bool]:
        """Return ``(pool, shared)``; persistent pools come from the process-wide registry."""
        persistent_id = self.persistent_id
        if persistent_id is None:
            return self._create_pool(), False

        fingerprint = self.options.connection_fingerprint
        entry = self._pools.get(persistent_id)
        if entry is not None and entry[0] == fingerprint:
            return entry[1], True
        if entry is not None:
            logger.debug("Replacing persistent pool '%s' after a configuration change", persistent_id)
            entry[1].disconnect()
        pool = self._create_pool()
        self._pools[persistent_id] = (fingerprint, pool)
        return pool, True

    def _discard(self, pool: Any, shared: bool) -> None:
        if shared:
            self._pools.pop(self.persistent_id, None)  # type: ignore[arg-type]
        pool.disconnect()

    def _pool_kwargs(self) -> dict[str, Any]:
        options = self.options
        endpoint = options.endpoint
        kwargs = endpoint.to_connection_kwargs()
        kwargs["db"] = options.effective_database
        if options.connect_timeout is not None:
            kwargs["socket_connect_timeout"] = options.connect_timeout
        read_timeout = _read_timeout(options.effective_read_timeout)
        if read_timeout is not None:
            kwargs["socket_timeout"] = read_timeout

        credentials = options.credentials
        if credentials:
            kwargs.update(credentials.to_connection_kwargs())

        if endpoint.is_socket:
            kwargs["connection_class"] = self.lib.connection.UnixDomainSocketConnection
        elif (context := options.effective_ssl_context) is not None:
            kwargs.update(context.to_connection_kwargs())
            kwargs.pop("ssl")
            if context.fingerprints:
                kwargs["connection_class"] = pinned_connection_class(self.lib.connection.SSLConnection)
                kwargs["ssl_peer_fingerprints"] = context.fingerprints
            else:
                kwargs["connection_class"] = self.lib.connection.SSLConnection
        return kwargs

    def _create_pool(self) -> Any:
        return self.pool_class(**self._pool_kwargs())

    def _create_client(self, pool: Any) -> Any:
        return self.client_class(connection_pool=pool)


# =============================================================================
# ClusterConnectionManager
# =============================================================================


class ClusterConnectionManager(ConnectionManager):
    """Owns the cluster client of one cluster storage.

    The cluster client manages its own per-node pools; persistent cluster
    clients are shared process-wide by seed list.
    """

    # seeds -> (connection fingerprint, cluster client)
    _clusters: ClassVar[dict[tuple[str, ...], tuple[tuple[Any, ...], Any]]] = {}

    options: ClusterStorageOptions  # type: ignore[assignment]

    def __init__(
        self,
        options: ClusterStorageOptions,
        *,
        lib: ModuleType,
        cluster_class: type,
        node_class: type,
        client_class: type,
    ) -> None:
        self.options = options
        self.lib = lib
        self.cluster_class = cluster_class
        self.node_class = node_class
        self.client_class = client_class
        self.state = ConnectionState.UNINITIALIZED
        self._handle = None

    def describe(self) -> str:
        if self.options.name:
            return f"cluster '{self.options.name}'"
        return f"cluster {','.join(self.options.cluster.seeds)}"

    @property
    def persistent_id(self) -> str | None:
        return None

    def _connect(self) -> ConnectionHandle:
        logger.debug("Connecting to %s", self.describe())
        client, shared = self._get_cluster()
        try:
            handle = ConnectionHandle(client, self.options, self.lib, shared=shared)
            for option, value in self.options.lib_options.items():
                handle.set_option(option, value)
            client.ping()
            handle.version = self._detect_version(client)
        except _connect_exceptions as e:
            self._discard_cluster(client, shared)
            raise ConnectionFailedError.from_exception(e, prefix=f"Could not connect to {self.describe()}") from e
        except Exception:
            self._discard_cluster(client, shared)
            raise
        logger.debug("Connected to %s (redis_version=%s)", self.describe(), handle.version)
        return handle

    def _get_cluster(self) -> tuple[Any, bool]:
        seeds = self.options.cluster.seeds
        fingerprint = self.options.connection_fingerprint
        if self.options.persistent:
            entry = self._clusters.get(seeds)
            if entry is not None and entry[0] == fingerprint:
                return entry[1], True
        try:
            client = self._create_client(self._cluster_kwargs())
        except _connect_exceptions as e:
            raise ConnectionFailedError.from_exception(e, prefix=f"Could not connect to {self.describe()}") from e
        if self.options.persistent:
            entry = self._clusters.pop(seeds, None)
            if entry is not None:
                entry[1].close()
            self._clusters[seeds] = (fingerprint, client)
        return client, self.options.persistent

    def _discard_cluster(self, client: Any, shared: bool) -> None:
        if shared:
            self._clusters.pop(self.options.cluster.seeds, None)
        client.close()

    def _node_kwargs(self) -> dict[str, Any]:
        """Connection kwargs shared by the cluster client and direct node clients."""
        options = self.options
        kwargs: dict[str, Any] = {
            "socket_connect_timeout": options.cluster.timeout,
            "socket_timeout": _read_timeout(options.cluster.read_timeout),
        }
        lib_read_timeout = options.lib_options.get(LibraryOption.READ_TIMEOUT)
        if lib_read_timeout is not None:
            kwargs["socket_timeout"] = _read_timeout(lib_read_timeout)
        if LibraryOption.TCP_KEEPALIVE in options.lib_options:
            kwargs["socket_keepalive"] = bool(options.lib_options[LibraryOption.TCP_KEEPALIVE])

        credentials = options.credentials
        if credentials:
            kwargs.update(credentials.to_connection_kwargs())

        context = options.effective_ssl_context
        if context is not None:
            kwargs.update(context.to_connection_kwargs())
            if context.fingerprints:
                logger.warning("Certificate fingerprint pinning is not applied to cluster connections")
        return kwargs

    def _cluster_kwargs(self) -> dict[str, Any]:
        kwargs = self._node_kwargs()
        kwargs["startup_nodes"] = [self.node_class(host, port) for host, port in self.options.nodes]
        return kwargs

    def _create_client(self, kwargs: dict[str, Any]) -> Any:  # type: ignore[override]
        return self.cluster_class(**kwargs)

    def node_client(self, host: str, port: int) -> Any:
        """A plain client connected directly to one cluster node."""
        return self.client_class(host=host, port=port, **self._node_kwargs())


__all__ = [
    "ClusterConnectionManager",
    "ConnectionHandle",
    "ConnectionManager",
    "ConnectionState",
]
