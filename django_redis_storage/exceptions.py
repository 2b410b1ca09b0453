# Derived from django-redis (https://github.com/jazzband/django-redis)
# Copyright (c) 2011-2016 Andrey Antukh <niwi@niwi.nz>
# Copyright (c) 2011 Sean Bleier
# Licensed under BSD-3-Clause
#
# django-redis was used as inspiration for this project.

"""Exceptions for django-redis-storage.

This module defines exceptions that may be raised during storage operations.
Users can catch these to handle specific error conditions.
"""

import socket
from typing import Any

from django.core.exceptions import ImproperlyConfigured

# Build exception tuples from available libraries (redis-py / valkey-py).
# These are used by omit_exception and the storage layer.
_exception_list: list[type[Exception]] = [socket.timeout]

try:
    from redis.exceptions import ConnectionError as RedisConnectionError
    from redis.exceptions import RedisClusterException
    from redis.exceptions import RedisError
    from redis.exceptions import TimeoutError as RedisTimeoutError

    _exception_list.extend([RedisConnectionError, RedisTimeoutError, RedisError, RedisClusterException])
except ImportError:
    pass

try:
    from valkey.exceptions import ConnectionError as ValkeyConnectionError
    from valkey.exceptions import TimeoutError as ValkeyTimeoutError
    from valkey.exceptions import ValkeyError

    _exception_list.extend([ValkeyConnectionError, ValkeyTimeoutError, ValkeyError])
except ImportError:
    pass

_main_exceptions = tuple(_exception_list)


class ConfigurationError(ImproperlyConfigured, ValueError):
    """Raised when the storage is configured with invalid or contradictory values.

    Configuration errors are raised eagerly, when options are built or changed,
    never lazily on the first command. Examples:

    - a username without a password
    - a namespace longer than 128 characters
    - an unknown library option name
    """


class InvalidClusterConfigurationError(ConfigurationError):
    """Raised when a cluster configuration is missing or ambiguous."""

    @classmethod
    def from_missing_required_values(cls) -> "InvalidClusterConfigurationError":
        return cls("Missing either `name` or `seeds`.")

    @classmethod
    def from_name_and_seeds(cls) -> "InvalidClusterConfigurationError":
        return cls("Please provide either `name` or `seeds` configuration, not both.")

    @classmethod
    def from_missing_seeds_for_name(cls, name: str) -> "InvalidClusterConfigurationError":
        return cls(f"Missing `seeds` for named cluster configuration '{name}'.")

    @classmethod
    def from_unknown_name(cls, name: str) -> "InvalidClusterConfigurationError":
        return cls(f"No cluster named '{name}' in settings.REDIS_STORAGE_CLUSTERS.")

    @classmethod
    def from_missing_password(cls) -> "InvalidClusterConfigurationError":
        return cls("Missing password for the provided user.")


class RedisRuntimeError(RuntimeError):
    """Raised when the server could not be reached or a command failed.

    Wraps the lower-level library exception; the original is available as
    ``__cause__`` and its message is part of this exception's message.
    """

    @classmethod
    def from_exception(cls, exc: BaseException, prefix: str | None = None) -> "RedisRuntimeError":
        message = str(exc) or type(exc).__name__
        if prefix:
            message = f"{prefix}: {message}"
        return cls(message)


class ConnectionFailedError(RedisRuntimeError):
    """Raised when a connection could not be established or authenticated."""


class ConnectionInterruptedError(RedisRuntimeError):  # noqa: A001
    """Raised when a command fails on an established connection.

    Attributes:
        connection: The client the failing command was issued on.
    """

    def __init__(self, message: str = "", connection: Any = None) -> None:
        self.connection = connection
        super().__init__(message)

    def __str__(self) -> str:
        message = super().__str__()
        if self.__cause__ is not None and not message:
            message = str(self.__cause__) or type(self.__cause__).__name__
        return f"Redis {self.connection!r}: {message}" if self.connection is not None else message


class CompressorError(Exception):
    """Raised when compression or decompression fails."""


class SerializerError(Exception):
    """Raised when serialization or deserialization fails."""


class NotSupportedError(Exception):
    """Raised when an operation is not supported by the connected server.

    Attributes:
        operation: The operation that is not supported.
        backend: Optional description of what does not support it.
    """

    def __init__(self, operation: str, backend: str | None = None) -> None:
        self.operation = operation
        self.backend = backend
        super().__init__(operation, backend)

    def __str__(self) -> str:
        msg = f"Operation '{self.operation}' is not supported"
        if self.backend:
            msg += f" by {self.backend}"
        return msg


class UnsupportedOperationError(NotSupportedError):
    """Raised when a capability is requested that the server version lacks.

    Example:
        Writing with a TTL to a server older than 2.0::

            try:
                storage.set("key", "value", ttl=60)
            except UnsupportedOperationError as e:
                logger.warning("%s", e)
    """

    def __init__(self, operation: str, backend: str | None = None, *, required: str | None = None) -> None:
        self.required = required
        super().__init__(operation, backend)

    def __str__(self) -> str:
        msg = super().__str__()
        if self.required:
            msg += f"; you need redis-server version >= {self.required}"
        return msg
