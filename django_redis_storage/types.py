"""Type aliases and value types for django-redis-storage."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, StrEnum
from typing import TYPE_CHECKING, Any, Final, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from django_redis_storage.capabilities import CapabilityDescriptor

# Key types - matches redis.typing.KeyT
type KeyT = str

# TTL in seconds; None or 0 means "no expiry"
type TtlT = int | float | None

TTL_UNLIMITED: Final = -1


class ValueKind(StrEnum):
    """Kinds of values a caller may hand to the storage."""

    NULL = "null"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"
    RESOURCE = "resource"


class ValueEncoding(Enum):
    """How values are written to the server.

    RAW stores every value as its string form (Redis' only native scalar);
    SERIALIZER passes values through a serializer and supports structured data.
    """

    RAW = "raw"
    SERIALIZER = "serializer"


@dataclass(frozen=True, slots=True)
class Metadata:
    """Per-key metadata.

    ``remaining_time_to_live`` is the number of seconds left before the key
    expires, ``TTL_UNLIMITED`` (-1) when the key has no expiry, or None when
    the server cannot report it.
    """

    remaining_time_to_live: int | None

    @property
    def is_unlimited(self) -> bool:
        return self.remaining_time_to_live == TTL_UNLIMITED


@runtime_checkable
class StorageProtocol(Protocol):
    """Public interface shared by the single-node and cluster storages."""

    def get(self, key: KeyT, default: Any = None) -> Any: ...

    def get_many(self, keys: Iterable[KeyT]) -> dict[KeyT, Any]: ...

    def has(self, key: KeyT) -> bool: ...

    def set(self, key: KeyT, value: Any, ttl: TtlT = ...) -> bool: ...

    def set_many(self, data: Mapping[KeyT, Any], ttl: TtlT = ...) -> list[KeyT]: ...

    def add(self, key: KeyT, value: Any, ttl: TtlT = ...) -> bool: ...

    def remove(self, key: KeyT) -> bool: ...

    def touch(self, key: KeyT, ttl: TtlT = ...) -> bool: ...

    def flush(self) -> bool: ...

    def clear_by_namespace(self, namespace: str) -> bool: ...

    def clear_by_prefix(self, prefix: str) -> bool: ...

    def get_metadata(self, key: KeyT) -> Metadata | None: ...

    def get_capabilities(self) -> CapabilityDescriptor: ...

    def get_redis_version(self) -> str: ...

    def get_client(self) -> Any: ...

    def close(self) -> None: ...
