"""Server version parsing and capability resolution."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Final, NamedTuple

from django_redis_storage.types import ValueKind

if TYPE_CHECKING:
    from collections.abc import Mapping

UNKNOWN_VERSION: Final = "0.0.0-unknown"

MAX_KEY_LENGTH_LEGACY: Final = 255
MAX_KEY_LENGTH: Final = 512_000_000

_version_re = re.compile(r"^\s*v?(\d+)(?:\.(\d+))?(?:\.(\d+))?")


class ServerVersion(NamedTuple):
    """A parsed ``redis_version``; compares like a (major, minor, patch) tuple."""

    major: int
    minor: int
    patch: int
    raw: str = UNKNOWN_VERSION

    @classmethod
    def parse(cls, value: Any) -> ServerVersion:
        """Parse a version string, returning the unknown version if it cannot be parsed."""
        if isinstance(value, bytes):
            value = value.decode(errors="replace")
        if not isinstance(value, str):
            return UNKNOWN
        match = _version_re.match(value)
        if match is None:
            return UNKNOWN
        major, minor, patch = (int(part) if part else 0 for part in match.groups())
        return cls(major, minor, patch, value.strip())

    @classmethod
    def from_info(cls, info: Any) -> ServerVersion:
        """Extract the server version from an INFO reply.

        Cluster clients may return one reply per node; the first node that
        reports a version wins.
        """
        if not isinstance(info, dict):
            return UNKNOWN
        if "redis_version" in info:
            return cls.parse(info["redis_version"])
        for value in info.values():
            if isinstance(value, dict) and "redis_version" in value:
                return cls.parse(value["redis_version"])
        return UNKNOWN

    def at_least(self, major: int, minor: int = 0) -> bool:
        return (self.major, self.minor) >= (major, minor)

    @property
    def is_unknown(self) -> bool:
        return self.raw == UNKNOWN_VERSION

    def __str__(self) -> str:
        return self.raw


UNKNOWN = ServerVersion(0, 0, 0, UNKNOWN_VERSION)


_SERIALIZED_KINDS: Final[Mapping[ValueKind, bool | str]] = MappingProxyType(
    {
        ValueKind.NULL: True,
        ValueKind.BOOLEAN: True,
        ValueKind.INTEGER: True,
        ValueKind.FLOAT: True,
        ValueKind.STRING: True,
        ValueKind.ARRAY: "array",
        ValueKind.OBJECT: "object",
        ValueKind.RESOURCE: False,
    },
)

_RAW_KINDS: Final[Mapping[ValueKind, bool | str]] = MappingProxyType(
    {
        ValueKind.NULL: "string",
        ValueKind.BOOLEAN: "string",
        ValueKind.INTEGER: "string",
        ValueKind.FLOAT: "string",
        ValueKind.STRING: True,
        ValueKind.ARRAY: False,
        ValueKind.OBJECT: False,
        ValueKind.RESOURCE: False,
    },
)


@dataclass(frozen=True, slots=True)
class CapabilityDescriptor:
    """What the connected server supports.

    ``supported_value_kinds`` maps each ValueKind to True (stored and returned
    as-is), False (unsupported) or the name of the type it comes back as.
    """

    max_key_length: int
    ttl_supported: bool
    ttl_precision: int = 1
    namespace_is_prefix: bool = True
    uses_request_time: bool = False
    supported_value_kinds: Mapping[ValueKind, bool | str] = field(default_factory=lambda: _RAW_KINDS)

    def supports(self, kind: ValueKind) -> bool:
        return self.supported_value_kinds.get(kind, False) is not False


def resolve_capabilities(version: ServerVersion | str, serialization_active: bool) -> CapabilityDescriptor:
    """Compute the capability descriptor for a server version and encoding mode."""
    if not isinstance(version, ServerVersion):
        version = ServerVersion.parse(version)

    return CapabilityDescriptor(
        max_key_length=MAX_KEY_LENGTH_LEGACY if version.major < 3 else MAX_KEY_LENGTH,
        ttl_supported=version.major >= 2,
        ttl_precision=1,
        namespace_is_prefix=True,
        uses_request_time=False,
        supported_value_kinds=_SERIALIZED_KINDS if serialization_active else _RAW_KINDS,
    )
