"""Telling a missing key apart from a stored value that reads back as the miss sentinel."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Final

if TYPE_CHECKING:
    from collections.abc import Callable

# What GET/MGET reply for a missing key.
MISS: Final = None


def is_absent(raw: Any, key: str, serialization_active: bool, exists: Callable[[str], bool]) -> bool:
    """Return True if a read reply means ``key`` does not exist.

    A serializer never encodes a value as the miss sentinel, so with a
    serializer the sentinel is trusted. Raw string storage gives no such
    guarantee; the server is asked with EXISTS instead, at the cost of one
    extra round trip for this case only.
    """
    if raw is not MISS:
        return False
    if serialization_active:
        return True
    return not exists(key)
