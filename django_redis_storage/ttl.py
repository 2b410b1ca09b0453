"""Remaining time-to-live translation across server versions.

The meaning of TTL/PTTL replies changed twice:

- since 2.8 a missing key replies -2 and a key without expiry replies -1;
- 2.6 and 2.7 reply -1 for both, so presence must be checked separately;
- before 2.6 there is no PTTL, and TTL replies are in whole seconds;
- before 2.0 there is no expiry at all.

A strategy is selected once per server version with ``ttl_strategy_for``; all
strategies return either a number of seconds, ``TTL_UNLIMITED`` or None when
the key does not exist.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

from django_redis_storage.types import TTL_UNLIMITED

if TYPE_CHECKING:
    from collections.abc import Callable

    from django_redis_storage.capabilities import ServerVersion


class TtlUnit(Enum):
    SECONDS = "ttl"
    MILLISECONDS = "pttl"

    @property
    def command(self) -> str:
        return self.value


def to_seconds(raw: int, unit: TtlUnit) -> int:
    """Convert a non-negative TTL reply to whole seconds, rounding half up."""
    if unit is TtlUnit.MILLISECONDS:
        return (raw + 500) // 1000
    return raw


class TtlStrategy:
    """Interprets TTL/PTTL replies for one range of server versions."""

    # The command this strategy issues; None when the server has none.
    unit: ClassVar[TtlUnit | None] = TtlUnit.MILLISECONDS

    def remaining_ttl(
        self,
        raw: int | None,
        exists: Callable[[], bool],
        unit: TtlUnit | None = None,
    ) -> int | None:
        raise NotImplementedError

    def fetch(self, client: Any, key: str, exists: Callable[[], bool]) -> int | None:
        """Issue the version-appropriate command for ``key`` and interpret it."""
        if self.unit is None:
            return self.remaining_ttl(None, exists)
        raw = getattr(client, self.unit.command)(key)
        return self.remaining_ttl(raw, exists, self.unit)

    def _convert(self, raw: int, unit: TtlUnit | None) -> int:
        return to_seconds(raw, unit or self.unit or TtlUnit.SECONDS)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"


class ModernTtlStrategy(TtlStrategy):
    """Redis >= 2.8: -2 means missing, -1 means no expiry."""

    def remaining_ttl(
        self,
        raw: int | None,
        exists: Callable[[], bool],
        unit: TtlUnit | None = None,
    ) -> int | None:
        if raw is None or raw <= -2:
            return None
        if raw == -1:
            return TTL_UNLIMITED
        return self._convert(raw, unit)


class AmbiguousTtlStrategy(TtlStrategy):
    """Redis >= 2.6, < 2.8: -1 means missing *or* no expiry."""

    def remaining_ttl(
        self,
        raw: int | None,
        exists: Callable[[], bool],
        unit: TtlUnit | None = None,
    ) -> int | None:
        if raw is None or raw <= -1:
            return TTL_UNLIMITED if exists() else None
        return self._convert(raw, unit)


class LegacyTtlStrategy(AmbiguousTtlStrategy):
    """Redis >= 2.0, < 2.6: TTL in seconds only.

    A reply of 0 is treated as missing: the key is about to expire and
    callers expect it to be gone.
    """

    unit = TtlUnit.SECONDS

    def remaining_ttl(
        self,
        raw: int | None,
        exists: Callable[[], bool],
        unit: TtlUnit | None = None,
    ) -> int | None:
        if raw == 0:
            return None
        return super().remaining_ttl(raw, exists, unit)


class NoTtlStrategy(TtlStrategy):
    """Redis < 2.0: no expiry commands; only presence is known."""

    unit = None

    def remaining_ttl(
        self,
        raw: int | None,
        exists: Callable[[], bool],
        unit: TtlUnit | None = None,
    ) -> int | None:
        return TTL_UNLIMITED if exists() else None


MODERN = ModernTtlStrategy()
AMBIGUOUS = AmbiguousTtlStrategy()
LEGACY = LegacyTtlStrategy()
NO_TTL = NoTtlStrategy()


def ttl_strategy_for(version: ServerVersion) -> TtlStrategy:
    """Select the TTL strategy for a server version."""
    if version.at_least(2, 8):
        return MODERN
    if version.at_least(2, 6):
        return AMBIGUOUS
    if version.at_least(2):
        return LEGACY
    return NO_TTL


def remaining_ttl(
    raw: int | None,
    unit: TtlUnit,
    version: ServerVersion,
    exists: Callable[[], bool],
) -> int | None:
    """Translate a raw TTL (``unit``) reply as the server at ``version`` means it."""
    return ttl_strategy_for(version).remaining_ttl(raw, exists, unit)
