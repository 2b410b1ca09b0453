"""Server credentials."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from django_redis_storage.exceptions import ConfigurationError


def _is_set(value: str | None) -> bool:
    return value is not None and value != ""


@dataclass(frozen=True)
class Credentials:
    """An optional username and a password.

    A username without a password cannot authenticate and is rejected here,
    when options are built, rather than on the first command.
    """

    username: str | None = None
    password: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if _is_set(self.username) and not _is_set(self.password):
            raise ConfigurationError("Missing password for the provided user.")

    @classmethod
    def parse(cls, value: Any) -> Credentials | None:
        """Build credentials from a password, ``(password,)``, ``(user, password)`` or a mapping.

        Returns None when nothing is set.
        """
        if value is None:
            return None
        if isinstance(value, Credentials):
            return value or None
        if isinstance(value, str):
            return cls(password=value) if value else None
        if isinstance(value, Mapping):
            username = value.get("user", value.get("username"))
            password = value.get("pass", value.get("password"))
            return cls.from_user_password(username, password)
        if isinstance(value, Sequence):
            if len(value) == 1:
                return cls.from_user_password(None, value[0])
            if len(value) == 2:
                return cls.from_user_password(value[0], value[1])
        raise ConfigurationError(
            f"Invalid credentials {type(value).__name__}; expected a password, (password,) or (user, password).",
        )

    @classmethod
    def from_user_password(cls, username: str | None, password: str | None) -> Credentials | None:
        credentials = cls(username or None, password or None)
        return credentials if credentials else None

    def __bool__(self) -> bool:
        return _is_set(self.password)

    def as_tuple(self) -> tuple[str] | tuple[str, str]:
        """The AUTH arguments: ``(password,)`` or ``(user, password)``."""
        if not self:
            raise ConfigurationError("No password configured.")
        assert self.password is not None  # noqa: S101
        if _is_set(self.username):
            assert self.username is not None  # noqa: S101
            return (self.username, self.password)
        return (self.password,)

    def to_connection_kwargs(self) -> dict[str, str]:
        auth = self.as_tuple()
        if len(auth) == 2:
            return {"username": auth[0], "password": auth[1]}
        return {"password": auth[0]}


def resolve_credentials(explicit: Credentials | None, fallback: Credentials | None) -> Credentials | None:
    """Explicit credentials win over ones embedded in a URI or named configuration."""
    return explicit if explicit else fallback
