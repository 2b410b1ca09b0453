"""Logical to physical key mapping."""

from __future__ import annotations

import re

# Regex for escaping glob special characters
_special_re = re.compile(r"([*?[\]\\])")


def glob_escape(s: str) -> str:
    """Escape glob special characters so KEYS matches them literally."""
    return _special_re.sub(r"\\\1", s)


def physical_key(namespace: str, separator: str, key: str) -> str:
    """Return the key as stored on the server."""
    if not namespace:
        return key
    return f"{namespace}{separator}{key}"


class Namespacer:
    """Maps logical keys to physical keys for one storage instance.

    The prefix is computed once and reused until ``invalidate`` is called,
    which the storage does whenever namespace or separator change.
    """

    def __init__(self, namespace: str = "", separator: str = ":") -> None:
        self.namespace = namespace
        self.separator = separator
        self._prefix: str | None = None

    def configure(self, namespace: str, separator: str) -> None:
        if namespace != self.namespace or separator != self.separator:
            self.namespace = namespace
            self.separator = separator
            self.invalidate()

    def invalidate(self) -> None:
        self._prefix = None

    @property
    def prefix(self) -> str:
        if self._prefix is None:
            self._prefix = physical_key(self.namespace, self.separator, "")
        return self._prefix

    def key(self, key: str) -> str:
        return self.prefix + str(key)

    def namespace_pattern(self, namespace: str) -> str:
        """Pattern matching every key of ``namespace`` (with this separator)."""
        return f"{glob_escape(namespace)}{glob_escape(self.separator)}*"

    def prefix_pattern(self, prefix: str) -> str:
        """Pattern matching every key in the current namespace starting with ``prefix``."""
        return f"{glob_escape(self.prefix)}{glob_escape(prefix)}*"
