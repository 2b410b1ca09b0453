from __future__ import annotations

import functools
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

from django_redis_storage.exceptions import RedisRuntimeError, _main_exceptions

# Connection failures and failed commands, wrapped or not.
_ignorable_exceptions = (RedisRuntimeError, *_main_exceptions)


def omit_exception(
    method: Callable | None = None,
    return_value: Any | None = None,
) -> Callable:
    """Decorator that intercepts connection errors and ignores them if configured.

    When applied to a cache method, this decorator catches connection
    failures (``ConnectionFailedError``), failed commands
    (``ConnectionInterruptedError``) and raw library errors, and either
    ignores them (returning return_value) or re-raises, depending on the
    cache's _ignore_exceptions setting.

    Args:
        method: The method to wrap (when used without parentheses)
        return_value: Value to return when exception is ignored (default: None)

    Usage:
        @omit_exception
        def set(self, key, value): ...

        @omit_exception(return_value={})
        def get_many(self, keys): ...
    """
    if method is None:
        return functools.partial(omit_exception, return_value=return_value)

    @functools.wraps(method)
    def _decorator(self: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return method(self, *args, **kwargs)
        except _ignorable_exceptions:
            if self._ignore_exceptions:
                if self._log_ignored_exceptions:
                    self._logger.exception("Exception ignored")
                # Fresh container per call; callers may mutate the result
                return return_value.copy() if isinstance(return_value, (dict, list)) else return_value
            raise

    return _decorator
