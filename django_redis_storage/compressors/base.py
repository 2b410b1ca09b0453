# Derived from django-redis (https://github.com/jazzband/django-redis)
# Copyright (c) 2011-2016 Andrey Antukh <niwi@niwi.nz>
# Copyright (c) 2011 Sean Bleier
# Licensed under BSD-3-Clause
#
# django-redis was used as inspiration for this project.

from typing import Any, ClassVar

from django_redis_storage.exceptions import CompressorError, ConfigurationError


class BaseCompressor:
    """Compresses encoded values before they are written.

    ``name`` is the value ``LibraryOption.COMPRESSION`` accepts for the class
    and ``levels`` bounds ``LibraryOption.COMPRESSION_LEVEL``. Values of
    ``min_length`` bytes or fewer are written as they are, so ``decompress``
    only touches data that starts with the algorithm's ``magic`` header;
    anything else was stored uncompressed and is returned unchanged.
    """

    name: ClassVar[str] = ""
    magic: ClassVar[bytes] = b""
    levels: ClassVar[range] = range(10)
    errors: ClassVar[tuple[type[Exception], ...]] = ()

    level: int = 0
    min_length: int = 256

    def __init__(self, *, min_length: int | None = None, level: int | None = None, **kwargs: Any) -> None:
        if min_length is not None:
            if min_length < 0:
                raise ConfigurationError(f"Compression min_length must not be negative; {min_length} given.")
            self.min_length = min_length
        if level is not None:
            level = int(level)
            if level not in self.levels:
                first, last = self.levels[0], self.levels[-1]
                raise ConfigurationError(f"{self.name} compression level must be in {first}..{last}; {level} given.")
            self.level = level

    def __repr__(self) -> str:
        return f"<{type(self).__name__} level={self.level} min_length={self.min_length}>"

    def is_compressed(self, data: bytes) -> bool:
        return bool(self.magic) and data.startswith(self.magic)

    def compress(self, data: bytes) -> bytes:
        if len(data) <= self.min_length:
            return data
        return self._compress(data)

    def decompress(self, data: bytes) -> bytes:
        if not self.is_compressed(data):
            return data
        try:
            return self._decompress(data)
        except self.errors as e:
            raise CompressorError(f"Could not {self.name}-decompress a value of {len(data)} bytes") from e

    def _compress(self, data: bytes) -> bytes:
        raise NotImplementedError

    def _decompress(self, data: bytes) -> bytes:
        raise NotImplementedError
