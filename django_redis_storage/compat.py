"""Resolution of serializer and compressor settings into codec instances.

``LibraryOption.SERIALIZER`` and ``LibraryOption.COMPRESSION`` accept a short
name, a dotted path, a class or a ready instance. ``"none"``, ``None``,
``False`` and ``0`` switch the codec off.
"""

from __future__ import annotations

from typing import Any, Final

from django.utils.module_loading import import_string

from django_redis_storage.exceptions import ConfigurationError

SERIALIZERS: Final[dict[str, str | None]] = {
    "none": None,
    "pickle": "django_redis_storage.serializers.pickle.PickleSerializer",
    "json": "django_redis_storage.serializers.json.JSONSerializer",
    "msgpack": "django_redis_storage.serializers.msgpack.MessagePackSerializer",
}

COMPRESSORS: Final[dict[str, str | None]] = {
    "none": None,
    "identity": "django_redis_storage.compressors.identity.IdentityCompressor",
    "zlib": "django_redis_storage.compressors.zlib.ZlibCompressor",
    "gzip": "django_redis_storage.compressors.gzip.GzipCompressor",
    "lzma": "django_redis_storage.compressors.lzma.LzmaCompressor",
}

_SERIALIZER_METHODS: Final = ("dumps", "loads")
_COMPRESSOR_METHODS: Final = ("compress", "decompress")


def _implements(obj: Any, methods: tuple[str, ...]) -> bool:
    if isinstance(obj, type):
        return False
    return all(callable(getattr(obj, method, None)) for method in methods)


def _resolve(config: Any, names: dict[str, str | None], kind: str) -> Any:
    """Map short names and "off" values to a dotted path, class or instance (None if off)."""
    if config is None or config is False or config == 0:
        return None
    if isinstance(config, str):
        lowered = config.strip().lower()
        if lowered in names:
            return names[lowered]
        if "." not in config:
            raise ConfigurationError(f"Unknown {kind} '{config}'; expected one of {sorted(names)} or a dotted path.")
    return config


def _instantiate(config: Any, methods: tuple[str, ...], kind: str, kwargs: dict[str, Any]) -> Any:
    if _implements(config, methods):
        return config
    if isinstance(config, str):
        try:
            config = import_string(config)
        except ImportError as e:
            raise ConfigurationError(f"Could not import {kind} '{config}': {e}") from e
    return config(**kwargs)


def is_serializer_enabled(config: Any) -> bool:
    """Whether a serializer setting turns on serialized value encoding."""
    return _resolve(config, SERIALIZERS, "serializer") is not None


def create_serializer(config: str | type | Any | None, **kwargs: Any) -> Any:
    """Create a serializer instance, or None when values are stored raw.

    Args:
        config: A short name, dotted path string, class, instance, or None/"none" for raw values
        **kwargs: Keyword arguments to pass to serializer constructor
    """
    config = _resolve(config, SERIALIZERS, "serializer")
    if config is None:
        return None
    return _instantiate(config, _SERIALIZER_METHODS, "serializer", kwargs)


def create_compressor(config: str | type | Any | None, **kwargs: Any) -> Any:
    """Create a compressor instance, or None when values are stored uncompressed.

    Args:
        config: A short name, dotted path string, class, instance, or None/"none" for no compression
        **kwargs: Keyword arguments to pass to compressor constructor (``level``, ``min_length``)
    """
    config = _resolve(config, COMPRESSORS, "compressor")
    if config is None:
        return None
    return _instantiate(config, _COMPRESSOR_METHODS, "compressor", kwargs)
