VERSION = (1, 0, 0)
__version__ = ".".join(map(str, VERSION))


def get_redis_connection(alias="default"):
    """Return the live client behind a cache alias configured with one of our backends."""
    from django.core.cache import caches

    cache = caches[alias]
    if not hasattr(cache, "storage"):
        raise NotImplementedError(f"Cache {alias!r} is not backed by a Redis storage")

    return cache.storage.get_client()
