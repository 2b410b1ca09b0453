from typing import Any

import msgpack

from django_redis_storage.exceptions import SerializerError
from django_redis_storage.serializers.base import BaseSerializer


class MessagePackSerializer(BaseSerializer):
    """MessagePack for compact binary values.

    Supports None, bool, int, float, str, bytes, list and dict. Requires the
    ``msgpack`` extra::

        pip install django-redis-storage[msgpack]
    """

    name = "msgpack"

    def dumps(self, obj: Any) -> bytes:
        try:
            return msgpack.packb(obj, use_bin_type=True)
        except (TypeError, ValueError, OverflowError) as e:
            raise SerializerError(f"Cannot store a {type(obj).__name__} as MessagePack") from e

    def loads(self, data: bytes | str) -> Any:
        if isinstance(data, str):
            data = data.encode("latin-1")
        try:
            return msgpack.unpackb(data, raw=False)
        except (msgpack.exceptions.UnpackException, ValueError) as e:
            raise SerializerError("Stored value is not valid MessagePack") from e
