import json
from typing import Any

from django.core.serializers.json import DjangoJSONEncoder

from django_redis_storage.exceptions import SerializerError
from django_redis_storage.serializers.base import BaseSerializer


class JSONSerializer(BaseSerializer):
    """Compact UTF-8 JSON, readable by clients in any language.

    Limited to JSON types: tuples come back as lists and dict keys as
    strings. ``DjangoJSONEncoder`` accepts datetime, Decimal and UUID values
    on the way in; they come back as strings.

    Example:
        Select it through the library option table::

            RedisStorage(server="redis://localhost:6379/1", lib_options={"serializer": "json"})
    """

    name = "json"
    encoder_class = DjangoJSONEncoder

    def dumps(self, obj: Any) -> bytes:
        try:
            return json.dumps(obj, cls=self.encoder_class, separators=(",", ":"), ensure_ascii=False).encode()
        except (TypeError, ValueError) as e:
            raise SerializerError(f"Cannot store a {type(obj).__name__} as JSON") from e

    def loads(self, data: bytes | str) -> Any:
        try:
            return json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise SerializerError("Stored value is not valid JSON") from e
