import pickle
from typing import Any

from django_redis_storage.exceptions import ConfigurationError, SerializerError
from django_redis_storage.serializers.base import BaseSerializer


class PickleSerializer(BaseSerializer):
    """Stores any picklable value; the default for the Django cache backend."""

    name = "pickle"

    def __init__(self, *, protocol: int | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if protocol is None:
            protocol = pickle.DEFAULT_PROTOCOL
        if not 0 <= protocol <= pickle.HIGHEST_PROTOCOL:
            msg = f"protocol must be between 0 and pickle.HIGHEST_PROTOCOL: {pickle.HIGHEST_PROTOCOL}"
            raise ConfigurationError(msg)
        self.protocol = protocol

    def __repr__(self) -> str:
        return f"<{type(self).__name__} protocol={self.protocol}>"

    def dumps(self, obj: Any) -> bytes:
        return pickle.dumps(obj, self.protocol)

    def loads(self, data: bytes | str) -> Any:
        if isinstance(data, str):
            data = data.encode("latin-1")
        try:
            return pickle.loads(data)  # noqa: S301
        except (pickle.UnpicklingError, EOFError, AttributeError, ImportError, IndexError, ValueError) as e:
            raise SerializerError(f"Could not unpickle a value of {len(data)} bytes") from e
