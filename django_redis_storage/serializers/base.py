from typing import Any, ClassVar


class BaseSerializer:
    """Turns values into bytes for storage and back.

    Configuring a serializer switches the storage to
    ``ValueEncoding.SERIALIZER``: values of any supported type round trip,
    and a stored ``False`` or ``0`` is told apart from a missing key without
    asking the server. ``name`` is the value ``LibraryOption.SERIALIZER``
    accepts for the class. Any object with ``dumps`` and ``loads`` works in
    place of a subclass.
    """

    name: ClassVar[str] = ""

    def __init__(self, **kwargs: Any) -> None:
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"

    def dumps(self, obj: Any) -> bytes:
        raise NotImplementedError

    def loads(self, data: bytes | str) -> Any:
        raise NotImplementedError
