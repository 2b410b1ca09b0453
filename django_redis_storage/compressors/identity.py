from django_redis_storage.compressors.base import BaseCompressor


class IdentityCompressor(BaseCompressor):
    """Leaves values untouched; selecting it is the same as no compression."""

    name = "identity"

    def compress(self, data: bytes) -> bytes:
        return data

    def decompress(self, data: bytes) -> bytes:
        return data
