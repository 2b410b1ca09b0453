import zlib

from django_redis_storage.compressors.base import BaseCompressor


class ZlibCompressor(BaseCompressor):
    """Deflate with a zlib header (``0x78`` followed by the level byte)."""

    name = "zlib"
    magic = b"\x78"
    errors = (zlib.error,)

    level = 6

    def _compress(self, data: bytes) -> bytes:
        return zlib.compress(data, self.level)

    def _decompress(self, data: bytes) -> bytes:
        return zlib.decompress(data)
