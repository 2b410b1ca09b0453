import lzma

from django_redis_storage.compressors.base import BaseCompressor


class LzmaCompressor(BaseCompressor):
    """XZ container; ``level`` is the lzma preset."""

    name = "lzma"
    magic = b"\xfd7zXZ\x00"
    errors = (lzma.LZMAError, EOFError)

    level = 4

    def _compress(self, data: bytes) -> bytes:
        return lzma.compress(data, preset=self.level)

    def _decompress(self, data: bytes) -> bytes:
        return lzma.decompress(data)
