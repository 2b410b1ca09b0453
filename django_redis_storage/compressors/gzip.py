import gzip
import zlib

from django_redis_storage.compressors.base import BaseCompressor


class GzipCompressor(BaseCompressor):
    name = "gzip"
    magic = b"\x1f\x8b"
    levels = range(1, 10)
    errors = (gzip.BadGzipFile, EOFError, zlib.error)

    level = 9

    def _compress(self, data: bytes) -> bytes:
        # mtime=0 keeps the output stable for equal input
        return gzip.compress(data, compresslevel=self.level, mtime=0)

    def _decompress(self, data: bytes) -> bytes:
        return gzip.decompress(data)
