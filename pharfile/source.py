import os

from .common import SourceIOError, TruncatedHeaderError

def read_exact(source, offset, n, what):
    """
    Reads exactly n bytes at offset, checking the length against what's left in the source first,
    so an attacker-controlled n never turns into a huge allocation.
    """
    remaining = source.size - offset
    if offset < 0 or n > remaining:
        raise TruncatedHeaderError("{}: need {} bytes at offset {}, but only {} remain".format(what, n, offset, max(remaining, 0)))
    if n == 0: return b""
    buf = source.read_at(offset, n)
    if len(buf) != n:
        raise TruncatedHeaderError("{}: need {} bytes at offset {}, but got {}".format(what, n, offset, len(buf)))
    return buf

class BytesSource:
    """
    Positioned reads over an in-memory buffer.
    Safe to share between threads.
    """
    def __init__(self, data, size=None):
        self._data = memoryview(data).cast("B")
        self.size = len(self._data) if size == None else min(size, len(self._data))

    def read_at(self, offset, n):
        if offset < 0 or n < 0: raise ValueError("negative offset or length")
        end = min(offset + n, self.size)
        if offset >= end: return b""
        return bytes(self._data[offset:end])

class FileSource:
    """
    Positioned reads over a seekable binary file.
    Every read seeks the shared file handle, so concurrent use from several threads
    needs external locking.
    """
    def __init__(self, file, size=None):
        self.file = file
        try:
            file_size = file.seek(0, os.SEEK_END)
        except OSError as e:
            raise SourceIOError("cannot get size of archive file: {}".format(e)) from e
        self.size = file_size if size == None else min(size, file_size)

    def read_at(self, offset, n):
        if offset < 0 or n < 0: raise ValueError("negative offset or length")
        n = min(n, self.size - offset)
        if n <= 0: return b""
        try:
            if self.file.seek(offset) != offset:
                # Must have exceeded the EOF or something
                return b""
            return self.file.read(n)
        except OSError as e:
            raise SourceIOError("cannot read {} bytes at offset {}: {}".format(n, offset, e)) from e

def source_for(obj, size=None):
    """
    Accepts a bytes-like object, a seekable binary file,
    or anything that already has read_at(offset, n) and size.
    """
    if hasattr(obj, "read_at") and hasattr(obj, "size"):
        if size == None: return obj
        return _Truncated(obj, size)
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return BytesSource(obj, size)
    if hasattr(obj, "seek") and hasattr(obj, "read"):
        return FileSource(obj, size)
    raise TypeError("unsupported archive source: " + type(obj).__name__)

class _Truncated:
    def __init__(self, source, size):
        self._source = source
        self.size = min(size, source.size)
    def read_at(self, offset, n):
        n = min(n, self.size - offset)
        if n <= 0: return b""
        return self._source.read_at(offset, n)
