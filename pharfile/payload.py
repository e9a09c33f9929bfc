import bz2
import enum
import zlib

from .common import (
    ENTRY_COMPRESSED_NONE,
    ENTRY_COMPRESSED_GZIP,
    ENTRY_COMPRESSED_BZIP2,
    CorruptEntryPayloadError,
)
from .file_slice import FileSlice

default_chunk_size = 0x4000

gzip_magic = b"\x1f\x8b"

class Compression(enum.IntEnum):
    NONE  = ENTRY_COMPRESSED_NONE
    GZIP  = ENTRY_COMPRESSED_GZIP
    BZIP2 = ENTRY_COMPRESSED_BZIP2

def open_entry(source, entry):
    return EntryReader(source, entry)

class EntryReader:
    """
    Sequential reader over one entry's decompressed contents.
    Each instance decompresses from the start of the payload independently of any other.
    """
    def __init__(self, source, entry):
        if entry.payload_offset == None: raise ValueError("payload offset of {!r} is not assigned".format(entry.file_name))
        self.entry = entry
        self._file = FileSlice(source, entry.payload_offset, entry.payload_offset + entry.on_disk_length)
        if entry.compression == Compression.NONE or (entry.on_disk_length == 0 and entry.size == 0):
            self._decoder = None
        else:
            self._decoder = Decoder(entry.compression)
        self._remaining = entry.size
        self._finished = False
        self.closed = False

    def __enter__(self): return self
    def __exit__(self, *args): self.close()

    def close(self):
        self.closed = True
        self._file = None
        self._decoder = None

    def readable(self):
        return True

    def read(self, n=-1):
        if self.closed: raise ValueError("I/O operation on closed entry reader")
        if n == None or n < 0:
            chunks = []
            while True:
                buf = self.read(default_chunk_size)
                if len(buf) == 0: break
                chunks.append(buf)
            return b"".join(chunks)

        if n == 0: return b""
        n = min(n, self._remaining)
        if n == 0:
            self._finish()
            return b""

        if self._decoder == None:
            buf = self._file.read(n)
        else:
            buf = self._read_from_decoder(n)
        if len(buf) == 0:
            raise CorruptEntryPayloadError("{!r}: payload ends {} bytes short of the declared size {}".format(self.entry.file_name, self._remaining, self.entry.size))
        self._remaining -= len(buf)
        return buf

    def _finish(self):
        if self._finished: return
        self._finished = True
        if self._decoder == None: return
        # The compression stream must not hold more than the declared size.
        if len(self._read_from_decoder(1)) != 0:
            raise CorruptEntryPayloadError("{!r}: payload decompresses to more than the declared size {}".format(self.entry.file_name, self.entry.size))

    def _read_from_decoder(self, n):
        decoder = self._decoder
        while True:
            if decoder.eof: return b""

            input_exhausted = False
            chunk = b""
            if decoder.needs_input:
                chunk = self._file.read(default_chunk_size)
                input_exhausted = len(chunk) == 0

            try:
                buf = decoder.decompress(chunk, n)
            except (zlib.error, OSError, EOFError) as e:
                raise CorruptEntryPayloadError("{!r}: cannot decompress payload: {}".format(self.entry.file_name, e)) from e
            if len(buf) > 0: return buf
            if input_exhausted and not decoder.eof:
                raise CorruptEntryPayloadError("{!r}: payload ends inside the {} stream".format(self.entry.file_name, self.entry.compression.name.lower()))

class Decoder:
    """
    Common face over zlib and bz2 decompressors: decompress(data, max_length), needs_input, eof.
    """
    def __init__(self, compression):
        self.compression = compression
        self._decompressor = None
        if compression == Compression.BZIP2:
            self._decompressor = bz2.BZ2Decompressor()
        elif compression != Compression.GZIP:
            raise ValueError("no decoder for " + compression.name)

    @property
    def needs_input(self):
        if self._decompressor == None: return True
        if self.compression == Compression.BZIP2: return self._decompressor.needs_input
        return len(self._decompressor.unconsumed_tail) == 0

    @property
    def eof(self):
        return self._decompressor != None and self._decompressor.eof

    def decompress(self, data, max_length):
        # MAINTAINER NOTE: zlib treats a max_length of 0 as infinity.
        assert max_length > 0
        if self.compression == Compression.BZIP2:
            return self._decompressor.decompress(data, max_length)
        if self._decompressor == None:
            if len(data) == 0: return b""
            self._decompressor = _zlib_decompressor(data)
        data = self._decompressor.unconsumed_tail + data
        return self._decompressor.decompress(data, max_length)

def _zlib_decompressor(first_chunk):
    # PHP writes raw deflate, but tolerate a gzip member too.
    if first_chunk.startswith(gzip_magic):
        return zlib.decompressobj(wbits=16 + zlib.MAX_WBITS)
    return zlib.decompressobj(wbits=-zlib.MAX_WBITS)
