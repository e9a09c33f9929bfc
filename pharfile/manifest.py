import struct
import datetime

from .common import (
    MANIFEST_FLAG_SIGNED,
    ENTRY_PERMISSION_MASK,
    ENTRY_COMPRESSION_MASK,
    MalformedInputError,
    TruncatedHeaderError,
    clean_archive_path,
)
from .payload import Compression, open_entry
from .source import read_exact

manifest_header_size = 18
entry_fixed_size = 24
# name length field + fixed block, with an empty name and no metadata.
min_entry_size = 4 + entry_fixed_size

class Manifest:
    def __init__(self, offset, length, entry_count, version_bits, flags, alias, metadata):
        self.offset = offset
        self.length = length
        self.entry_count = entry_count
        self.version_bits = version_bits
        self.flags = flags
        self.alias = alias
        self.metadata = metadata

    @property
    def version(self):
        # major.minor.patch in the low three nibbles of the little-endian field.
        v = self.version_bits
        return "{}.{}.{}".format(v & 0xF, v >> 4 & 0xF, v >> 8 & 0xF)

    @property
    def php_version(self):
        """The same two bytes read the way PHP reads them: most significant byte first, top three nibbles."""
        v = (self.version_bits & 0xFF) << 8 | self.version_bits >> 8
        return "{}.{}.{}".format(v >> 12 & 0xF, v >> 8 & 0xF, v >> 4 & 0xF)

    @property
    def is_signed(self):
        return bool(self.flags & MANIFEST_FLAG_SIGNED)

    def to_dict(self):
        return {
            "length": self.length,
            "entry_count": self.entry_count,
            "version": self.version,
            "php_version": self.php_version,
            "flags": self.flags,
            "is_signed": self.is_signed,
            "alias": self.alias.decode("utf8", "backslashreplace"),
            "metadata": self.metadata.decode("utf8", "backslashreplace"),
        }

    def __repr__(self):
        return "Manifest(version={!r}, entry_count={}, flags={:#x}, alias={!r})".format(self.version, self.entry_count, self.flags, self.alias)

class Entry:
    def __init__(self, source, file_name, size, timestamp, compressed_size, crc32, flags, metadata):
        self._source = source
        self.file_name = file_name
        self.size = size
        self.timestamp = timestamp
        self.compressed_size = compressed_size
        self.crc32 = crc32
        self.flags = flags
        self.metadata = metadata
        self.compression = Compression(flags & ENTRY_COMPRESSION_MASK)
        if self.compression == Compression.NONE:
            self.on_disk_length = size
        else:
            self.on_disk_length = compressed_size
        # Known only once every prior entry has been decoded.
        self.payload_offset = None

    @property
    def mtime(self):
        return datetime.datetime.fromtimestamp(self.timestamp, datetime.timezone.utc)

    @property
    def permissions(self):
        return self.flags & ENTRY_PERMISSION_MASK

    @property
    def is_dir(self):
        return self.size == 0 and self.compressed_size == 0

    def open(self):
        """Returns a new EntryReader over the decompressed contents. Close it when done."""
        return open_entry(self._source, self)

    def to_dict(self):
        return {
            "file_name": self.file_name,
            "timestamp": self.timestamp,
            "size": self.size,
            "compressed_size": self.compressed_size,
            "crc32": self.crc32,
            "flags": self.flags,
            "permissions": oct(self.permissions),
            "compression": self.compression.name.lower(),
            "metadata": self.metadata.decode("utf8", "backslashreplace"),
        }

    def __repr__(self):
        return "Entry({!r}, size={}, compression={})".format(self.file_name, self.size, self.compression.name.lower())

def decode_manifest(source, offset):
    """
    Decodes the global manifest header, alias and metadata starting at offset.
    Returns (manifest, offset of the first entry).
    """
    header = read_exact(source, offset, manifest_header_size, "manifest header")
    length, entry_count, version_bits, flags, alias_length = struct.unpack("<LLHLL", header)
    cursor = offset + manifest_header_size

    alias = read_exact(source, cursor, alias_length, "manifest alias")
    cursor += alias_length

    (metadata_length,) = struct.unpack("<L", read_exact(source, cursor, 4, "manifest metadata length"))
    cursor += 4
    metadata = read_exact(source, cursor, metadata_length, "manifest metadata")
    cursor += metadata_length

    remaining = source.size - cursor
    if entry_count * min_entry_size > remaining:
        raise TruncatedHeaderError("manifest declares {} entries, but only {} bytes remain at offset {}".format(entry_count, remaining, cursor))

    manifest = Manifest(offset, length, entry_count, version_bits, flags, alias, metadata)
    return manifest, cursor

def decode_entry(source, offset):
    """
    Decodes one entry descriptor. Returns (entry, offset of the next descriptor).
    The payload offset is left unassigned.
    """
    (name_length,) = struct.unpack("<L", read_exact(source, offset, 4, "entry name length"))
    cursor = offset + 4
    name = read_exact(source, cursor, name_length, "entry name")
    cursor += name_length
    file_name = clean_archive_path(name.decode("utf8", "surrogateescape"))

    fixed = read_exact(source, cursor, entry_fixed_size, "entry header for " + repr(file_name))
    cursor += entry_fixed_size
    (
        size,
        timestamp,
        compressed_size,
        crc32,
        flags,
        metadata_length,
    ) = struct.unpack("<LLLLLL", fixed)

    metadata = read_exact(source, cursor, metadata_length, "entry metadata for " + repr(file_name))
    cursor += metadata_length

    # gzip and bzip2 are mutually exclusive, and nothing else is defined.
    try:
        Compression(flags & ENTRY_COMPRESSION_MASK)
    except ValueError:
        raise MalformedInputError("entry {!r} at offset {} has invalid compression flags {:#x}".format(file_name, offset, flags & ENTRY_COMPRESSION_MASK)) from None

    entry = Entry(source, file_name, size, timestamp, compressed_size, crc32, flags, metadata)
    return entry, cursor
